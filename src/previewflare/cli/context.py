"""Typed application context and factory for CLI commands."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import typer
from cloudflare import AsyncCloudflare

from previewflare.cli.console import err_console, print_info, print_warning
from previewflare.models.config import Config
from previewflare.models.target import GlobalUser
from previewflare.services.site import KvSiteStore
from previewflare.services.upload import PreviewUploader

__all__ = ["AppContext", "get_app_context"]


@dataclass(frozen=True)
class AppContext:
    """Typed container for shared CLI dependencies."""

    config: Config
    user: GlobalUser | None
    uploader: PreviewUploader


@asynccontextmanager
async def get_app_context() -> AsyncIterator[AppContext]:
    """Async context manager for dependency initialization.

    The Cloudflare client backing Workers Sites uploads is only created when
    credentials are configured, inside the running event loop.
    Raises typer.Exit(1) on configuration errors.
    """
    try:
        config = Config()
    except Exception as e:
        err_console.print(f"[bold red]Configuration error:[/bold red] {e}")
        err_console.print(
            "[dim]Hint: Check the PREVIEWFLARE_* variables in your environment or .env file.[/dim]"
        )
        raise typer.Exit(1) from e

    user = config.global_user()
    if user is None:
        uploader = PreviewUploader(config, on_warning=print_warning, on_info=print_info)
        yield AppContext(config=config, user=None, uploader=uploader)
        return

    async with AsyncCloudflare(**user.client_kwargs()) as client:
        uploader = PreviewUploader(
            config,
            site_store=KvSiteStore(client),
            on_warning=print_warning,
            on_info=print_info,
        )
        yield AppContext(config=config, user=user, uploader=uploader)
