import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from previewflare.cli.console import console, err_console
from previewflare.cli.context import get_app_context
from previewflare.cli.exceptions import ConfigError, SessionError
from previewflare.cli.utils import to_cli_error
from previewflare.exceptions import PreviewflareError, TransportError
from previewflare.models.devtools import DevToolsEvent
from previewflare.models.target import load_target
from previewflare.services.devtools import SocketRequest, format_event, listen
from previewflare.services.request import PreviewRequest, send_preview_request


def _print_event(event: DevToolsEvent) -> None:
    style = "red" if event.method == "Runtime.exceptionThrown" else None
    console.print(format_event(event), style=style, markup=False, highlight=False)


async def _preview_async(
    config_path: Path,
    url: str,
    method: str,
    body: str | None,
    headless: bool,
    inspect_url: str | None,
    sites: bool | None = None,
) -> None:
    """
    Asynchronous implementation of the preview command.

    Args:
        config_path: wrangler.toml-style file describing the target.
        url: URL the preview request is made for.
        method: HTTP method of the preview request.
        body: Optional request body.
        headless: Send the request to the preview and print the response.
        inspect_url: DevTools socket to stream runtime events from.
        sites: Require a Workers Sites preview; defaults to whether the target has a site.
    """
    try:
        target = load_target(config_path)
    except PreviewflareError as e:
        raise to_cli_error(e) from e

    async with get_app_context() as ctx:
        if not target.account_id and ctx.config.account_id:
            target = target.model_copy(update={"account_id": ctx.config.account_id})

        try:
            request = PreviewRequest.create(
                method, url, body, preview_host=ctx.config.preview_host
            )
        except PreviewflareError as e:
            raise to_cli_error(e) from e
        except ValueError as e:
            raise ConfigError(f"Unsupported HTTP method: {method}") from e

        sites_preview = target.site is not None if sites is None else sites
        try:
            preview = await ctx.uploader.upload(target, ctx.user, sites_preview=sites_preview)
        except PreviewflareError as e:
            raise to_cli_error(e) from e

        table = Table(title="Preview", show_header=False)
        table.add_column("Field", style="cyan")
        table.add_column("Value")
        table.add_row("Preview ID", preview.id)
        table.add_row("Browser URL", request.browser_url)
        table.add_row("Service URL", request.service_url)
        table.add_row("Cookie", request.cookie_header(preview.id))
        console.print(table)

        if headless:
            try:
                response = await send_preview_request(
                    request, preview.id, timeout=ctx.config.http_timeout
                )
            except PreviewflareError as e:
                raise to_cli_error(e) from e
            status_style = "green" if response.is_success else "red"
            console.print(
                f"{request.method.value} {request.browser_url} -> "
                f"[{status_style}]{response.status_code}[/{status_style}]"
            )
            console.print(response.text, markup=False, highlight=False)

        if inspect_url:
            socket_request = SocketRequest(
                inspect_url, headers={"Cookie": request.cookie_header(preview.id)}
            )
            err_console.print("[dim]Listening for runtime events (Ctrl-C to stop)...[/dim]")
            try:
                await listen(
                    socket_request,
                    observer=_print_event,
                    keep_alive_interval=ctx.config.keep_alive_interval,
                )
            except TransportError as e:
                raise SessionError(str(e)) from e
            err_console.print("[yellow]DevTools session closed.[/yellow]")


def preview(
    config_path: Annotated[
        Path, typer.Option("--config", "-c", help="Path to the wrangler.toml describing the worker")
    ] = Path("wrangler.toml"),
    url: Annotated[
        str, typer.Option("--url", "-u", help="URL to preview the worker against")
    ] = "https://example.com/",
    method: Annotated[str, typer.Option("--method", "-X", help="HTTP method")] = "GET",
    body: Annotated[str | None, typer.Option("--body", "-d", help="Request body")] = None,
    headless: Annotated[
        bool, typer.Option("--headless", help="Send the request and print the response")
    ] = False,
    inspect_url: Annotated[
        str | None,
        typer.Option("--inspect", help="DevTools WebSocket URL to stream runtime events from"),
    ] = None,
    sites: Annotated[
        bool | None,
        typer.Option(
            "--sites/--no-sites",
            help="Require a Workers Sites preview (default: when the target declares [site])",
        ),
    ] = None,
) -> None:
    """Upload the worker for preview and optionally watch its runtime."""
    try:
        asyncio.run(_preview_async(config_path, url, method, body, headless, inspect_url, sites))
    except KeyboardInterrupt:
        err_console.print("[yellow]Preview stopped.[/yellow]")
