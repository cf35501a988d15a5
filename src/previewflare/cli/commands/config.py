import typer
from pydantic import ValidationError

from previewflare.cli.console import console
from previewflare.cli.exceptions import ConfigError
from previewflare.cli.utils import handle_validation_error
from previewflare.models.config import Config

config_app = typer.Typer(no_args_is_help=True, help="Inspect Previewflare configuration.")


@config_app.command()
def show() -> None:
    """Display the current Previewflare configuration."""
    try:
        config = Config()
    except ValidationError as e:
        handle_validation_error(e)
        raise ConfigError("Configuration validation failed.") from e
    except Exception as e:
        raise ConfigError(f"Configuration error: {e}") from e

    console.print(config)
    mode = "authenticated" if config.global_user() is not None else "unauthenticated"
    console.print(f"Preview mode: [cyan]{mode}[/cyan]")
