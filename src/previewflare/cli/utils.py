from pydantic import ValidationError
from rich.console import Console

from previewflare.cli.exceptions import APIError, CLIError, ConfigError
from previewflare.exceptions import (
    ConfigurationError,
    DecodeError,
    MalformedUrlError,
    PreviewflareError,
    RemoteError,
    TransportError,
)
from previewflare.http import format_error

__all__ = ["handle_validation_error", "to_cli_error"]


def handle_validation_error(e: ValidationError) -> None:
    console = Console(stderr=True)
    console.print("[bold red]Configuration Error:[/bold red]")
    for error in e.errors():
        field_name = ".".join(str(loc) for loc in error["loc"]) or "Global Config"
        message = error["msg"]
        input_value = error.get("input")
        console.print(
            f"  Field [bold]{field_name}[/bold]: {message} "
            f"(Invalid Value: [red]{input_value!r}[/red])"
        )


def to_cli_error(e: PreviewflareError) -> CLIError:
    """Map a domain error onto the CLI error carrying its user-facing message."""
    if isinstance(e, (ConfigurationError, MalformedUrlError)):
        return ConfigError(str(e))
    if isinstance(e, RemoteError):
        return APIError(format_error(e))
    if isinstance(e, DecodeError):
        return APIError(f"{e}\nResponse body: {e.body[:500]}")
    if isinstance(e, TransportError):
        return APIError(f"{e}. Check your network connection.")
    return CLIError(str(e))
