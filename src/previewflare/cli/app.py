"""CLI application using Typer."""

import sys

import typer

from previewflare.cli.commands.config import config_app
from previewflare.cli.commands.preview import preview
from previewflare.cli.console import print_error
from previewflare.cli.exceptions import CLIError

__all__ = ["app", "main"]

app = typer.Typer(
    name="previewflare",
    help="Preview Cloudflare Workers and stream their runtime events.",
    add_completion=True,
    no_args_is_help=True,
)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """
    Previewflare CLI entry point.
    """
    from previewflare.logging import configure_logging

    configure_logging("DEBUG" if verbose else "INFO")


app.add_typer(config_app, name="config")
app.command(name="preview")(preview)


def main() -> None:
    """Main entry point for CLI."""
    try:
        app()
    except CLIError as e:
        print_error(e.message)
        sys.exit(e.exit_code)
    except Exception as e:
        print_error(f"An unexpected error occurred: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
