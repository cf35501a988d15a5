from rich.console import Console

__all__ = [
    "console",
    "err_console",
    "print_error",
    "print_info",
    "print_warning",
]

# stdout carries preview results and relayed runtime events
console = Console()

# stderr carries warnings, errors and progress notices
err_console = Console(stderr=True)


def print_error(message: str) -> None:
    """Print an error message to stderr with consistent styling."""
    err_console.print(f"[bold red]Error:[/bold red] {message}")


def print_warning(message: str) -> None:
    """Print a warning message to stderr with consistent styling."""
    err_console.print(f"[bold yellow]Warning:[/bold yellow] {message}")


def print_info(message: str) -> None:
    err_console.print(f"[blue]{message}[/blue]")

