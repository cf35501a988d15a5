__all__ = [
    "APIError",
    "CLIError",
    "ConfigError",
    "SessionError",
]


class CLIError(Exception):
    """Base exception for errors reported by the command line."""

    def __init__(self, message: str, exit_code: int = 1) -> None:
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code


class ConfigError(CLIError):
    """Raised when the target or settings cannot be used."""


class APIError(CLIError):
    """Raised when the preview service or Cloudflare API call fails."""


class SessionError(CLIError):
    """Raised when the DevTools session cannot start or fails mid-session."""
