from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from previewflare.models.preview import ApiErrorDetail

__all__ = [
    "ConfigurationError",
    "DecodeError",
    "MalformedUrlError",
    "PreviewflareError",
    "ProtocolParseError",
    "RemoteError",
    "TransportError",
]

STATUS_GUIDANCE: dict[int, str] = {
    413: (
        "Returned status code 413, Payload Too Large. "
        "Please make sure your upload is less than 100MB in size"
    ),
    504: "Returned status code 504, Gateway Timeout. Please try again in a few seconds",
}


class PreviewflareError(Exception):
    """Base exception for all Previewflare errors."""


class ConfigurationError(PreviewflareError):
    """Raised when required settings are missing or an unsupported mode is requested."""

    def __init__(self, message: str, missing_fields: list[str] | None = None) -> None:
        super().__init__(message)
        self.missing_fields = missing_fields or []


class MalformedUrlError(PreviewflareError, ValueError):
    """Raised when a preview URL has no resolvable domain."""


class RemoteError(PreviewflareError):
    """Raised when the preview service or the v4 API answers with a non-2xx status."""

    def __init__(
        self,
        status: int,
        body: str,
        errors: list[ApiErrorDetail] | None = None,
    ) -> None:
        self.status = status
        self.body = body
        self.errors = errors or []
        super().__init__(f"Request failed with status {status}: {self._summary()}")

    @property
    def guidance(self) -> str | None:
        """User-facing advice for statuses the API gateway reports without details."""
        return STATUS_GUIDANCE.get(self.status)

    def _summary(self) -> str:
        if self.errors:
            return "; ".join(f"Code {e.code}: {e.message}" for e in self.errors)
        return self.body[:200] or "<empty body>"


class DecodeError(PreviewflareError):
    """Raised when a response body does not match the expected shape."""

    def __init__(self, message: str, body: str = "") -> None:
        super().__init__(message)
        self.body = body


class TransportError(PreviewflareError):
    """Raised on connection, read or write failures (HTTP or WebSocket)."""


class ProtocolParseError(PreviewflareError):
    """Raised when an inbound DevTools frame is not a known envelope."""

    def __init__(self, message: str, frame: str | bytes = "") -> None:
        super().__init__(message)
        self.frame = frame
