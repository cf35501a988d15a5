"""Helpers shared by the HTTP calls made against the preview service and v4 API."""

from collections.abc import Callable

import httpx
from pydantic import ValidationError

from previewflare import __version__
from previewflare.exceptions import RemoteError
from previewflare.models.preview import ApiErrorBody

__all__ = ["USER_AGENT", "format_error", "raise_for_status", "remote_error"]

USER_AGENT = f"previewflare/{__version__}"


def remote_error(response: httpx.Response) -> RemoteError:
    """Build a RemoteError from a failed response, keeping any structured API errors."""
    body = response.text
    try:
        errors = ApiErrorBody.model_validate_json(body).errors
    except ValidationError:
        errors = []
    return RemoteError(response.status_code, body, errors)


def raise_for_status(response: httpx.Response) -> None:
    if not response.is_success:
        raise remote_error(response)


def format_error(error: RemoteError, help_for_code: Callable[[int], str] | None = None) -> str:
    """
    Render a RemoteError for humans.

    Args:
        error: The failed response.
        help_for_code: Optional mapping from an API error code to a hint that is
            appended after the matching message.

    Returns:
        One line per API error, preceded by status guidance when the gateway
        returned a status with a known meaning.
    """
    lines: list[str] = []
    if error.guidance:
        lines.append(error.guidance)

    if not error.errors:
        lines.append(f"Error {error.status}: {error.body.strip() or '<empty body>'}")

    for detail in error.errors:
        lines.append(f"Code {detail.code}: {detail.message}")
        if help_for_code is not None:
            lines.append(f"  {help_for_code(detail.code)}")

    return "\n".join(lines)
