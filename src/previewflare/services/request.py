import ipaddress
import uuid
from dataclasses import dataclass
from http import HTTPMethod

import httpx
from loguru import logger

from previewflare.constants import FIDDLE_COOKIE, PLACEHOLDER_ACCOUNT_ID, PREVIEW_HOST
from previewflare.exceptions import MalformedUrlError, TransportError
from previewflare.http import USER_AGENT

__all__ = ["PreviewRequest", "send_preview_request"]


def _resolve_domain(url: httpx.URL, raw: str) -> str:
    # raw_host keeps internationalized names in their ASCII (punycode) form.
    host = url.raw_host.decode("ascii")
    if not host:
        raise MalformedUrlError(f"URL has no domain: {raw}")
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return host
    raise MalformedUrlError(f"URL must use a domain name, not an IP address: {raw}")


@dataclass(frozen=True)
class PreviewRequest:
    """
    A request to run against an uploaded preview.

    ``browser_url`` is what the user asked for; ``service_url`` is the same path
    and query on the preview host, which routes it to the uploaded script by the
    fiddle cookie.
    """

    method: HTTPMethod
    https: int
    session: str
    protocol: str
    domain: str
    path: str
    query: str
    browser_url: str
    service_url: str
    body: str | None = None

    @classmethod
    def create(
        cls,
        method: HTTPMethod | str,
        url: str,
        body: str | None = None,
        preview_host: str = PREVIEW_HOST,
    ) -> "PreviewRequest":
        """
        Build a request for ``url``.

        Raises:
            MalformedUrlError: If the URL cannot be parsed or has no domain.
        """
        try:
            parsed = httpx.URL(url)
        except httpx.InvalidURL as e:
            raise MalformedUrlError(f"Invalid URL {url!r}: {e}") from e

        domain = _resolve_domain(parsed, url)
        scheme = parsed.scheme
        raw_path, has_query, raw_query = parsed.raw_path.decode("ascii").partition("?")
        path = raw_path or "/"
        query = f"?{raw_query}" if has_query else ""
        protocol = f"{scheme}://"

        return cls(
            method=HTTPMethod(method.upper()) if isinstance(method, str) else method,
            https=1 if scheme == "https" else 0,
            session=uuid.uuid4().hex,
            protocol=protocol,
            domain=domain,
            path=path,
            query=query,
            browser_url=f"{protocol}{domain}{path}{query}",
            service_url=f"https://{PLACEHOLDER_ACCOUNT_ID}.{preview_host}{path}{query}",
            body=body,
        )

    def cookie(self, script_id: str) -> str:
        """Session routing value: script id, session, https flag and domain, unseparated."""
        return f"{script_id}{self.session}{self.https}{self.domain}"

    def cookie_header(self, script_id: str) -> str:
        return f"{FIDDLE_COOKIE}={self.cookie(script_id)}"


async def send_preview_request(
    request: PreviewRequest, preview_id: str, timeout: float = 30.0
) -> httpx.Response:
    """
    Run ``request`` against the preview identified by ``preview_id``.

    Returns:
        The preview's response, whatever its status.

    Raises:
        TransportError: If the preview host cannot be reached.
    """
    headers = {"Cookie": request.cookie_header(preview_id), "User-Agent": USER_AGENT}
    logger.debug(f"{request.method.value} {request.service_url} (as {request.browser_url})")
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            return await client.request(
                request.method.value,
                request.service_url,
                headers=headers,
                content=request.body,
            )
    except httpx.HTTPError as e:
        raise TransportError(f"Preview request failed: {e}") from e
