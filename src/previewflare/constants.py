"""Fixed hosts, names and intervals used by the preview workflow."""

from typing import Final

__all__ = [
    "API_BASE",
    "FIDDLE_COOKIE",
    "KEEP_ALIVE_INTERVAL",
    "KV_BULK_LIMIT",
    "MANIFEST_BINDING",
    "PLACEHOLDER_ACCOUNT_ID",
    "PREVIEW_HOST",
    "SITES_UNAUTH_PREVIEW_ERR",
    "SITE_NAMESPACE_BINDING",
]

API_BASE: Final = "https://api.cloudflare.com/client/v4"
PREVIEW_HOST: Final = "cloudflareworkers.com"

# Every preview executes under this account on the preview host.
PLACEHOLDER_ACCOUNT_ID: Final = "0" * 32

FIDDLE_COOKIE: Final = "__ew_fiddle_preview"

KEEP_ALIVE_INTERVAL: Final = 10.0

SITE_NAMESPACE_BINDING: Final = "__STATIC_CONTENT"
MANIFEST_BINDING: Final = "__STATIC_CONTENT_MANIFEST"
KV_BULK_LIMIT: Final = 10_000

SITES_UNAUTH_PREVIEW_ERR: Final = (
    "Unauthenticated preview does not work for previewing Workers Sites; "
    "you need to authenticate to upload your site contents."
)
