from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import TypeVar

import httpx
from loguru import logger
from pydantic import BaseModel, ValidationError

from previewflare.constants import SITE_NAMESPACE_BINDING, SITES_UNAUTH_PREVIEW_ERR
from previewflare.exceptions import ConfigurationError, DecodeError, TransportError
from previewflare.http import USER_AGENT, raise_for_status
from previewflare.models.config import Config
from previewflare.models.preview import Preview, V4PreviewResponse
from previewflare.models.site import AssetManifest
from previewflare.models.target import GlobalUser, KvNamespace, Target
from previewflare.services.form import FormFiles, build_script_form
from previewflare.services.site import SiteStore

__all__ = [
    "PreviewUploader",
    "UploadPlan",
    "UploadStrategy",
    "plan_upload",
    "validate",
]

NO_CREDENTIALS_WARNING = (
    "You have not provided your Cloudflare credentials. "
    "Set PREVIEWFLARE_API_TOKEN (or PREVIEWFLARE_EMAIL and PREVIEWFLARE_API_KEY) "
    "to preview with authentication."
)
KV_STRIPPED_WARNING = (
    "KV Namespaces are not supported in preview without setting API credentials and account_id"
)

ResponseModel = TypeVar("ResponseModel", bound=BaseModel)


class UploadStrategy(StrEnum):
    UNAUTHENTICATED = "unauthenticated"
    DIRECT_AUTHENTICATED = "direct_authenticated"
    SITE_SYNC = "site_sync"


@dataclass(frozen=True)
class UploadPlan:
    """The chosen delivery path and the notices to show before taking it."""

    strategy: UploadStrategy
    warnings: tuple[str, ...] = ()
    notices: tuple[str, ...] = ()


def validate(target: Target) -> list[str]:
    """Return every field an authenticated upload needs but the target lacks."""
    missing_fields: list[str] = []

    if not target.account_id:
        missing_fields.append("account_id")
    if not target.name:
        missing_fields.append("name")

    for kv in target.kv_namespaces or []:
        if not kv.binding:
            missing_fields.append("kv-namespace binding")
        if not kv.id:
            missing_fields.append("kv-namespace id")

    return missing_fields


def plan_upload(
    user: GlobalUser | None,
    missing_fields: list[str],
    sites_preview: bool,
    has_site: bool,
) -> UploadPlan:
    """
    Decide how a preview is delivered. Performs no I/O.

    Args:
        user: Credentials, if any were provided.
        missing_fields: Result of ``validate`` for the target.
        sites_preview: Whether the caller requires a Workers Sites preview.
        has_site: Whether the target declares a site bucket.

    Raises:
        ConfigurationError: If a Sites preview is requested but only the
            unauthenticated path is available.
    """
    if user is None:
        warnings: tuple[str, ...] = (NO_CREDENTIALS_WARNING,)
        notices: tuple[str, ...] = ("Running preview without authentication.",)
    elif missing_fields:
        warnings = (
            f"Your configuration is missing the following fields: {missing_fields}",
            "Falling back to unauthenticated preview.",
        )
        notices = ()
    elif has_site:
        return UploadPlan(UploadStrategy.SITE_SYNC)
    else:
        return UploadPlan(UploadStrategy.DIRECT_AUTHENTICATED)

    if sites_preview:
        raise ConfigurationError(SITES_UNAUTH_PREVIEW_ERR, missing_fields)
    return UploadPlan(UploadStrategy.UNAUTHENTICATED, warnings=warnings, notices=notices)


def _decode(response: httpx.Response, model: type[ResponseModel]) -> ResponseModel:
    try:
        return model.model_validate_json(response.content)
    except ValidationError as e:
        raise DecodeError(
            f"Could not read the preview service response: {e}", response.text
        ) from e


class PreviewUploader:
    """Uploads a Worker to the preview service by the path ``plan_upload`` picks."""

    def __init__(
        self,
        config: Config,
        site_store: SiteStore | None = None,
        on_warning: Callable[[str], None] | None = None,
        on_info: Callable[[str], None] | None = None,
    ) -> None:
        """
        Initialize the uploader.

        Args:
            config: Settings providing API hosts and the HTTP timeout.
            site_store: KV collaborator used for Workers Sites previews.
            on_warning: Receives fallback and stripping warnings (defaults to the logger).
            on_info: Receives progress notices (defaults to the logger).
        """
        self.config = config
        self.site_store = site_store
        self.on_warning = on_warning or logger.warning
        self.on_info = on_info or logger.info

    async def upload(
        self,
        target: Target,
        user: GlobalUser | None = None,
        sites_preview: bool = False,
    ) -> Preview:
        """
        Upload ``target`` for preview.

        Returns:
            The preview created by the service.

        Raises:
            ConfigurationError: Invalid mode or unreadable inputs; raised before any request.
            RemoteError: The service answered with a non-2xx status.
            DecodeError: The service answered with an unexpected body.
            TransportError: The service could not be reached.
        """
        missing_fields = validate(target) if user is not None else []
        plan = plan_upload(user, missing_fields, sites_preview, target.site is not None)
        logger.debug(f"Preview upload strategy: {plan.strategy}")

        for warning in plan.warnings:
            self.on_warning(warning)
        for notice in plan.notices:
            self.on_info(notice)

        if user is None or plan.strategy is UploadStrategy.UNAUTHENTICATED:
            preview = await self._unauthenticated_upload(target)
        elif plan.strategy is UploadStrategy.SITE_SYNC and target.site is not None:
            preview = await self._site_upload(target, user, target.site.bucket)
        else:
            preview = await self._authenticated_upload(target, user)

        logger.info(f"Uploaded preview {preview.id}")
        return preview

    async def _site_upload(self, target: Target, user: GlobalUser, bucket: Path) -> Preview:
        if self.site_store is None:
            raise ConfigurationError("Workers Sites preview requires a site store.")

        namespace_id = await self.site_store.ensure_namespace(target)
        sync = await self.site_store.sync(target, namespace_id, bucket)

        if sync.to_upload:
            self.on_info("Uploading updated files...")
            await self.site_store.upload_files(target, namespace_id, sync.to_upload)

        site_target = target.model_copy(
            update={
                "kv_namespaces": [
                    *(target.kv_namespaces or []),
                    KvNamespace(binding=SITE_NAMESPACE_BINDING, id=namespace_id),
                ]
            }
        )
        preview = await self._authenticated_upload(site_target, user, sync.manifest)

        # Stale assets may still be referenced until the new manifest is live.
        if sync.to_delete:
            self.on_info("Deleting stale files...")
            await self.site_store.delete_bulk(target, namespace_id, sync.to_delete)

        return preview

    async def _authenticated_upload(
        self,
        target: Target,
        user: GlobalUser,
        asset_manifest: AssetManifest | None = None,
    ) -> Preview:
        url = (
            f"{self.config.api_base}/accounts/{target.account_id}"
            f"/workers/scripts/{target.name}/preview"
        )
        files = build_script_form(target, asset_manifest)
        response = await self._post(url, files, user.auth_headers())
        return _decode(response, V4PreviewResponse).to_preview()

    async def _unauthenticated_upload(self, target: Target) -> Preview:
        url = f"https://{self.config.preview_host}/script"

        # The preview service cannot bind KV without credentials.
        if target.kv_namespaces is not None:
            self.on_warning(KV_STRIPPED_WARNING)
            target = target.model_copy(update={"kv_namespaces": None})

        files = build_script_form(target)
        response = await self._post(url, files, {})
        return _decode(response, Preview)

    async def _post(self, url: str, files: FormFiles, headers: dict[str, str]) -> httpx.Response:
        logger.info(f"address: {url}")
        try:
            async with httpx.AsyncClient(
                timeout=self.config.http_timeout,
                headers={"User-Agent": USER_AGENT, **headers},
            ) as client:
                response = await client.post(url, files=files)
        except httpx.HTTPError as e:
            logger.error(f"Upload to {url} failed: {e}")
            raise TransportError(f"Upload to {url} failed: {e}") from e

        logger.debug(f"Response from preview: {response.text}")
        raise_for_status(response)
        return response
