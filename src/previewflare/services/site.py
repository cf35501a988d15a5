import base64
import hashlib
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Protocol

from cloudflare import APIConnectionError, APIStatusError, AsyncCloudflare
from loguru import logger

from previewflare.constants import KV_BULK_LIMIT
from previewflare.exceptions import ConfigurationError, TransportError
from previewflare.http import remote_error
from previewflare.models.site import AssetFile, AssetManifest, SiteSyncResult
from previewflare.models.target import Target

__all__ = ["KvSiteStore", "SiteStore", "asset_key", "site_namespace_title"]

IGNORED_NAMES = frozenset({"node_modules"})


class SiteStore(Protocol):
    """The KV operations a Workers Sites preview needs."""

    async def ensure_namespace(self, target: Target) -> str: ...

    async def sync(self, target: Target, namespace_id: str, directory: Path) -> SiteSyncResult: ...

    async def upload_files(
        self, target: Target, namespace_id: str, files: list[AssetFile]
    ) -> None: ...

    async def delete_bulk(self, target: Target, namespace_id: str, keys: list[str]) -> None: ...


def site_namespace_title(target: Target) -> str:
    return f"__{target.name}-workers_sites_assets_preview"


def asset_key(relative_path: str, content: bytes) -> str:
    """Content-addressed key: the content hash goes between the stem and the suffix."""
    digest = hashlib.sha256(content).hexdigest()[:10]
    path = Path(relative_path)
    return path.with_name(f"{path.stem}.{digest}{path.suffix}").as_posix()


def _walk(directory: Path) -> Iterator[Path]:
    for path in sorted(directory.rglob("*")):
        relative = path.relative_to(directory)
        if any(part.startswith(".") or part in IGNORED_NAMES for part in relative.parts):
            continue
        if path.is_file():
            yield path


def _batches(items: list, size: int) -> Iterator[list]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


@contextmanager
def _api_call(action: str) -> Iterator[None]:
    try:
        yield
    except APIStatusError as e:
        logger.error(f"Failed to {action}: {e}")
        raise remote_error(e.response) from e
    except APIConnectionError as e:
        logger.error(f"Failed to {action}: {e}")
        raise TransportError(f"Failed to {action}: {e}") from e


class KvSiteStore:
    """Keeps a Workers Sites preview namespace in step with a local directory."""

    def __init__(self, client: AsyncCloudflare, batch_size: int = KV_BULK_LIMIT) -> None:
        """
        Initialize the store.

        Args:
            client: AsyncCloudflare client authenticated as the target's account owner.
            batch_size: Maximum keys per bulk write or delete.
        """
        self.client = client
        self.batch_size = batch_size

    async def ensure_namespace(self, target: Target) -> str:
        """
        Return the id of the target's preview asset namespace, creating it if needed.
        """
        title = site_namespace_title(target)
        with _api_call(f"look up namespace {title}"):
            async for namespace in self.client.kv.namespaces.list(account_id=target.account_id):
                if namespace.title == title:
                    logger.debug(f"Using existing site namespace {title} ({namespace.id})")
                    return namespace.id

        with _api_call(f"create namespace {title}"):
            created = await self.client.kv.namespaces.create(
                account_id=target.account_id, title=title
            )
        logger.info(f"Created site namespace {title} ({created.id})")
        return created.id

    async def sync(self, target: Target, namespace_id: str, directory: Path) -> SiteSyncResult:
        """
        Diff ``directory`` against the keys already stored in the namespace.

        Returns:
            The files whose keys are missing remotely, the remote keys no longer
            referenced, and the manifest for the whole directory.

        Raises:
            ConfigurationError: If ``directory`` does not exist.
        """
        if not directory.is_dir():
            raise ConfigurationError(f"Site bucket directory not found: {directory}")

        manifest: AssetManifest = {}
        local: dict[str, AssetFile] = {}
        for path in _walk(directory):
            relative = path.relative_to(directory).as_posix()
            key = asset_key(relative, path.read_bytes())
            manifest[relative] = key
            local[key] = AssetFile(key=key, path=path)

        remote: set[str] = set()
        with _api_call(f"list keys in namespace {namespace_id}"):
            async for key in self.client.kv.namespaces.keys.list(
                namespace_id, account_id=target.account_id
            ):
                remote.add(key.name)

        to_upload = [asset for key, asset in local.items() if key not in remote]
        to_delete = sorted(remote - local.keys())
        logger.debug(
            f"Site sync: {len(manifest)} files, {len(to_upload)} to upload, "
            f"{len(to_delete)} stale"
        )
        return SiteSyncResult(to_upload=to_upload, to_delete=to_delete, manifest=manifest)

    async def upload_files(
        self, target: Target, namespace_id: str, files: list[AssetFile]
    ) -> None:
        for batch in _batches(files, self.batch_size):
            body = [
                {
                    "key": asset.key,
                    "value": base64.b64encode(asset.path.read_bytes()).decode("ascii"),
                    "base64": True,
                }
                for asset in batch
            ]
            with _api_call(f"upload {len(batch)} files"):
                await self.client.kv.namespaces.bulk_update(
                    namespace_id, account_id=target.account_id, body=body
                )

    async def delete_bulk(self, target: Target, namespace_id: str, keys: list[str]) -> None:
        for batch in _batches(keys, self.batch_size):
            with _api_call(f"delete {len(batch)} keys"):
                await self.client.kv.namespaces.bulk_delete(
                    namespace_id, account_id=target.account_id, body=batch
                )
