import json
from typing import Any

from previewflare.constants import MANIFEST_BINDING
from previewflare.models.site import AssetManifest
from previewflare.models.target import Target

__all__ = ["build_script_form"]

FormFiles = dict[str, tuple[str | None, bytes, str]]


def build_script_form(target: Target, asset_manifest: AssetManifest | None = None) -> FormFiles:
    """
    Build the multipart parts for a preview upload.

    The Worker is sent in service-worker format: a ``metadata`` JSON part naming
    the ``script`` part and listing bindings, then the script itself. An asset
    manifest becomes a text blob binding with its own part.

    Returns:
        A mapping suitable for the ``files`` argument of an httpx request.
    """
    bindings: list[dict[str, Any]] = [
        {"type": "kv_namespace", "name": kv.binding, "namespace_id": kv.id}
        for kv in target.kv_namespaces or []
    ]

    files: FormFiles = {}
    if asset_manifest is not None:
        bindings.append({"type": "text_blob", "name": MANIFEST_BINDING, "part": MANIFEST_BINDING})
        files[MANIFEST_BINDING] = (
            None,
            json.dumps(asset_manifest).encode("utf-8"),
            "text/plain",
        )

    metadata = {"body_part": "script", "bindings": bindings}

    return {
        "metadata": (None, json.dumps(metadata).encode("utf-8"), "application/json"),
        "script": (target.main.name, target.read_script(), "application/javascript"),
        **files,
    }
