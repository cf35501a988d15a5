import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from previewflare.constants import SITES_UNAUTH_PREVIEW_ERR
from previewflare.exceptions import (
    ConfigurationError,
    DecodeError,
    RemoteError,
    TransportError,
)
from previewflare.models.site import AssetFile, SiteSyncResult
from previewflare.models.target import KvNamespace, SiteConfig
from previewflare.services.upload import (
    PreviewUploader,
    UploadStrategy,
    plan_upload,
    validate,
)

AUTH_URL = (
    "https://api.cloudflare.com/client/v4/accounts/test-account/workers/scripts/my-worker/preview"
)
UNAUTH_URL = "https://cloudflareworkers.com/script"


def _multipart_text(request: httpx.Request) -> str:
    return request.read().decode("utf-8", errors="replace")


def _metadata(request: httpx.Request) -> dict:
    """Extract the metadata JSON part from a multipart request body."""
    body = request.read()
    boundary = request.headers["Content-Type"].split("boundary=")[1]
    for part in body.split(f"--{boundary}".encode()):
        if b'name="metadata"' in part:
            return json.loads(part.split(b"\r\n\r\n", 1)[1].rsplit(b"\r\n", 1)[0])
    raise AssertionError("metadata part missing")


@pytest.fixture
def warnings():
    return []


@pytest.fixture
def site_store():
    store = MagicMock()
    store.ensure_namespace = AsyncMock(return_value="site-ns")
    store.sync = AsyncMock(
        return_value=SiteSyncResult(
            to_upload=[AssetFile(key="index.abc.html", path=Path("index.html"))],
            to_delete=["old.123.css"],
            manifest={"index.html": "index.abc.html"},
        )
    )
    store.upload_files = AsyncMock()
    store.delete_bulk = AsyncMock()
    return store


@pytest.fixture
def uploader(mock_config, site_store, warnings):
    return PreviewUploader(
        mock_config, site_store=site_store, on_warning=warnings.append, on_info=lambda _: None
    )


# --- validate ---


def test_validate_complete_target(target):
    assert validate(target) == []


def test_validate_reports_every_missing_field(target):
    broken = target.model_copy(
        update={
            "account_id": "",
            "name": "",
            "kv_namespaces": [KvNamespace(binding="", id="abc"), KvNamespace(binding="B", id="")],
        }
    )
    assert validate(broken) == [
        "account_id",
        "name",
        "kv-namespace binding",
        "kv-namespace id",
    ]


# --- plan_upload ---


def test_plan_without_credentials():
    plan = plan_upload(None, [], sites_preview=False, has_site=False)
    assert plan.strategy is UploadStrategy.UNAUTHENTICATED
    assert plan.warnings


def test_plan_without_credentials_rejects_sites():
    with pytest.raises(ConfigurationError, match="Workers Sites"):
        plan_upload(None, [], sites_preview=True, has_site=True)


def test_plan_falls_back_when_fields_missing(user):
    plan = plan_upload(user, ["account_id"], sites_preview=False, has_site=False)
    assert plan.strategy is UploadStrategy.UNAUTHENTICATED
    assert "account_id" in plan.warnings[0]
    assert plan.warnings[1] == "Falling back to unauthenticated preview."


def test_plan_fallback_still_rejects_sites(user):
    with pytest.raises(ConfigurationError) as exc_info:
        plan_upload(user, ["name"], sites_preview=True, has_site=True)
    assert str(exc_info.value) == SITES_UNAUTH_PREVIEW_ERR
    assert exc_info.value.missing_fields == ["name"]


def test_plan_direct_and_site_sync(user):
    assert plan_upload(user, [], False, False).strategy is UploadStrategy.DIRECT_AUTHENTICATED
    assert plan_upload(user, [], True, True).strategy is UploadStrategy.SITE_SYNC
    assert plan_upload(user, [], False, False).warnings == ()


# --- upload: unauthenticated ---


async def test_unauthenticated_upload(uploader, target, respx_mock):
    route = respx_mock.post(UNAUTH_URL).mock(
        return_value=httpx.Response(200, json={"id": "unauth-preview"})
    )

    preview = await uploader.upload(target)

    assert preview.id == "unauth-preview"
    assert route.called
    assert "Authorization" not in route.calls.last.request.headers


async def test_unauthenticated_upload_strips_kv_namespaces(uploader, target, respx_mock, warnings):
    target = target.model_copy(update={"kv_namespaces": [KvNamespace(binding="CACHE", id="ns1")]})
    route = respx_mock.post(UNAUTH_URL).mock(
        return_value=httpx.Response(200, json={"id": "unauth-preview"})
    )

    await uploader.upload(target)

    assert _metadata(route.calls.last.request)["bindings"] == []
    assert any("KV Namespaces are not supported" in w for w in warnings)
    # the caller's target is untouched
    assert target.kv_namespaces == [KvNamespace(binding="CACHE", id="ns1")]


async def test_invalid_config_falls_back(uploader, target, user, respx_mock, warnings):
    target = target.model_copy(update={"account_id": ""})
    respx_mock.post(UNAUTH_URL).mock(return_value=httpx.Response(200, json={"id": "fallback"}))

    preview = await uploader.upload(target, user)

    assert preview.id == "fallback"
    assert "Falling back to unauthenticated preview." in warnings


async def test_sites_without_credentials_makes_no_calls(uploader, target, site_store, respx_mock):
    target = target.model_copy(update={"site": SiteConfig(bucket=Path("public"))})

    with pytest.raises(ConfigurationError, match="Workers Sites"):
        await uploader.upload(target, None, sites_preview=True)

    assert not respx_mock.calls
    site_store.ensure_namespace.assert_not_called()
    site_store.sync.assert_not_called()


# --- upload: authenticated ---


async def test_direct_authenticated_upload(uploader, target, user, respx_mock):
    target = target.model_copy(update={"kv_namespaces": [KvNamespace(binding="CACHE", id="ns1")]})
    route = respx_mock.post(AUTH_URL).mock(
        return_value=httpx.Response(200, json={"result": {"preview_id": "auth-preview"}})
    )

    preview = await uploader.upload(target, user)

    assert preview.id == "auth-preview"
    sent = route.calls.last.request
    assert sent.headers["Authorization"] == "Bearer test_api_token"
    assert _metadata(sent)["bindings"] == [
        {"type": "kv_namespace", "name": "CACHE", "namespace_id": "ns1"}
    ]


async def test_site_upload_deletes_only_after_preview(
    uploader, target, user, site_store, respx_mock
):
    target = target.model_copy(update={"site": SiteConfig(bucket=Path("public"))})
    events: list[str] = []
    site_store.upload_files.side_effect = lambda *a: events.append("upload_files")
    site_store.delete_bulk.side_effect = lambda *a: events.append("delete_bulk")

    def _preview(request: httpx.Request) -> httpx.Response:
        events.append("preview")
        return httpx.Response(200, json={"result": {"preview_id": "site-preview"}})

    route = respx_mock.post(AUTH_URL).mock(side_effect=_preview)

    preview = await uploader.upload(target, user, sites_preview=True)

    assert preview.id == "site-preview"
    assert events == ["upload_files", "preview", "delete_bulk"]
    site_store.sync.assert_awaited_once_with(target, "site-ns", Path("public"))
    site_store.delete_bulk.assert_awaited_once_with(target, "site-ns", ["old.123.css"])

    sent = route.calls.last.request
    bindings = _metadata(sent)["bindings"]
    site_binding = {"type": "kv_namespace", "name": "__STATIC_CONTENT", "namespace_id": "site-ns"}
    assert site_binding in bindings
    assert {
        "type": "text_blob",
        "name": "__STATIC_CONTENT_MANIFEST",
        "part": "__STATIC_CONTENT_MANIFEST",
    } in bindings
    assert '{"index.html": "index.abc.html"}' in _multipart_text(sent)
    assert target.kv_namespaces is None


async def test_site_upload_failure_keeps_stale_files(
    uploader, target, user, site_store, respx_mock
):
    target = target.model_copy(update={"site": SiteConfig(bucket=Path("public"))})
    respx_mock.post(AUTH_URL).mock(return_value=httpx.Response(500, text="boom"))

    with pytest.raises(RemoteError):
        await uploader.upload(target, user, sites_preview=True)

    site_store.upload_files.assert_awaited_once()
    site_store.delete_bulk.assert_not_called()


async def test_site_upload_skips_delete_when_nothing_stale(
    uploader, target, user, site_store, respx_mock
):
    target = target.model_copy(update={"site": SiteConfig(bucket=Path("public"))})
    site_store.sync.return_value = SiteSyncResult(manifest={})
    respx_mock.post(AUTH_URL).mock(
        return_value=httpx.Response(200, json={"result": {"preview_id": "p"}})
    )

    await uploader.upload(target, user)

    site_store.upload_files.assert_not_called()
    site_store.delete_bulk.assert_not_called()


async def test_site_upload_requires_store(mock_config, target, user):
    target = target.model_copy(update={"site": SiteConfig(bucket=Path("public"))})
    uploader = PreviewUploader(mock_config)

    with pytest.raises(ConfigurationError, match="site store"):
        await uploader.upload(target, user)


# --- errors ---


async def test_remote_error_carries_status_and_messages(uploader, target, user, respx_mock):
    respx_mock.post(AUTH_URL).mock(
        return_value=httpx.Response(
            413, json={"errors": [{"code": 10027, "message": "script too large"}]}
        )
    )

    with pytest.raises(RemoteError) as exc_info:
        await uploader.upload(target, user)

    error = exc_info.value
    assert error.status == 413
    assert error.errors[0].code == 10027
    assert "Payload Too Large" in (error.guidance or "")


async def test_undecodable_response_is_decode_error(uploader, target, respx_mock):
    respx_mock.post(UNAUTH_URL).mock(return_value=httpx.Response(200, text="<html>oops</html>"))

    with pytest.raises(DecodeError) as exc_info:
        await uploader.upload(target)

    assert exc_info.value.body == "<html>oops</html>"


async def test_wrong_shape_is_decode_error(uploader, target, user, respx_mock):
    respx_mock.post(AUTH_URL).mock(return_value=httpx.Response(200, json={"id": "flat"}))

    with pytest.raises(DecodeError):
        await uploader.upload(target, user)


async def test_connection_failure_is_transport_error(uploader, target, respx_mock):
    respx_mock.post(UNAUTH_URL).mock(side_effect=httpx.ConnectError("Failed"))

    with pytest.raises(TransportError):
        await uploader.upload(target)


async def test_missing_script_is_configuration_error(uploader, target, tmp_path, respx_mock):
    target = target.model_copy(update={"main": tmp_path / "missing.js"})

    with pytest.raises(ConfigurationError, match="Could not read worker script"):
        await uploader.upload(target)

    assert not respx_mock.calls
