import asyncio

import pytest
from pydantic import SecretStr

from previewflare.models.config import Config
from previewflare.models.target import GlobalUser, Target


@pytest.fixture
def mock_config():
    """Fixture that returns a Config object with dummy values and no .env lookup."""
    return Config(
        _env_file=None,  # type: ignore[call-arg]
        api_token=None,
        email=None,
        api_key=None,
        account_id="",
    )


@pytest.fixture
def user():
    return GlobalUser(api_token=SecretStr("test_api_token"))


@pytest.fixture
def script_path(tmp_path):
    path = tmp_path / "index.js"
    path.write_text("addEventListener('fetch', e => e.respondWith(new Response('hi')))")
    return path


@pytest.fixture
def target(script_path):
    return Target(name="my-worker", account_id="test-account", main=script_path)


class FakeWebSocket:
    """In-memory stand-in for a websockets ClientConnection."""

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.closed = False
        self._inbound: asyncio.Queue[str | bytes | BaseException | None] = asyncio.Queue()

    async def send(self, message: str) -> None:
        self.sent.append(message)

    def feed(self, frame: str | bytes) -> None:
        self._inbound.put_nowait(frame)

    def fail(self, error: BaseException) -> None:
        self._inbound.put_nowait(error)

    def finish(self) -> None:
        self._inbound.put_nowait(None)

    async def close(self) -> None:
        self.closed = True
        self._inbound.put_nowait(None)

    def __aiter__(self) -> "FakeWebSocket":
        return self

    async def __anext__(self) -> str | bytes:
        item = await self._inbound.get()
        if item is None:
            self.closed = True
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item


@pytest.fixture
def fake_websocket():
    return FakeWebSocket()
