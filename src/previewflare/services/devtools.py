import asyncio
import json
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from loguru import logger
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, WebSocketException

from previewflare.constants import KEEP_ALIVE_INTERVAL
from previewflare.exceptions import ProtocolParseError, TransportError
from previewflare.models.devtools import (
    DevToolsEvent,
    enable_runtime,
    get_isolate_id,
    parse_envelope,
)

__all__ = [
    "DevToolsSession",
    "EventObserver",
    "SessionState",
    "SocketRequest",
    "format_event",
    "listen",
]

EventObserver = Callable[[DevToolsEvent], None]

# Id 1 is taken by the Runtime.enable handshake.
FIRST_KEEP_ALIVE_ID = 2


class SessionState(StrEnum):
    CONNECTING = "connecting"
    ACTIVE = "active"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class SocketRequest:
    """Where to open the inspector socket, with any auth or cookie headers."""

    url: str
    headers: dict[str, str] = field(default_factory=dict)


def _remote_value(arg: dict[str, Any]) -> str:
    if "value" in arg:
        value = arg["value"]
        return value if isinstance(value, str) else json.dumps(value)
    return str(arg.get("description") or arg.get("type", "undefined"))


def format_event(event: DevToolsEvent) -> str:
    """Render a runtime event as a single console line."""
    if event.method == "Runtime.consoleAPICalled":
        kind = event.params.get("type", "log")
        args = " ".join(_remote_value(arg) for arg in event.params.get("args", []))
        return f"console.{kind}: {args}"

    if event.method == "Runtime.exceptionThrown":
        details = event.params.get("exceptionDetails", {})
        exception = details.get("exception") or {}
        return f"Uncaught {exception.get('description') or details.get('text', 'exception')}"

    return f"{event.method}: {json.dumps(event.params)}"


def _log_event(event: DevToolsEvent) -> None:
    logger.info(format_event(event))


class DevToolsSession:
    """
    A live DevTools connection to a preview.

    While active, a keep-alive emitter and an event relay run concurrently.
    Outbound frames go through a queue drained by a single writer task, so only
    one task ever writes to the socket. The session ends as soon as any of them
    finishes, or when ``stop`` is called; it is never reconnected.
    """

    def __init__(
        self,
        websocket: ClientConnection,
        observer: EventObserver | None = None,
        keep_alive_interval: float = KEEP_ALIVE_INTERVAL,
    ) -> None:
        self.websocket = websocket
        self.observer = observer or _log_event
        self.keep_alive_interval = keep_alive_interval
        self.state = SessionState.CONNECTING
        self._outbound: asyncio.Queue[str] = asyncio.Queue()
        self._stopped = asyncio.Event()

    @classmethod
    async def connect(
        cls,
        request: SocketRequest,
        observer: EventObserver | None = None,
        keep_alive_interval: float = KEEP_ALIVE_INTERVAL,
    ) -> "DevToolsSession":
        """
        Open the socket and enable the runtime domain.

        Raises:
            TransportError: If the socket cannot be opened or the handshake cannot be sent.
        """
        logger.debug(f"Connecting to {request.url}")
        try:
            websocket = await connect(request.url, additional_headers=request.headers)
        except (OSError, TimeoutError, WebSocketException) as e:
            logger.error(f"Could not connect to {request.url}: {e}")
            raise TransportError(f"Could not connect to {request.url}: {e}") from e

        session = cls(websocket, observer, keep_alive_interval)
        try:
            await websocket.send(enable_runtime(1).to_frame())
        except WebSocketException as e:
            await websocket.close()
            session.state = SessionState.TERMINATED
            raise TransportError(f"DevTools handshake failed: {e}") from e

        session.state = SessionState.ACTIVE
        logger.debug("DevTools session active")
        return session

    def stop(self) -> None:
        """Ask a running session to end; safe to call from any task on the loop."""
        self._stopped.set()

    async def run(self) -> None:
        """
        Run until the socket closes, an activity fails, or ``stop`` is called.

        Raises:
            TransportError: If the session is not active, or the socket failed mid-session.
        """
        if self.state is not SessionState.ACTIVE:
            raise TransportError(f"Cannot run a session that is {self.state}")

        tasks = {
            asyncio.create_task(self._keep_alive(), name="devtools-keep-alive"),
            asyncio.create_task(self._write(), name="devtools-writer"),
            asyncio.create_task(self._relay(), name="devtools-relay"),
            asyncio.create_task(self._stopped.wait(), name="devtools-stop"),
        }
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            await self.websocket.close()
            self.state = SessionState.TERMINATED

        for task in done:
            error = task.exception()
            if error is None:
                logger.debug(f"DevTools session ended by {task.get_name()}")
                continue
            if isinstance(error, TransportError):
                raise error
            raise TransportError(f"DevTools session failed: {error}") from error

    async def _keep_alive(self) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        message_id = FIRST_KEEP_ALIVE_ID
        while True:
            await asyncio.sleep(max(0.0, next_tick - loop.time()))
            await self._outbound.put(get_isolate_id(message_id).to_frame())
            message_id += 1
            next_tick += self.keep_alive_interval

    async def _write(self) -> None:
        while True:
            frame = await self._outbound.get()
            try:
                await self.websocket.send(frame)
            except ConnectionClosedOK:
                return
            except ConnectionClosed as e:
                raise TransportError(f"DevTools connection lost while sending: {e}") from e

    async def _relay(self) -> None:
        try:
            async for frame in self.websocket:
                self._handle_frame(frame)
        except ConnectionClosed as e:
            raise TransportError(f"DevTools connection lost: {e}") from e

    def _handle_frame(self, frame: str | bytes) -> None:
        logger.debug(f"DevTools frame: {frame!r}")
        try:
            envelope = parse_envelope(frame)
        except ProtocolParseError as e:
            logger.warning(str(e))
            return

        if isinstance(envelope, DevToolsEvent):
            self.observer(envelope)


async def listen(
    request: SocketRequest,
    observer: EventObserver | None = None,
    keep_alive_interval: float = KEEP_ALIVE_INTERVAL,
) -> None:
    """Connect and relay events until the session ends."""
    session = await DevToolsSession.connect(request, observer, keep_alive_interval)
    await session.run()
