"""DevTools protocol frames exchanged with the preview inspector."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from previewflare.exceptions import ProtocolParseError

__all__ = [
    "DevToolsCommand",
    "DevToolsEnvelope",
    "DevToolsEvent",
    "DevToolsResponse",
    "enable_runtime",
    "get_isolate_id",
    "parse_envelope",
]


class DevToolsCommand(BaseModel):
    """An outbound command frame."""

    method: str
    id: int
    params: dict[str, Any] | None = None

    def to_frame(self) -> str:
        return self.model_dump_json(exclude_none=True)


class DevToolsEvent(BaseModel):
    """A notification pushed by the runtime (it carries no command id)."""

    model_config = ConfigDict(extra="forbid")

    method: str
    params: dict[str, Any] = Field(default_factory=dict)

    @property
    def domain(self) -> str:
        return self.method.partition(".")[0]

    @property
    def name(self) -> str:
        return self.method.partition(".")[2]


class DevToolsResponse(BaseModel):
    """The reply to a command we sent."""

    id: int
    result: dict[str, Any] | None = None
    error: dict[str, Any] | None = None


DevToolsEnvelope = DevToolsEvent | DevToolsResponse

_envelope_adapter: TypeAdapter[DevToolsEnvelope] = TypeAdapter(DevToolsEnvelope)


def parse_envelope(frame: str | bytes) -> DevToolsEnvelope:
    """
    Parse an inbound frame.

    Raises:
        ProtocolParseError: If the frame is not JSON or matches no known envelope.
    """
    try:
        return _envelope_adapter.validate_json(frame)
    except ValidationError as e:
        raise ProtocolParseError(f"This event could not be parsed: {e}", frame) from e


def enable_runtime(message_id: int) -> DevToolsCommand:
    return DevToolsCommand(method="Runtime.enable", id=message_id)


def get_isolate_id(message_id: int) -> DevToolsCommand:
    return DevToolsCommand(method="Runtime.getIsolateId", id=message_id)
