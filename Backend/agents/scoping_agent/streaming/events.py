"""
Local stream protocol.

Provider adapters decode their native incremental events into the closed set
of StreamEvent variants below; the state machine turns those into Frames that
are written to the client as `event:`/`data:` blocks.
"""
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from agents.scoping_agent.exceptions import ProviderError


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class ToolCallStart:
    name: str


@dataclass(frozen=True)
class ToolCallDelta:
    fragment: str


@dataclass(frozen=True)
class ToolCallEnd:
    pass


@dataclass(frozen=True)
class MessageEnd:
    pass


StreamEvent = Union[TextDelta, ToolCallStart, ToolCallDelta, ToolCallEnd, MessageEnd]


@dataclass(frozen=True)
class Frame:
    event: str
    data: Dict[str, Any]

    def encode(self) -> bytes:
        return f"event: {self.event}\ndata: {json.dumps(self.data, ensure_ascii=False)}\n\n".encode("utf-8")

    @classmethod
    def token(cls, text: str) -> "Frame":
        return cls("token", {"text": text})

    @classmethod
    def metadata(cls, payload: Dict[str, Any]) -> "Frame":
        return cls("metadata", payload)

    @classmethod
    def done(cls) -> "Frame":
        return cls("done", {})

    @classmethod
    def error(cls, message: str, retryable: bool) -> "Frame":
        return cls("error", {"message": message, "retryable": retryable})


@dataclass
class ToolCallBlock:
    name: str
    raw_text: str = ""
    input: Optional[Dict[str, Any]] = None


@dataclass
class OrchestratorResult:
    success: bool
    full_text: str = ""
    tool_call_block: Optional[ToolCallBlock] = None
    error: Optional[ProviderError] = None
    attempts: int = 1
    client_disconnected: bool = field(default=False)
