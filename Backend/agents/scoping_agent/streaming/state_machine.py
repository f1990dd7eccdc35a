from typing import List, Optional

from loguru import logger

from agents.scoping_agent.streaming.events import (
    Frame,
    MessageEnd,
    StreamEvent,
    TextDelta,
    ToolCallBlock,
    ToolCallDelta,
    ToolCallEnd,
    ToolCallStart,
)
from agents.scoping_agent.streaming.tool_call_assembler import ToolCallAssembler


class StreamStateMachine:
    """
    Maps decoded provider events to client frames for one exchange attempt.

    Holds no I/O: feed() returns the frames to write and the orchestrator
    decides where they go.
    """

    def __init__(self, tools_requested: bool, token_batch_chars: int = 50):
        self.tools_requested = tools_requested
        self.token_batch_chars = token_batch_chars
        self.assembler = ToolCallAssembler()
        self.text_buffer = ""
        self.text_parts: List[str] = []
        self.tool_call_block: Optional[ToolCallBlock] = None
        self.finished = False

    @property
    def full_text(self) -> str:
        return "".join(self.text_parts)

    def feed(self, event: StreamEvent) -> List[Frame]:
        if isinstance(event, TextDelta):
            return self._on_text(event.text)
        if isinstance(event, ToolCallStart):
            self.assembler.on_block_start(event.name)
            return []
        if isinstance(event, ToolCallDelta):
            self.assembler.on_delta(event.fragment)
            return []
        if isinstance(event, ToolCallEnd):
            return self._on_block_end()
        if isinstance(event, MessageEnd):
            return self._on_message_end()
        raise TypeError(f"Unknown stream event: {event!r}")

    def _on_text(self, text: str) -> List[Frame]:
        self.text_buffer += text
        self.text_parts.append(text)
        if len(self.text_buffer) >= self.token_batch_chars:
            return [self._flush_text()]
        return []

    def _flush_text(self) -> Frame:
        frame = Frame.token(self.text_buffer)
        self.text_buffer = ""
        return frame

    def _on_block_end(self) -> List[Frame]:
        frames = [self._flush_text()] if self.text_buffer else []

        block = self.assembler.on_block_end()
        if block is not None:
            self.tool_call_block = block
            frames.append(Frame.metadata(block.input))
        return frames

    def _on_message_end(self) -> List[Frame]:
        frames = [self._flush_text()] if self.text_buffer else []

        if self.tools_requested and self.tool_call_block is None:
            logger.warning("Expected a tool call block but none was received")

        frames.append(Frame.done())
        self.finished = True
        return frames
