import json
from typing import Optional

from loguru import logger

from agents.scoping_agent.exceptions import StreamProtocolError
from agents.scoping_agent.streaming.events import ToolCallBlock

RAW_PREVIEW_CHARS = 200


class ToolCallAssembler:
    """Accumulates streamed JSON fragments for the single open tool-call block."""

    def __init__(self):
        self._block: Optional[ToolCallBlock] = None
        self._fragments: list[str] = []

    @property
    def is_open(self) -> bool:
        return self._block is not None

    def on_block_start(self, name: str) -> None:
        if self._block is not None:
            raise StreamProtocolError(
                f"Tool call '{name}' started while '{self._block.name}' is still open"
            )
        self._block = ToolCallBlock(name=name)
        self._fragments = []

    def on_delta(self, fragment: str) -> None:
        if self._block is None:
            raise StreamProtocolError("Tool call fragment received with no open block")
        self._fragments.append(fragment)

    def on_block_end(self) -> Optional[ToolCallBlock]:
        """
        Close the open block and parse its accumulated input.

        Returns:
            The completed ToolCallBlock, or None when no block was open or its input did not parse
        """
        if self._block is None:
            return None

        block, self._block = self._block, None
        block.raw_text = "".join(self._fragments)
        self._fragments = []

        try:
            parsed = json.loads(block.raw_text)
        except json.JSONDecodeError as e:
            logger.error(
                f"Failed to parse input for tool '{block.name}': {e}. Raw input: {block.raw_text[:RAW_PREVIEW_CHARS]!r}"
            )
            return None

        if not isinstance(parsed, dict):
            logger.error(
                f"Tool '{block.name}' input is not an object. Raw input: {block.raw_text[:RAW_PREVIEW_CHARS]!r}"
            )
            return None

        block.input = parsed
        return block
