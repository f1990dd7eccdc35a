from typing import Any, AsyncIterator, Dict, List, Optional

import anthropic
from anthropic import AsyncAnthropic
from loguru import logger

from agents.scoping_agent.exceptions import ProviderError
from agents.scoping_agent.schemas import ConversationRequest, ImagePart, Message, ToolDefinition
from agents.scoping_agent.streaming.events import (
    MessageEnd,
    StreamEvent,
    TextDelta,
    ToolCallDelta,
    ToolCallEnd,
    ToolCallStart,
)
from config.settings import get_settings

# Error types Anthropic sends inside an already-open (HTTP 200) stream.
STREAMED_ERROR_STATUS = {
    "overloaded_error": 529,
    "api_error": 500,
    "rate_limit_error": 429,
    "invalid_request_error": 400,
}


def decode_event(event: Any) -> List[StreamEvent]:
    """Translate one raw Messages API stream event into local stream events."""
    event_type = getattr(event, "type", None)

    if event_type == "content_block_start":
        block = event.content_block
        if block.type == "tool_use":
            return [ToolCallStart(name=block.name)]
        if block.type == "text" and getattr(block, "text", ""):
            return [TextDelta(text=block.text)]
        return []

    if event_type == "content_block_delta":
        delta = event.delta
        if delta.type == "text_delta":
            return [TextDelta(text=delta.text)]
        if delta.type == "input_json_delta":
            return [ToolCallDelta(fragment=delta.partial_json)]
        return []

    if event_type == "content_block_stop":
        return [ToolCallEnd()]

    if event_type == "message_stop":
        return [MessageEnd()]

    return []


def status_from_error(status_code: Optional[int], body: Any) -> Optional[int]:
    if status_code is not None and status_code >= 400:
        return status_code

    if isinstance(body, dict):
        error = body.get("error", body)
        if isinstance(error, dict) and error.get("type") in STREAMED_ERROR_STATUS:
            return STREAMED_ERROR_STATUS[error["type"]]
    return status_code


def to_anthropic_message(message: Message) -> Dict[str, Any]:
    if isinstance(message.content, str):
        return {"role": message.role, "content": message.content}

    content = []
    for part in message.content:
        if isinstance(part, ImagePart):
            content.append({
                "type": "image",
                "source": {"type": "base64", "media_type": part.media_type, "data": part.data},
            })
        else:
            content.append({"type": "text", "text": part.text})
    return {"role": message.role, "content": content}


def to_anthropic_tool(tool: ToolDefinition) -> Dict[str, Any]:
    return {"name": tool.name, "description": tool.description, "input_schema": tool.schema_copy()}


class AnthropicProvider:
    name = "anthropic"

    def __init__(self, client: Optional[AsyncAnthropic] = None, model: Optional[str] = None):
        self.settings = get_settings()
        self.client = client or AsyncAnthropic(
            api_key=self.settings.ANTHROPIC_API_KEY,
            max_retries=self.settings.PROVIDER_SDK_MAX_RETRIES
        )
        self.model = model or self.settings.ANTHROPIC_MODEL

    def build_params(self, request: ConversationRequest) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.settings.LLM_MAX_TOKENS,
            "system": request.system_prompt,
            "messages": [to_anthropic_message(message) for message in request.messages],
            "stream": True,
        }
        if request.tools:
            params["tools"] = [to_anthropic_tool(tool) for tool in request.tools]
        return params

    async def stream(self, request: ConversationRequest) -> AsyncIterator[StreamEvent]:
        logger.debug(f"Opening Anthropic stream with model {self.model}, {len(request.tools)} tool(s)")
        try:
            stream = await self.client.messages.create(**self.build_params(request))
            try:
                async for event in stream:
                    for decoded in decode_event(event):
                        yield decoded
            finally:
                await stream.close()
        except anthropic.APIStatusError as e:
            raise ProviderError(e.message, status_from_error(e.status_code, e.body)) from e
        except anthropic.APIConnectionError as e:
            raise ProviderError(str(e)) from e
