from typing import Any, AsyncIterator, Dict, List, Optional

import openai
from loguru import logger
from openai import AsyncOpenAI

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


class ChatCompletionDecoder:
    """
    Turns chat.completions stream chunks into local stream events.

    Chat completions have no explicit block boundaries, so a tool call with a
    new index closes the previous one and finish_reason closes whatever is open.
    """

    def __init__(self):
        self._open_index: Optional[int] = None

    def decode(self, chunk: Any) -> List[StreamEvent]:
        events: List[StreamEvent] = []
        if not getattr(chunk, "choices", None):
            return events

        choice = chunk.choices[0]
        delta = choice.delta

        if delta is not None:
            if delta.content:
                events.append(TextDelta(text=delta.content))

            for call in delta.tool_calls or []:
                if call.index != self._open_index:
                    if self._open_index is not None:
                        events.append(ToolCallEnd())
                    name = call.function.name if call.function and call.function.name else ""
                    events.append(ToolCallStart(name=name))
                    self._open_index = call.index
                if call.function and call.function.arguments:
                    events.append(ToolCallDelta(fragment=call.function.arguments))

        if choice.finish_reason:
            events.append(ToolCallEnd())
            self._open_index = None
            events.append(MessageEnd())

        return events


def to_openai_message(message: Message) -> Dict[str, Any]:
    if isinstance(message.content, str):
        return {"role": message.role, "content": message.content}

    content = []
    for part in message.content:
        if isinstance(part, ImagePart):
            content.append({
                "type": "image_url",
                "image_url": {"url": f"data:{part.media_type};base64,{part.data}"},
            })
        else:
            content.append({"type": "text", "text": part.text})
    return {"role": message.role, "content": content}


def to_openai_tool(tool: ToolDefinition) -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {"name": tool.name, "description": tool.description, "parameters": tool.schema_copy()},
    }


class OpenAIProvider:
    name = "openai"

    def __init__(self, client: Optional[AsyncOpenAI] = None, model: Optional[str] = None):
        self.settings = get_settings()
        self.client = client or AsyncOpenAI(
            api_key=self.settings.OPENAI_API_KEY,
            max_retries=self.settings.PROVIDER_SDK_MAX_RETRIES
        )
        self.model = model or self.settings.OPENAI_MODEL

    def build_params(self, request: ConversationRequest) -> Dict[str, Any]:
        messages = [{"role": "system", "content": request.system_prompt}]
        messages.extend(to_openai_message(message) for message in request.messages)

        params: Dict[str, Any] = {
            "model": self.model,
            "max_completion_tokens": self.settings.LLM_MAX_TOKENS,
            "messages": messages,
            "stream": True,
        }
        if request.tools:
            params["tools"] = [to_openai_tool(tool) for tool in request.tools]
        return params

    async def stream(self, request: ConversationRequest) -> AsyncIterator[StreamEvent]:
        logger.debug(f"Opening OpenAI stream with model {self.model}, {len(request.tools)} tool(s)")
        decoder = ChatCompletionDecoder()
        try:
            stream = await self.client.chat.completions.create(**self.build_params(request))
            try:
                async for chunk in stream:
                    for decoded in decoder.decode(chunk):
                        yield decoded
            finally:
                await stream.close()
        except openai.APIStatusError as e:
            raise ProviderError(e.message, e.status_code) from e
        except openai.APIConnectionError as e:
            raise ProviderError(str(e)) from e
