from types import SimpleNamespace

import anthropic
import httpx
import openai
import pytest

from agents.scoping_agent.exceptions import ProviderError
from agents.scoping_agent.providers.anthropic_provider import (
    AnthropicProvider,
    decode_event,
    status_from_error,
    to_anthropic_message,
)
from agents.scoping_agent.providers.openai_provider import ChatCompletionDecoder, OpenAIProvider, to_openai_tool
from agents.scoping_agent.schemas import ConversationRequest, ImagePart, Message, TextPart
from agents.scoping_agent.streaming.events import MessageEnd, TextDelta, ToolCallDelta, ToolCallEnd, ToolCallStart
from agents.scoping_agent.tools import GENERATE_ESTIMATE_TOOL
from fakes import run

REQUEST = ConversationRequest(
    system_prompt="Scope the project.",
    messages=(Message(role="user", content="How much for new counters?"),),
    tools=(GENERATE_ESTIMATE_TOOL,),
)


class FakeStream:
    def __init__(self, items, error=None):
        self.items = items
        self.error = error
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for item in self.items:
            yield item
        if self.error is not None:
            raise self.error

    async def close(self):
        self.closed = True


class FakeCreate:
    def __init__(self, stream=None, error=None):
        self.stream = stream
        self.error = error
        self.params = None

    async def __call__(self, **params):
        self.params = params
        if self.error is not None:
            raise self.error
        return self.stream


def collect(provider):
    async def _collect():
        return [event async for event in provider.stream(REQUEST)]

    return run(_collect())


def http_response(status_code: int) -> httpx.Response:
    return httpx.Response(status_code, request=httpx.Request("POST", "https://api.example.com/v1/messages"))


# Anthropic

def anthropic_event(event_type, **fields):
    return SimpleNamespace(type=event_type, **fields)


def test_decode_text_and_tool_events():
    events = [
        anthropic_event("message_start", message=None),
        anthropic_event("content_block_start", content_block=SimpleNamespace(type="text", text="")),
        anthropic_event("content_block_delta", delta=SimpleNamespace(type="text_delta", text="Hi")),
        anthropic_event("content_block_stop"),
        anthropic_event("content_block_start", content_block=SimpleNamespace(type="tool_use", name="generate_estimate")),
        anthropic_event("content_block_delta", delta=SimpleNamespace(type="input_json_delta", partial_json='{"a"')),
        anthropic_event("content_block_stop"),
        anthropic_event("message_delta", delta=SimpleNamespace(stop_reason="tool_use")),
        anthropic_event("message_stop"),
    ]

    decoded = [item for event in events for item in decode_event(event)]

    assert decoded == [
        TextDelta("Hi"),
        ToolCallEnd(),
        ToolCallStart("generate_estimate"),
        ToolCallDelta('{"a"'),
        ToolCallEnd(),
        MessageEnd(),
    ]


@pytest.mark.parametrize("status_code, body, expected", [
    (529, None, 529),
    (400, {"type": "error", "error": {"type": "invalid_request_error"}}, 400),
    (None, {"type": "error", "error": {"type": "overloaded_error"}}, 529),
    (200, {"error": {"type": "api_error"}}, 500),
    (None, {"type": "error", "error": {"type": "something_new"}}, None),
    (None, "not a dict", None),
])
def test_status_from_error(status_code, body, expected):
    assert status_from_error(status_code, body) == expected


def test_to_anthropic_message_with_image():
    message = Message(role="user", content=(ImagePart(media_type="image/png", data="QUJD"), TextPart(text="What is this?")))

    assert to_anthropic_message(message) == {
        "role": "user",
        "content": [
            {"type": "image", "source": {"type": "base64", "media_type": "image/png", "data": "QUJD"}},
            {"type": "text", "text": "What is this?"},
        ],
    }


def test_anthropic_build_params():
    provider = AnthropicProvider(client=SimpleNamespace(), model="test-model")

    params = provider.build_params(REQUEST)

    assert params["model"] == "test-model"
    assert params["system"] == "Scope the project."
    assert params["stream"] is True
    assert params["messages"] == [{"role": "user", "content": "How much for new counters?"}]
    assert params["tools"][0]["name"] == "generate_estimate"
    assert params["tools"][0]["input_schema"] == GENERATE_ESTIMATE_TOOL.input_schema


def test_anthropic_build_params_without_tools():
    provider = AnthropicProvider(client=SimpleNamespace(), model="test-model")

    assert "tools" not in provider.build_params(REQUEST.model_copy(update={"tools": ()}))


def test_anthropic_stream_decodes_and_closes():
    stream = FakeStream([
        anthropic_event("content_block_delta", delta=SimpleNamespace(type="text_delta", text="Hello")),
        anthropic_event("message_stop"),
    ])
    client = SimpleNamespace(messages=SimpleNamespace(create=FakeCreate(stream=stream)))

    events = collect(AnthropicProvider(client=client, model="test-model"))

    assert events == [TextDelta("Hello"), MessageEnd()]
    assert stream.closed


def test_anthropic_status_error_maps_to_provider_error():
    error = anthropic.APIStatusError("Overloaded", response=http_response(529), body=None)
    client = SimpleNamespace(messages=SimpleNamespace(create=FakeCreate(error=error)))

    with pytest.raises(ProviderError) as exc_info:
        collect(AnthropicProvider(client=client, model="test-model"))

    assert exc_info.value.status_code == 529
    assert exc_info.value.retryable


def test_anthropic_streamed_error_maps_to_status():
    streamed = anthropic.APIStatusError(
        "Overloaded",
        response=http_response(200),
        body={"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}},
    )
    stream = FakeStream(
        [anthropic_event("content_block_delta", delta=SimpleNamespace(type="text_delta", text="Hel"))],
        error=streamed,
    )
    client = SimpleNamespace(messages=SimpleNamespace(create=FakeCreate(stream=stream)))

    with pytest.raises(ProviderError) as exc_info:
        collect(AnthropicProvider(client=client, model="test-model"))

    assert exc_info.value.status_code == 529
    assert stream.closed


def test_anthropic_connection_error_is_fatal():
    error = anthropic.APIConnectionError(request=httpx.Request("POST", "https://api.example.com/v1/messages"))
    client = SimpleNamespace(messages=SimpleNamespace(create=FakeCreate(error=error)))

    with pytest.raises(ProviderError) as exc_info:
        collect(AnthropicProvider(client=client, model="test-model"))

    assert exc_info.value.status_code is None
    assert not exc_info.value.retryable


# OpenAI

def chunk(content=None, tool_calls=None, finish_reason=None):
    delta = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta, finish_reason=finish_reason)])


def tool_call(index, name=None, arguments=None):
    return SimpleNamespace(index=index, function=SimpleNamespace(name=name, arguments=arguments))


def test_chat_completion_decoder():
    decoder = ChatCompletionDecoder()
    chunks = [
        chunk(content="Sure"),
        chunk(tool_calls=[tool_call(0, name="generate_estimate", arguments="")]),
        chunk(tool_calls=[tool_call(0, arguments='{"total_low"')]),
        chunk(tool_calls=[tool_call(0, arguments=": 1}")]),
        chunk(finish_reason="tool_calls"),
    ]

    decoded = [event for item in chunks for event in decoder.decode(item)]

    assert decoded == [
        TextDelta("Sure"),
        ToolCallStart("generate_estimate"),
        ToolCallDelta('{"total_low"'),
        ToolCallDelta(": 1}"),
        ToolCallEnd(),
        MessageEnd(),
    ]


def test_chat_completion_decoder_closes_previous_tool_on_new_index():
    decoder = ChatCompletionDecoder()

    decoder.decode(chunk(tool_calls=[tool_call(0, name="a", arguments="{}")]))
    events = decoder.decode(chunk(tool_calls=[tool_call(1, name="b", arguments="{}")]))

    assert events == [ToolCallEnd(), ToolCallStart("b"), ToolCallDelta("{}")]


def test_chat_completion_decoder_ignores_empty_chunks():
    assert ChatCompletionDecoder().decode(SimpleNamespace(choices=[])) == []


def test_to_openai_tool():
    tool = to_openai_tool(GENERATE_ESTIMATE_TOOL)

    assert tool["type"] == "function"
    assert tool["function"]["name"] == "generate_estimate"
    assert tool["function"]["parameters"] == GENERATE_ESTIMATE_TOOL.input_schema


def test_openai_build_params_puts_system_first():
    provider = OpenAIProvider(client=SimpleNamespace(), model="test-model")

    params = provider.build_params(REQUEST)

    assert params["messages"][0] == {"role": "system", "content": "Scope the project."}
    assert params["messages"][1] == {"role": "user", "content": "How much for new counters?"}


def test_openai_stream():
    stream = FakeStream([chunk(content="Hi"), chunk(finish_reason="stop")])
    client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=FakeCreate(stream=stream))))

    events = collect(OpenAIProvider(client=client, model="test-model"))

    assert events == [TextDelta("Hi"), ToolCallEnd(), MessageEnd()]
    assert stream.closed


def test_openai_status_error_maps_to_provider_error():
    error = openai.APIStatusError("Server error", response=http_response(503), body=None)
    client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=FakeCreate(error=error))))

    with pytest.raises(ProviderError) as exc_info:
        collect(OpenAIProvider(client=client, model="test-model"))

    assert exc_info.value.status_code == 503
    assert exc_info.value.retryable
