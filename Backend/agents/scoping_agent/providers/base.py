from typing import AsyncIterator, Protocol

from agents.scoping_agent.schemas import ConversationRequest
from agents.scoping_agent.streaming.events import StreamEvent


class Provider(Protocol):
    """
    A text-generation backend that streams one exchange as local StreamEvents.

    Implementations raise ProviderError (carrying the HTTP-equivalent status)
    for any failure, before or during the stream.
    """

    name: str

    def stream(self, request: ConversationRequest) -> AsyncIterator[StreamEvent]:
        ...
