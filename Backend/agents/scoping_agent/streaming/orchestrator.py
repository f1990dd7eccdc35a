import asyncio
from typing import Awaitable, Callable, List, Optional

from loguru import logger

from agents.scoping_agent.exceptions import ProviderError, StreamProtocolError
from agents.scoping_agent.providers.base import Provider
from agents.scoping_agent.schemas import ConversationRequest
from agents.scoping_agent.streaming.events import Frame, OrchestratorResult
from agents.scoping_agent.streaming.sinks import Sink
from agents.scoping_agent.streaming.state_machine import StreamStateMachine
from config.settings import get_settings

DEFAULT_ERROR_MESSAGE = "An error occurred while processing your request"


class SinkWriter:
    """Writes frames to a sink, going quiet after the first failed write."""

    def __init__(self, sink: Sink):
        self.sink = sink
        self.disconnected = False

    def write(self, frame: Frame) -> None:
        if self.disconnected:
            return
        try:
            self.sink.write(frame.encode())
        except Exception as e:
            self.disconnected = True
            logger.info(f"Client disconnected, dropping further frames: {e}")


class StreamOrchestrator:
    """
    Drives one conversational exchange with the provider and relays it as frames.

    Transient provider failures (529/5xx) restart the whole exchange up to
    max_retries times with exponential backoff. Frames already written for a
    failed attempt stay written unless buffer_until_done is set, in which case
    an attempt's frames reach the sink only once it completes.
    """

    def __init__(
            self,
            provider: Provider,
            max_retries: Optional[int] = None,
            initial_retry_delay: Optional[float] = None,
            token_batch_chars: Optional[int] = None,
            buffer_until_done: Optional[bool] = None,
            sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        settings = get_settings()
        self.provider = provider
        self.max_retries = settings.STREAM_MAX_RETRIES if max_retries is None else max_retries
        self.initial_retry_delay = (
            settings.STREAM_INITIAL_RETRY_DELAY_SECONDS if initial_retry_delay is None else initial_retry_delay
        )
        self.token_batch_chars = settings.STREAM_TOKEN_BATCH_CHARS if token_batch_chars is None else token_batch_chars
        self.buffer_until_done = (
            settings.STREAM_BUFFER_UNTIL_DONE if buffer_until_done is None else buffer_until_done
        )
        self.sleep = sleep

    async def run(self, request: ConversationRequest, sink: Sink, attempt: int = 0) -> OrchestratorResult:
        """
        Stream a request to the provider and relay the output to the sink.

        Args:
            request: System prompt, messages and tools for this exchange
            sink: Client connection receiving encoded frames
            attempt: Starting attempt number, counted against max_retries

        Returns:
            OrchestratorResult with the parsed tool call block (if any) and the full streamed text
        """
        writer = SinkWriter(sink)
        first_attempt = attempt

        while True:
            result = await self._run_attempt(request, writer)
            result.attempts = attempt - first_attempt + 1
            result.client_disconnected = writer.disconnected
            if result.success:
                return result

            error = result.error
            if error.retryable and attempt < self.max_retries:
                delay = self.initial_retry_delay * (2 ** attempt)
                logger.warning(
                    f"{self.provider.name} error (status {error.status_code}), retrying after {delay:.1f}s "
                    f"(attempt {attempt + 1}/{self.max_retries})"
                )
                await self.sleep(delay)
                attempt += 1
                continue

            logger.error(
                f"{self.provider.name} exchange failed after {result.attempts} attempt(s): "
                f"{error.message} (status {error.status_code}, retryable={error.retryable})"
            )
            writer.write(Frame.error(error.message or DEFAULT_ERROR_MESSAGE, error.retryable))
            result.client_disconnected = writer.disconnected
            return result

    async def _run_attempt(self, request: ConversationRequest, writer: SinkWriter) -> OrchestratorResult:
        machine = StreamStateMachine(tools_requested=bool(request.tools), token_batch_chars=self.token_batch_chars)
        pending: List[Frame] = []

        def emit(frames: List[Frame]) -> None:
            if self.buffer_until_done:
                pending.extend(frames)
            else:
                for frame in frames:
                    writer.write(frame)

        try:
            async for event in self.provider.stream(request):
                if machine.finished:
                    continue
                emit(machine.feed(event))

            if not machine.finished:
                raise ProviderError("Provider stream ended before the message completed")

        except ProviderError as e:
            return self._failed(machine, e, pending)
        except StreamProtocolError as e:
            return self._failed(machine, ProviderError(str(e)), pending)
        except Exception as e:
            logger.exception(f"Unexpected error while streaming from {self.provider.name}")
            return self._failed(machine, ProviderError(str(e) or DEFAULT_ERROR_MESSAGE), pending)

        for frame in pending:
            writer.write(frame)

        return OrchestratorResult(
            success=True,
            full_text=machine.full_text,
            tool_call_block=machine.tool_call_block,
        )

    @staticmethod
    def _failed(machine: StreamStateMachine, error: ProviderError, pending: List[Frame]) -> OrchestratorResult:
        if pending:
            logger.debug(f"Discarding {len(pending)} buffered frame(s) from failed attempt")
        return OrchestratorResult(success=False, full_text=machine.full_text, error=error)
