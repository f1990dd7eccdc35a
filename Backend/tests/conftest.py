from typing import List

import pytest
from loguru import logger

from agents.scoping_agent.context_budgeter import ContextBudgeter
from agents.scoping_agent.services.scoping_agent_service import ScopingAgentService
from agents.scoping_agent.streaming.orchestrator import StreamOrchestrator
from fakes import FakeProjectStore, RecordingSleep


@pytest.fixture
def log_messages():
    messages: List[str] = []
    handler_id = logger.add(lambda message: messages.append(message), level="DEBUG", format="{level} {message}")
    yield messages
    logger.remove(handler_id)


@pytest.fixture
def store() -> FakeProjectStore:
    return FakeProjectStore()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_service(store, recording_sleep):
    def _make(provider, **orchestrator_kwargs) -> ScopingAgentService:
        orchestrator = StreamOrchestrator(provider, sleep=recording_sleep, **orchestrator_kwargs)
        return ScopingAgentService(orchestrator, ContextBudgeter(store), store)

    return _make
