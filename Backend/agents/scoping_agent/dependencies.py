from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from agents.scoping_agent.context_budgeter import ContextBudgeter
from agents.scoping_agent.providers.anthropic_provider import AnthropicProvider
from agents.scoping_agent.providers.base import Provider
from agents.scoping_agent.providers.openai_provider import OpenAIProvider
from agents.scoping_agent.services.scoping_agent_service import ScopingAgentService
from agents.scoping_agent.streaming.orchestrator import StreamOrchestrator
from config.settings import get_settings
from database.history_store import MongoProjectStore
from database.mongodb import mongodb, MongoDB
from security.rate_limiter import RateLimiter, rate_limiter


# =============================================================================
# DATABASE DEPENDENCIES
# =============================================================================

def get_mongodb() -> MongoDB:
    return mongodb


def get_project_store(mongodb_instance: Annotated[MongoDB, Depends(get_mongodb)]) -> MongoProjectStore:
    return MongoProjectStore(mongodb_instance)


# =============================================================================
# SECURITY DEPENDENCIES
# =============================================================================

def get_rate_limiter() -> RateLimiter:
    return rate_limiter


# =============================================================================
# AGENT DEPENDENCIES
# =============================================================================

@lru_cache
def get_provider() -> Provider:
    """Provide the configured LLM provider. Cached so the SDK client and its connection pool are reused."""
    settings = get_settings()
    if settings.LLM_PROVIDER == "openai":
        return OpenAIProvider()
    if settings.LLM_PROVIDER == "anthropic":
        return AnthropicProvider()
    raise ValueError(f"Unsupported LLM_PROVIDER: {settings.LLM_PROVIDER}")


def get_stream_orchestrator(provider: Annotated[Provider, Depends(get_provider)]) -> StreamOrchestrator:
    return StreamOrchestrator(provider)


# =============================================================================
# SERVICE DEPENDENCIES
# =============================================================================

def get_scoping_agent_service(
        orchestrator: Annotated[StreamOrchestrator, Depends(get_stream_orchestrator)],
        project_store: Annotated[MongoProjectStore, Depends(get_project_store)]) -> ScopingAgentService:
    """Provide a configured ScopingAgentService instance."""
    return ScopingAgentService(orchestrator, ContextBudgeter(project_store), project_store)


# =============================================================================
# TYPE ALIASES FOR DEPENDENCY INJECTION
# =============================================================================

ScopingAgentServiceDependency = Annotated[ScopingAgentService, Depends(get_scoping_agent_service)]

RateLimiterDependency = Annotated[RateLimiter, Depends(get_rate_limiter)]
