from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import StreamingResponse
from loguru import logger

from agents.scoping_agent.dependencies import RateLimiterDependency, ScopingAgentServiceDependency
from agents.scoping_agent.streaming.sinks import QueueSink
from database.enums.project import ScopeAction
from routes.schemas.request.scope import ScopeRequest
from routes.utils import SSE_HEADERS, enforce_rate_limit, require_object_id, sanitize_text, stream_frames

router = APIRouter(prefix="/scope")


@router.post("", status_code=status.HTTP_200_OK)
async def scope(
        request: ScopeRequest,
        http_request: Request,
        service: ScopingAgentServiceDependency,
        limiter: RateLimiterDependency
) -> StreamingResponse:
    """Stream a scoping Q&A turn or the final scope and cost estimate."""
    logger.info(f"scope called for project_id: {request.project_id}, action: {request.action.value}")

    project_id = require_object_id(request.project_id)
    user_input = sanitize_text(request.user_input)
    if request.action == ScopeAction.QUESTION and not user_input:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="user_input required for action: question")

    enforce_rate_limit(limiter, http_request)

    if service.project_store.get_project(project_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")

    sink = QueueSink()
    if request.action == ScopeAction.QUESTION:
        producer = service.answer_question(project_id, user_input, sink)
    else:
        producer = service.generate_estimate(project_id, sink)

    return StreamingResponse(stream_frames(sink, producer), media_type="text/event-stream", headers=SSE_HEADERS)
