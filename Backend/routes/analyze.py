from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import StreamingResponse
from loguru import logger

from agents.scoping_agent.dependencies import RateLimiterDependency, ScopingAgentServiceDependency
from agents.scoping_agent.schemas import ImagePart
from agents.scoping_agent.streaming.sinks import QueueSink
from database.enums.project import AnalysisType
from routes.schemas.request.scope import AnalyzeRequest
from routes.utils import SSE_HEADERS, enforce_rate_limit, require_object_id, sanitize_text, stream_frames

router = APIRouter(prefix="/analyze")


@router.post("", status_code=status.HTTP_200_OK)
async def analyze(
        request: AnalyzeRequest,
        http_request: Request,
        service: ScopingAgentServiceDependency,
        limiter: RateLimiterDependency
) -> StreamingResponse:
    """Stream an initial, additional or corrected photo analysis."""
    logger.info(f"analyze called with type: {request.type.value}, project_id: {request.project_id}")

    if request.type != AnalysisType.INITIAL and not request.project_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"project_id required for type: {request.type.value}"
        )
    project_id = require_object_id(request.project_id) if request.project_id else None

    enforce_rate_limit(limiter, http_request)

    if request.type == AnalysisType.ADDITIONAL and service.project_store.get_project(project_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")

    image = ImagePart(media_type=request.image_mime_type or "image/jpeg", data=request.image_base64)
    sink = QueueSink()
    producer = service.analyze_photo(
        analysis_type=request.type,
        image=image,
        sink=sink,
        project_id=project_id,
        correction_text=sanitize_text(request.correction_text)
    )

    return StreamingResponse(stream_frames(sink, producer), media_type="text/event-stream", headers=SSE_HEADERS)
