import json
from dataclasses import replace
from typing import Any, Dict, List, Optional

from loguru import logger

from agents.scoping_agent.context_budgeter import ContextBudgeter
from agents.scoping_agent.exceptions import ContextNotFound, ValidationFailed
from agents.scoping_agent.prompt_templates.v1.scoping_agent import (
    ADDITIONAL_PHOTO_USER_TEXT,
    ESCAPE_HATCH_NOTE,
    ESTIMATE_USER_TEXT,
    INITIAL_ANALYSIS_SYSTEM_PROMPT,
    INITIAL_ANALYSIS_USER_TEXT,
    build_additional_photo_prompt,
    build_correction_user_text,
    build_cross_project_prompt,
    build_estimate_prompt,
    build_scoping_prompt,
)
from agents.scoping_agent.schemas import ConversationRequest, ImagePart, Message, TextPart
from agents.scoping_agent.streaming.events import Frame, OrchestratorResult, ToolCallBlock
from agents.scoping_agent.streaming.orchestrator import SinkWriter, StreamOrchestrator
from agents.scoping_agent.streaming.sinks import Sink
from agents.scoping_agent.tools import GENERATE_ESTIMATE_TOOL, UPDATE_UNDERSTANDING_TOOL
from agents.scoping_agent.validators import (
    validate_cost_estimate,
    validate_cross_project_analysis,
    validate_understanding_update,
)
from config.settings import get_settings
from database.enums.project import AnalysisType, InteractionType, ProjectStatus
from database.history_store import ProjectStore

MISSING_ESTIMATE_MESSAGE = "Failed to generate structured estimate. Please try again."
INVALID_ESTIMATE_MESSAGE = "Generated estimate failed validation. Please try again."
PORTFOLIO_USER_TEXT = "Analyze these projects and return the sequencing JSON."


class ScopingAgentService:
    """Runs scoping exchanges end to end: context, streaming, validation and persistence."""

    def __init__(self, orchestrator: StreamOrchestrator, context_budgeter: ContextBudgeter, project_store: ProjectStore):
        self.settings = get_settings()
        self.orchestrator = orchestrator
        self.context_budgeter = context_budgeter
        self.project_store = project_store

    def _should_suggest_estimate(self, project: Dict[str, Any]) -> bool:
        interaction_count = project.get("interaction_count") or 0
        score = project.get("understanding_score") or 0
        return (
                interaction_count >= self.settings.ESCAPE_HATCH_INTERACTIONS
                and self.settings.ESCAPE_HATCH_SCORE_MIN <= score <= self.settings.ESCAPE_HATCH_SCORE_MAX
        )

    def _apply_understanding_update(
            self,
            project_id: str,
            project: Dict[str, Any],
            block: Optional[ToolCallBlock]
    ) -> bool:
        if block is None or block.input is None:
            return False

        validation = validate_understanding_update(block.input)
        if not validation.valid:
            logger.warning(f"Invalid understanding update for project {project_id}: {validation.error}")
            return False

        self.project_store.update_project(project_id, {
            "understanding_score": block.input["understanding"],
            "understanding_dimensions": block.input["dimensions_resolved"],
            "interaction_count": (project.get("interaction_count") or 0) + 1,
        })
        logger.info(f"Project {project_id} understanding updated to {block.input['understanding']}%")
        return True

    async def answer_question(self, project_id: str, user_input: str, sink: Sink) -> OrchestratorResult:
        """
        Stream the next scoping Q&A turn for a project.

        Args:
            project_id: Project being scoped
            user_input: Sanitized homeowner message
            sink: Client connection receiving frames

        Returns:
            OrchestratorResult from the exchange
        """
        logger.info(f"Scoping question for project {project_id}")

        context = self.context_budgeter.build(project_id)
        project = self.project_store.get_project(project_id) or {}

        suggest_estimate = self._should_suggest_estimate(project)
        if suggest_estimate:
            logger.debug(f"Escape hatch active for project {project_id}")
            context = context.model_copy(update={"interaction_log": context.interaction_log + ESCAPE_HATCH_NOTE})

        request = ConversationRequest(
            system_prompt=build_scoping_prompt(context),
            messages=(Message(role="user", content=user_input),),
            tools=(UPDATE_UNDERSTANDING_TOOL,),
        )
        result = await self.orchestrator.run(request, sink)
        if not result.success:
            return result

        metadata = result.tool_call_block.input if result.tool_call_block else {}
        self.project_store.record_interaction(
            project_id, InteractionType.QUESTION.value, user_input, result.full_text, metadata or {}
        )
        self._apply_understanding_update(project_id, project, result.tool_call_block)

        if suggest_estimate:
            SinkWriter(sink).write(Frame.metadata({"suggest_estimate": True}))

        return result

    async def generate_estimate(self, project_id: str, sink: Sink) -> OrchestratorResult:
        """
        Stream the narrative scope and collect the structured cost estimate.

        The exchange is repeated once if the model answers without calling
        generate_estimate. A missing or invalid estimate ends the stream with a
        retryable error frame and nothing is persisted.
        """
        logger.info(f"Generating estimate for project {project_id}")

        context = self.context_budgeter.build(project_id)
        context = context.model_copy(update={"zip_code": self.project_store.get_user_zip_code(project_id)})

        request = ConversationRequest(
            system_prompt=build_estimate_prompt(context),
            messages=(Message(role="user", content=ESTIMATE_USER_TEXT),),
            tools=(GENERATE_ESTIMATE_TOOL,),
        )

        result = await self.orchestrator.run(request, sink)
        if not result.success:
            return result

        if result.tool_call_block is None:
            logger.error(f"No estimate tool call received for project {project_id}, retrying once")
            narrative = result.full_text
            result = await self.orchestrator.run(request, sink)
            if not result.success:
                return result
            if not result.full_text:
                result = replace(result, full_text=narrative)

        writer = SinkWriter(sink)
        if result.tool_call_block is None:
            logger.error(f"Estimate tool call missing after retry for project {project_id}")
            writer.write(Frame.error(MISSING_ESTIMATE_MESSAGE, True))
            return replace(result, success=False)

        estimate = result.tool_call_block.input
        validation = validate_cost_estimate(estimate)
        if not validation.valid:
            logger.error(f"Invalid cost estimate for project {project_id}: {validation.error}")
            writer.write(Frame.error(INVALID_ESTIMATE_MESSAGE, True))
            return replace(result, success=False)

        self.project_store.update_project(project_id, {
            "scope_summary": result.full_text,
            "cost_estimate": estimate,
            "status": ProjectStatus.ESTIMATE_READY.value,
        })
        self.project_store.record_interaction(
            project_id, InteractionType.ESTIMATE_REQUEST.value, None, result.full_text, estimate
        )
        logger.info(f"Estimate stored for project {project_id}")
        return result

    async def analyze_photo(
            self,
            analysis_type: AnalysisType,
            image: ImagePart,
            sink: Sink,
            project_id: Optional[str] = None,
            correction_text: Optional[str] = None
    ) -> OrchestratorResult:
        """
        Stream a photo analysis.

        Args:
            analysis_type: initial read, additional photo for a project, or a corrected initial read
            image: The photo to analyze
            sink: Client connection receiving frames
            project_id: Required for additional photos
            correction_text: The homeowner's correction for a corrected read

        Returns:
            OrchestratorResult from the exchange
        """
        logger.info(f"Photo analysis ({analysis_type.value}) for project {project_id}")

        if analysis_type == AnalysisType.ADDITIONAL:
            if not project_id:
                raise ValueError("project_id is required for additional photo analysis")

            context = self.context_budgeter.build(project_id)
            project = self.project_store.get_project(project_id) or {}
            request = ConversationRequest(
                system_prompt=build_additional_photo_prompt(context),
                messages=(Message(role="user", content=(image, TextPart(text=ADDITIONAL_PHOTO_USER_TEXT))),),
                tools=(UPDATE_UNDERSTANDING_TOOL,),
            )
            result = await self.orchestrator.run(request, sink)
            if result.success:
                metadata = result.tool_call_block.input if result.tool_call_block else {}
                self.project_store.record_interaction(
                    project_id, InteractionType.PHOTO_ANALYSIS.value, None, result.full_text, metadata or {}
                )
                self._apply_understanding_update(project_id, project, result.tool_call_block)
            return result

        if analysis_type == AnalysisType.CORRECTION:
            user_text = build_correction_user_text(correction_text or "")
        else:
            user_text = INITIAL_ANALYSIS_USER_TEXT

        request = ConversationRequest(
            system_prompt=INITIAL_ANALYSIS_SYSTEM_PROMPT,
            messages=(Message(role="user", content=(image, TextPart(text=user_text))),),
        )
        return await self.orchestrator.run(request, sink)

    async def analyze_portfolio(self, project_ids: List[str], zip_code: Optional[str], sink: Sink) -> Dict[str, Any]:
        """
        Sequence and bundle a homeowner's scoped projects.

        Returns:
            The validated cross-project analysis

        Raises:
            ContextNotFound: If any project does not exist
            ValidationFailed: If the model's analysis is not valid JSON or fails validation
        """
        logger.info(f"Cross-project analysis for {len(project_ids)} projects")

        projects = []
        for project_id in project_ids:
            project = self.project_store.get_project(project_id)
            if not project:
                raise ContextNotFound(project_id)
            projects.append({
                "project_id": project_id,
                "title": project.get("title"),
                "scope_summary": project.get("scope_summary"),
                "cost_estimate": project.get("cost_estimate"),
                "understanding_score": project.get("understanding_score") or 0,
            })

        request = ConversationRequest(
            system_prompt=build_cross_project_prompt(projects, zip_code),
            messages=(Message(role="user", content=PORTFOLIO_USER_TEXT),),
        )
        result = await self.orchestrator.run(request, sink)
        if not result.success:
            raise ValidationFailed(f"Cross-project analysis did not complete: {result.error}")

        try:
            analysis = json.loads(_strip_code_fence(result.full_text))
        except json.JSONDecodeError as e:
            logger.error(f"Cross-project analysis is not valid JSON: {e}")
            raise ValidationFailed("Cross-project analysis is not valid JSON") from e

        validate_cross_project_analysis(analysis, project_ids).raise_for_invalid()
        return analysis


def _strip_code_fence(text: str) -> str:
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = stripped.split("\n", 1)[1] if "\n" in stripped else ""
        if stripped.rstrip().endswith("```"):
            stripped = stripped.rstrip()[:-3]
    return stripped.strip()
