from typing import Any, Dict, List, Optional

from loguru import logger

from agents.scoping_agent.exceptions import ContextNotFound
from agents.scoping_agent.schemas import ContextBundle
from agents.scoping_agent.tools import UNDERSTANDING_DIMENSIONS
from config.settings import get_settings
from database.history_store import HistoryStore

SUMMARY_HEADER = "Previous interactions (summarized):"
TIER_SEPARATOR = "\n\n---\n\n"


class ContextBudgeter:
    """Builds the rolling context for a project from its persisted history."""

    def __init__(
            self,
            history_store: HistoryStore,
            full_fidelity_interactions: Optional[int] = None,
            summary_chars: Optional[int] = None,
            token_warning_threshold: Optional[int] = None
    ):
        settings = get_settings()
        self.history_store = history_store
        self.full_fidelity_interactions = (
            settings.CONTEXT_FULL_FIDELITY_INTERACTIONS if full_fidelity_interactions is None else full_fidelity_interactions
        )
        self.summary_chars = settings.CONTEXT_SUMMARY_CHARS if summary_chars is None else summary_chars
        self.token_warning_threshold = (
            settings.CONTEXT_TOKEN_WARNING_THRESHOLD if token_warning_threshold is None else token_warning_threshold
        )

    def build(self, project_id: str) -> ContextBundle:
        """
        Build a fresh context bundle for a project.

        Args:
            project_id: Project ID whose history is summarized

        Returns:
            ContextBundle with photo analyses, a tiered interaction log and dimension summaries

        Raises:
            ContextNotFound: If the project does not exist
        """
        project = self.history_store.get_project(project_id)
        if not project:
            raise ContextNotFound(project_id)

        photos = self.history_store.list_photos(project_id)
        interactions = self.history_store.list_interactions(project_id)

        stored_dimensions = project.get("understanding_dimensions") or {}
        dimensions = {dimension: bool(stored_dimensions.get(dimension)) for dimension in UNDERSTANDING_DIMENSIONS}
        resolved = [name.replace("_", " ") for name, value in dimensions.items() if value]
        unresolved = [name.replace("_", " ") for name, value in dimensions.items() if not value]

        bundle = ContextBundle(
            project_title=project.get("title") or "Untitled project",
            budget_approach=project.get("budget_approach") or "not set",
            budget_target=project.get("budget_target") or None,
            understanding_score=project.get("understanding_score") or 0,
            dimensions_resolved=dimensions,
            photo_analyses=self._render_photo_analyses(photos),
            interaction_log=self._render_interaction_log(interactions),
            resolved_dimensions_summary=", ".join(resolved) if resolved else "none yet",
            unresolved_dimensions=", ".join(unresolved) if unresolved else "none",
        )

        token_count = bundle.estimated_token_count
        logger.info(f"Built context for project {project_id}: ~{token_count} tokens")
        if token_count > self.token_warning_threshold:
            logger.warning(
                f"Context for project {project_id} exceeds the {self.token_warning_threshold} token target: "
                f"{token_count} tokens"
            )

        return bundle

    @staticmethod
    def _render_photo_analyses(photos: List[Dict[str, Any]]) -> str:
        analyses = [photo.get("ai_analysis") for photo in photos if photo.get("ai_analysis")]
        return "\n\n".join(f"Photo {number}: {analysis}" for number, analysis in enumerate(analyses, start=1))

    def _render_interaction_log(self, interactions: List[Dict[str, Any]]) -> str:
        if not interactions:
            return ""

        split = max(len(interactions) - self.full_fidelity_interactions, 0)
        older, recent = interactions[:split], interactions[split:]

        recent_log = "\n\n".join(self._render_full(interaction) for interaction in recent)
        if not older:
            return recent_log

        older_log = "\n".join([SUMMARY_HEADER] + [self._render_summary(interaction) for interaction in older])
        if not recent:
            return older_log
        return TIER_SEPARATOR.join([older_log, recent_log])

    @staticmethod
    def _render_full(interaction: Dict[str, Any]) -> str:
        user_input = interaction.get("user_input")
        ai_response = interaction.get("ai_response")
        user_part = f"User: {user_input}" if user_input else "User: [provided photo]"
        ai_part = f"Assistant: {ai_response}" if ai_response else "Assistant: [response]"
        return f"{user_part}\n{ai_part}"

    def _render_summary(self, interaction: Dict[str, Any]) -> str:
        user_input = interaction.get("user_input")
        ai_response = interaction.get("ai_response")
        user_part = f"Q: {user_input[:self.summary_chars]}" if user_input else "Q: [photo provided]"
        ai_part = f"A: {ai_response[:self.summary_chars]}" if ai_response else "A: [response]"
        return f"[{user_part}] → [{ai_part}]"
