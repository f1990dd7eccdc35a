"""
Structural validators for the three structured payloads the model produces.

Each validator is pure and fail-fast: it stops at the first violation and
reports the offending field. Booleans are never accepted where a number is
required, even though bool subclasses int.
"""
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

from agents.scoping_agent.exceptions import ValidationFailed
from agents.scoping_agent.tools import ESTIMATE_CONFIDENCE_LEVELS, UNDERSTANDING_DIMENSIONS


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    error: Optional[str] = None

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(valid=True)

    @classmethod
    def fail(cls, error: str) -> "ValidationResult":
        return cls(valid=False, error=error)

    def raise_for_invalid(self) -> None:
        if not self.valid:
            raise ValidationFailed(self.error)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_integer(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and value.is_integer()


def _in_allow_list(value: Any, allowed: frozenset) -> bool:
    return isinstance(value, str) and value in allowed


def _missing(payload: Mapping[str, Any], fields: Iterable[str]) -> Optional[str]:
    for field in fields:
        if field not in payload:
            return field
    return None


def validate_understanding_update(payload: Any) -> ValidationResult:
    """Validate an update_understanding tool payload."""
    if not isinstance(payload, dict):
        return ValidationResult.fail("Invalid JSON object")

    missing = _missing(payload, ("understanding", "dimensions_resolved", "delta", "delta_reason", "next_unresolved"))
    if missing:
        return ValidationResult.fail(f"Missing required field: {missing}")

    understanding = payload["understanding"]
    if not _is_number(understanding) or not 0 <= understanding <= 100:
        return ValidationResult.fail("understanding must be a number between 0-100")

    dimensions = payload["dimensions_resolved"]
    if not isinstance(dimensions, dict):
        return ValidationResult.fail("dimensions_resolved must be an object")

    for dimension in UNDERSTANDING_DIMENSIONS:
        if not isinstance(dimensions.get(dimension), bool):
            return ValidationResult.fail(f"dimensions_resolved.{dimension} must be boolean")

    for dimension in dimensions:
        if dimension not in UNDERSTANDING_DIMENSIONS:
            return ValidationResult.fail(f"dimensions_resolved.{dimension} is not a known dimension")

    if not _is_number(payload["delta"]):
        return ValidationResult.fail("delta must be a number")

    if not isinstance(payload["delta_reason"], str):
        return ValidationResult.fail("delta_reason must be a string")

    if not isinstance(payload["next_unresolved"], str):
        return ValidationResult.fail("next_unresolved must be a string")

    cost_flag = payload.get("cost_flag")
    if cost_flag is not None and not isinstance(cost_flag, str):
        return ValidationResult.fail("cost_flag must be string or null")

    return ValidationResult.ok()


def _validate_line_item(index: int, item: Any) -> Optional[str]:
    if not isinstance(item, dict):
        return f"line_items[{index}] must be an object"

    missing = _missing(item, ("item", "category", "low", "high", "assumed"))
    if missing:
        return f"line_items[{index}] missing field: {missing}"

    if not isinstance(item["item"], str):
        return f"line_items[{index}].item must be string"
    if not isinstance(item["category"], str):
        return f"line_items[{index}].category must be string"
    if not _is_number(item["low"]):
        return f"line_items[{index}].low must be number"
    if not _is_number(item["high"]):
        return f"line_items[{index}].high must be number"
    if not isinstance(item["assumed"], bool):
        return f"line_items[{index}].assumed must be boolean"
    if "notes" in item and not isinstance(item["notes"], str):
        return f"line_items[{index}].notes must be string"
    return None


def validate_cost_estimate(payload: Any) -> ValidationResult:
    """Validate a generate_estimate tool payload."""
    if not isinstance(payload, dict):
        return ValidationResult.fail("Invalid JSON object")

    missing = _missing(
        payload,
        ("line_items", "total_low", "total_high", "confidence", "unresolved_areas", "regional_note")
    )
    if missing:
        return ValidationResult.fail(f"Missing required field: {missing}")

    if not isinstance(payload["line_items"], list):
        return ValidationResult.fail("line_items must be an array")

    for index, item in enumerate(payload["line_items"]):
        error = _validate_line_item(index, item)
        if error:
            return ValidationResult.fail(error)

    if not _is_number(payload["total_low"]):
        return ValidationResult.fail("total_low must be number")
    if not _is_number(payload["total_high"]):
        return ValidationResult.fail("total_high must be number")

    if payload["confidence"] not in ESTIMATE_CONFIDENCE_LEVELS:
        return ValidationResult.fail("confidence must be: low, medium, or high")

    if not isinstance(payload["unresolved_areas"], list):
        return ValidationResult.fail("unresolved_areas must be an array")
    if not all(isinstance(area, str) for area in payload["unresolved_areas"]):
        return ValidationResult.fail("unresolved_areas items must be strings")

    if not isinstance(payload["regional_note"], str):
        return ValidationResult.fail("regional_note must be string")

    return ValidationResult.ok()


def _validate_sequenced_project(index: int, project: Any, allowed: frozenset) -> Optional[str]:
    prefix = f"sequenced_projects[{index}]"
    if not isinstance(project, dict):
        return f"{prefix} must be an object"

    missing = _missing(project, ("project_id", "priority_score", "recommended_sequence", "reasoning"))
    if missing:
        return f"{prefix} missing field: {missing}"

    if not _in_allow_list(project["project_id"], allowed):
        return f"{prefix}.project_id not in valid projects"

    score = project["priority_score"]
    if not _is_integer(score) or not 1 <= score <= 100:
        return f"{prefix}.priority_score must be integer 1-100"

    sequence = project["recommended_sequence"]
    if not _is_integer(sequence) or sequence < 1:
        return f"{prefix}.recommended_sequence must be positive integer"

    if not isinstance(project["reasoning"], str):
        return f"{prefix}.reasoning must be string"
    return None


def _validate_bundle_group(index: int, bundle: Any, allowed: frozenset) -> Optional[str]:
    prefix = f"bundle_groups[{index}]"
    if not isinstance(bundle, dict):
        return f"{prefix} must be an object"

    missing = _missing(bundle, ("bundle_name", "project_ids", "estimated_savings_percent", "reasoning"))
    if missing:
        return f"{prefix} missing field: {missing}"

    if not isinstance(bundle["project_ids"], list):
        return f"{prefix}.project_ids must be array"
    if not all(_in_allow_list(project_id, allowed) for project_id in bundle["project_ids"]):
        return f"{prefix}.project_ids contains invalid project_id"

    savings = bundle["estimated_savings_percent"]
    if not _is_number(savings) or not 0 <= savings <= 100:
        return f"{prefix}.estimated_savings_percent must be 0-100"

    if not isinstance(bundle["bundle_name"], str):
        return f"{prefix}.bundle_name must be string"
    if not isinstance(bundle["reasoning"], str):
        return f"{prefix}.reasoning must be string"
    return None


def validate_cross_project_analysis(payload: Any, valid_project_ids: Iterable[str]) -> ValidationResult:
    """
    Validate a cross-project sequencing analysis.

    Args:
        payload: Parsed analysis JSON
        valid_project_ids: Allow-list of project ids the analysis may reference

    Returns:
        ValidationResult naming the first offending field, if any
    """
    if not isinstance(payload, dict):
        return ValidationResult.fail("Invalid JSON object")

    missing = _missing(
        payload,
        ("sequenced_projects", "bundle_groups", "quick_wins", "total_cost_range", "optimization_summary")
    )
    if missing:
        return ValidationResult.fail(f"Missing required field: {missing}")

    allowed = frozenset(valid_project_ids)

    if not isinstance(payload["sequenced_projects"], list):
        return ValidationResult.fail("sequenced_projects must be an array")
    for index, project in enumerate(payload["sequenced_projects"]):
        error = _validate_sequenced_project(index, project, allowed)
        if error:
            return ValidationResult.fail(error)

    if not isinstance(payload["bundle_groups"], list):
        return ValidationResult.fail("bundle_groups must be an array")
    for index, bundle in enumerate(payload["bundle_groups"]):
        error = _validate_bundle_group(index, bundle, allowed)
        if error:
            return ValidationResult.fail(error)

    if not isinstance(payload["quick_wins"], list):
        return ValidationResult.fail("quick_wins must be an array")
    if not all(_in_allow_list(project_id, allowed) for project_id in payload["quick_wins"]):
        return ValidationResult.fail("quick_wins contains invalid project_id")

    cost_range = payload["total_cost_range"]
    if not isinstance(cost_range, dict):
        return ValidationResult.fail("total_cost_range must be object")
    if not _is_number(cost_range.get("low")):
        return ValidationResult.fail("total_cost_range.low must be number")
    if not _is_number(cost_range.get("high")):
        return ValidationResult.fail("total_cost_range.high must be number")

    if not isinstance(payload["optimization_summary"], str):
        return ValidationResult.fail("optimization_summary must be string")

    return ValidationResult.ok()
