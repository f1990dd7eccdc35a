from agents.scoping_agent.schemas import ToolDefinition

UNDERSTANDING_DIMENSIONS = (
    "project_type",
    "scope_direction",
    "space_dimensions",
    "condition",
    "materials_preference",
    "budget_framing",
    "timeline",
    "constraints",
)

ESTIMATE_CONFIDENCE_LEVELS = ("low", "medium", "high")

UPDATE_UNDERSTANDING_TOOL = ToolDefinition(
    name="update_understanding",
    description="You MUST call this tool after every response to report your updated assessment.",
    input_schema={
        "type": "object",
        "properties": {
            "understanding": {
                "type": "integer",
                "minimum": 0,
                "maximum": 100,
                "description": "Overall understanding score 0-100",
            },
            "dimensions_resolved": {
                "type": "object",
                "properties": {dimension: {"type": "boolean"} for dimension in UNDERSTANDING_DIMENSIONS},
                "required": list(UNDERSTANDING_DIMENSIONS),
            },
            "delta": {
                "type": "integer",
                "description": "Change in understanding since last response",
            },
            "delta_reason": {
                "type": "string",
                "description": "Why the understanding changed",
            },
            "cost_flag": {
                "type": ["string", "null"],
                "description": "Cost impact flag if applicable",
            },
            "next_unresolved": {
                "type": "string",
                "description": "The most impactful unresolved dimension to ask about next",
            },
        },
        "required": ["understanding", "dimensions_resolved", "delta", "delta_reason", "next_unresolved"],
    },
)

GENERATE_ESTIMATE_TOOL = ToolDefinition(
    name="generate_estimate",
    description="You MUST call this tool with the structured cost estimate after generating the narrative "
                "scope document.",
    input_schema={
        "type": "object",
        "properties": {
            "line_items": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "item": {"type": "string", "description": "work item description"},
                        "category": {
                            "type": "string",
                            "description": "e.g. cabinetry, plumbing, electrical, structural",
                        },
                        "low": {"type": "number", "description": "low estimate in dollars"},
                        "high": {"type": "number", "description": "high estimate in dollars"},
                        "assumed": {
                            "type": "boolean",
                            "description": "true if not explicitly confirmed by user",
                        },
                        "notes": {"type": "string", "description": "additional context"},
                    },
                    "required": ["item", "category", "low", "high", "assumed"],
                },
            },
            "total_low": {"type": "number"},
            "total_high": {"type": "number"},
            "confidence": {"type": "string", "enum": list(ESTIMATE_CONFIDENCE_LEVELS)},
            "unresolved_areas": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Dimensions that weren't fully resolved",
            },
            "regional_note": {
                "type": "string",
                "description": "Regional pricing context based on zip code",
            },
        },
        "required": ["line_items", "total_low", "total_high", "confidence", "unresolved_areas", "regional_note"],
    },
)
