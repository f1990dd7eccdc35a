from enum import Enum


class ProjectStatus(str, Enum):
    """Lifecycle status of a scoped project."""
    ESTIMATE_READY = "estimate_ready"


class InteractionType(str, Enum):
    """Kind of exchange recorded in the interactions collection."""
    PHOTO_ANALYSIS = "photo_analysis"
    QUESTION = "question"
    ESTIMATE_REQUEST = "estimate_request"


class AnalysisType(str, Enum):
    """Photo analysis variants accepted by the analyze endpoint."""
    INITIAL = "initial"
    ADDITIONAL = "additional"
    CORRECTION = "correction"


class ScopeAction(str, Enum):
    QUESTION = "question"
    GENERATE = "generate"
