import copy
import math
from typing import Annotated, Any, Dict, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field


class ImagePart(BaseModel):
    """A base64-encoded image attached to a user message."""
    model_config = ConfigDict(frozen=True)

    type: Literal["image"] = "image"
    media_type: str = Field("image/jpeg", description="MIME type of the image (e.g., 'image/jpeg')")
    data: str = Field(..., description="Base64-encoded image bytes")


class TextPart(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str


ContentPart = Annotated[Union[ImagePart, TextPart], Field(discriminator="type")]


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: str = Field(..., description="'user' or 'assistant'")
    content: Union[str, Tuple[ContentPart, ...]]


class ToolDefinition(BaseModel):
    """Static, versioned description of a structured-output tool offered to the model."""
    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    input_schema: Dict[str, Any]
    version: str = "v1"

    def schema_copy(self) -> Dict[str, Any]:
        return copy.deepcopy(self.input_schema)


class ConversationRequest(BaseModel):
    """One provider exchange: system prompt, message history and the tools on offer."""
    model_config = ConfigDict(frozen=True)

    system_prompt: str
    messages: Tuple[Message, ...]
    tools: Tuple[ToolDefinition, ...] = ()


class ContextBundle(BaseModel):
    """Rolling project context injected into every scoping prompt. Rebuilt per request."""
    model_config = ConfigDict(frozen=True)

    project_title: str
    budget_approach: str
    budget_target: Optional[Union[int, float, str]] = None
    understanding_score: Union[int, float] = 0
    dimensions_resolved: Dict[str, bool]
    photo_analyses: str = ""
    interaction_log: str = ""
    resolved_dimensions_summary: str = "none yet"
    unresolved_dimensions: str = "none"
    zip_code: Optional[str] = None

    def serialize(self) -> str:
        return self.model_dump_json()

    @property
    def estimated_token_count(self) -> int:
        # ~4 characters per token
        return math.ceil(len(self.serialize()) / 4)
