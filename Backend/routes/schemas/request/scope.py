from pydantic import BaseModel, Field

from database.enums.project import AnalysisType, ScopeAction


class ScopeRequest(BaseModel):
    """Request to continue a scoping session or generate the estimate."""
    project_id: str = Field(..., description="Project ID being scoped")
    action: ScopeAction = Field(..., description="'question' for a Q&A turn, 'generate' for the final estimate")
    user_input: str | None = Field(None, description="Homeowner message, required for 'question'")


class AnalyzeRequest(BaseModel):
    """Request to analyze a project photo."""
    type: AnalysisType = Field(..., description="initial, additional or correction")
    image_base64: str = Field(..., description="Base64-encoded image")
    image_mime_type: str | None = Field(None, description="MIME type of the image (e.g., 'image/jpeg')")
    project_id: str | None = Field(None, description="Project ID, required for additional and correction")
    correction_text: str | None = Field(None, description="What the homeowner says the photo actually shows")
