"""Document API request and response schemas."""

from datetime import datetime

from pydantic import AliasChoices, BaseModel, Field

from app.utils.responses import ErrorResponse


class DocumentResponse(BaseModel):
    """Response schema for a document record."""

    id: int = Field(..., description="Document ID")
    filename: str = Field(..., description="Original filename supplied by the client")
    filepath: str = Field(..., description="Server-generated storage path of the file")
    filesize: int = Field(..., description="Size of the stored file in bytes")
    created_at: datetime = Field(
        ...,
        validation_alias=AliasChoices("created_at", "createdAt"),
        serialization_alias="createdAt",
        description="Upload time",
    )

    model_config = {
        "from_attributes": True,
        "populate_by_name": True,
        "json_schema_extra": {"example": {
            "id": 1,
            "filename": "a.pdf",
            "filepath": "1733011200000-482913377.pdf",
            "filesize": 5,
            "createdAt": "2025-12-01T00:00:00Z",
        }},
    }


ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid request"},
    404: {"model": ErrorResponse, "description": "Document or file not found"},
    500: {"model": ErrorResponse, "description": "Storage or database failure"},
}
