"""Response models shared by all endpoints."""

from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response structure."""

    message: str = Field(..., description="Human readable error message")

    model_config = {
        "json_schema_extra": {
            "example": {"message": "Document not found"}
        }
    }


class SuccessResponse(BaseModel):
    """Acknowledgement for operations without a resource body."""

    success: bool = Field(default=True)
    message: str = Field(default="Operation completed successfully")

    model_config = {
        "json_schema_extra": {
            "example": {"success": True, "message": "Document deleted successfully"}
        }
    }


def error_response(status_code: int, message: str) -> JSONResponse:
    """Create an error response."""
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(message=message).model_dump(),
    )


def success_response(message: str = "Operation completed successfully") -> SuccessResponse:
    """Create a success response."""
    return SuccessResponse(success=True, message=message)
