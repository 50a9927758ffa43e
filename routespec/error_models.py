"""
Error response models.

These describe the bodies the framework itself produces. They double as the
default 400 and 500 response declarations, so the published document shows
the exact shape clients receive.
"""

from typing import Any, Dict, List, Sequence

from pydantic import BaseModel, ConfigDict, Field

from .schema import Issue


class ValidationIssue(BaseModel):
    """A single failed check inside one field group."""

    model_config = ConfigDict(populate_by_name=True)

    in_: str = Field(
        ...,
        alias="in",
        description="Field group that failed: params, query, headers, cookies, body, form, file or files",
    )
    code: str = Field(..., description="Machine readable failure code")
    path: List[str] = Field(default_factory=list, description="Location of the value inside its field group")
    input: Any = Field(None, description="The offending input value")
    message: str = Field(..., description="Human-readable explanation")


class ValidationErrorResponse(BaseModel):
    """Body of a request validation failure."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "message": "Request validation failed",
                "error": [
                    {
                        "in": "body",
                        "code": "string_too_short",
                        "path": ["content"],
                        "input": "",
                        "message": "String should have at least 1 character",
                    }
                ],
            }
        }
    )

    message: str = Field("Request validation failed", description="Summary of the failure")
    error: List[ValidationIssue] = Field(default_factory=list, description="Every issue found across field groups")

    @classmethod
    def from_errors(cls, errors: Dict[str, Sequence[Issue]], message: str = "Request validation failed") -> "ValidationErrorResponse":
        return cls(
            message=message,
            error=[
                ValidationIssue(in_=group, code=issue.code, path=list(issue.path), input=issue.input, message=issue.message)
                for group, issues in errors.items()
                for issue in issues
            ],
        )


class ErrorResponse(BaseModel):
    """Generic error body."""

    message: str = Field("Internal Server Error", description="Human-readable error message")
