"""Payload models for the onboarding API."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class SubmissionStatus(str, Enum):
    """Lifecycle of a bulk submission. Only ``processing`` is non-terminal."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    PARTIAL_SUCCESS = "partial_success"

    @property
    def is_terminal(self) -> bool:
        return self is not SubmissionStatus.PROCESSING


class User(BaseModel):
    """Identity of the authenticated user on the version-control host."""

    id: str = Field(..., description="Host-side user identifier.")
    name: str = Field(..., description="Display name.")
    username: str = Field(..., description="Login handle.")
    email: str = Field(default="", description="Primary email address.")
    avatar_url: str | None = Field(default=None, description="Optional avatar image URL.")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        return str(value)


class Group(BaseModel):
    """Organizational container of repositories."""

    id: int
    name: str
    path: str = ""
    description: str | None = ""
    avatar_url: str | None = None


class Repository(BaseModel):
    """Repository under a group, optionally already carrying a pipeline."""

    id: int
    name: str
    description: str | None = ""
    default_branch: str = "main"
    has_gitlab_ci: bool = False


class ValidationResult(BaseModel):
    """Outcome of one validation request; never accumulates across requests."""

    valid: bool
    errors: list[str] = Field(default_factory=list)

    @field_validator("errors", mode="before")
    @classmethod
    def _ensure_list(cls, value: Any):  # type: ignore[override]
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return [str(item) for item in value]
        raise TypeError("errors must be a sequence of strings")


class SubmissionReceipt(BaseModel):
    """Acknowledgement returned when a bulk submission is dispatched."""

    submission_id: str
    status: SubmissionStatus = SubmissionStatus.PROCESSING
    repository_count: int = 0


class SubmissionRecord(BaseModel):
    """Server-side record of a submission, replaced wholesale on each poll."""

    submission_id: str
    status: SubmissionStatus
    repository_count: int = 0
    created_at: datetime
    completed_at: datetime | None = None
    error_message: Any | None = Field(
        default=None, description="Opaque error detail reported by the submission engine."
    )


class LoginRedirect(BaseModel):
    auth_url: str


class LoginGrant(BaseModel):
    token: str
    user: User


__all__ = [
    "Group",
    "LoginGrant",
    "LoginRedirect",
    "Repository",
    "SubmissionReceipt",
    "SubmissionRecord",
    "SubmissionStatus",
    "User",
    "ValidationResult",
]
