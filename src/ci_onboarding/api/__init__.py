"""Remote onboarding API client and payload models."""

from .client import ApiClient
from .models import (
    Group,
    LoginGrant,
    Repository,
    SubmissionReceipt,
    SubmissionRecord,
    SubmissionStatus,
    User,
    ValidationResult,
)

__all__ = [
    "ApiClient",
    "Group",
    "LoginGrant",
    "Repository",
    "SubmissionReceipt",
    "SubmissionRecord",
    "SubmissionStatus",
    "User",
    "ValidationResult",
]
