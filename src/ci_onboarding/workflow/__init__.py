"""Pipeline drafts, submission dispatch and status polling."""

from .editor import WorkflowDraft, WorkflowEditor
from .polling import PollHandle, PollPhase, StatusPoller, StatusView
from .templates import DEFAULT_WORKFLOW, TemplateLoadError, TemplateLoader, WorkflowTemplate

__all__ = [
    "DEFAULT_WORKFLOW",
    "PollHandle",
    "PollPhase",
    "StatusPoller",
    "StatusView",
    "TemplateLoadError",
    "TemplateLoader",
    "WorkflowDraft",
    "WorkflowEditor",
    "WorkflowTemplate",
]
