"""Validate-then-submit orchestration for a pipeline draft."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Mapping

from ..api import ApiClient, SubmissionReceipt, ValidationResult
from ..errors import ApiError, ErrorSink, LoggingErrorSink
from ..navigation import GROUPS, Location, Navigator, status_path
from ..selection import SelectionContext, decode_selection
from .templates import (
    BUILTIN_TEMPLATE,
    DEFAULT_TEMPLATE_ID,
    DEFAULT_WORKFLOW,
    TemplateLoadError,
    TemplateLoader,
    WorkflowTemplate,
)

logger = logging.getLogger(__name__)

SubmittedCallback = Callable[[SubmissionReceipt, SelectionContext], None]


@dataclass(slots=True)
class WorkflowDraft:
    """Pipeline text being edited; never persisted beyond the editing session."""

    content: str = DEFAULT_WORKFLOW

    @property
    def blank(self) -> bool:
        return not self.content.strip()


class WorkflowEditor:
    """Third step: edit a draft, validate it, and dispatch one bulk submission.

    Results of calls still in flight when the user leaves the step are
    discarded on arrival; :meth:`leave` bumps the visit counter that every
    call checks before applying its result.
    """

    def __init__(
        self,
        api: ApiClient,
        navigator: Navigator,
        *,
        templates: TemplateLoader | None = None,
        error_sink: ErrorSink | None = None,
        on_submitted: SubmittedCallback | None = None,
    ) -> None:
        self._api = api
        self._navigator = navigator
        self._templates = templates or TemplateLoader()
        self._error_sink = error_sink or LoggingErrorSink()
        self._on_submitted = on_submitted
        self._visit = 0
        self._active = False
        self.context: SelectionContext | None = None
        self.draft = WorkflowDraft()
        self.validation: ValidationResult | None = None
        self.validating = False
        self.submitting = False
        self.submit_error: str | None = None
        self.template_error: str | None = None

    @property
    def active(self) -> bool:
        return self._active

    def enter(self, params: Mapping[str, str]) -> bool:
        """Enter from navigable state; a missing or empty selection goes back to groups."""

        context = decode_selection(params)
        if context is None or not context.usable:
            self._navigator.go(GROUPS)
            return False

        self._visit += 1
        self._active = True
        self.context = context
        self.template_error = None
        self.draft = WorkflowDraft(self._example().content)
        self.validation = None
        self.validating = False
        self.submitting = False
        self.submit_error = None
        return True

    def leave(self) -> None:
        self._visit += 1
        self._active = False
        self.validating = False
        self.submitting = False

    def back(self) -> Location:
        self.leave()
        return self._navigator.back()

    def _is_current(self, visit: int) -> bool:
        return self._active and visit == self._visit

    def edit(self, content: str) -> None:
        self.draft.content = content

    def _template(self, template_id: str) -> WorkflowTemplate | None:
        try:
            return self._templates.get(template_id)
        except TemplateLoadError as exc:
            self._error_sink.report("templates", exc, template_id=template_id)
            self.template_error = str(exc)
            return None

    def _example(self) -> WorkflowTemplate:
        return self._template(DEFAULT_TEMPLATE_ID) or BUILTIN_TEMPLATE

    def use_template(self, template_id: str = DEFAULT_TEMPLATE_ID) -> str | None:
        """Replace the draft with a template; an unloadable one leaves the draft as is."""

        template = self._template(template_id)
        if template is None:
            return None
        self.template_error = None
        self.draft.content = template.content
        return self.draft.content

    def reset_to_example(self) -> str:
        self.draft.content = self._example().content
        return self.draft.content

    async def validate(self) -> ValidationResult | None:
        """Validate the draft remotely; failures come back as data, never raised."""

        if self.draft.blank:
            return None

        visit = self._visit
        self.validating = True
        try:
            result = await self._api.validate_workflow(self.draft.content)
        except ApiError as exc:
            result = ValidationResult(valid=False, errors=[str(exc) or "Validation failed"])

        if not self._is_current(visit):
            logger.debug("Discarding validation result for a step the user left")
            return None
        self.validating = False
        self.validation = result
        return result

    async def submit(self) -> SubmissionReceipt | None:
        """Dispatch the draft to every selected repository and open the status view."""

        context = self.context
        if context is None or not context.usable or self.draft.blank:
            return None

        visit = self._visit
        self.submitting = True
        self.submit_error = None
        try:
            receipt = await self._api.submit_workflow(
                context.group_id, context.repository_ids, self.draft.content
            )
        except ApiError as exc:
            self._error_sink.report(
                "submit",
                exc,
                group_id=context.group_id,
                repository_count=len(context.repository_ids),
            )
            if self._is_current(visit):
                self.submitting = False
                self.submit_error = str(exc) or "Workflow submission failed"
            return None

        if not self._is_current(visit):
            logger.debug(
                "Discarding submission receipt for a step the user left",
                extra={"submission_id": receipt.submission_id},
            )
            return None

        self.submitting = False
        logger.info(
            "Workflow submitted",
            extra={
                "submission_id": receipt.submission_id,
                "group_id": context.group_id,
                "repository_count": len(context.repository_ids),
            },
        )
        if self._on_submitted is not None:
            self._on_submitted(receipt, context)
        self.leave()
        self._navigator.go(status_path(receipt.submission_id))
        return receipt


__all__ = ["SubmittedCallback", "WorkflowDraft", "WorkflowEditor"]
