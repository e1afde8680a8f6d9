"""Pipeline-definition templates loaded from YAML files."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

DEFAULT_TEMPLATE_ID = "default"

DEFAULT_WORKFLOW = """# GitLab CI/CD Pipeline
stages:
  - test
  - build
  - deploy

variables:
  NODE_VERSION: "18"

# Test Stage
test_job:
  stage: test
  image: node:${NODE_VERSION}
  script:
    - npm install
    - npm run test
    - npm run lint
  artifacts:
    reports:
      junit: test-results.xml
  only:
    - merge_requests
    - main

# Build Stage
build_job:
  stage: build
  image: node:${NODE_VERSION}
  script:
    - npm install
    - npm run build
  artifacts:
    paths:
      - dist/
    expire_in: 1 hour
  only:
    - main

# Deploy Stage
deploy_job:
  stage: deploy
  image: alpine:latest
  script:
    - echo "Deploying application..."
    - echo "Deployment completed successfully!"
  dependencies:
    - build_job
  only:
    - main
  when: manual"""


class TemplateLoadError(RuntimeError):
    """Raised when one or more template files cannot be parsed."""


class WorkflowTemplate(BaseModel):
    """A named pipeline definition offered as a starting point for drafts."""

    id: str = Field(..., description="Unique identifier for the template.")
    title: str = Field(..., description="Display title.")
    description: str = Field(default="", description="What the pipeline does.")
    content: str = Field(..., description="Pipeline definition text (.gitlab-ci.yml).")

    @field_validator("id")
    @classmethod
    def _normalize_id(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Template id must not be empty")
        return normalized

    @field_validator("content")
    @classmethod
    def _require_content(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Template content must not be blank")
        return value


BUILTIN_TEMPLATE = WorkflowTemplate(
    id=DEFAULT_TEMPLATE_ID,
    title="Node.js test/build/deploy",
    description="Three-stage pipeline with a manual deploy job.",
    content=DEFAULT_WORKFLOW,
)


class TemplateLoader:
    """Loads workflow templates from YAML files on disk."""

    def __init__(self, search_paths: Iterable[Path] | None = None) -> None:
        paths = [Path(path) for path in (search_paths or [])]
        self._search_paths: list[Path] = [path for path in paths if path.exists()]

    @property
    def search_paths(self) -> list[Path]:
        return list(self._search_paths)

    def load_all(self) -> dict[str, WorkflowTemplate]:
        """Load the built-in template plus every template on the search paths.

        Later search paths override earlier ones when template ids collide.
        """

        templates: dict[str, WorkflowTemplate] = {BUILTIN_TEMPLATE.id: BUILTIN_TEMPLATE}
        errors: list[str] = []

        for base in self._search_paths:
            for path in sorted(base.glob("*.yml")) + sorted(base.glob("*.yaml")):
                try:
                    document = yaml.safe_load(path.read_text(encoding="utf-8"))
                except yaml.YAMLError as exc:  # pragma: no cover - library type
                    errors.append(f"Failed to parse YAML in {path}: {exc}")
                    continue

                if document is None:
                    continue

                try:
                    template = WorkflowTemplate.model_validate(document)
                except ValidationError as exc:
                    errors.append(f"Template validation error in {path}: {exc}")
                    continue

                templates[template.id] = template

        if errors:
            raise TemplateLoadError("; ".join(errors))

        return templates

    def get(self, template_id: str) -> WorkflowTemplate:
        templates = self.load_all()
        try:
            return templates[template_id]
        except KeyError as exc:
            raise TemplateLoadError(f"Template '{template_id}' not found in search paths") from exc


__all__ = [
    "BUILTIN_TEMPLATE",
    "DEFAULT_TEMPLATE_ID",
    "DEFAULT_WORKFLOW",
    "TemplateLoadError",
    "TemplateLoader",
    "WorkflowTemplate",
]
