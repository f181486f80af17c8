"""Engine configuration models.

Config structure (``.ebookwf/config.yml``):
    sessions_root: .ebookwf/sessions
    client: openrouter
    generation:
      api_key: ...            # or OPENROUTER_API_KEY
      timeout_seconds: 30
      max_retries: 3
    steps:
      chapters:
        model: deepseek/deepseek-r1-zero:free
        max_tokens: 6000
    page:
      invariant: false
      cover_note: Generated with eBook Workflow Engine
"""

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ebookwf.domain.constants import (
    DEFAULT_API_URL,
    DEFAULT_MAX_RETRIES,
    DEFAULT_SESSIONS_ROOT,
    DEFAULT_TIMEOUT_SECONDS,
)
from ebookwf.domain.models.workflow_state import WorkflowStep


class GenerationConfig(BaseModel):
    """Settings passed to the generation client."""

    model_config = ConfigDict(extra="forbid")

    base_url: str = DEFAULT_API_URL
    api_key: str | None = None
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    max_retries: int = DEFAULT_MAX_RETRIES

    @field_validator("timeout_seconds")
    @classmethod
    def _timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout_seconds must be > 0")
        return v

    @field_validator("max_retries")
    @classmethod
    def _retries_ge_1(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_retries must be >= 1")
        return v

    def client_kwargs(self) -> dict[str, Any]:
        return self.model_dump()


class StepModelConfig(BaseModel):
    """Per-step model/parameter override. Unset fields keep the defaults."""

    model_config = ConfigDict(extra="forbid")

    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None


class PageConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    invariant: bool = False
    cover_note: str | None = "Generated with eBook Workflow Engine"
    author: str | None = None


class EngineConfig(BaseModel):
    """Top-level engine configuration."""

    model_config = ConfigDict(extra="forbid")

    sessions_root: Path = DEFAULT_SESSIONS_ROOT
    client: str = "openrouter"
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    steps: dict[WorkflowStep, StepModelConfig] = Field(default_factory=dict)
    page: PageConfig = Field(default_factory=PageConfig)

    def step_overrides(self) -> dict[WorkflowStep, dict[str, Any]]:
        """Overrides in the shape StepRegistry.with_overrides expects."""
        return {
            step: override.model_dump(exclude_none=True)
            for step, override in self.steps.items()
            if override.model_dump(exclude_none=True)
        }
