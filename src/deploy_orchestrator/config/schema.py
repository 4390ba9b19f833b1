"""Configuration models for deployment documents."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from deploy_orchestrator.engine.retry import RetryPolicy
from deploy_orchestrator.resources.template import Template


def _none_to_list(v: Any) -> Any:
    return v if v is not None else []


class RetrySettings(BaseModel):
    """Backoff for retryable provider errors."""

    model_config = ConfigDict(extra="forbid")

    max_attempts: int = Field(default=4, ge=1)
    base_delay: float = Field(default=0.5, ge=0)
    multiplier: float = Field(default=2.0, ge=1)
    max_delay: float = Field(default=30.0, ge=0)

    def policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            multiplier=self.multiplier,
            max_delay=self.max_delay,
        )


class EngineSettings(BaseSettings):
    """Execution tuning.

    Fields can be set in the document's ``settings`` block or through
    environment variables with the ``DEPLOY_`` prefix
    (``DEPLOY_MAX_CONCURRENCY``, ``DEPLOY_RETRY__MAX_ATTEMPTS``).
    Document values take precedence.
    """

    model_config = SettingsConfigDict(
        env_prefix="DEPLOY_", env_nested_delimiter="__", extra="ignore"
    )

    max_concurrency: int = Field(default=4, ge=1)
    retry: RetrySettings = Field(default_factory=RetrySettings)


class Config(Template):
    """A deployment document: the template plus where and how to apply it."""

    model_config = ConfigDict(extra="forbid")

    target: str = Field(min_length=1)
    state_path: Path = Path(".deploy-state.json")
    providers: Annotated[list[str], BeforeValidator(_none_to_list)] = Field(
        default_factory=list
    )
    settings: EngineSettings = Field(default_factory=EngineSettings)
    config_dir: Path = Path()

    @property
    def resolved_state_path(self) -> Path:
        """``state_path`` anchored at the document's directory when relative."""
        if self.state_path.is_absolute():
            return self.state_path
        return self.config_dir / self.state_path
