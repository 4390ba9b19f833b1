"""Shared fixtures for unit tests."""

from __future__ import annotations

import itertools
import threading
from typing import TYPE_CHECKING, Any

import pytest

from deploy_orchestrator.config import load
from deploy_orchestrator.engine.engine import DeploymentEngine
from deploy_orchestrator.engine.providers import CreateResult, ResourceProvider
from deploy_orchestrator.engine.registry import ProviderRegistry
from deploy_orchestrator.engine.retry import RetryPolicy
from deploy_orchestrator.providers import NullResourceProvider
from deploy_orchestrator.resources.template import Template

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from deploy_orchestrator.config.schema import Config
    from deploy_orchestrator.engine.providers import ProviderContext

_DEPLOY_ENV_VARS = (
    "DEPLOY_LOG",
    "DEPLOY_TARGET",
    "DEPLOY_STATE_PATH",
    "DEPLOY_MAX_CONCURRENCY",
    "DEPLOY_RETRY__MAX_ATTEMPTS",
    "NO_COLOR",
)

FAST_RETRY = RetryPolicy(max_attempts=3, base_delay=0.0)


class InMemoryProvider(ResourceProvider):
    """Fake provider keeping resources in a dict; failures can be queued per call."""

    resource_type = "Test::Thing"
    replace_on = frozenset({"immutable"})

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.store: dict[str, dict[str, Any]] = {}
        self.names: dict[str, str] = {}
        self._failures: dict[tuple[str, str], list[Exception]] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def fail(self, operation: str, name: str, *errors: Exception) -> None:
        """Queue *errors*, raised one per call of *operation* on *name*."""
        self._failures.setdefault((operation, name), []).extend(errors)

    def _record(self, operation: str, name: str) -> None:
        with self._lock:
            self.calls.append((operation, name))
            queued = self._failures.get((operation, name))
            error = queued.pop(0) if queued else None
        if error is not None:
            raise error

    def create(self, ctx: ProviderContext, name: str, properties: dict[str, Any]) -> CreateResult:
        _ = ctx
        self._record("create", name)
        physical_id = f"{name}-{next(self._ids)}"
        self.store[physical_id] = dict(properties)
        self.names[physical_id] = name
        return CreateResult(physical_id=physical_id, outputs={"arn": f"arn:test:{physical_id}"})

    def update(
        self, ctx: ProviderContext, physical_id: str, properties: dict[str, Any]
    ) -> dict[str, Any]:
        _ = ctx
        self._record("update", self.names[physical_id])
        self.store[physical_id] = dict(properties)
        return {"arn": f"arn:test:{physical_id}"}

    def delete(self, ctx: ProviderContext, physical_id: str) -> None:
        _ = ctx
        self._record("delete", self.names[physical_id])
        self.store.pop(physical_id, None)


@pytest.fixture(autouse=True)
def _clean_deploy_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove DEPLOY_* env vars so unit tests don't leak host config."""
    for var in _DEPLOY_ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def provider() -> InMemoryProvider:
    return InMemoryProvider()


@pytest.fixture
def registry(provider: InMemoryProvider) -> ProviderRegistry:
    reg = ProviderRegistry()
    reg.register(provider)
    reg.register(NullResourceProvider())
    return reg


@pytest.fixture
def engine(tmp_path: Path, registry: ProviderRegistry) -> DeploymentEngine:
    return DeploymentEngine(
        target="test",
        state_path=tmp_path / "state.json",
        registry=registry,
        retry=FAST_RETRY,
    )


@pytest.fixture
def template() -> Callable[..., Template]:
    """Factory fixture: build a Template from resource shorthands.

    ``template(A={}, B={"ref": {"Ref": "A"}})`` declares ``Test::Thing``
    resources with the given properties.
    """

    def _make(**resources: dict[str, Any]) -> Template:
        return Template.model_validate(
            {
                "resources": {
                    name: {"type": "Test::Thing", "properties": props}
                    for name, props in resources.items()
                }
            }
        )

    return _make


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., Config]:
    """Factory fixture: write YAML + optional .env, return loaded Config."""

    def _make(yaml_str: str, *, dotenv: str | None = None, name: str = "deploy.yaml") -> Config:
        (tmp_path / name).write_text(yaml_str)
        if dotenv is not None:
            (tmp_path / ".env").write_text(dotenv)
        return load(tmp_path / name)

    return _make
