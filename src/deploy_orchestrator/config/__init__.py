"""Document loading and convenience plan/apply API."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from deploy_orchestrator.config.loader import ConfigError, load_config
from deploy_orchestrator.config.registry import PluginError, default_registry
from deploy_orchestrator.config.schema import Config, EngineSettings, RetrySettings
from deploy_orchestrator.engine.engine import DeploymentEngine

if TYPE_CHECKING:
    import threading
    from collections.abc import Mapping
    from pathlib import Path

    from deploy_orchestrator.core.state import StateSnapshot
    from deploy_orchestrator.engine.builder import ResourceGraph
    from deploy_orchestrator.engine.executor import ProgressCallback
    from deploy_orchestrator.engine.types import ExecutionResult, Plan

__all__ = [
    "Config",
    "ConfigError",
    "EngineSettings",
    "RetrySettings",
    "apply",
    "destroy",
    "engine_from_config",
    "load",
    "load_config",
    "plan",
    "plan_and_apply",
    "state",
    "validate",
]


def load(path: Path | str) -> Config:
    """Load a YAML or JSON deployment document."""
    return load_config(path)


def engine_from_config(config: Config) -> DeploymentEngine:
    """Build a ``DeploymentEngine`` from a ``Config`` instance."""
    try:
        registry = default_registry(config_dir=config.config_dir, plugins=config.providers)
    except PluginError as exc:
        raise ConfigError(str(exc)) from exc
    return DeploymentEngine(
        target=config.target,
        state_path=config.resolved_state_path,
        registry=registry,
        max_concurrency=config.settings.max_concurrency,
        retry=config.settings.retry.policy(),
    )


def validate(config: Config, *, parameters: Mapping[str, Any] | None = None) -> ResourceGraph:
    """Build the resource graph without reading or touching state."""
    return engine_from_config(config).build(config, parameters)


def plan(
    config: Config, *, parameters: Mapping[str, Any] | None = None, destroy: bool = False
) -> Plan:
    """Plan changes for the given configuration."""
    engine = engine_from_config(config)
    return engine.plan(config, parameters=parameters, destroy=destroy)


def apply(
    plan_obj: Plan,
    config: Config,
    *,
    progress: ProgressCallback | None = None,
    canceled: threading.Event | None = None,
) -> ExecutionResult:
    """Apply a previously computed plan."""
    engine = engine_from_config(config)
    return engine.apply(plan_obj, progress=progress, canceled=canceled)


def plan_and_apply(
    config: Config, *, parameters: Mapping[str, Any] | None = None, destroy: bool = False
) -> ExecutionResult:
    """Plan and apply in one step."""
    plan_obj = plan(config, parameters=parameters, destroy=destroy)
    return apply(plan_obj, config)


def destroy(
    config: Config,
    *,
    progress: ProgressCallback | None = None,
    canceled: threading.Event | None = None,
) -> ExecutionResult:
    """Delete every resource tracked for the configuration's target."""
    return engine_from_config(config).destroy(progress=progress, canceled=canceled)


def state(config: Config) -> StateSnapshot:
    """Current state snapshot for the configuration's target."""
    return engine_from_config(config).state()
