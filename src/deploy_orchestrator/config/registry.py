"""Provider registry factory: built-ins, installed plugins and document plugins."""

from __future__ import annotations

import importlib
import importlib.util
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from deploy_orchestrator.engine.providers import ResourceProvider
from deploy_orchestrator.engine.registry import ProviderRegistry
from deploy_orchestrator.providers import builtin_providers

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from types import ModuleType

logger = logging.getLogger(__name__)


class PluginError(Exception):
    """Raised when a provider plugin reference cannot be resolved or loaded."""


def _load_local_module(module_path: str, config_dir: Path) -> ModuleType:
    """Load a Python module from a file relative to *config_dir*."""
    parts = module_path.split(".")
    candidates = [
        config_dir / Path(*parts).with_suffix(".py"),
        config_dir / Path(*parts) / "__init__.py",
    ]
    file_path = next((p for p in candidates if p.exists()), None)
    if file_path is None:
        raise PluginError(f"Module '{module_path}' not found relative to {config_dir}")

    spec = importlib.util.spec_from_file_location(module_path, file_path)
    if spec is None or spec.loader is None:
        raise PluginError(f"Failed to create module spec for '{file_path}'")
    mod = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(mod)
    return mod


def _resolve_factory(ref: str, config_dir: Path) -> Callable[[], Iterable[ResourceProvider]]:
    """Resolve ``module.path:attr`` to a provider factory.

    The module is imported if installed, else loaded from a file relative to
    *config_dir*.
    """
    module_path, _, attr = ref.rpartition(":")
    if not module_path or not attr:
        raise PluginError(f"Invalid provider reference '{ref}': expected 'module.path:attr'")

    try:
        mod = importlib.import_module(module_path)
    except ModuleNotFoundError:
        mod = _load_local_module(module_path, config_dir)

    obj = getattr(mod, attr, None)
    if not callable(obj):
        raise PluginError(
            f"'{ref}' is not a callable attribute"
            if obj is not None
            else f"Module has no attribute '{attr}' (from '{ref}')"
        )
    return obj


def _instantiate(ref: str, produced: Any) -> list[ResourceProvider]:
    items = [produced] if isinstance(produced, ResourceProvider) else list(produced)
    if not all(isinstance(p, ResourceProvider) for p in items):
        raise PluginError(f"Provider plugin '{ref}' must return ResourceProvider instances")
    return items


def default_registry(
    *, config_dir: Path | None = None, plugins: Iterable[str] = (), entry_points: bool = True
) -> ProviderRegistry:
    """Create a fresh registry with built-in, installed and referenced providers."""
    base_dir = config_dir or Path()
    registry = ProviderRegistry()
    registry.register_all(builtin_providers(base_dir))

    if entry_points:
        registry.load_entry_points()

    for ref in plugins:
        factory = _resolve_factory(ref, base_dir)
        try:
            produced = factory()
        except PluginError:
            raise
        except Exception as exc:
            msg = f"Provider plugin '{ref}' raised {type(exc).__name__}: {exc}"
            raise PluginError(msg) from exc
        for provider in _instantiate(ref, produced):
            try:
                registry.register(provider)
            except ValueError as exc:
                raise PluginError(f"Provider plugin '{ref}': {exc}") from exc
        logger.debug("Loaded provider plugin %s", ref)

    return registry
