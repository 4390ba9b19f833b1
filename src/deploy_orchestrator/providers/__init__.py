"""Built-in resource providers."""

from __future__ import annotations

from typing import TYPE_CHECKING

from deploy_orchestrator.providers.local import LocalFileProvider
from deploy_orchestrator.providers.null import NullResourceProvider

if TYPE_CHECKING:
    from pathlib import Path

    from deploy_orchestrator.engine.providers import ResourceProvider

__all__ = ["LocalFileProvider", "NullResourceProvider", "builtin_providers"]


def builtin_providers(base_dir: Path | None = None) -> list[ResourceProvider]:
    """Fresh instances of every built-in provider."""
    return [NullResourceProvider(), LocalFileProvider(base_dir)]
