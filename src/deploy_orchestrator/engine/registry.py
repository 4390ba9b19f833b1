"""Resource type registry for provider dispatch."""

from __future__ import annotations

import importlib.metadata
import logging
from typing import TYPE_CHECKING

from deploy_orchestrator.engine.errors import UnknownResourceTypeError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from deploy_orchestrator.engine.providers import ResourceProvider

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "deploy_orchestrator.providers"


class ProviderRegistry:
    """Registry mapping resource_type -> provider."""

    def __init__(self) -> None:
        self._providers: dict[str, ResourceProvider] = {}

    def register(self, provider: ResourceProvider) -> None:
        resource_type = getattr(provider, "resource_type", None)
        if not isinstance(resource_type, str) or not resource_type:
            raise ValueError("Provider must define a non-empty classvar `resource_type`")

        if resource_type in self._providers:
            raise ValueError(f"Resource type already registered: {resource_type}")

        self._providers[resource_type] = provider
        logger.debug("Registered provider for %s", resource_type)

    def register_all(self, providers: Iterable[ResourceProvider]) -> None:
        for provider in providers:
            self.register(provider)

    def get(self, resource_type: str) -> ResourceProvider:
        try:
            return self._providers[resource_type]
        except KeyError as e:
            raise UnknownResourceTypeError(resource_type) from e

    def __contains__(self, resource_type: object) -> bool:
        return resource_type in self._providers

    def types(self) -> list[str]:
        return sorted(self._providers)

    def load_entry_points(self) -> None:
        """Register providers advertised by installed packages.

        Each entry point in the ``deploy_orchestrator.providers`` group must
        load to a callable returning an iterable of providers.
        """
        for ep in importlib.metadata.entry_points(group=ENTRY_POINT_GROUP):
            factory = ep.load()
            logger.debug("Loading providers from entry point %s", ep.name)
            self.register_all(factory())
