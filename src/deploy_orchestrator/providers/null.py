"""Null provider: resources that exist only in state."""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Any

from deploy_orchestrator.engine.providers import CreateResult, ResourceProvider

if TYPE_CHECKING:
    from deploy_orchestrator.engine.providers import ProviderContext

logger = logging.getLogger(__name__)


class NullResourceProvider(ResourceProvider):
    """``Null::Resource``: tracks its properties and nothing else.

    Useful for wiring, testing and for grouping dependencies.  A change to
    ``triggers`` forces a replacement; ``outputs`` is echoed back as the
    resource's outputs so other resources can ``!GetAtt`` it.
    """

    resource_type = "Null::Resource"
    replace_on = frozenset({"triggers"})

    def validate(self, name: str, properties: dict[str, Any]) -> list[str]:
        errors: list[str] = []
        for key in ("triggers", "outputs"):
            value = properties.get(key)
            if value is not None and not isinstance(value, dict):
                errors.append(f"'{key}' must be a mapping, got {type(value).__name__}")
        return errors

    @staticmethod
    def _outputs(physical_id: str, properties: dict[str, Any]) -> dict[str, Any]:
        return {**(properties.get("outputs") or {}), "id": physical_id}

    def create(self, ctx: ProviderContext, name: str, properties: dict[str, Any]) -> CreateResult:
        physical_id = f"{name}-{uuid.uuid4().hex[:12]}"
        logger.debug("Created null resource %s in %s", physical_id, ctx.target)
        return CreateResult(physical_id=physical_id, outputs=self._outputs(physical_id, properties))

    def update(
        self, ctx: ProviderContext, physical_id: str, properties: dict[str, Any]
    ) -> dict[str, Any]:
        _ = ctx
        return self._outputs(physical_id, properties)

    def delete(self, ctx: ProviderContext, physical_id: str) -> None:
        logger.debug("Deleted null resource %s in %s", physical_id, ctx.target)
