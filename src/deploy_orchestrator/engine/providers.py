"""Engine-facing resource provider interface."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar

if TYPE_CHECKING:
    from collections.abc import Mapping


@dataclass(frozen=True)
class ProviderContext:
    """Context passed to providers.

    ``canceled`` is set when the run is canceled; long-running provider calls
    may poll it and abort cooperatively.
    """

    target: str
    canceled: threading.Event = field(default_factory=threading.Event)


@dataclass(frozen=True)
class CreateResult:
    """What a provider hands back after creating a resource."""

    physical_id: str
    outputs: dict[str, Any] = field(default_factory=dict)


class ResourceProvider:
    """Base class for resource providers (one per resource type).

    Providers translate resolved properties into calls against the real
    world.  Subclass, set ``resource_type`` and override the CRUD methods.
    Raise :class:`~deploy_orchestrator.engine.errors.ProviderError` with
    ``retryable=True`` for transient faults; any other exception is fatal.

    ``replace_on`` lists immutable top-level property keys; changing one
    forces Delete + Create.  Override :meth:`is_replacement_required` for
    finer rules.  ``permissions`` declares what each operation needs from the
    underlying platform, per operation name.
    """

    resource_type: ClassVar[str]
    replace_on: ClassVar[frozenset[str]] = frozenset()
    permissions: ClassVar[Mapping[str, tuple[str, ...]]] = {}

    def validate(self, name: str, properties: dict[str, Any]) -> list[str]:
        """Single-resource validation on build-time properties.

        Return list of error messages (empty = valid).
        """
        _ = name, properties
        return []

    def is_replacement_required(self, old: dict[str, Any], new: dict[str, Any]) -> bool:
        """Return True when moving from *old* to *new* cannot happen in place."""
        return any(old.get(key) != new.get(key) for key in self.replace_on)

    def create(self, ctx: ProviderContext, name: str, properties: dict[str, Any]) -> CreateResult:
        """Create the resource. Return its physical id and outputs."""
        raise NotImplementedError

    def update(
        self, ctx: ProviderContext, physical_id: str, properties: dict[str, Any]
    ) -> dict[str, Any]:
        """Update the resource in place. Return its outputs."""
        raise NotImplementedError

    def delete(self, ctx: ProviderContext, physical_id: str) -> None:
        """Delete the resource."""
        raise NotImplementedError
