"""State snapshot models for tracking deployed resources."""

from __future__ import annotations

import hashlib
import json
import uuid
from collections.abc import Mapping
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

STATE_VERSION = 1


def _canonical_json(obj: Any) -> str:
    # Stable encoding for hashes/digests. `default=str` keeps it robust for
    # datetimes/paths/etc while staying deterministic enough for our use.
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), default=str)


def compute_properties_hash(props: Mapping[str, Any]) -> str:
    """Compute a stable hash for a resource's last-applied properties."""
    payload = _canonical_json(props)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class ResourceStatus(str, Enum):
    PENDING = "pending"
    CREATING = "creating"
    UPDATING = "updating"
    DELETING = "deleting"
    APPLIED = "applied"
    FAILED = "failed"


class ResourceState(BaseModel):
    """A tracked resource in the state snapshot.

    Attributes:
        name: Logical name from the deployment document (e.g. "PublicSubnetOne")
        resource_type: Type tag (e.g. "Null::Resource")
        properties: Last-applied, fully resolved properties
        properties_hash: SHA256 of ``properties`` for digesting
        physical_id: Identifier assigned by the provider on create
        outputs: Provider outputs, addressable through ``Fn::GetAtt``
        dependencies: Logical names this resource depended on when applied
        status: ``applied`` or ``failed`` once persisted
        created_at: When the resource was created
        updated_at: When the resource was last updated
    """

    name: str
    resource_type: str
    properties: dict[str, Any] = Field(default_factory=dict)
    properties_hash: str = ""
    physical_id: str
    outputs: dict[str, Any] = Field(default_factory=dict)
    dependencies: list[str] = Field(default_factory=list)
    status: ResourceStatus = ResourceStatus.APPLIED
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class StateSnapshot(BaseModel):
    """Versioned snapshot of everything applied to one deployment target.

    Attributes:
        version: Snapshot format version
        target: Logical deployment target the snapshot belongs to
        serial: Incremented on every persisted write
        lineage: Fixed identity of this snapshot's history
        resources: Mapping of logical names to tracked resources
        outputs: Resolved document outputs from the last apply
    """

    version: int = STATE_VERSION
    target: str
    serial: int = 0
    lineage: str = Field(default_factory=lambda: str(uuid.uuid4()))
    resources: dict[str, ResourceState] = Field(default_factory=dict)
    outputs: dict[str, Any] = Field(default_factory=dict)

    def dependents_of(self, name: str) -> list[str]:
        """Names of tracked resources that depended on *name* when applied."""
        return sorted(n for n, r in self.resources.items() if name in r.dependencies)


def compute_state_digest(state: StateSnapshot) -> str:
    """Compute a stable digest of state content (excluding timestamps).

    Used for stale-plan detection; timestamps never force a re-plan.
    """
    resources = []
    for name, inst in sorted(state.resources.items(), key=lambda kv: kv[0]):
        resources.append(
            {
                "name": name,
                "resource_type": inst.resource_type,
                "physical_id": inst.physical_id,
                "properties_hash": inst.properties_hash,
                "status": inst.status.value,
                "dependencies": sorted(inst.dependencies),
            }
        )

    digestable = {
        "version": state.version,
        "target": state.target,
        "lineage": state.lineage,
        "serial": state.serial,
        "resources": resources,
    }
    payload = _canonical_json(digestable)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
