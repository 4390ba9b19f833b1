"""Engine types (change sets, plans, execution results)."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Action(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    NOOP = "no-op"


def operation_key(action: Action, name: str) -> str:
    """Unique key of the operation applying *action* to *name*."""
    return f"{action.value}:{name}"


class ChangeRecord(BaseModel):
    """One planned operation on one resource.

    A replacement is two records for the same name: a ``delete`` and a
    ``create``, both flagged ``replacement``.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    resource_type: str
    action: Action
    dependencies: tuple[str, ...] = ()
    desired: dict[str, Any] | None = None
    prior: dict[str, Any] | None = None
    planned: dict[str, Any] | None = None
    diff: dict[str, Any] | None = None
    replacement: bool = False

    @property
    def key(self) -> str:
        return operation_key(self.action, self.name)


class ChangeSet(BaseModel):
    """Ordered, immutable set of change records for one planning cycle."""

    model_config = ConfigDict(frozen=True)

    records: tuple[ChangeRecord, ...] = ()

    def __len__(self) -> int:
        return len(self.records)

    def get(self, key: str) -> ChangeRecord:
        for record in self.records:
            if record.key == key:
                return record
        raise KeyError(key)

    def actionable(self) -> list[ChangeRecord]:
        return [r for r in self.records if r.action != Action.NOOP]

    def summary(self) -> dict[str, int]:
        counts = {a.value: 0 for a in Action}
        for r in self.records:
            counts[r.action.value] += 1
        return counts


class PlanMetadata(BaseModel):
    target: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    destroy: bool
    state_lineage: str
    state_serial: int
    state_digest: str
    config_digest: str
    engine_version: str


class Plan(BaseModel):
    """Parallel batches of operations derived from a change set.

    ``batches`` hold operation keys; ``operation_deps`` maps every key to the
    keys it must wait for.  ``outputs`` are the document's output templates,
    resolved once the plan has been applied.
    """

    model_config = ConfigDict(frozen=True)

    metadata: PlanMetadata
    changes: ChangeSet
    batches: tuple[tuple[str, ...], ...] = ()
    operation_deps: dict[str, tuple[str, ...]] = Field(default_factory=dict)
    outputs: dict[str, Any] = Field(default_factory=dict)

    def summary(self) -> dict[str, int]:
        return self.changes.summary()

    def save(self, path: Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = self.model_dump(mode="json")
        path.write_text(json.dumps(data, indent=2, sort_keys=True) + "\n", encoding="utf-8")

    @classmethod
    def load(cls, path: Path) -> Plan:
        path = Path(path)
        return cls.model_validate_json(path.read_text(encoding="utf-8"))


class OperationStatus(str, Enum):
    APPLIED = "applied"
    FAILED = "failed"
    BLOCKED = "blocked"
    CANCELED = "canceled"


class OperationOutcome(BaseModel):
    key: str
    name: str
    action: Action
    status: OperationStatus
    attempts: int = 0
    error: str | None = None
    blocked_by: list[str] = Field(default_factory=list)


class FailureReport(BaseModel):
    """Every operation that did not reach ``applied``, with its reason."""

    entries: list[OperationOutcome] = Field(default_factory=list)

    def _with_status(self, status: OperationStatus) -> list[OperationOutcome]:
        return [e for e in self.entries if e.status == status]

    @property
    def failed(self) -> list[OperationOutcome]:
        return self._with_status(OperationStatus.FAILED)

    @property
    def blocked(self) -> list[OperationOutcome]:
        return self._with_status(OperationStatus.BLOCKED)

    @property
    def canceled(self) -> list[OperationOutcome]:
        return self._with_status(OperationStatus.CANCELED)


class ExecutionResult(BaseModel):
    applied: list[ChangeRecord] = Field(default_factory=list)
    outcomes: dict[str, OperationOutcome] = Field(default_factory=dict)
    failure_report: FailureReport | None = None
    outputs: dict[str, Any] = Field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.failure_report is None

    def summary(self) -> dict[str, int]:
        counts = {a.value: 0 for a in Action}
        for c in self.applied:
            counts[c.action.value] += 1
        return counts
