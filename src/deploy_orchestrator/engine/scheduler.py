"""Plan scheduler: change set -> parallel batches of operations.

Terraform runs apply by walking a graph of operations rather than a graph of
resources.  Each actionable change record becomes one operation keyed
``<action>:<name>``; edges say which operations must settle first:

- create/update waits for the create/update of every resource it depends on
- a replacement's create waits for its own delete
- a delete waits for the delete of every resource that depended on it, and
  for the create/update of surviving resources that stop referencing it
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from deploy_orchestrator.engine.graph import DependencyGraph
from deploy_orchestrator.engine.types import Action

if TYPE_CHECKING:
    from deploy_orchestrator.core.state import StateSnapshot
    from deploy_orchestrator.engine.types import ChangeRecord, ChangeSet

logger = logging.getLogger(__name__)

_ACTION_RANK = {Action.DELETE: 0, Action.CREATE: 1, Action.UPDATE: 2}


@dataclass(frozen=True)
class Schedule:
    batches: tuple[tuple[str, ...], ...]
    operation_deps: dict[str, tuple[str, ...]]


class PlanScheduler:
    """Orders the operations of a change set into dependency-respecting batches."""

    def _operation_deps(
        self, changes: ChangeSet, state: StateSnapshot
    ) -> tuple[dict[str, ChangeRecord], dict[str, list[str]]]:
        ops: dict[str, ChangeRecord] = {}
        create_update: dict[str, str] = {}
        deletes: dict[str, str] = {}

        for record in changes.records:
            match record.action:
                case Action.NOOP:
                    continue
                case Action.CREATE | Action.UPDATE:
                    create_update[record.name] = record.key
                case Action.DELETE:
                    deletes[record.name] = record.key
                case _:
                    raise ValueError(f"Unknown action: {record.action}")
            if record.key in ops:
                raise ValueError(f"Duplicate operation key in change set: {record.key}")
            ops[record.key] = record

        deps: dict[str, list[str]] = {key: [] for key in ops}

        # create/update: dependencies must run before dependents
        for name, key in create_update.items():
            record = ops[key]
            deps[key].extend(create_update[d] for d in record.dependencies if d in create_update)
            if record.replacement and name in deletes:
                deps[key].append(deletes[name])

        # deletes: dependents go first, or move off this resource first
        for name, key in deletes.items():
            for dependent in state.dependents_of(name):
                if dependent == name:
                    continue
                if dependent in deletes:
                    deps[key].append(deletes[dependent])
                elif dependent in create_update:
                    moving = ops[create_update[dependent]]
                    if name not in moving.dependencies:
                        deps[key].append(create_update[dependent])

        return ops, deps

    def schedule(self, changes: ChangeSet, state: StateSnapshot) -> Schedule:
        ops, deps = self._operation_deps(changes, state)

        def sort_key(key: str) -> tuple[str, int]:
            record = ops[key]
            return record.name, _ACTION_RANK[record.action]

        batches = DependencyGraph(ops, deps, sort_key=sort_key).batches()
        logger.debug("Scheduled %d operations into %d batches", len(ops), len(batches))
        return Schedule(
            batches=tuple(tuple(b) for b in batches),
            operation_deps={k: tuple(sorted(set(v))) for k, v in deps.items()},
        )
