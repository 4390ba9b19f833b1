"""Diff engine: desired graph + state snapshot -> change set."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from deploy_orchestrator.core.state import ResourceStatus
from deploy_orchestrator.engine.errors import (
    CyclicDependencyError,
    InconsistentStateError,
    UnknownResourceTypeError,
    UntrackableResourceError,
)
from deploy_orchestrator.engine.graph import DependencyGraph
from deploy_orchestrator.engine.intrinsics import UNKNOWN, resolve_references
from deploy_orchestrator.engine.types import Action, ChangeRecord, ChangeSet

if TYPE_CHECKING:
    from deploy_orchestrator.core.state import ResourceState, StateSnapshot
    from deploy_orchestrator.engine.builder import ResourceGraph, ResourceNode
    from deploy_orchestrator.engine.registry import ProviderRegistry

logger = logging.getLogger(__name__)

_REPLACE = "replace"


def values_equal(a: Any, b: Any) -> bool:
    """Deep structural equality that also tells ``1``, ``1.0`` and ``True`` apart."""
    if type(a) is not type(b):
        return False
    if isinstance(a, dict):
        return a.keys() == b.keys() and all(values_equal(a[k], b[k]) for k in a)
    if isinstance(a, list):
        return len(a) == len(b) and all(values_equal(x, y) for x, y in zip(a, b))
    return a == b


def property_diff(prior: dict[str, Any], planned: dict[str, Any]) -> dict[str, Any]:
    """Per-key ``{"from", "to"}`` entries for every top-level key that differs.

    Values are compared with :func:`values_equal`; a key missing on one side
    compares as ``None``.
    """
    return {
        k: {"from": prior.get(k), "to": planned.get(k)}
        for k in sorted(set(prior) | set(planned))
        if not values_equal(prior.get(k), planned.get(k))
    }


def check_state(state: StateSnapshot) -> None:
    """Raise :class:`InconsistentStateError` if the snapshot contradicts itself."""
    problems: list[str] = []
    for name, inst in sorted(state.resources.items()):
        if inst.name != name:
            problems.append(f"'{name}' is recorded under the name '{inst.name}'")
        if not inst.physical_id:
            problems.append(f"'{name}' has no physical id")
    if not problems:
        try:
            DependencyGraph(
                state.resources, {n: r.dependencies for n, r in state.resources.items()}
            ).topological_order()
        except CyclicDependencyError as exc:
            problems.append(str(exc))
    if problems:
        raise InconsistentStateError(problems)


def delete_record(inst: ResourceState, *, replacement: bool = False) -> ChangeRecord:
    return ChangeRecord(
        name=inst.name,
        resource_type=inst.resource_type,
        action=Action.DELETE,
        dependencies=tuple(inst.dependencies),
        prior=dict(inst.properties),
        replacement=replacement,
    )


class DiffEngine:
    """Classifies every resource as create, update, delete, replace or no-op."""

    def __init__(self, registry: ProviderRegistry) -> None:
        self._registry = registry

    def _check_provider(self, inst: ResourceState) -> None:
        try:
            self._registry.get(inst.resource_type)
        except UnknownResourceTypeError as exc:
            raise UntrackableResourceError(inst.name, inst.resource_type) from exc

    def _plan_deletes(self, state: StateSnapshot, names: set[str]) -> list[ChangeRecord]:
        """Delete records for *names* in reverse dependency order."""
        for name in sorted(names):
            self._check_provider(state.resources[name])
        order = DependencyGraph(
            names, {n: state.resources[n].dependencies for n in names}
        ).reverse_topological_order()
        return [delete_record(state.resources[n]) for n in order]

    def _classify(
        self,
        node: ResourceNode,
        state: StateSnapshot,
        actions: dict[str, str],
    ) -> list[ChangeRecord]:
        def ref(name: str) -> Any:
            if actions.get(name) in (Action.CREATE.value, _REPLACE):
                return UNKNOWN
            return state.resources[name].physical_id

        def get_att(name: str, attr: str) -> Any:
            if actions.get(name) in (Action.CREATE.value, _REPLACE):
                return UNKNOWN
            return state.resources[name].outputs.get(attr)

        planned = resolve_references(node.properties, ref, get_att)
        prior = state.resources.get(node.name)

        if prior is None:
            logger.debug("Classified %s as create", node.name)
            actions[node.name] = Action.CREATE.value
            return [
                ChangeRecord(
                    name=node.name,
                    resource_type=node.resource_type,
                    action=Action.CREATE,
                    dependencies=node.dependencies,
                    desired=node.properties,
                    planned=planned,
                )
            ]

        diff = property_diff(prior.properties, planned)
        provider = self._registry.get(node.resource_type)
        replace = prior.resource_type != node.resource_type or (
            bool(diff) and provider.is_replacement_required(dict(prior.properties), planned)
        )
        if replace:
            logger.debug("Classified %s as replace", node.name)
            self._check_provider(prior)
            actions[node.name] = _REPLACE
            return [
                delete_record(prior, replacement=True),
                ChangeRecord(
                    name=node.name,
                    resource_type=node.resource_type,
                    action=Action.CREATE,
                    dependencies=node.dependencies,
                    desired=node.properties,
                    prior=dict(prior.properties),
                    planned=planned,
                    diff=diff or None,
                    replacement=True,
                ),
            ]

        action = Action.UPDATE if diff or prior.status != ResourceStatus.APPLIED else Action.NOOP
        logger.debug("Classified %s as %s", node.name, action.value)
        actions[node.name] = action.value
        return [
            ChangeRecord(
                name=node.name,
                resource_type=node.resource_type,
                action=action,
                dependencies=node.dependencies,
                desired=node.properties,
                prior=dict(prior.properties),
                planned=planned,
                diff=diff or None,
            )
        ]

    def diff(self, graph: ResourceGraph, state: StateSnapshot) -> ChangeSet:
        """Compare the desired graph with the last-applied state."""
        check_state(state)
        actions: dict[str, str] = {}
        records: list[ChangeRecord] = []
        for name in graph.topological_order():
            records.extend(self._classify(graph.get(name), state, actions))
        records.extend(self._plan_deletes(state, set(state.resources) - set(graph.nodes)))
        return ChangeSet(records=tuple(records))

    def destroy(self, state: StateSnapshot) -> ChangeSet:
        """Delete everything the state tracks."""
        check_state(state)
        return ChangeSet(records=tuple(self._plan_deletes(state, set(state.resources))))
