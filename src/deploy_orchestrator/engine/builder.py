"""Resource graph builder: template -> validated DAG of resource nodes."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from deploy_orchestrator.engine.errors import (
    DuplicateAddressError,
    SpecValidationError,
    UnresolvedReferenceError,
)
from deploy_orchestrator.engine.graph import DependencyGraph
from deploy_orchestrator.engine.intrinsics import (
    IntrinsicError,
    collect_references,
    substitute_static,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from deploy_orchestrator.engine.registry import ProviderRegistry
    from deploy_orchestrator.resources.template import Template

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResourceNode:
    """A resource in the desired graph.

    ``properties`` have parameters and mappings substituted; references to
    other resources are still intrinsic calls.  ``dependencies`` holds the
    explicit ``depends_on`` entries followed by the names referenced from
    properties.
    """

    name: str
    resource_type: str
    properties: dict[str, Any] = field(default_factory=dict)
    dependencies: tuple[str, ...] = ()


class ResourceGraph:
    """Validated, acyclic set of resource nodes."""

    def __init__(self, nodes: Mapping[str, ResourceNode], outputs: Mapping[str, Any]) -> None:
        self._nodes = dict(nodes)
        self._outputs = dict(outputs)
        self._graph = DependencyGraph(
            self._nodes, {n: node.dependencies for n, node in self._nodes.items()}
        )
        # Raises CyclicDependencyError.
        self._order = self._graph.topological_order()
        self._dependents = self._graph.dependents()

    @property
    def nodes(self) -> dict[str, ResourceNode]:
        return dict(self._nodes)

    @property
    def outputs(self) -> dict[str, Any]:
        return dict(self._outputs)

    def __contains__(self, name: object) -> bool:
        return name in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def get(self, name: str) -> ResourceNode:
        return self._nodes[name]

    def topological_order(self) -> list[str]:
        return list(self._order)

    def dependents(self, name: str) -> set[str]:
        return set(self._dependents[name])


def _resolve_parameters(template: Template, overrides: Mapping[str, Any]) -> dict[str, Any]:
    errors: list[str] = []
    values: dict[str, Any] = {}
    for name in sorted(set(overrides) - set(template.parameters)):
        errors.append(f"Unknown parameter '{name}'")
    for name, definition in template.parameters.items():
        raw = overrides.get(name, definition.default)
        if raw is None:
            errors.append(f"Parameter '{name}' has no value and no default")
            continue
        try:
            values[name] = definition.coerce(name, raw)
        except ValueError as exc:
            errors.append(str(exc))
    if errors:
        raise SpecValidationError(errors)
    return values


class GraphBuilder:
    """Turns a :class:`Template` into a :class:`ResourceGraph`.

    With a registry, every resource type must have a provider and each
    provider gets to validate its resources' properties.  Building never
    touches the outside world.
    """

    def __init__(self, registry: ProviderRegistry | None = None) -> None:
        self._registry = registry

    def build(
        self, template: Template, parameters: Mapping[str, Any] | None = None
    ) -> ResourceGraph:
        for name in template.resources:
            if name in template.parameters:
                raise DuplicateAddressError(name)

        values = _resolve_parameters(template, parameters or {})

        if self._registry is not None:
            for definition in template.resources.values():
                self._registry.get(definition.type)

        errors: list[str] = []
        nodes: dict[str, ResourceNode] = {}
        unresolved: list[tuple[str, str]] = []
        for name, definition in template.resources.items():
            try:
                props = substitute_static(definition.properties, values, template.mappings)
                refs = collect_references(props)
            except IntrinsicError as exc:
                errors.append(f"{name}: {exc}")
                continue

            deps: list[str] = []
            for dep in [*definition.depends_on, *refs]:
                if dep not in template.resources:
                    unresolved.append((name, dep))
                elif dep not in deps:
                    deps.append(dep)
            nodes[name] = ResourceNode(
                name=name,
                resource_type=definition.type,
                properties=props,
                dependencies=tuple(deps),
            )

        outputs: dict[str, Any] = {}
        for out_name, out_value in template.outputs.items():
            try:
                outputs[out_name] = substitute_static(out_value, values, template.mappings)
                refs = collect_references(outputs[out_name])
            except IntrinsicError as exc:
                errors.append(f"output {out_name}: {exc}")
                continue
            unresolved.extend(
                (f"output {out_name}", ref) for ref in refs if ref not in template.resources
            )

        if errors:
            raise SpecValidationError(errors)
        if unresolved:
            raise UnresolvedReferenceError(unresolved)

        graph = ResourceGraph(nodes, outputs)

        if self._registry is not None:
            for node in nodes.values():
                provider = self._registry.get(node.resource_type)
                errors.extend(
                    f"{node.name}: {msg}" for msg in provider.validate(node.name, node.properties)
                )
            if errors:
                raise SpecValidationError(errors)

        logger.debug("Built resource graph with %d nodes", len(graph))
        return graph
