from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from deploy_orchestrator.engine.builder import GraphBuilder
from deploy_orchestrator.engine.errors import (
    CyclicDependencyError,
    DuplicateAddressError,
    SpecValidationError,
    UnknownResourceTypeError,
    UnresolvedReferenceError,
)
from deploy_orchestrator.engine.providers import ResourceProvider
from deploy_orchestrator.engine.registry import ProviderRegistry
from deploy_orchestrator.resources.template import Template

if TYPE_CHECKING:
    from collections.abc import Callable


def _template(**data: Any) -> Template:
    return Template.model_validate(data)


def test_dependencies_from_refs_and_depends_on() -> None:
    tpl = _template(
        resources={
            "Vpc": {"type": "Test::Thing"},
            "Gateway": {"type": "Test::Thing"},
            "Subnet": {
                "type": "Test::Thing",
                "depends_on": ["Gateway"],
                "properties": {"vpc": {"Ref": "Vpc"}, "again": {"Fn::GetAtt": ["Vpc", "arn"]}},
            },
        }
    )
    graph = GraphBuilder().build(tpl)

    assert graph.get("Subnet").dependencies == ("Gateway", "Vpc")
    assert graph.topological_order() == ["Gateway", "Vpc", "Subnet"]
    assert graph.dependents("Vpc") == {"Subnet"}
    assert len(graph) == 3
    assert "Vpc" in graph


def test_unresolved_reference_fails_before_graph(template: Callable[..., Template]) -> None:
    tpl = template(B={"a": {"Ref": "A"}})

    with pytest.raises(UnresolvedReferenceError) as exc_info:
        GraphBuilder().build(tpl)

    assert exc_info.value.unresolved == [("B", "A")]


def test_unresolved_depends_on() -> None:
    tpl = _template(resources={"B": {"type": "Test::Thing", "depends_on": ["Ghost"]}})
    with pytest.raises(UnresolvedReferenceError, match="Ghost"):
        GraphBuilder().build(tpl)


def test_unresolved_reference_in_outputs(template: Callable[..., Template]) -> None:
    tpl = template(A={})
    tpl = tpl.model_copy(update={"outputs": {"Missing": {"Ref": "Nope"}}})

    with pytest.raises(UnresolvedReferenceError) as exc_info:
        GraphBuilder().build(tpl)

    assert exc_info.value.unresolved == [("output Missing", "Nope")]


def test_cycle_names_both_nodes(template: Callable[..., Template]) -> None:
    tpl = template(A={"b": {"Ref": "B"}}, B={"a": {"Ref": "A"}})

    with pytest.raises(CyclicDependencyError) as exc_info:
        GraphBuilder().build(tpl)

    assert set(exc_info.value.cycle) == {"A", "B"}
    assert "A -> B -> A" in str(exc_info.value)


def test_parameters_are_substituted_and_coerced() -> None:
    tpl = _template(
        parameters={
            "Env": {"type": "String", "allowed_values": ["dev", "prod"]},
            "Count": {"type": "Number", "default": 1},
            "Zones": {"type": "CommaDelimitedList", "default": "a, b"},
        },
        resources={
            "A": {
                "type": "Test::Thing",
                "properties": {
                    "env": {"Ref": "Env"},
                    "count": {"Ref": "Count"},
                    "zones": {"Ref": "Zones"},
                },
            }
        },
    )
    graph = GraphBuilder().build(tpl, {"Env": "prod", "Count": "3"})

    assert graph.get("A").properties == {"env": "prod", "count": 3, "zones": ["a", "b"]}
    assert graph.get("A").dependencies == ()


def test_parameter_errors_are_collected() -> None:
    tpl = _template(
        parameters={
            "Env": {"allowed_values": ["dev"]},
            "Size": {"type": "Number"},
        },
    )
    with pytest.raises(SpecValidationError) as exc_info:
        GraphBuilder().build(tpl, {"Env": "prod", "Extra": "1"})

    errors = exc_info.value.errors
    assert any("Unknown parameter 'Extra'" in e for e in errors)
    assert any("must be one of" in e for e in errors)
    assert any("'Size' has no value" in e for e in errors)


def test_parameter_and_resource_name_collision() -> None:
    tpl = _template(
        parameters={"Vpc": {"default": "x"}},
        resources={"Vpc": {"type": "Test::Thing"}},
    )
    with pytest.raises(DuplicateAddressError):
        GraphBuilder().build(tpl)


def test_find_in_map_and_bad_intrinsic() -> None:
    tpl = _template(
        mappings={"Sizes": {"small": {"cpu": 1}}},
        resources={
            "A": {
                "type": "Test::Thing",
                "properties": {"cpu": {"Fn::FindInMap": ["Sizes", "small", "cpu"]}},
            },
            "B": {"type": "Test::Thing", "properties": {"x": {"Fn::Sub": "nope"}}},
        },
    )
    with pytest.raises(SpecValidationError, match="B: Unsupported intrinsic"):
        GraphBuilder().build(tpl)


def test_unknown_type_with_registry(registry: ProviderRegistry) -> None:
    tpl = _template(resources={"A": {"type": "Nope::Thing"}})
    with pytest.raises(UnknownResourceTypeError):
        GraphBuilder(registry).build(tpl)


def test_provider_validation_errors_are_prefixed() -> None:
    class PickyProvider(ResourceProvider):
        resource_type = "Test::Picky"

        def validate(self, name: str, properties: dict[str, Any]) -> list[str]:
            return [] if "size" in properties else ["'size' is required"]

    registry = ProviderRegistry()
    registry.register(PickyProvider())
    tpl = _template(resources={"A": {"type": "Test::Picky"}, "B": {"type": "Test::Picky"}})

    with pytest.raises(SpecValidationError) as exc_info:
        GraphBuilder(registry).build(tpl)

    assert exc_info.value.errors == ["A: 'size' is required", "B: 'size' is required"]


def test_outputs_keep_resource_references(template: Callable[..., Template]) -> None:
    tpl = template(A={})
    tpl = tpl.model_copy(update={"outputs": {"Arn": {"Fn::GetAtt": "A.arn"}}})

    graph = GraphBuilder().build(tpl)

    assert graph.outputs == {"Arn": {"Fn::GetAtt": "A.arn"}}
