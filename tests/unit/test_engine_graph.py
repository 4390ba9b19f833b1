import pytest

from deploy_orchestrator.engine.errors import CyclicDependencyError
from deploy_orchestrator.engine.graph import DependencyGraph


def test_topological_order_deterministic() -> None:
    graph = DependencyGraph(nodes=["a", "b", "c"], dependencies={"b": ["a"], "c": ["a"]})
    assert graph.topological_order() == ["a", "b", "c"]


def test_topological_order_ignores_external_deps() -> None:
    graph = DependencyGraph(nodes=["a", "b"], dependencies={"b": ["external"]})
    assert graph.topological_order() == ["a", "b"]


def test_reverse_topological_order() -> None:
    graph = DependencyGraph(nodes=["a", "b", "c"], dependencies={"b": ["a"], "c": ["b"]})
    assert graph.reverse_topological_order() == ["c", "b", "a"]


def test_cycle_detection_names_both_nodes() -> None:
    graph = DependencyGraph(nodes=["a", "b"], dependencies={"a": ["b"], "b": ["a"]})
    with pytest.raises(CyclicDependencyError) as exc_info:
        graph.topological_order()

    assert exc_info.value.cycle == ["a", "b", "a"]
    assert "a -> b -> a" in str(exc_info.value)


def test_find_cycle_returns_only_the_cycle() -> None:
    graph = DependencyGraph(
        nodes=["root", "x", "y", "z"],
        dependencies={"root": ["x"], "x": ["y"], "y": ["z"], "z": ["x"]},
    )
    cycle = graph.find_cycle()
    assert cycle[0] == cycle[-1]
    assert set(cycle) == {"x", "y", "z"}


def test_find_cycle_empty_for_dag() -> None:
    graph = DependencyGraph(nodes=["a", "b"], dependencies={"b": ["a"]})
    assert graph.find_cycle() == []


def test_self_dependency_is_a_cycle() -> None:
    graph = DependencyGraph(nodes=["a"], dependencies={"a": ["a"]})
    with pytest.raises(CyclicDependencyError):
        graph.batches()


def test_batches_group_independent_nodes() -> None:
    graph = DependencyGraph(
        nodes=["vpc", "subnet_a", "subnet_b", "instance"],
        dependencies={
            "subnet_a": ["vpc"],
            "subnet_b": ["vpc"],
            "instance": ["subnet_a", "subnet_b"],
        },
    )
    assert graph.batches() == [["vpc"], ["subnet_a", "subnet_b"], ["instance"]]


def test_batches_use_sort_key() -> None:
    graph = DependencyGraph(
        nodes=["b", "a", "c"],
        dependencies={},
        sort_key=lambda n: {"c": 0, "a": 1, "b": 2}[n],
    )
    assert graph.batches() == [["c", "a", "b"]]


def test_dependents_inverts_edges() -> None:
    graph = DependencyGraph(nodes=["a", "b", "c"], dependencies={"b": ["a"], "c": ["a"]})
    assert graph.dependents() == {"a": {"b", "c"}, "b": set(), "c": set()}
