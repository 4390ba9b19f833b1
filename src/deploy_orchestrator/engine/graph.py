"""Dependency graph utilities."""

from __future__ import annotations

import heapq
from typing import TYPE_CHECKING, Any

from deploy_orchestrator.engine.errors import CyclicDependencyError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping


class DependencyGraph:
    """A directed graph where nodes depend on other nodes.

    Dependencies on nodes outside the graph are ignored, so callers can pass
    a full dependency map and a subset of nodes.
    """

    def __init__(
        self,
        nodes: Iterable[str],
        dependencies: Mapping[str, Iterable[str]],
        sort_key: Callable[[str], Any] | None = None,
    ) -> None:
        self._nodes = set(nodes)
        self._sort_key = sort_key or (lambda n: n)
        # node -> filtered deps within graph
        self._deps: dict[str, set[str]] = {}
        for node in self._nodes:
            deps = set(dependencies.get(node, []))
            self._deps[node] = {d for d in deps if d in self._nodes}

    def dependents(self) -> dict[str, set[str]]:
        """Invert the edges: node -> nodes that depend on it."""
        result: dict[str, set[str]] = {n: set() for n in self._nodes}
        for node, deps in self._deps.items():
            for dep in deps:
                result[dep].add(node)
        return result

    def topological_order(self) -> list[str]:
        """Return deterministic topo order (lexicographic tie-break)."""
        indegree = {node: len(deps) for node, deps in self._deps.items()}
        dependents = self.dependents()

        ready = [(self._sort_key(n), n) for n, deg in indegree.items() if deg == 0]
        heapq.heapify(ready)

        order: list[str] = []
        while ready:
            _, node = heapq.heappop(ready)
            order.append(node)
            for child in dependents[node]:
                indegree[child] -= 1
                if indegree[child] == 0:
                    heapq.heappush(ready, (self._sort_key(child), child))

        if len(order) != len(self._nodes):
            raise CyclicDependencyError(self.find_cycle())

        return order

    def reverse_topological_order(self) -> list[str]:
        order = self.topological_order()
        order.reverse()
        return order

    def batches(self) -> list[list[str]]:
        """Group nodes into layers of mutually independent nodes.

        Layer N+1 only depends on nodes in layers <= N.  Each layer is sorted
        with the graph's sort key.
        """
        indegree = {node: len(deps) for node, deps in self._deps.items()}
        dependents = self.dependents()

        layer = sorted((n for n, deg in indegree.items() if deg == 0), key=self._sort_key)
        layers: list[list[str]] = []
        seen = 0
        while layer:
            layers.append(layer)
            seen += len(layer)
            nxt: list[str] = []
            for node in layer:
                for child in dependents[node]:
                    indegree[child] -= 1
                    if indegree[child] == 0:
                        nxt.append(child)
            layer = sorted(nxt, key=self._sort_key)

        if seen != len(self._nodes):
            raise CyclicDependencyError(self.find_cycle())

        return layers

    def find_cycle(self) -> list[str]:
        """Return one cycle as a closed path (first node repeated last), or []."""
        white, grey, black = 0, 1, 2
        color = dict.fromkeys(self._nodes, white)
        parent: dict[str, str] = {}

        for root in sorted(self._nodes, key=self._sort_key):
            if color[root] != white:
                continue
            stack: list[tuple[str, list[str]]] = [
                (root, sorted(self._deps[root], key=self._sort_key))
            ]
            color[root] = grey
            while stack:
                node, pending = stack[-1]
                if not pending:
                    color[node] = black
                    stack.pop()
                    continue
                dep = pending.pop(0)
                if color[dep] == grey:
                    cycle = [dep]
                    cur = node
                    while cur != dep:
                        cycle.append(cur)
                        cur = parent[cur]
                    cycle.append(dep)
                    cycle.reverse()
                    return cycle
                if color[dep] == white:
                    parent[dep] = node
                    color[dep] = grey
                    stack.append((dep, sorted(self._deps[dep], key=self._sort_key)))
        return []
