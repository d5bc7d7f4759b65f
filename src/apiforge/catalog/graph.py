"""Virtual-field dependency graph: cycle detection and evaluation order."""

from __future__ import annotations

from collections.abc import Iterable, Mapping


def find_cycle(graph: Mapping[str, Iterable[str]]) -> list[str] | None:
    """
    Return the first dependency cycle in ``graph`` or ``None``.

    Depth-first traversal with visiting/visited colouring. The returned
    chain starts and ends with the first node found twice on the active
    path, e.g. ``["a", "b", "a"]``. Edges to nodes absent from ``graph``
    are ignored (they are persisted columns).
    """
    visited: set[str] = set()
    visiting: set[str] = set()
    path: list[str] = []

    def visit(node: str) -> list[str] | None:
        visiting.add(node)
        path.append(node)
        for dep in graph.get(node, ()):
            if dep not in graph:
                continue
            if dep in visiting:
                start = path.index(dep)
                return [*path[start:], dep]
            if dep not in visited:
                cycle = visit(dep)
                if cycle:
                    return cycle
        visiting.discard(node)
        visited.add(node)
        path.pop()
        return None

    for node in graph:
        if node not in visited:
            cycle = visit(node)
            if cycle:
                return cycle
    return None


def evaluation_order(
    graph: Mapping[str, Iterable[str]], targets: Iterable[str]
) -> list[str]:
    """
    Return ``targets`` plus their virtual prerequisites, dependencies first.

    ``graph`` must be acyclic (the catalog guarantees it at registration).
    """
    ordered: list[str] = []
    seen: set[str] = set()

    def visit(node: str) -> None:
        if node in seen:
            return
        seen.add(node)
        for dep in graph.get(node, ()):
            if dep in graph:
                visit(dep)
        ordered.append(node)

    for target in targets:
        if target in graph:
            visit(target)
    return ordered
