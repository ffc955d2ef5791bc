"""
DAG utilities (pure).

Cycle search, stable topological ordering and transitive dependents
over a ``name → depends_on`` mapping. No I/O.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping


def find_cycle(graph: Mapping[str, Iterable[str]], start: str) -> list[str] | None:
    """Find a dependency path leading from ``start`` back to itself.

    Edges pointing at names missing from ``graph`` are ignored
    (unknown dependencies are reported separately).

    Returns:
        The cycle as a list of names beginning and ending with
        ``start``, or None.
    """
    visited: set[str] = set()
    path: list[str] = [start]

    def _walk(node: str) -> bool:
        for dep in graph.get(node, ()):
            if dep == start:
                path.append(dep)
                return True
            if dep in visited or dep not in graph:
                continue
            visited.add(dep)
            path.append(dep)
            if _walk(dep):
                return True
            path.pop()
        return False

    return list(path) if _walk(start) else None


def stable_topological_sort(
    names: list[str],
    graph: Mapping[str, Iterable[str]],
) -> list[str]:
    """Order ``names`` so that dependencies come first.

    Only edges between members of ``names`` count. Among nodes that are
    ready at the same time, the one earliest in ``names`` wins, so the
    result is deterministic and follows registration order.

    Raises:
        ValueError: If the subgraph contains a cycle.
    """
    members = set(names)
    pending: dict[str, set[str]] = {
        n: {d for d in graph.get(n, ()) if d in members and d != n} for n in names
    }
    ordered: list[str] = []
    placed: set[str] = set()

    while len(ordered) < len(names):
        for name in names:
            if name not in placed and pending[name] <= placed:
                ordered.append(name)
                placed.add(name)
                break
        else:
            remaining = [n for n in names if n not in placed]
            raise ValueError(f"Dependency cycle among: {', '.join(remaining)}")

    return ordered


def transitive_dependents(graph: Mapping[str, Iterable[str]], name: str) -> set[str]:
    """Every node that depends on ``name`` directly or indirectly."""
    reverse: dict[str, set[str]] = {}
    for node, deps in graph.items():
        for dep in deps:
            reverse.setdefault(dep, set()).add(node)

    found: set[str] = set()
    queue = [name]
    while queue:
        current = queue.pop(0)
        for dependent in reverse.get(current, ()):
            if dependent not in found:
                found.add(dependent)
                queue.append(dependent)
    found.discard(name)
    return found
