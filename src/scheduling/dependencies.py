from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional, Set

from campus_planner.models import DependencyCycleError, DependencyError


def find_cycle(graph: Mapping[str, Iterable[str]], start: str) -> Optional[List[str]]:
    """Return a dependency path that leads from ``start`` back to itself, if any."""
    stack = [(start, iter(graph.get(start, ())))]
    path = [start]
    on_path: Set[str] = {start}
    done: Set[str] = set()

    while stack:
        node, children = stack[-1]
        child = next(children, None)
        if child is None:
            stack.pop()
            path.pop()
            on_path.discard(node)
            done.add(node)
            continue
        if child == start:
            return path + [start]
        if child in on_path or child in done:
            continue
        stack.append((child, iter(graph.get(child, ()))))
        path.append(child)
        on_path.add(child)
    return None


def validate_dependencies(
    task_id: str,
    dependencies: Iterable[str],
    graph: Mapping[str, Iterable[str]],
) -> List[str]:
    """
    Check the dependency list ``task_id`` is about to get against the owner's
    existing graph (task id -> ids it depends on).

    Returns the de-duplicated list. Raises DependencyError for unknown ids and self
    references, DependencyCycleError for cycles.
    """
    deps: List[str] = list(dict.fromkeys(dependencies))
    if task_id in deps:
        raise DependencyError(f"task {task_id} cannot depend on itself")

    unknown = [d for d in deps if d not in graph]
    if unknown:
        raise DependencyError(f"unknown dependency ids: {', '.join(unknown)}")

    candidate: Dict[str, Iterable[str]] = dict(graph)
    candidate[task_id] = deps
    cycle = find_cycle(candidate, task_id)
    if cycle:
        raise DependencyCycleError("dependency cycle: " + " -> ".join(cycle))
    return deps
