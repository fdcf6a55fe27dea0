"""Slot dependency graph and topological ordering."""

from collections.abc import Sequence
from enum import IntEnum

from prompt_engine.exceptions import CyclicDependencyError, UnknownDependencyError

from .types import SlotDefinition


class _Color(IntEnum):
    WHITE = 0  # not visited
    GREY = 1  # on the current DFS path
    BLACK = 2  # finished, already emitted


def build_adjacency(slots: Sequence[SlotDefinition]) -> dict[str, tuple[str, ...]]:
    """Map each slot id to its dependency ids, restricted to this request.

    Raises:
        UnknownDependencyError: If any slot depends on an id not present in ``slots``,
            listing every such slot.
    """
    known = {slot.id for slot in slots}
    missing: dict[str, list[str]] = {}
    adjacency: dict[str, tuple[str, ...]] = {}
    for slot in slots:
        unknown = [dep for dep in slot.dependencies if dep not in known]
        if unknown:
            missing[slot.id] = unknown
        adjacency[slot.id] = tuple(dict.fromkeys(slot.dependencies))
    if missing:
        raise UnknownDependencyError(missing)
    return adjacency


def topological_order(slots: Sequence[SlotDefinition]) -> list[SlotDefinition]:
    """Order slots so that every slot comes after all of its dependencies.

    Three-color depth-first search over an explicit stack, so deep chains never hit
    the recursion limit. Ties keep input order.

    Raises:
        UnknownDependencyError: If a dependency id is not among ``slots``.
        CyclicDependencyError: If the graph has a cycle; ``cycle`` holds the offending path.
    """
    adjacency = build_adjacency(slots)
    by_id = {slot.id: slot for slot in slots}
    color = dict.fromkeys(adjacency, _Color.WHITE)
    ordered: list[SlotDefinition] = []

    for root in adjacency:
        if color[root] != _Color.WHITE:
            continue
        color[root] = _Color.GREY
        path = [root]
        stack = [(root, iter(adjacency[root]))]
        while stack:
            node, deps = stack[-1]
            dep = next(deps, None)
            if dep is None:
                stack.pop()
                path.pop()
                color[node] = _Color.BLACK
                ordered.append(by_id[node])
                continue
            if color[dep] == _Color.GREY:
                start = path.index(dep)
                raise CyclicDependencyError([*path[start:], dep])
            if color[dep] == _Color.WHITE:
                color[dep] = _Color.GREY
                path.append(dep)
                stack.append((dep, iter(adjacency[dep])))

    return ordered


def find_cycle(slots: Sequence[SlotDefinition]) -> tuple[str, ...] | None:
    """Return the first dependency cycle found, or None for an acyclic slot set."""
    try:
        topological_order(slots)
    except CyclicDependencyError as e:
        return e.cycle
    return None


__all__ = ["build_adjacency", "find_cycle", "topological_order"]
