"""
Topological ordering with DFS colouring.

Nodes are emitted in dependency-first order while preserving the input order
as far as the edges allow. Nodes on a cycle, and every node that depends on a
rejected node, are reported instead of being placed.
"""
from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

WHITE, GRAY, BLACK = 0, 1, 2


@dataclass
class TopologicalOrder:
    order: list[str] = field(default_factory=list)
    rejected: list[str] = field(default_factory=list)
    cycles: list[list[str]] = field(default_factory=list)

    @property
    def has_cycles(self) -> bool:
        return bool(self.cycles)


def topological_sort(
    node_ids: Iterable[str],
    dependencies: Callable[[str], Iterable[str]],
    strict: bool = False,
) -> TopologicalOrder:
    """
    Order ``node_ids`` so every dependency precedes its dependant.

    Args:
        node_ids: Nodes to order, in preferred order
        dependencies: Returns the ids a node depends on
        strict: Reject nodes that depend on ids outside ``node_ids``
            (otherwise such edges are ignored)

    Returns:
        TopologicalOrder with the placed order, rejected nodes (input order)
        and each detected cycle
    """
    nodes = list(dict.fromkeys(node_ids))
    members = set(nodes)
    colour = dict.fromkeys(nodes, WHITE)
    rejected: set[str] = set()
    result = TopologicalOrder()

    def visit(node: str, path: list[str]) -> None:
        colour[node] = GRAY
        path.append(node)
        for dep in dependencies(node):
            if dep not in members:
                if strict:
                    rejected.add(node)
                continue
            if colour[dep] == GRAY:
                cycle = path[path.index(dep):]
                result.cycles.append(list(cycle))
                rejected.update(cycle)
            elif colour[dep] == WHITE:
                visit(dep, path)
            if dep in rejected:
                rejected.add(node)
        path.pop()
        colour[node] = BLACK
        if node not in rejected:
            result.order.append(node)

    for node in nodes:
        if colour[node] == WHITE:
            visit(node, [])

    result.rejected = [node for node in nodes if node in rejected]
    return result
