"""Directed graph helpers over system ids (or slugs). Edges point from a system to what it depends on."""

from collections import deque
from collections.abc import Iterable

from pydantic import BaseModel, Field


class DirectedGraph(BaseModel):
    nodes: list[str] = Field(default_factory=list)
    adjacency: dict[str, list[str]] = Field(default_factory=dict)


def build_graph(nodes: Iterable[str], edges: Iterable[tuple[str, str]]) -> DirectedGraph:
    """Build a graph; edges touching unknown nodes and repeated pairs are ignored."""
    graph = DirectedGraph()
    for node in nodes:
        if node in graph.adjacency:
            continue
        graph.nodes.append(node)
        graph.adjacency[node] = []

    for source, target in edges:
        if source not in graph.adjacency or target not in graph.adjacency:
            continue
        if target in graph.adjacency[source]:
            continue
        graph.adjacency[source].append(target)
    return graph


def detect_cycles(graph: DirectedGraph) -> list[list[str]]:
    """DFS with a visiting set, run on an explicit stack; returns each back-edge cycle as a node path."""
    cycles: list[list[str]] = []
    done: set[str] = set()

    for root in graph.nodes:
        if root in done:
            continue
        path = [root]
        visiting = {root}
        pending = [iter(graph.adjacency.get(root, []))]
        while pending:
            nxt = next(pending[-1], None)
            if nxt is None:
                pending.pop()
                node = path.pop()
                visiting.discard(node)
                done.add(node)
            elif nxt in visiting:
                cycles.append(path[path.index(nxt):])
            elif nxt not in done:
                path.append(nxt)
                visiting.add(nxt)
                pending.append(iter(graph.adjacency.get(nxt, [])))
    return cycles


def topological_sort(graph: DirectedGraph) -> list[str] | None:
    """Kahn's algorithm in node insertion order. Returns None when the graph has a cycle."""
    in_degree = {node: 0 for node in graph.nodes}
    for targets in graph.adjacency.values():
        for target in targets:
            in_degree[target] += 1

    queue = deque(node for node in graph.nodes if in_degree[node] == 0)
    order: list[str] = []
    while queue:
        node = queue.popleft()
        order.append(node)
        for target in graph.adjacency[node]:
            in_degree[target] -= 1
            if in_degree[target] == 0:
                queue.append(target)

    return order if len(order) == len(graph.nodes) else None
