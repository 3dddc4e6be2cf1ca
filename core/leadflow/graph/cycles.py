"""
Cycle detection for automation graphs.

Two entry points:
- ``would_create_cycle``: the edit-time check run for every proposed edge.
  It searches backwards from the candidate target through reverse edges
  (with the candidate edge added) and reports a cycle when the search
  re-enters a node on the current DFS path. Only edges reachable from the
  candidate target are touched.
- ``find_cycle``: a whole-graph scan used by save-time validation, for
  graphs that did not come through the edit path (imports, API payloads).

Both DFS implementations are iterative so deep chains cannot hit the
interpreter recursion limit.
"""

from collections.abc import Iterable, Mapping, Sequence

from leadflow.graph.edge import EdgeSpec


def build_adjacency(edges: Iterable[EdgeSpec]) -> dict[str, list[str]]:
    """Forward adjacency: source -> targets, in edge order."""
    adjacency: dict[str, list[str]] = {}
    for edge in edges:
        adjacency.setdefault(edge.source_node_id, []).append(edge.target_node_id)
    return adjacency


def build_reverse_adjacency(edges: Iterable[EdgeSpec]) -> dict[str, list[str]]:
    """Reverse adjacency: target -> sources, in edge order."""
    reverse: dict[str, list[str]] = {}
    for edge in edges:
        reverse.setdefault(edge.target_node_id, []).append(edge.source_node_id)
    return reverse


def _dfs_hits_stack(start: str, adjacency: Mapping[str, Sequence[str]]) -> bool:
    """True if DFS from ``start`` reaches a node already on its recursion stack."""
    visited: set[str] = {start}
    recursion_stack: set[str] = {start}
    stack: list[tuple[str, int]] = [(start, 0)]

    while stack:
        node_id, index = stack[-1]
        neighbors = adjacency.get(node_id, ())
        if index >= len(neighbors):
            stack.pop()
            recursion_stack.discard(node_id)
            continue

        stack[-1] = (node_id, index + 1)
        neighbor = neighbors[index]
        if neighbor in recursion_stack:
            return True
        if neighbor not in visited:
            visited.add(neighbor)
            recursion_stack.add(neighbor)
            stack.append((neighbor, 0))

    return False


def would_create_cycle(
    edges: Iterable[EdgeSpec],
    candidate_source: str,
    candidate_target: str,
) -> bool:
    """
    Check whether adding ``candidate_source -> candidate_target`` closes a cycle.

    Args:
        edges: Existing edges of the graph
        candidate_source: Source node of the proposed edge
        candidate_target: Target node of the proposed edge

    Returns:
        True if the proposed edge would create a directed cycle
    """
    reverse = build_reverse_adjacency(edges)
    reverse.setdefault(candidate_target, []).append(candidate_source)
    return _dfs_hits_stack(candidate_target, reverse)


def find_cycle(node_ids: Iterable[str], edges: Iterable[EdgeSpec]) -> list[str] | None:
    """
    Find one directed cycle in the graph.

    Returns:
        The cycle as a node path whose first and last element are the same
        node (``["a", "b", "a"]``), or None if the graph is acyclic
    """
    adjacency = build_adjacency(edges)
    visited: set[str] = set()

    for root in node_ids:
        if root in visited:
            continue

        path: list[str] = [root]
        on_path: set[str] = {root}
        visited.add(root)
        stack: list[tuple[str, int]] = [(root, 0)]

        while stack:
            node_id, index = stack[-1]
            neighbors = adjacency.get(node_id, [])
            if index >= len(neighbors):
                stack.pop()
                path.pop()
                on_path.discard(node_id)
                continue

            stack[-1] = (node_id, index + 1)
            neighbor = neighbors[index]
            if neighbor in on_path:
                start = path.index(neighbor)
                return [*path[start:], neighbor]
            if neighbor not in visited:
                visited.add(neighbor)
                on_path.add(neighbor)
                path.append(neighbor)
                stack.append((neighbor, 0))

    return None


def reachable_from(start: str, adjacency: Mapping[str, Sequence[str]]) -> set[str]:
    """All nodes reachable from ``start`` (inclusive)."""
    reachable = {start}
    to_visit = [start]
    while to_visit:
        current = to_visit.pop()
        for neighbor in adjacency.get(current, ()):
            if neighbor not in reachable:
                reachable.add(neighbor)
                to_visit.append(neighbor)
    return reachable
