"""Graph algorithms over plain ``node -> out-edge targets`` mappings."""

from collections import defaultdict, deque
from collections.abc import Collection, Hashable, Mapping


class CycleError(ValueError):
    """The graph has no topological order.

    Attributes:
        remaining: Nodes that could not be emitted; every cycle is among them.

    """

    def __init__(self, remaining: Collection[object]) -> None:
        self.remaining = tuple(remaining)
        super().__init__("Cycle detected in graph")


def topological_sort[T: Hashable](graph: Mapping[T, Collection[T]]) -> list[T]:
    """Order nodes so every node comes before the targets of its out-edges.

    Kahn's algorithm: repeatedly emit a node with no remaining incoming edges
    and remove its out-edges. Ties are broken by first appearance in `graph`,
    so the order is deterministic for a given input.

    Args:
        graph: Mapping from node to the targets of its out-edges. Targets that
            are not keys are treated as nodes with no out-edges.

    Returns:
        Every node of the graph in topological order.

    Raises:
        CycleError: If fewer nodes can be emitted than exist, i.e. the graph
            contains a cycle (including a self-loop).

    Example:
        >>> topological_sort({"a": ["b"], "b": ["c"], "c": []})
        ['a', 'b', 'c']

    """
    indegree: defaultdict[T, int] = defaultdict(int)
    for node, targets in graph.items():
        indegree[node] += 0
        for target in targets:
            indegree[target] += 1

    queue = deque(node for node, deg in indegree.items() if deg == 0)
    order: list[T] = []

    while queue:
        node = queue.popleft()
        order.append(node)
        for target in graph.get(node, ()):
            indegree[target] -= 1
            if indegree[target] == 0:
                queue.append(target)

    if len(order) < len(indegree):
        emitted = set(order)
        raise CycleError([node for node in indegree if node not in emitted])

    return order
