"""
Edge Router - Pick the next node after a node completes.

The router is a pure function of (graph, current node, current output). It
never touches run state, so every routing rule can be tested in isolation.

Rules:
- Non-condition node: the first outgoing edge in declaration order.
- Condition node: the first edge whose coerced ``condition`` equals the
  node's boolean result; otherwise the first edge without a condition;
  otherwise nothing (traversal ends).
"""

from typing import Any

from flowengine.graph.edge import EdgeSpec, GraphSpec
from flowengine.graph.node import NodeKind


def coerce_condition(value: Any) -> bool:
    """
    Coerce an edge condition or condition-node result to a boolean.

    ``"true"``/``"false"`` strings compare case-insensitively, numbers are
    true when non-zero, everything else uses ordinary truthiness.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    if isinstance(value, int | float):
        return value != 0
    return bool(value)


def select_edge(graph: GraphSpec, node_id: str, output: Any) -> EdgeSpec | None:
    """Return the edge to follow out of ``node_id``, or None at a dead end."""
    edges = graph.get_outgoing_edges(node_id)
    if not edges:
        return None

    node = graph.get_node(node_id)
    if node is None or node.kind != NodeKind.CONDITION:
        return edges[0]

    result = coerce_condition(output)
    for edge in edges:
        if edge.condition is not None and coerce_condition(edge.condition) == result:
            return edge

    for edge in edges:
        if edge.condition is None:
            return edge

    return None


def find_next_node(graph: GraphSpec, node_id: str, output: Any) -> str | None:
    """Return the id of the next node to visit, or None when traversal ends."""
    edge = select_edge(graph, node_id, output)
    return edge.target if edge else None
