"""
Edge Protocol - How nodes connect in a workflow graph.

An edge links a source node to a target node. Its optional ``condition``
only matters when the source is a Condition node: the router compares the
coerced condition against the node's boolean result. An edge without a
condition is the default (fallback) path.

GraphSpec is the immutable workflow definition handed to the executor and
the JSON interchange format used for import/export.
"""

import json
import uuid
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, model_validator

from flowengine.graph.errors import GraphIntegrityFault
from flowengine.graph.node import NodeKind, NodeSpec


class EdgeSpec(BaseModel):
    """
    Specification for an edge between nodes.

    Examples:
        # Unconditional
        EdgeSpec(id="start-to-agent", source="start", target="agent")

        # Branch taken when the condition node evaluates to True
        EdgeSpec(id="check-yes", source="check", target="approve", condition=True)

        # Fallback branch (no condition)
        EdgeSpec(id="check-default", source="check", target="review")
    """

    id: str = ""
    source: str = Field(description="Source node ID")
    target: str = Field(description="Target node ID")
    label: str = ""
    condition: bool | int | float | str | None = Field(
        default=None,
        description="Branch value for Condition sources; None marks the default edge",
    )

    @model_validator(mode="after")
    def _default_id(self) -> "EdgeSpec":
        if not self.id:
            self.id = f"{self.source}->{self.target}"
        return self

    @property
    def is_default(self) -> bool:
        return self.condition is None


class VariableDecl(BaseModel):
    """A run variable declared on the graph, seeded with its default value."""

    name: str
    type: str = "string"
    default_value: Any = None
    description: str = ""

    @model_validator(mode="before")
    @classmethod
    def _legacy_keys(cls, data: Any) -> Any:
        if isinstance(data, dict) and "defaultValue" in data and "default_value" not in data:
            data = {**data, "default_value": data["defaultValue"]}
            data.pop("defaultValue")
        return data


class GraphSpec(BaseModel):
    """
    Complete definition of a workflow graph.

    Example:
        GraphSpec(
            id="triage",
            name="Ticket triage",
            nodes=[
                NodeSpec(id="start", kind=NodeKind.START),
                NodeSpec(id="classify", kind=NodeKind.AGENT,
                         config=AgentConfig(agent_id="classifier")),
                NodeSpec(id="end", kind=NodeKind.END),
            ],
            edges=[
                EdgeSpec(source="start", target="classify"),
                EdgeSpec(source="classify", target="end"),
            ],
        )
    """

    id: str
    name: str = ""
    description: str = ""
    nodes: list[NodeSpec] = Field(default_factory=list)
    edges: list[EdgeSpec] = Field(default_factory=list)
    variables: list[VariableDecl] = Field(default_factory=list)

    model_config = {"extra": "allow"}

    def get_node(self, node_id: str) -> NodeSpec | None:
        """Get a node by ID."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def get_nodes_of_kind(self, kind: NodeKind) -> list[NodeSpec]:
        return [node for node in self.nodes if node.kind == kind]

    def get_start_node(self) -> NodeSpec | None:
        starts = self.get_nodes_of_kind(NodeKind.START)
        return starts[0] if starts else None

    def get_end_node(self) -> NodeSpec | None:
        ends = self.get_nodes_of_kind(NodeKind.END)
        return ends[0] if ends else None

    def get_outgoing_edges(self, node_id: str) -> list[EdgeSpec]:
        """Get all edges leaving a node, in declaration order."""
        return [e for e in self.edges if e.source == node_id]

    def get_incoming_edges(self, node_id: str) -> list[EdgeSpec]:
        """Get all edges entering a node."""
        return [e for e in self.edges if e.target == node_id]

    def default_variables(self) -> dict[str, Any]:
        return {var.name: var.default_value for var in self.variables}

    def validate(self) -> list[str]:  # type: ignore[override]
        """Validate the graph structure. Returns errors that make the graph unrunnable."""
        errors = []

        starts = self.get_nodes_of_kind(NodeKind.START)
        if not starts:
            errors.append("Graph has no start node")
        elif len(starts) > 1:
            errors.append(f"Graph has {len(starts)} start nodes: {[n.id for n in starts]}")

        seen: set[str] = set()
        for node in self.nodes:
            if node.id in seen:
                errors.append(f"Duplicate node ID: '{node.id}'")
            seen.add(node.id)

        for edge in self.edges:
            if not self.get_node(edge.source):
                errors.append(f"Edge '{edge.id}' references missing source '{edge.source}'")
            if not self.get_node(edge.target):
                errors.append(f"Edge '{edge.id}' references missing target '{edge.target}'")

        for node in self.get_nodes_of_kind(NodeKind.CONDITION):
            if not self.get_outgoing_edges(node.id):
                errors.append(f"Condition node '{node.id}' has no outgoing edges")

        return errors

    def find_warnings(self) -> list[str]:
        """Problems the engine tolerates but an author probably wants to know about."""
        warnings = []

        if not self.get_nodes_of_kind(NodeKind.END):
            warnings.append("Graph has no end node; runs complete at the first dead end")

        start = self.get_start_node()
        if start is not None:
            reachable: set[str] = set()
            to_visit = [start.id]
            while to_visit:
                current = to_visit.pop()
                if current in reachable:
                    continue
                reachable.add(current)
                for edge in self.get_outgoing_edges(current):
                    to_visit.append(edge.target)

            for node in self.nodes:
                # The end node is reachable implicitly: dead ends jump to it
                if node.id not in reachable and node.kind != NodeKind.END:
                    warnings.append(f"Node '{node.id}' is unreachable from start")

        return warnings

    def to_json(self, indent: int | None = 2) -> str:
        """Serialize to the JSON interchange format."""
        return self.model_dump_json(indent=indent)


def load_graph(source: str | bytes | Path | dict[str, Any]) -> GraphSpec:
    """
    Parse a graph from JSON text, a JSON file path, or an already-decoded dict.

    Raises:
        GraphIntegrityFault: the document is not valid JSON or not a valid graph
    """
    try:
        if isinstance(source, Path):
            data: Any = json.loads(source.read_text(encoding="utf-8"))
        elif isinstance(source, str | bytes):
            data = json.loads(source)
        else:
            data = source
        return GraphSpec.model_validate(data)
    except (json.JSONDecodeError, ValidationError) as e:
        raise GraphIntegrityFault(f"Invalid workflow definition: {e}") from e


def import_graph(source: str | bytes | Path | dict[str, Any]) -> GraphSpec:
    """Parse a graph for import, giving it a fresh unique id."""
    graph = load_graph(source)
    return graph.model_copy(update={"id": uuid.uuid4().hex})
