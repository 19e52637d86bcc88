"""
Expression Tree Types

Data structures for the knowledge base: instances, domain signatures and the
flat, index-addressed expression trees used for facts, goals and contingent
facts.
"""

import copy
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field
from enum import Enum


class NodeType(Enum):
    """Kinds of node an expression tree can hold."""
    AND = "and"
    OR = "or"
    NOT = "not"
    UNKNOWN = "unknown"
    ONE_OF = "oneof"
    PREDICATE = "predicate"
    FUNCTION = "function"
    EXPRESSION = "expression"
    FUNCTION_MODIFIER = "function_modifier"
    NUMBER = "number"


# Operators accepted in EXPRESSION nodes
COMPARISON_OPERATORS = (">", "<", ">=", "<=", "=")
ARITHMETIC_OPERATORS = ("+", "-", "*", "/")

# Operators accepted in FUNCTION_MODIFIER nodes
MODIFIER_OPERATORS = ("assign", "increase", "decrease", "scale-up", "scale-down")


@dataclass
class Instance:
    """Object instance in the problem."""
    name: str
    type: str

    def to_pddl(self) -> str:
        """Convert to PDDL object declaration: name - type"""
        return f"{self.name} - {self.type}"


@dataclass
class Param:
    """Typed parameter of a predicate or function node."""
    name: str
    type: str = ""
    sub_types: List[str] = field(default_factory=list)


@dataclass
class Signature:
    """Predicate or function declaration taken from the domain."""
    name: str
    parameters: List[Param]

    @property
    def arity(self) -> int:
        return len(self.parameters)


@dataclass
class Node:
    """
    Single node of an expression tree.

    ``node_id`` is the node's index inside its tree and ``children`` hold the
    ids of its child nodes. ``value`` is used by NUMBER and FUNCTION nodes,
    ``comparator`` by EXPRESSION and FUNCTION_MODIFIER nodes.
    """
    node_type: NodeType
    node_id: int = 0
    children: List[int] = field(default_factory=list)
    name: str = ""
    parameters: List[Param] = field(default_factory=list)
    negate: bool = False
    value: float = 0.0
    comparator: Optional[str] = None

    @classmethod
    def predicate(cls, name: str, parameters: List[str], negate: bool = False) -> "Node":
        """Build a standalone PREDICATE node from instance names."""
        return cls(
            node_type=NodeType.PREDICATE,
            name=name,
            parameters=[Param(name=p) for p in parameters],
            negate=negate,
        )

    @classmethod
    def function(cls, name: str, parameters: List[str], value: float = 0.0) -> "Node":
        """Build a standalone FUNCTION node from instance names."""
        return cls(
            node_type=NodeType.FUNCTION,
            name=name,
            parameters=[Param(name=p) for p in parameters],
            value=float(value),
        )

    @property
    def parameter_names(self) -> List[str]:
        return [param.name for param in self.parameters]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "node_type": self.node_type.value,
            "node_id": self.node_id,
            "children": list(self.children),
            "name": self.name,
            "parameters": [
                {"name": p.name, "type": p.type, "sub_types": list(p.sub_types)}
                for p in self.parameters
            ],
            "negate": self.negate,
            "value": self.value,
            "comparator": self.comparator,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Node":
        try:
            node_type = NodeType(data["node_type"])
        except (KeyError, ValueError) as exc:
            raise ValueError(f"Invalid node_type in node: {data!r}") from exc

        return cls(
            node_type=node_type,
            node_id=int(data.get("node_id", 0)),
            children=[int(c) for c in data.get("children", [])],
            name=data.get("name", ""),
            parameters=[
                Param(
                    name=p["name"],
                    type=p.get("type", ""),
                    sub_types=list(p.get("sub_types", [])),
                )
                for p in data.get("parameters", [])
            ],
            negate=bool(data.get("negate", False)),
            value=float(data.get("value", 0.0)),
            comparator=data.get("comparator"),
        )


@dataclass
class Tree:
    """
    Expression tree stored as a flat list of nodes.

    A node's position in ``nodes`` is its ``node_id``; the root is always
    node 0. An empty tree has no nodes.
    """
    nodes: List[Node] = field(default_factory=list)

    def add_node(self, node: Node) -> int:
        """Append a node, assigning its node_id from its position."""
        node.node_id = len(self.nodes)
        self.nodes.append(node)
        return node.node_id

    @classmethod
    def from_node(cls, node: Node) -> "Tree":
        """Wrap a standalone (childless) node as a one-node tree."""
        leaf = copy.deepcopy(node)
        leaf.children = []
        tree = cls()
        tree.add_node(leaf)
        return tree

    @property
    def root(self) -> Optional[Node]:
        return self.nodes[0] if self.nodes else None

    def is_empty(self) -> bool:
        return not self.nodes

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the flat exchange shape: {"nodes": [...]}."""
        return {"nodes": [node.to_dict() for node in self.nodes]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Tree":
        """
        Build a tree from the flat exchange shape.

        Raises:
            ValueError: If node ids do not match their positions, a child id is
                out of range, or a node has more than one parent.
        """
        nodes = [Node.from_dict(n) for n in data.get("nodes", [])]
        seen_children = set()
        for index, node in enumerate(nodes):
            if node.node_id != index:
                raise ValueError(f"Node at position {index} has node_id {node.node_id}")
            for child in node.children:
                if child <= 0 or child >= len(nodes):
                    raise ValueError(f"Node {index} references invalid child {child}")
                if child in seen_children:
                    raise ValueError(f"Node {child} has more than one parent")
                seen_children.add(child)
        return cls(nodes=nodes)
