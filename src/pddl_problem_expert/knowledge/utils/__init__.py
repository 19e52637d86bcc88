"""Expression tree types and algorithms."""

from .tree_types import (
    Instance,
    Node,
    NodeType,
    Param,
    Signature,
    Tree,
)
from .tree_utils import (
    check,
    check_node_equality,
    check_tree_equality,
    evaluate,
    from_subtrees,
    get_functions,
    get_predicates,
    get_subtree,
    get_subtrees,
    get_subtrees_of_type,
    to_string,
)

__all__ = [
    # Tree types
    "Instance",
    "Node",
    "NodeType",
    "Param",
    "Signature",
    "Tree",

    # Tree algorithms
    "check",
    "check_node_equality",
    "check_tree_equality",
    "evaluate",
    "from_subtrees",
    "get_functions",
    "get_predicates",
    "get_subtree",
    "get_subtrees",
    "get_subtrees_of_type",
    "to_string",
]
