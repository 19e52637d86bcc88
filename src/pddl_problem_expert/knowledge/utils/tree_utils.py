"""
Expression Tree Utilities

Pure algorithms over expression trees: PDDL rendering, structural equality,
subtree extraction and reconstruction, and evaluation against a set of
ground facts.

None of these functions modify their input trees.
"""

import copy
import math
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from ...utils.logging_utils import get_structured_logger
from .tree_types import (
    ARITHMETIC_OPERATORS,
    COMPARISON_OPERATORS,
    Node,
    NodeType,
    Tree,
)

logger = get_structured_logger("TreeUtils")

# (ok, truth, value): ok is False when the subtree cannot be evaluated
Evaluation = Tuple[bool, bool, float]

_COMBINATORS = (NodeType.AND, NodeType.OR, NodeType.ONE_OF)
_WRAPPERS = (NodeType.NOT, NodeType.UNKNOWN)
_FAILED: Evaluation = (False, False, 0.0)


def format_number(value: float) -> str:
    """Render a numeric value without a trailing '.0' for integers."""
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return repr(value)


# =====================================================================
# Rendering
# =====================================================================

def _atom(node: Node) -> str:
    return "(" + " ".join([node.name] + node.parameter_names) + ")"


def _render_combinator(tree: Tree, node: Node, indent: Optional[int], depth: int) -> str:
    keyword = node.node_type.value
    children = [_render(tree, child, indent, depth + 1) for child in node.children]
    if not children:
        return f"({keyword})"
    if indent is None:
        return f"({keyword} {' '.join(children)})"

    pad = " " * (indent * (depth + 1))
    lines = [f"({keyword}"] + [pad + child for child in children]
    return "\n".join(lines) + "\n" + " " * (indent * depth) + ")"


def _render_wrapper(tree: Tree, node: Node, indent: Optional[int], depth: int) -> str:
    children = " ".join(_render(tree, child, indent, depth) for child in node.children)
    return f"({node.node_type.value} {children})" if children else f"({node.node_type.value})"


def _render_predicate(tree: Tree, node: Node, indent: Optional[int], depth: int) -> str:
    return f"(not {_atom(node)})" if node.negate else _atom(node)


def _render_function(tree: Tree, node: Node, indent: Optional[int], depth: int) -> str:
    return _atom(node)


def _render_operator(tree: Tree, node: Node, indent: Optional[int], depth: int) -> str:
    operands = [_render(tree, child, None, depth) for child in node.children]
    return "(" + " ".join([node.comparator or "?"] + operands) + ")"


def _render_number(tree: Tree, node: Node, indent: Optional[int], depth: int) -> str:
    return format_number(node.value)


_RENDERERS: Dict[NodeType, Callable[[Tree, Node, Optional[int], int], str]] = {
    NodeType.AND: _render_combinator,
    NodeType.OR: _render_combinator,
    NodeType.ONE_OF: _render_combinator,
    NodeType.NOT: _render_wrapper,
    NodeType.UNKNOWN: _render_wrapper,
    NodeType.PREDICATE: _render_predicate,
    NodeType.FUNCTION: _render_function,
    NodeType.EXPRESSION: _render_operator,
    NodeType.FUNCTION_MODIFIER: _render_operator,
    NodeType.NUMBER: _render_number,
}


def _render(tree: Tree, node_id: int, indent: Optional[int], depth: int) -> str:
    node = tree.nodes[node_id]
    renderer = _RENDERERS.get(node.node_type)
    if renderer is None:
        logger.error("to_string: unsupported node type %r (node %s)", node.node_type, node_id)
        return ""
    return renderer(tree, node, indent, depth)


def to_string(tree: Tree, node_id: int = 0, indent: Optional[int] = None) -> str:
    """
    Render a tree (or the subtree at node_id) as PDDL text.

    Args:
        tree: Tree to render
        node_id: Root of the subtree to render
        indent: If set, place the children of and/or/oneof on their own
            lines, indented by this many spaces per level

    Returns:
        PDDL text, e.g. "(and (robot_at r2d2 kitchen) (not (door_open d1)))",
        or "" for an empty tree
    """
    if node_id < 0 or node_id >= len(tree.nodes):
        return ""
    return _render(tree, node_id, indent, 0)


# =====================================================================
# Equality
# =====================================================================

def same_identifier(first: str, second: str) -> bool:
    """Predicate and function names are case-insensitive, as in the domain."""
    return first.lower() == second.lower()


def check_node_equality(first: Node, second: Node) -> bool:
    """
    Compare two nodes, ignoring their ids and children.

    Nodes are equal when type, name (case-insensitive), ordered parameter
    names and negate match.
    NUMBER nodes also compare their value and EXPRESSION / FUNCTION_MODIFIER
    nodes their operator. The value of a FUNCTION node is not part of its
    identity.
    """
    if first.node_type != second.node_type:
        return False
    if not same_identifier(first.name, second.name):
        return False
    if first.parameter_names != second.parameter_names:
        return False
    if first.negate != second.negate:
        return False
    if first.node_type == NodeType.NUMBER and first.value != second.value:
        return False
    if first.node_type in (NodeType.EXPRESSION, NodeType.FUNCTION_MODIFIER):
        return first.comparator == second.comparator
    return True


def _subtree_equality(first: Tree, first_id: int, second: Tree, second_id: int) -> bool:
    first_node = first.nodes[first_id]
    second_node = second.nodes[second_id]
    if not check_node_equality(first_node, second_node):
        return False
    if len(first_node.children) != len(second_node.children):
        return False
    return all(
        _subtree_equality(first, a, second, b)
        for a, b in zip(first_node.children, second_node.children)
    )


def check_tree_equality(first: Tree, second: Tree) -> bool:
    """Structural, order-sensitive equality of two trees (node ids may differ)."""
    if first.is_empty() or second.is_empty():
        return first.is_empty() and second.is_empty()
    return _subtree_equality(first, 0, second, 0)


# =====================================================================
# Extraction and reconstruction
# =====================================================================

def _walk(tree: Tree, node_id: int = 0) -> Iterator[Node]:
    """Yield the nodes of a subtree in pre-order."""
    if node_id < 0 or node_id >= len(tree.nodes):
        return
    node = tree.nodes[node_id]
    yield node
    for child in node.children:
        yield from _walk(tree, child)


def _copy_into(source: Tree, node_id: int, target: Tree) -> int:
    node = copy.deepcopy(source.nodes[node_id])
    children = node.children
    node.children = []
    new_id = target.add_node(node)
    for child in children:
        node.children.append(_copy_into(source, child, target))
    return new_id


def get_subtree(tree: Tree, node_id: int) -> Tree:
    """Copy the subtree rooted at node_id into a new tree renumbered from 0."""
    subtree = Tree()
    if 0 <= node_id < len(tree.nodes):
        _copy_into(tree, node_id, subtree)
    return subtree


def get_subtrees(tree: Tree) -> List[Tree]:
    """
    Split a goal into its maximal subgoals.

    Returns the children of the root when it is an and/or node, otherwise a
    single copy of the whole tree. An empty tree has no subgoals.
    """
    if tree.is_empty():
        return []
    root = tree.nodes[0]
    if root.node_type in (NodeType.AND, NodeType.OR):
        return [get_subtree(tree, child) for child in root.children]
    return [get_subtree(tree, 0)]


def get_subtrees_of_type(tree: Tree, node_type: NodeType, node_id: int = 0) -> List[Tree]:
    """Extract every subtree whose root has the given type, in pre-order."""
    return [
        get_subtree(tree, node.node_id)
        for node in _walk(tree, node_id)
        if node.node_type == node_type
    ]


def get_predicates(tree: Tree, node_id: int = 0) -> List[Node]:
    """Copies of the PREDICATE leaves under node_id, in pre-order."""
    return [copy.deepcopy(n) for n in _walk(tree, node_id) if n.node_type == NodeType.PREDICATE]


def get_functions(tree: Tree, node_id: int = 0) -> List[Node]:
    """Copies of the FUNCTION leaves under node_id, in pre-order."""
    return [copy.deepcopy(n) for n in _walk(tree, node_id) if n.node_type == NodeType.FUNCTION]


def from_subtrees(subtrees: Sequence[Tree], node_type: NodeType) -> Optional[Tree]:
    """
    Build a new tree of the given type from a list of subtrees.

    and/or/oneof put every subtree under a fresh root; not/unknown wrap
    exactly one subtree; any other type returns a copy of the single subtree.

    Returns:
        The new tree, or None when there is nothing to build from or the
        number of subtrees does not fit the node type
    """
    subtrees = [s for s in subtrees if not s.is_empty()]
    if not subtrees:
        return None

    if node_type not in _COMBINATORS:
        if len(subtrees) != 1:
            return None
        if node_type not in _WRAPPERS:
            return get_subtree(subtrees[0], 0)

    tree = Tree()
    root = Node(node_type=node_type)
    tree.add_node(root)
    for subtree in subtrees:
        root.children.append(_copy_into(subtree, 0, tree))
    return tree


# =====================================================================
# Evaluation
# =====================================================================

def _find_function(node: Node, functions: Sequence[Node]) -> Optional[Node]:
    for function in functions:
        if (
            same_identifier(function.name, node.name)
            and function.parameter_names == node.parameter_names
        ):
            return function
    return None


def _eval_and(tree, node, predicates, functions) -> Evaluation:
    truth = True
    for child in node.children:
        ok, child_truth, _ = _evaluate(tree, child, predicates, functions)
        if not ok:
            return _FAILED
        truth = truth and child_truth
    return True, truth, 0.0


def _eval_or(tree, node, predicates, functions) -> Evaluation:
    truth = False
    for child in node.children:
        ok, child_truth, _ = _evaluate(tree, child, predicates, functions)
        if not ok:
            return _FAILED
        truth = truth or child_truth
    return True, truth, 0.0


def _eval_not(tree, node, predicates, functions) -> Evaluation:
    if len(node.children) != 1:
        return _FAILED
    ok, truth, _ = _evaluate(tree, node.children[0], predicates, functions)
    if not ok:
        return _FAILED
    return True, not truth, 0.0


def _eval_contingent(tree, node, predicates, functions) -> Evaluation:
    logger.debug("evaluate: %s node cannot be evaluated against ground facts", node.node_type.value)
    return _FAILED


def _eval_predicate(tree, node, predicates, functions) -> Evaluation:
    found = any(
        same_identifier(p.name, node.name) and p.parameter_names == node.parameter_names and not p.negate
        for p in predicates
    )
    return True, found != node.negate, 0.0


def _eval_function(tree, node, predicates, functions) -> Evaluation:
    function = _find_function(node, functions)
    if function is None:
        return _FAILED
    return True, True, function.value


def _eval_number(tree, node, predicates, functions) -> Evaluation:
    return True, True, node.value


def _operands(tree, node, predicates, functions) -> Optional[Tuple[float, float]]:
    if len(node.children) != 2:
        return None
    left = _evaluate(tree, node.children[0], predicates, functions)
    right = _evaluate(tree, node.children[1], predicates, functions)
    if not (left[0] and right[0]):
        return None
    return left[2], right[2]


def _eval_expression(tree, node, predicates, functions) -> Evaluation:
    operands = _operands(tree, node, predicates, functions)
    if operands is None:
        return _FAILED
    left, right = operands

    if node.comparator in COMPARISON_OPERATORS:
        if node.comparator == ">":
            truth = left > right
        elif node.comparator == "<":
            truth = left < right
        elif node.comparator == ">=":
            truth = left >= right
        elif node.comparator == "<=":
            truth = left <= right
        else:
            truth = math.isclose(left, right, abs_tol=1e-9)
        return True, truth, 0.0

    if node.comparator in ARITHMETIC_OPERATORS:
        if node.comparator == "+":
            return True, True, left + right
        if node.comparator == "-":
            return True, True, left - right
        if node.comparator == "*":
            return True, True, left * right
        if right == 0:
            return _FAILED
        return True, True, left / right

    logger.error("evaluate: unknown expression operator %r", node.comparator)
    return _FAILED


def _eval_modifier(tree, node, predicates, functions) -> Evaluation:
    operands = _operands(tree, node, predicates, functions)
    if operands is None:
        return _FAILED
    current, amount = operands

    if node.comparator == "assign":
        return True, True, amount
    if node.comparator == "increase":
        return True, True, current + amount
    if node.comparator == "decrease":
        return True, True, current - amount
    if node.comparator == "scale-up":
        return True, True, current * amount
    if node.comparator == "scale-down" and amount != 0:
        return True, True, current / amount

    logger.error("evaluate: cannot apply modifier %r", node.comparator)
    return _FAILED


_EVALUATORS: Dict[NodeType, Callable[..., Evaluation]] = {
    NodeType.AND: _eval_and,
    NodeType.OR: _eval_or,
    NodeType.NOT: _eval_not,
    NodeType.UNKNOWN: _eval_contingent,
    NodeType.ONE_OF: _eval_contingent,
    NodeType.PREDICATE: _eval_predicate,
    NodeType.FUNCTION: _eval_function,
    NodeType.EXPRESSION: _eval_expression,
    NodeType.FUNCTION_MODIFIER: _eval_modifier,
    NodeType.NUMBER: _eval_number,
}


def _evaluate(tree: Tree, node_id: int, predicates, functions) -> Evaluation:
    if node_id < 0 or node_id >= len(tree.nodes):
        return _FAILED
    node = tree.nodes[node_id]
    evaluator = _EVALUATORS.get(node.node_type)
    if evaluator is None:
        logger.error("evaluate: unsupported node type %r (node %s)", node.node_type, node_id)
        return _FAILED
    return evaluator(tree, node, predicates, functions)


def evaluate(
    tree: Tree,
    predicates: Sequence[Node],
    functions: Sequence[Node],
    node_id: int = 0
) -> Evaluation:
    """
    Evaluate a subtree against ground predicates and functions.

    Returns:
        Tuple of (ok, truth, value). ok is False when the subtree references
        a missing function, divides by zero or contains contingent nodes.
    """
    return _evaluate(tree, node_id, predicates, functions)


def check(tree: Tree, predicates: Sequence[Node], functions: Sequence[Node]) -> bool:
    """True if the tree holds for the given facts. An empty tree always holds."""
    if tree.is_empty():
        return True
    ok, truth, _ = evaluate(tree, predicates, functions)
    return ok and truth
