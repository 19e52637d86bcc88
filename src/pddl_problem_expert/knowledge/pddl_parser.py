"""
PDDL Problem Parser

Reads PDDL problem text (including the contingent ``unknown`` and ``oneof``
init clauses and disjunctive ``or`` init facts) into expression trees.

The parser only builds structure; it does not check types or arities. That
is the knowledge base's job.
"""

import re
from dataclasses import dataclass, field
from typing import List, Tuple, Union

from .utils.tree_types import (
    ARITHMETIC_OPERATORS,
    COMPARISON_OPERATORS,
    Node,
    NodeType,
    Param,
    Tree,
)

SExpr = Union[str, List["SExpr"]]

_TOKEN_RE = re.compile(r"\(|\)|[^\s()]+")
_COMMENT_RE = re.compile(r";[^\n]*")
_DOMAIN_RE = re.compile(r"\(\s*:domain\s+([^\s()]+)\s*\)", re.IGNORECASE)

# Problem sections that carry nothing the knowledge base stores
_IGNORED_SECTIONS = (":requirements", ":metric")


class PDDLParseError(Exception):
    """Raised when problem text cannot be read into trees."""


@dataclass
class ParsedProblem:
    """Structured content of a PDDL problem."""
    name: str
    domain_name: str = ""
    objects: List[Tuple[str, str]] = field(default_factory=list)  # [(name, type), ...]
    init: List[Tree] = field(default_factory=list)  # ground predicates and functions
    init_cond: List[Tree] = field(default_factory=list)  # unknown / oneof / or facts
    goal: Tree = field(default_factory=Tree)


def strip_comments(text: str) -> str:
    """Remove ';' comments up to the end of each line."""
    return _COMMENT_RE.sub("", text)


def get_domain_name(text: str) -> str:
    """Return the name in the (:domain ...) clause, or "" if there is none."""
    match = _DOMAIN_RE.search(strip_comments(text))
    return match.group(1) if match else ""


# =====================================================================
# S-expressions
# =====================================================================

def _read(tokens: List[str], pos: int) -> Tuple[SExpr, int]:
    if pos >= len(tokens):
        raise PDDLParseError("Unexpected end of input")

    token = tokens[pos]
    if token == ")":
        raise PDDLParseError("Unexpected ')'")
    if token != "(":
        return token, pos + 1

    items: List[SExpr] = []
    pos += 1
    while True:
        if pos >= len(tokens):
            raise PDDLParseError("Missing ')'")
        if tokens[pos] == ")":
            return items, pos + 1
        item, pos = _read(tokens, pos)
        items.append(item)


def parse_sexpr(text: str) -> SExpr:
    """Parse a single parenthesized expression into nested lists of tokens."""
    tokens = _TOKEN_RE.findall(strip_comments(text))
    if not tokens:
        raise PDDLParseError("Empty expression")
    expr, pos = _read(tokens, 0)
    if pos != len(tokens):
        raise PDDLParseError(f"Unexpected text after expression: {' '.join(tokens[pos:pos + 5])}")
    return expr


def _is_number(token: SExpr) -> bool:
    if not isinstance(token, str):
        return False
    try:
        float(token)
    except ValueError:
        return False
    return True


def _head(expr: SExpr) -> str:
    if isinstance(expr, list) and expr and isinstance(expr[0], str):
        return expr[0].lower()
    return ""


# =====================================================================
# Tree builders
# =====================================================================

def _atom_node(expr: SExpr, node_type: NodeType) -> Node:
    if not isinstance(expr, list) or not expr:
        raise PDDLParseError(f"Expected an atom, got {expr!r}")
    if not all(isinstance(token, str) for token in expr):
        raise PDDLParseError(f"Atom arguments must be names: {expr!r}")
    return Node(
        node_type=node_type,
        name=expr[0],
        parameters=[Param(name=token) for token in expr[1:]],
    )


def _literal_node(expr: SExpr) -> Node:
    """A predicate atom, with (not ...) folded into its negate flag."""
    if _head(expr) == "not":
        if len(expr) != 2:
            raise PDDLParseError(f"'not' takes exactly one argument: {expr!r}")
        node = _literal_node(expr[1])
        node.negate = not node.negate
        return node
    return _atom_node(expr, NodeType.PREDICATE)


def _add_numeric_term(expr: SExpr, tree: Tree) -> int:
    if _is_number(expr):
        return tree.add_node(Node(node_type=NodeType.NUMBER, value=float(expr)))

    head = _head(expr)
    if head in ARITHMETIC_OPERATORS:
        return _add_operator(expr, NodeType.EXPRESSION, tree, _add_numeric_term)
    return tree.add_node(_atom_node(expr, NodeType.FUNCTION))


def _add_operator(expr: SExpr, node_type: NodeType, tree: Tree, add_operand) -> int:
    if len(expr) != 3:
        raise PDDLParseError(f"'{expr[0]}' takes exactly two arguments: {expr!r}")
    node = Node(node_type=node_type, comparator=expr[0].lower())
    node_id = tree.add_node(node)
    for operand in expr[1:]:
        node.children.append(add_operand(operand, tree))
    return node_id


def _add_goal_node(expr: SExpr, tree: Tree) -> int:
    head = _head(expr)

    if head in ("and", "or"):
        node = Node(node_type=NodeType.AND if head == "and" else NodeType.OR)
        node_id = tree.add_node(node)
        for child in expr[1:]:
            node.children.append(_add_goal_node(child, tree))
        return node_id

    if head == "not":
        if len(expr) != 2:
            raise PDDLParseError(f"'not' takes exactly one argument: {expr!r}")
        node = Node(node_type=NodeType.NOT)
        node_id = tree.add_node(node)
        node.children.append(_add_goal_node(expr[1], tree))
        return node_id

    if head in COMPARISON_OPERATORS:
        return _add_operator(expr, NodeType.EXPRESSION, tree, _add_numeric_term)

    return tree.add_node(_atom_node(expr, NodeType.PREDICATE))


def _build_init_fact(expr: SExpr) -> Tuple[Tree, bool]:
    """
    Build the tree of one (:init ...) entry.

    Returns:
        Tuple of (tree, is_conditional)
    """
    head = _head(expr)
    tree = Tree()

    if head in ("unknown", "oneof", "or"):
        node_type = {
            "unknown": NodeType.UNKNOWN,
            "oneof": NodeType.ONE_OF,
            "or": NodeType.OR,
        }[head]
        root = Node(node_type=node_type)
        tree.add_node(root)
        for child in expr[1:]:
            root.children.append(tree.add_node(_literal_node(child)))
        return tree, True

    if head == "=":
        if len(expr) != 3 or not _is_number(expr[2]):
            raise PDDLParseError(f"Numeric init fact must be (= (f ...) number): {expr!r}")
        function = _atom_node(expr[1], NodeType.FUNCTION)
        function.value = float(expr[2])
        tree.add_node(function)
        return tree, False

    tree.add_node(_literal_node(expr))
    return tree, False


def _parse_typed_list(tokens: List[SExpr]) -> List[Tuple[str, str]]:
    """Parse 'a b - type c' into [(a, type), (b, type), (c, object)]."""
    result: List[Tuple[str, str]] = []
    pending: List[str] = []
    i = 0
    while i < len(tokens):
        token = tokens[i]
        if not isinstance(token, str):
            raise PDDLParseError(f"Unexpected expression in object list: {token!r}")
        if token == "-":
            if i + 1 >= len(tokens) or not isinstance(tokens[i + 1], str):
                raise PDDLParseError("Missing type after '-' in object list")
            result.extend((name, tokens[i + 1]) for name in pending)
            pending = []
            i += 2
            continue
        pending.append(token)
        i += 1
    result.extend((name, "object") for name in pending)
    return result


# =====================================================================
# Public entry points
# =====================================================================

def parse_problem(text: str) -> ParsedProblem:
    """
    Parse a complete PDDL problem.

    Raises:
        PDDLParseError: If the text is not a well-formed problem
    """
    expr = parse_sexpr(text)
    if _head(expr) != "define" or len(expr) < 2:
        raise PDDLParseError("Problem must start with (define ...)")

    header = expr[1]
    if _head(header) != "problem" or len(header) != 2 or not isinstance(header[1], str):
        raise PDDLParseError(f"Invalid problem header: {header!r}")

    problem = ParsedProblem(name=header[1])
    for section in expr[2:]:
        key = _head(section)
        if not key.startswith(":"):
            raise PDDLParseError(f"Invalid problem section: {section!r}")

        if key == ":domain":
            if len(section) != 2 or not isinstance(section[1], str):
                raise PDDLParseError(f"Invalid domain clause: {section!r}")
            problem.domain_name = section[1]
        elif key == ":objects":
            problem.objects.extend(_parse_typed_list(section[1:]))
        elif key == ":init":
            for fact in section[1:]:
                tree, is_conditional = _build_init_fact(fact)
                (problem.init_cond if is_conditional else problem.init).append(tree)
        elif key == ":goal":
            if len(section) != 2:
                raise PDDLParseError("Goal must be a single expression")
            goal = Tree()
            _add_goal_node(section[1], goal)
            problem.goal = goal
        elif key not in _IGNORED_SECTIONS:
            raise PDDLParseError(f"Unsupported problem section: {key}")

    return problem


def parse_predicate(text: str) -> Node:
    """Parse '(robot_at r2d2 kitchen)' or '(not (...))' into a PREDICATE node."""
    return _literal_node(parse_sexpr(text))


def parse_function(text: str) -> Node:
    """Parse '(battery_level r2d2)' or '(= (battery_level r2d2) 80)' into a FUNCTION node."""
    expr = parse_sexpr(text)
    if _head(expr) == "=":
        tree, _ = _build_init_fact(expr)
        return tree.nodes[0]
    return _atom_node(expr, NodeType.FUNCTION)


def parse_goal(text: str) -> Tree:
    """Parse a goal expression into a tree."""
    tree = Tree()
    _add_goal_node(parse_sexpr(text), tree)
    return tree


def parse_conditional(text: str) -> Tree:
    """Parse an '(unknown ...)', '(oneof ...)' or '(or ...)' init fact into a tree."""
    tree, is_conditional = _build_init_fact(parse_sexpr(text))
    if not is_conditional:
        raise PDDLParseError(f"Not a contingent fact: {text}")
    return tree
