"""
Tests for expression tree types and algorithms.
"""

import pytest

from pddl_problem_expert.knowledge.pddl_parser import parse_goal
from pddl_problem_expert.knowledge.problem_expert import ProblemExpert
from pddl_problem_expert.knowledge.utils.tree_types import Node, NodeType, Tree
from pddl_problem_expert.knowledge.utils.tree_utils import (
    _EVALUATORS,
    _RENDERERS,
    check,
    check_node_equality,
    check_tree_equality,
    evaluate,
    format_number,
    from_subtrees,
    get_functions,
    get_predicates,
    get_subtree,
    get_subtrees,
    get_subtrees_of_type,
    to_string,
)


def _modifier_tree(operator: str, amount: float) -> Tree:
    tree = Tree()
    root = Node(node_type=NodeType.FUNCTION_MODIFIER, comparator=operator)
    tree.add_node(root)
    root.children.append(tree.add_node(Node.function("battery_level", ["r2d2"])))
    root.children.append(tree.add_node(Node(node_type=NodeType.NUMBER, value=amount)))
    return tree


class TestDispatchTables:
    """Every node type has a renderer, an evaluator and a type checker."""

    def test_renderers_cover_all_node_types(self):
        assert set(_RENDERERS) == set(NodeType)

    def test_evaluators_cover_all_node_types(self):
        assert set(_EVALUATORS) == set(NodeType)

    def test_type_checkers_cover_all_node_types(self):
        assert set(ProblemExpert._TREE_CHECKERS) == set(NodeType)


class TestToString:
    """Test PDDL rendering."""

    def test_single_line(self):
        text = "(and (robot_at r2d2 kitchen) (not (door_open d1)))"
        assert to_string(parse_goal(text)) == text

    def test_negated_predicate_leaf(self):
        tree = Tree.from_node(Node.predicate("door_open", ["d1"], negate=True))
        assert to_string(tree) == "(not (door_open d1))"

    def test_operators_and_numbers(self):
        text = "(>= (+ (battery_level r2d2) 2.5) 10)"
        assert to_string(parse_goal(text)) == text

    def test_indented(self):
        tree = parse_goal("(and (or (a) (b)) (c))")
        assert to_string(tree, indent=2) == "(and\n  (or\n    (a)\n    (b)\n  )\n  (c)\n)"

    def test_subtree_and_empty(self):
        tree = parse_goal("(and (a x) (b y))")
        assert to_string(tree, node_id=2) == "(b y)"
        assert to_string(tree, node_id=7) == ""
        assert to_string(Tree()) == ""

    def test_format_number(self):
        assert format_number(10.0) == "10"
        assert format_number(2.5) == "2.5"
        assert format_number(-3) == "-3"


class TestEquality:
    """Test structural equality."""

    def test_equal_regardless_of_numbering(self):
        tree = Tree()
        root = Node(node_type=NodeType.AND)
        tree.add_node(root)
        tree.add_node(Node.predicate("b", []))
        tree.add_node(Node.predicate("a", []))
        root.children = [2, 1]

        assert check_tree_equality(tree, parse_goal("(and (a) (b))"))

    def test_order_sensitive(self):
        assert not check_tree_equality(parse_goal("(and (a) (b))"), parse_goal("(and (b) (a))"))

    def test_negation_distinguishes_nodes(self):
        positive = Node.predicate("door_open", ["d1"])
        negative = Node.predicate("door_open", ["d1"], negate=True)
        assert not check_node_equality(positive, negative)

    def test_parameter_order_matters(self):
        assert not check_node_equality(
            Node.predicate("connected", ["kitchen", "bedroom"]),
            Node.predicate("connected", ["bedroom", "kitchen"]),
        )

    def test_identifier_case_is_ignored(self):
        assert check_node_equality(
            Node.predicate("Robot_At", ["r2d2", "kitchen"]),
            Node.predicate("robot_at", ["r2d2", "kitchen"]),
        )
        assert not check_node_equality(
            Node.predicate("robot_at", ["R2D2", "kitchen"]),
            Node.predicate("robot_at", ["r2d2", "kitchen"]),
        )
        assert check(
            parse_goal("(robot_at r2d2 kitchen)"),
            [Node.predicate("ROBOT_AT", ["r2d2", "kitchen"])],
            [],
        )

    def test_function_value_is_not_identity(self):
        assert check_node_equality(Node.function("f", ["x"], 1), Node.function("f", ["x"], 2))

    def test_number_value_and_operator_are_identity(self):
        assert not check_tree_equality(parse_goal("(> (f x) 1)"), parse_goal("(> (f x) 2)"))
        assert not check_tree_equality(parse_goal("(> (f x) 1)"), parse_goal("(< (f x) 1)"))

    def test_empty_trees(self):
        assert check_tree_equality(Tree(), Tree())
        assert not check_tree_equality(Tree(), parse_goal("(a)"))


class TestSubtrees:
    """Test subtree extraction and reconstruction."""

    def test_get_subtree_renumbers(self):
        tree = parse_goal("(and (a) (or (b) (c)))")
        subtree = get_subtree(tree, 2)

        assert len(subtree.nodes) == 3
        assert subtree.nodes[0].node_type == NodeType.OR
        assert subtree.nodes[0].children == [1, 2]
        assert [n.node_id for n in subtree.nodes] == [0, 1, 2]
        assert to_string(subtree) == "(or (b) (c))"

    def test_get_subtree_does_not_share_nodes(self):
        tree = parse_goal("(and (a x))")
        subtree = get_subtree(tree, 1)
        subtree.nodes[0].name = "changed"
        assert tree.nodes[1].name == "a"

    def test_get_subtrees_splits_and_or(self):
        assert [to_string(t) for t in get_subtrees(parse_goal("(or (a) (not (b)))"))] == [
            "(a)",
            "(not (b))",
        ]

    def test_get_subtrees_other_root_is_whole_tree(self):
        subtrees = get_subtrees(parse_goal("(not (a))"))
        assert len(subtrees) == 1
        assert to_string(subtrees[0]) == "(not (a))"
        assert get_subtrees(Tree()) == []

    def test_get_subtrees_of_type(self):
        tree = parse_goal("(and (not (a)) (or (not (b)) (c)))")
        found = get_subtrees_of_type(tree, NodeType.NOT)
        assert [to_string(t) for t in found] == ["(not (a))", "(not (b))"]

    def test_get_predicates_and_functions(self):
        tree = parse_goal("(and (a x) (> (f x) 1) (not (b)))")
        assert [p.name for p in get_predicates(tree)] == ["a", "b"]
        assert [f.name for f in get_functions(tree)] == ["f"]

    def test_from_subtrees_combinators(self):
        parts = [parse_goal("(a)"), parse_goal("(b)")]
        assert to_string(from_subtrees(parts, NodeType.ONE_OF)) == "(oneof (a) (b))"
        assert to_string(from_subtrees(parts, NodeType.AND)) == "(and (a) (b))"

    def test_from_subtrees_wrappers(self):
        assert to_string(from_subtrees([parse_goal("(a)")], NodeType.NOT)) == "(not (a))"
        assert from_subtrees([parse_goal("(a)"), parse_goal("(b)")], NodeType.UNKNOWN) is None

    def test_from_subtrees_leaf_copy(self):
        source = parse_goal("(a x)")
        copied = from_subtrees([source], NodeType.PREDICATE)
        assert check_tree_equality(copied, source)
        assert copied.nodes[0] is not source.nodes[0]

    def test_from_subtrees_empty(self):
        assert from_subtrees([], NodeType.AND) is None
        assert from_subtrees([Tree()], NodeType.ONE_OF) is None


class TestEvaluate:
    """Test evaluation against ground facts."""

    @pytest.fixture
    def facts(self):
        predicates = [
            Node.predicate("robot_at", ["r2d2", "kitchen"]),
            Node.predicate("door_open", ["d1"]),
        ]
        functions = [Node.function("battery_level", ["r2d2"], 4)]
        return predicates, functions

    def test_and_with_negation(self, facts):
        predicates, functions = facts
        assert check(parse_goal("(and (robot_at r2d2 kitchen) (not (door_open d2)))"), predicates, functions)
        assert not check(parse_goal("(and (robot_at r2d2 kitchen) (not (door_open d1)))"), predicates, functions)

    def test_or(self, facts):
        predicates, functions = facts
        assert check(parse_goal("(or (door_open d2) (door_open d1))"), predicates, functions)
        assert not check(parse_goal("(or (door_open d2) (door_open d3))"), predicates, functions)

    def test_negated_leaf(self, facts):
        predicates, functions = facts
        tree = Tree.from_node(Node.predicate("door_open", ["d2"], negate=True))
        assert check(tree, predicates, functions)

    def test_arithmetic(self, facts):
        predicates, functions = facts
        total = get_subtree(parse_goal("(> (+ (battery_level r2d2) 2) 0)"), 1)
        assert evaluate(total, predicates, functions) == (True, True, 6.0)
        assert check(parse_goal("(> (* (battery_level r2d2) 2) 7)"), predicates, functions)
        assert check(parse_goal("(= (- (battery_level r2d2) 1) 3)"), predicates, functions)

    def test_division_by_zero_fails(self, facts):
        predicates, functions = facts
        quotient = get_subtree(parse_goal("(> (/ (battery_level r2d2) 0) 1)"), 1)
        ok, _, _ = evaluate(quotient, predicates, functions)
        assert not ok
        assert not check(parse_goal("(> (/ (battery_level r2d2) 0) 1)"), predicates, functions)

    def test_missing_function_fails(self, facts):
        predicates, functions = facts
        assert not check(parse_goal("(> (battery_level c3po) 1)"), predicates, functions)

    def test_function_modifiers(self, facts):
        predicates, functions = facts
        assert evaluate(_modifier_tree("increase", 3), predicates, functions)[2] == 7.0
        assert evaluate(_modifier_tree("decrease", 1), predicates, functions)[2] == 3.0
        assert evaluate(_modifier_tree("assign", 9), predicates, functions)[2] == 9.0
        assert evaluate(_modifier_tree("scale-up", 2), predicates, functions)[2] == 8.0
        assert evaluate(_modifier_tree("scale-down", 2), predicates, functions)[2] == 2.0
        assert not evaluate(_modifier_tree("scale-down", 0), predicates, functions)[0]

    def test_contingent_nodes_cannot_be_evaluated(self, facts):
        predicates, functions = facts
        tree = Tree()
        root = Node(node_type=NodeType.UNKNOWN)
        tree.add_node(root)
        root.children.append(tree.add_node(Node.predicate("door_open", ["d1"])))
        assert not check(tree, predicates, functions)

    def test_empty_tree_holds(self):
        assert check(Tree(), [], [])


class TestTreeSerialization:
    """Test the flat {"nodes": [...]} exchange shape."""

    def test_round_trip(self):
        tree = parse_goal("(and (robot_at r2d2 kitchen) (> (battery_level r2d2) 10))")
        restored = Tree.from_dict(tree.to_dict())
        assert check_tree_equality(tree, restored)
        assert restored.nodes[2].comparator == ">"

    def test_rejects_mismatched_node_id(self):
        data = parse_goal("(and (a))").to_dict()
        data["nodes"][1]["node_id"] = 5
        with pytest.raises(ValueError):
            Tree.from_dict(data)

    def test_rejects_child_pointing_at_root(self):
        data = parse_goal("(and (a))").to_dict()
        data["nodes"][0]["children"] = [0]
        with pytest.raises(ValueError):
            Tree.from_dict(data)

    def test_rejects_shared_child(self):
        data = parse_goal("(and (a) (b))").to_dict()
        data["nodes"][0]["children"] = [1, 1]
        with pytest.raises(ValueError):
            Tree.from_dict(data)

    def test_rejects_unknown_node_type(self):
        data = parse_goal("(a)").to_dict()
        data["nodes"][0]["node_type"] = "xor"
        with pytest.raises(ValueError, match="Invalid node_type"):
            Tree.from_dict(data)

    def test_from_node_copies(self):
        node = Node.predicate("a", ["x"])
        tree = Tree.from_node(node)
        tree.nodes[0].parameters[0].name = "y"
        assert node.parameter_names == ["x"]
