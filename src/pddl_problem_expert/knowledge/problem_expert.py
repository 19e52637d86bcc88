"""
Problem Expert

Knowledge base holding the current model of the world: instances, ground
predicates, numeric functions, contingent facts and a goal, all stored as
validated expression trees.

Architecture:
1. Validation
   - Predicates and functions must match a domain signature, with every
     parameter bound to an existing instance of the declared type (or one of
     its subtypes)
   - Goals and contingent facts are checked recursively, node by node

2. Cascading updates
   - Removing an instance removes every fact, contingent fact and goal
     subtree that references it
   - Removing an (unknown P) contingent fact removes P as a candidate from
     every (oneof ...) set

3. Problem text
   - get_problem() / add_problem() convert to and from PDDL through
     ProblemCodec

Every public mutation either commits a fully valid new state or leaves the
previous one untouched and returns False. The store does no locking: callers
sharing an instance across threads must serialize access themselves.
"""

import copy
from pathlib import Path
from typing import Dict, List, Optional, Union

from ..utils.logging_utils import get_structured_logger
from .config import ProblemExpertConfig
from .domain_expert import DomainExpert
from .pddl_parser import PDDLParseError, parse_function, parse_predicate
from .problem_codec import ProblemCodec
from .utils.tree_types import Instance, Node, NodeType, Signature, Tree
from .utils.tree_utils import (
    check,
    check_node_equality,
    check_tree_equality,
    from_subtrees,
    get_functions,
    get_predicates,
    get_subtree,
    get_subtrees,
    to_string,
)

_CONDITIONAL_HEADS = (NodeType.UNKNOWN, NodeType.ONE_OF, NodeType.OR)


class ProblemExpert:
    """
    Validated store for the problem side of a planning task.

    Example:
        >>> expert = ProblemExpert(domain_expert)
        >>> expert.add_instance(Instance("r2d2", "robot"))
        True
        >>> expert.add_instance(Instance("kitchen", "room"))
        True
        >>> expert.add_predicate(Node.predicate("robot_at", ["r2d2", "kitchen"]))
        True
        >>> expert.set_goal(parse_goal("(and (robot_at r2d2 kitchen))"))
        True
        >>> expert.is_goal_satisfied(expert.get_goal())
        True
    """

    def __init__(
        self,
        domain_expert: DomainExpert,
        config: Optional[ProblemExpertConfig] = None
    ):
        """
        Initialize an empty knowledge base.

        Args:
            domain_expert: Domain used to validate every stored fact
            config: Emission and persistence settings (defaults if None)
        """
        self.domain_expert = domain_expert
        self.config = config or ProblemExpertConfig()
        self.codec = ProblemCodec(
            domain_expert,
            problem_name=self.config.problem_name,
            lowercase_names=self.config.lowercase_names,
            goal_indent=self.config.goal_indent,
        )
        self.logger = get_structured_logger("ProblemExpert")

        self._instances: Dict[str, Instance] = {}
        self._predicates: List[Node] = []
        self._functions: List[Node] = []
        self._conditionals: List[Tree] = []
        self._goal = Tree()

    # =====================================================================
    # Instances
    # =====================================================================

    def get_instances(self) -> List[Instance]:
        return [copy.copy(instance) for instance in self._instances.values()]

    def get_instance(self, name: str) -> Optional[Instance]:
        instance = self._instances.get(name)
        return copy.copy(instance) if instance is not None else None

    def exist_instance(self, name: str) -> bool:
        return name in self._instances

    def add_instance(self, instance: Instance) -> bool:
        """
        Add an instance of a domain type.

        Adding an instance that already exists with the same type succeeds
        without changes; a different type for an existing name is rejected.
        """
        if not self.is_valid_type(instance.type):
            self.logger.debug("Rejected instance %s: unknown type '%s'", instance.name, instance.type)
            return False

        existing = self._instances.get(instance.name)
        if existing is not None:
            if existing.type != instance.type:
                self.logger.debug(
                    "Rejected instance %s - %s: already declared as %s",
                    instance.name, instance.type, existing.type,
                )
                return False
            return True

        self._instances[instance.name] = Instance(name=instance.name, type=instance.type)
        return True

    def remove_instance(self, instance: Union[Instance, str]) -> bool:
        """
        Remove an instance and everything that references it.

        Predicates, functions and contingent facts naming the instance are
        dropped. The goal is rebuilt from its subgoals that do not mention
        the instance, keeping the top-level and/or; if none survive the
        goal is cleared.

        Returns:
            True if the instance existed
        """
        name = instance.name if isinstance(instance, Instance) else instance
        found = self._instances.pop(name, None) is not None

        self._predicates = [p for p in self._predicates if name not in p.parameter_names]
        self._functions = [f for f in self._functions if name not in f.parameter_names]
        self._conditionals = [c for c in self._conditionals if not self._references(c, name)]
        self._remove_invalid_goals(name)

        if found:
            self.logger.debug("Removed instance %s", name)
        return found

    # =====================================================================
    # Predicates
    # =====================================================================

    def get_predicates(self) -> List[Node]:
        return copy.deepcopy(self._predicates)

    def get_predicate(self, expr: str) -> Optional[Node]:
        """Look up a stored predicate from its PDDL text, e.g. '(robot_at r2d2 kitchen)'."""
        try:
            predicate = parse_predicate(expr)
        except PDDLParseError as exc:
            self.logger.warning("Invalid predicate expression '%s': %s", expr, exc)
            return None
        index = self._find_node(self._predicates, predicate)
        return copy.deepcopy(self._predicates[index]) if index is not None else None

    def exist_predicate(self, predicate: Node) -> bool:
        return self._find_node(self._predicates, predicate) is not None

    def add_predicate(self, predicate: Node) -> bool:
        if self.exist_predicate(predicate):
            return True
        if not self.is_valid_predicate(predicate):
            return False
        self._predicates.append(self._as_leaf(predicate))
        return True

    def remove_predicate(self, predicate: Node) -> bool:
        """
        Remove a stored predicate.

        Returns:
            False if the predicate is not valid for the current instances,
            True otherwise (also when there was nothing to remove)
        """
        if not self.is_valid_predicate(predicate):
            return False
        index = self._find_node(self._predicates, predicate)
        if index is not None:
            self._predicates = self._predicates[:index] + self._predicates[index + 1:]
        return True

    # =====================================================================
    # Functions
    # =====================================================================

    def get_functions(self) -> List[Node]:
        return copy.deepcopy(self._functions)

    def get_function(self, expr: str) -> Optional[Node]:
        """Look up a stored function from its PDDL text, e.g. '(battery_level r2d2)'."""
        try:
            function = parse_function(expr)
        except PDDLParseError as exc:
            self.logger.warning("Invalid function expression '%s': %s", expr, exc)
            return None
        index = self._find_node(self._functions, function)
        return copy.deepcopy(self._functions[index]) if index is not None else None

    def exist_function(self, function: Node) -> bool:
        return self._find_node(self._functions, function) is not None

    def add_function(self, function: Node) -> bool:
        """Add a function, or update its value if it is already stored."""
        if self.exist_function(function):
            return self.update_function(function)
        if not self.is_valid_function(function):
            return False
        self._functions.append(self._as_leaf(function))
        return True

    def remove_function(self, function: Node) -> bool:
        if not self.is_valid_function(function):
            return False
        index = self._find_node(self._functions, function)
        if index is not None:
            self._functions = self._functions[:index] + self._functions[index + 1:]
        return True

    def update_function(self, function: Node) -> bool:
        """Replace the value of a stored function. Fails if it is not stored."""
        index = self._find_node(self._functions, function)
        if index is None or not self.is_valid_function(function):
            return False
        self._functions[index] = self._as_leaf(function)
        return True

    # =====================================================================
    # Conditionals (contingent facts)
    # =====================================================================

    def get_conditionals(self) -> List[Tree]:
        return copy.deepcopy(self._conditionals)

    def exist_conditional(self, condition: Tree) -> bool:
        return self._find_conditional(condition) is not None

    def add_conditional(self, condition: Tree) -> bool:
        """
        Store an (unknown P), (oneof P1 ... Pn) or (or P1 P2) fact.

        A oneof with a single alternative is certain: its predicate is added
        to the predicates instead. Adding a stored conditional again is a
        no-op.
        """
        if self.exist_conditional(condition):
            return True
        if not self.is_valid_condition(condition):
            return False
        self._store_conditional(condition)
        return True

    def remove_conditional(self, condition: Tree) -> bool:
        """
        Remove a stored conditional.

        Removing (unknown P) also removes P from every stored oneof. A oneof
        left with a single alternative becomes a predicate; one left with
        none is dropped.

        Returns:
            False if the conditional is not valid, True otherwise
        """
        if not self.is_valid_condition(condition):
            return False

        index = self._find_conditional(condition)
        if index is None:
            return True
        self._conditionals = self._conditionals[:index] + self._conditionals[index + 1:]

        root = condition.nodes[0]
        if root.node_type == NodeType.UNKNOWN:
            self._remove_one_of_candidate(condition.nodes[root.children[0]])
        return True

    # =====================================================================
    # Goal
    # =====================================================================

    def get_goal(self) -> Tree:
        return copy.deepcopy(self._goal)

    def set_goal(self, goal: Tree) -> bool:
        if not self.is_valid_goal(goal):
            self.logger.debug("Rejected goal: %s", to_string(goal))
            return False
        self._goal = copy.deepcopy(goal)
        return True

    def clear_goal(self) -> bool:
        self._goal = Tree()
        return True

    def is_goal_satisfied(self, goal: Tree) -> bool:
        """Evaluate a goal against the current predicates and functions."""
        return check(goal, self._predicates, self._functions)

    def clear_knowledge(self) -> bool:
        self._instances = {}
        self._predicates = []
        self._functions = []
        self._conditionals = []
        self.clear_goal()
        return True

    # =====================================================================
    # Validation
    # =====================================================================

    def is_valid_type(self, type_name: str) -> bool:
        return type_name.lower() in self.domain_expert.get_types()

    def is_valid_predicate(self, predicate: Node) -> bool:
        if predicate.node_type != NodeType.PREDICATE:
            return False
        return self._matches_signature(predicate, self.domain_expert.get_predicate(predicate.name))

    def is_valid_function(self, function: Node) -> bool:
        if function.node_type != NodeType.FUNCTION:
            return False
        return self._matches_signature(function, self.domain_expert.get_function(function.name))

    def is_valid_goal(self, goal: Tree) -> bool:
        return self.check_predicate_tree_types(goal)

    def is_valid_condition(self, condition: Tree) -> bool:
        """
        Check the shape and types of a contingent fact.

        The root must be unknown (one predicate), oneof (one or more
        predicates) or or (exactly two predicates).
        """
        if condition.is_empty():
            return False

        root = condition.nodes[0]
        if root.node_type not in _CONDITIONAL_HEADS:
            return False
        if any(child <= 0 or child >= len(condition.nodes) for child in root.children):
            return False
        if any(condition.nodes[c].node_type != NodeType.PREDICATE for c in root.children):
            return False

        count = len(root.children)
        if root.node_type == NodeType.UNKNOWN and count != 1:
            return False
        if root.node_type == NodeType.ONE_OF and count < 1:
            return False
        if root.node_type == NodeType.OR and count != 2:
            return False

        return self.check_predicate_tree_types(condition)

    def check_predicate_tree_types(self, tree: Tree, node_id: int = 0) -> bool:
        """Recursively check every node of a tree against the domain."""
        if node_id < 0 or node_id >= len(tree.nodes):
            return False

        node = tree.nodes[node_id]
        checker = self._TREE_CHECKERS.get(node.node_type)
        if checker is None:
            self.logger.error(
                "check_predicate_tree_types: Error parsing expression [%s]",
                to_string(tree, node_id),
            )
            return False
        return checker(self, tree, node)

    def _check_all_children(self, tree: Tree, node: Node) -> bool:
        return all(self.check_predicate_tree_types(tree, child) for child in node.children)

    def _check_negation(self, tree: Tree, node: Node) -> bool:
        return bool(node.children) and self.check_predicate_tree_types(tree, node.children[0])

    def _check_unknown(self, tree: Tree, node: Node) -> bool:
        return len(node.children) == 1 and self.check_predicate_tree_types(tree, node.children[0])

    def _check_predicate_leaf(self, tree: Tree, node: Node) -> bool:
        return self.is_valid_predicate(node)

    def _check_function_leaf(self, tree: Tree, node: Node) -> bool:
        return self.is_valid_function(node)

    def _check_number(self, tree: Tree, node: Node) -> bool:
        return True

    _TREE_CHECKERS = {
        NodeType.AND: _check_all_children,
        NodeType.OR: _check_all_children,
        NodeType.NOT: _check_negation,
        NodeType.UNKNOWN: _check_unknown,
        NodeType.ONE_OF: _check_all_children,
        NodeType.PREDICATE: _check_predicate_leaf,
        NodeType.FUNCTION: _check_function_leaf,
        NodeType.EXPRESSION: _check_all_children,
        NodeType.FUNCTION_MODIFIER: _check_all_children,
        NodeType.NUMBER: _check_number,
    }

    # =====================================================================
    # Problem text
    # =====================================================================

    def get_problem(self) -> str:
        """Current knowledge as PDDL problem text."""
        return self.codec.emit(
            list(self._instances.values()),
            self._predicates,
            self._functions,
            self._conditionals,
            self._goal,
        )

    def add_problem(self, problem_text: str) -> bool:
        """Import a PDDL problem (see ProblemCodec.ingest)."""
        return self.codec.ingest(self, problem_text)

    def save_problem(self, path: Optional[Union[str, Path]] = None) -> Path:
        """
        Write the current problem text to a file.

        Args:
            path: Target file (default: <output_dir>/<problem_name>.pddl)

        Returns:
            Path of the written file
        """
        problem_file = Path(path) if path else self.config.output_dir / f"{self.config.problem_name}.pddl"
        problem_file.parent.mkdir(parents=True, exist_ok=True)
        problem_file.write_text(self.get_problem(), encoding="utf-8")
        self.logger.info("Problem written to %s", problem_file)
        return problem_file

    def get_statistics(self) -> Dict[str, int]:
        """Get counts of the stored knowledge."""
        return {
            "instances": len(self._instances),
            "predicates": len(self._predicates),
            "functions": len(self._functions),
            "conditionals": len(self._conditionals),
            "goal_nodes": len(self._goal.nodes),
        }

    # =====================================================================
    # Helper Methods
    # =====================================================================

    def _matches_signature(self, node: Node, signature: Optional[Signature]) -> bool:
        if signature is None or signature.arity != len(node.parameters):
            return False

        for param, declared in zip(node.parameters, signature.parameters):
            instance = self._instances.get(param.name)
            if instance is None:
                return False
            instance_type = instance.type.lower()
            if instance_type != declared.type and instance_type not in declared.sub_types:
                return False
        return True

    @staticmethod
    def _as_leaf(node: Node) -> Node:
        leaf = copy.deepcopy(node)
        leaf.node_id = 0
        leaf.children = []
        return leaf

    @staticmethod
    def _find_node(nodes: List[Node], target: Node) -> Optional[int]:
        for index, node in enumerate(nodes):
            if check_node_equality(node, target):
                return index
        return None

    def _find_conditional(self, condition: Tree) -> Optional[int]:
        for index, stored in enumerate(self._conditionals):
            if check_tree_equality(stored, condition):
                return index
        return None

    @staticmethod
    def _references(tree: Tree, name: str) -> bool:
        leaves = get_predicates(tree) + get_functions(tree)
        return any(name in leaf.parameter_names for leaf in leaves)

    def _store_conditional(self, condition: Tree) -> None:
        root = condition.nodes[0]
        if root.node_type == NodeType.ONE_OF and len(root.children) == 1:
            self._predicates.append(self._as_leaf(condition.nodes[root.children[0]]))
            self._predicates = self._unique(self._predicates)
            return
        self._conditionals.append(copy.deepcopy(condition))

    @staticmethod
    def _unique(nodes: List[Node]) -> List[Node]:
        unique: List[Node] = []
        for node in nodes:
            if not any(check_node_equality(node, kept) for kept in unique):
                unique.append(node)
        return unique

    def _remove_one_of_candidate(self, candidate: Node) -> None:
        """Rewrite every stored oneof without the alternatives equal to candidate."""
        retained: List[Tree] = []
        rewritten: List[Tree] = []

        for condition in self._conditionals:
            root = condition.nodes[0]
            if root.node_type != NodeType.ONE_OF:
                retained.append(condition)
                continue

            remaining = [
                get_subtree(condition, child)
                for child in root.children
                if not check_node_equality(condition.nodes[child], candidate)
            ]
            one_of = from_subtrees(remaining, NodeType.ONE_OF)
            if one_of is not None:
                rewritten.append(one_of)

        self._conditionals = retained
        for one_of in rewritten:
            if self._find_conditional(one_of) is None:
                self._store_conditional(one_of)

    def _remove_invalid_goals(self, name: str) -> None:
        subgoals = get_subtrees(self._goal)
        if not subgoals:
            return

        valid = [subgoal for subgoal in subgoals if not self._references(subgoal, name)]
        if len(valid) == len(subgoals):
            return

        root_type = self._goal.nodes[0].node_type
        goal = None
        if root_type in (NodeType.AND, NodeType.OR):
            goal = from_subtrees(valid, root_type)
        self._goal = goal if goal is not None else Tree()
