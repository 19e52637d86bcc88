"""
Problem Text Codec

Maps the knowledge base's in-memory sets to PDDL problem text and back.
Tokenizing and structuring the text is left to pddl_parser; this module
decides which trees become which clauses.

Case policy: PDDL is case-insensitive, so ingested text is lower-cased as a
whole. On emission only predicate, function and type identifiers are
lower-cased (when lowercase_names is set); object names keep their case.
"""

import copy
from typing import TYPE_CHECKING, Optional, Sequence

from ..utils.logging_utils import get_structured_logger
from .domain_expert import DomainExpert
from .pddl_parser import PDDLParseError, get_domain_name, parse_problem, strip_comments
from .utils.tree_types import Instance, Node, NodeType, Tree
from .utils.tree_utils import format_number, get_predicates, to_string

if TYPE_CHECKING:
    from .problem_expert import ProblemExpert


class ProblemCodec:
    """
    Converts between knowledge-base contents and PDDL problem text.

    Example:
        >>> codec = ProblemCodec(domain_expert, problem_name="problem_1")
        >>> text = codec.emit(instances, predicates, functions, conditionals, goal)
        >>> codec.ingest(problem_expert, text)
        True
    """

    def __init__(
        self,
        domain_expert: DomainExpert,
        problem_name: str = "problem_1",
        lowercase_names: bool = True,
        goal_indent: Optional[int] = 2
    ):
        """
        Initialize the codec.

        Args:
            domain_expert: Domain the problems belong to
            problem_name: Name written in the (problem ...) header
            lowercase_names: Lower-case predicate/function/type names on emission
            goal_indent: Indentation of the emitted goal (None for one line)
        """
        self.domain_expert = domain_expert
        self.problem_name = problem_name
        self.lowercase_names = lowercase_names
        self.goal_indent = goal_indent
        self.logger = get_structured_logger("ProblemCodec")

    # =====================================================================
    # Emission
    # =====================================================================

    def emit(
        self,
        instances: Sequence[Instance],
        predicates: Sequence[Node],
        functions: Sequence[Node],
        conditionals: Sequence[Tree],
        goal: Tree
    ) -> str:
        """Generate PDDL problem text. Output order follows the input order."""
        lines = [
            f"(define (problem {self.problem_name})",
            f"  (:domain {self.domain_expert.get_name()})",
        ]

        constants = self.domain_expert.get_constants()
        objects = []
        for instance in instances:
            if instance.name.lower() in constants:
                self.logger.debug("Skipping constant as problem object: %s", instance.name)
                continue
            objects.append(f"    {instance.name} - {self._identifier(instance.type)}")

        if objects:
            lines.append("  (:objects")
            lines.extend(objects)
            lines.append("  )")

        lines.append("  (:init")
        for predicate in predicates:
            lines.append(f"    {self._literal(predicate)}")
        for condition in conditionals:
            clause = self._conditional(condition)
            if clause:
                lines.append(f"    {clause}")
        for function in functions:
            lines.append(f"    (= {self._atom(function)} {format_number(function.value)})")
        lines.append("  )")

        if not goal.is_empty():
            goal_text = to_string(self._normalize(goal), indent=self.goal_indent)
            lines.append("  (:goal")
            lines.extend(f"    {line}" for line in goal_text.splitlines())
            lines.append("  )")

        lines.append(")")
        return "\n".join(lines) + "\n"

    def _identifier(self, name: str) -> str:
        return name.lower() if self.lowercase_names else name

    def _atom(self, node: Node) -> str:
        return "(" + " ".join([self._identifier(node.name)] + node.parameter_names) + ")"

    def _literal(self, node: Node) -> str:
        atom = self._atom(node)
        return f"(not {atom})" if node.negate else atom

    def _conditional(self, condition: Tree) -> str:
        head = condition.nodes[0].node_type
        predicates = get_predicates(condition)

        if head == NodeType.UNKNOWN and len(predicates) == 1:
            return f"(unknown {self._literal(predicates[0])})"
        if head == NodeType.ONE_OF and predicates:
            return "(oneof " + " ".join(self._literal(p) for p in predicates) + ")"
        if head == NodeType.OR and len(predicates) == 2:
            return f"(or {self._literal(predicates[0])} {self._literal(predicates[1])})"

        self.logger.error("Failed to emit conditional: %s", to_string(condition))
        return ""

    def _normalize(self, tree: Tree) -> Tree:
        normalized = copy.deepcopy(tree)
        for node in normalized.nodes:
            if node.node_type in (NodeType.PREDICATE, NodeType.FUNCTION):
                node.name = self._identifier(node.name)
        return normalized

    # =====================================================================
    # Ingestion
    # =====================================================================

    def ingest(self, expert: "ProblemExpert", problem_text: str) -> bool:
        """
        Import a PDDL problem into a knowledge base.

        Blank text, a missing or unknown domain name, or a parse error fail
        the whole call before anything is imported. After that each object,
        fact and contingent fact is imported on its own: a rejected item is
        logged and skipped. A rejected goal leaves the goal unset but does
        not fail the call.

        Returns:
            True if the problem was parsed and imported
        """
        if not problem_text or not problem_text.strip():
            self.logger.error("Empty problem.")
            return False

        lc_problem = strip_comments(problem_text.lower())

        domain_name = get_domain_name(lc_problem)
        if not domain_name:
            self.logger.error("Domain name is empty")
            return False
        if not self.domain_expert.exist_domain(domain_name):
            self.logger.error("Domain name does not exist: %s", domain_name)
            return False

        try:
            problem = parse_problem(lc_problem)
        except PDDLParseError as exc:
            self.logger.error("Failed to parse problem: %s", exc)
            return False

        self.logger.info(
            "Parsed problem '%s': %s objects, %s init facts, %s contingent facts",
            problem.name,
            len(problem.objects),
            len(problem.init),
            len(problem.init_cond),
        )

        for name, type_name in self.domain_expert.get_constants().items():
            self._import_instance(expert, Instance(name=name, type=type_name), "constant")

        for name, type_name in problem.objects:
            self._import_instance(expert, Instance(name=name, type=type_name), "instance")

        for tree in problem.init:
            self._import_fact(expert, tree)

        for tree in problem.init_cond:
            self._import_conditional(expert, tree)

        if problem.goal.is_empty():
            self.logger.info("Problem has no goal")
        elif expert.set_goal(problem.goal):
            self.logger.info("Goal insertion ok: %s", to_string(problem.goal))
        else:
            self.logger.warning("Goal insertion failed: %s", to_string(problem.goal))

        return True

    def _import_instance(self, expert: "ProblemExpert", instance: Instance, kind: str) -> None:
        self.logger.debug("Adding %s: %s %s", kind, instance.name, instance.type)
        if not expert.add_instance(instance):
            self.logger.warning("Failed to add %s: %s - %s", kind, instance.name, instance.type)

    def _import_fact(self, expert: "ProblemExpert", tree: Tree) -> None:
        node = tree.nodes[0]
        text = to_string(tree)

        if node.node_type == NodeType.PREDICATE:
            self.logger.debug("Adding predicate: %s", text)
            if not expert.add_predicate(node):
                self.logger.warning("Failed to add predicate: %s", text)
        elif node.node_type == NodeType.FUNCTION:
            self.logger.debug("Adding function: %s = %s", text, format_number(node.value))
            if not expert.add_function(node):
                self.logger.warning("Failed to add function: %s", text)
        else:
            self.logger.warning("Skipping unsupported init fact: %s", text)

    def _import_conditional(self, expert: "ProblemExpert", tree: Tree) -> None:
        text = to_string(tree)
        labels = {
            NodeType.UNKNOWN: "unknown predicate",
            NodeType.ONE_OF: "oneof",
            NodeType.OR: "or",
        }
        label = labels.get(tree.nodes[0].node_type)
        if label is None:
            self.logger.warning("Skipping unsupported contingent fact: %s", text)
            return

        # The tree that is logged is the tree that is stored
        self.logger.debug("Adding %s: %s", label, text)
        if not expert.add_conditional(tree):
            self.logger.warning("Failed to add %s: %s", label, text)

