"""Problem knowledge base: validated world state and PDDL problem text"""

# Import utility types
from .utils.tree_types import (
    Instance,
    Node,
    NodeType,
    Param,
    Signature,
    Tree
)

# Import main classes
from .config import ProblemExpertConfig
from .domain_expert import DomainDefinitionError, DomainExpert
from .pddl_parser import (
    ParsedProblem,
    PDDLParseError,
    parse_conditional,
    parse_function,
    parse_goal,
    parse_predicate,
    parse_problem
)
from .problem_codec import ProblemCodec
from .problem_expert import ProblemExpert

__all__ = [
    # Tree types
    "Instance",
    "Node",
    "NodeType",
    "Param",
    "Signature",
    "Tree",

    # Domain contract
    "DomainExpert",
    "DomainDefinitionError",

    # Problem text
    "ParsedProblem",
    "PDDLParseError",
    "parse_conditional",
    "parse_function",
    "parse_goal",
    "parse_predicate",
    "parse_problem",
    "ProblemCodec",

    # Knowledge base
    "ProblemExpert",
    "ProblemExpertConfig",
]
