"""
Domain Expert

Read-only view of a planning domain: the type hierarchy and the signatures of
its predicates and functions. The knowledge base consults it to validate
every fact it stores and never modifies it.

A DomainExpert can be built directly from Python data or loaded from PDDL
domain text with the ``pddl`` library.
"""

from typing import Dict, List, Optional, Set, Tuple

from pddl.parser.domain import DomainParser

from ..utils.logging_utils import get_structured_logger
from .utils.tree_types import Param, Signature

ParameterList = List[Tuple[str, str]]  # [(param_name, type), ...]


class DomainDefinitionError(Exception):
    """Raised when a domain definition is inconsistent or cannot be parsed."""


def _term_type(term) -> str:
    """First declared type tag of a pddl Variable/Constant ('object' if untyped)."""
    tags = sorted(str(tag) for tag in term.type_tags)
    return tags[0] if tags else "object"


class DomainExpert:
    """
    Static domain knowledge consumed by the knowledge base.

    Example:
        >>> domain = DomainExpert(
        ...     "simple",
        ...     types={"robot": None, "room": None, "corridor": "room"},
        ...     predicates={"robot_at": [("r", "robot"), ("ro", "room")]},
        ...     functions={"battery_level": [("r", "robot")]},
        ... )
        >>> domain.get_predicate("robot_at").parameters[1].sub_types
        ['corridor']
    """

    def __init__(
        self,
        name: str,
        types: Optional[Dict[str, Optional[str]]] = None,
        predicates: Optional[Dict[str, ParameterList]] = None,
        functions: Optional[Dict[str, ParameterList]] = None,
        constants: Optional[Dict[str, str]] = None,
        domain_text: Optional[str] = None
    ):
        """
        Initialize the domain expert.

        Args:
            name: Domain name
            types: Mapping of type name to parent type (None for subtypes of object)
            predicates: Mapping of predicate name to its (param_name, type) list
            functions: Mapping of function name to its (param_name, type) list
            constants: Mapping of constant name to type
            domain_text: Original PDDL text, returned by get_domain()

        Raises:
            DomainDefinitionError: If a declaration references an undeclared type
        """
        self.logger = get_structured_logger("DomainExpert")
        self.name = name.lower()
        self._domain_text = domain_text

        self._types: Dict[str, Optional[str]] = {"object": None}
        for type_name, parent in (types or {}).items():
            self._types[type_name.lower()] = parent.lower() if parent else "object"
        self._types["object"] = None

        self._predicates = self._normalize_signatures(predicates or {})
        self._functions = self._normalize_signatures(functions or {})
        self._constants = {c.lower(): t.lower() for c, t in (constants or {}).items()}

        self._check_declarations()

    @classmethod
    def from_pddl(cls, domain_text: str) -> "DomainExpert":
        """
        Build a domain expert from PDDL domain text.

        Raises:
            DomainDefinitionError: If the text is not a valid PDDL domain
        """
        try:
            domain = DomainParser()(domain_text)
        except Exception as exc:  # lark and pddl raise unrelated exception types
            raise DomainDefinitionError(f"Could not parse domain: {exc}") from exc

        types = {
            str(type_name): (str(parent) if parent else None)
            for type_name, parent in domain.types.items()
        }
        predicates = {
            str(predicate.name): [(str(t.name), _term_type(t)) for t in predicate.terms]
            for predicate in domain.predicates
        }
        functions = {
            str(function.name): [(str(t.name), _term_type(t)) for t in function.terms]
            for function in (getattr(domain, "functions", None) or ())
        }
        constants = {str(c.name): _term_type(c) for c in domain.constants}

        return cls(
            str(domain.name),
            types=types,
            predicates=predicates,
            functions=functions,
            constants=constants,
            domain_text=domain_text,
        )

    # =====================================================================
    # Contract
    # =====================================================================

    def get_name(self) -> str:
        return self.name

    def exist_domain(self, name: str) -> bool:
        return bool(name) and name.lower() == self.name

    def get_types(self) -> Set[str]:
        return set(self._types)

    def get_constants(self) -> Dict[str, str]:
        return dict(self._constants)

    def get_predicate(self, name: str) -> Optional[Signature]:
        return self._signature(name, self._predicates)

    def get_function(self, name: str) -> Optional[Signature]:
        return self._signature(name, self._functions)

    def get_predicates(self) -> List[Signature]:
        return [self._signature(name, self._predicates) for name in self._predicates]

    def get_functions(self) -> List[Signature]:
        return [self._signature(name, self._functions) for name in self._functions]

    def get_subtypes(self, type_name: str) -> List[str]:
        """All declared types that descend from type_name, sorted."""
        type_name = type_name.lower()
        subtypes = []
        for candidate in self._types:
            if candidate != type_name and type_name in self._ancestors(candidate):
                subtypes.append(candidate)
        return sorted(subtypes)

    def get_domain(self) -> str:
        """The domain as PDDL text."""
        if self._domain_text is not None:
            return self._domain_text
        return self.to_pddl()

    def to_pddl(self) -> str:
        """Render the domain declarations as PDDL text."""
        requirements = [":strips", ":typing"]
        if self._functions:
            requirements.append(":numeric-fluents")

        lines = [
            f"(define (domain {self.name})",
            f"  (:requirements {' '.join(requirements)})",
        ]

        declared = [t for t in self._types if t != "object"]
        if declared:
            lines.append("  (:types")
            for type_name in declared:
                lines.append(f"    {type_name} - {self._types[type_name]}")
            lines.append("  )")

        if self._constants:
            lines.append("  (:constants")
            for constant, type_name in self._constants.items():
                lines.append(f"    {constant} - {type_name}")
            lines.append("  )")

        for section, signatures in ((":predicates", self._predicates), (":functions", self._functions)):
            if not signatures:
                continue
            lines.append(f"  ({section}")
            for name, params in signatures.items():
                typed = " ".join(f"?{p} - {t}" for p, t in params)
                lines.append(f"    ({name} {typed})" if typed else f"    ({name})")
            lines.append("  )")

        lines.append(")")
        return "\n".join(lines)

    # =====================================================================
    # Helper Methods
    # =====================================================================

    @staticmethod
    def _normalize_signatures(signatures: Dict[str, ParameterList]) -> Dict[str, ParameterList]:
        return {
            name.lower(): [(param.lower(), type_name.lower()) for param, type_name in params]
            for name, params in signatures.items()
        }

    def _check_declarations(self) -> None:
        for type_name, parent in self._types.items():
            if parent is not None and parent not in self._types:
                raise DomainDefinitionError(f"Type '{type_name}' has undeclared parent '{parent}'")

        for kind, signatures in (("predicate", self._predicates), ("function", self._functions)):
            for name, params in signatures.items():
                for _, type_name in params:
                    if type_name not in self._types:
                        raise DomainDefinitionError(
                            f"{kind.capitalize()} '{name}' uses undeclared type '{type_name}'"
                        )

        for constant, type_name in self._constants.items():
            if type_name not in self._types:
                raise DomainDefinitionError(f"Constant '{constant}' has undeclared type '{type_name}'")

        self.logger.debug(
            "Domain '%s' loaded: %s types, %s predicates, %s functions",
            self.name,
            len(self._types),
            len(self._predicates),
            len(self._functions),
        )

    def _ancestors(self, type_name: str) -> Set[str]:
        ancestors: Set[str] = set()
        parent = self._types.get(type_name)
        while parent is not None and parent not in ancestors:
            ancestors.add(parent)
            parent = self._types.get(parent)
        return ancestors

    def _signature(self, name: str, signatures: Dict[str, ParameterList]) -> Optional[Signature]:
        params = signatures.get(name.lower())
        if params is None:
            return None
        return Signature(
            name=name.lower(),
            parameters=[
                Param(name=param, type=type_name, sub_types=self.get_subtypes(type_name))
                for param, type_name in params
            ],
        )
