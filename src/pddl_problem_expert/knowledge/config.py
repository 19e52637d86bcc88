"""
Problem Expert Configuration

Configuration dataclass for the knowledge base and its problem codec.
Values can come from a YAML file or from PROBLEM_EXPERT_* environment
variables (a project-root .env file is loaded on package import).
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

ENV_PREFIX = "PROBLEM_EXPERT_"

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


@dataclass
class ProblemExpertConfig:
    """Configuration for the problem expert."""
    # Problem emission
    problem_name: str = "problem_1"
    lowercase_names: bool = True  # Lower-case predicate/function/type names, never object names
    goal_indent: Optional[int] = 2  # Spaces per goal nesting level, None for a single line

    # Persistence
    output_dir: Path = field(default_factory=lambda: Path("outputs/pddl"))

    # Logging
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    def __post_init__(self):
        self.output_dir = Path(self.output_dir)
        if self.log_file is not None:
            self.log_file = Path(self.log_file)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProblemExpertConfig":
        """
        Build a config from a mapping of field names to values.

        Raises:
            ValueError: If the mapping contains unknown keys
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
        return cls(**dict(data))

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "ProblemExpertConfig":
        """
        Load a config from YAML.

        The file may hold the fields at top level or under a
        'problem_expert' key.
        """
        with open(path, "r", encoding="utf-8") as f:
            config_data = yaml.safe_load(f) or {}
        if not isinstance(config_data, dict):
            raise ValueError(f"Configuration file {path} must contain a mapping")
        return cls.from_dict(config_data.get("problem_expert", config_data))

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ProblemExpertConfig":
        """Build a config from PROBLEM_EXPERT_<FIELD> environment variables."""
        environ = os.environ if environ is None else environ
        values: Dict[str, Any] = {}

        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            if f.name == "lowercase_names":
                values[f.name] = _parse_bool(raw)
            elif f.name == "goal_indent":
                values[f.name] = None if raw.strip().lower() in ("", "none") else int(raw)
            elif f.name == "log_file":
                values[f.name] = Path(raw) if raw.strip() else None
            else:
                values[f.name] = raw

        return cls(**values)


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean value: {raw}")
