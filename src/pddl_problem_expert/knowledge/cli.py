"""
Command-line problem checker.

Loads a PDDL domain, imports a problem into a fresh knowledge base, prints the
problem as the knowledge base re-emits it and reports goal satisfaction.

Examples:
  problem-expert --domain domain.pddl --problem problem.pddl

  # Check a different goal against the problem's initial state
  problem-expert --domain domain.pddl --problem problem.pddl \
      --goal "(and (robot_at r2d2 kitchen))"

  # Settings from YAML, write the re-emitted problem to a file
  problem-expert --domain domain.pddl --problem problem.pddl \
      --config config/problem_expert.yaml --output outputs/pddl/problem.pddl
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional, Sequence

from ..utils.logging_utils import configure_logging
from .config import ProblemExpertConfig
from .domain_expert import DomainDefinitionError, DomainExpert
from .pddl_parser import PDDLParseError, parse_goal
from .problem_expert import ProblemExpert


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="problem-expert",
        description="Validate a PDDL problem against a domain and re-emit it.",
    )
    parser.add_argument("--domain", type=Path, required=True, help="PDDL domain file")
    parser.add_argument("--problem", type=Path, required=True, help="PDDL problem file")
    parser.add_argument("--goal", help="Goal expression to check instead of the problem goal")
    parser.add_argument("--config", type=Path, help="YAML configuration file")
    parser.add_argument("--output", type=Path, help="Write the re-emitted problem to this file")
    parser.add_argument("--log-level", help="Override the configured log level")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    config = ProblemExpertConfig.from_yaml(args.config) if args.config else ProblemExpertConfig.from_env()
    if args.log_level:
        config.log_level = args.log_level
    configure_logging(level=config.log_level, log_file=config.log_file)

    try:
        domain_expert = DomainExpert.from_pddl(args.domain.read_text(encoding="utf-8"))
    except (OSError, DomainDefinitionError) as exc:
        print(f"Could not load domain: {exc}", file=sys.stderr)
        return 1

    expert = ProblemExpert(domain_expert, config=config)
    try:
        problem_text = args.problem.read_text(encoding="utf-8")
    except OSError as exc:
        print(f"Could not read problem: {exc}", file=sys.stderr)
        return 1

    if not expert.add_problem(problem_text):
        print("Problem rejected", file=sys.stderr)
        return 1

    print(expert.get_problem(), end="")
    stats = expert.get_statistics()
    print(
        f";; {stats['instances']} instances, {stats['predicates']} predicates, "
        f"{stats['functions']} functions, {stats['conditionals']} conditionals"
    )

    goal = expert.get_goal()
    if args.goal:
        try:
            goal = parse_goal(args.goal.lower())
        except PDDLParseError as exc:
            print(f"Invalid goal: {exc}", file=sys.stderr)
            return 1

    if goal.is_empty():
        print(";; no goal")
    else:
        satisfied = expert.is_goal_satisfied(goal)
        print(f";; goal {'satisfied' if satisfied else 'not satisfied'}")

    if args.output:
        expert.save_problem(args.output)

    return 0


if __name__ == "__main__":
    sys.exit(main())
