"""
Shared test configuration and fixtures.
"""

import sys
from pathlib import Path

import pytest

# Add the src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from pddl_problem_expert.knowledge import DomainExpert, Instance, Node, ProblemExpert
from pddl_problem_expert.knowledge.pddl_parser import parse_conditional, parse_goal


SIMPLE_DOMAIN_PDDL = """
(define (domain simple)
  (:requirements :strips :typing)
  (:types
    corridor - room
    robot room door item
  )
  (:constants base - room)
  (:predicates
    (robot_at ?r - robot ?ro - room)
    (connected ?ro1 ?ro2 - room)
    (door_open ?d - door)
    (item_at ?i - item ?ro - room)
  )
)
"""


@pytest.fixture
def simple_domain_pddl():
    """PDDL text of the simple domain."""
    return SIMPLE_DOMAIN_PDDL


@pytest.fixture
def domain_expert():
    """Domain with a small type hierarchy (corridor is a room), one constant and two functions."""
    return DomainExpert(
        "simple",
        types={
            "robot": None,
            "room": None,
            "corridor": "room",
            "door": None,
            "item": None,
        },
        predicates={
            "robot_at": [("r", "robot"), ("ro", "room")],
            "connected": [("ro1", "room"), ("ro2", "room")],
            "door_open": [("d", "door")],
            "item_at": [("i", "item"), ("ro", "room")],
        },
        functions={
            "battery_level": [("r", "robot")],
            "distance": [("ro1", "room"), ("ro2", "room")],
        },
        constants={"base": "room"},
    )


@pytest.fixture
def problem_expert(domain_expert):
    """Empty knowledge base over the simple domain."""
    return ProblemExpert(domain_expert)


@pytest.fixture
def populated_expert(problem_expert):
    """Knowledge base holding every kind of fact."""
    expert = problem_expert
    for name, type_name in [
        ("base", "room"),
        ("r2d2", "robot"),
        ("kitchen", "room"),
        ("bedroom", "room"),
        ("corridor1", "corridor"),
        ("d1", "door"),
        ("d2", "door"),
        ("cup", "item"),
    ]:
        assert expert.add_instance(Instance(name, type_name))

    assert expert.add_predicate(Node.predicate("robot_at", ["r2d2", "kitchen"]))
    assert expert.add_predicate(Node.predicate("connected", ["kitchen", "bedroom"]))
    assert expert.add_predicate(Node.predicate("door_open", ["d1"]))
    assert expert.add_function(Node.function("battery_level", ["r2d2"], 80))

    assert expert.add_conditional(parse_conditional("(unknown (door_open d2))"))
    assert expert.add_conditional(
        parse_conditional("(oneof (item_at cup kitchen) (item_at cup bedroom) (item_at cup corridor1))")
    )

    assert expert.set_goal(parse_goal(
        "(and (robot_at r2d2 bedroom) (not (door_open d2)) (> (battery_level r2d2) 10))"
    ))
    return expert
