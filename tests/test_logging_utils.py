"""
Tests for logging helpers.
"""

import logging

import pytest

from pddl_problem_expert.utils.logging_utils import (
    CallbackLogHandler,
    configure_logging,
    get_structured_logger,
    resolve_level,
)


def _installed_by_configure(handler):
    return isinstance(handler, (CallbackLogHandler, logging.FileHandler)) or type(handler) is logging.StreamHandler


@pytest.fixture
def root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in root.handlers[:]:
        if handler not in handlers and _installed_by_configure(handler):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


def test_resolve_level():
    assert resolve_level("debug") == logging.DEBUG
    assert resolve_level(" WARNING ") == logging.WARNING
    assert resolve_level(logging.ERROR) == logging.ERROR
    with pytest.raises(ValueError):
        resolve_level("loud")


def test_structured_logger_name():
    logger = get_structured_logger("ProblemExpert")
    assert logger.name == "knowledge.ProblemExpert"
    assert logger.propagate


def test_callback_handler_receives_messages():
    messages = []
    logger = logging.getLogger("knowledge.test_callback")
    handler = CallbackLogHandler(messages.append)
    handler.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    try:
        logger.warning("Failed to add predicate: %s", "(robot_at c3po kitchen)")
        logger.debug("hidden")
    finally:
        logger.removeHandler(handler)

    assert messages == ["WARNING Failed to add predicate: (robot_at c3po kitchen)"]


def test_callback_handler_can_pass_record():
    received = []
    handler = CallbackLogHandler(lambda msg, record: received.append(record.levelno), pass_record=True)
    logger = logging.getLogger("knowledge.test_record")
    logger.addHandler(handler)
    try:
        logger.error("boom")
    finally:
        logger.removeHandler(handler)

    assert received == [logging.ERROR]


def test_configure_logging_routes_component_logs(root_logger, tmp_path):
    messages = []
    log_file = tmp_path / "logs" / "expert.log"

    configure_logging(level="INFO", callback=messages.append, log_file=log_file, include_console=False)
    configure_logging(level="INFO", callback=messages.append, log_file=log_file, include_console=False)

    get_structured_logger("ProblemCodec").info("Goal insertion ok")

    assert len(messages) == 1
    assert "Goal insertion ok" in messages[0]
    assert "knowledge.ProblemCodec" in messages[0]
    assert sum(isinstance(h, CallbackLogHandler) for h in root_logger.handlers) == 1
    for handler in root_logger.handlers:
        handler.flush()
    assert "Goal insertion ok" in log_file.read_text(encoding="utf-8")
