import logging

from mcp_engine.utilities.logging import get_logger


def test_get_logger_uses_given_name():
    logger = get_logger("mcp_engine.server.session")

    assert logger is logging.getLogger("mcp_engine.server.session")
    assert logger.name == "mcp_engine.server.session"


def test_get_logger_follows_package_hierarchy():
    parent = get_logger("mcp_engine.server")
    child = get_logger("mcp_engine.server.sse")

    assert child.parent is parent
    assert child.propagate
