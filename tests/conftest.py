"""
Shared pytest fixtures for trajsim tests.
"""

import logging

import pytest

from trajsim import Simulation


@pytest.fixture
def sim() -> Simulation:
    """A fresh, seeded simulation."""
    return Simulation("test", seed=1)


@pytest.fixture(autouse=True)
def reset_trajsim_logging():
    """Reset logging state before each test.

    Ensures tests start with a clean logging configuration:
    - Removes all handlers except NullHandler
    - Resets level to NOTSET (inherit from parent)

    This prevents logging configuration from one test affecting another.
    """
    logger = logging.getLogger("trajsim")

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        if not isinstance(handler, logging.NullHandler):
            handler.close()
    logger.addHandler(logging.NullHandler())
    logger.setLevel(logging.NOTSET)

    yield

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        if not isinstance(handler, logging.NullHandler):
            handler.close()
    logger.addHandler(logging.NullHandler())
    logger.setLevel(logging.NOTSET)
