"""
Project-wide pytest fixtures.

Re-exports the scripted chat models, the controller builder and the sandbox
fixtures from `tests/conftest.py` so the per-package test suites under
`ralph-*/tests` can use them too.
"""

from tests.conftest import *  # noqa: F401,F403
