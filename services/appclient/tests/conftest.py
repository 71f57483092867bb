import sys

import pytest


@pytest.fixture
def py():
    """Build an argv that runs a Python snippet with the current interpreter."""

    def _argv(code: str) -> list[str]:
        return [sys.executable, "-c", code]

    return _argv
