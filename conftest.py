"""
Pytest configuration for the CHIP-8 test suite.

Run from the repository root:

    python -m pytest                 # everything
    python -m pytest -m "not display"   # skip the pygame window test

SDL is pointed at its dummy video/audio drivers so the window test can
run on machines without a display.
"""

import os

import pytest

os.environ.setdefault("SDL_VIDEODRIVER", "dummy")
os.environ.setdefault("SDL_AUDIODRIVER", "dummy")
os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers",
        "display: tests that open a pygame window (dummy SDL driver)")


class FakeClock:
    """Manually advanced stand-in for time.monotonic."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
