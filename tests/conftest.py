import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from helpers import ME, NOW, FakeClock, FakeGemini  # noqa: E402


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def profile():
    return ME


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def gemini():
    return FakeGemini()
