from __future__ import annotations

import pytest

from tests._fixtures.doubles import SleepRecorder


@pytest.fixture
def sleeper() -> SleepRecorder:
    """Record requested delays instead of sleeping."""
    return SleepRecorder()
