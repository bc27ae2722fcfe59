import pytest

from main import _log_due


@pytest.mark.parametrize("step,every,expected", [
    (300, 300, True),
    (301, 300, False),
    (5, 1, True),
    (0, 0, False),
    (300, 0, False),
])
def test_log_throttle(step, every, expected):
    assert _log_due(step, every) is expected
