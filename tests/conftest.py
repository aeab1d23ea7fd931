import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from rieselprime import log


@pytest.fixture(autouse=True)
def _reset_log():
    """cli -c and batch mode redirect log(); undo that between tests."""
    yield
    log.set_stream(None)
    log.set_verbosity(0)


def is_prime(m):
    """Trial division oracle for small m."""
    if m < 2:
        return False
    if m % 2 == 0:
        return m == 2
    d = 3
    while d * d <= m:
        if m % d == 0:
            return False
        d += 2
    return True
