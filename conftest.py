# Seed the configuration the proxy refuses to start without, before any test
# imports auth_proxy.vars (which reads the environment at import time).
import os
import sys

import pytest

os.environ.setdefault("BACKEND_URL", "http://backend-internal:9000")
os.environ.setdefault("AUTH_USER", "alice")
os.environ.setdefault("AUTH_PASS", "s3cret")

SERVICE_ROOT = os.path.dirname(__file__)
if SERVICE_ROOT not in sys.path:
    sys.path.insert(0, SERVICE_ROOT)

TEST_BACKEND_URL = "http://backend-internal:9000"


class FakeClock:
    """Manually advanced clock for session expiry tests."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
