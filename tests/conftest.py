"""
Shared fixtures for the faultline tests.

- ``register_client``: a fresh in-memory register store.
- ``counting_client``: a minimal client that records every hook call.
- Every test fails if it leaves a logical process thread alive.
"""

import threading

import pytest

from faultline.client import Client
from faultline.workloads import RegisterClient


class CountingClient(Client):
    """Completes every operation as ``ok`` and counts the hook calls."""

    def __init__(self):
        self.lock = threading.Lock()
        self.calls = {"open": 0, "setup": 0, "invoke": 0, "teardown": 0, "close": 0}

    def _count(self, name):
        with self.lock:
            self.calls[name] += 1

    def open(self):
        self._count("open")
        return object()

    def setup(self, handle):
        self._count("setup")
        return True

    def invoke(self, op, handle):
        self._count("invoke")
        return op.replace(type="ok")

    def teardown(self, handle):
        self._count("teardown")
        return True

    def close(self, handle):
        self._count("close")
        return True


@pytest.fixture
def register_client():
    return RegisterClient()


@pytest.fixture
def counting_client():
    return CountingClient()


@pytest.fixture(autouse=True)
def _check_thread_cleanup(request):
    """Fail any test that leaves a thread running.

    Process threads are daemons, so a leak would not hang pytest at exit; it
    would only show up as cross-talk between tests.  Checking explicitly gives
    a clear message instead.
    """
    initial_threads = set(threading.enumerate())

    yield

    new_threads = set(threading.enumerate()) - initial_threads
    alive_threads = [t for t in new_threads if t.is_alive()]
    if alive_threads and not request.node.get_closest_marker("intentionally_leaves_dangling_threads"):
        thread_info = ", ".join(f"{t.name} ({'daemon' if t.daemon else 'NON-DAEMON'})" for t in alive_threads)
        pytest.fail(f"Test {request.node.nodeid} left {len(alive_threads)} thread(s) running: {thread_info}")
