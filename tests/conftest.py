# tests/conftest.py
import os
import logging
import threading
import pytest

from simdispatch.core import log
from simdispatch.core.contracts import Simulator
from simdispatch.core.metrics import start_exporter, stop_exporter
from simdispatch.core.pool import InlineWorkerPool, ThreadWorkerPool


@pytest.fixture(scope="session", autouse=True)
def _bootstrap_logging_and_metrics():
    log.setup()
    interval = float(os.getenv("METRICS_INTERVAL_TEST", "1.0"))
    json_mode = (os.getenv("LOG_JSON", "0") == "1")
    start_exporter(interval_sec=interval, json_mode=json_mode,
                   logger=logging.getLogger("metrics"))
    yield
    stop_exporter()


@pytest.fixture
def sim():
    return Simulator("sim-a")


@pytest.fixture
def inline_pool():
    return InlineWorkerPool()


@pytest.fixture
def thread_pool():
    pool = ThreadWorkerPool(name="test.pool", workers=4)
    pool.start()
    yield pool
    pool.stop()


class Recorder:
    """Callback stand-in that remembers (tag, payload, connection, thread)."""

    def __init__(self):
        self.calls = []
        self._lock = threading.Lock()

    def make(self, tag):
        def cb(payload, connection):
            with self._lock:
                self.calls.append((tag, payload, connection, threading.current_thread().name))
        cb.__qualname__ = f"rec[{tag}]"
        return cb

    def tags(self):
        return [c[0] for c in self.calls]


@pytest.fixture
def rec():
    return Recorder()
