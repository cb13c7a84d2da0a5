from __future__ import annotations

import asyncio
import queue
import threading
from typing import Any, Callable, List, Optional, Protocol, runtime_checkable

from simdispatch.core import log
from simdispatch.core.metrics import gauge_set, inc

WorkItem = Callable[[], None]


@runtime_checkable
class WorkerPool(Protocol):
    """Fire-and-forget executor. Queueing and sizing belong to the pool."""

    def submit(self, task: WorkItem) -> None: ...


# queued once per worker by stop(); a worker exits when it reads one
_STOP = object()


class ThreadWorkerPool:
    """Fixed number of worker threads draining one unbounded queue.

    ``stop()`` never drops work: every task submitted before it still runs,
    then the workers exit. A stopped pool is closed for good and rejects
    further submissions.
    """

    def __init__(self, name: str = "simdispatch.pool", workers: int = 4, daemon: bool = True):
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self.name = name
        self.workers = int(workers)
        self.daemon = daemon
        self.l = log.get(name)
        self._q: "queue.Queue[Any]" = queue.Queue()
        self._threads: List[threading.Thread] = []
        self._started = False
        self._closed = False
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._started and not self._closed

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self):
        with self._lock:
            self._start_locked()

    def _start_locked(self):
        if self._closed:
            raise RuntimeError(f"pool {self.name} is closed")
        if self._started:
            return
        self._started = True
        self._threads = [
            threading.Thread(target=self._loop, name=f"{self.name}-{i}", daemon=self.daemon)
            for i in range(self.workers)
        ]
        for th in self._threads:
            th.start()
        self.l.info("pool start workers=%d (daemon=%s)", self.workers, self.daemon)

    def stop(self, timeout: Optional[float] = None):
        """Close the pool, let queued tasks finish, then join the workers.

        With a timeout the join may return early; the remaining tasks still
        run on the workers in the background.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            threads, self._threads = self._threads, []
            for _ in threads:
                self._q.put(_STOP)
        pending = self.queue_depth() - len(threads)
        me = threading.current_thread()
        for th in threads:
            if th is not me and th.is_alive():
                th.join(timeout=timeout)
        self.l.info("pool stop (drained=%d)", max(pending, 0))

    def submit(self, task: WorkItem) -> None:
        with self._lock:
            self._start_locked()
            self._q.put(task)
        gauge_set("pool_queue_depth", float(self._q.qsize()), pool=self.name)

    def queue_depth(self) -> int:
        return self._q.qsize()

    def _loop(self):
        while True:
            task = self._q.get()
            if task is _STOP:
                self._q.task_done()
                return
            try:
                task()
                inc("pool_tasks_total", 1, pool=self.name)
            except Exception as e:
                self.l.error("task error fn=%s err=%s", getattr(task, "__qualname__", task), e, exc_info=True)
            finally:
                self._q.task_done()

    def join(self):
        """Block until every queued task has run (tests)."""
        self._q.join()


class InlineWorkerPool:
    """Runs each task on the submitting thread. For tests and single-threaded tools."""

    def __init__(self):
        self.l = log.get("simdispatch.pool.inline")
        self.submitted = 0

    def submit(self, task: WorkItem) -> None:
        self.submitted += 1
        try:
            task()
        except Exception as e:
            self.l.error("task error fn=%s err=%s", getattr(task, "__qualname__", task), e, exc_info=True)


class LoopWorkerPool:
    """Hands tasks to an asyncio loop; safe to call from any thread."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.loop = loop or asyncio.get_running_loop()
        self.l = log.get("simdispatch.pool.loop")

    def submit(self, task: WorkItem) -> None:
        self.loop.call_soon_threadsafe(self._run, task)

    def _run(self, task: WorkItem) -> None:
        try:
            task()
        except Exception as e:
            self.l.error("task error fn=%s err=%s", getattr(task, "__qualname__", task), e, exc_info=True)
