from __future__ import annotations

import threading
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

from simdispatch.core import log
from simdispatch.core.contracts import Callback, Chain, DispatchTask, callback_name
from simdispatch.core.invoke import make_work_item, run_chain
from simdispatch.core.metrics import gauge_set, inc
from simdispatch.core.pool import ThreadWorkerPool, WorkerPool


class EventDictionary:
    """Key -> ordered callback chain, with sync and pooled dispatch.

    Subclasses set ``label``, ``default_key`` (the wildcard) and ``key_type``.
    Chains are stored as tuples and replaced on every mutation, so whatever
    a dispatch copies out under the lock can't change underneath it.
    Callbacks always run outside the lock.
    """

    label: str = "event"
    default_key: Any = None
    key_type: type = object

    def __init__(
        self,
        client: Optional[str] = None,
        pool: Optional[WorkerPool] = None,
        quiet: Iterable[Any] = (),
    ):
        self.client = client
        self.pool: WorkerPool = pool if pool is not None else ThreadWorkerPool(name=f"simdispatch.{self.label}.pool")
        self.quiet: FrozenSet[Any] = frozenset(quiet) | {self.default_key}
        self.l = log.get(f"simdispatch.{self.label}")
        self._table: Dict[Any, Chain] = {}
        self._lock = threading.Lock()

    # ---------------- registration ----------------
    def _check_key(self, key: Any) -> None:
        if not isinstance(key, self.key_type):
            raise TypeError(f"{self.label} key must be {self.key_type.__name__}, got {type(key).__name__}")

    def register_event(self, key: Any, callback: Callback) -> None:
        """Append callback to the chain for key. Duplicates accumulate."""
        self._check_key(key)
        if not callable(callback):
            raise TypeError("callback must be callable")
        with self._lock:
            chain = self._table.get(key, ()) + (callback,)
            self._table[key] = chain
            gauge_set("dispatch_handlers", float(len(chain)), registry=self.label, key=key)
        self.l.debug("registered key=%s fn=%s", key, callback_name(callback))

    def unregister_event(self, key: Any, callback: Callback) -> None:
        """Remove the first callback equal to ``callback``; unknown pairs are ignored."""
        with self._lock:
            chain = self._table.get(key)
            if not chain:
                return
            for i, cb in enumerate(chain):
                if cb == callback:
                    break
            else:
                return
            chain = chain[:i] + chain[i + 1:]
            if chain:
                self._table[key] = chain
            else:
                del self._table[key]
            gauge_set("dispatch_handlers", float(len(chain)), registry=self.label, key=key)

    def handler_count(self, key: Any) -> int:
        with self._lock:
            return len(self._table.get(key, ()))

    def keys(self) -> List[Any]:
        with self._lock:
            return list(self._table)

    def clear(self) -> None:
        with self._lock:
            self._table.clear()

    # ---------------- dispatch ----------------
    def _snapshot(self, key: Any) -> Tuple[Chain, Chain]:
        with self._lock:
            default = self._table.get(self.default_key, ())
            specific = self._table.get(key, ()) if key != self.default_key else ()
        return default, specific

    def _unhandled(self, key: Any) -> None:
        inc("dispatch_unhandled_total", 1, registry=self.label)
        if key in self.quiet:
            return
        self.l.debug("No handler registered for %s event %s client=%s", self.label, key, self.client,
                     extra={"client": self.client, "registry": self.label, "event_key": key})

    def raise_event(self, key: Any, payload: Any, connection: Any) -> None:
        """Run the wildcard chain, then the chain for key, on this thread.

        Never raises; callback failures are logged.
        """
        inc("dispatch_raise_total", 1, registry=self.label, mode="sync")
        default, specific = self._snapshot(key)
        if not default and not specific:
            self._unhandled(key)
            return
        for chain in (default, specific):
            if chain:
                run_chain(chain, key, payload, connection, logger=self.l, label=self.label, client=self.client)

    def begin_raise_event(self, key: Any, payload: Any, connection: Any) -> None:
        """Queue the wildcard chain and the chain for key as two pool tasks.

        Returns once both are submitted. The two tasks are independent; they
        may run in either order or at the same time.
        """
        inc("dispatch_raise_total", 1, registry=self.label, mode="async")
        default, specific = self._snapshot(key)
        if not default and not specific:
            self._unhandled(key)
            return
        for chain in (default, specific):
            if chain:
                self._submit(DispatchTask(key=key, chain=chain, payload=payload, connection=connection))

    def _submit(self, task: DispatchTask) -> None:
        work = make_work_item(task, logger=self.l, label=self.label, client=self.client)
        try:
            self.pool.submit(work)
        except Exception as e:
            self.l.error("%s submit failed key=%s err=%s", self.label, task.key, e, exc_info=True,
                         extra={"client": self.client, "registry": self.label})

    def __repr__(self) -> str:
        return f"<{type(self).__name__} client={self.client!r} keys={len(self.keys())}>"
