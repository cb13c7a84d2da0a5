from __future__ import annotations

from typing import Optional

from simdispatch.config import DispatchConfig
from simdispatch.core.caps_events import CapsEventDictionary
from simdispatch.core.log import get as get_logger
from simdispatch.core.packet_events import PacketEventDictionary
from simdispatch.core.pool import ThreadWorkerPool, WorkerPool

log = get_logger(__name__)


class ClientSession:
    """Owns the packet and capability registries of one client connection.

    Both registries share one worker pool. Nothing registered here outlives
    ``close()``.
    """

    def __init__(self, name: str = "client", config: Optional[DispatchConfig] = None,
                 pool: Optional[WorkerPool] = None):
        self.name = name
        self.config = config or DispatchConfig()
        self._own_pool = pool is None
        self.pool: WorkerPool = pool if pool is not None else ThreadWorkerPool(
            name=f"simdispatch.{name}.pool",
            workers=self.config.pool_workers,
            daemon=self.config.pool_daemon,
        )
        self.packets = PacketEventDictionary(client=name, pool=self.pool, quiet=self.config.quiet_packet_types())
        self.caps = CapsEventDictionary(client=name, pool=self.pool)
        self.closed = False
        log.info("session %s open (workers=%d)", name, self.config.pool_workers)

    def close(self, timeout: Optional[float] = None) -> None:
        """Discard registrations and stop an owned pool once its queued tasks have run."""
        if self.closed:
            return
        self.closed = True
        self.packets.clear()
        self.caps.clear()
        if self._own_pool and isinstance(self.pool, ThreadWorkerPool):
            self.pool.stop(timeout=timeout)
        log.info("session %s closed", self.name)

    def __enter__(self) -> "ClientSession":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
