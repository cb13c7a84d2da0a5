from __future__ import annotations

from typing import Any, Optional

from simdispatch.core.contracts import CAPS_DEFAULT
from simdispatch.core.dispatcher import EventDictionary
from simdispatch.core.pool import WorkerPool


class CapsEventDictionary(EventDictionary):
    """Callbacks keyed by capability event name.

    The empty string is the wildcard: a callback registered under ``""``
    fires for every capability event, on both the sync and async paths.
    Wildcard callbacks are not told which event fired; they get the same
    (message, simulator) pair, so the message itself has to carry the name
    if they need it.
    Callbacks are called as ``fn(message, simulator)``.
    """

    label = "caps"
    default_key = CAPS_DEFAULT
    key_type = str

    def __init__(self, client: Optional[str] = None, pool: Optional[WorkerPool] = None):
        super().__init__(client=client, pool=pool)

    def raise_event(self, caps_event: str, message: Any, simulator: Any) -> None:
        super().raise_event(caps_event, message, simulator)

    def begin_raise_event(self, caps_event: str, message: Any, simulator: Any) -> None:
        super().begin_raise_event(caps_event, message, simulator)
