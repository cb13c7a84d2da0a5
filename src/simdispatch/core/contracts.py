from __future__ import annotations

import enum
import time
import traceback
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Tuple

__all__ = [
    "PacketType",
    "CAPS_DEFAULT",
    "Callback",
    "Chain",
    "CallbackResult",
    "DispatchTask",
    "Simulator",
    "callback_name",
]


class PacketType(enum.Enum):
    """Inbound protocol message types. ``Default`` is the wildcard key."""
    Default = 0
    PacketAck = 1
    StartPingCheck = 2
    CompletePingCheck = 3
    ObjectUpdate = 4
    ImprovedTerseObjectUpdate = 5
    ObjectUpdateCached = 6
    KillObject = 7
    ChatFromSimulator = 8
    RegionHandshake = 9
    AgentMovementComplete = 10
    AvatarAnimation = 11
    CoarseLocationUpdate = 12
    SimStats = 13
    LogoutReply = 14
    KickUser = 15


# wildcard key for capability events
CAPS_DEFAULT = ""

Callback = Callable[[Any, Any], None]
Chain = Tuple[Callback, ...]


def callback_name(cb: Callable[..., Any]) -> str:
    return getattr(cb, "__qualname__", None) or getattr(cb, "__name__", None) or repr(cb)


@dataclass(frozen=True, slots=True)
class CallbackResult:
    """Outcome of one callback invocation."""
    ok: bool
    callback_name: str
    error: Optional[BaseException] = None
    detail: str = ""

    @classmethod
    def success(cls, cb: Callable[..., Any]) -> "CallbackResult":
        return cls(ok=True, callback_name=callback_name(cb))

    @classmethod
    def failure(cls, cb: Callable[..., Any], exc: BaseException) -> "CallbackResult":
        detail = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return cls(ok=False, callback_name=callback_name(cb), error=exc, detail=detail)


@dataclass(frozen=True, slots=True)
class DispatchTask:
    """Work captured at submission time for the asynchronous path.

    ``chain`` is a tuple taken from the registry under its lock, so later
    register/unregister calls never reach a task that is already queued.
    """
    key: Any
    chain: Chain
    payload: Any
    connection: Any
    submitted_at: float = field(default_factory=time.perf_counter)


@dataclass(frozen=True, slots=True)
class Simulator:
    """Originating connection handed to callbacks; dispatch never looks inside."""
    name: str
    address: str = "127.0.0.1:13000"

    def __str__(self) -> str:
        return f"{self.name} ({self.address})"
