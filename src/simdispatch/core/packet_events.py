from __future__ import annotations

from typing import Any, Iterable, Optional

from simdispatch.core.contracts import PacketType
from simdispatch.core.dispatcher import EventDictionary
from simdispatch.core.pool import WorkerPool

# acknowledgment-only traffic; never worth an "unhandled" line
QUIET_PACKETS = frozenset({PacketType.Default, PacketType.PacketAck})


class PacketEventDictionary(EventDictionary):
    """Callbacks keyed by PacketType.

    Register against ``PacketType.Default`` to see every incoming packet.
    Callbacks are called as ``fn(packet, simulator)``.
    """

    label = "packet"
    default_key = PacketType.Default
    key_type = PacketType

    def __init__(
        self,
        client: Optional[str] = None,
        pool: Optional[WorkerPool] = None,
        quiet: Iterable[PacketType] = QUIET_PACKETS,
    ):
        super().__init__(client=client, pool=pool, quiet=quiet)

    def raise_event(self, packet_type: PacketType, packet: Any, simulator: Any) -> None:
        super().raise_event(packet_type, packet, simulator)

    def begin_raise_event(self, packet_type: PacketType, packet: Any, simulator: Any) -> None:
        super().begin_raise_event(packet_type, packet, simulator)
