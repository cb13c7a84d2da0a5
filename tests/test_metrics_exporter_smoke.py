# tests/test_metrics_exporter_smoke.py
import io
import json
import logging
import os
import time
import pytest

from simdispatch.core.contracts import PacketType
from simdispatch.core.log import JsonHandler
from simdispatch.core.packet_events import PacketEventDictionary


@pytest.mark.smoke
def test_exporter_reports_dispatch_counters(caplog, inline_pool, sim):
    """exporter runs every 1s under conftest; a raise should show up in its output"""
    caplog.set_level(logging.INFO, logger="metrics")

    packets = PacketEventDictionary(pool=inline_pool)
    packets.register_event(PacketType.ObjectUpdate, lambda p, c: None)
    packets.raise_event(PacketType.ObjectUpdate, None, sim)

    time.sleep(float(os.getenv("METRICS_WAIT_SMOKE", "1.8")))

    text = " ".join(r.getMessage() for r in caplog.records if r.name == "metrics")
    assert "dispatch_raise_total" in text


def test_json_handler_carries_dispatch_context():
    h = JsonHandler()
    h.stream = io.StringIO()
    lg = logging.getLogger("test.jsonlog")
    lg.addHandler(h)
    lg.propagate = False
    try:
        try:
            raise RuntimeError("cb failed")
        except RuntimeError as e:
            lg.error("handler failed", exc_info=e, extra={"client": "c9", "event_key": PacketType.KillObject})
    finally:
        lg.removeHandler(h)
        lg.propagate = True

    obj = json.loads(h.stream.getvalue().splitlines()[0])
    assert obj["lvl"] == "ERROR"
    assert obj["client"] == "c9"
    assert obj["event_key"] == "PacketType.KillObject"
    assert "RuntimeError: cb failed" in obj["exc"]
