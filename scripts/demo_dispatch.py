"""
Drive a ClientSession with synthetic packets and capability events.

    python scripts/demo_dispatch.py --events 2000 --async --fail-every 100
"""
from __future__ import annotations

import argparse
import random
import time

from simdispatch.config import load_config
from simdispatch.core import log
from simdispatch.core.contracts import PacketType, Simulator
from simdispatch.core.metrics import force_emit, start_exporter, stop_exporter
from simdispatch.session import ClientSession

TYPES = [t for t in PacketType if t is not PacketType.Default]
CAPS = ["EventQueueGet", "TeleportFinish", "EstablishAgentCommunication", "ChatterBoxInvitation"]


def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--config", type=str, default=None, help="YAML config path")
    ap.add_argument("--events", type=int, default=1000)
    ap.add_argument("--async", dest="use_async", action="store_true", help="use begin_raise_event")
    ap.add_argument("--fail-every", type=int, default=0, help="make every Nth ObjectUpdate callback raise")
    args = ap.parse_args()

    cfg = load_config(args.config)
    log.setup(cfg.log_level, cfg.log_json)
    start_exporter(interval_sec=cfg.metrics_interval, json_mode=cfg.log_json, logger=log.get("metrics"))
    lg = log.get("demo.dispatch")

    sim = Simulator("demo-sim")
    seen = {"any": 0, "object": 0, "caps": 0}

    def on_any(packet, simulator):
        seen["any"] += 1

    def on_object(packet, simulator):
        seen["object"] += 1
        if args.fail_every and seen["object"] % args.fail_every == 0:
            raise RuntimeError(f"injected failure at packet {packet['i']}")

    def on_caps(message, simulator):
        seen["caps"] += 1

    with ClientSession("demo", cfg) as session:
        session.packets.register_event(PacketType.Default, on_any)
        session.packets.register_event(PacketType.ObjectUpdate, on_object)
        for name in CAPS[:2]:
            session.caps.register_event(name, on_caps)

        t0 = time.perf_counter()
        for i in range(args.events):
            if random.random() < 0.8:
                raise_ = session.packets.begin_raise_event if args.use_async else session.packets.raise_event
                raise_(random.choice(TYPES), {"i": i}, sim)
            else:
                raise_ = session.caps.begin_raise_event if args.use_async else session.caps.raise_event
                raise_(random.choice(CAPS), {"i": i}, sim)
        dt = time.perf_counter() - t0
        if args.use_async:
            session.pool.join()

    lg.info("raised=%d in %.3fs (%.0f/s) seen=%s", args.events, dt, args.events / max(dt, 1e-9), seen)
    force_emit(log.get("metrics"), json_mode=cfg.log_json)
    stop_exporter()


if __name__ == "__main__":
    main()
