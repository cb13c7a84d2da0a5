# tests/test_session_config.py
import logging
import threading
import time

import pytest

from simdispatch.config import DispatchConfig, build_from_yaml, load_config
from simdispatch.core.contracts import PacketType
from simdispatch.core.pool import ThreadWorkerPool
from simdispatch.session import ClientSession


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for k in ("SIMDISPATCH_WORKERS", "LOG_LEVEL", "LOG_JSON", "METRICS_INTERVAL"):
        monkeypatch.delenv(k, raising=False)


def test_defaults_without_yaml():
    cfg = load_config()
    assert cfg.pool_workers == 4
    assert cfg.quiet_packet_types() == {PacketType.Default, PacketType.PacketAck}


def test_yaml_then_env_override(tmp_path, monkeypatch):
    p = tmp_path / "dispatch.yaml"
    p.write_text(
        "dispatch:\n"
        "  pool_workers: 2\n"
        "  quiet_packets: [PacketAck, SimStats]\n"
        "  log_level: DEBUG\n",
        encoding="utf-8",
    )
    cfg = load_config(str(p))
    assert cfg.pool_workers == 2
    assert cfg.log_level == "DEBUG"
    assert cfg.quiet_packet_types() == {PacketType.PacketAck, PacketType.SimStats}

    monkeypatch.setenv("SIMDISPATCH_WORKERS", "7")
    monkeypatch.setenv("LOG_JSON", "1")
    cfg = load_config(str(p))
    assert cfg.pool_workers == 7
    assert cfg.log_json is True


def test_bad_config_rejected(tmp_path):
    p = tmp_path / "bad.yaml"
    p.write_text("dispatch:\n  quiet_packets: [NotAPacket]\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(str(p))

    p.write_text("dispatch:\n  pool_size: 3\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(str(p))

    p.write_text("dispatch:\n  pool_workers: 0\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(str(p))


def test_build_from_yaml_gives_working_session(tmp_path, rec, sim):
    p = tmp_path / "dispatch.yaml"
    p.write_text("dispatch:\n  pool_workers: 1\n", encoding="utf-8")
    with build_from_yaml(str(p), name="yaml-client") as session:
        assert session.packets.client == "yaml-client"
        assert session.caps.pool is session.pool is session.packets.pool
        session.packets.register_event(PacketType.ObjectUpdate, rec.make("p"))
        session.caps.register_event("EventQueueGet", rec.make("c"))
        session.packets.begin_raise_event(PacketType.ObjectUpdate, 1, sim)
        session.caps.begin_raise_event("EventQueueGet", 2, sim)
        session.pool.join()
    assert sorted(rec.tags()) == ["c", "p"]


def test_close_discards_registrations_and_stops_pool(rec, sim):
    session = ClientSession("s1", DispatchConfig(pool_workers=1))
    session.packets.register_event(PacketType.Default, rec.make("any"))
    session.caps.register_event("", rec.make("any-caps"))
    session.packets.raise_event(PacketType.KillObject, None, sim)
    assert isinstance(session.pool, ThreadWorkerPool)

    session.close()
    session.close()  # idempotent
    assert session.closed
    assert session.packets.keys() == [] and session.caps.keys() == []
    assert not session.pool.running

    session.packets.raise_event(PacketType.KillObject, None, sim)
    assert rec.tags() == ["any"]


def test_injected_pool_is_not_stopped(thread_pool):
    with ClientSession("s2", pool=thread_pool) as session:
        assert session.pool is thread_pool
    assert thread_pool.running


def test_close_runs_every_task_already_queued(sim):
    session = ClientSession("draining", DispatchConfig(pool_workers=1))
    ran = []
    lock = threading.Lock()

    def slow(packet, simulator):
        time.sleep(0.02)
        with lock:
            ran.append(packet)

    session.packets.register_event(PacketType.ObjectUpdate, slow)
    for i in range(20):
        session.packets.begin_raise_event(PacketType.ObjectUpdate, i, sim)

    session.close()

    assert sorted(ran) == list(range(20))
    assert session.pool.queue_depth() == 0


def test_raise_after_close_is_rejected_without_restarting_pool(rec, sim, caplog):
    session = ClientSession("closed", DispatchConfig(pool_workers=1))
    session.close()

    session.packets.register_event(PacketType.KillObject, rec.make("late"))
    session.packets.begin_raise_event(PacketType.KillObject, None, sim)

    assert rec.calls == []
    assert not session.pool.running
    assert any("closed" in r.getMessage() for r in caplog.records if r.levelno == logging.ERROR)
