from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, List, Optional

import yaml

from simdispatch.core.contracts import PacketType
from simdispatch.core.log import _maybe_load_dotenv

if TYPE_CHECKING:
    from simdispatch.session import ClientSession


@dataclass
class DispatchConfig:
    pool_workers: int = 4
    pool_daemon: bool = True
    quiet_packets: List[str] = field(default_factory=lambda: ["Default", "PacketAck"])
    log_level: str = "INFO"
    log_json: bool = False
    metrics_interval: float = 5.0

    def quiet_packet_types(self) -> FrozenSet[PacketType]:
        out = set()
        for name in self.quiet_packets:
            try:
                out.add(PacketType[name])
            except KeyError:
                raise ValueError(f"unknown packet type in quiet_packets: {name!r}") from None
        return frozenset(out)


def _env_bool(v: str) -> bool:
    return v.strip().lower() in ("1", "true", "yes", "on")


def load_config(yaml_path: Optional[str] = None) -> DispatchConfig:
    """Build a DispatchConfig from an optional YAML file, then the environment.

    YAML keys live under ``dispatch:``. Environment wins over YAML:
    SIMDISPATCH_WORKERS, LOG_LEVEL, LOG_JSON, METRICS_INTERVAL.
    """
    _maybe_load_dotenv()

    data: Dict[str, Any] = {}
    if yaml_path:
        raw = yaml.safe_load(Path(yaml_path).read_text(encoding="utf-8")) or {}
        data = dict(raw.get("dispatch") or {})
        known = {f.name for f in fields(DispatchConfig)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"unknown dispatch config keys: {', '.join(unknown)}")

    cfg = DispatchConfig(**data)

    if os.getenv("SIMDISPATCH_WORKERS"):
        cfg.pool_workers = int(os.environ["SIMDISPATCH_WORKERS"])
    if os.getenv("LOG_LEVEL"):
        cfg.log_level = os.environ["LOG_LEVEL"]
    if os.getenv("LOG_JSON"):
        cfg.log_json = _env_bool(os.environ["LOG_JSON"])
    if os.getenv("METRICS_INTERVAL"):
        cfg.metrics_interval = float(os.environ["METRICS_INTERVAL"])

    if cfg.pool_workers < 1:
        raise ValueError("pool_workers must be >= 1")
    cfg.quiet_packet_types()  # fail early on bad names
    return cfg


def build_from_yaml(yaml_path: str, name: str = "client") -> "ClientSession":
    """Read a config YAML and return a ready ClientSession."""
    from simdispatch.session import ClientSession

    return ClientSession(name=name, config=load_config(yaml_path))
