from __future__ import annotations

import logging
import threading
from collections import deque
from statistics import mean
from typing import Any, Deque, Dict, List, Optional, Tuple
import time

LabelKey = Tuple[Tuple[str, str], ...]
MetricKey = Tuple[str, LabelKey]


def _labels_key(labels: Dict[str, Any] | None) -> LabelKey:
    if not labels:
        return ()
    return tuple(sorted((str(k), str(v)) for k, v in labels.items()))


def _pct(vals: List[float], q: float) -> float:
    # vals must be sorted
    if not vals:
        return 0.0
    return vals[max(0, min(len(vals) - 1, int(round((len(vals) - 1) * q))))]


class _Store:
    """Counters, gauges and histograms keyed by (name, labels). One lock for all."""

    def __init__(self, hist_maxlen: int = 2048) -> None:
        self._lock = threading.Lock()
        self._hist_maxlen = hist_maxlen
        self.counters: Dict[MetricKey, float] = {}
        self.gauges: Dict[MetricKey, float] = {}
        self.hists: Dict[MetricKey, Deque[float]] = {}

    def inc(self, key: MetricKey, n: float) -> None:
        with self._lock:
            self.counters[key] = self.counters.get(key, 0.0) + n

    def set(self, key: MetricKey, v: float) -> None:
        with self._lock:
            self.gauges[key] = float(v)

    def observe(self, key: MetricKey, v: float) -> None:
        with self._lock:
            h = self.hists.get(key)
            if h is None:
                h = self.hists[key] = deque(maxlen=self._hist_maxlen)
            h.append(float(v))

    def copy(self):
        with self._lock:
            return (
                dict(self.counters),
                dict(self.gauges),
                {k: list(v) for k, v in self.hists.items()},
            )


def _summary(vals: List[float]) -> Dict[str, float]:
    if not vals:
        return {"count": 0.0, "min": 0.0, "max": 0.0, "mean": 0.0, "p50": 0.0, "p99": 0.0}
    s = sorted(vals)
    return {
        "count": float(len(s)),
        "min": s[0],
        "max": s[-1],
        "mean": mean(s),
        "p50": _pct(s, 0.50),
        "p99": _pct(s, 0.99),
    }


_STORE = _Store()


def inc(name: str, n: float = 1.0, **labels: Any) -> None:
    _STORE.inc((name, _labels_key(labels)), n)


def gauge_set(name: str, v: float, **labels: Any) -> None:
    _STORE.set((name, _labels_key(labels)), v)


def observe_hist(name: str, v: float, **labels: Any) -> None:
    _STORE.observe((name, _labels_key(labels)), v)


def counter_value(name: str, **labels: Any) -> float:
    """Current value of one counter; 0.0 if it was never incremented."""
    counters, _, _ = _STORE.copy()
    return counters.get((name, _labels_key(labels)), 0.0)


def gauge_value(name: str, **labels: Any) -> Optional[float]:
    _, gauges, _ = _STORE.copy()
    return gauges.get((name, _labels_key(labels)))


def snapshot() -> dict:
    """Plain-dict view of every metric (for tests and the exporter)."""
    counters, gauges, hists = _STORE.copy()
    return {
        "counters": [{"name": n, "labels": dict(l), "value": v} for (n, l), v in counters.items()],
        "gauges": [{"name": n, "labels": dict(l), "value": v} for (n, l), v in gauges.items()],
        "hists": [{"name": n, "labels": dict(l), **_summary(v)} for (n, l), v in hists.items()],
    }


class Timer:
    """Context manager: observe elapsed milliseconds into a histogram."""
    def __init__(self, hist_name: str, **labels: Any) -> None:
        self.hist_name = hist_name
        self.labels = labels
        self._t0 = 0.0

    def __enter__(self):
        self._t0 = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb):
        observe_hist(self.hist_name, (time.perf_counter() - self._t0) * 1000.0, **self.labels)
        return False


# ---------------- periodic log exporter ----------------

class _Exporter(threading.Thread):
    def __init__(self, interval_sec: float = 5.0, json_mode: bool = False, logger: Optional[logging.Logger] = None):
        super().__init__(name="metrics-exporter", daemon=True)
        self.interval = float(interval_sec)
        self.json_mode = bool(json_mode)
        self.log = logger or logging.getLogger("metrics")
        self._stop_evt = threading.Event()

    def run(self) -> None:
        while not self._stop_evt.wait(max(0.5, self.interval)):
            self.emit()

    def stop(self, timeout: float = 1.0) -> None:
        self._stop_evt.set()
        self.join(timeout=timeout)

    def emit(self) -> None:
        snap = snapshot()
        for kind in ("counters", "gauges", "hists"):
            for m in snap[kind]:
                if self.json_mode:
                    self.log.info({"type": kind[:-1], **m})
                elif kind == "hists":
                    self.log.info(
                        f"[hist] {m['name']} {m['labels']} n={int(m['count'])} "
                        f"p50={m['p50']:.3f} p99={m['p99']:.3f} max={m['max']:.3f}"
                    )
                else:
                    self.log.info(f"[{kind[:-1]}] {m['name']} {m['labels']} value={m['value']:.3f}")


_EXPORTER: Optional[_Exporter] = None


def start_exporter(interval_sec: float = 5.0, json_mode: bool = False, logger: Optional[logging.Logger] = None) -> None:
    global _EXPORTER
    if _EXPORTER is not None:
        return
    _EXPORTER = _Exporter(interval_sec=interval_sec, json_mode=json_mode, logger=logger)
    _EXPORTER.start()


def stop_exporter(timeout: float = 1.0) -> None:
    global _EXPORTER
    if _EXPORTER is not None:
        _EXPORTER.stop(timeout=timeout)
        _EXPORTER = None


def force_emit(logger: Optional[logging.Logger] = None, json_mode: bool = False) -> None:
    """Emit one snapshot right now, without waiting for the exporter."""
    _Exporter(json_mode=json_mode, logger=logger).emit()
