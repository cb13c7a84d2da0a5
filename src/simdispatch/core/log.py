from __future__ import annotations

import logging
import os
import sys
import json
from typing import Any, Optional

_configured = False

# record attributes copied into JSON lines when a caller passes them via extra=
_CONTEXT_KEYS = ("client", "registry", "event_key")


def _maybe_load_dotenv() -> None:
    try:
        from dotenv import load_dotenv
        load_dotenv()
    except Exception:
        pass


class JsonHandler(logging.StreamHandler):
    """One JSON object per line on stdout, with dispatch context when present."""
    def __init__(self):
        super().__init__(stream=sys.stdout)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            obj: dict[str, Any] = {
                "ts": record.created,
                "lvl": record.levelname,
                "name": record.name,
                "msg": record.getMessage(),
            }
            for k in _CONTEXT_KEYS:
                v = getattr(record, k, None)
                if v is not None:
                    obj[k] = str(v)
            if record.exc_info:
                obj["exc"] = logging.Formatter().formatException(record.exc_info)
            self.stream.write(json.dumps(obj, ensure_ascii=False) + "\n")
            self.flush()
        except Exception:  # pragma: no cover
            self.handleError(record)


def setup(level: Optional[str] = None, json_mode: Optional[bool] = None, *, force: bool = False) -> None:
    """Configure the root logger.

    - LOG_LEVEL / LOG_JSON from the environment (or .env) when args are None
    - no-op once configured, unless force=True
    """
    global _configured
    if _configured and not force:
        return

    _maybe_load_dotenv()

    lvl = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    py_level = getattr(logging, lvl, None)
    if not isinstance(py_level, int):
        py_level = logging.INFO

    json_flag = json_mode if json_mode is not None else (os.getenv("LOG_JSON", "0") == "1")

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(py_level)

    if json_flag:
        root.addHandler(JsonHandler())
    else:
        fmt = "[%(asctime)s] %(levelname)s %(name)s | %(message)s"
        handler = logging.StreamHandler(stream=sys.stdout)
        handler.setFormatter(logging.Formatter(fmt=fmt))
        root.addHandler(handler)

    _configured = True


def get(name: str) -> logging.Logger:
    return logging.getLogger(name)


def set_level(level: str) -> None:
    """Adjust the root level at runtime (tests mostly)."""
    py_level = getattr(logging, level.upper(), None)
    logging.getLogger().setLevel(py_level if isinstance(py_level, int) else logging.INFO)
