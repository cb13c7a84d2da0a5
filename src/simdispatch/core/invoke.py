from __future__ import annotations

import logging
import time
from typing import Any, Callable, List, Optional

from simdispatch.core.contracts import Callback, CallbackResult, Chain, DispatchTask
from simdispatch.core.metrics import Timer, inc, observe_hist


def invoke_callback(cb: Callback, payload: Any, connection: Any) -> CallbackResult:
    """Call one callback, folding any exception into a failure result."""
    try:
        cb(payload, connection)
    except Exception as e:
        return CallbackResult.failure(cb, e)
    return CallbackResult.success(cb)


def run_chain(
    chain: Chain,
    key: Any,
    payload: Any,
    connection: Any,
    *,
    logger: logging.Logger,
    label: str,
    client: Optional[str] = None,
    mode: str = "sync",
) -> List[CallbackResult]:
    """Invoke every callback in order; a failing callback never stops the rest."""
    results: List[CallbackResult] = []
    for cb in chain:
        with Timer("dispatch_callback_ms", registry=label, mode=mode):
            res = invoke_callback(cb, payload, connection)
        if not res.ok:
            inc("dispatch_callback_errors_total", 1, registry=label, mode=mode)
            logger.error(
                "%s %s handler %s failed key=%s client=%s err=%r",
                mode, label, res.callback_name, key, client, res.error,
                exc_info=res.error,
                extra={"client": client, "registry": label, "event_key": key},
            )
        results.append(res)
    return results


def make_work_item(
    task: DispatchTask,
    *,
    logger: logging.Logger,
    label: str,
    client: Optional[str] = None,
) -> Callable[[], None]:
    """Wrap a DispatchTask into a zero-arg work item for a WorkerPool."""

    def _work() -> None:
        observe_hist("dispatch_queue_wait_ms", (time.perf_counter() - task.submitted_at) * 1000.0, registry=label)
        try:
            run_chain(task.chain, task.key, task.payload, task.connection,
                      logger=logger, label=label, client=client, mode="async")
        except Exception as e:  # pragma: no cover (run_chain does not raise)
            logger.error("async %s work item crashed key=%s err=%s", label, task.key, e,
                         exc_info=True, extra={"client": client})

    _work.__qualname__ = f"dispatch[{label}:{task.key}]"
    return _work
