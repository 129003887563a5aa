import asyncio
from typing import Any, Dict, Optional

from mission_orders.core.config import WORKER_POLL_INTERVAL_SEC
from mission_orders.services.worker import JobWorker
from mission_orders.utils.time import utc_now
from mission_orders.websocket.manager import manager

_scheduler_task: Optional[asyncio.Task] = None
_last_cycle_at: Optional[str] = None
_cycles = 0


async def _scheduler_loop(worker: JobWorker, interval: int) -> None:
    global _last_cycle_at, _cycles
    await manager.emit_log("info", f"worker scheduler started (every {interval}s)")
    while True:
        try:
            await worker.run_cycle()
        except Exception as exc:
            await manager.emit_log("error", f"worker scheduler error: {exc}")
        _last_cycle_at = utc_now()
        _cycles += 1
        await asyncio.sleep(interval)


async def start_scheduler(worker: JobWorker, interval: Optional[int] = None) -> bool:
    """Start the in-process trigger; a zero interval leaves it to external callers."""
    global _scheduler_task
    interval = WORKER_POLL_INTERVAL_SEC if interval is None else interval
    if interval <= 0:
        return False
    if _scheduler_task and not _scheduler_task.done():
        return True
    _scheduler_task = asyncio.create_task(_scheduler_loop(worker, interval))
    return True


async def stop_scheduler() -> None:
    global _scheduler_task
    if _scheduler_task and not _scheduler_task.done():
        _scheduler_task.cancel()
        try:
            await _scheduler_task
        except asyncio.CancelledError:
            pass
    _scheduler_task = None


def scheduler_snapshot() -> Dict[str, Any]:
    return {
        "running": bool(_scheduler_task and not _scheduler_task.done()),
        "interval_sec": WORKER_POLL_INTERVAL_SEC,
        "cycles": _cycles,
        "last_cycle_at": _last_cycle_at,
    }
