"""
Maintenance job.
Periodically sweeps expired reservations and call records past their retention window.
Lazy expiry already keeps stale entries from blocking anything; the sweep bounds memory.
"""

import asyncio
import time
from typing import Any

from app.infrastructure.observability.logging import get_logger
from app.services.calls.call_tracker import CallLifecycleTracker
from app.services.scheduling.reservations import ReservationStore

logger = get_logger(__name__)

DEFAULT_INTERVAL_SECONDS = 60.0
ERROR_BACKOFF_SECONDS = 30.0


def run_maintenance_job(store: ReservationStore, tracker: CallLifecycleTracker) -> dict[str, Any]:
    """One sweep. Returns counts for logging."""
    start = time.time()
    reservations_purged = store.purge_expired()
    calls_purged = tracker.purge_expired()

    return {
        "reservations_purged": reservations_purged,
        "reservations_live": len(store),
        "calls_purged": calls_purged,
        "calls_tracked": len(tracker.registry),
        "duration_ms": round((time.time() - start) * 1000, 2),
    }


async def start_maintenance_scheduler(
    store: ReservationStore,
    tracker: CallLifecycleTracker,
    interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
) -> None:
    """
    Run the sweep forever. Meant to be started as a task and cancelled on shutdown.
    A failed iteration is logged and the loop continues.
    """
    logger.info("Maintenance scheduler started", interval_seconds=interval_seconds)

    while True:
        try:
            metrics = run_maintenance_job(store, tracker)
            if metrics["reservations_purged"] or metrics["calls_purged"]:
                logger.info("Maintenance sweep completed", **metrics)
            else:
                logger.debug("Maintenance sweep completed", **metrics)

            await asyncio.sleep(interval_seconds)

        except asyncio.CancelledError:
            logger.info("Maintenance scheduler stopped")
            raise
        except Exception as e:
            logger.error(
                "Error in maintenance scheduler", error=str(e), error_type=type(e).__name__
            )
            await asyncio.sleep(min(interval_seconds, ERROR_BACKOFF_SECONDS))
