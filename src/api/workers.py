import asyncio
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List, Optional

from api.state import PlannerState
from campus_planner.models import utcnow

logger = logging.getLogger(__name__)


def seconds_until(hour: int, now: datetime) -> float:
    """Seconds from ``now`` to the next HH:00 UTC (tomorrow if already past)."""
    target = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


async def _daily_worker(
    name: str,
    hour: int,
    sweep: Callable[[], Awaitable[object]],
    clock: Callable[[], datetime] = utcnow,
) -> None:
    logger.info(f"{name} worker started, runs daily at {hour:02d}:00 UTC")

    while True:
        await asyncio.sleep(seconds_until(hour, clock()))
        try:
            await sweep()
        except Exception as e:
            logger.exception(f"Error in {name} worker: {e}")


def start_workers(state: PlannerState, clock: Optional[Callable[[], datetime]] = None) -> List[asyncio.Task]:
    """Schedule the reminder and overdue sweeps; the caller cancels them on shutdown."""
    clock = clock or utcnow
    settings = state.settings
    return [
        asyncio.create_task(
            _daily_worker(
                "reminder-sweep",
                settings.reminder_sweep_hour,
                state.sweeper.reminder_sweep,
                clock,
            )
        ),
        asyncio.create_task(
            _daily_worker(
                "overdue-sweep",
                settings.overdue_sweep_hour,
                state.sweeper.overdue_sweep,
                clock,
            )
        ),
    ]


async def stop_workers(workers: List[asyncio.Task]) -> None:
    for worker in workers:
        worker.cancel()
    await asyncio.gather(*workers, return_exceptions=True)
    logger.info("Background workers stopped")
