import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from .storage import LinkStore
from .validator import LinkValidator

logger = logging.getLogger(__name__)


def seconds_until(hour: int, minute: int, now: Optional[datetime] = None) -> float:
    """Seconds from ``now`` (local time) to the next HH:MM, always > 0."""
    now = now or datetime.now()
    target = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


async def run_daily(validator: LinkValidator, store: LinkStore, hour: int, minute: int, sleep=asyncio.sleep):
    """Run the link check every day at hour:minute until cancelled."""
    while True:
        delay = seconds_until(hour, minute)
        logger.info("Next scheduled link check in %.0f seconds", delay)
        await sleep(delay)
        try:
            report = await validator.validate_all(store)
        except Exception:
            logger.exception("Scheduled link check failed")
            continue
        if report is None:
            logger.info("Scheduled link check skipped, another check is running")
