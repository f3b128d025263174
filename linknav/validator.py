"""
validator.py - Batched reachability sweep over every stored link.

Links are probed ``batch_size`` at a time; probes inside a batch overlap,
batches run one after the other with ``pause`` seconds in between. Each
batch's results are written to the store as soon as it finishes.

Only one sweep runs at a time. A second call while one is active returns
``None`` straight away without touching the store.
"""

import asyncio
import logging
import threading
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from pydantic import BaseModel

from .config import never_get
from .fetcher import FetchError, HttpFetcher
from .storage import LinkStore, utcnow
from .urls import is_valid_url, normalize_url

logger = logging.getLogger(__name__)


class SweepReport(BaseModel):
    total: int = 0
    valid: int = 0
    invalid: int = 0
    batches: int = 0
    started_at: datetime
    finished_at: Optional[datetime] = None


def batched(items: List, size: int) -> List[List]:
    return [items[i : i + size] for i in range(0, len(items), size)]


class LinkValidator:
    def __init__(
        self,
        fetcher: HttpFetcher,
        batch_size: int = 5,
        pause: float = 1.0,
        requires_get: Optional[Callable[[str], bool]] = None,
        guard: Optional[threading.Lock] = None,
        sleep=asyncio.sleep,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.fetcher = fetcher
        self.batch_size = batch_size
        self.pause = pause
        self.requires_get = requires_get or never_get
        self.guard = guard or threading.Lock()
        self.sleep = sleep

    @property
    def running(self) -> bool:
        return self.guard.locked()

    def check_url(self, url: str) -> bool:
        """Blocking probe of one URL. Never raises."""
        url = normalize_url(url)
        if not is_valid_url(url):
            return False
        try:
            self.fetcher.probe(url, use_get=self.requires_get(url))
        except FetchError as exc:
            logger.debug("Link %s unreachable: %s", url, exc)
            return False
        except Exception:
            logger.exception("Unexpected error probing %s", url)
            return False
        return True

    async def _check_batch(self, batch: List[Tuple[int, str]]) -> List[bool]:
        loop = asyncio.get_running_loop()
        futures = []
        for _, url in batch:
            if is_valid_url(normalize_url(url)):
                futures.append(loop.run_in_executor(None, self.check_url, url))
            else:
                futures.append(_completed(loop, False))
        return list(await asyncio.gather(*futures))

    async def validate_all(self, store: LinkStore) -> Optional[SweepReport]:
        if not self.guard.acquire(blocking=False):
            logger.info("Link check already running, skipping")
            return None
        try:
            return await self._sweep(store)
        finally:
            self.guard.release()

    async def _sweep(self, store: LinkStore) -> SweepReport:
        report = SweepReport(started_at=utcnow())
        loop = asyncio.get_running_loop()
        # Store calls block on file I/O and the store lock, keep them off the loop.
        # Store errors propagate from here on.
        links = await loop.run_in_executor(None, store.find_all)
        pairs = [(l.id, l.url) for l in links]
        report.total = len(pairs)
        batches = batched(pairs, self.batch_size)
        logger.info("Checking %d links in %d batches", len(pairs), len(batches))

        for index, batch in enumerate(batches):
            if index:
                await self.sleep(self.pause)
            results = await self._check_batch(batch)
            checked_at = utcnow()
            updates = {
                link_id: {"is_valid": ok, "last_checked": checked_at}
                for (link_id, _), ok in zip(batch, results)
            }
            found = await loop.run_in_executor(None, store.update_many, updates)
            if found < len(updates):
                logger.debug("%d links vanished during the check", len(updates) - found)
            report.valid += sum(1 for ok in results if ok)
            report.invalid += sum(1 for ok in results if not ok)
            report.batches += 1
            logger.debug("Batch %d/%d done", index + 1, len(batches))

        report.finished_at = utcnow()
        logger.info(
            "Link check finished: %d valid, %d invalid", report.valid, report.invalid
        )
        return report


def _completed(loop, value):
    fut = loop.create_future()
    fut.set_result(value)
    return fut
