"""
Lock expiry sweeper: expires lapsed slot holds ahead of the next request.

Expiry is already applied lazily whenever a slot is touched, so this worker
is an optimization only. It lets waitlisted players get promoted (and
notified) without waiting for someone else to hit the slot.
"""

import asyncio
import logging
import os
from typing import Optional

from courtside.database import db
from courtside.services import application_service

logger = logging.getLogger(__name__)

# How often the worker sweeps for lapsed holds (seconds)
POLL_INTERVAL_SECONDS = int(os.getenv("LOCK_SWEEP_INTERVAL_SECONDS", "300"))


class LockExpiryService:
    """Background service that expires stale pending applications."""

    def __init__(self, poll_interval: float = POLL_INTERVAL_SECONDS):
        self.poll_interval = poll_interval
        self._worker_task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    def start(self) -> None:
        """Start the background sweeper."""
        if self._worker_task is None or self._worker_task.done():
            self._stop_event.clear()
            self._worker_task = asyncio.create_task(self._poll_loop())
            logger.info("Lock expiry worker started")

    def stop(self) -> None:
        """Stop the background sweeper."""
        self._stop_event.set()
        if self._worker_task and not self._worker_task.done():
            self._worker_task.cancel()
            logger.info("Lock expiry worker stopped")

    async def _poll_loop(self) -> None:
        """Main loop: sweep, then sleep. Repeats until stopped."""
        while not self._stop_event.is_set():
            try:
                await self.sweep()
            except Exception as e:
                logger.error(f"Error in lock expiry worker: {e}", exc_info=True)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.poll_interval)
                break
            except asyncio.TimeoutError:
                pass

    async def sweep(self) -> int:
        """
        Run one sweep in its own transaction.

        Returns:
            Number of applications expired
        """
        expired = await db.run_in_transaction(application_service.expire_stale_applications)
        if expired:
            logger.info(f"Lock sweep expired {expired} application(s)")
        return expired


# Global singleton
_lock_expiry_service = LockExpiryService()


def get_lock_expiry_service() -> LockExpiryService:
    """Get the global lock expiry service instance."""
    return _lock_expiry_service
