"""Worker that runs a loyalty settle pass whenever the snapshot changes."""

from __future__ import annotations

import asyncio
from typing import Callable

from loguru import logger

from cancheo_engine.jobs.loyalty import LoyaltyTracker
from cancheo_engine.services.state import EngagementState, SnapshotChange


class LoyaltySettlementWorker:
    """Coalesce snapshot changes into sequential settle passes.

    Changes that arrive while a pass runs collapse into a single follow-up pass.
    """

    def __init__(self, tracker: LoyaltyTracker, state: EngagementState) -> None:
        self._tracker = tracker
        self._state = state
        self._wake = asyncio.Event()
        self._stopping = False
        self._task: asyncio.Task | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self.is_running: bool = False
        self.passes: int = 0

    def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._stopping = False
        self._unsubscribe = self._state.subscribe(self._on_change)
        self._task = asyncio.create_task(self._run_loop())
        self.is_running = True
        self.request()
        logger.info("Loyalty settlement worker started")

    async def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if not self._task:
            return
        self._stopping = True
        self._wake.set()
        await self._task
        self._task = None
        self.is_running = False
        logger.info("Loyalty settlement worker stopped")

    def request(self) -> None:
        self._wake.set()

    def _on_change(self, change: SnapshotChange) -> None:
        # Inbox and loyalty writes only touch the user record; they never add
        # playable bookings.
        if change != "user":
            self.request()

    async def _run_loop(self) -> None:
        while True:
            await self._wake.wait()
            self._wake.clear()
            if self._stopping:
                return
            try:
                await self._tracker.run_once()
            except Exception as exc:  # pragma: no cover - defensive logging
                logger.exception("Loyalty settle pass failed", error=str(exc))
            self.passes += 1
