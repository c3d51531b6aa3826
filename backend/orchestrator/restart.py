"""
Restart scheduler for the recognition engine.

Responsibilities:
- Hold at most one pending restart timer
- Cancel-before-reschedule: schedule() always supersedes a pending timer
- On expiry, invoke the restart callback only if the guard holds

Non-responsibilities:
- No orchestration decisions (the reducer re-checks voice/state on RestartDue)
- No knowledge of the recognition engine or playback internals
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from observability.logger import log_event
from policy import ms_to_seconds


class RestartScheduler:
    """
    Single-slot, cancellable restart timer.

    Invariants:
    - At most one pending timer exists at any time
    - Scheduling twice in succession results in exactly one firing
    - cancel() is unconditional, immediate and idempotent
    """

    def __init__(
        self,
        *,
        on_fire: Callable[[], Awaitable[None]],
        guard: Callable[[], bool],
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._on_fire = on_fire
        self._guard = guard
        self._sleep = sleep
        self._task: asyncio.Task[None] | None = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def schedule(self, delay_ms: int) -> None:
        """Arm the timer, cancelling any pending one first."""
        self.cancel()
        self._task = asyncio.create_task(self._run(delay_ms))

    def cancel(self) -> None:
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()

    async def _run(self, delay_ms: int) -> None:
        try:
            await self._sleep(ms_to_seconds(delay_ms))
        except asyncio.CancelledError:
            return

        # The slot is free before the callback runs so that it may reschedule
        self._task = None

        if not self._guard():
            log_event({
                "event_type": "restart_suppressed",
                "delay_ms": delay_ms,
                "reason": "guard",
            })
            return

        await self._on_fire()
