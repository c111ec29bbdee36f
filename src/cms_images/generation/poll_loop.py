"""Bounded-time polling primitive used by the generation saga."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

from .generation_errors import PollTimeoutError, SagaCancelledError

T = TypeVar("T")

CheckFn = Callable[[], Awaitable[tuple[T, bool]]]

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PollLoop:
    """Invoke ``check`` until it reports done, raises, or the deadline passes.

    ``check`` returns ``(value, done)``. Any exception it raises stops the loop
    and propagates unchanged; the loop never inspects error types. The first
    call happens immediately; every not-yet answer is followed by a sleep of
    ``min(interval, remaining)`` which is never skipped, so the request rate
    against the remote service stays bounded.
    """

    clock: Callable[[], float] = time.monotonic
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    log: logging.Logger = field(default_factory=lambda: logger)

    async def poll(
        self,
        check: CheckFn[T],
        *,
        interval: float,
        deadline: float,
        cancel: asyncio.Event | None = None,
    ) -> T:
        if interval <= 0:
            raise ValueError("interval must be positive")
        if deadline <= 0:
            raise ValueError("deadline must be positive")

        started = self.clock()
        attempts = 0
        while True:
            if cancel is not None and cancel.is_set():
                raise SagaCancelledError(f"Polling cancelled after {attempts} attempts")

            attempts += 1
            value, done = await check()
            if done:
                return value

            elapsed = self.clock() - started
            remaining = deadline - elapsed
            if remaining <= 0:
                raise PollTimeoutError(attempts=attempts, elapsed_seconds=elapsed)

            pause = min(interval, remaining)
            self.log.debug(
                "generation.poll.waiting",
                extra={"attempt": attempts, "pause_seconds": pause, "remaining_seconds": remaining},
            )
            await self._pause(pause, cancel)

            elapsed = self.clock() - started
            if elapsed >= deadline:
                raise PollTimeoutError(attempts=attempts, elapsed_seconds=elapsed)

    async def _pause(self, seconds: float, cancel: asyncio.Event | None) -> None:
        if cancel is None:
            await self.sleep(seconds)
            return

        sleeper = asyncio.ensure_future(self.sleep(seconds))
        waiter = asyncio.ensure_future(cancel.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, waiter):
                if not task.done():
                    task.cancel()
            await asyncio.gather(sleeper, waiter, return_exceptions=True)
        if cancel.is_set():
            raise SagaCancelledError("Polling cancelled while waiting")


__all__ = ["PollLoop", "CheckFn"]
