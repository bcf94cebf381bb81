"""Cancellation signal for remote commands."""

import asyncio
from typing import Optional


class Cancellation:
    """A one-shot cancellation signal, optionally with a deadline.

    Usage:
        cancel = Cancellation(timeout=30)
        output = await conn.run_with_cancellation(cancel, "make test")

        # or from another task
        cancel.cancel()
    """

    def __init__(self, timeout: Optional[float] = None):
        """Create an unfired signal.

        Args:
            timeout: Seconds until the signal fires on its own (None: never)
        """
        self._event = asyncio.Event()
        self._reason: Optional[str] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        if timeout is not None:
            loop = asyncio.get_running_loop()
            self._timer = loop.call_later(timeout, self.cancel, f"deadline ({timeout}s) exceeded")

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        """Fire the signal. Later calls are no-ops."""
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        if self._timer is not None:
            self._timer.cancel()

    async def wait(self) -> None:
        """Block until the signal fires."""
        await self._event.wait()
