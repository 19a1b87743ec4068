"""Subscription supervisor - one background task per (venue, symbol): connect, stream, drain, back off.

State machine::

    CONNECTING --ok--> STREAMING --closed/error--> DRAINING --> BACKOFF --timer--> CONNECTING
    CONNECTING --fail--> BACKOFF

Cancellation is accepted in any state and ends in STOPPED.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Protocol

import structlog
from pydantic import BaseModel, ConfigDict

from perpview.models.market import VenueTag

log = structlog.get_logger(__name__)

CLOSE_TIMEOUT_SEC = 1.0


class SupervisorState(str, Enum):
    CONNECTING = "connecting"
    STREAMING = "streaming"
    DRAINING = "draining"
    BACKOFF = "backoff"
    STOPPED = "stopped"


class SessionStatus(BaseModel):
    """Read-only view of a supervisor for health displays."""

    model_config = ConfigDict(frozen=True)

    venue: VenueTag
    symbol: str
    state: SupervisorState
    connect_attempts: int
    backoff_deadline: float | None = None  # time.monotonic() value
    messages_applied: int = 0
    last_message_ms: int | None = None


class Feed(Protocol):
    """Venue-specific transport driven by the supervisor.

    The same Feed object is reused across reconnects of one (venue, symbol).
    """

    venue: VenueTag
    symbol: str

    async def open(self) -> None:
        """Connect the transport and send subscriptions."""
        ...

    def messages(self) -> AsyncIterator[Any]:
        """Yield decoded messages in receive order; return on graceful close."""
        ...

    async def apply(self, message: Any) -> None:
        """Apply one message to adapter state."""
        ...

    def drain(self, hard_error: bool) -> None:
        """Called once the stream ended, before backing off."""
        ...

    async def close(self) -> None:
        """Release the transport. Must be safe to call when not open."""
        ...


class SubscriptionSupervisor:
    """Owns the task that keeps one Feed connected. All failures become state transitions."""

    def __init__(
        self,
        feed: Feed,
        *,
        base_delay_sec: float = 1.0,
        max_delay_sec: float = 30.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.feed = feed
        self.base_delay_sec = base_delay_sec
        self.max_delay_sec = max_delay_sec
        self._sleep = sleep
        self.state = SupervisorState.CONNECTING
        self.connect_attempts = 0
        self.backoff_deadline: float | None = None
        self.messages_applied = 0
        self.last_message_ms: int | None = None
        self.transitions: deque[SupervisorState] = deque(maxlen=256)
        self.backoff_delays: deque[float] = deque(maxlen=256)
        self._task: asyncio.Task[None] | None = None

    @property
    def venue(self) -> VenueTag:
        return self.feed.venue

    @property
    def symbol(self) -> str:
        return self.feed.symbol

    @property
    def started(self) -> bool:
        return self._task is not None

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def start(self) -> None:
        if self._task is not None:
            raise RuntimeError("supervisor already started")
        self._task = asyncio.create_task(
            self._run(), name=f"supervisor:{self.venue.value}:{self.symbol}"
        )

    async def cancel(self, timeout: float = CLOSE_TIMEOUT_SEC + 1.0) -> None:
        """Abort the task from whatever state it is in and wait for it to finish."""
        task = self._task
        if task is None or task.done():
            self._set_state(SupervisorState.STOPPED)
            return
        task.cancel()
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        except asyncio.CancelledError:
            if not task.done():
                raise
        except asyncio.TimeoutError:
            log.warning("supervisor_cancel_timeout", venue=self.venue.value, symbol=self.symbol)
        if task.done() and self.state is not SupervisorState.STOPPED:
            # Cancelled before the task ever ran
            self._set_state(SupervisorState.STOPPED)

    def backoff_delay(self, attempts: int) -> float:
        return min(self.base_delay_sec * attempts, self.max_delay_sec)

    def status(self) -> SessionStatus:
        return SessionStatus(
            venue=self.venue,
            symbol=self.symbol,
            state=self.state,
            connect_attempts=self.connect_attempts,
            backoff_deadline=self.backoff_deadline,
            messages_applied=self.messages_applied,
            last_message_ms=self.last_message_ms,
        )

    def _set_state(self, state: SupervisorState) -> None:
        log.debug("supervisor_state", venue=self.venue.value, symbol=self.symbol, state=state.value)
        self.state = state
        self.transitions.append(state)

    async def _run(self) -> None:
        try:
            while True:
                self._set_state(SupervisorState.CONNECTING)
                try:
                    await self.feed.open()
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    log.warning(
                        "feed_connect_failed",
                        venue=self.venue.value,
                        symbol=self.symbol,
                        attempts=self.connect_attempts + 1,
                        error=str(e),
                    )
                    await self._close_feed()
                    await self._backoff()
                    continue

                self.connect_attempts = 0
                self._set_state(SupervisorState.STREAMING)
                log.info("feed_streaming", venue=self.venue.value, symbol=self.symbol)
                hard_error = False
                try:
                    async for message in self.feed.messages():
                        await self.feed.apply(message)
                        self.messages_applied += 1
                        self.last_message_ms = int(time.time() * 1000)
                    log.info("feed_closed", venue=self.venue.value, symbol=self.symbol)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    hard_error = True
                    log.warning("feed_error", venue=self.venue.value, symbol=self.symbol, error=str(e))

                self._set_state(SupervisorState.DRAINING)
                self.feed.drain(hard_error)
                await self._close_feed()
                await self._backoff()
        finally:
            await self._close_feed()
            self.backoff_deadline = None
            self._set_state(SupervisorState.STOPPED)
            log.info("supervisor_stopped", venue=self.venue.value, symbol=self.symbol)

    async def _backoff(self) -> None:
        self.connect_attempts += 1
        delay = self.backoff_delay(self.connect_attempts)
        self.backoff_delays.append(delay)
        self.backoff_deadline = time.monotonic() + delay
        self._set_state(SupervisorState.BACKOFF)
        await self._sleep(delay)
        self.backoff_deadline = None

    async def _close_feed(self) -> None:
        try:
            await asyncio.wait_for(self.feed.close(), timeout=CLOSE_TIMEOUT_SEC)
        except asyncio.TimeoutError:
            log.warning("feed_close_timeout", venue=self.venue.value, symbol=self.symbol)
        except Exception as e:
            log.debug("feed_close_error", venue=self.venue.value, symbol=self.symbol, error=str(e))
