"""Poll-dispatch loop: cursor ownership, per-round fan-out, poll backoff."""

from __future__ import annotations

import asyncio
import time
from collections import Counter
from collections.abc import Awaitable, Callable
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Any

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    wait_exponential_jitter,
)

from photo_echo.config.models import PollerConfig
from photo_echo.errors import GatewayError, RemoteError
from photo_echo.gateway.base import RemoteGateway
from photo_echo.gateway.models import Batch, Event
from photo_echo.pipeline.processor import EventHandler, Outcome

logger = structlog.get_logger()

SleepFn = Callable[[float], Awaitable[None]]


@dataclass
class RoundReport:
    """What one poll round did."""

    cursor_before: int
    cursor_after: int
    events: int = 0
    poll_failures: int = 0
    outcomes: Counter[Outcome] = field(default_factory=Counter)
    duration_ms: int = 0
    stopped: bool = False

    def count(self, outcome: Outcome) -> int:
        return self.outcomes.get(outcome, 0)


class PollDispatchLoop:
    """Fetches batches forever and fans each batch out to the handler.

    Only this object mutates the cursor. Every event of a round is processed
    concurrently (bounded by ``max_concurrent_events``) and the whole round is
    joined before the next fetch. A failed poll leaves the cursor untouched
    and is retried with capped exponential backoff, reset after a success.
    :meth:`stop` abandons an in-flight long poll instead of waiting it out.
    """

    def __init__(
        self,
        gateway: RemoteGateway,
        handler: EventHandler,
        config: PollerConfig | None = None,
        *,
        sleep: SleepFn | None = None,
    ) -> None:
        self._gateway = gateway
        self._handler = handler
        self._config = config or PollerConfig()
        self._sleep = sleep or self._interruptible_sleep
        self._cursor = self._config.initial_cursor
        self._semaphore = asyncio.Semaphore(self._config.max_concurrent_events)
        self._stop_event = asyncio.Event()
        self._running = False
        self._rounds = 0
        self._consecutive_failures = 0
        self._total_poll_failures = 0
        self._totals: Counter[Outcome] = Counter()
        self._last_poll_at: float | None = None

        backoff = self._config.backoff
        self._wait = wait_exponential_jitter(
            initial=backoff.initial_wait_seconds,
            max=backoff.max_wait_seconds,
            exp_base=backoff.multiplier,
            jitter=backoff.initial_wait_seconds if backoff.jitter else 0,
        )

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    # -- Lifecycle -------------------------------------------------------------

    async def run(self) -> None:
        """Run poll rounds until :meth:`stop` is called."""
        self._running = True
        logger.info(
            "poller.started",
            cursor=self._cursor,
            wait_seconds=self._config.wait_seconds,
            max_concurrent_events=self._config.max_concurrent_events,
        )
        try:
            while not self._stop_event.is_set():
                await self.poll_once()
        finally:
            self._running = False
            logger.info("poller.stopped", cursor=self._cursor, rounds=self._rounds)

    def stop(self) -> None:
        """Ask the loop to exit after the current round."""
        self._stop_event.set()

    async def _interruptible_sleep(self, seconds: float) -> None:
        with suppress(TimeoutError):
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)

    # -- One round -------------------------------------------------------------

    async def poll_once(self) -> RoundReport:
        """Fetch one batch (retrying failed polls), then process it fully."""
        started = time.monotonic()
        cursor_before = self._cursor
        failures_before = self._total_poll_failures

        batch = await self._fetch_with_backoff()
        poll_failures = self._total_poll_failures - failures_before
        if batch is None:
            return RoundReport(
                cursor_before=cursor_before,
                cursor_after=self._cursor,
                poll_failures=poll_failures,
                duration_ms=int((time.monotonic() - started) * 1000),
                stopped=True,
            )

        self._cursor = batch.next_cursor(self._cursor)
        outcomes = await self._dispatch(batch)

        self._rounds += 1
        self._totals.update(outcomes)
        report = RoundReport(
            cursor_before=cursor_before,
            cursor_after=self._cursor,
            events=len(batch),
            poll_failures=poll_failures,
            outcomes=Counter(outcomes),
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        if batch:
            logger.info(
                "poller.round_completed",
                cursor=self._cursor,
                events=report.events,
                delivered=report.count(Outcome.DELIVERED),
                skipped=report.count(Outcome.SKIPPED),
                failed=report.count(Outcome.FAILED),
                duration_ms=report.duration_ms,
            )
        else:
            logger.debug("poller.empty_batch", cursor=self._cursor)
        return report

    async def _fetch_with_backoff(self) -> Batch | None:
        """Return the next batch, or ``None`` if the loop was stopped first."""
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(Exception),
            wait=self._wait,
            stop=self._stop_requested,
            sleep=self._sleep,
            before_sleep=self._log_backoff,
        )
        batch: Batch | None = None
        try:
            async for attempt in retrying:
                with attempt:
                    if self._stop_event.is_set():
                        return None
                    batch = await self._fetch_unless_stopped()
                    if batch is None:
                        return None
        except RetryError:
            return None
        return batch

    async def _fetch_unless_stopped(self) -> Batch | None:
        """Race the long poll against :meth:`stop`.

        An abandoned poll is safe to drop: the cursor has not moved, so the
        server hands the same updates out again on the next run.
        """
        fetch = asyncio.ensure_future(self._fetch())
        stopped = asyncio.ensure_future(self._stop_event.wait())
        try:
            await asyncio.wait({fetch, stopped}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            fetch.cancel()
            raise
        finally:
            stopped.cancel()
        if fetch.done():
            return fetch.result()
        fetch.cancel()
        with suppress(asyncio.CancelledError):
            await fetch
        logger.info("poller.poll_abandoned", cursor=self._cursor)
        return None

    async def _fetch(self) -> Batch:
        try:
            batch = await self._gateway.fetch_batch(
                self._cursor, self._config.wait_seconds
            )
        except GatewayError as exc:
            self._record_poll_failure()
            logger.error(
                "poller.poll_failed",
                operation=exc.method,
                error_type=type(exc).__name__,
                error=str(exc),
                payload=exc.payload if isinstance(exc, RemoteError) else None,
                cursor=self._cursor,
                consecutive_failures=self._consecutive_failures,
            )
            raise
        except Exception:
            self._record_poll_failure()
            logger.exception(
                "poller.poll_crashed",
                cursor=self._cursor,
                consecutive_failures=self._consecutive_failures,
            )
            raise
        self._consecutive_failures = 0
        self._last_poll_at = time.time()
        return batch

    def _record_poll_failure(self) -> None:
        self._consecutive_failures += 1
        self._total_poll_failures += 1

    def _stop_requested(self, retry_state: RetryCallState) -> bool:
        return self._stop_event.is_set()

    def _log_backoff(self, retry_state: RetryCallState) -> None:
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            "poller.backoff",
            attempt=retry_state.attempt_number,
            sleep_seconds=round(delay, 3),
            cursor=self._cursor,
        )

    # -- Fan-out ---------------------------------------------------------------

    async def _dispatch(self, batch: Batch) -> list[Outcome]:
        """Process every event concurrently and wait for all of them."""
        if not batch:
            return []
        results = await asyncio.gather(*(self._run_event(e) for e in batch.events))
        return list(results)

    async def _run_event(self, event: Event) -> Outcome:
        async with self._semaphore:
            try:
                return await self._handler.process(event)
            except GatewayError as exc:
                logger.error(
                    "poller.event_failed",
                    update_id=event.update_id,
                    chat_id=event.chat_id,
                    operation=exc.method,
                    error_type=type(exc).__name__,
                    error=str(exc),
                    payload=exc.payload if isinstance(exc, RemoteError) else None,
                )
            except Exception:
                logger.exception(
                    "poller.event_crashed",
                    update_id=event.update_id,
                    chat_id=event.chat_id,
                )
        return Outcome.FAILED

    # -- Health ----------------------------------------------------------------

    async def health(self) -> dict[str, Any]:
        if self._consecutive_failures >= self._config.unhealthy_after_failures:
            status = "error"
        elif self._running:
            status = "running"
        else:
            status = "stopped"
        return {
            "status": status,
            "cursor": self._cursor,
            "rounds": self._rounds,
            "consecutive_poll_failures": self._consecutive_failures,
            "total_poll_failures": self._total_poll_failures,
            "events": {o.value: self._totals.get(o, 0) for o in Outcome},
            "last_poll_at": self._last_poll_at,
        }
