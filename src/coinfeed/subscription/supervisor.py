"""Keeps one CoinAPI stream alive for the lifetime of the process.

State machine::

    IDLE --start()--> ACTIVE
    ACTIVE --on_error--> PENDING_RESTART (error_backoff)
    ACTIVE --on_complete--> PENDING_RESTART (complete_backoff)
    ACTIVE --max lifetime--> cancel connection, PENDING_RESTART (rotation_backoff)
    PENDING_RESTART --delay elapsed--> ACTIVE
    any --stop()--> IDLE

There is no retry ceiling. A feed that stays down is retried every
``error_backoff`` seconds until it recovers or ``stop()`` is called.

Every connection is tagged with a generation number. Termination callbacks
from a generation that is no longer current, or arriving while the supervisor
is not ACTIVE, are ignored. This is what keeps a forced rotation from being
scheduled twice when cancelling the old connection also surfaces as a close:
the rotation path owns the restart.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol

from coinfeed.config.configurations import SupervisorConfig
from coinfeed.config.enumerations import SupervisorState, TerminationReason
from coinfeed.connections.sockets import ConnectionHandle, PriceSink
from coinfeed.messaging.models.events import PriceUpdateEvent
from coinfeed.providers.base import LiveFeedProvider

logger = logging.getLogger(__name__)


class Cancellable(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """The slice of ``asyncio.AbstractEventLoop`` the supervisor needs."""

    def call_later(
        self, delay: float, callback: Callable[..., Any], *args: Any
    ) -> Cancellable: ...

    def time(self) -> float: ...


@dataclass
class SupervisorMetrics:
    connections_opened: int = 0
    events_delivered: int = 0
    last_error: Optional[str] = None
    last_connected_at: Optional[float] = None
    terminations: dict[TerminationReason, int] = field(
        default_factory=lambda: {reason: 0 for reason in TerminationReason}
    )

    def record_termination(self, reason: TerminationReason) -> None:
        self.terminations[reason] += 1


class SubscriptionSupervisor:
    """Owns at most one streaming connection and restarts it forever."""

    def __init__(
        self,
        provider: LiveFeedProvider,
        sink: PriceSink,
        config: Optional[SupervisorConfig] = None,
        scheduler: Optional[Scheduler] = None,
    ) -> None:
        self.provider = provider
        self.sink = sink
        self.config = config or SupervisorConfig()
        self.scheduler = scheduler
        self.metrics = SupervisorMetrics()

        self.state = SupervisorState.IDLE
        self.handle: Optional[ConnectionHandle] = None
        self.generation = 0

        self.restart_timer: Optional[Cancellable] = None
        self.rotation_timer: Optional[Cancellable] = None
        self.restart_due: Optional[float] = None

    @property
    def clock(self) -> Scheduler:
        if self.scheduler is None:
            self.scheduler = asyncio.get_running_loop()
        return self.scheduler

    # --- Public API -------------------------------------------------------

    def start(self) -> None:
        if self.state is not SupervisorState.IDLE:
            logger.warning("Supervisor already running (%s)", self.state.value)
            return

        logger.info(
            "Starting supervisor (error=%.0fs, complete=%.0fs, rotation=%.0fs, lifetime=%.0fs)",
            self.config.error_backoff,
            self.config.complete_backoff,
            self.config.rotation_backoff,
            self.config.max_connection_lifetime,
        )
        self.open_connection()

    def stop(self) -> Optional[ConnectionHandle]:
        """Cancel timers and the live connection, returning to IDLE.

        Returns the handle that was live, if any, so the caller can await
        ``wait_closed()`` on it.
        """
        self.cancel_timers()
        self.generation += 1
        self.state = SupervisorState.IDLE
        self.restart_due = None

        handle, self.handle = self.handle, None
        if handle is not None:
            handle.cancel()

        logger.info("Supervisor stopped")
        return handle

    # --- Internal: transitions --------------------------------------------

    def open_connection(self) -> None:
        self.restart_timer = None
        self.restart_due = None
        self.generation += 1
        generation = self.generation

        self.state = SupervisorState.ACTIVE
        self.metrics.connections_opened += 1
        self.metrics.last_connected_at = self.clock.time()

        try:
            handle = self.provider.subscribe(
                lambda event: self.on_price(generation, event),
                lambda error: self.on_terminated(generation, TerminationReason.ERROR, error),
                lambda: self.on_terminated(generation, TerminationReason.COMPLETE),
            )
        except Exception as e:
            logger.exception("Failed to open %s connection", self.provider.name)
            self.on_terminated(generation, TerminationReason.ERROR, e)
            return

        if generation != self.generation or self.state is not SupervisorState.ACTIVE:
            # Terminated before subscribe() returned
            handle.cancel()
            return

        self.handle = handle
        self.rotation_timer = self.clock.call_later(
            self.config.max_connection_lifetime, self.rotate, generation
        )
        logger.info("Supervisor active on %r", handle)

    def on_price(self, generation: int, event: PriceUpdateEvent) -> None:
        if generation != self.generation or self.state is not SupervisorState.ACTIVE:
            return
        self.metrics.events_delivered += 1
        self.sink(event)

    def on_terminated(
        self,
        generation: int,
        reason: TerminationReason,
        error: Optional[Exception] = None,
    ) -> None:
        if generation != self.generation or self.state is not SupervisorState.ACTIVE:
            logger.debug("Ignoring %s from stale connection", reason.value)
            return

        self.cancel_rotation_timer()
        self.handle = None

        if reason is TerminationReason.ERROR:
            self.metrics.last_error = str(error)
            delay = self.config.error_backoff
            logger.warning("Stream error: %s. Reconnecting in %.1fs", error, delay)
        else:
            delay = self.config.complete_backoff
            logger.info("Stream completed. Reconnecting in %.1fs", delay)

        self.schedule_restart(reason, delay)

    def rotate(self, generation: int) -> None:
        self.rotation_timer = None
        if generation != self.generation or self.state is not SupervisorState.ACTIVE:
            return

        handle, self.handle = self.handle, None
        delay = self.config.rotation_backoff
        logger.info("Rotating connection after max lifetime. Reconnecting in %.1fs", delay)

        # Leave ACTIVE before cancelling so any signal the cancel provokes is ignored
        self.schedule_restart(TerminationReason.ROTATION, delay)
        if handle is not None:
            handle.cancel()

    def schedule_restart(self, reason: TerminationReason, delay: float) -> None:
        self.metrics.record_termination(reason)
        self.state = SupervisorState.PENDING_RESTART
        self.restart_due = self.clock.time() + delay
        self.restart_timer = self.clock.call_later(delay, self.restart, self.generation)

    def restart(self, generation: int) -> None:
        if generation != self.generation or self.state is not SupervisorState.PENDING_RESTART:
            return
        self.open_connection()

    # --- Internal: timers -------------------------------------------------

    def cancel_rotation_timer(self) -> None:
        if self.rotation_timer is not None:
            self.rotation_timer.cancel()
            self.rotation_timer = None

    def cancel_timers(self) -> None:
        self.cancel_rotation_timer()
        if self.restart_timer is not None:
            self.restart_timer.cancel()
            self.restart_timer = None
