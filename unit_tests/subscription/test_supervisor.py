"""Tests for the SubscriptionSupervisor restart state machine."""

import itertools
from typing import Any, Callable, Optional
from unittest.mock import MagicMock, patch

import pytest

from coinfeed.common.exceptions import ApplicationError, TransportError
from coinfeed.config.configurations import SupervisorConfig
from coinfeed.config.enumerations import SupervisorState, TerminationReason
from coinfeed.connections.sockets import ConnectionHandle
from coinfeed.markets.pairs import PairExchangeId
from coinfeed.messaging.models.events import PriceUpdateEvent
from coinfeed.subscription.supervisor import SubscriptionSupervisor

ERROR_BACKOFF = 60.0
COMPLETE_BACKOFF = 30.0
ROTATION_BACKOFF = 10.0
LIFETIME = 4 * 60 * 60.0


# ---------------------------------------------------------------------------
# Helpers: virtual clock and scripted provider
# ---------------------------------------------------------------------------


class VirtualTimer:
    def __init__(self, when: float, seq: int, callback: Callable[..., Any], args: tuple) -> None:
        self.when = when
        self.seq = seq
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class VirtualClock:
    """Deterministic stand-in for the event loop's call_later/time."""

    def __init__(self) -> None:
        self.now = 0.0
        self.timers: list[VirtualTimer] = []
        self.seq = itertools.count()

    def time(self) -> float:
        return self.now

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> VirtualTimer:
        timer = VirtualTimer(self.now + delay, next(self.seq), callback, args)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[VirtualTimer]:
        return [t for t in self.timers if not t.cancelled]

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [t for t in self.pending if t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.when, t.seq))
            self.timers.remove(timer)
            self.now = timer.when
            timer.callback(*timer.args)
        self.now = target


class FakeConnection:
    def __init__(
        self,
        handle: ConnectionHandle,
        sink: Callable,
        on_error: Callable,
        on_complete: Callable,
        opened_at: float,
    ) -> None:
        self.handle = handle
        self.sink = sink
        self.on_error = on_error
        self.on_complete = on_complete
        self.opened_at = opened_at

    def emit(self, event: PriceUpdateEvent) -> None:
        if self.handle.active:
            self.sink(event)

    def fail(self, error: Exception) -> None:
        if self.handle.claim_termination():
            self.on_error(error)

    def complete(self) -> None:
        if self.handle.claim_termination():
            self.on_complete()


class FakeProvider:
    name = "fake"

    def __init__(self, clock: VirtualClock) -> None:
        self.clock = clock
        self.connections: list[FakeConnection] = []
        self.ids = itertools.count(1)
        self.on_subscribe: Optional[Callable[[FakeConnection], None]] = None

    def init(self) -> None:
        pass

    def subscribe(self, sink: Callable, on_error: Callable, on_complete: Callable) -> ConnectionHandle:
        connection = FakeConnection(
            ConnectionHandle(next(self.ids)), sink, on_error, on_complete, self.clock.time()
        )
        self.connections.append(connection)
        if self.on_subscribe is not None:
            self.on_subscribe(connection)
        return connection.handle

    @property
    def latest(self) -> FakeConnection:
        return self.connections[-1]

    @property
    def open_times(self) -> list[float]:
        return [c.opened_at for c in self.connections]


def make_event(price: float = 50000.0) -> PriceUpdateEvent:
    return PriceUpdateEvent(
        pair_exchange_id=PairExchangeId(exchange="KRAKEN", from_asset="BTC", to_asset="USD"),
        price=price,
    )


@pytest.fixture
def clock() -> VirtualClock:
    return VirtualClock()


@pytest.fixture
def provider(clock: VirtualClock) -> FakeProvider:
    return FakeProvider(clock)


@pytest.fixture
def sink() -> MagicMock:
    return MagicMock()


@pytest.fixture
def supervisor(provider: FakeProvider, sink: MagicMock, clock: VirtualClock) -> SubscriptionSupervisor:
    config = SupervisorConfig(
        error_backoff=ERROR_BACKOFF,
        complete_backoff=COMPLETE_BACKOFF,
        rotation_backoff=ROTATION_BACKOFF,
        max_connection_lifetime=LIFETIME,
    )
    return SubscriptionSupervisor(provider, sink, config, scheduler=clock)


# ---------------------------------------------------------------------------
# Start and delivery
# ---------------------------------------------------------------------------


def test_new_supervisor_is_idle(supervisor: SubscriptionSupervisor, provider: FakeProvider) -> None:
    assert supervisor.state is SupervisorState.IDLE
    assert supervisor.handle is None
    assert provider.connections == []


def test_start_opens_one_connection(
    supervisor: SubscriptionSupervisor, provider: FakeProvider, clock: VirtualClock
) -> None:
    supervisor.start()

    assert supervisor.state is SupervisorState.ACTIVE
    assert len(provider.connections) == 1
    assert supervisor.handle is provider.latest.handle
    # Only the rotation timer is running
    assert len(clock.pending) == 1
    assert clock.pending[0].when == LIFETIME


def test_start_twice_keeps_single_connection(
    supervisor: SubscriptionSupervisor, provider: FakeProvider
) -> None:
    supervisor.start()
    supervisor.start()

    assert len(provider.connections) == 1


def test_events_reach_sink(
    supervisor: SubscriptionSupervisor, provider: FakeProvider, sink: MagicMock
) -> None:
    supervisor.start()
    event = make_event()

    provider.latest.emit(event)

    sink.assert_called_once_with(event)
    assert supervisor.metrics.events_delivered == 1


# ---------------------------------------------------------------------------
# Error and completion backoff
# ---------------------------------------------------------------------------


def test_error_restarts_after_error_backoff(
    supervisor: SubscriptionSupervisor, provider: FakeProvider, clock: VirtualClock
) -> None:
    supervisor.start()
    provider.latest.fail(TransportError("network down"))

    assert supervisor.state is SupervisorState.PENDING_RESTART
    assert supervisor.handle is None
    assert supervisor.restart_due == ERROR_BACKOFF

    clock.advance(ERROR_BACKOFF - 1)
    assert len(provider.connections) == 1
    assert supervisor.state is SupervisorState.PENDING_RESTART

    clock.advance(1)
    assert len(provider.connections) == 2
    assert provider.latest.opened_at == ERROR_BACKOFF
    assert supervisor.state is SupervisorState.ACTIVE


def test_error_at_arbitrary_time_restarts_relative_to_failure(
    supervisor: SubscriptionSupervisor, provider: FakeProvider, clock: VirtualClock
) -> None:
    supervisor.start()
    clock.advance(125.0)
    provider.latest.fail(ApplicationError("Invalid API key"))

    clock.advance(ERROR_BACKOFF)

    assert provider.open_times == [0.0, 125.0 + ERROR_BACKOFF]
    assert supervisor.metrics.last_error == "Provider error: Invalid API key"


def test_complete_restarts_after_complete_backoff(
    supervisor: SubscriptionSupervisor, provider: FakeProvider, clock: VirtualClock
) -> None:
    supervisor.start()
    clock.advance(5.0)
    provider.latest.complete()

    assert supervisor.state is SupervisorState.PENDING_RESTART

    clock.advance(COMPLETE_BACKOFF - 1)
    assert len(provider.connections) == 1

    clock.advance(1)
    assert provider.open_times == [0.0, 5.0 + COMPLETE_BACKOFF]
    assert supervisor.metrics.terminations[TerminationReason.COMPLETE] == 1


def test_termination_cancels_rotation_timer(
    supervisor: SubscriptionSupervisor, provider: FakeProvider, clock: VirtualClock
) -> None:
    supervisor.start()
    rotation_timer = supervisor.rotation_timer
    provider.latest.fail(TransportError("reset"))

    assert rotation_timer is not None and rotation_timer.cancelled
    assert [t.when for t in clock.pending] == [ERROR_BACKOFF]


def test_rotation_timer_restarts_with_each_connection(
    supervisor: SubscriptionSupervisor, provider: FakeProvider, clock: VirtualClock
) -> None:
    supervisor.start()
    clock.advance(100.0)
    provider.latest.fail(TransportError("reset"))
    clock.advance(ERROR_BACKOFF)

    second = provider.latest
    clock.advance(LIFETIME - 1)
    assert second.handle.active

    clock.advance(1)
    assert second.handle.cancelled


def test_permanent_failure_retries_forever_at_error_cadence(
    supervisor: SubscriptionSupervisor, provider: FakeProvider, clock: VirtualClock
) -> None:
    supervisor.start()

    for _ in range(10):
        provider.latest.fail(TransportError("connection refused"))
        clock.advance(ERROR_BACKOFF)

    assert len(provider.connections) == 11
    assert provider.open_times == [i * ERROR_BACKOFF for i in range(11)]
    assert supervisor.metrics.terminations[TerminationReason.ERROR] == 10


# ---------------------------------------------------------------------------
# Forced rotation
# ---------------------------------------------------------------------------


def test_rotation_cancels_and_reconnects_after_rotation_backoff(
    supervisor: SubscriptionSupervisor, provider: FakeProvider, clock: VirtualClock
) -> None:
    supervisor.start()
    first = provider.latest

    clock.advance(LIFETIME)

    assert first.handle.cancelled
    assert supervisor.state is SupervisorState.PENDING_RESTART
    assert len(provider.connections) == 1

    clock.advance(ROTATION_BACKOFF)

    assert provider.open_times == [0.0, LIFETIME + ROTATION_BACKOFF]
    assert supervisor.state is SupervisorState.ACTIVE
    assert supervisor.metrics.terminations[TerminationReason.ROTATION] == 1


def test_rotation_schedules_single_restart_when_cancel_surfaces_completion(
    supervisor: SubscriptionSupervisor, provider: FakeProvider, clock: VirtualClock
) -> None:
    supervisor.start()
    first = provider.latest

    clock.advance(LIFETIME)
    # A provider that still reports a close after being cancelled
    first.on_complete()
    first.on_error(TransportError("socket closed"))

    assert len(clock.pending) == 1
    assert clock.pending[0].when == LIFETIME + ROTATION_BACKOFF

    clock.advance(COMPLETE_BACKOFF + ERROR_BACKOFF)

    assert len(provider.connections) == 2
    assert supervisor.metrics.terminations[TerminationReason.COMPLETE] == 0
    assert supervisor.metrics.terminations[TerminationReason.ERROR] == 0


def test_completion_during_rotation_cancel_is_ignored(
    supervisor: SubscriptionSupervisor, provider: FakeProvider, clock: VirtualClock
) -> None:
    supervisor.start()
    first = provider.latest
    original_cancel = first.handle.cancel

    def cancel_and_signal() -> None:
        original_cancel()
        first.on_complete()

    with patch.object(first.handle, "cancel", side_effect=cancel_and_signal):
        clock.advance(LIFETIME)

    assert supervisor.state is SupervisorState.PENDING_RESTART
    assert len(clock.pending) == 1

    clock.advance(ROTATION_BACKOFF)
    assert len(provider.connections) == 2


def test_events_from_rotated_connection_are_not_delivered(
    supervisor: SubscriptionSupervisor, provider: FakeProvider, clock: VirtualClock, sink: MagicMock
) -> None:
    supervisor.start()
    first = provider.latest
    clock.advance(LIFETIME)

    # Bypass the handle check to model a frame already in flight
    first.sink(make_event())

    sink.assert_not_called()


# ---------------------------------------------------------------------------
# Cancellation and stale signals
# ---------------------------------------------------------------------------


def test_double_cancel_produces_no_duplicate_restart(
    supervisor: SubscriptionSupervisor, provider: FakeProvider, clock: VirtualClock
) -> None:
    supervisor.start()
    clock.advance(LIFETIME)
    first = provider.latest

    first.handle.cancel()
    first.handle.cancel()
    first.complete()
    first.fail(TransportError("late"))

    assert len(clock.pending) == 1
    clock.advance(ROTATION_BACKOFF)
    assert len(provider.connections) == 2


def test_second_signal_from_same_connection_is_ignored(
    supervisor: SubscriptionSupervisor, provider: FakeProvider, clock: VirtualClock
) -> None:
    supervisor.start()
    first = provider.latest
    first.on_error(TransportError("reset"))
    first.on_complete()

    assert [t.when for t in clock.pending] == [ERROR_BACKOFF]


def test_signal_from_previous_connection_does_not_touch_current(
    supervisor: SubscriptionSupervisor, provider: FakeProvider, clock: VirtualClock
) -> None:
    supervisor.start()
    first = provider.latest
    first.fail(TransportError("reset"))
    clock.advance(ERROR_BACKOFF)

    first.on_complete()

    assert supervisor.state is SupervisorState.ACTIVE
    assert supervisor.handle is provider.latest.handle


# ---------------------------------------------------------------------------
# Stop
# ---------------------------------------------------------------------------


def test_stop_while_active_cancels_connection_and_timers(
    supervisor: SubscriptionSupervisor, provider: FakeProvider, clock: VirtualClock
) -> None:
    supervisor.start()
    handle = supervisor.stop()

    assert handle is provider.latest.handle
    assert handle.cancelled
    assert supervisor.state is SupervisorState.IDLE
    assert clock.pending == []


def test_stop_while_pending_prevents_restart(
    supervisor: SubscriptionSupervisor, provider: FakeProvider, clock: VirtualClock
) -> None:
    supervisor.start()
    provider.latest.fail(TransportError("reset"))
    restart_timer = supervisor.restart_timer

    assert supervisor.stop() is None
    # A wake-up that was already queued must not reopen the stream
    assert restart_timer is not None
    restart_timer.callback(*restart_timer.args)
    clock.advance(ERROR_BACKOFF * 10)

    assert len(provider.connections) == 1
    assert supervisor.state is SupervisorState.IDLE


def test_supervisor_can_start_again_after_stop(
    supervisor: SubscriptionSupervisor, provider: FakeProvider
) -> None:
    supervisor.start()
    supervisor.stop()
    supervisor.start()

    assert len(provider.connections) == 2
    assert supervisor.state is SupervisorState.ACTIVE


# ---------------------------------------------------------------------------
# Misbehaving providers
# ---------------------------------------------------------------------------


def test_subscribe_raising_is_treated_as_error(
    supervisor: SubscriptionSupervisor, provider: FakeProvider, clock: VirtualClock
) -> None:
    with patch.object(provider, "subscribe", side_effect=RuntimeError("no loop")):
        supervisor.start()

    assert supervisor.state is SupervisorState.PENDING_RESTART
    assert supervisor.metrics.last_error == "no loop"

    clock.advance(ERROR_BACKOFF)
    assert len(provider.connections) == 1
    assert supervisor.state is SupervisorState.ACTIVE


def test_failure_during_subscribe_schedules_one_restart(
    supervisor: SubscriptionSupervisor, provider: FakeProvider, clock: VirtualClock
) -> None:
    provider.on_subscribe = lambda connection: connection.fail(TransportError("refused"))

    supervisor.start()

    assert supervisor.state is SupervisorState.PENDING_RESTART
    assert supervisor.handle is None
    assert [t.when for t in clock.pending] == [ERROR_BACKOFF]
