"""
Pytest fixtures for the crew settlement test suite.

Provides:
- A fresh SQLite database file per test (same schema, version checks and
  unique constraints as PostgreSQL)
- DeterministicClock, SettlementPolicy and recording adapters
- A SettlementOrchestrator wired to all of the above
- ``flow``: drives a shift through its lifecycle so tests can start from
  any state
- ``captured_logs``: crew_kernel JSON log lines as dicts
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from io import StringIO
from uuid import UUID, uuid4

import pytest

from crew_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from crew_kernel.domain.clock import DeterministicClock
from crew_kernel.domain.policy import SettlementPolicy
from crew_kernel.domain.values import Actor, CheckInEvidence, ShiftTerms
from crew_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from crew_kernel.selectors import DisputeSelector, RatingSelector, ShiftSelector, TrustSelector
from crew_services import (
    RecordingNotificationAdapter,
    RecordingPaymentAdapter,
    SettlementOrchestrator,
)

# Monday morning; shifts posted by ``flow`` start an hour later
START_OF_DAY = datetime(2025, 6, 2, 8, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture crew_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, orchestrator):
            orchestrator.create_shift(...)
            logs = captured_logs()
            assert any(r["message"] == "shift_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("crew_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow_locks: sequential simulation of concurrent writers"
    )


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'crew.db'}"


@pytest.fixture
def db_engine(database_url):
    """Engine on a fresh database file; tables and listeners installed."""
    engine = init_engine_from_url(database_url)
    create_tables()
    yield engine
    reset_engine()


@pytest.fixture
def session_factory(db_engine):
    return get_session_factory()


@pytest.fixture
def session(session_factory):
    """A plain session for reads and direct kernel-service tests."""
    s = session_factory()
    yield s
    s.rollback()
    s.close()


# =============================================================================
# Clock, policy and adapters
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(START_OF_DAY)


@pytest.fixture
def policy() -> SettlementPolicy:
    return SettlementPolicy()


@pytest.fixture
def payments() -> RecordingPaymentAdapter:
    return RecordingPaymentAdapter()


@pytest.fixture
def notifications() -> RecordingNotificationAdapter:
    return RecordingNotificationAdapter()


@pytest.fixture
def orchestrator(session_factory, payments, notifications, clock, policy):
    return SettlementOrchestrator(
        session_factory=session_factory,
        payments=payments,
        notifications=notifications,
        clock=clock,
        policy=policy,
    )


# =============================================================================
# Selector fixtures
# =============================================================================


@pytest.fixture
def read(session_factory):
    """
    Run a selector query on a fresh session.

    Usage::

        shift = read(lambda shifts, ratings, disputes: shifts.get_shift(shift_id))
    """

    def _read(query):
        s = session_factory()
        try:
            return query(ShiftSelector(s), RatingSelector(s), DisputeSelector(s))
        finally:
            s.close()

    return _read


@pytest.fixture
def trust_events(session_factory):
    """
    Trust events recorded for one user, oldest first.

    Usage::

        types = [e.event_type for e in trust_events(worker.user_id)]
    """

    def _events(user_id: UUID):
        s = session_factory()
        try:
            return TrustSelector(s).events_for(user_id)
        finally:
            s.close()

    return _events


# =============================================================================
# Lifecycle driver
# =============================================================================


@dataclass
class Crew:
    """A posted shift and the people on it."""

    shift_id: UUID
    client: Actor
    workers: list[Actor]
    start: datetime
    end: datetime
    assignments: dict[UUID, UUID] = field(default_factory=dict)

    def assignment_of(self, worker: Actor) -> UUID:
        return self.assignments[worker.user_id]


class ShiftFlow:
    """Walks shifts through the lifecycle via the orchestrator."""

    def __init__(self, orchestrator: SettlementOrchestrator, clock: DeterministicClock):
        self.orchestrator = orchestrator
        self.clock = clock

    def terms(self, **overrides) -> ShiftTerms:
        start = self.clock.now() + timedelta(hours=1)
        values = dict(
            title="Warehouse picking",
            category="logistics",
            location="Incheon DC 3",
            scheduled_start=start,
            scheduled_end=start + timedelta(hours=8),
            required_workers=2,
            pay_rate=Decimal("2500"),
            commission_percent=Decimal("12"),
        )
        values.update(overrides)
        return ShiftTerms(**values)

    def posted(self, workers: int = 2, **overrides) -> Crew:
        client = Actor.client(uuid4())
        terms = self.terms(required_workers=workers, **overrides)
        shift = self.orchestrator.create_shift(client, terms).value
        return Crew(
            shift_id=shift.id,
            client=client,
            workers=[Actor.worker(uuid4()) for _ in range(workers)],
            start=terms.scheduled_start,
            end=terms.scheduled_end,
        )

    def staffed(self, workers: int = 2, **overrides) -> Crew:
        crew = self.posted(workers, **overrides)
        for worker in crew.workers:
            record = self.orchestrator.approve_application(
                crew.client, crew.shift_id, worker.user_id
            ).value
            crew.assignments[worker.user_id] = record.id
        return crew

    def evidence(self, at: datetime | None = None) -> CheckInEvidence:
        return CheckInEvidence(
            timestamp=at or self.clock.now(),
            latitude=37.4563,
            longitude=126.7052,
            photo_ref="checkin/selfie.jpg",
        )

    def check_in(self, crew: Crew, workers: list[Actor] | None = None) -> None:
        self._advance_to(crew.start + timedelta(minutes=5))
        for worker in workers if workers is not None else crew.workers:
            self.orchestrator.check_in(worker, crew.assignment_of(worker), self.evidence())

    def check_out(self, crew: Crew, workers: list[Actor] | None = None) -> None:
        self._advance_to(crew.end)
        for worker in workers if workers is not None else crew.workers:
            self.orchestrator.check_out(worker, crew.assignment_of(worker))

    def completed_by_client(self, workers: int = 2, **overrides) -> Crew:
        crew = self.staffed(workers, **overrides)
        self.check_in(crew)
        self.check_out(crew)
        self._advance_to(crew.end + timedelta(minutes=10))
        self.orchestrator.complete_shift(crew.client, crew.shift_id)
        return crew

    def confirm(self, crew: Crew, workers: list[Actor] | None = None) -> None:
        for worker in workers if workers is not None else crew.workers:
            self.orchestrator.confirm_completion(worker, crew.assignment_of(worker))

    def awaiting_rating(self, workers: int = 2, **overrides) -> Crew:
        crew = self.completed_by_client(workers, **overrides)
        self.confirm(crew)
        return crew

    def rate_all(self, crew: Crew, value: int = 5) -> None:
        for worker in crew.workers:
            self.orchestrator.submit_rating(worker, crew.shift_id, crew.client.user_id, value)
            self.orchestrator.submit_rating(crew.client, crew.shift_id, worker.user_id, value)

    def _advance_to(self, at: datetime) -> None:
        if self.clock.now() < at:
            self.clock.set_time(at)


@pytest.fixture
def flow(orchestrator, clock) -> ShiftFlow:
    return ShiftFlow(orchestrator, clock)


@pytest.fixture
def flow_for(clock):
    """ShiftFlow over a custom orchestrator (e.g. one with failing adapters)."""

    def _flow(orchestrator: SettlementOrchestrator) -> ShiftFlow:
        return ShiftFlow(orchestrator, clock)

    return _flow


@pytest.fixture
def admin() -> Actor:
    return Actor.admin(uuid4())
