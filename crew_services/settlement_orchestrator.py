"""
crew_services.settlement_orchestrator -- Transaction and retry boundary for
settlement commands.

Responsibility:
    Runs one kernel command per transaction: opens a session, wires the
    kernel services onto it, commits, and only then hands the command's
    effects to the EffectDispatcher.  Also hosts the scheduler sweep that
    auto-confirms and finalizes due shifts.

Architecture position:
    Services -- the only layer that owns commit / rollback.  Kernel services
    are constructed here, once per attempt, all sharing one Session, Clock
    and SettlementPolicy.

Invariants enforced:
    - Atomicity: a command either commits all of its ledger writes or none.
    - Effects run strictly after commit; an adapter failure is returned as a
      warning and never rolls back the committed change.
    - A lost optimistic-lock race is retried on a fresh session up to
      ``policy.max_command_attempts`` times, then surfaces as
      ConcurrentModificationError.

Failure modes:
    - Every CrewKernelError other than ConcurrentModificationError
      propagates on the first attempt with the transaction rolled back.

Usage:
    orchestrator = SettlementOrchestrator(
        session_factory=get_session_factory(),
        payments=LoggingPaymentAdapter(),
        notifications=LoggingNotificationAdapter(),
        policy=get_active_policy(),
    )
    result = orchestrator.check_in(Actor.worker(worker_id), assignment_id, evidence)
    result.value      # AssignmentRecord
    result.warnings   # adapter failures, if any
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from crew_kernel.db.engine import get_session_factory, session_scope
from crew_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from crew_kernel.domain.dispute import BanRequest, DisputeOutcome, DisputeReason
from crew_kernel.domain.dtos import (
    AssignmentRecord,
    DisputeRecord,
    RatingSubmission,
    ShiftRecord,
    TrustScoreRecord,
)
from crew_kernel.domain.effects import LedgerChange
from crew_kernel.domain.policy import SettlementPolicy
from crew_kernel.domain.ports import NotificationAdapter, PaymentAdapter
from crew_kernel.domain.values import Actor, CheckInEvidence, ShiftTerms
from crew_kernel.exceptions import ConcurrentModificationError, CrewKernelError
from crew_kernel.logging_config import LogContext, get_logger
from crew_kernel.selectors import ShiftSelector, TrustSelector
from crew_kernel.services import (
    DisputeResolver,
    EscrowService,
    LedgerStore,
    RatingAggregator,
    ShiftLifecycleService,
    TrustRecorder,
)
from crew_services.adapters import LoggingNotificationAdapter, LoggingPaymentAdapter
from crew_services.effect_dispatcher import EffectDispatcher

logger = get_logger("services.settlement_orchestrator")

T = TypeVar("T")


@dataclass(frozen=True)
class CommandResult(Generic[T]):
    """
    Outcome of a committed command.

    ``warnings`` lists adapter failures after commit ("payout recorded,
    transfer pending retry"); the ledger change stands regardless.
    """

    value: T
    warnings: tuple[str, ...] = ()
    attempts: int = 1

    @property
    def degraded(self) -> bool:
        return bool(self.warnings)


@dataclass(frozen=True)
class SweepFailure:
    shift_id: UUID
    command: str
    error_code: str
    message: str


@dataclass(frozen=True)
class SweepReport:
    """What one finalize_due_shifts run did."""

    auto_confirmed: tuple[UUID, ...] = ()
    finalized: tuple[UUID, ...] = ()
    failures: tuple[SweepFailure, ...] = ()
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class KernelServices:
    """The kernel services for one session, built once per attempt."""

    store: LedgerStore
    lifecycle: ShiftLifecycleService
    disputes: DisputeResolver


class SettlementOrchestrator:
    """
    Runs settlement commands with commit, retry and effect dispatch.

    Contract:
        Each public command method opens its own transaction.  Callers never
        see a Session.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        payments: PaymentAdapter | None = None,
        notifications: NotificationAdapter | None = None,
        clock: Clock | None = None,
        policy: SettlementPolicy | None = None,
    ) -> None:
        self.session_factory = session_factory or get_session_factory()
        self.clock = clock or SystemClock()
        self.policy = policy or SettlementPolicy()
        self.dispatcher = EffectDispatcher(
            payments or LoggingPaymentAdapter(),
            notifications or LoggingNotificationAdapter(),
        )

    # =========================================================================
    # Wiring
    # =========================================================================

    def kernel(self, session: Session, clock: Clock | None = None) -> KernelServices:
        """Construct every kernel service once, in dependency order."""
        clock = clock or self.clock
        store = LedgerStore(session, clock, self.policy)
        escrow = EscrowService(session, clock, self.policy, store)
        ratings = RatingAggregator(session, clock, self.policy, store)
        trust = TrustRecorder(session, clock, self.policy)
        lifecycle = ShiftLifecycleService(
            session, clock, self.policy, store, escrow, ratings, trust
        )
        disputes = DisputeResolver(session, clock, self.policy, store, escrow, trust)
        return KernelServices(store=store, lifecycle=lifecycle, disputes=disputes)

    def run(
        self,
        command: str,
        actor: Actor,
        fn: Callable[[KernelServices], LedgerChange[T]],
        clock: Clock | None = None,
        **context: object,
    ) -> CommandResult[T]:
        """
        Execute ``fn`` in a fresh transaction, retrying lost version races.

        Args:
            command: Name used in logs.
            actor: Bound into the log context.
            fn: Receives the kernel services and returns the LedgerChange.
            clock: Overrides the orchestrator clock for this command.
            **context: Extra log-context fields (shift_id, dispute_id).
        """
        attempts = self.policy.max_command_attempts
        with LogContext.bind(actor_id=actor.user_id, **context):
            for attempt in range(1, attempts + 1):
                try:
                    with session_scope(self.session_factory) as session:
                        change = fn(self.kernel(session, clock))
                except (ConcurrentModificationError, StaleDataError) as exc:
                    if attempt == attempts:
                        logger.warning(
                            "command_retries_exhausted",
                            extra={"command": command, "attempts": attempt},
                        )
                        if isinstance(exc, ConcurrentModificationError):
                            raise
                        # stale flush raised outside LedgerStore.flush (autoflush or commit)
                        entity_id = context.get("shift_id") or context.get("dispute_id") or command
                        raise ConcurrentModificationError("Command", str(entity_id)) from exc
                    logger.info(
                        "command_retry",
                        extra={
                            "command": command,
                            "attempt": attempt,
                            "error_type": type(exc).__name__,
                        },
                    )
                    continue

                warnings = self.dispatcher.dispatch(change.effects)
                logger.info(
                    "command_committed",
                    extra={
                        "command": command,
                        "attempt": attempt,
                        "effects": len(change.effects),
                        "warnings": len(warnings),
                    },
                )
                return CommandResult(change.value, warnings, attempt)
        raise AssertionError("unreachable")

    # =========================================================================
    # Lifecycle commands
    # =========================================================================

    def create_shift(self, actor: Actor, terms: ShiftTerms) -> CommandResult[ShiftRecord]:
        return self.run(
            "create_shift", actor, lambda k: k.lifecycle.create_shift(actor, terms)
        )

    def approve_application(
        self, actor: Actor, shift_id: UUID, worker_id: UUID
    ) -> CommandResult[AssignmentRecord]:
        return self.run(
            "approve_application",
            actor,
            lambda k: k.lifecycle.approve_application(actor, shift_id, worker_id),
            shift_id=shift_id,
        )

    def mark_on_way(self, actor: Actor, assignment_id: UUID) -> CommandResult[AssignmentRecord]:
        return self.run(
            "mark_on_way", actor, lambda k: k.lifecycle.mark_on_way(actor, assignment_id)
        )

    def check_in(
        self, actor: Actor, assignment_id: UUID, evidence: CheckInEvidence
    ) -> CommandResult[AssignmentRecord]:
        return self.run(
            "check_in", actor, lambda k: k.lifecycle.check_in(actor, assignment_id, evidence)
        )

    def check_out(
        self, actor: Actor, assignment_id: UUID, at: datetime | None = None
    ) -> CommandResult[AssignmentRecord]:
        return self.run(
            "check_out", actor, lambda k: k.lifecycle.check_out(actor, assignment_id, at)
        )

    def complete_shift(self, actor: Actor, shift_id: UUID) -> CommandResult[ShiftRecord]:
        return self.run(
            "complete_shift",
            actor,
            lambda k: k.lifecycle.complete_shift(actor, shift_id),
            shift_id=shift_id,
        )

    def confirm_completion(
        self, actor: Actor, assignment_id: UUID
    ) -> CommandResult[AssignmentRecord]:
        return self.run(
            "confirm_completion",
            actor,
            lambda k: k.lifecycle.confirm_completion(actor, assignment_id),
        )

    def auto_confirm_completion(
        self, shift_id: UUID, actor: Actor | None = None, clock: Clock | None = None
    ) -> CommandResult[ShiftRecord]:
        actor = actor or Actor.system()
        return self.run(
            "auto_confirm_completion",
            actor,
            lambda k: k.lifecycle.auto_confirm_completion(actor, shift_id),
            clock=clock,
            shift_id=shift_id,
        )

    def finalize_shift(
        self, shift_id: UUID, actor: Actor | None = None, clock: Clock | None = None
    ) -> CommandResult[ShiftRecord]:
        actor = actor or Actor.system()
        return self.run(
            "finalize_shift",
            actor,
            lambda k: k.lifecycle.finalize_shift(actor, shift_id),
            clock=clock,
            shift_id=shift_id,
        )

    def submit_rating(
        self,
        actor: Actor,
        shift_id: UUID,
        to_user_id: UUID,
        value: int,
        comment: str | None = None,
    ) -> CommandResult[RatingSubmission]:
        return self.run(
            "submit_rating",
            actor,
            lambda k: k.lifecycle.submit_rating(actor, shift_id, to_user_id, value, comment),
            shift_id=shift_id,
        )

    def cancel_shift(
        self, actor: Actor, shift_id: UUID, reason: str = ""
    ) -> CommandResult[ShiftRecord]:
        return self.run(
            "cancel_shift",
            actor,
            lambda k: k.lifecycle.cancel_shift(actor, shift_id, reason),
            shift_id=shift_id,
        )

    # =========================================================================
    # Dispute commands
    # =========================================================================

    def open_dispute(
        self,
        actor: Actor,
        shift_id: UUID | None,
        against_user: UUID,
        reason: str | DisputeReason,
        description: str,
    ) -> CommandResult[DisputeRecord]:
        return self.run(
            "open_dispute",
            actor,
            lambda k: k.disputes.open_dispute(actor, shift_id, against_user, reason, description),
            shift_id=shift_id,
        )

    def start_dispute_review(
        self, actor: Actor, dispute_id: UUID
    ) -> CommandResult[DisputeRecord]:
        return self.run(
            "start_dispute_review",
            actor,
            lambda k: k.disputes.start_review(actor, dispute_id),
            dispute_id=dispute_id,
        )

    def resolve_dispute(
        self,
        actor: Actor,
        dispute_id: UUID,
        outcome: DisputeOutcome | str,
        resolution_text: str,
        admin_notes: str | None = None,
        apply_refund: bool = False,
        ban: BanRequest | None = None,
    ) -> CommandResult[DisputeRecord]:
        return self.run(
            "resolve_dispute",
            actor,
            lambda k: k.disputes.resolve_dispute(
                actor,
                dispute_id,
                outcome,
                resolution_text,
                admin_notes=admin_notes,
                apply_refund=apply_refund,
                ban=ban,
            ),
            dispute_id=dispute_id,
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def trust_score(self, user_id: UUID) -> TrustScoreRecord:
        """The user's trust score over the policy's trust window."""
        since = self.clock.now() - self.policy.trust_window
        session = self.session_factory()
        try:
            return TrustSelector(session).score(user_id, since)
        finally:
            session.close()

    # =========================================================================
    # Scheduler sweep
    # =========================================================================

    def finalize_due_shifts(self, now: datetime | None = None) -> SweepReport:
        """
        Auto-confirm stale AWAITING_WORKER_CONFIRM shifts, then finalize
        every AWAITING_RATING shift whose ratings are in or whose rating
        grace has elapsed.

        Each shift is its own transaction; one shift failing is logged and
        reported without stopping the sweep.

        Args:
            now: Evaluate due-ness (and the kernel's own time checks) at
                this instant instead of the orchestrator clock.
        """
        clock = DeterministicClock(now) if now is not None else self.clock
        at = clock.now()
        system = Actor.system()
        confirmed: list[UUID] = []
        finalized: list[UUID] = []
        failures: list[SweepFailure] = []
        warnings: list[str] = []

        logger.info("sweep_started", extra={"as_of": at})

        for shift_id in self._due(lambda s: s.due_for_auto_confirm(at, self.policy.worker_confirm_grace)):
            try:
                result = self.auto_confirm_completion(shift_id, system, clock)
            except CrewKernelError as exc:
                failures.append(self._sweep_failure(shift_id, "auto_confirm_completion", exc))
                continue
            confirmed.append(shift_id)
            warnings.extend(result.warnings)

        for shift_id in self._due(lambda s: s.due_for_finalization(at, self.policy.rating_grace)):
            try:
                result = self.finalize_shift(shift_id, system, clock)
            except CrewKernelError as exc:
                failures.append(self._sweep_failure(shift_id, "finalize_shift", exc))
                continue
            finalized.append(shift_id)
            warnings.extend(result.warnings)

        report = SweepReport(
            auto_confirmed=tuple(confirmed),
            finalized=tuple(finalized),
            failures=tuple(failures),
            warnings=tuple(warnings),
        )
        logger.info(
            "sweep_completed",
            extra={
                "as_of": at,
                "auto_confirmed": len(report.auto_confirmed),
                "finalized": len(report.finalized),
                "failures": len(report.failures),
            },
        )
        return report

    def _due(self, query: Callable[[ShiftSelector], list[UUID]]) -> list[UUID]:
        session = self.session_factory()
        try:
            return query(ShiftSelector(session))
        finally:
            session.close()

    @staticmethod
    def _sweep_failure(shift_id: UUID, command: str, exc: CrewKernelError) -> SweepFailure:
        logger.warning(
            "sweep_shift_failed",
            extra={
                "shift_id": str(shift_id),
                "command": command,
                "error_code": exc.code,
                "error": str(exc),
            },
        )
        return SweepFailure(shift_id, command, exc.code, str(exc))
