"""
ShiftLifecycleService -- the shift / assignment state machine over the ledger.

Responsibility:
    Every command that moves a shift or an assignment: posting a shift,
    approving workers, check-in / check-out, client completion, per-worker
    confirmation, rating, finalization and cancellation.  Each command
    validates the actor and the current persisted state, applies the move
    and its escrow step inside the caller's transaction, and returns the
    post-commit effects.

Architecture position:
    Kernel > Services.  Uses LedgerStore, EscrowService, RatingAggregator
    and TrustRecorder.  Never commits and never calls an adapter.

Invariants enforced:
    - Only edges in domain.lifecycle.SHIFT_TRANSITIONS /
      ASSIGNMENT_TRANSITIONS are taken; anything else is
      InvalidTransitionError with nothing applied.
    - The hold is created and marked held in the same transaction that
      fills the last worker slot; no shift reaches COMPLETED with a hold
      still pending (release requires held).
    - Worker confirmation is per assignment.  The shift leaves
      AWAITING_WORKER_CONFIRM only when no checked-in assignment is left
      unconfirmed.
    - Every roster change bumps a counter on the shift row, so concurrent
      commands on one shift serialize on its version.
    - A DISPUTED shift is frozen: every command here requires a
      non-disputed state.
    - Trust events (late arrival, no-show, completed shift, positive
      rating) are written in the command that produced the outcome.

Failure modes:
    - InvalidTransitionError (and UnauthorizedActorError, CheckInWindowError,
      ShiftFullError, CancellationRequiresDisputeError).
    - ShiftNotFoundError, AssignmentNotFoundError, DuplicateAssignmentError,
      WorkerBannedError, InvalidShiftTermsError, InvalidEvidenceError.
    - RatingNotAllowedError, RatingOutOfRangeError, DuplicateRatingError.
    - ConcurrentModificationError on a lost version check.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation
from uuid import UUID

from sqlalchemy.orm import Session

from crew_kernel.db.types import round_money, to_money
from crew_kernel.domain.clock import Clock
from crew_kernel.domain.dtos import AssignmentRecord, RatingSubmission, ShiftRecord
from crew_kernel.domain.effects import (
    Effect,
    LedgerChange,
    NotificationEffect,
    NotificationType,
)
from crew_kernel.domain.escrow import EscrowStatus
from crew_kernel.domain.lifecycle import (
    RATING_SHIFT_STATES,
    AssignmentState,
    ShiftState,
    check_in_window,
    require_assignment_transition,
    require_shift_state,
    require_shift_transition,
)
from crew_kernel.domain.policy import SettlementPolicy
from crew_kernel.domain.trust import TrustEventType
from crew_kernel.domain.values import Actor, ActorRole, CheckInEvidence, ShiftTerms
from crew_kernel.exceptions import (
    CancellationRequiresDisputeError,
    CheckInWindowError,
    DuplicateAssignmentError,
    EscrowNotFoundError,
    InvalidEvidenceError,
    InvalidShiftTermsError,
    InvalidTransitionError,
    RatingNotAllowedError,
    ShiftFullError,
    UnauthorizedActorError,
    WorkerBannedError,
)
from crew_kernel.logging_config import get_logger
from crew_kernel.models import AssignmentModel, ShiftModel
from crew_kernel.services.base import BaseService
from crew_kernel.services.escrow_service import EscrowService
from crew_kernel.services.ledger_store import LedgerStore
from crew_kernel.services.rating_aggregator import RatingAggregator
from crew_kernel.services.trust_recorder import TrustRecorder

logger = get_logger("services.lifecycle")


class ShiftLifecycleService(BaseService):
    """
    Applies lifecycle commands to persisted shifts.

    Contract:
        Each public method is one command.  On return the ledger rows are
        flushed (not committed) and the LedgerChange carries the snapshot
        plus the effects to dispatch after commit.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: SettlementPolicy | None = None,
        store: LedgerStore | None = None,
        escrow: EscrowService | None = None,
        ratings: RatingAggregator | None = None,
        trust: TrustRecorder | None = None,
    ):
        super().__init__(session, clock, policy)
        self.store = store or LedgerStore(session, self.clock, self.policy)
        self.escrow = escrow or EscrowService(session, self.clock, self.policy, self.store)
        self.ratings = ratings or RatingAggregator(session, self.clock, self.policy, self.store)
        self.trust = trust or TrustRecorder(session, self.clock, self.policy)

    # =========================================================================
    # Posting and staffing
    # =========================================================================

    def create_shift(self, actor: Actor, terms: ShiftTerms) -> LedgerChange[ShiftRecord]:
        """Post a new shift in OPEN."""
        if actor.role is not ActorRole.CLIENT:
            raise UnauthorizedActorError(
                "new", "none", "create_shift", str(actor.user_id), actor.role.value
            )
        pay_rate, commission = self._validate_terms(terms)

        shift = ShiftModel(
            client_id=actor.user_id,
            title=terms.title.strip(),
            category=terms.category.strip(),
            location=terms.location.strip(),
            scheduled_start=terms.scheduled_start,
            scheduled_end=terms.scheduled_end,
            required_workers=terms.required_workers,
            pay_rate=pay_rate,
            commission_percent=commission,
            state=ShiftState.OPEN.value,
            assigned_workers=0,
            checked_in_workers=0,
            checked_out_workers=0,
            confirmed_workers=0,
            ratings_received=0,
            open_disputes=0,
            status_log_seq=0,
            created_at=self.clock.now(),
        )
        self.session.add(shift)
        self.store.flush("Shift", "new")
        self.store.append_status_log(shift, None, ShiftState.OPEN, actor, "shift posted")
        self.store.flush("Shift", shift.id)

        logger.info(
            "shift_created",
            extra={
                "shift_id": str(shift.id),
                "required_workers": shift.required_workers,
                "pay_rate": str(pay_rate),
                "commission_percent": str(commission),
            },
        )
        return LedgerChange(shift.to_dto())

    def approve_application(
        self,
        actor: Actor,
        shift_id: UUID,
        worker_id: UUID,
    ) -> LedgerChange[AssignmentRecord]:
        """
        Assign a worker.  Filling the last slot moves OPEN -> ASSIGNED and
        locks the escrow hold in the same transaction.
        """
        command = "approve_application"
        shift = self.store.shift(shift_id)
        self._require_shift_client(actor, shift, command)
        state = shift.state_enum
        if state is ShiftState.ASSIGNED or shift.assigned_workers >= shift.required_workers:
            raise ShiftFullError(str(shift.id), state.value, shift.required_workers)
        require_shift_state(shift.id, state, {ShiftState.OPEN}, command)
        if worker_id == shift.client_id:
            raise InvalidTransitionError(
                str(shift.id), state.value, command, "a client cannot work their own shift"
            )

        now = self.clock.now()
        profile = self.store.worker_profile(worker_id)
        if profile is not None and profile.to_dto().is_banned(now):
            raise WorkerBannedError(
                str(worker_id),
                profile.ban_until.isoformat() if profile.ban_until else None,
            )
        if self.store.assignment_for(shift.id, worker_id) is not None:
            raise DuplicateAssignmentError(str(shift.id), str(worker_id))

        assignment = AssignmentModel(
            worker_id=worker_id,
            state=AssignmentState.ASSIGNED.value,
            assigned_at=now,
        )
        shift.assignments.append(assignment)
        shift.assigned_workers += 1
        self.store.flush(
            "Shift",
            shift.id,
            on_conflict=lambda: DuplicateAssignmentError(str(shift.id), str(worker_id)),
        )

        effects: list[Effect] = [
            NotificationEffect(
                worker_id,
                NotificationType.APPLICATION_APPROVED,
                {"shift_id": str(shift.id), "assignment_id": str(assignment.id)},
            ),
        ]

        if shift.assigned_workers == shift.required_workers:
            self.store.transition_shift(
                shift, ShiftState.ASSIGNED, actor, "all worker slots filled", command
            )
            hold = self.escrow.create_hold(shift)
            effects.append(self.escrow.mark_held(hold))
            effects.append(
                NotificationEffect(
                    shift.client_id,
                    NotificationType.ESCROW_HELD,
                    {"shift_id": str(shift.id), "total": str(hold.total)},
                )
            )
        self.store.flush("Shift", shift.id)

        logger.info(
            "application_approved",
            extra={
                "shift_id": str(shift.id),
                "assignment_id": str(assignment.id),
                "assigned_workers": shift.assigned_workers,
                "required_workers": shift.required_workers,
            },
        )
        return LedgerChange(assignment.to_dto(), tuple(effects))

    # =========================================================================
    # On site
    # =========================================================================

    def mark_on_way(self, actor: Actor, assignment_id: UUID) -> LedgerChange[AssignmentRecord]:
        command = "mark_on_way"
        assignment = self.store.assignment(assignment_id)
        shift = assignment.shift
        self._require_assignment_worker(actor, assignment, command)
        require_shift_state(
            shift.id, shift.state_enum, {ShiftState.ASSIGNED, ShiftState.CHECKED_IN}, command
        )
        self._move_assignment(assignment, AssignmentState.ON_WAY, command)
        self.store.flush("Assignment", assignment.id)
        return LedgerChange(assignment.to_dto())

    def check_in(
        self,
        actor: Actor,
        assignment_id: UUID,
        evidence: CheckInEvidence,
    ) -> LedgerChange[AssignmentRecord]:
        """
        Record arrival evidence.  The first check-in on a shift moves it
        ASSIGNED -> CHECKED_IN.
        """
        command = "check_in"
        assignment = self.store.assignment(assignment_id)
        shift = assignment.shift
        self._require_assignment_worker(actor, assignment, command)
        state = shift.state_enum
        require_shift_state(shift.id, state, {ShiftState.ASSIGNED, ShiftState.CHECKED_IN}, command)
        require_assignment_transition(
            assignment.id, assignment.state_enum, AssignmentState.CHECKED_IN, command
        )
        self._validate_evidence(evidence)

        opens_at, closes_at = check_in_window(
            shift.scheduled_start, shift.scheduled_end, self.policy.check_in_grace
        )
        if not opens_at <= evidence.timestamp <= closes_at:
            raise CheckInWindowError(
                str(assignment.id),
                assignment.state,
                evidence.timestamp.isoformat(),
                opens_at.isoformat(),
                closes_at.isoformat(),
            )

        self._move_assignment(assignment, AssignmentState.CHECKED_IN, command)
        assignment.check_in_at = evidence.timestamp
        assignment.check_in_latitude = evidence.latitude
        assignment.check_in_longitude = evidence.longitude
        assignment.check_in_photo_ref = evidence.photo_ref
        shift.checked_in_workers += 1
        if state is ShiftState.ASSIGNED:
            self.store.transition_shift(
                shift, ShiftState.CHECKED_IN, actor, "first worker checked in", command
            )
        if evidence.timestamp > shift.scheduled_start + self.policy.late_arrival_after:
            self.trust.record(
                assignment.worker_id,
                TrustEventType.LATE_ARRIVAL,
                shift_id=shift.id,
                description=f"checked in at {evidence.timestamp.isoformat()}",
            )
        self.store.flush("Shift", shift.id)

        return LedgerChange(
            assignment.to_dto(),
            (
                NotificationEffect(
                    shift.client_id,
                    NotificationType.WORKER_CHECKED_IN,
                    {"shift_id": str(shift.id), "worker_id": str(assignment.worker_id)},
                ),
            ),
        )

    def check_out(
        self,
        actor: Actor,
        assignment_id: UUID,
        at: datetime | None = None,
    ) -> LedgerChange[AssignmentRecord]:
        """
        Record departure.  When every checked-in worker has left, the shift
        moves CHECKED_IN -> AWAITING_CLIENT_COMPLETE.
        """
        command = "check_out"
        assignment = self.store.assignment(assignment_id)
        shift = assignment.shift
        self._require_assignment_worker(actor, assignment, command)
        require_shift_state(shift.id, shift.state_enum, {ShiftState.CHECKED_IN}, command)
        if assignment.state_enum is not AssignmentState.CHECKED_IN:
            raise InvalidTransitionError(
                str(assignment.id), assignment.state, command, "worker has not checked in"
            )
        if assignment.check_out_at is not None:
            raise InvalidTransitionError(
                str(assignment.id), assignment.state, command, "already checked out"
            )

        at = at or self.clock.now()
        if at.tzinfo is None:
            raise InvalidEvidenceError("check-out time must be timezone-aware")
        if at < assignment.check_in_at:
            raise InvalidEvidenceError("check-out precedes check-in")

        assignment.check_out_at = at
        shift.checked_out_workers += 1
        if shift.checked_out_workers >= shift.checked_in_workers:
            self.store.transition_shift(
                shift,
                ShiftState.AWAITING_CLIENT_COMPLETE,
                actor,
                "all checked-in workers checked out",
                command,
            )
        self.store.flush("Shift", shift.id)

        return LedgerChange(
            assignment.to_dto(),
            (
                NotificationEffect(
                    shift.client_id,
                    NotificationType.WORKER_CHECKED_OUT,
                    {"shift_id": str(shift.id), "worker_id": str(assignment.worker_id)},
                ),
            ),
        )

    # =========================================================================
    # Completion
    # =========================================================================

    def complete_shift(self, actor: Actor, shift_id: UUID) -> LedgerChange[ShiftRecord]:
        """
        Client marks the work done.  Workers who never checked in become
        no_show and drop out of confirmation and rating.
        """
        command = "complete_shift"
        shift = self.store.shift(shift_id)
        self._require_shift_client(actor, shift, command)
        state = shift.state_enum
        require_shift_state(
            shift.id,
            state,
            {ShiftState.CHECKED_IN, ShiftState.AWAITING_CLIENT_COMPLETE},
            command,
        )
        checked_in = [a for a in shift.assignments if a.state_enum is AssignmentState.CHECKED_IN]
        if not checked_in:
            raise InvalidTransitionError(
                str(shift.id), state.value, command, "no worker has checked in"
            )

        no_shows = 0
        for assignment in shift.assignments:
            if assignment.state_enum in (AssignmentState.ASSIGNED, AssignmentState.ON_WAY):
                self._move_assignment(assignment, AssignmentState.NO_SHOW, command)
                self.trust.record(assignment.worker_id, TrustEventType.NO_SHOW, shift_id=shift.id)
                no_shows += 1

        shift.client_completed_at = self.clock.now()
        self.store.transition_shift(
            shift,
            ShiftState.AWAITING_WORKER_CONFIRM,
            actor,
            "client marked shift complete",
            command,
        )
        self.store.flush("Shift", shift.id)

        logger.info(
            "shift_completed_by_client",
            extra={
                "shift_id": str(shift.id),
                "checked_in": len(checked_in),
                "no_shows": no_shows,
            },
        )
        effects = tuple(
            NotificationEffect(
                a.worker_id,
                NotificationType.SHIFT_COMPLETED_BY_CLIENT,
                {"shift_id": str(shift.id), "assignment_id": str(a.id)},
            )
            for a in checked_in
        )
        return LedgerChange(shift.to_dto(), effects)

    def confirm_completion(
        self,
        actor: Actor,
        assignment_id: UUID,
    ) -> LedgerChange[AssignmentRecord]:
        """
        One worker confirms their own assignment.  Independent of the other
        workers; the last confirmation moves the shift to AWAITING_RATING.
        """
        command = "confirm_completion"
        assignment = self.store.assignment(assignment_id)
        shift = assignment.shift
        self._require_assignment_worker(actor, assignment, command)
        require_shift_state(
            shift.id, shift.state_enum, {ShiftState.AWAITING_WORKER_CONFIRM}, command
        )

        self._confirm(assignment, shift, command)
        effects: list[Effect] = [
            NotificationEffect(
                shift.client_id,
                NotificationType.COMPLETION_CONFIRMED,
                {"shift_id": str(shift.id), "worker_id": str(assignment.worker_id)},
            ),
        ]
        effects.extend(self._advance_if_all_confirmed(shift, actor, command))
        self.store.flush("Shift", shift.id)
        return LedgerChange(assignment.to_dto(), tuple(effects))

    def auto_confirm_completion(self, actor: Actor, shift_id: UUID) -> LedgerChange[ShiftRecord]:
        """
        Confirm every outstanding assignment once the worker confirmation
        grace period since client completion has run out.
        """
        command = "auto_confirm_completion"
        shift = self.store.shift(shift_id)
        self._require_operator(actor, shift, command)
        state = shift.state_enum
        require_shift_state(shift.id, state, {ShiftState.AWAITING_WORKER_CONFIRM}, command)
        due_at = shift.client_completed_at + self.policy.worker_confirm_grace
        if self.clock.now() < due_at:
            raise InvalidTransitionError(
                str(shift.id),
                state.value,
                command,
                f"worker confirmation grace runs until {due_at.isoformat()}",
            )

        pending = [a for a in shift.assignments if a.state_enum is AssignmentState.CHECKED_IN]
        for assignment in pending:
            self._confirm(assignment, shift, command)
        effects: list[Effect] = [
            NotificationEffect(
                a.worker_id,
                NotificationType.COMPLETION_CONFIRMED,
                {"shift_id": str(shift.id), "automatic": True},
            )
            for a in pending
        ]
        effects.extend(self._advance_if_all_confirmed(shift, actor, command))
        self.store.flush("Shift", shift.id)

        logger.info(
            "completion_auto_confirmed",
            extra={"shift_id": str(shift.id), "assignments": len(pending)},
        )
        return LedgerChange(shift.to_dto(), tuple(effects))

    def finalize_shift(self, actor: Actor, shift_id: UUID) -> LedgerChange[ShiftRecord]:
        """
        AWAITING_RATING -> COMPLETED once every required rating is in or the
        rating grace period has elapsed.  Releases the hold.
        """
        command = "finalize_shift"
        shift = self.store.shift(shift_id)
        self._require_operator(actor, shift, command)
        state = shift.state_enum
        require_shift_state(shift.id, state, {ShiftState.AWAITING_RATING}, command)
        if not self._ratings_complete(shift):
            due_at = shift.awaiting_rating_since + self.policy.rating_grace
            if self.clock.now() < due_at:
                raise InvalidTransitionError(
                    str(shift.id),
                    state.value,
                    command,
                    f"ratings outstanding and rating grace runs until {due_at.isoformat()}",
                )

        effects = self._finalize(shift, actor, "settlement due", command)
        self.store.flush("Shift", shift.id)
        return LedgerChange(shift.to_dto(), tuple(effects))

    # =========================================================================
    # Ratings
    # =========================================================================

    def submit_rating(
        self,
        actor: Actor,
        shift_id: UUID,
        to_user_id: UUID,
        value: int,
        comment: str | None = None,
    ) -> LedgerChange[RatingSubmission]:
        """
        Rate the other side of a completed assignment.  The last required
        rating on an AWAITING_RATING shift finalizes it in the same
        transaction.
        """
        command = "submit_rating"
        shift = self.store.shift(shift_id)
        state = shift.state_enum
        if actor.role not in (ActorRole.CLIENT, ActorRole.WORKER):
            raise UnauthorizedActorError(
                str(shift.id), state.value, command, str(actor.user_id), actor.role.value
            )
        if state not in RATING_SHIFT_STATES:
            raise RatingNotAllowedError(
                str(shift.id), str(actor.user_id), str(to_user_id),
                f"shift is {state.value}",
            )
        self._require_rating_pair(shift, actor, to_user_id)

        rating, stat = self.ratings.record(
            shift.id, actor.user_id, to_user_id, value, comment
        )
        shift.ratings_received += 1
        if (
            actor.user_id == shift.client_id
            and value >= self.policy.positive_rating_threshold
        ):
            self.trust.record(
                to_user_id, TrustEventType.POSITIVE_RATING, shift_id=shift.id,
                description=f"rated {value}",
            )
        effects: list[Effect] = [
            NotificationEffect(
                to_user_id,
                NotificationType.RATING_RECEIVED,
                {"shift_id": str(shift.id), "value": value},
            ),
        ]
        if state is ShiftState.AWAITING_RATING and self._ratings_complete(shift):
            effects.extend(self._finalize(shift, actor, "all ratings received", command))
        self.store.flush("Shift", shift.id)

        return LedgerChange(
            RatingSubmission(rating=rating, ratee_stat=stat, shift_state=shift.state_enum),
            tuple(effects),
        )

    # =========================================================================
    # Cancellation
    # =========================================================================

    def cancel_shift(
        self,
        actor: Actor,
        shift_id: UUID,
        reason: str = "",
    ) -> LedgerChange[ShiftRecord]:
        """
        Cancel from OPEN, or from ASSIGNED while no money is held.  Held
        funds must go back through a dispute refund instead.
        """
        command = "cancel_shift"
        shift = self.store.shift(shift_id)
        if actor.role is not ActorRole.ADMIN:
            self._require_shift_client(actor, shift, command)
        state = shift.state_enum
        hold = self.store.hold_for_shift(shift.id)
        if hold is not None and EscrowStatus(hold.status) is EscrowStatus.HELD:
            raise CancellationRequiresDisputeError(str(shift.id), state.value, hold.status)
        require_shift_transition(shift.id, state, ShiftState.CANCELLED, command)

        affected = [
            a for a in shift.assignments
            if a.state_enum in (AssignmentState.ASSIGNED, AssignmentState.ON_WAY)
        ]
        for assignment in affected:
            self._move_assignment(assignment, AssignmentState.CANCELLED, command)
        self.store.transition_shift(
            shift,
            ShiftState.CANCELLED,
            actor,
            reason.strip() or f"cancelled by {actor.role.value}",
            command,
        )
        self.store.flush("Shift", shift.id)

        effects = tuple(
            NotificationEffect(
                a.worker_id,
                NotificationType.SHIFT_CANCELLED,
                {"shift_id": str(shift.id)},
            )
            for a in affected
        )
        return LedgerChange(shift.to_dto(), effects)

    # =========================================================================
    # Internals
    # =========================================================================

    def _confirm(self, assignment: AssignmentModel, shift: ShiftModel, command: str) -> None:
        self._move_assignment(assignment, AssignmentState.COMPLETED, command)
        assignment.confirmed_at = self.clock.now()
        shift.confirmed_workers += 1

    def _advance_if_all_confirmed(
        self,
        shift: ShiftModel,
        actor: Actor,
        command: str,
    ) -> list[Effect]:
        if any(a.state_enum is AssignmentState.CHECKED_IN for a in shift.assignments):
            return []
        shift.awaiting_rating_since = self.clock.now()
        self.store.transition_shift(
            shift, ShiftState.AWAITING_RATING, actor, "all workers confirmed", command
        )
        completed = [a for a in shift.assignments if a.state_enum is AssignmentState.COMPLETED]
        effects: list[Effect] = [
            NotificationEffect(
                shift.client_id,
                NotificationType.RATING_REQUESTED,
                {"shift_id": str(shift.id), "ratees": [str(a.worker_id) for a in completed]},
            ),
        ]
        effects.extend(
            NotificationEffect(
                a.worker_id,
                NotificationType.RATING_REQUESTED,
                {"shift_id": str(shift.id), "ratees": [str(shift.client_id)]},
            )
            for a in completed
        )
        return effects

    def _finalize(
        self,
        shift: ShiftModel,
        actor: Actor,
        reason: str,
        command: str,
    ) -> list[Effect]:
        hold = self.store.hold_for_shift(shift.id)
        if hold is None:
            raise EscrowNotFoundError(str(shift.id))

        effects: list[Effect] = []
        if EscrowStatus(hold.status) is EscrowStatus.REFUNDED:
            logger.info(
                "release_skipped_refunded",
                extra={"shift_id": str(shift.id), "hold_id": str(hold.id)},
            )
        else:
            effects.append(self.escrow.release(hold))
            effects.extend(
                NotificationEffect(
                    a.worker_id,
                    NotificationType.PAYMENT_RELEASED,
                    {
                        "shift_id": str(shift.id),
                        "amount": str(self.escrow.as_amount(hold.worker_amount)),
                    },
                )
                for a in shift.assignments
                if a.state_enum is AssignmentState.COMPLETED
            )

        shift.completed_at = self.clock.now()
        self.store.transition_shift(shift, ShiftState.COMPLETED, actor, reason, command)
        for assignment in shift.assignments:
            if assignment.state_enum is AssignmentState.COMPLETED:
                self.trust.record(
                    assignment.worker_id, TrustEventType.COMPLETED_SHIFT_WORKER, shift_id=shift.id
                )
        self.trust.record(shift.client_id, TrustEventType.COMPLETED_SHIFT_CLIENT, shift_id=shift.id)
        logger.info(
            "shift_finalized",
            extra={
                "shift_id": str(shift.id),
                "hold_status": hold.status,
                "ratings_received": shift.ratings_received,
            },
        )
        return effects

    def _ratings_complete(self, shift: ShiftModel) -> bool:
        # One rating each way per completed assignment
        return shift.ratings_received >= 2 * shift.confirmed_workers

    def _move_assignment(
        self,
        assignment: AssignmentModel,
        target: AssignmentState,
        command: str,
    ) -> None:
        current = assignment.state_enum
        require_assignment_transition(assignment.id, current, target, command)
        assignment.state = target.value
        logger.info(
            "assignment_transition",
            extra={
                "assignment_id": str(assignment.id),
                "from_state": current.value,
                "to_state": target.value,
                "command": command,
            },
        )

    def _require_shift_client(self, actor: Actor, shift: ShiftModel, command: str) -> None:
        if actor.role is not ActorRole.CLIENT or actor.user_id != shift.client_id:
            raise UnauthorizedActorError(
                str(shift.id), shift.state, command, str(actor.user_id), actor.role.value
            )

    def _require_assignment_worker(
        self,
        actor: Actor,
        assignment: AssignmentModel,
        command: str,
    ) -> None:
        if actor.role is not ActorRole.WORKER or actor.user_id != assignment.worker_id:
            raise UnauthorizedActorError(
                str(assignment.id), assignment.state, command, str(actor.user_id), actor.role.value
            )

    def _require_operator(self, actor: Actor, shift: ShiftModel, command: str) -> None:
        if actor.role not in (ActorRole.SYSTEM, ActorRole.ADMIN):
            raise UnauthorizedActorError(
                str(shift.id), shift.state, command, str(actor.user_id), actor.role.value
            )

    def _require_rating_pair(self, shift: ShiftModel, actor: Actor, to_user_id: UUID) -> None:
        completed = {
            a.worker_id for a in shift.assignments
            if a.state_enum is AssignmentState.COMPLETED
        }
        reason = None
        if actor.role is ActorRole.CLIENT:
            if actor.user_id != shift.client_id:
                reason = "rater is not the shift's client"
            elif to_user_id not in completed:
                reason = "ratee has no completed assignment on this shift"
        else:
            if actor.user_id not in completed:
                reason = "rater has no completed assignment on this shift"
            elif to_user_id != shift.client_id:
                reason = "workers rate the shift's client"
        if reason is not None:
            raise RatingNotAllowedError(
                str(shift.id), str(actor.user_id), str(to_user_id), reason
            )

    def _validate_terms(self, terms: ShiftTerms) -> tuple[Decimal, Decimal]:
        for name in ("title", "category", "location"):
            if not getattr(terms, name, "").strip():
                raise InvalidShiftTermsError(name, "must not be empty")
        if isinstance(terms.required_workers, bool) or not isinstance(terms.required_workers, int):
            raise InvalidShiftTermsError("required_workers", "must be an integer")
        if terms.required_workers < 1:
            raise InvalidShiftTermsError("required_workers", "must be at least 1")
        for name in ("scheduled_start", "scheduled_end"):
            if getattr(terms, name).tzinfo is None:
                raise InvalidShiftTermsError(name, "must be timezone-aware")
        if terms.scheduled_end <= terms.scheduled_start:
            raise InvalidShiftTermsError("scheduled_end", "must be after scheduled_start")

        try:
            pay_rate = to_money(terms.pay_rate)
            commission = (
                self.policy.default_commission_percent
                if terms.commission_percent is None
                else to_money(terms.commission_percent)
            )
        except (TypeError, InvalidOperation) as exc:
            raise InvalidShiftTermsError("pay_rate", str(exc)) from exc

        if pay_rate < self.policy.minimum_rate:
            raise InvalidShiftTermsError(
                "pay_rate", f"below minimum rate {self.policy.minimum_rate}"
            )
        if pay_rate != round_money(pay_rate, self.policy.currency_decimal_places):
            raise InvalidShiftTermsError("pay_rate", "finer than the currency unit")
        if not Decimal(0) <= commission <= Decimal(100):
            raise InvalidShiftTermsError("commission_percent", "must be within [0, 100]")
        return pay_rate, commission

    @staticmethod
    def _validate_evidence(evidence: CheckInEvidence) -> None:
        if evidence.timestamp.tzinfo is None:
            raise InvalidEvidenceError("timestamp must be timezone-aware")
        if not -90 <= evidence.latitude <= 90:
            raise InvalidEvidenceError(f"latitude {evidence.latitude} out of range")
        if not -180 <= evidence.longitude <= 180:
            raise InvalidEvidenceError(f"longitude {evidence.longitude} out of range")
        if not (evidence.photo_ref or "").strip():
            raise InvalidEvidenceError("photo reference is required")
