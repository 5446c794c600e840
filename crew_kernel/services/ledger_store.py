"""
LedgerStore -- row access and write guards for the settlement ledger.

Responsibility:
    Loads ledger rows by id (raising the typed not-found errors), appends
    shift status-log rows, and flushes with the optimistic-lock and
    unique-constraint failures translated into domain errors.

Architecture position:
    Kernel > Services.  Used by every other kernel service; never by
    outer layers directly.

Invariants enforced:
    - A lost compare-and-set (StaleDataError) always surfaces as
      ConcurrentModificationError.
    - A unique-constraint violation surfaces as the caller's domain error
      (DuplicateRatingError, DuplicateAssignmentError, ...), or propagates
      unchanged when the caller did not expect one.
    - Status-log sequence numbers are taken from the shift row, under its
      version check.

Failure modes:
    - ShiftNotFoundError / AssignmentNotFoundError / DisputeNotFoundError.
"""

from __future__ import annotations

from collections.abc import Callable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from crew_kernel.domain.dispute import UNRESOLVED_DISPUTE_STATUSES
from crew_kernel.domain.lifecycle import ShiftState, require_shift_transition
from crew_kernel.domain.values import Actor
from crew_kernel.exceptions import (
    AssignmentNotFoundError,
    ConcurrentModificationError,
    CrewKernelError,
    DisputeNotFoundError,
    ShiftNotFoundError,
)
from crew_kernel.logging_config import get_logger
from crew_kernel.models import (
    AssignmentModel,
    DisputeModel,
    EscrowHoldModel,
    RatingModel,
    ShiftModel,
    ShiftStatusLogModel,
    UserRatingStatModel,
    WorkerProfileModel,
)
from crew_kernel.services.base import BaseService

logger = get_logger("services.ledger_store")


class LedgerStore(BaseService):
    """CRUD plus compare-and-set flushes over the ledger tables."""

    # -- loads -------------------------------------------------------------

    def shift(self, shift_id: UUID) -> ShiftModel:
        model = self.session.get(ShiftModel, shift_id)
        if model is None:
            raise ShiftNotFoundError(str(shift_id))
        return model

    def assignment(self, assignment_id: UUID) -> AssignmentModel:
        model = self.session.get(AssignmentModel, assignment_id)
        if model is None:
            raise AssignmentNotFoundError(str(assignment_id))
        return model

    def dispute(self, dispute_id: UUID) -> DisputeModel:
        model = self.session.get(DisputeModel, dispute_id)
        if model is None:
            raise DisputeNotFoundError(str(dispute_id))
        return model

    def hold_for_shift(self, shift_id: UUID) -> EscrowHoldModel | None:
        return self.session.execute(
            select(EscrowHoldModel).where(EscrowHoldModel.shift_id == shift_id)
        ).scalar_one_or_none()

    def assignment_for(self, shift_id: UUID, worker_id: UUID) -> AssignmentModel | None:
        return self.session.execute(
            select(AssignmentModel).where(
                AssignmentModel.shift_id == shift_id,
                AssignmentModel.worker_id == worker_id,
            )
        ).scalar_one_or_none()

    def unresolved_dispute(
        self,
        shift_id: UUID | None,
        created_by: UUID,
        against_user: UUID,
    ) -> DisputeModel | None:
        shift_clause = (
            DisputeModel.shift_id.is_(None)
            if shift_id is None
            else DisputeModel.shift_id == shift_id
        )
        return self.session.execute(
            select(DisputeModel).where(
                shift_clause,
                DisputeModel.created_by == created_by,
                DisputeModel.against_user == against_user,
                DisputeModel.status.in_([s.value for s in UNRESOLVED_DISPUTE_STATUSES]),
            )
        ).scalars().first()

    def rating_exists(self, shift_id: UUID, from_user_id: UUID, to_user_id: UUID) -> bool:
        return self.session.execute(
            select(RatingModel.id).where(
                RatingModel.shift_id == shift_id,
                RatingModel.from_user_id == from_user_id,
                RatingModel.to_user_id == to_user_id,
            )
        ).first() is not None

    def worker_profile(self, user_id: UUID) -> WorkerProfileModel | None:
        return self.session.execute(
            select(WorkerProfileModel).where(WorkerProfileModel.user_id == user_id)
        ).scalar_one_or_none()

    def rating_stat(self, user_id: UUID) -> UserRatingStatModel | None:
        return self.session.execute(
            select(UserRatingStatModel).where(UserRatingStatModel.user_id == user_id)
        ).scalar_one_or_none()

    # -- writes ------------------------------------------------------------

    def transition_shift(
        self,
        shift: ShiftModel,
        target: ShiftState,
        actor: Actor,
        reason: str,
        command: str,
    ) -> ShiftState:
        """
        Move a shift along a legal edge and record it.  Caller flushes.

        Returns:
            The state the shift left.
        """
        current = shift.state_enum
        require_shift_transition(shift.id, current, target, command)
        shift.state = target.value
        self.append_status_log(shift, current, target, actor, reason)
        logger.info(
            "shift_transition",
            extra={
                "shift_id": str(shift.id),
                "from_state": current.value,
                "to_state": target.value,
                "command": command,
                "actor_role": actor.role.value,
            },
        )
        return current

    def append_status_log(
        self,
        shift: ShiftModel,
        from_state: ShiftState | None,
        to_state: ShiftState,
        actor: Actor,
        reason: str,
    ) -> ShiftStatusLogModel:
        """Record one shift transition.  Caller flushes."""
        shift.status_log_seq = (shift.status_log_seq or 0) + 1
        entry = ShiftStatusLogModel(
            shift_id=shift.id,
            seq=shift.status_log_seq,
            from_state=from_state.value if from_state else None,
            to_state=to_state.value,
            actor_id=actor.user_id,
            actor_role=actor.role.value,
            reason=reason,
            changed_at=self.clock.now(),
        )
        self.session.add(entry)
        return entry

    def flush(
        self,
        entity_type: str,
        entity_id: object,
        on_conflict: Callable[[], CrewKernelError] | None = None,
    ) -> None:
        """
        Flush pending writes as one compare-and-set.

        Args:
            entity_type: Reported in ConcurrentModificationError.
            entity_id: Reported in ConcurrentModificationError.
            on_conflict: Builds the domain error for a unique-constraint
                violation.  None lets the IntegrityError propagate.
        """
        try:
            self.session.flush()
        except StaleDataError as exc:
            logger.warning(
                "optimistic_lock_lost",
                extra={"entity_type": entity_type, "entity_id": str(entity_id)},
            )
            raise ConcurrentModificationError(entity_type, str(entity_id)) from exc
        except IntegrityError as exc:
            if on_conflict is None:
                raise
            error = on_conflict()
            logger.info(
                "unique_constraint_rejected",
                extra={
                    "entity_type": entity_type,
                    "entity_id": str(entity_id),
                    "error_code": error.code,
                },
            )
            raise error from exc
