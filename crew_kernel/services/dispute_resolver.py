"""
DisputeResolver -- administrator-mediated disputes over shift outcomes.

Responsibility:
    Opens disputes (freezing the shift), moves them into review, and
    closes them with an optional refund and an optional ban bundled into
    the same transaction as the status change.

Architecture position:
    Kernel > Services.  The only path by which held money goes back to a
    client (EscrowService.refund is called from here and nowhere else).

Invariants enforced:
    - At most one unresolved dispute per (shift, created_by, against_user):
      service check plus a partial unique index for racing openers.
    - resolution / resolved_at are written iff the dispute closes.
    - Closed disputes never reopen (immutability listener + transitions).
    - Status change, refund and ban commit or roll back together.  All
      reads happen before the first write so nothing autoflushes a
      half-built resolution.
    - A disputed shift stays frozen until its last unresolved dispute
      closes, then passes through RESOLVED / REJECTED back to the state it
      was frozen in.  "Last" is decided by ShiftModel.open_disputes, which
      opening and closing both write, so two admins closing the last two
      disputes (or an open racing the last close) collide on the shift's
      version instead of both acting on a stale count.
    - An upheld dispute on a shift records a dispute_lost trust event for
      the user it was against.

Failure modes:
    - DisputeNotFoundError, DisputeAlreadyResolvedError,
      MissingResolutionTextError, InvalidDisputeReasonError,
      DuplicateOpenDisputeError, AppealWindowClosedError,
      InvalidDisputeError, UnauthorizedActorError.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from crew_kernel.domain.clock import Clock
from crew_kernel.domain.dispute import (
    DISPUTE_TRANSITIONS,
    TERMINAL_DISPUTE_STATUSES,
    BanRequest,
    DisputeOutcome,
    DisputeReason,
    DisputeStatus,
    parse_reason,
)
from crew_kernel.domain.dtos import DisputeRecord
from crew_kernel.domain.effects import (
    Effect,
    LedgerChange,
    NotificationEffect,
    NotificationType,
)
from crew_kernel.domain.escrow import EscrowStatus
from crew_kernel.domain.lifecycle import RESUMABLE_SHIFT_STATES, ShiftState
from crew_kernel.domain.policy import SettlementPolicy
from crew_kernel.domain.trust import TrustEventType
from crew_kernel.domain.values import Actor, ActorRole
from crew_kernel.exceptions import (
    AppealWindowClosedError,
    DisputeAlreadyResolvedError,
    DuplicateOpenDisputeError,
    InvalidDisputeError,
    InvalidTransitionError,
    MissingResolutionTextError,
    UnauthorizedActorError,
)
from crew_kernel.logging_config import get_logger
from crew_kernel.models import DisputeModel, ProfileStatus, ShiftModel, WorkerProfileModel
from crew_kernel.services.base import BaseService
from crew_kernel.services.escrow_service import EscrowService
from crew_kernel.services.ledger_store import LedgerStore
from crew_kernel.services.trust_recorder import TrustRecorder

logger = get_logger("services.dispute_resolver")


class DisputeResolver(BaseService):
    """Opens, reviews and closes disputes."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: SettlementPolicy | None = None,
        store: LedgerStore | None = None,
        escrow: EscrowService | None = None,
        trust: TrustRecorder | None = None,
    ):
        super().__init__(session, clock, policy)
        self.store = store or LedgerStore(session, self.clock, self.policy)
        self.escrow = escrow or EscrowService(session, self.clock, self.policy, self.store)
        self.trust = trust or TrustRecorder(session, self.clock, self.policy)

    def open_dispute(
        self,
        actor: Actor,
        shift_id: UUID | None,
        against_user: UUID,
        reason: str | DisputeReason,
        description: str,
    ) -> LedgerChange[DisputeRecord]:
        """
        File a dispute.  With a shift in a resumable state, the shift moves
        to DISPUTED and remembers where to resume.

        Disputes on COMPLETED shifts are accepted inside the appeal window,
        and on CANCELLED shifts at any time; neither changes the shift.
        """
        command = "open_dispute"
        if actor.role not in (ActorRole.CLIENT, ActorRole.WORKER):
            raise UnauthorizedActorError(
                str(shift_id), "none", command, str(actor.user_id), actor.role.value
            )
        reason_enum = parse_reason(reason)
        text = (description or "").strip()
        if len(text) < self.policy.min_dispute_description_length:
            raise InvalidDisputeError(
                f"description must be at least "
                f"{self.policy.min_dispute_description_length} characters"
            )
        if against_user == actor.user_id:
            raise InvalidDisputeError("a user cannot open a dispute against themselves")

        shift = None
        if shift_id is not None:
            shift = self.store.shift(shift_id)
            participants = {shift.client_id} | {a.worker_id for a in shift.assignments}
            if actor.user_id not in participants:
                raise UnauthorizedActorError(
                    str(shift.id), shift.state, command, str(actor.user_id), actor.role.value
                )
            if against_user not in participants:
                raise InvalidDisputeError("against_user is not a participant of the shift")
            self._check_appeal_window(shift)

        existing = self.store.unresolved_dispute(shift_id, actor.user_id, against_user)
        if existing is not None:
            raise DuplicateOpenDisputeError(
                str(existing.id), str(shift_id), str(actor.user_id), str(against_user)
            )

        dispute = DisputeModel(
            shift_id=shift_id,
            created_by=actor.user_id,
            against_user=against_user,
            reason=reason_enum.value,
            description=text,
            status=DisputeStatus.OPEN.value,
            refund_applied=False,
            ban_applied=False,
            created_at=self.clock.now(),
        )
        self.session.add(dispute)
        if shift is not None:
            shift.open_disputes += 1
        self.store.flush(
            "Dispute",
            shift_id,
            on_conflict=lambda: DuplicateOpenDisputeError(
                None, str(shift_id), str(actor.user_id), str(against_user)
            ),
        )

        if shift is not None and shift.state_enum in RESUMABLE_SHIFT_STATES:
            shift.resume_state = shift.state
            self.store.transition_shift(
                shift, ShiftState.DISPUTED, actor, f"dispute {dispute.id} opened", command
            )
            self.store.flush("Shift", shift.id)

        logger.info(
            "dispute_opened",
            extra={
                "dispute_id": str(dispute.id),
                "shift_id": str(shift_id) if shift_id else None,
                "reason": reason_enum.value,
                "shift_state": shift.state if shift is not None else None,
            },
        )
        return LedgerChange(
            dispute.to_dto(),
            (
                NotificationEffect(
                    against_user,
                    NotificationType.DISPUTE_OPENED,
                    {
                        "dispute_id": str(dispute.id),
                        "shift_id": str(shift_id) if shift_id else None,
                        "reason": reason_enum.value,
                    },
                ),
            ),
        )

    def start_review(self, actor: Actor, dispute_id: UUID) -> LedgerChange[DisputeRecord]:
        """open -> in_review."""
        command = "start_dispute_review"
        dispute = self.store.dispute(dispute_id)
        self._require_admin(actor, dispute, command)
        status = dispute.status_enum
        if status in TERMINAL_DISPUTE_STATUSES:
            raise DisputeAlreadyResolvedError(str(dispute.id), status.value)
        if DisputeStatus.IN_REVIEW not in DISPUTE_TRANSITIONS[status]:
            raise InvalidTransitionError(
                str(dispute.id), status.value, command, "review already started"
            )

        dispute.status = DisputeStatus.IN_REVIEW.value
        self.store.flush("Dispute", dispute.id)

        logger.info("dispute_in_review", extra={"dispute_id": str(dispute.id)})
        return LedgerChange(
            dispute.to_dto(),
            (
                NotificationEffect(
                    dispute.created_by,
                    NotificationType.DISPUTE_IN_REVIEW,
                    {"dispute_id": str(dispute.id)},
                ),
            ),
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
    ) -> LedgerChange[DisputeRecord]:
        """
        Close a dispute, optionally refunding the shift's held escrow and
        banning the user the dispute was against.

        The refund is applied only when the shift's hold is ``held``;
        otherwise it is skipped, logged, and ``refund_applied`` stays False.
        """
        command = "resolve_dispute"
        dispute = self.store.dispute(dispute_id)
        self._require_admin(actor, dispute, command)
        status = dispute.status_enum
        if status in TERMINAL_DISPUTE_STATUSES:
            raise DisputeAlreadyResolvedError(str(dispute.id), status.value)
        outcome = DisputeOutcome(outcome)
        text = (resolution_text or "").strip()
        if not text:
            raise MissingResolutionTextError(str(dispute.id))
        if len(text) > self.policy.max_resolution_length:
            raise InvalidDisputeError(
                f"resolution exceeds {self.policy.max_resolution_length} characters"
            )

        # Reads first: nothing below may autoflush a half-applied resolution
        now = self.clock.now()
        shift = self.store.shift(dispute.shift_id) if dispute.shift_id else None
        hold = self.store.hold_for_shift(shift.id) if shift is not None else None
        refundable = hold if hold is not None and hold.status == EscrowStatus.HELD.value else None
        profile = self.store.worker_profile(dispute.against_user) if ban is not None else None
        if apply_refund and refundable is None:
            logger.warning(
                "refund_skipped",
                extra={
                    "dispute_id": str(dispute.id),
                    "hold_status": hold.status if hold is not None else None,
                },
            )

        dispute.status = outcome.status.value
        dispute.resolution = text
        dispute.admin_notes = admin_notes
        dispute.resolved_by = actor.user_id
        dispute.resolved_at = now
        dispute.refund_applied = bool(apply_refund and refundable is not None)
        dispute.ban_applied = ban is not None
        unfreeze = False
        if shift is not None:
            shift.open_disputes -= 1
            unfreeze = shift.state_enum is ShiftState.DISPUTED and shift.open_disputes == 0

        effects: list[Effect] = []
        if dispute.refund_applied:
            effects.append(self.escrow.refund(refundable))
            effects.append(
                NotificationEffect(
                    shift.client_id,
                    NotificationType.PAYMENT_REFUNDED,
                    {
                        "shift_id": str(shift.id),
                        "total": str(self.escrow.as_amount(refundable.total)),
                    },
                )
            )
        if ban is not None:
            effects.append(self._apply_ban(dispute, profile, ban))
        if outcome is DisputeOutcome.RESOLVE and shift is not None:
            self._record_dispute_lost(dispute, shift)
        if unfreeze:
            self._unfreeze_shift(shift, outcome, actor, command)
        self.store.flush("Dispute", dispute.id)

        logger.info(
            "dispute_resolved",
            extra={
                "dispute_id": str(dispute.id),
                "outcome": outcome.value,
                "refund_applied": dispute.refund_applied,
                "ban_applied": dispute.ban_applied,
                "shift_state": shift.state if shift is not None else None,
            },
        )
        effects.extend(
            NotificationEffect(
                user_id,
                NotificationType.DISPUTE_CLOSED,
                {"dispute_id": str(dispute.id), "outcome": outcome.value},
            )
            for user_id in (dispute.created_by, dispute.against_user)
        )
        return LedgerChange(dispute.to_dto(), tuple(effects))

    # -- internals -----------------------------------------------------------

    def _apply_ban(
        self,
        dispute: DisputeModel,
        profile: WorkerProfileModel | None,
        ban: BanRequest,
    ) -> NotificationEffect:
        now = self.clock.now()
        if profile is None:
            profile = WorkerProfileModel(user_id=dispute.against_user)
            self.session.add(profile)
        profile.status = ProfileStatus.BANNED.value
        profile.ban_until = ban.ban_until(now)
        profile.ban_reason = ban.reason or dispute.resolution
        profile.banned_at = now
        profile.updated_at = now

        logger.warning(
            "user_banned",
            extra={
                "user_id": str(dispute.against_user),
                "dispute_id": str(dispute.id),
                "ban_until": profile.ban_until,
            },
        )
        return NotificationEffect(
            dispute.against_user,
            NotificationType.ACCOUNT_BANNED,
            {
                "ban_until": profile.ban_until.isoformat() if profile.ban_until else None,
                "reason": profile.ban_reason,
            },
        )

    def _record_dispute_lost(self, dispute: DisputeModel, shift: ShiftModel) -> None:
        event_type = (
            TrustEventType.DISPUTE_LOST_CLIENT
            if dispute.against_user == shift.client_id
            else TrustEventType.DISPUTE_LOST_WORKER
        )
        self.trust.record(
            dispute.against_user,
            event_type,
            shift_id=shift.id,
            dispute_id=dispute.id,
            description=dispute.reason,
        )

    def _unfreeze_shift(
        self,
        shift: ShiftModel,
        outcome: DisputeOutcome,
        actor: Actor,
        command: str,
    ) -> None:
        closed_as = (
            ShiftState.RESOLVED if outcome is DisputeOutcome.RESOLVE else ShiftState.REJECTED
        )
        resume = shift.resume_state_enum
        self.store.transition_shift(shift, closed_as, actor, f"dispute {closed_as.value}", command)
        self.store.transition_shift(shift, resume, actor, "resumed after dispute", command)
        shift.resume_state = None

    def _check_appeal_window(self, shift: ShiftModel) -> None:
        if shift.state_enum is not ShiftState.COMPLETED or shift.completed_at is None:
            return
        closes_at = shift.completed_at + self.policy.appeal_window
        if self.clock.now() > closes_at:
            raise AppealWindowClosedError(
                str(shift.id), shift.completed_at.isoformat(), closes_at.isoformat()
            )

    def _require_admin(self, actor: Actor, dispute: DisputeModel, command: str) -> None:
        if actor.role is not ActorRole.ADMIN:
            raise UnauthorizedActorError(
                str(dispute.id), dispute.status, command, str(actor.user_id), actor.role.value
            )
