"""
Disputes: freezing and resuming shifts, refunds, bans and the appeal window.
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from crew_kernel.domain.dispute import BanRequest, DisputeReason, DisputeStatus
from crew_kernel.domain.escrow import EscrowStatus
from crew_kernel.domain.lifecycle import ShiftState
from crew_kernel.domain.values import Actor
from crew_kernel.exceptions import (
    AppealWindowClosedError,
    DisputeAlreadyResolvedError,
    DisputeNotFoundError,
    DuplicateOpenDisputeError,
    InvalidDisputeError,
    InvalidDisputeReasonError,
    InvalidTransitionError,
    MissingResolutionTextError,
    UnauthorizedActorError,
)

DESCRIPTION = "Worker did not arrive and did not answer calls."


def _shift(read, shift_id):
    return read(lambda shifts, ratings, disputes: shifts.get_shift(shift_id))


def _hold(read, shift_id):
    return read(lambda shifts, ratings, disputes: shifts.get_hold(shift_id))


class TestOpenDispute:

    def test_freezes_shift_and_remembers_state(self, orchestrator, flow, read, notifications):
        crew = flow.staffed(workers=1)
        worker = crew.workers[0]

        dispute = orchestrator.open_dispute(
            crew.client, crew.shift_id, worker.user_id, "no_show", DESCRIPTION
        ).value

        assert dispute.status is DisputeStatus.OPEN
        assert dispute.reason is DisputeReason.NO_SHOW
        shift = _shift(read, crew.shift_id)
        assert shift.state is ShiftState.DISPUTED
        assert shift.resume_state is ShiftState.ASSIGNED
        assert "dispute_opened" in notifications.types_for(worker.user_id)

    def test_frozen_shift_rejects_lifecycle_commands(self, orchestrator, flow):
        crew = flow.staffed(workers=1)
        worker = crew.workers[0]
        orchestrator.open_dispute(crew.client, crew.shift_id, worker.user_id, "late", DESCRIPTION)

        with pytest.raises(InvalidTransitionError):
            orchestrator.check_in(worker, crew.assignment_of(worker), flow.evidence(crew.start))

    def test_dispute_without_shift(self, orchestrator, read):
        client, worker = Actor.client(uuid4()), Actor.worker(uuid4())
        dispute = orchestrator.open_dispute(
            worker, None, client.user_id, "payment", "Invoice from last month never paid."
        ).value

        assert dispute.shift_id is None
        unresolved = read(lambda shifts, ratings, disputes: disputes.list_unresolved())
        assert [d.id for d in unresolved] == [dispute.id]

    def test_same_parties_cannot_open_twice(self, orchestrator, flow):
        crew = flow.staffed(workers=1)
        worker = crew.workers[0]
        first = orchestrator.open_dispute(
            crew.client, crew.shift_id, worker.user_id, "late", DESCRIPTION
        ).value

        with pytest.raises(DuplicateOpenDisputeError) as exc_info:
            orchestrator.open_dispute(crew.client, crew.shift_id, worker.user_id, "other", DESCRIPTION)
        assert exc_info.value.existing_dispute_id == str(first.id)

    def test_other_party_may_open_counter_dispute(self, orchestrator, flow, read):
        crew = flow.staffed(workers=1)
        worker = crew.workers[0]
        orchestrator.open_dispute(crew.client, crew.shift_id, worker.user_id, "late", DESCRIPTION)
        orchestrator.open_dispute(
            worker, crew.shift_id, crew.client.user_id, "other", "Site address in the posting was wrong."
        )

        unresolved = read(
            lambda shifts, ratings, disputes: disputes.list_unresolved(crew.shift_id)
        )
        assert len(unresolved) == 2
        assert _shift(read, crew.shift_id).state is ShiftState.DISPUTED

    def test_unknown_reason_rejected(self, orchestrator, flow):
        crew = flow.staffed(workers=1)
        with pytest.raises(InvalidDisputeReasonError) as exc_info:
            orchestrator.open_dispute(
                crew.client, crew.shift_id, crew.workers[0].user_id, "rude", DESCRIPTION
            )
        assert "no_show" in exc_info.value.allowed

    def test_short_description_rejected(self, orchestrator, flow):
        crew = flow.staffed(workers=1)
        with pytest.raises(InvalidDisputeError):
            orchestrator.open_dispute(
                crew.client, crew.shift_id, crew.workers[0].user_id, "late", "was late"
            )

    def test_cannot_dispute_yourself(self, orchestrator, flow):
        crew = flow.staffed(workers=1)
        with pytest.raises(InvalidDisputeError):
            orchestrator.open_dispute(
                crew.client, crew.shift_id, crew.client.user_id, "other", DESCRIPTION
            )

    def test_outsider_cannot_open(self, orchestrator, flow):
        crew = flow.staffed(workers=1)
        with pytest.raises(UnauthorizedActorError):
            orchestrator.open_dispute(
                Actor.worker(uuid4()), crew.shift_id, crew.client.user_id, "other", DESCRIPTION
            )

    def test_against_user_must_be_participant(self, orchestrator, flow):
        crew = flow.staffed(workers=1)
        with pytest.raises(InvalidDisputeError):
            orchestrator.open_dispute(crew.client, crew.shift_id, uuid4(), "other", DESCRIPTION)

    def test_admin_does_not_open_disputes(self, orchestrator, flow, admin):
        crew = flow.staffed(workers=1)
        with pytest.raises(UnauthorizedActorError):
            orchestrator.open_dispute(
                admin, crew.shift_id, crew.workers[0].user_id, "other", DESCRIPTION
            )


class TestAppealWindow:

    def _completed(self, flow, orchestrator, clock):
        crew = flow.awaiting_rating(workers=1)
        clock.advance(hours=72)
        orchestrator.finalize_shift(crew.shift_id)
        return crew

    def test_completed_shift_dispute_keeps_state(self, orchestrator, flow, clock, read):
        crew = self._completed(flow, orchestrator, clock)
        clock.advance(days=13)

        orchestrator.open_dispute(
            crew.client, crew.shift_id, crew.workers[0].user_id, "damage", DESCRIPTION
        )
        shift = _shift(read, crew.shift_id)
        assert shift.state is ShiftState.COMPLETED
        assert shift.open_disputes == 1

    def test_after_window_rejected(self, orchestrator, flow, clock):
        crew = self._completed(flow, orchestrator, clock)
        clock.advance(days=14, seconds=1)

        with pytest.raises(AppealWindowClosedError):
            orchestrator.open_dispute(
                crew.client, crew.shift_id, crew.workers[0].user_id, "damage", DESCRIPTION
            )

    def test_refund_on_released_hold_is_skipped(
        self, orchestrator, flow, clock, read, admin, payments, captured_logs
    ):
        crew = self._completed(flow, orchestrator, clock)
        dispute = orchestrator.open_dispute(
            crew.client, crew.shift_id, crew.workers[0].user_id, "damage", DESCRIPTION
        ).value

        closed = orchestrator.resolve_dispute(
            admin, dispute.id, "resolve", "Damage confirmed; settle off-platform.",
            apply_refund=True,
        ).value

        assert closed.refund_applied is False
        assert _hold(read, crew.shift_id).status is EscrowStatus.RELEASED
        assert "refund" not in payments.actions()
        skipped = [r for r in captured_logs() if r["message"] == "refund_skipped"]
        assert skipped and skipped[0]["hold_status"] == "released"


class TestResolveDispute:

    def test_refund_held_escrow_then_cancel(
        self, orchestrator, flow, read, admin, payments, notifications
    ):
        crew = flow.staffed(workers=1)
        worker = crew.workers[0]
        dispute = orchestrator.open_dispute(
            crew.client, crew.shift_id, worker.user_id, "no_show", DESCRIPTION
        ).value

        closed = orchestrator.resolve_dispute(
            admin, dispute.id, "resolve", "Worker no-show confirmed by site manager.",
            admin_notes="called site 10:40", apply_refund=True,
        ).value

        assert closed.status is DisputeStatus.RESOLVED
        assert closed.refund_applied is True
        assert closed.resolved_by == admin.user_id
        assert closed.resolved_at is not None
        assert closed.admin_notes == "called site 10:40"
        assert _hold(read, crew.shift_id).status is EscrowStatus.REFUNDED
        assert payments.actions() == ["hold", "refund"]
        assert "payment_refunded" in notifications.types_for(crew.client.user_id)
        assert _shift(read, crew.shift_id).state is ShiftState.ASSIGNED

        with pytest.raises(DisputeAlreadyResolvedError) as exc_info:
            orchestrator.resolve_dispute(admin, dispute.id, "reject", "Second look.")
        assert exc_info.value.status == "resolved"

        cancelled = orchestrator.cancel_shift(crew.client, crew.shift_id, "refunded").value
        assert cancelled.state is ShiftState.CANCELLED

    def test_resume_passes_through_outcome_state(self, orchestrator, flow, read, admin):
        crew = flow.staffed(workers=1)
        dispute = orchestrator.open_dispute(
            crew.client, crew.shift_id, crew.workers[0].user_id, "late", DESCRIPTION
        ).value

        orchestrator.resolve_dispute(admin, dispute.id, "reject", "Arrival was within grace.")

        history = read(lambda shifts, ratings, disputes: shifts.status_history(crew.shift_id))
        assert [h.to_state for h in history[-3:]] == [
            ShiftState.DISPUTED,
            ShiftState.REJECTED,
            ShiftState.ASSIGNED,
        ]
        assert _shift(read, crew.shift_id).resume_state is None

    def test_shift_stays_frozen_until_last_dispute_closes(self, orchestrator, flow, read, admin):
        crew = flow.staffed(workers=1)
        worker = crew.workers[0]
        first = orchestrator.open_dispute(
            crew.client, crew.shift_id, worker.user_id, "late", DESCRIPTION
        ).value
        second = orchestrator.open_dispute(
            worker, crew.shift_id, crew.client.user_id, "other", "Site address in the posting was wrong."
        ).value

        assert _shift(read, crew.shift_id).open_disputes == 2

        orchestrator.resolve_dispute(admin, first.id, "reject", "Not late.")
        shift = _shift(read, crew.shift_id)
        assert (shift.state, shift.open_disputes) == (ShiftState.DISPUTED, 1)

        orchestrator.resolve_dispute(admin, second.id, "resolve", "Posting corrected.")
        shift = _shift(read, crew.shift_id)
        assert (shift.state, shift.open_disputes) == (ShiftState.ASSIGNED, 0)

    def test_refund_during_rating_skips_release(self, orchestrator, flow, clock, read, admin, payments):
        crew = flow.awaiting_rating(workers=1)
        dispute = orchestrator.open_dispute(
            crew.client, crew.shift_id, crew.workers[0].user_id, "quality", DESCRIPTION
        ).value
        orchestrator.resolve_dispute(
            admin, dispute.id, "resolve", "Work redone by another crew.", apply_refund=True
        )
        assert _shift(read, crew.shift_id).state is ShiftState.AWAITING_RATING

        clock.advance(hours=72)
        orchestrator.finalize_shift(crew.shift_id)

        assert _shift(read, crew.shift_id).state is ShiftState.COMPLETED
        assert _hold(read, crew.shift_id).status is EscrowStatus.REFUNDED
        assert payments.actions() == ["hold", "refund"]

    @pytest.mark.parametrize("text", ["", "   ", None])
    def test_resolution_text_required(self, orchestrator, flow, admin, text):
        crew = flow.staffed(workers=1)
        dispute = orchestrator.open_dispute(
            crew.client, crew.shift_id, crew.workers[0].user_id, "late", DESCRIPTION
        ).value

        with pytest.raises(MissingResolutionTextError):
            orchestrator.resolve_dispute(admin, dispute.id, "resolve", text)

    def test_resolution_text_length_capped(self, orchestrator, flow, admin):
        crew = flow.staffed(workers=1)
        dispute = orchestrator.open_dispute(
            crew.client, crew.shift_id, crew.workers[0].user_id, "late", DESCRIPTION
        ).value

        with pytest.raises(InvalidDisputeError):
            orchestrator.resolve_dispute(admin, dispute.id, "resolve", "x" * 1001)

    def test_only_admin_resolves(self, orchestrator, flow):
        crew = flow.staffed(workers=1)
        dispute = orchestrator.open_dispute(
            crew.client, crew.shift_id, crew.workers[0].user_id, "late", DESCRIPTION
        ).value

        with pytest.raises(UnauthorizedActorError):
            orchestrator.resolve_dispute(crew.client, dispute.id, "resolve", "I win.")

    def test_unknown_dispute(self, orchestrator, admin):
        with pytest.raises(DisputeNotFoundError):
            orchestrator.resolve_dispute(admin, uuid4(), "resolve", "Nothing to see.")

    def test_ban_applied_with_resolution(self, orchestrator, flow, read, admin, notifications, clock):
        crew = flow.staffed(workers=1)
        worker = crew.workers[0]
        dispute = orchestrator.open_dispute(
            crew.client, crew.shift_id, worker.user_id, "no_show", DESCRIPTION
        ).value

        closed = orchestrator.resolve_dispute(
            admin, dispute.id, "resolve", "Third no-show this month.",
            ban=BanRequest(timedelta(days=30), "repeated no-shows"),
        ).value

        assert closed.ban_applied is True
        profile = read(lambda shifts, ratings, disputes: disputes.get_worker_profile(worker.user_id))
        assert profile.status == "banned"
        assert profile.ban_until == clock.now() + timedelta(days=30)
        assert profile.ban_reason == "repeated no-shows"
        assert "account_banned" in notifications.types_for(worker.user_id)


class TestReview:

    def test_start_review(self, orchestrator, flow, admin, notifications):
        crew = flow.staffed(workers=1)
        dispute = orchestrator.open_dispute(
            crew.client, crew.shift_id, crew.workers[0].user_id, "late", DESCRIPTION
        ).value

        reviewed = orchestrator.start_dispute_review(admin, dispute.id).value

        assert reviewed.status is DisputeStatus.IN_REVIEW
        assert "dispute_in_review" in notifications.types_for(crew.client.user_id)

        with pytest.raises(InvalidTransitionError):
            orchestrator.start_dispute_review(admin, dispute.id)

    def test_in_review_dispute_can_be_resolved(self, orchestrator, flow, admin):
        crew = flow.staffed(workers=1)
        dispute = orchestrator.open_dispute(
            crew.client, crew.shift_id, crew.workers[0].user_id, "late", DESCRIPTION
        ).value
        orchestrator.start_dispute_review(admin, dispute.id)

        closed = orchestrator.resolve_dispute(admin, dispute.id, "reject", "No evidence.").value
        assert closed.status is DisputeStatus.REJECTED

    def test_closed_dispute_cannot_enter_review(self, orchestrator, flow, admin):
        crew = flow.staffed(workers=1)
        dispute = orchestrator.open_dispute(
            crew.client, crew.shift_id, crew.workers[0].user_id, "late", DESCRIPTION
        ).value
        orchestrator.resolve_dispute(admin, dispute.id, "reject", "No evidence.")

        with pytest.raises(DisputeAlreadyResolvedError):
            orchestrator.start_dispute_review(admin, dispute.id)
