"""
Shift lifecycle through the orchestrator: posting, staffing, on-site,
completion, confirmation, finalization and cancellation.
"""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from crew_kernel.domain.dispute import BanRequest
from crew_kernel.domain.escrow import EscrowStatus
from crew_kernel.domain.lifecycle import AssignmentState, ShiftState
from crew_kernel.domain.values import Actor, CheckInEvidence
from crew_kernel.exceptions import (
    AssignmentNotFoundError,
    CancellationRequiresDisputeError,
    CheckInWindowError,
    DuplicateAssignmentError,
    InvalidEvidenceError,
    InvalidShiftTermsError,
    InvalidTransitionError,
    ShiftFullError,
    ShiftNotFoundError,
    UnauthorizedActorError,
    WorkerBannedError,
)


def _shift(read, shift_id):
    return read(lambda shifts, ratings, disputes: shifts.get_shift(shift_id))


def _hold(read, shift_id):
    return read(lambda shifts, ratings, disputes: shifts.get_hold(shift_id))


def _assignments(read, shift_id):
    return {
        a.worker_id: a
        for a in read(lambda shifts, ratings, disputes: shifts.list_assignments(shift_id))
    }


class TestCreateShift:

    def test_new_shift_is_open_with_status_log(self, orchestrator, flow, read):
        client = Actor.client(uuid4())
        shift = orchestrator.create_shift(client, flow.terms()).value

        assert shift.state is ShiftState.OPEN
        assert shift.client_id == client.user_id
        assert shift.pay_rate == Decimal("2500")
        history = read(lambda shifts, ratings, disputes: shifts.status_history(shift.id))
        assert [(h.from_state, h.to_state) for h in history] == [(None, ShiftState.OPEN)]
        assert history[0].actor_id == client.user_id

    def test_default_commission_comes_from_policy(self, orchestrator, flow):
        shift = orchestrator.create_shift(
            Actor.client(uuid4()), flow.terms(commission_percent=None)
        ).value
        assert shift.commission_percent == Decimal("12")

    @pytest.mark.parametrize(
        "overrides, field",
        [
            ({"required_workers": 0}, "required_workers"),
            ({"pay_rate": Decimal("999")}, "pay_rate"),
            ({"pay_rate": Decimal("2500.5")}, "pay_rate"),
            ({"commission_percent": Decimal("100.01")}, "commission_percent"),
            ({"title": "   "}, "title"),
        ],
    )
    def test_invalid_terms_rejected(self, orchestrator, flow, overrides, field):
        with pytest.raises(InvalidShiftTermsError) as exc_info:
            orchestrator.create_shift(Actor.client(uuid4()), flow.terms(**overrides))
        assert exc_info.value.field == field

    def test_end_must_follow_start(self, orchestrator, flow):
        terms = flow.terms()
        with pytest.raises(InvalidShiftTermsError) as exc_info:
            orchestrator.create_shift(
                Actor.client(uuid4()),
                flow.terms(scheduled_end=terms.scheduled_start),
            )
        assert exc_info.value.field == "scheduled_end"

    def test_workers_cannot_post_shifts(self, orchestrator, flow):
        with pytest.raises(UnauthorizedActorError):
            orchestrator.create_shift(Actor.worker(uuid4()), flow.terms())


class TestApproveApplication:

    def test_partial_staffing_keeps_shift_open_without_hold(self, orchestrator, flow, read):
        crew = flow.posted(workers=2)
        orchestrator.approve_application(crew.client, crew.shift_id, crew.workers[0].user_id)

        shift = _shift(read, crew.shift_id)
        assert shift.state is ShiftState.OPEN
        assert shift.assigned_workers == 1
        assert _hold(read, crew.shift_id) is None

    def test_last_slot_assigns_shift_and_holds_escrow(self, flow, read, payments, notifications):
        crew = flow.staffed(workers=2)

        shift = _shift(read, crew.shift_id)
        hold = _hold(read, crew.shift_id)
        assert shift.state is ShiftState.ASSIGNED
        assert hold.status is EscrowStatus.HELD
        assert hold.total == Decimal("5600")
        assert hold.commission == Decimal("600")
        assert payments.actions() == ["hold"]
        assert payments.calls[0].amount == Decimal("5600")
        assert "escrow_held" in notifications.types_for(crew.client.user_id)
        for worker in crew.workers:
            assert "application_approved" in notifications.types_for(worker.user_id)

    def test_full_shift_rejects_more_workers(self, orchestrator, flow):
        crew = flow.staffed(workers=1)
        with pytest.raises(ShiftFullError) as exc_info:
            orchestrator.approve_application(crew.client, crew.shift_id, uuid4())
        assert exc_info.value.required_workers == 1

    def test_same_worker_twice_rejected(self, orchestrator, flow):
        crew = flow.posted(workers=2)
        worker_id = crew.workers[0].user_id
        orchestrator.approve_application(crew.client, crew.shift_id, worker_id)

        with pytest.raises(DuplicateAssignmentError):
            orchestrator.approve_application(crew.client, crew.shift_id, worker_id)

    def test_only_owning_client_approves(self, orchestrator, flow):
        crew = flow.posted(workers=1)
        with pytest.raises(UnauthorizedActorError):
            orchestrator.approve_application(
                Actor.client(uuid4()), crew.shift_id, crew.workers[0].user_id
            )

    def test_client_cannot_work_own_shift(self, orchestrator, flow):
        crew = flow.posted(workers=1)
        with pytest.raises(InvalidTransitionError):
            orchestrator.approve_application(crew.client, crew.shift_id, crew.client.user_id)

    def test_unknown_shift(self, orchestrator):
        with pytest.raises(ShiftNotFoundError):
            orchestrator.approve_application(Actor.client(uuid4()), uuid4(), uuid4())


class TestBannedWorkers:

    def _ban(self, orchestrator, flow, admin, duration):
        crew = flow.staffed(workers=1)
        worker = crew.workers[0]
        dispute = orchestrator.open_dispute(
            crew.client, crew.shift_id, worker.user_id, "quality",
            "Left the site twice without telling anyone.",
        ).value
        orchestrator.resolve_dispute(
            admin, dispute.id, "resolve", "Worker banned for walking off.",
            ban=BanRequest(duration),
        )
        return worker

    def test_banned_worker_cannot_be_approved(self, orchestrator, flow, admin):
        worker = self._ban(orchestrator, flow, admin, None)
        other = flow.posted(workers=1)

        with pytest.raises(WorkerBannedError) as exc_info:
            orchestrator.approve_application(other.client, other.shift_id, worker.user_id)
        assert exc_info.value.ban_until is None

    def test_expired_ban_no_longer_blocks(self, orchestrator, flow, admin, clock):
        worker = self._ban(orchestrator, flow, admin, timedelta(days=7))
        clock.advance(days=8)
        other = flow.posted(workers=1)

        record = orchestrator.approve_application(other.client, other.shift_id, worker.user_id)
        assert record.value.state is AssignmentState.ASSIGNED


class TestOnSite:

    def test_mark_on_way_then_check_in(self, orchestrator, flow, read):
        crew = flow.staffed(workers=1)
        worker = crew.workers[0]

        on_way = orchestrator.mark_on_way(worker, crew.assignment_of(worker)).value
        assert on_way.state is AssignmentState.ON_WAY

        flow.check_in(crew)
        assignment = _assignments(read, crew.shift_id)[worker.user_id]
        assert assignment.state is AssignmentState.CHECKED_IN
        assert assignment.check_in_photo_ref == "checkin/selfie.jpg"
        assert assignment.check_in_latitude == pytest.approx(37.4563)

    def test_first_check_in_moves_shift_and_later_ones_keep_it(self, flow, read):
        crew = flow.staffed(workers=2)

        flow.check_in(crew, [crew.workers[0]])
        assert _shift(read, crew.shift_id).state is ShiftState.CHECKED_IN

        flow.check_in(crew, [crew.workers[1]])
        shift = _shift(read, crew.shift_id)
        assert shift.state is ShiftState.CHECKED_IN
        assert shift.checked_in_workers == 2
        history = read(lambda shifts, ratings, disputes: shifts.status_history(crew.shift_id))
        assert [h.to_state for h in history].count(ShiftState.CHECKED_IN) == 1

    def test_second_check_in_for_same_assignment_rejected(self, orchestrator, flow):
        crew = flow.staffed(workers=1)
        flow.check_in(crew)
        worker = crew.workers[0]

        with pytest.raises(InvalidTransitionError):
            orchestrator.check_in(worker, crew.assignment_of(worker), flow.evidence())

    def test_check_in_outside_window_rejected(self, orchestrator, flow, clock):
        crew = flow.staffed(workers=1)
        worker = crew.workers[0]
        too_early = crew.start - timedelta(minutes=31)

        with pytest.raises(CheckInWindowError) as exc_info:
            orchestrator.check_in(worker, crew.assignment_of(worker), flow.evidence(too_early))
        assert exc_info.value.opens_at == (crew.start - timedelta(minutes=30)).isoformat()

    @pytest.mark.parametrize(
        "latitude, longitude, photo_ref",
        [(91.0, 0.0, "p.jpg"), (0.0, -180.5, "p.jpg"), (0.0, 0.0, "  ")],
    )
    def test_bad_evidence_rejected(self, orchestrator, flow, clock, latitude, longitude, photo_ref):
        crew = flow.staffed(workers=1)
        worker = crew.workers[0]
        clock.set_time(crew.start)
        evidence = CheckInEvidence(clock.now(), latitude, longitude, photo_ref)

        with pytest.raises(InvalidEvidenceError):
            orchestrator.check_in(worker, crew.assignment_of(worker), evidence)

    def test_worker_cannot_check_in_someone_else(self, orchestrator, flow):
        crew = flow.staffed(workers=2)
        first, second = crew.workers
        with pytest.raises(UnauthorizedActorError):
            orchestrator.check_in(second, crew.assignment_of(first), flow.evidence())

    def test_unknown_assignment(self, orchestrator, flow):
        with pytest.raises(AssignmentNotFoundError):
            orchestrator.check_in(Actor.worker(uuid4()), uuid4(), flow.evidence())

    def test_checking_out_everyone_awaits_client(self, flow, read):
        crew = flow.staffed(workers=2)
        flow.check_in(crew)

        flow.check_out(crew, [crew.workers[0]])
        assert _shift(read, crew.shift_id).state is ShiftState.CHECKED_IN

        flow.check_out(crew, [crew.workers[1]])
        assert _shift(read, crew.shift_id).state is ShiftState.AWAITING_CLIENT_COMPLETE

    def test_check_out_without_check_in_rejected(self, orchestrator, flow):
        crew = flow.staffed(workers=2)
        flow.check_in(crew, [crew.workers[0]])
        absent = crew.workers[1]

        with pytest.raises(InvalidTransitionError):
            orchestrator.check_out(absent, crew.assignment_of(absent))


class TestCompletion:

    def test_complete_requires_a_checked_in_worker(self, orchestrator, flow):
        crew = flow.staffed(workers=1)
        with pytest.raises(InvalidTransitionError) as exc_info:
            orchestrator.complete_shift(crew.client, crew.shift_id)
        assert exc_info.value.current_state == "assigned"

    def test_complete_straight_from_checked_in(self, orchestrator, flow, read):
        crew = flow.staffed(workers=1)
        flow.check_in(crew)

        shift = orchestrator.complete_shift(crew.client, crew.shift_id).value
        assert shift.state is ShiftState.AWAITING_WORKER_CONFIRM
        assert shift.client_completed_at is not None

    def test_absent_workers_become_no_show(self, orchestrator, flow, read):
        crew = flow.staffed(workers=2)
        present, absent = crew.workers
        flow.check_in(crew, [present])
        orchestrator.complete_shift(crew.client, crew.shift_id)

        assignments = _assignments(read, crew.shift_id)
        assert assignments[absent.user_id].state is AssignmentState.NO_SHOW
        assert assignments[present.user_id].state is AssignmentState.CHECKED_IN

        # the present worker alone completes the quorum
        flow.confirm(crew, [present])
        assert _shift(read, crew.shift_id).state is ShiftState.AWAITING_RATING

    def test_only_client_completes(self, orchestrator, flow):
        crew = flow.staffed(workers=1)
        flow.check_in(crew)
        with pytest.raises(UnauthorizedActorError):
            orchestrator.complete_shift(crew.workers[0], crew.shift_id)

    def test_confirmations_are_per_assignment(self, flow, read, notifications):
        crew = flow.completed_by_client(workers=2)
        first, second = crew.workers

        flow.confirm(crew, [first])
        shift = _shift(read, crew.shift_id)
        assert shift.state is ShiftState.AWAITING_WORKER_CONFIRM
        assert shift.confirmed_workers == 1

        flow.confirm(crew, [second])
        shift = _shift(read, crew.shift_id)
        assert shift.state is ShiftState.AWAITING_RATING
        assert shift.awaiting_rating_since is not None
        assert "rating_requested" in notifications.types_for(crew.client.user_id)

    def test_confirm_twice_rejected(self, orchestrator, flow):
        crew = flow.completed_by_client(workers=2)
        worker = crew.workers[0]
        orchestrator.confirm_completion(worker, crew.assignment_of(worker))

        with pytest.raises(InvalidTransitionError):
            orchestrator.confirm_completion(worker, crew.assignment_of(worker))

    def test_confirm_before_client_completes_rejected(self, orchestrator, flow):
        crew = flow.staffed(workers=1)
        flow.check_in(crew)
        worker = crew.workers[0]

        with pytest.raises(InvalidTransitionError):
            orchestrator.confirm_completion(worker, crew.assignment_of(worker))


class TestAutoConfirm:

    def test_auto_confirm_waits_for_grace(self, orchestrator, flow, clock):
        crew = flow.completed_by_client(workers=2)
        clock.advance(hours=23)

        with pytest.raises(InvalidTransitionError):
            orchestrator.auto_confirm_completion(crew.shift_id)

    def test_auto_confirm_after_grace_confirms_silent_workers(self, orchestrator, flow, clock, read):
        crew = flow.completed_by_client(workers=2)
        flow.confirm(crew, [crew.workers[0]])
        clock.advance(hours=24)

        shift = orchestrator.auto_confirm_completion(crew.shift_id).value

        assert shift.state is ShiftState.AWAITING_RATING
        assert shift.confirmed_workers == 2
        history = read(lambda shifts, ratings, disputes: shifts.status_history(crew.shift_id))
        assert history[-1].actor_role == "system"

    def test_participants_cannot_auto_confirm(self, orchestrator, flow, clock):
        crew = flow.completed_by_client(workers=1)
        clock.advance(hours=25)
        with pytest.raises(UnauthorizedActorError):
            orchestrator.auto_confirm_completion(crew.shift_id, actor=crew.client)


class TestFinalize:

    def test_finalize_waits_for_ratings_or_grace(self, orchestrator, flow, clock):
        crew = flow.awaiting_rating(workers=1)
        with pytest.raises(InvalidTransitionError):
            orchestrator.finalize_shift(crew.shift_id)

        clock.advance(hours=72)
        shift = orchestrator.finalize_shift(crew.shift_id).value
        assert shift.state is ShiftState.COMPLETED

    def test_finalize_releases_hold(self, orchestrator, flow, clock, read, payments, notifications):
        crew = flow.awaiting_rating(workers=2)
        clock.advance(hours=72)

        result = orchestrator.finalize_shift(crew.shift_id)

        assert result.value.completed_at == clock.now()
        assert _hold(read, crew.shift_id).status is EscrowStatus.RELEASED
        assert payments.actions() == ["hold", "release"]
        for worker in crew.workers:
            assert "payment_released" in notifications.types_for(worker.user_id)

    def test_full_lifecycle_status_log(self, flow, read):
        crew = flow.awaiting_rating(workers=1)
        flow.rate_all(crew)

        history = read(lambda shifts, ratings, disputes: shifts.status_history(crew.shift_id))
        assert [h.to_state for h in history] == [
            ShiftState.OPEN,
            ShiftState.ASSIGNED,
            ShiftState.CHECKED_IN,
            ShiftState.AWAITING_CLIENT_COMPLETE,
            ShiftState.AWAITING_WORKER_CONFIRM,
            ShiftState.AWAITING_RATING,
            ShiftState.COMPLETED,
        ]
        for previous, entry in zip(history, history[1:]):
            assert entry.from_state == previous.to_state


class TestCancellation:

    def test_cancel_open_shift(self, orchestrator, flow, read, notifications):
        crew = flow.posted(workers=2)
        orchestrator.approve_application(crew.client, crew.shift_id, crew.workers[0].user_id)

        shift = orchestrator.cancel_shift(crew.client, crew.shift_id, "event called off").value

        assert shift.state is ShiftState.CANCELLED
        assignments = _assignments(read, crew.shift_id)
        assert assignments[crew.workers[0].user_id].state is AssignmentState.CANCELLED
        assert "shift_cancelled" in notifications.types_for(crew.workers[0].user_id)
        history = read(lambda shifts, ratings, disputes: shifts.status_history(crew.shift_id))
        assert history[-1].reason == "event called off"

    def test_admin_may_cancel(self, orchestrator, flow, admin):
        crew = flow.posted(workers=1)
        assert orchestrator.cancel_shift(admin, crew.shift_id).value.state is ShiftState.CANCELLED

    def test_held_escrow_requires_dispute(self, orchestrator, flow, read):
        crew = flow.staffed(workers=1)

        with pytest.raises(CancellationRequiresDisputeError) as exc_info:
            orchestrator.cancel_shift(crew.client, crew.shift_id)
        assert exc_info.value.hold_status == "held"
        assert _shift(read, crew.shift_id).state is ShiftState.ASSIGNED

    def test_cannot_cancel_after_check_in(self, orchestrator, flow, admin):
        crew = flow.staffed(workers=1)
        flow.check_in(crew)
        with pytest.raises(InvalidTransitionError):
            orchestrator.cancel_shift(admin, crew.shift_id)

    def test_cancelled_shift_is_terminal(self, orchestrator, flow):
        crew = flow.posted(workers=1)
        orchestrator.cancel_shift(crew.client, crew.shift_id)
        with pytest.raises(InvalidTransitionError):
            orchestrator.approve_application(crew.client, crew.shift_id, crew.workers[0].user_id)
