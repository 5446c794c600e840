"""
Trust events: no-shows, late arrivals, lost disputes, completed shifts and
positive ratings, written in the same transaction as the command that
produced them, and the windowed trust score derived from them.
"""

from dataclasses import replace
from datetime import timedelta
from uuid import uuid4

from crew_kernel.domain.trust import (
    TrustEventType,
    TrustRule,
    TrustSeverity,
    TrustStatus,
    default_trust_rules,
)
from crew_kernel.domain.values import Actor
from crew_services import SettlementOrchestrator

DESCRIPTION = "Worker did not arrive and did not answer calls."


def _types(trust_events, user_id):
    return sorted(e.event_type.value for e in trust_events(user_id))


class TestShiftOutcomes:

    def test_absent_worker_gets_no_show(self, orchestrator, flow, trust_events):
        crew = flow.staffed(workers=2)
        present, absent = crew.workers
        flow.check_in(crew, [present])
        flow.check_out(crew, [present])
        orchestrator.complete_shift(crew.client, crew.shift_id)

        events = trust_events(absent.user_id)
        assert [e.event_type for e in events] == [TrustEventType.NO_SHOW]
        assert events[0].impact == -20
        assert events[0].severity is TrustSeverity.HIGH
        assert events[0].shift_id == crew.shift_id
        assert trust_events(present.user_id) == []

    def test_late_check_in_recorded(self, orchestrator, flow, clock, trust_events):
        crew = flow.staffed(workers=1)
        worker = crew.workers[0]
        clock.set_time(crew.start + timedelta(minutes=45))

        orchestrator.check_in(worker, crew.assignment_of(worker), flow.evidence())

        events = trust_events(worker.user_id)
        assert [e.event_type for e in events] == [TrustEventType.LATE_ARRIVAL]
        assert events[0].impact == -5

    def test_check_in_at_lateness_threshold_is_on_time(
        self, orchestrator, flow, clock, trust_events
    ):
        crew = flow.staffed(workers=1)
        worker = crew.workers[0]
        clock.set_time(crew.start + timedelta(minutes=30))

        orchestrator.check_in(worker, crew.assignment_of(worker), flow.evidence())

        assert trust_events(worker.user_id) == []

    def test_finalized_shift_credits_everyone(self, flow, trust_events):
        crew = flow.awaiting_rating(workers=2)
        flow.rate_all(crew, value=5)

        for worker in crew.workers:
            assert _types(trust_events, worker.user_id) == [
                "completed_shift_worker",
                "positive_rating",
            ]
        assert _types(trust_events, crew.client.user_id) == ["completed_shift_client"]

    def test_finalized_by_grace_credits_without_ratings(
        self, orchestrator, flow, clock, trust_events
    ):
        crew = flow.awaiting_rating(workers=1)
        clock.advance(hours=72)
        orchestrator.finalize_shift(crew.shift_id)

        assert _types(trust_events, crew.workers[0].user_id) == ["completed_shift_worker"]
        assert _types(trust_events, crew.client.user_id) == ["completed_shift_client"]

    def test_no_show_gets_no_completion_credit(self, orchestrator, flow, clock, trust_events):
        crew = flow.staffed(workers=2)
        present, absent = crew.workers
        flow.check_in(crew, [present])
        flow.check_out(crew, [present])
        orchestrator.complete_shift(crew.client, crew.shift_id)
        flow.confirm(crew, [present])
        clock.advance(hours=72)
        orchestrator.finalize_shift(crew.shift_id)

        assert _types(trust_events, absent.user_id) == ["no_show"]
        assert _types(trust_events, present.user_id) == ["completed_shift_worker"]


class TestRatings:

    def test_rating_below_threshold_gives_no_credit(self, orchestrator, flow, trust_events):
        crew = flow.awaiting_rating(workers=1)
        worker = crew.workers[0]

        orchestrator.submit_rating(crew.client, crew.shift_id, worker.user_id, 3)

        assert trust_events(worker.user_id) == []

    def test_only_client_ratings_credit(self, orchestrator, flow, trust_events):
        crew = flow.awaiting_rating(workers=1)
        worker = crew.workers[0]

        orchestrator.submit_rating(worker, crew.shift_id, crew.client.user_id, 5)

        assert trust_events(crew.client.user_id) == []


class TestDisputeOutcomes:

    def test_upheld_dispute_against_worker(self, orchestrator, flow, admin, trust_events):
        crew = flow.staffed(workers=1)
        worker = crew.workers[0]
        dispute = orchestrator.open_dispute(
            crew.client, crew.shift_id, worker.user_id, "no_show", DESCRIPTION
        ).value

        orchestrator.resolve_dispute(admin, dispute.id, "resolve", "No-show confirmed.")

        events = trust_events(worker.user_id)
        assert [e.event_type for e in events] == [TrustEventType.DISPUTE_LOST_WORKER]
        assert events[0].impact == -15
        assert events[0].dispute_id == dispute.id
        assert trust_events(crew.client.user_id) == []

    def test_upheld_dispute_against_client(self, orchestrator, flow, admin, trust_events):
        crew = flow.staffed(workers=1)
        worker = crew.workers[0]
        dispute = orchestrator.open_dispute(
            worker, crew.shift_id, crew.client.user_id, "payment",
            "Client refused to sign the timesheet.",
        ).value

        orchestrator.resolve_dispute(admin, dispute.id, "resolve", "Timesheet was valid.")

        assert _types(trust_events, crew.client.user_id) == ["dispute_lost_client"]
        assert trust_events(worker.user_id) == []

    def test_rejected_dispute_records_nothing(self, orchestrator, flow, admin, trust_events):
        crew = flow.staffed(workers=1)
        worker = crew.workers[0]
        dispute = orchestrator.open_dispute(
            crew.client, crew.shift_id, worker.user_id, "late", DESCRIPTION
        ).value

        orchestrator.resolve_dispute(admin, dispute.id, "reject", "Arrival was within grace.")

        assert trust_events(worker.user_id) == []
        assert trust_events(crew.client.user_id) == []

    def test_dispute_without_shift_records_nothing(self, orchestrator, admin, trust_events):
        client, worker = Actor.client(uuid4()), Actor.worker(uuid4())
        dispute = orchestrator.open_dispute(
            worker, None, client.user_id, "payment", "Invoice from last month never paid."
        ).value

        orchestrator.resolve_dispute(admin, dispute.id, "resolve", "Paid off-platform.")

        assert trust_events(client.user_id) == []


class TestTrustScore:

    def test_unknown_user_has_full_score(self, orchestrator):
        score = orchestrator.trust_score(uuid4())
        assert (score.score, score.status, score.event_count) == (100, TrustStatus.OK, 0)

    def test_score_sums_events_in_window(self, orchestrator, flow, clock):
        crew = flow.staffed(workers=2)
        present, absent = crew.workers
        clock.set_time(crew.start + timedelta(minutes=40))
        orchestrator.check_in(present, crew.assignment_of(present), flow.evidence())
        flow.check_out(crew, [present])
        orchestrator.complete_shift(crew.client, crew.shift_id)

        assert orchestrator.trust_score(absent.user_id).score == 80
        late = orchestrator.trust_score(present.user_id)
        assert (late.score, late.event_count) == (95, 1)

        clock.advance(days=8)
        assert orchestrator.trust_score(absent.user_id).score == 100

    def test_policy_table_sets_impact(
        self, session_factory, payments, notifications, clock, policy, flow_for, trust_events
    ):
        rules = default_trust_rules()
        rules[TrustEventType.NO_SHOW] = TrustRule(-60, TrustSeverity.HIGH)
        strict = SettlementOrchestrator(
            session_factory=session_factory,
            payments=payments,
            notifications=notifications,
            clock=clock,
            policy=replace(policy, trust_rules=rules),
        )
        flow = flow_for(strict)
        crew = flow.staffed(workers=2)
        present, absent = crew.workers
        flow.check_in(crew, [present])
        flow.check_out(crew, [present])
        strict.complete_shift(crew.client, crew.shift_id)

        assert trust_events(absent.user_id)[0].impact == -60
        score = strict.trust_score(absent.user_id)
        assert (score.score, score.status) == (40, TrustStatus.RESTRICTED)
