"""Tests for the reschedule proposal state machine and ProposalService."""

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from brain_calendar.models.audit_log import AuditLog
from brain_calendar.models.calendar_event import CalendarEvent
from brain_calendar.models.proposal_approval import ProposalApproval
from brain_calendar.models.reschedule_proposal import ProposalCreator, ProposalStatus, RescheduleProposal
from brain_calendar.schemas.calendar import EventPolicy, requires_approver
from brain_calendar.services.planner import ProposalOption
from brain_calendar.services.proposal_lifecycle import (
    ALLOWED_TRANSITIONS,
    DecisionOutcome,
    EmptyProposalError,
    InvalidOptionError,
    InvalidTransitionError,
    ProposalNotApplicableError,
    ProposalNotFoundError,
    ProposalService,
    can_transition,
    chosen_option,
    expire,
    hash_token,
    mark_applied,
    mark_sent,
    new_draft,
    record_decision,
)

USER_ID = "user_2abcDEFghiJKLmno"
EVENT_ID = uuid.UUID("12345678-1234-1234-1234-123456789abc")
TTL = timedelta(hours=72)

OPTIONS = [
    ProposalOption(start_at=1_000_000, end_at=4_600_000, score=100, explain="first"),
    ProposalOption(start_at=2_000_000, end_at=5_600_000, score=95, explain="second"),
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _draft(options=OPTIONS, requires=False, approver=None) -> RescheduleProposal:
    return new_draft(
        user_id=USER_ID,
        event_id=EVENT_ID,
        created_by=ProposalCreator.BRAIN,
        rationale="Conflicts with your plan.",
        options=options,
        requires_approver=requires,
        approver=approver,
    )


def _sent(now: datetime) -> RescheduleProposal:
    proposal = _draft()
    mark_sent(proposal, now, TTL)
    return proposal


def _result(scalar=None, scalars=None):
    result = MagicMock()
    result.scalar_one_or_none.return_value = scalar
    result.scalars.return_value.all.return_value = scalars or []
    return result


def _added(mock_db, cls):
    return [c.args[0] for c in mock_db.add.call_args_list if isinstance(c.args[0], cls)]


# ---------------------------------------------------------------------------
# Transition table
# ---------------------------------------------------------------------------

class TestTransitions:
    def test_happy_path(self):
        assert can_transition(ProposalStatus.DRAFT, ProposalStatus.SENT)
        assert can_transition(ProposalStatus.SENT, ProposalStatus.APPROVED)
        assert can_transition(ProposalStatus.APPROVED, ProposalStatus.APPLIED)

    def test_sent_can_be_rejected_or_expired(self):
        assert can_transition(ProposalStatus.SENT, ProposalStatus.REJECTED)
        assert can_transition(ProposalStatus.SENT, ProposalStatus.EXPIRED)

    def test_draft_cannot_skip_to_approved(self):
        assert not can_transition(ProposalStatus.DRAFT, ProposalStatus.APPROVED)

    def test_rejected_cannot_be_applied(self):
        assert not can_transition(ProposalStatus.REJECTED, ProposalStatus.APPLIED)

    @pytest.mark.parametrize("terminal", [ProposalStatus.REJECTED, ProposalStatus.APPLIED, ProposalStatus.EXPIRED])
    def test_terminal_states(self, terminal):
        assert ALLOWED_TRANSITIONS[terminal] == frozenset()

    def test_every_status_in_table(self):
        assert set(ALLOWED_TRANSITIONS) == set(ProposalStatus)


# ---------------------------------------------------------------------------
# Draft and send
# ---------------------------------------------------------------------------

class TestNewDraft:
    def test_starts_as_draft(self):
        proposal = _draft()
        assert proposal.status == ProposalStatus.DRAFT
        assert proposal.chosen_option_index is None
        assert proposal.token_hash is None

    def test_options_serialized(self):
        assert _draft().options[0] == {"start_at": 1_000_000, "end_at": 4_600_000, "score": 100, "explain": "first"}

    def test_accepts_option_dicts(self):
        proposal = _draft(options=[{"start_at": 1, "end_at": 2, "score": 100, "explain": "x"}])
        assert proposal.options == [{"start_at": 1, "end_at": 2, "score": 100, "explain": "x"}]

    def test_approver_dropped_when_not_required(self):
        assert _draft(requires=False, approver={"email": "boss@company.com"}).approver is None

    def test_approver_kept_when_required(self):
        assert _draft(requires=True, approver={"email": "boss@company.com"}).approver == {"email": "boss@company.com"}


class TestMarkSent:
    def test_sets_status_and_token(self, now):
        proposal = _draft()
        token = mark_sent(proposal, now, TTL)
        assert proposal.status == ProposalStatus.SENT
        assert proposal.token_hash == hash_token(token)
        assert proposal.token_expires_at == now + TTL

    def test_raw_token_not_stored(self, now):
        proposal = _draft()
        token = mark_sent(proposal, now, TTL)
        assert proposal.token_hash != token
        assert len(token) >= 40

    def test_tokens_are_unique(self, now):
        assert mark_sent(_draft(), now, TTL) != mark_sent(_draft(), now, TTL)

    def test_empty_options_rejected(self, now):
        proposal = _draft(options=[])
        with pytest.raises(EmptyProposalError):
            mark_sent(proposal, now, TTL)
        assert proposal.status == ProposalStatus.DRAFT

    def test_cannot_send_twice(self, now):
        proposal = _sent(now)
        with pytest.raises(InvalidTransitionError):
            mark_sent(proposal, now, TTL)


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------

class TestRecordDecision:
    def test_approve_with_valid_option(self, now):
        proposal = _sent(now)
        outcome = record_decision(proposal, "approved", 1, now)
        assert outcome == DecisionOutcome.RECORDED
        assert proposal.status == ProposalStatus.APPROVED
        assert proposal.chosen_option_index == 1
        assert proposal.decided_at == now

    def test_reject_clears_choice(self, now):
        proposal = _sent(now)
        assert record_decision(proposal, "rejected", 0, now) == DecisionOutcome.RECORDED
        assert proposal.status == ProposalStatus.REJECTED
        assert proposal.chosen_option_index is None

    @pytest.mark.parametrize("index", [None, -1, 2, 99])
    def test_approve_with_invalid_option(self, now, index):
        proposal = _sent(now)
        with pytest.raises(InvalidOptionError):
            record_decision(proposal, "approved", index, now)
        assert proposal.status == ProposalStatus.SENT
        assert proposal.chosen_option_index is None

    def test_repeat_decision_is_noop(self, now):
        """Using the same approval link twice leaves the first choice in place."""
        proposal = _sent(now)
        record_decision(proposal, "approved", 1, now)
        later = now + timedelta(minutes=5)

        assert record_decision(proposal, "approved", 0, later) == DecisionOutcome.ALREADY_DECIDED
        assert proposal.chosen_option_index == 1
        assert proposal.decided_at == now

    def test_conflicting_repeat_is_noop(self, now):
        proposal = _sent(now)
        record_decision(proposal, "rejected", None, now)
        assert record_decision(proposal, "approved", 0, now) == DecisionOutcome.ALREADY_DECIDED
        assert proposal.status == ProposalStatus.REJECTED

    def test_expired_token_expires_proposal(self, now):
        proposal = _sent(now)
        outcome = record_decision(proposal, "approved", 0, now + TTL + timedelta(seconds=1))
        assert outcome == DecisionOutcome.EXPIRED
        assert proposal.status == ProposalStatus.EXPIRED
        assert proposal.chosen_option_index is None

    def test_decision_on_expired_proposal(self, now):
        proposal = _sent(now)
        expire(proposal)
        assert record_decision(proposal, "approved", 0, now) == DecisionOutcome.EXPIRED

    def test_decision_on_draft_rejected(self, now):
        with pytest.raises(InvalidTransitionError):
            record_decision(_draft(), "approved", 0, now)

    def test_unknown_decision(self, now):
        with pytest.raises(ValueError):
            record_decision(_sent(now), "maybe", 0, now)


class TestApplyAndExpire:
    def test_mark_applied_requires_approved(self, now):
        proposal = _sent(now)
        with pytest.raises(ProposalNotApplicableError):
            mark_applied(proposal, now)
        assert proposal.status == ProposalStatus.SENT

    def test_mark_applied(self, now):
        proposal = _sent(now)
        record_decision(proposal, "approved", 0, now)
        mark_applied(proposal, now)
        assert proposal.status == ProposalStatus.APPLIED
        assert proposal.applied_at == now

    def test_chosen_option(self, now):
        proposal = _sent(now)
        record_decision(proposal, "approved", 1, now)
        assert chosen_option(proposal)["explain"] == "second"

    def test_chosen_option_missing(self, now):
        with pytest.raises(InvalidOptionError):
            chosen_option(_sent(now))

    def test_expire_only_from_sent(self, now):
        with pytest.raises(InvalidTransitionError):
            expire(_draft())


class TestApproverSnapshot:
    def test_requires_approver_only_for_negotiable(self):
        assert requires_approver(EventPolicy(lock_state="negotiable")) is True
        assert requires_approver(EventPolicy(lock_state="flexible")) is False
        assert requires_approver(None) is False

    def test_policy_change_does_not_affect_proposal(self, now):
        event = CalendarEvent(id=EVENT_ID, policy=EventPolicy(lock_state="negotiable").model_dump(mode="json"))
        proposal = _draft(requires=requires_approver(EventPolicy.model_validate(event.policy)))
        mark_sent(proposal, now, TTL)

        event.policy = EventPolicy(lock_state="flexible").model_dump(mode="json")
        assert proposal.requires_approver is True


# ---------------------------------------------------------------------------
# ProposalService
# ---------------------------------------------------------------------------

class TestProposalService:
    @pytest.mark.asyncio
    async def test_create_proposal_sends_and_audits(self, settings, mock_db):
        service = ProposalService(settings)
        proposal, token = await service.create_proposal(
            mock_db,
            user_id=USER_ID,
            event_id=EVENT_ID,
            created_by=ProposalCreator.BRAIN,
            rationale="Conflicts with your plan.",
            options=OPTIONS,
            requires_approver=True,
            approver={"email": "boss@company.com"},
        )

        assert proposal.status == ProposalStatus.SENT
        assert proposal.token_hash == hash_token(token)
        assert proposal.requires_approver is True
        assert _added(mock_db, RescheduleProposal) == [proposal]
        audits = _added(mock_db, AuditLog)
        assert [a.action for a in audits] == ["proposal.sent"]
        assert token not in str(audits[0].extra_data)

    @pytest.mark.asyncio
    async def test_create_proposal_without_options(self, settings, mock_db):
        with pytest.raises(EmptyProposalError):
            await ProposalService(settings).create_proposal(
                mock_db,
                user_id=USER_ID,
                event_id=EVENT_ID,
                created_by=ProposalCreator.BRAIN,
                rationale="r",
                options=[],
                requires_approver=False,
            )
        mock_db.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_get_proposal_not_found(self, settings, mock_db):
        mock_db.execute.return_value = _result(scalar=None)
        with pytest.raises(ProposalNotFoundError):
            await ProposalService(settings).get_proposal(mock_db, USER_ID, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_record_approval_writes_entry(self, settings, mock_db):
        proposal = _sent(datetime.now(timezone.utc))
        outcome = await ProposalService(settings).record_approval(
            mock_db, proposal, decision="approved", chosen_option_index=0, actor="in_app", comment="ok"
        )

        assert outcome == DecisionOutcome.RECORDED
        approvals = _added(mock_db, ProposalApproval)
        assert len(approvals) == 1
        assert approvals[0].actor == "in_app"
        assert approvals[0].chosen_option_index == 0
        assert [a.action for a in _added(mock_db, AuditLog)] == ["proposal.approved"]

    @pytest.mark.asyncio
    async def test_record_approval_twice_writes_once(self, settings, mock_db):
        service = ProposalService(settings)
        proposal = _sent(datetime.now(timezone.utc))
        await service.record_approval(mock_db, proposal, "approved", 1, actor="external_link")
        outcome = await service.record_approval(mock_db, proposal, "approved", 0, actor="external_link")

        assert outcome == DecisionOutcome.ALREADY_DECIDED
        assert proposal.chosen_option_index == 1
        assert len(_added(mock_db, ProposalApproval)) == 1

    @pytest.mark.asyncio
    async def test_apply_approved_moves_event(self, settings, mock_db):
        proposal = _sent(datetime.now(timezone.utc))
        record_decision(proposal, "approved", 1, datetime.now(timezone.utc))
        event = CalendarEvent(id=EVENT_ID, user_id=USER_ID, start_at=0, end_at=3_600_000, deleted_at=None)
        mock_db.execute.return_value = _result(scalar=proposal)
        mock_db.get.return_value = event

        applied = await ProposalService(settings).apply_approved_proposal(mock_db, USER_ID, proposal.id)

        assert applied is event
        assert (event.start_at, event.end_at) == (2_000_000, 5_600_000)
        assert proposal.status == ProposalStatus.APPLIED
        assert [a.action for a in _added(mock_db, AuditLog)] == ["proposal.applied"]

    @pytest.mark.asyncio
    async def test_apply_twice_does_not_rewrite(self, settings, mock_db):
        service = ProposalService(settings)
        proposal = _sent(datetime.now(timezone.utc))
        record_decision(proposal, "approved", 0, datetime.now(timezone.utc))
        event = CalendarEvent(id=EVENT_ID, user_id=USER_ID, start_at=0, end_at=3_600_000, deleted_at=None)
        mock_db.execute.return_value = _result(scalar=proposal)
        mock_db.get.return_value = event

        await service.apply_approved_proposal(mock_db, USER_ID, proposal.id)
        event.start_at, event.end_at = 7, 8  # edited by the user afterwards
        await service.apply_approved_proposal(mock_db, USER_ID, proposal.id)

        assert (event.start_at, event.end_at) == (7, 8)
        assert len(_added(mock_db, AuditLog)) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("decision", [None, "rejected"])
    async def test_apply_requires_approval(self, settings, mock_db, decision):
        proposal = _sent(datetime.now(timezone.utc))
        if decision:
            record_decision(proposal, decision, None, datetime.now(timezone.utc))
        event = CalendarEvent(id=EVENT_ID, user_id=USER_ID, start_at=0, end_at=3_600_000, deleted_at=None)
        mock_db.execute.return_value = _result(scalar=proposal)
        mock_db.get.return_value = event

        with pytest.raises(ProposalNotApplicableError):
            await ProposalService(settings).apply_approved_proposal(mock_db, USER_ID, proposal.id)
        assert (event.start_at, event.end_at) == (0, 3_600_000)

    @pytest.mark.asyncio
    async def test_apply_deleted_event(self, settings, mock_db):
        proposal = _sent(datetime.now(timezone.utc))
        record_decision(proposal, "approved", 0, datetime.now(timezone.utc))
        mock_db.execute.return_value = _result(scalar=proposal)
        mock_db.get.return_value = CalendarEvent(id=EVENT_ID, start_at=0, end_at=1, deleted_at=123)

        with pytest.raises(ProposalNotFoundError):
            await ProposalService(settings).apply_approved_proposal(mock_db, USER_ID, proposal.id)

    @pytest.mark.asyncio
    async def test_expire_stale_proposals(self, settings, mock_db, now):
        stale = [_sent(now - timedelta(days=4)), _sent(now - timedelta(days=5))]
        mock_db.execute.return_value = _result(scalars=stale)

        count = await ProposalService(settings).expire_stale_proposals(mock_db, now=now)

        assert count == 2
        assert all(p.status == ProposalStatus.EXPIRED for p in stale)
        assert [a.action for a in _added(mock_db, AuditLog)] == ["proposal.expired", "proposal.expired"]
