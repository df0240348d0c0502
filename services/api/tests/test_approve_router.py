"""Tests for the public approval link."""

import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from brain_calendar.config import get_settings
from brain_calendar.dependencies import get_db
from brain_calendar.main import create_app
from brain_calendar.routers.approve import CONFIRMATION_PAGE
from brain_calendar.services.proposal_lifecycle import DecisionOutcome, InvalidOptionError

CONFIRMATION_TEXT = "Thanks, your response has been recorded."


@pytest.fixture
def app(settings, mock_db):
    app = create_app(settings)
    app.dependency_overrides[get_settings] = lambda: settings

    async def _db():
        yield mock_db

    app.dependency_overrides[get_db] = _db
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def service():
    """Patch the proposal service used by the approval route."""
    instance = MagicMock()
    instance.get_by_token = AsyncMock(return_value=None)
    instance.record_approval = AsyncMock(return_value=DecisionOutcome.RECORDED)
    with patch("brain_calendar.routers.approve.ProposalService", return_value=instance):
        yield instance


def _proposal():
    proposal = MagicMock()
    proposal.id = uuid.uuid4()
    return proposal


class TestApproveLink:
    def test_missing_token(self, client, service):
        response = client.get("/approve")
        assert response.status_code == 400
        assert response.text == "Missing token"
        service.get_by_token.assert_not_awaited()

    def test_unknown_token_gets_generic_page(self, client, service):
        response = client.get("/approve?token=does-not-exist")
        assert response.status_code == 200
        assert CONFIRMATION_TEXT in response.text
        service.record_approval.assert_not_awaited()

    def test_approve_records_decision(self, client, service):
        proposal = _proposal()
        service.get_by_token.return_value = proposal

        response = client.get("/approve?token=tok&decision=approved&option=1")

        assert response.status_code == 200
        assert response.text == CONFIRMATION_PAGE
        service.record_approval.assert_awaited_once()
        kwargs = service.record_approval.await_args.kwargs
        assert kwargs["decision"] == "approved"
        assert kwargs["chosen_option_index"] == 1
        assert kwargs["actor"] == "external_link"

    def test_defaults_to_first_option(self, client, service):
        service.get_by_token.return_value = _proposal()
        client.get("/approve?token=tok")
        kwargs = service.record_approval.await_args.kwargs
        assert (kwargs["decision"], kwargs["chosen_option_index"]) == ("approved", 0)

    def test_reject_ignores_option(self, client, service):
        service.get_by_token.return_value = _proposal()
        client.get("/approve?token=tok&decision=rejected&option=2")
        kwargs = service.record_approval.await_args.kwargs
        assert (kwargs["decision"], kwargs["chosen_option_index"]) == ("rejected", None)

    def test_second_call_same_page(self, client, service):
        service.get_by_token.return_value = _proposal()
        service.record_approval.side_effect = [DecisionOutcome.RECORDED, DecisionOutcome.ALREADY_DECIDED]

        first = client.get("/approve?token=tok&option=0")
        second = client.get("/approve?token=tok&option=0")

        assert first.status_code == second.status_code == 200
        assert first.text == second.text

    @pytest.mark.parametrize("query", ["decision=maybe", "option=abc"])
    def test_malformed_input_gets_generic_page(self, client, service, query):
        service.get_by_token.return_value = _proposal()
        response = client.get(f"/approve?token=tok&{query}")
        assert response.status_code == 200
        assert CONFIRMATION_TEXT in response.text
        service.record_approval.assert_not_awaited()

    def test_invalid_option_gets_generic_page(self, client, service):
        service.get_by_token.return_value = _proposal()
        service.record_approval.side_effect = InvalidOptionError("out of range")
        response = client.get("/approve?token=tok&option=9")
        assert response.status_code == 200
        assert CONFIRMATION_TEXT in response.text

    def test_expired_gets_generic_page(self, client, service):
        service.get_by_token.return_value = _proposal()
        service.record_approval.return_value = DecisionOutcome.EXPIRED
        response = client.get("/approve?token=tok")
        assert response.status_code == 200
        assert CONFIRMATION_TEXT in response.text

    def test_no_auth_required(self, client, service):
        response = client.get("/approve?token=tok")
        assert response.status_code == 200
