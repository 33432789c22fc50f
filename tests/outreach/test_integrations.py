"""Unit tests for the Apollo, SendGrid and language model clients with mocked transports."""

import os
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from python_http_client.exceptions import HTTPError

from outreach.integrations.apollo import (
    ApolloClient,
    ApolloOrganization,
    CompanySearchFilters,
)
from outreach.integrations.llm_client import LLMClient
from outreach.integrations.sendgrid import (
    REJECTED_MESSAGE,
    SENDER_UNVERIFIED_MESSAGE,
    SendErrorKind,
    SendGridAuthError,
    SendGridClient,
    SendGridRateLimitError,
    classify_http_error,
    text_to_html,
    validate_email,
)


# ============================================================================
# Apollo
# ============================================================================

class TestCompanySearchFilters:
    """Tests for query parameter building."""

    @pytest.mark.unit
    def test_list_values_repeat_keys(self):
        filters = CompanySearchFilters(
            locations=["Istanbul, Turkey"],
            employee_count_min=10,
            keywords=["saas"],
            industries=["fintech"],
        )

        query = filters.to_query(page=2, per_page=25)

        assert ("page", "2") in query
        assert ("organization_locations[]", "Istanbul, Turkey") in query
        assert ("organization_num_employees_ranges[]", "10,10000") in query
        assert [v for k, v in query if k == "q_organization_keyword_tags[]"] == ["saas", "fintech"]

    @pytest.mark.unit
    def test_no_employee_range_without_bounds(self):
        query = CompanySearchFilters().to_query(page=1, per_page=50)

        assert query == [("page", "1"), ("per_page", "50")]


class TestApolloClient:
    """Tests for the Apollo client with the HTTP layer mocked out."""

    @pytest.mark.unit
    def test_requires_api_key(self):
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValueError):
                ApolloClient()

    @pytest.mark.unit
    def test_organization_falls_back_to_account_id(self):
        organization = ApolloOrganization(id="acc_1", name="Acme", city="Istanbul", country="Turkey")

        assert organization.external_id == "acc_1"
        assert organization.location == "Istanbul, Turkey"

    @pytest.mark.asyncio
    async def test_search_companies_merges_accounts_and_organizations(self):
        client = ApolloClient(api_key="test-key")
        client._make_request = AsyncMock(return_value={
            "accounts": [{"id": "a1", "name": "Acme", "organization_id": "o1"}],
            "organizations": [
                {"id": "o2", "name": "Beta", "primary_domain": "beta.com", "employee_count": "12"},
                {"name": "no id"},
            ],
            "pagination": {"page": 1, "per_page": 2, "total_entries": 2, "total_pages": 1},
        })

        result = await client.search_companies(CompanySearchFilters(), per_page=2)

        assert [c.external_id for c in result.companies] == ["o1", "o2"]
        assert result.companies[1].domain == "beta.com"
        assert result.companies[1].employee_count == 12
        assert result.total_entries == 2

    @pytest.mark.asyncio
    async def test_search_people_sends_titles_in_reverse(self):
        client = ApolloClient(api_key="test-key")
        client._make_request = AsyncMock(return_value={
            "people": [{"id": "p1", "first_name": "Ayse", "has_email": True}],
        })

        people = await client.search_people("o1", ["CEO", "CTO"])

        _, _, query = client._make_request.call_args.args
        assert [v for k, v in query if k == "person_titles[]"] == ["CTO", "CEO"]
        assert people[0].first_name == "Ayse"
        assert people[0].has_email is True
        assert people[0].email is None

    @pytest.mark.asyncio
    async def test_enrich_without_match(self):
        client = ApolloClient(api_key="test-key")
        client._make_request = AsyncMock(return_value={})

        assert await client.enrich_person("p1") is None


# ============================================================================
# SendGrid
# ============================================================================

class TestSendGridHelpers:
    """Tests for address validation, HTML rendering and error mapping."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "email,valid",
        [("ayse@acme.com", True), ("ayse@acme", False), ("a b@acme.com", False), (None, False)],
    )
    def test_validate_email(self, email, valid):
        assert validate_email(email) is valid

    @pytest.mark.unit
    def test_text_to_html(self):
        assert text_to_html("Hi <Ayse>,\nThanks") == "Hi &lt;Ayse&gt;,<br>\nThanks"

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "status,body,kind,message",
        [
            (403, "The from address is not verified", SendErrorKind.SENDER_UNVERIFIED,
             SENDER_UNVERIFIED_MESSAGE),
            (403, "forbidden", SendErrorKind.REJECTED, REJECTED_MESSAGE),
            (400, "bad request", SendErrorKind.REJECTED, REJECTED_MESSAGE),
            (500, "oops", SendErrorKind.OTHER, "SendGrid error: 500 - oops"),
        ],
    )
    def test_classify_http_error(self, status, body, kind, message):
        assert classify_http_error(status, body) == (kind, message)


def http_error(status_code, body):
    return HTTPError(status_code, "error", body.encode("utf-8"), {})


class TestSendGridClient:
    """Tests for sending through a mocked SendGrid API client."""

    @pytest.fixture
    def client(self):
        client = SendGridClient(api_key="SG.test", default_from_email="sales@example.com")
        client._client = MagicMock()
        return client

    @pytest.mark.asyncio
    async def test_accepted(self, client):
        client._client.send.return_value = MagicMock(
            status_code=202, headers={"X-Message-Id": "abc123"}
        )

        result = await client.send_email("ayse@acme.com", "Hi", "Hello")

        assert result.success
        assert result.message_id == "abc123"
        assert result.sent_at is not None

    @pytest.mark.asyncio
    async def test_invalid_recipient_not_sent(self, client):
        result = await client.send_email("nope", "Hi", "Hello")

        assert not result.success
        assert result.error_kind == SendErrorKind.INVALID_ADDRESS
        client._client.send.assert_not_called()

    @pytest.mark.asyncio
    async def test_unverified_sender(self, client):
        client._client.send.side_effect = http_error(403, "Sender identity not verified")

        result = await client.send_email("ayse@acme.com", "Hi", "Hello")

        assert not result.success
        assert result.status_code == 403
        assert result.error == SENDER_UNVERIFIED_MESSAGE

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,exception", [(401, SendGridAuthError), (429, SendGridRateLimitError)]
    )
    async def test_auth_and_rate_limit_raise(self, client, status, exception):
        client._client.send.side_effect = http_error(status, "denied")

        with pytest.raises(exception):
            await client.send_email("ayse@acme.com", "Hi", "Hello")


# ============================================================================
# Language model
# ============================================================================

class TestLLMClient:
    """Tests for the chat-completions wrapper."""

    @pytest.mark.asyncio
    async def test_returns_first_choice_text(self):
        client = LLMClient(api_key="sk-test", model="gpt-test")
        message = MagicMock(content='{"subject": "S", "email_body": "B"}')
        client._client = MagicMock()
        client._client.chat.completions.create.return_value = MagicMock(
            choices=[MagicMock(message=message)]
        )

        text = await client.complete("PROMPT")

        assert text == '{"subject": "S", "email_body": "B"}'
        kwargs = client._client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-test"
        assert kwargs["messages"] == [{"role": "user", "content": "PROMPT"}]

    @pytest.mark.asyncio
    async def test_empty_choices(self):
        client = LLMClient(api_key="sk-test")
        client._client = MagicMock()
        client._client.chat.completions.create.return_value = MagicMock(choices=[])

        assert await client.complete("PROMPT") == ""
