"""Tests for human review, approval and delivery of drafts."""

import pytest

from conftest import audit_rows, create_company, load_company, sender_unverified_result
from outreach.integrations.sendgrid import SendErrorKind, SendGridRateLimitError
from outreach.models import AuditAction, PipelineState
from outreach.pipeline import EmailDispatcher

DRAFT = {"subject": "Hi", "body": "Hello"}


async def approved_company(database, **fields):
    fields.setdefault("target_contact_email", "ayse@acme.com")
    return await create_company(
        database,
        state=PipelineState.APPROVED_TO_SEND,
        draft={**DRAFT, "final_subject": "Final subject", "final_body": "Final body"},
        **fields,
    )


class TestApprove:
    """Tests for freezing final content on approval."""

    @pytest.mark.asyncio
    async def test_edited_subject_wins(self, database, review_service):
        """Test that edited fields become final and generated ones fill the gaps."""
        company_id = await create_company(
            database,
            state=PipelineState.PENDING_REVIEW,
            draft={**DRAFT, "edited_subject": "Hi there"},
        )

        result = await review_service.approve(company_id, approved_by="reviewer")

        company = await load_company(database, company_id)
        assert result.success
        assert company.pipeline_state == PipelineState.APPROVED_TO_SEND
        assert company.email.final_subject == "Hi there"
        assert company.email.final_body == "Hello"
        assert company.email.approved_at is not None
        assert company.email.approved_by == "reviewer"

        actions = [row.action for row in await audit_rows(database)]
        assert AuditAction.STATE_CHANGE in actions
        assert AuditAction.EMAIL_APPROVED in actions

    @pytest.mark.asyncio
    async def test_wrong_state_rejected(self, database, review_service):
        company_id = await create_company(
            database, state=PipelineState.APPROVED_TO_SEND, draft=DRAFT
        )

        result = await review_service.approve(company_id)

        assert not result.success
        assert result.error == "Email must be in pending_review state to approve"
        assert await audit_rows(database) == []

    @pytest.mark.asyncio
    async def test_missing_draft_rejected(self, database, review_service):
        company_id = await create_company(database, state=PipelineState.PENDING_REVIEW)

        result = await review_service.approve(company_id)

        company = await load_company(database, company_id)
        assert not result.success
        assert result.error == "No email found for this company"
        assert company.pipeline_state == PipelineState.PENDING_REVIEW


class TestReview:
    """Tests for storing human edits."""

    @pytest.mark.asyncio
    async def test_edits_trimmed_and_audited(self, database, review_service):
        company_id = await create_company(
            database, state=PipelineState.PENDING_REVIEW, draft=DRAFT
        )

        result = await review_service.review(company_id, "  New subject ", " New body ", "ed")

        company = await load_company(database, company_id)
        assert result.success
        assert company.email.edited_subject == "New subject"
        assert company.email.edited_body == "New body"
        assert company.email.final_subject is None
        rows = await audit_rows(database, result.email_id)
        assert [row.action for row in rows] == [AuditAction.EMAIL_REVIEWED]

    @pytest.mark.asyncio
    async def test_edits_after_approval_update_final_content(self, database, review_service):
        company_id = await approved_company(database)

        await review_service.review(company_id, "Changed", "Changed body")

        company = await load_company(database, company_id)
        assert company.email.final_subject == "Changed"
        assert company.email.final_body == "Changed body"

    @pytest.mark.asyncio
    async def test_recipient_override(self, database, review_service):
        company_id = await create_company(
            database, state=PipelineState.PENDING_REVIEW, draft=DRAFT
        )

        result = await review_service.review(
            company_id, "S", "B", recipient_email="new@acme.com"
        )

        company = await load_company(database, company_id)
        assert result.success
        assert company.target_contact_email == "new@acme.com"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "subject,body,recipient",
        [("", "Body", None), ("Subject", "   ", None), ("S", "B", "not-an-email")],
    )
    async def test_invalid_input(self, database, review_service, subject, body, recipient):
        company_id = await create_company(
            database, state=PipelineState.PENDING_REVIEW, draft=DRAFT
        )

        result = await review_service.review(company_id, subject, body, recipient_email=recipient)

        company = await load_company(database, company_id)
        assert not result.success
        assert company.email.edited_subject is None


class TestDeleteDraft:
    """Tests for discarding a draft."""

    @pytest.mark.asyncio
    async def test_draft_removed_and_company_reset(self, database, review_service):
        company_id = await create_company(
            database, state=PipelineState.PENDING_REVIEW, draft=DRAFT
        )

        result = await review_service.delete_draft(company_id)

        company = await load_company(database, company_id)
        assert result.success
        assert company.email is None
        assert company.pipeline_state == PipelineState.PENDING_GENERATION
        rows = await audit_rows(database, company_id)
        assert rows[-1].action == AuditAction.EMAIL_DELETED
        assert rows[-1].from_state == "pending_review"
        assert rows[-1].to_state == "pending_generation"
        assert rows[-1].details == {"email_id": result.email_id}

    @pytest.mark.asyncio
    async def test_sent_company_refused(self, database, review_service):
        company_id = await create_company(database, state=PipelineState.SENT, draft=DRAFT)

        result = await review_service.delete_draft(company_id)

        company = await load_company(database, company_id)
        assert not result.success
        assert company.email is not None


class TestDispatch:
    """Tests for sending approved drafts."""

    @pytest.mark.asyncio
    async def test_successful_send(self, database, dispatcher, sendgrid):
        """Test that an accepted send moves the company to sent."""
        company_id = await approved_company(database)

        result = await dispatcher.send(company_id)

        company = await load_company(database, company_id)
        assert result.success
        assert company.pipeline_state == PipelineState.SENT
        assert company.email.sent_to == "ayse@acme.com"
        assert company.email.send_attempts == 1
        assert company.email.send_error is None
        assert company.email.sent_at is not None
        assert sendgrid.sent[0]["subject"] == "Final subject"
        assert sendgrid.sent[0]["text_content"] == "Final body"
        assert sendgrid.sent[0]["from_email"] == "sales@example.com"

        rows = await audit_rows(database, company_id)
        assert rows[-1].action == AuditAction.STATE_CHANGE
        assert rows[-1].to_state == "sent"
        assert rows[-1].details["recipient_email"] == "ayse@acme.com"

    @pytest.mark.asyncio
    async def test_rejected_send_keeps_state(self, database, dispatcher, sendgrid):
        """Test that a provider rejection is recorded without a state change."""
        company_id = await approved_company(database)
        sendgrid.result = sender_unverified_result("ayse@acme.com")

        result = await dispatcher.send(company_id)

        company = await load_company(database, company_id)
        assert not result.success
        assert result.error_kind == SendErrorKind.SENDER_UNVERIFIED
        assert company.pipeline_state == PipelineState.APPROVED_TO_SEND
        assert company.email.send_attempts == 1
        assert company.email.send_error == "Sender email domain is not verified in SendGrid."
        assert await audit_rows(database, company_id) == []

    @pytest.mark.asyncio
    async def test_retry_after_failure_clears_error(self, database, dispatcher, sendgrid):
        company_id = await approved_company(database)
        sendgrid.error = SendGridRateLimitError("Rate limit exceeded")

        first = await dispatcher.send(company_id)
        sendgrid.error = None
        second = await dispatcher.send(company_id)

        company = await load_company(database, company_id)
        assert not first.success
        assert first.error == "Rate limit exceeded"
        assert second.success
        assert company.email.send_attempts == 2
        assert company.email.send_error is None

    @pytest.mark.asyncio
    async def test_unexpected_error_recorded_as_attempt(self, database, dispatcher, sendgrid):
        """Test that any exception from the provider is recorded on the draft."""
        company_id = await approved_company(database)
        sendgrid.error = RuntimeError("connection reset")

        result = await dispatcher.send(company_id)

        company = await load_company(database, company_id)
        assert not result.success
        assert result.attempted
        assert result.error == "connection reset"
        assert result.error_kind == SendErrorKind.OTHER
        assert company.pipeline_state == PipelineState.APPROVED_TO_SEND
        assert company.email.send_attempts == 1
        assert company.email.send_error == "connection reset"

    @pytest.mark.asyncio
    async def test_wrong_state_is_not_an_attempt(self, database, dispatcher, sendgrid):
        company_id = await create_company(
            database,
            state=PipelineState.PENDING_REVIEW,
            draft=DRAFT,
            target_contact_email="ayse@acme.com",
        )

        result = await dispatcher.send(company_id)

        company = await load_company(database, company_id)
        assert not result.success
        assert not result.attempted
        assert result.error == 'Cannot send email: company is in state "pending_review"'
        assert company.email.send_attempts == 0
        assert sendgrid.sent == []

    @pytest.mark.asyncio
    async def test_recipient_override(self, database, dispatcher, sendgrid):
        company_id = await approved_company(database)

        result = await dispatcher.send(company_id, recipient_email="other@acme.com")

        company = await load_company(database, company_id)
        assert result.success
        assert company.email.sent_to == "other@acme.com"

    @pytest.mark.asyncio
    async def test_missing_sender_counts_as_attempt(self, database, state_machine, sendgrid):
        dispatcher = EmailDispatcher(database, state_machine, sendgrid)
        company_id = await approved_company(database)

        result = await dispatcher.send(company_id)

        company = await load_company(database, company_id)
        assert not result.success
        assert result.attempted
        assert company.email.send_attempts == 1
        assert "Sender email is not configured" in company.email.send_error
        assert sendgrid.sent == []

    @pytest.mark.asyncio
    async def test_stored_sender_settings_win(self, database, catalog, dispatcher, sendgrid):
        await catalog.update_settings("founder@example.com", "Founder")
        company_id = await approved_company(database)

        await dispatcher.send(company_id)

        assert sendgrid.sent[0]["from_email"] == "founder@example.com"
        assert sendgrid.sent[0]["from_name"] == "Founder"
