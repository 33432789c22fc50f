"""Delivery of approved drafts."""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from ..constants import DEFAULT_SETTINGS_ID
from ..integrations.sendgrid import SendErrorKind, SendGridClient
from ..models import AppSettings, Company, Database, EmailDraft, PipelineState
from .state_machine import COMPANY_NOT_FOUND, PipelineStateMachine

logger = logging.getLogger(__name__)

SENDER_NOT_CONFIGURED = (
    "Sender email is not configured. Set it in settings or SENDGRID_FROM_EMAIL."
)


@dataclass
class DispatchResult:
    """Outcome of sending one company's draft.

    Attributes:
        success: Whether the provider accepted the email and the company
            moved to ``sent``.
        company_id: Company the send was attempted for.
        recipient_email: Address the email was sent (or would be sent) to.
        message_id: Provider message id on success.
        error: Error message on failure, recorded verbatim on the draft.
        error_kind: Provider error classification, if any.
        attempted: Whether the attempt counted against ``send_attempts``.
    """

    success: bool
    company_id: str
    recipient_email: Optional[str] = None
    message_id: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[SendErrorKind] = None
    attempted: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "success": self.success,
            "company_id": self.company_id,
            "recipient_email": self.recipient_email,
            "message_id": self.message_id,
            "error": self.error,
            "error_kind": self.error_kind.value if self.error_kind else None,
        }


class EmailDispatcher:
    """Sends approved drafts and records the delivery outcome.

    Every attempt that reaches address validation increments the draft's
    ``send_attempts``. A failure stores the error on the draft; a success
    clears it and moves the company to ``sent`` in the same unit of work.

    Args:
        database: Database with companies, drafts and settings.
        state_machine: State machine used for the ``sent`` transition.
        client: SendGrid client (or any object with a matching ``send_email``).
        default_from_email: Sender used when settings have none.
        default_from_name: Sender name used when settings have none.
    """

    def __init__(
        self,
        database: Database,
        state_machine: PipelineStateMachine,
        client: SendGridClient,
        default_from_email: Optional[str] = None,
        default_from_name: Optional[str] = None,
    ) -> None:
        self.database = database
        self.state_machine = state_machine
        self.client = client
        self.default_from_email = default_from_email
        self.default_from_name = default_from_name

    async def resolve_sender(self) -> tuple[Optional[str], Optional[str]]:
        """Sender address and name: stored settings first, then configured defaults."""
        async with self.database.session() as session:
            settings = await session.get(AppSettings, DEFAULT_SETTINGS_ID)
            if settings is not None and settings.sender_email:
                return settings.sender_email, settings.sender_name or self.default_from_name
        return self.default_from_email or None, self.default_from_name

    async def _record_failure(self, draft_id: str, error: str) -> None:
        async with self.database.session() as session:
            draft = await session.get(EmailDraft, draft_id)
            if draft is not None:
                draft.send_attempts = (draft.send_attempts or 0) + 1
                draft.send_error = error

    async def send(
        self,
        company_id: str,
        recipient_email: Optional[str] = None,
        performed_by: Optional[str] = None,
    ) -> DispatchResult:
        """Send the approved draft of one company.

        Args:
            company_id: Company whose draft to send.
            recipient_email: Override for the stored contact email.
            performed_by: Actor identifier for the audit row.

        Returns:
            DispatchResult. Provider errors are returned, not raised.
        """
        async with self.database.session() as session:
            company = await session.get(Company, company_id)
            if company is None:
                return DispatchResult(success=False, company_id=company_id, error=COMPANY_NOT_FOUND)
            if company.pipeline_state != PipelineState.APPROVED_TO_SEND:
                return DispatchResult(
                    success=False,
                    company_id=company_id,
                    error=(
                        "Cannot send email: company is in state "
                        f'"{company.pipeline_state.value}"'
                    ),
                )
            draft = company.email
            if draft is None:
                return DispatchResult(
                    success=False, company_id=company_id, error="No email found for this company"
                )
            recipient = recipient_email or company.target_contact_email
            if not recipient:
                return DispatchResult(
                    success=False, company_id=company_id, error="No recipient email address"
                )
            draft_id = draft.id
            subject, body = draft.content_to_send

        from_email, from_name = await self.resolve_sender()
        if not from_email:
            await self._record_failure(draft_id, SENDER_NOT_CONFIGURED)
            return DispatchResult(
                success=False,
                company_id=company_id,
                recipient_email=recipient,
                error=SENDER_NOT_CONFIGURED,
                attempted=True,
            )

        try:
            result = await self.client.send_email(
                to_email=recipient,
                subject=subject,
                text_content=body,
                from_email=from_email,
                from_name=from_name,
            )
        except Exception as e:
            logger.exception("Send raised: %s", e, extra={"company_id": company_id})
            error = str(e) or type(e).__name__
            await self._record_failure(draft_id, error)
            return DispatchResult(
                success=False,
                company_id=company_id,
                recipient_email=recipient,
                error=error,
                error_kind=SendErrorKind.OTHER,
                attempted=True,
            )

        if not result.success:
            error = result.error or "Failed to send email"
            logger.warning("Send failed: %s", error, extra={"company_id": company_id})
            await self._record_failure(draft_id, error)
            return DispatchResult(
                success=False,
                company_id=company_id,
                recipient_email=recipient,
                error=error,
                error_kind=result.error_kind,
                attempted=True,
            )

        async with self.database.session() as session:
            company = await session.get(Company, company_id)
            draft = await session.get(EmailDraft, draft_id)
            if company is None or draft is None:
                return DispatchResult(
                    success=False,
                    company_id=company_id,
                    recipient_email=recipient,
                    message_id=result.message_id,
                    error=COMPANY_NOT_FOUND,
                    attempted=True,
                )

            draft.sent_at = result.sent_at
            draft.sent_to = recipient
            draft.send_attempts = (draft.send_attempts or 0) + 1
            draft.send_error = None

            transition = self.state_machine.apply(
                session,
                company,
                PipelineState.SENT,
                performed_by,
                {
                    "recipient_email": recipient,
                    "sent_at": result.sent_at.isoformat() if result.sent_at else None,
                },
            )

        if not transition.success:
            logger.error(
                "Email for company %s was accepted but the transition failed: %s",
                company_id,
                transition.error,
            )
            return DispatchResult(
                success=False,
                company_id=company_id,
                recipient_email=recipient,
                message_id=result.message_id,
                error=transition.error,
                attempted=True,
            )

        logger.info(
            "Sent email to %s",
            recipient,
            extra={"company_id": company_id, "pipeline_state": PipelineState.SENT.value},
        )
        return DispatchResult(
            success=True,
            company_id=company_id,
            recipient_email=recipient,
            message_id=result.message_id,
            attempted=True,
        )
