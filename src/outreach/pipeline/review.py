"""Human review of drafts: edit, approve and discard."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..integrations.sendgrid import validate_email
from ..models import AuditAction, AuditLog, Company, Database, PipelineState
from .state_machine import COMPANY_NOT_FOUND, PipelineStateMachine

logger = logging.getLogger(__name__)

NO_DRAFT = "No email found for this company"


class _RollbackError(Exception):
    """Aborts a unit of work after a failed step so nothing is committed."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


@dataclass
class ReviewResult:
    """Outcome of a review, approve or delete-draft action."""

    success: bool
    company_id: str
    email_id: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "success": self.success,
            "company_id": self.company_id,
            "email_id": self.email_id,
            "error": self.error,
        }


class DraftReviewService:
    """Review, approve and discard drafts.

    Each action runs as one unit of work: either every write it makes is
    committed or none is.

    Args:
        database: Database with companies and drafts.
        state_machine: State machine used for approval transitions.
    """

    def __init__(self, database: Database, state_machine: PipelineStateMachine) -> None:
        self.database = database
        self.state_machine = state_machine

    async def review(
        self,
        company_id: str,
        edited_subject: Optional[str],
        edited_body: Optional[str],
        reviewed_by: Optional[str] = None,
        recipient_email: Optional[str] = None,
    ) -> ReviewResult:
        """Store human edits to a draft.

        Edits are trimmed. When the company is already approved the edits
        are also copied into the final content. A non-blank
        ``recipient_email`` replaces the stored contact email.
        """
        subject = (edited_subject or "").strip()
        body = (edited_body or "").strip()
        if not subject or not body:
            return ReviewResult(
                success=False, company_id=company_id, error="Subject and body are required"
            )

        recipient = (recipient_email or "").strip()
        if recipient and not validate_email(recipient):
            return ReviewResult(
                success=False,
                company_id=company_id,
                error=f"Invalid recipient email address: {recipient}",
            )

        try:
            async with self.database.session() as session:
                company = await session.get(Company, company_id)
                if company is None:
                    return ReviewResult(success=False, company_id=company_id, error=COMPANY_NOT_FOUND)
                draft = company.email
                if draft is None:
                    return ReviewResult(success=False, company_id=company_id, error=NO_DRAFT)

                draft.edited_subject = subject
                draft.edited_body = body
                if company.pipeline_state == PipelineState.APPROVED_TO_SEND:
                    draft.final_subject = subject
                    draft.final_body = body
                draft.reviewed_at = datetime.now(timezone.utc)
                draft.reviewed_by = reviewed_by

                if recipient:
                    company.target_contact_email = recipient

                session.add(AuditLog(
                    entity_type="email",
                    entity_id=draft.id,
                    action=AuditAction.EMAIL_REVIEWED,
                    details={
                        "edited_subject": subject != draft.subject,
                        "edited_body": body != draft.body,
                        "recipient_email_changed": bool(recipient),
                        "reviewed_by": reviewed_by,
                    },
                    performed_by=reviewed_by,
                ))
                email_id = draft.id
        except SQLAlchemyError as e:
            logger.exception("Review of company %s failed", company_id)
            return ReviewResult(success=False, company_id=company_id, error=f"Database error: {e}")

        logger.info("Draft for company %s reviewed", company_id)
        return ReviewResult(success=True, company_id=company_id, email_id=email_id)

    async def approve(
        self,
        company_id: str,
        approved_by: Optional[str] = None,
    ) -> ReviewResult:
        """Freeze the current content and move the company to ``approved_to_send``.

        Final content is the edited subject/body where present, else the
        generated one.
        """
        try:
            async with self.database.session() as session:
                company = await session.get(Company, company_id)
                if company is None:
                    return ReviewResult(success=False, company_id=company_id, error=COMPANY_NOT_FOUND)
                if company.pipeline_state != PipelineState.PENDING_REVIEW:
                    return ReviewResult(
                        success=False,
                        company_id=company_id,
                        error="Email must be in pending_review state to approve",
                    )
                draft = company.email
                if draft is None:
                    return ReviewResult(success=False, company_id=company_id, error=NO_DRAFT)

                draft.final_subject = draft.current_subject
                draft.final_body = draft.current_body
                draft.approved_at = datetime.now(timezone.utc)
                draft.approved_by = approved_by

                transition = self.state_machine.apply(
                    session, company, PipelineState.APPROVED_TO_SEND, approved_by
                )
                if not transition.success:
                    raise _RollbackError(transition.error or "Transition failed")

                session.add(AuditLog(
                    entity_type="email",
                    entity_id=draft.id,
                    action=AuditAction.EMAIL_APPROVED,
                    details={"approved_by": approved_by},
                    performed_by=approved_by,
                ))
                email_id = draft.id
        except _RollbackError as e:
            return ReviewResult(success=False, company_id=company_id, error=e.message)
        except SQLAlchemyError as e:
            logger.exception("Approval of company %s failed", company_id)
            return ReviewResult(success=False, company_id=company_id, error=f"Database error: {e}")

        logger.info("Draft for company %s approved", company_id)
        return ReviewResult(success=True, company_id=company_id, email_id=email_id)

    async def delete_draft(
        self,
        company_id: str,
        performed_by: Optional[str] = None,
    ) -> ReviewResult:
        """Discard a company's draft and reset it to ``pending_generation``.

        Writes an ``email_deleted`` audit row with the from/to states.
        Refused for companies that were already sent.
        """
        try:
            async with self.database.session() as session:
                company = await session.get(Company, company_id)
                if company is None:
                    return ReviewResult(success=False, company_id=company_id, error=COMPANY_NOT_FOUND)
                draft = company.email
                if draft is None:
                    return ReviewResult(success=False, company_id=company_id, error=NO_DRAFT)
                if company.pipeline_state == PipelineState.SENT:
                    return ReviewResult(
                        success=False,
                        company_id=company_id,
                        error="Cannot delete the email of a company that was already sent",
                    )

                from_state = company.pipeline_state
                email_id = draft.id
                company.email = None
                company.pipeline_state = PipelineState.PENDING_GENERATION
                company.not_generated_reason = None

                session.add(AuditLog(
                    entity_type="email",
                    entity_id=company_id,
                    action=AuditAction.EMAIL_DELETED,
                    from_state=from_state.value,
                    to_state=PipelineState.PENDING_GENERATION.value,
                    details={"email_id": email_id},
                    performed_by=performed_by,
                ))
        except SQLAlchemyError as e:
            logger.exception("Deleting draft of company %s failed", company_id)
            return ReviewResult(success=False, company_id=company_id, error=f"Database error: {e}")

        logger.info("Draft %s of company %s deleted", email_id, company_id)
        return ReviewResult(success=True, company_id=company_id, email_id=email_id)
