"""EmailDraft SQLAlchemy model for generated outreach emails."""

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from . import Base
from .company import utcnow


class EmailDraft(Base):
    """SQLAlchemy model representing the email drafted for one company.

    The generated subject and body are written once by generation. Human
    edits live in the ``edited_*`` fields and the ``final_*`` fields are
    frozen at approval time; once ``approved_at`` is set the final fields
    are the content that gets sent.

    Attributes:
        id: Unique identifier for the draft (UUID).
        company_id: Foreign key to the owning company (unique).
        subject: Generated subject line.
        body: Generated plain-text body.
        edited_subject: Subject after human review.
        edited_body: Body after human review.
        final_subject: Subject frozen at approval.
        final_body: Body frozen at approval.
        prompt_used: Prompt text the draft was generated from.
        model_used: Model identifier that produced the draft.
        generated_at: When the draft was generated.
        reviewed_at: When the draft was last edited.
        reviewed_by: Reviewer identifier.
        approved_at: When the draft was approved.
        approved_by: Approver identifier.
        sent_at: When the provider accepted the email.
        sent_to: Recipient address the email was sent to.
        send_attempts: Number of send attempts so far.
        send_error: Error from the most recent failed attempt.
    """

    __tablename__ = "emails"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )

    company_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True
    )

    # Generated content
    subject: Mapped[str] = mapped_column(Text, nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)

    # Review / approval content
    edited_subject: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    edited_body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    final_subject: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    final_body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Generation provenance
    prompt_used: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    model_used: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Lifecycle timestamps
    generated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    reviewed_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    approved_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Delivery
    sent_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    sent_to: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    send_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    send_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    company: Mapped["Company"] = relationship(
        "Company",
        back_populates="email"
    )

    def __repr__(self) -> str:
        return f"<EmailDraft(id={self.id!r}, company_id={self.company_id!r})>"

    @property
    def current_subject(self) -> str:
        """Subject a reviewer currently sees: edited if present, else generated."""
        return self.edited_subject or self.subject

    @property
    def current_body(self) -> str:
        """Body a reviewer currently sees: edited if present, else generated."""
        return self.edited_body or self.body

    @property
    def content_to_send(self) -> tuple[str, str]:
        """Subject and body to deliver, preferring the frozen final content."""
        return (
            self.final_subject or self.current_subject,
            self.final_body or self.current_body,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert draft to dictionary representation."""

        def iso(value: Optional[datetime]) -> Optional[str]:
            return value.isoformat() if value else None

        return {
            "id": self.id,
            "company_id": self.company_id,
            "subject": self.subject,
            "body": self.body,
            "edited_subject": self.edited_subject,
            "edited_body": self.edited_body,
            "final_subject": self.final_subject,
            "final_body": self.final_body,
            "prompt_used": self.prompt_used,
            "model_used": self.model_used,
            "generated_at": iso(self.generated_at),
            "reviewed_at": iso(self.reviewed_at),
            "reviewed_by": self.reviewed_by,
            "approved_at": iso(self.approved_at),
            "approved_by": self.approved_by,
            "sent_at": iso(self.sent_at),
            "sent_to": self.sent_to,
            "send_attempts": self.send_attempts,
            "send_error": self.send_error,
        }
