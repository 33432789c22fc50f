"""Company SQLAlchemy model for leads tracked through the outreach pipeline."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, Integer, String, Text, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from . import Base


def utcnow() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class PipelineState(str, Enum):
    """Stage of a company in the outreach pipeline."""

    PENDING_GENERATION = "pending_generation"
    EMAIL_NOT_GENERATED = "email_not_generated"
    PENDING_REVIEW = "pending_review"
    APPROVED_TO_SEND = "approved_to_send"
    SENT = "sent"


class Company(Base):
    """SQLAlchemy model representing an imported company lead.

    A company is created by an import with state ``pending_generation`` and
    moves through the pipeline one validated transition at a time. The target
    contact snapshot is written only by the contact lookup step.

    Attributes:
        id: Unique identifier for the company (UUID).
        apollo_id: Apollo organization id (account id when no organization id exists).
        name: Company name.
        domain: Primary domain, empty string when unknown.
        website: Company website URL.
        industry: Industry label.
        location: Human readable location.
        employee_count: Estimated number of employees.
        target_contact_first_name: First name of the chosen contact.
        target_contact_last_name: Last name of the chosen contact.
        target_contact_email: Revealed email of the chosen contact.
        target_contact_title: Job title of the chosen contact.
        contact_found_at: When the contact snapshot was written.
        pipeline_state: Current pipeline state.
        not_generated_reason: Stored reason payload while in email_not_generated.
        created_at: Timestamp when the company was imported.
        updated_at: Timestamp when the company was last updated.
    """

    __tablename__ = "companies"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )

    # External identity
    apollo_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        unique=True,
        index=True,
        comment="Apollo organization id used for deduplication"
    )

    # Descriptive data
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    domain: Mapped[str] = mapped_column(
        String(255), nullable=False, default="", index=True
    )
    website: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    industry: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    employee_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Target contact snapshot
    target_contact_first_name: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )
    target_contact_last_name: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )
    target_contact_email: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )
    target_contact_title: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )
    contact_found_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Pipeline
    pipeline_state: Mapped[PipelineState] = mapped_column(
        SQLEnum(
            PipelineState,
            name="pipeline_state",
            values_callable=lambda e: [member.value for member in e],
        ),
        nullable=False,
        default=PipelineState.PENDING_GENERATION,
        index=True
    )
    not_generated_reason: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSON(none_as_null=True),
        nullable=True,
        comment="Reason payload, set only while in email_not_generated"
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        index=True
    )

    # Relationship to EmailDraft (one-to-one, owned)
    email: Mapped[Optional["EmailDraft"]] = relationship(
        "EmailDraft",
        back_populates="company",
        uselist=False,
        cascade="all, delete-orphan",
        lazy="selectin"
    )

    def __repr__(self) -> str:
        return (
            f"<Company(id={self.id!r}, name={self.name!r}, "
            f"state={self.pipeline_state.value!r})>"
        )

    @property
    def contact_name(self) -> str:
        """Full name of the target contact, empty when none is recorded."""
        parts = [self.target_contact_first_name, self.target_contact_last_name]
        return " ".join(p for p in parts if p)

    def to_dict(self, include_email: bool = True) -> dict[str, Any]:
        """Convert company to dictionary representation.

        Args:
            include_email: Whether to embed the draft, if loaded.

        Returns:
            Dictionary with all company fields.
        """
        data = {
            "id": self.id,
            "apollo_id": self.apollo_id,
            "name": self.name,
            "domain": self.domain,
            "website": self.website,
            "industry": self.industry,
            "location": self.location,
            "employee_count": self.employee_count,
            "target_contact_first_name": self.target_contact_first_name,
            "target_contact_last_name": self.target_contact_last_name,
            "target_contact_email": self.target_contact_email,
            "target_contact_title": self.target_contact_title,
            "contact_found_at": self.contact_found_at.isoformat() if self.contact_found_at else None,
            "pipeline_state": self.pipeline_state.value,
            "not_generated_reason": self.not_generated_reason,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_email:
            data["email"] = self.email.to_dict() if self.email else None
        return data
