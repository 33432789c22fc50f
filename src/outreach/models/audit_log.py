"""AuditLog SQLAlchemy model for the append-only pipeline history."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, String, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from . import Base
from .company import utcnow


class AuditAction(str, Enum):
    """Kinds of actions recorded in the audit log."""

    STATE_CHANGE = "state_change"
    EMAIL_GENERATED = "email_generated"
    EMAIL_REVIEWED = "email_reviewed"
    EMAIL_APPROVED = "email_approved"
    EMAIL_DELETED = "email_deleted"


class AuditLog(Base):
    """SQLAlchemy model representing one audit entry.

    Rows are only inserted. They are removed only by a bulk delete of the
    entity they describe or by a full database reset.

    Attributes:
        id: Unique identifier for the entry (UUID).
        entity_type: Kind of entity described ("company" or "email").
        entity_id: Id of the described entity (weak reference, no foreign key).
        action: What happened.
        from_state: Pipeline state before a transition.
        to_state: Pipeline state after a transition.
        details: Arbitrary metadata payload (stored in the "metadata" column).
        performed_by: Actor identifier.
        created_at: When the entry was written.
    """

    __tablename__ = "audit_logs"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    action: Mapped[AuditAction] = mapped_column(
        SQLEnum(
            AuditAction,
            name="audit_action",
            values_callable=lambda e: [member.value for member in e],
        ),
        nullable=False,
        index=True
    )
    from_state: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    to_state: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    details: Mapped[Optional[dict[str, Any]]] = mapped_column(
        "metadata",
        JSON(none_as_null=True),
        nullable=True
    )
    performed_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        index=True
    )

    def __repr__(self) -> str:
        return (
            f"<AuditLog(entity_id={self.entity_id!r}, action={self.action.value!r}, "
            f"{self.from_state!r}->{self.to_state!r})>"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert audit entry to dictionary representation."""
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action.value,
            "from_state": self.from_state,
            "to_state": self.to_state,
            "metadata": self.details,
            "performed_by": self.performed_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
