"""AppSettings model storing the sender identity for outgoing email."""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from . import Base
from .company import utcnow
from ..constants import DEFAULT_SETTINGS_ID


class AppSettings(Base):
    """Single-row settings table keyed by ``id="default"``."""

    __tablename__ = "settings"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=DEFAULT_SETTINGS_ID
    )
    sender_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    sender_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "sender_email": self.sender_email,
            "sender_name": self.sender_name,
        }
