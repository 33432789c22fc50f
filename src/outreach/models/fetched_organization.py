"""FetchedOrganization model marking Apollo organizations already imported."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from . import Base
from .company import utcnow


class FetchedOrganization(Base):
    """Dedup record for an Apollo organization id.

    Search results whose id appears here are hidden from future searches.
    Written by upsert on import; removed only by delete-with-dedup or reset.
    """

    __tablename__ = "fetched_organizations"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )
    apollo_id: Mapped[str] = mapped_column(
        String(64), nullable=False, unique=True, index=True
    )
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    domain: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    fetched_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    def __repr__(self) -> str:
        return f"<FetchedOrganization(apollo_id={self.apollo_id!r})>"
