"""Settings-like records the pipeline reads: target titles, prompt, sender."""

import logging
from typing import Optional

from sqlalchemy import delete, func, select

from ..constants import (
    ACTIVE_PROMPT_NAME,
    DEFAULT_SETTINGS_ID,
    DEFAULT_SYSTEM_PROMPT,
    TARGET_TITLES,
)
from ..integrations.sendgrid import validate_email
from ..models import (
    AppSettings,
    AuditLog,
    Company,
    Database,
    EmailDraft,
    FetchedOrganization,
    Prompt,
    TargetTitle,
)

logger = logging.getLogger(__name__)


class Catalog:
    """Reads and edits the catalog tables.

    Invalid input raises ``ValueError``.

    Args:
        database: Database holding the catalog tables.
        default_sender_email: Sender stored when settings are first created.
    """

    def __init__(self, database: Database, default_sender_email: Optional[str] = None) -> None:
        self.database = database
        self.default_sender_email = default_sender_email

    # Target titles

    async def list_titles(self, seed_if_empty: bool = True) -> list[TargetTitle]:
        """All titles in priority order, seeding the defaults into an empty table."""
        if seed_if_empty:
            async with self.database.session() as session:
                count = await session.scalar(select(func.count(TargetTitle.id)))
            if not count:
                await self.seed_default_titles()

        async with self.database.session() as session:
            rows = await session.scalars(
                select(TargetTitle).order_by(TargetTitle.priority.asc(), TargetTitle.title)
            )
            return list(rows.all())

    async def seed_default_titles(self) -> int:
        """Add missing default titles and align priorities with the default order.

        Returns:
            Number of titles added.
        """
        added = 0
        async with self.database.session() as session:
            existing = {t.title: t for t in (await session.scalars(select(TargetTitle))).all()}
            max_priority = max((t.priority for t in existing.values()), default=-1)

            for title in TARGET_TITLES:
                if title not in existing:
                    max_priority += 1
                    record = TargetTitle(title=title, priority=max_priority, is_active=True)
                    session.add(record)
                    existing[title] = record
                    added += 1

            for index, title in enumerate(TARGET_TITLES):
                existing[title].priority = index

        logger.info("Seeded %d default target titles", added)
        return added

    async def add_title(self, title: str) -> TargetTitle:
        """Append a title after the current lowest-priority one."""
        title = (title or "").strip()
        if not title:
            raise ValueError("Title is required")

        async with self.database.session() as session:
            duplicate = await session.scalar(
                select(TargetTitle.id).where(TargetTitle.title == title)
            )
            if duplicate is not None:
                raise ValueError(f"Title already exists: {title}")

            max_priority = await session.scalar(select(func.max(TargetTitle.priority)))
            record = TargetTitle(
                title=title,
                priority=(max_priority if max_priority is not None else -1) + 1,
                is_active=True,
            )
            session.add(record)
        return record

    async def remove_titles(self, title_ids: list[str]) -> int:
        """Delete titles by id. Returns the number removed."""
        if not title_ids:
            raise ValueError("At least one title id is required")
        async with self.database.session() as session:
            result = await session.execute(
                delete(TargetTitle).where(TargetTitle.id.in_(title_ids))
            )
        return result.rowcount or 0

    async def set_title_active(self, title_id: str, is_active: bool) -> TargetTitle:
        async with self.database.session() as session:
            record = await session.get(TargetTitle, title_id)
            if record is None:
                raise ValueError(f"Title not found: {title_id}")
            record.is_active = is_active
        return record

    # Active prompt

    async def get_active_prompt(self) -> Prompt:
        """Return the stored prompt, creating it from the default when missing."""
        async with self.database.session() as session:
            prompt = await session.scalar(
                select(Prompt).where(Prompt.name == ACTIVE_PROMPT_NAME)
            )
            if prompt is None:
                prompt = Prompt(name=ACTIVE_PROMPT_NAME, content=DEFAULT_SYSTEM_PROMPT, is_active=True)
                session.add(prompt)
        return prompt

    async def update_active_prompt(self, content: str) -> Prompt:
        if not content or not content.strip():
            raise ValueError("Content is required")

        async with self.database.session() as session:
            prompt = await session.scalar(
                select(Prompt).where(Prompt.name == ACTIVE_PROMPT_NAME)
            )
            if prompt is None:
                prompt = Prompt(name=ACTIVE_PROMPT_NAME, content=content, is_active=True)
                session.add(prompt)
            else:
                prompt.content = content
                prompt.is_active = True
        return prompt

    # Sender settings

    async def get_settings(self) -> AppSettings:
        """Return the sender settings, creating the default row when missing."""
        async with self.database.session() as session:
            settings = await session.get(AppSettings, DEFAULT_SETTINGS_ID)
            if settings is None:
                settings = AppSettings(
                    id=DEFAULT_SETTINGS_ID,
                    sender_email=self.default_sender_email or None,
                )
                session.add(settings)
        return settings

    async def update_settings(
        self,
        sender_email: Optional[str],
        sender_name: Optional[str] = None,
    ) -> AppSettings:
        if sender_email and not validate_email(sender_email):
            raise ValueError("Invalid sender email address format")

        async with self.database.session() as session:
            settings = await session.get(AppSettings, DEFAULT_SETTINGS_ID)
            if settings is None:
                settings = AppSettings(id=DEFAULT_SETTINGS_ID)
                session.add(settings)
            settings.sender_email = sender_email or None
            settings.sender_name = sender_name or None
        return settings

    # Dedup records

    async def fetched_organization_ids(self) -> list[str]:
        """Apollo ids already imported, for hiding them from search results."""
        async with self.database.session() as session:
            rows = await session.scalars(select(FetchedOrganization.apollo_id))
            return list(rows.all())

    async def clear_database(self) -> None:
        """Delete all pipeline data in one transaction.

        This is the only path that removes audit rows outside a bulk delete.
        """
        async with self.database.session() as session:
            await session.execute(delete(EmailDraft))
            await session.execute(delete(AuditLog))
            await session.execute(delete(Company))
            await session.execute(delete(FetchedOrganization))
            await session.execute(delete(Prompt))
            await session.execute(delete(TargetTitle))
        logger.warning("Database cleared")
