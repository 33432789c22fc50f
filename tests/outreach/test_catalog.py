"""Tests for target titles, the stored prompt, sender settings and cleanup."""

import pytest

from conftest import create_company, organization
from outreach.constants import DEFAULT_SYSTEM_PROMPT, TARGET_TITLES
from outreach.pipeline import Catalog


class TestTargetTitles:
    """Tests for the prioritized title list."""

    @pytest.mark.asyncio
    async def test_seeding_is_idempotent(self, database):
        catalog = Catalog(database)

        first = await catalog.seed_default_titles()
        second = await catalog.seed_default_titles()

        titles = await catalog.list_titles()
        assert first == len(TARGET_TITLES)
        assert second == 0
        assert [t.title for t in titles] == list(TARGET_TITLES)

    @pytest.mark.asyncio
    async def test_empty_table_seeded_on_list(self, database):
        titles = await Catalog(database).list_titles()

        assert len(titles) == len(TARGET_TITLES)

    @pytest.mark.asyncio
    async def test_added_title_goes_last(self, catalog):
        before = await catalog.list_titles()

        record = await catalog.add_title("  Head of Partnerships ")

        titles = await catalog.list_titles()
        assert record.title == "Head of Partnerships"
        assert record.priority == max(t.priority for t in before) + 1
        assert titles[-1].id == record.id
        assert len(titles) == len(before) + 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("title", ["", "   ", TARGET_TITLES[0]])
    async def test_invalid_or_duplicate_title(self, catalog, title):
        with pytest.raises(ValueError):
            await catalog.add_title(title)

    @pytest.mark.asyncio
    async def test_inactive_titles_not_searched(self, catalog, contact_resolver, apollo):
        titles = await catalog.list_titles()
        await catalog.set_title_active(titles[0].id, False)

        await contact_resolver.resolve("org_1")

        _, searched = apollo.search_calls[0]
        assert TARGET_TITLES[0] not in searched
        assert searched == list(TARGET_TITLES[1:])

    @pytest.mark.asyncio
    async def test_remove_titles(self, catalog):
        titles = await catalog.list_titles()

        removed = await catalog.remove_titles([titles[0].id, titles[1].id])

        remaining = await catalog.list_titles(seed_if_empty=False)
        assert removed == 2
        assert len(remaining) == len(TARGET_TITLES) - 2

    @pytest.mark.asyncio
    async def test_unknown_title_cannot_be_toggled(self, catalog):
        with pytest.raises(ValueError):
            await catalog.set_title_active("missing", True)


class TestPromptAndSettings:
    """Tests for the stored prompt and sender settings."""

    @pytest.mark.asyncio
    async def test_prompt_created_from_default(self, database):
        prompt = await Catalog(database).get_active_prompt()

        assert prompt.content == DEFAULT_SYSTEM_PROMPT

    @pytest.mark.asyncio
    async def test_prompt_update(self, database):
        catalog = Catalog(database)

        await catalog.update_active_prompt("Write briefly.")

        assert (await catalog.get_active_prompt()).content == "Write briefly."
        with pytest.raises(ValueError):
            await catalog.update_active_prompt("  ")

    @pytest.mark.asyncio
    async def test_settings_default_sender(self, database):
        settings = await Catalog(database, default_sender_email="ops@example.com").get_settings()

        assert settings.sender_email == "ops@example.com"
        assert settings.sender_name is None

    @pytest.mark.asyncio
    async def test_invalid_sender_rejected(self, database):
        with pytest.raises(ValueError):
            await Catalog(database).update_settings("not-an-email")


class TestCleanup:
    """Tests for dedup records and clearing the database."""

    @pytest.mark.asyncio
    async def test_fetched_ids_and_clear(self, database, orchestrator, catalog):
        await orchestrator.import_companies([organization("org_1", "Acme", "acme.com")])
        await create_company(database, name="Beta")

        assert await catalog.fetched_organization_ids() == ["org_1"]

        await catalog.clear_database()

        stats = await orchestrator.state_machine.get_pipeline_stats()
        assert stats["total"] == 0
        assert await catalog.fetched_organization_ids() == []
        assert await catalog.list_titles(seed_if_empty=False) == []
