"""Unit tests for contact resolution through a fake Apollo client."""

import pytest

from conftest import create_company, load_company, person
from outreach.config import ConfigError
from outreach.constants import TARGET_TITLES
from outreach.integrations.apollo import ApolloRequestError


class TestResolve:
    """Tests for choosing the best contact at an organization."""

    @pytest.mark.asyncio
    async def test_first_candidate_with_email_wins(self, catalog, contact_resolver, apollo):
        apollo.people["org_1"] = [
            person("p1", None, email="anon@acme.com"),
            person("p2", "Ayse", email="ayse@acme.com", title="CTO"),
            person("p3", "Mehmet", email="mehmet@acme.com"),
        ]

        contact = await contact_resolver.resolve("org_1")

        assert contact.found
        assert contact.person.id == "p2"
        assert contact.enriched_email == "ayse@acme.com"
        assert contact.title == "CTO"
        assert apollo.enrich_calls == []

    @pytest.mark.asyncio
    async def test_enrichment_reveals_email(self, catalog, contact_resolver, apollo):
        apollo.people["org_1"] = [person("p1", "Ayse", has_email=True)]
        apollo.enriched["p1"] = person("p1", "Ayse", email="ayse@acme.com")

        contact = await contact_resolver.resolve("org_1")

        assert contact.has_email
        assert contact.enriched_email == "ayse@acme.com"
        assert apollo.enrich_calls == ["p1"]

    @pytest.mark.asyncio
    async def test_candidates_without_email_flag_are_not_enriched(
        self, catalog, contact_resolver, apollo
    ):
        """Test that the first named person is returned without an email."""
        apollo.people["org_1"] = [
            person("p1", "Ayse", has_email=False),
            person("p2", "Mehmet", has_email=True),
        ]

        contact = await contact_resolver.resolve("org_1")

        assert contact.found
        assert not contact.has_email
        assert contact.person.id == "p1"
        assert apollo.enrich_calls == ["p2"]

    @pytest.mark.asyncio
    async def test_only_top_ten_candidates_checked(self, catalog, contact_resolver, apollo):
        apollo.people["org_1"] = [person(f"p{i}", None) for i in range(10)] + [
            person("p10", "Late", email="late@acme.com")
        ]

        contact = await contact_resolver.resolve("org_1")

        assert not contact.found

    @pytest.mark.asyncio
    async def test_titles_sent_in_priority_order(self, catalog, contact_resolver, apollo):
        await contact_resolver.resolve("org_1")

        _, titles = apollo.search_calls[0]
        assert titles == list(TARGET_TITLES)

    @pytest.mark.asyncio
    async def test_no_active_titles_is_config_error(self, database, contact_resolver):
        with pytest.raises(ConfigError):
            await contact_resolver.resolve("org_1")

    @pytest.mark.asyncio
    async def test_transport_errors_propagate(self, catalog, contact_resolver, apollo):
        apollo.failing["org_1"] = ApolloRequestError("connection reset")

        with pytest.raises(ApolloRequestError):
            await contact_resolver.resolve("org_1")


class TestFindContact:
    """Tests for the single-company find-contact action."""

    @pytest.mark.asyncio
    async def test_snapshot_persisted(self, database, catalog, contact_resolver, apollo):
        company_id = await create_company(database, apollo_id="org_1")
        apollo.people["org_1"] = [person("p1", "Ayse", email="ayse@acme.com", title="CTO")]

        result = await contact_resolver.find_contact(company_id)

        company = await load_company(database, company_id)
        assert result.success
        assert result.to_dict()["has_email"] is True
        assert company.target_contact_first_name == "Ayse"
        assert company.target_contact_last_name == "Doe"
        assert company.target_contact_email == "ayse@acme.com"
        assert company.target_contact_title == "CTO"
        assert company.contact_found_at is not None

    @pytest.mark.asyncio
    async def test_company_without_apollo_id(self, database, catalog, contact_resolver):
        company_id = await create_company(database)

        result = await contact_resolver.find_contact(company_id)

        assert not result.success
        assert "Apollo ID" in result.error

    @pytest.mark.asyncio
    async def test_nobody_found(self, database, catalog, contact_resolver):
        company_id = await create_company(database, apollo_id="org_1")

        result = await contact_resolver.find_contact(company_id)

        company = await load_company(database, company_id)
        assert not result.success
        assert company.contact_found_at is None

    @pytest.mark.asyncio
    async def test_provider_error_is_returned(self, database, catalog, contact_resolver, apollo):
        company_id = await create_company(database, apollo_id="org_1")
        apollo.failing["org_1"] = ApolloRequestError("connection reset")

        result = await contact_resolver.find_contact(company_id)

        assert not result.success
        assert result.error == "connection reset"
