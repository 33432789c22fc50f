"""Contact lookup: choose the person at a company to write to."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import select

from ..config import ConfigError
from ..constants import MAX_CONTACT_CANDIDATES
from ..integrations.apollo import ApolloClient, ApolloPerson
from ..models import Company, Database, TargetTitle
from .state_machine import COMPANY_NOT_FOUND

logger = logging.getLogger(__name__)

NO_ACTIVE_TITLES = "No active target titles found. Add titles before searching for contacts."


@dataclass
class ContactResult:
    """Outcome of a contact lookup.

    ``person`` is None when nobody usable was found. A person without an
    ``enriched_email`` means a contact exists but no address could be
    revealed.
    """

    person: Optional[ApolloPerson] = None
    enriched_email: Optional[str] = None
    title: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.person is not None

    @property
    def has_email(self) -> bool:
        return bool(self.enriched_email)

    def to_dict(self) -> dict[str, Any]:
        return {
            "person": self.person.to_dict() if self.person else None,
            "enriched_email": self.enriched_email,
            "title": self.title,
        }


@dataclass
class ContactLookupResult:
    """Result of the single-company find-contact action."""

    success: bool
    company_id: str
    contact: Optional[ContactResult] = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "company_id": self.company_id,
            "contact": self.contact.to_dict() if self.contact else None,
            "has_email": bool(self.contact and self.contact.has_email),
            "error": self.error,
        }


def apply_contact_snapshot(company: Company, contact: ContactResult) -> None:
    """Write the contact snapshot onto a company."""
    person = contact.person
    company.target_contact_first_name = person.first_name if person else None
    company.target_contact_last_name = person.last_name if person else None
    company.target_contact_email = contact.enriched_email
    company.target_contact_title = contact.title or (person.title if person else None)
    company.contact_found_at = datetime.now(timezone.utc)


class ContactResolver:
    """Finds the best contact at a company through Apollo.

    Args:
        database: Database holding the target title list.
        apollo: Apollo client (or any object with the same search methods).
    """

    def __init__(self, database: Database, apollo: ApolloClient) -> None:
        self.database = database
        self.apollo = apollo

    async def active_titles(self) -> list[str]:
        """Active target titles in priority order.

        Raises:
            ConfigError: If no title is active.
        """
        async with self.database.session() as session:
            rows = await session.scalars(
                select(TargetTitle.title)
                .where(TargetTitle.is_active.is_(True))
                .order_by(TargetTitle.priority.asc(), TargetTitle.title)
            )
            titles = list(rows.all())

        if not titles:
            raise ConfigError(NO_ACTIVE_TITLES)
        return titles

    async def resolve(self, organization_id: str) -> ContactResult:
        """Pick the best contact for an Apollo organization.

        The first of the top candidates with a first name that either
        carries an email or reveals one through enrichment wins. If nobody
        yields an email, the first named candidate is returned without one.
        An empty result means nobody usable was found.

        Raises:
            ConfigError: If no target titles are active.
            ApolloError: On transport or provider failures.
        """
        titles = await self.active_titles()
        people = await self.apollo.search_people(organization_id, titles)

        fallback: Optional[ApolloPerson] = None
        for candidate in people[:MAX_CONTACT_CANDIDATES]:
            if not candidate.first_name:
                continue
            if fallback is None:
                fallback = candidate

            if candidate.email:
                return ContactResult(
                    person=candidate,
                    enriched_email=candidate.email,
                    title=candidate.title,
                )

            # Only spend an enrichment call when Apollo says an email exists
            if candidate.has_email and candidate.id:
                enriched = await self.apollo.enrich_person(candidate.id)
                if enriched is not None and enriched.email:
                    candidate.email = enriched.email
                    return ContactResult(
                        person=candidate,
                        enriched_email=enriched.email,
                        title=candidate.title,
                    )

        if fallback is not None:
            logger.info(
                "Contact %s found for %s but no email could be revealed",
                fallback.first_name,
                organization_id,
            )
            return ContactResult(person=fallback, title=fallback.title)
        return ContactResult()

    async def find_contact(self, company_id: str) -> ContactLookupResult:
        """Look up and store the contact for a single company.

        Provider and configuration failures are returned as errors.
        """
        async with self.database.session() as session:
            company = await session.get(Company, company_id)
            apollo_id = company.apollo_id if company else None
        if company is None:
            return ContactLookupResult(success=False, company_id=company_id, error=COMPANY_NOT_FOUND)
        if not apollo_id:
            return ContactLookupResult(
                success=False,
                company_id=company_id,
                error="Company has no Apollo ID (organization_id)",
            )

        try:
            contact = await self.resolve(apollo_id)
        except Exception as e:
            logger.exception("Contact lookup failed for company %s", company_id)
            return ContactLookupResult(success=False, company_id=company_id, error=str(e))

        if not contact.found:
            return ContactLookupResult(
                success=False,
                company_id=company_id,
                contact=contact,
                error="No contacts found for this company with target titles",
            )

        async with self.database.session() as session:
            company = await session.get(Company, company_id)
            if company is None:
                return ContactLookupResult(success=False, company_id=company_id, error=COMPANY_NOT_FOUND)
            apply_contact_snapshot(company, contact)

        return ContactLookupResult(success=True, company_id=company_id, contact=contact)
