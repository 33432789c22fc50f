"""Apollo.io client for company search and contact discovery.

This module wraps the three Apollo endpoints the outreach pipeline uses:
organization search, people search by organization and title, and person
enrichment to reveal an email address.
"""

import asyncio
import json
import logging
import os
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass, field
from typing import Any, Optional

from ..constants import APOLLO_BASE_URL, APOLLO_PEOPLE_PAGE_SIZE

logger = logging.getLogger(__name__)

# Constants
DEFAULT_TIMEOUT_SECONDS = 30
DEFAULT_EMPLOYEE_MAX = 10000


class ApolloError(Exception):
    """Base exception for Apollo client errors."""

    pass


class ApolloRateLimitError(ApolloError):
    """Raised when API rate limit is exceeded."""

    pass


class ApolloAuthError(ApolloError):
    """Raised when API authentication fails."""

    pass


class ApolloNotFoundError(ApolloError):
    """Raised when requested resource is not found."""

    pass


class ApolloRequestError(ApolloError):
    """Raised when a request fails for any other reason."""

    pass


@dataclass
class CompanySearchFilters:
    """Filters for an Apollo organization search.

    Attributes:
        locations: Headquarters locations (e.g. "Istanbul, Turkey").
        employee_count_min: Lower bound of employee count.
        employee_count_max: Upper bound of employee count.
        industries: Industry keywords, merged into keyword tags.
        keywords: Organization keyword tags.
    """

    locations: list[str] = field(default_factory=list)
    employee_count_min: Optional[int] = None
    employee_count_max: Optional[int] = None
    industries: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)

    def to_query(self, page: int, per_page: int) -> list[tuple[str, str]]:
        """Build Apollo query parameters, repeating keys for list values."""
        params: list[tuple[str, str]] = [
            ("page", str(page)),
            ("per_page", str(per_page)),
        ]
        for location in self.locations:
            params.append(("organization_locations[]", location))

        if self.employee_count_min is not None or self.employee_count_max is not None:
            low = self.employee_count_min or 0
            high = self.employee_count_max or DEFAULT_EMPLOYEE_MAX
            params.append(("organization_num_employees_ranges[]", f"{low},{high}"))

        for tag in [*self.keywords, *self.industries]:
            params.append(("q_organization_keyword_tags[]", tag))
        return params


@dataclass
class ApolloOrganization:
    """Organization record returned by company search.

    ``organization_id`` is the id people search expects; it falls back to
    the account id when Apollo returns only an account.
    """

    id: str
    name: str
    organization_id: Optional[str] = None
    domain: Optional[str] = None
    website_url: Optional[str] = None
    industry: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    employee_count: Optional[int] = None

    @property
    def external_id(self) -> str:
        """Id used for lead deduplication: organization id over account id."""
        return self.organization_id or self.id

    @property
    def location(self) -> Optional[str]:
        parts = [p for p in (self.city, self.state, self.country) if p]
        return ", ".join(parts) or None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "name": self.name,
            "domain": self.domain,
            "website_url": self.website_url,
            "industry": self.industry,
            "city": self.city,
            "state": self.state,
            "country": self.country,
            "employee_count": self.employee_count,
        }


@dataclass
class ApolloPerson:
    """Person record returned by people search or enrichment."""

    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    title: Optional[str] = None
    organization_id: Optional[str] = None
    has_email: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "title": self.title,
            "organization_id": self.organization_id,
            "has_email": self.has_email,
        }


@dataclass
class CompanySearchResult:
    """A page of company search results."""

    companies: list[ApolloOrganization] = field(default_factory=list)
    page: int = 1
    per_page: int = 0
    total_entries: int = 0
    total_pages: int = 0


class ApolloClient:
    """Client for the Apollo.io API with async support.

    Blocking HTTP calls run in the default executor. The client never
    retries on its own; callers decide what a failure means.

    Attributes:
        api_key: Apollo.io API key.
        timeout_seconds: Request timeout in seconds.

    Example:
        >>> client = ApolloClient()
        >>> people = await client.search_people("5f2a...", ["CEO", "Founder"])
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS,
        base_url: str = APOLLO_BASE_URL,
    ) -> None:
        """Initialize Apollo client.

        Args:
            api_key: Apollo.io API key. Defaults to APOLLO_API_KEY env var.
            timeout_seconds: Request timeout in seconds. Defaults to 30.
            base_url: API base URL.

        Raises:
            ValueError: If no API key is provided or found in environment.
        """
        self.api_key = api_key or os.environ.get("APOLLO_API_KEY")
        if not self.api_key:
            raise ValueError(
                "Apollo API key required. Set APOLLO_API_KEY environment "
                "variable or pass api_key parameter."
            )

        self.timeout_seconds = timeout_seconds
        self.base_url = base_url.rstrip("/")
        logger.info("ApolloClient initialized with %ds timeout", timeout_seconds)

    def _make_request_sync(
        self,
        endpoint: str,
        body: dict[str, Any],
        query: Optional[list[tuple[str, str]]] = None,
    ) -> dict[str, Any]:
        """Make a synchronous POST request.

        Args:
            endpoint: API endpoint path.
            body: JSON request body.
            query: Query parameters; keys may repeat.

        Returns:
            Parsed JSON response.

        Raises:
            ApolloAuthError: If authentication fails.
            ApolloNotFoundError: If the endpoint or resource is missing.
            ApolloRateLimitError: If rate limit is exceeded.
            ApolloRequestError: If the request fails otherwise.
        """
        url = f"{self.base_url}{endpoint}"
        if query:
            url = f"{url}?{urllib.parse.urlencode(query)}"

        req = urllib.request.Request(
            url,
            data=json.dumps(body).encode("utf-8"),
            headers={
                "Content-Type": "application/json",
                "Cache-Control": "no-cache",
                "X-Api-Key": self.api_key,
            },
            method="POST",
        )

        logger.debug("Apollo request to %s", endpoint)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_seconds) as response:
                return json.loads(response.read().decode("utf-8"))
        except urllib.error.HTTPError as e:
            if e.code in (401, 403):
                raise ApolloAuthError("Invalid API key or unauthorized access") from e
            elif e.code == 404:
                raise ApolloNotFoundError(f"Resource not found: {endpoint}") from e
            elif e.code == 429:
                raise ApolloRateLimitError("API rate limit exceeded") from e
            else:
                error_body = e.read().decode("utf-8") if e.fp else str(e)
                raise ApolloRequestError(f"Apollo API error: {e.code} - {error_body}") from e
        except urllib.error.URLError as e:
            raise ApolloRequestError(f"Request failed: {e.reason}") from e

    async def _make_request(
        self,
        endpoint: str,
        body: dict[str, Any],
        query: Optional[list[tuple[str, str]]] = None,
    ) -> dict[str, Any]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, lambda: self._make_request_sync(endpoint, body, query)
        )

    @staticmethod
    def _parse_organization(data: dict[str, Any]) -> ApolloOrganization:
        employee_count = data.get("employee_count") or data.get("organization_headcount")
        try:
            employee_count = int(employee_count) if employee_count else None
        except (TypeError, ValueError):
            employee_count = None

        return ApolloOrganization(
            id=data["id"],
            organization_id=data.get("organization_id") or data["id"],
            name=data.get("name") or "",
            domain=data.get("primary_domain") or data.get("domain") or None,
            website_url=data.get("website_url") or None,
            industry=data.get("industry") or None,
            city=data.get("city") or None,
            state=data.get("state") or None,
            country=data.get("country") or None,
            employee_count=employee_count,
        )

    @staticmethod
    def _parse_person(data: dict[str, Any]) -> ApolloPerson:
        organization = data.get("organization") or {}
        return ApolloPerson(
            id=data.get("id") or "",
            first_name=data.get("first_name") or None,
            last_name=data.get("last_name") or None,
            email=data.get("email") or None,
            title=data.get("title") or None,
            organization_id=organization.get("id") or data.get("organization_id") or None,
            has_email=bool(data.get("has_email")),
        )

    async def search_companies(
        self,
        filters: CompanySearchFilters,
        page: int = 1,
        per_page: int = 50,
    ) -> CompanySearchResult:
        """Search organizations matching the given filters.

        Accounts and organizations in the response are merged and
        deduplicated by id, keeping the last occurrence.

        Args:
            filters: Search filters.
            page: Page number (1-based).
            per_page: Results per page.

        Returns:
            CompanySearchResult with parsed organizations and pagination.
        """
        response = await self._make_request(
            "/mixed_companies/search", {}, filters.to_query(page, per_page)
        )

        records = (response.get("accounts") or []) + (response.get("organizations") or [])
        unique: dict[str, ApolloOrganization] = {}
        for record in records:
            if not record.get("id"):
                continue
            organization = self._parse_organization(record)
            unique[organization.id] = organization

        pagination = response.get("pagination") or {}
        result = CompanySearchResult(
            companies=list(unique.values()),
            page=pagination.get("page", page),
            per_page=pagination.get("per_page", per_page),
            total_entries=pagination.get("total_entries", 0),
            total_pages=pagination.get("total_pages", 0),
        )
        logger.info(
            "Apollo company search returned %d companies (page %d)",
            len(result.companies),
            result.page,
        )
        return result

    async def search_people(
        self,
        organization_id: str,
        titles: list[str],
    ) -> list[ApolloPerson]:
        """Find people at an organization whose titles match the target list.

        Titles are sent in reverse priority order with similar titles
        included. This endpoint only reports ``has_email``; use
        :meth:`enrich_person` to reveal the address.

        Raises:
            ValueError: If organization_id is empty.
        """
        if not organization_id:
            raise ValueError("organization_id is required for people search")

        query: list[tuple[str, str]] = [
            ("organization_ids[]", organization_id),
            ("page", "1"),
            ("per_page", str(APOLLO_PEOPLE_PAGE_SIZE)),
            ("include_similar_titles", "true"),
        ]
        for title in reversed(titles):
            query.append(("person_titles[]", title))

        response = await self._make_request("/mixed_people/api_search", {}, query)
        people = [self._parse_person(p) for p in response.get("people") or []]
        logger.debug(
            "Apollo people search for %s returned %d people", organization_id, len(people)
        )
        return people

    async def enrich_person(self, person_id: str) -> Optional[ApolloPerson]:
        """Reveal a person's work email by Apollo person id.

        Raises:
            ValueError: If person_id is empty.
        """
        if not person_id:
            raise ValueError("person_id is required for enrichment")

        response = await self._make_request(
            "/people/match",
            {
                "person_id": person_id,
                "reveal_personal_emails": False,
                "reveal_phone_number": False,
            },
        )
        person = response.get("person")
        return self._parse_person(person) if person else None
