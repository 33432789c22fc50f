"""Shared fixtures for outreach pipeline tests.

Provides a file-backed temporary SQLite database, fake provider clients
(Apollo, language model, SendGrid) and fully wired pipeline services with
a recording sleep function instead of real delays.
"""

import json
import os
import sys
from datetime import datetime, timezone
from typing import Any, Optional

import pytest
import pytest_asyncio
from sqlalchemy import select

# Ensure repo root is on sys.path so imports work correctly
ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
SRC_DIR = os.path.join(ROOT_DIR, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from outreach.integrations.apollo import ApolloOrganization, ApolloPerson
from outreach.integrations.sendgrid import SendErrorKind, SendResult
from outreach.models import AuditLog, Company, Database, EmailDraft, PipelineState
from outreach.pipeline import (
    BatchConfig,
    BatchOrchestrator,
    Catalog,
    ContactResolver,
    DraftGenerator,
    DraftReviewService,
    EmailDispatcher,
    PipelineStateMachine,
    RetryPolicy,
)


# ============================================================================
# Fake Providers
# ============================================================================

class RecordingSleep:
    """Awaitable sleep replacement that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FakeApollo:
    """Apollo stand-in keyed by organization id."""

    def __init__(self) -> None:
        self.people: dict[str, list[ApolloPerson]] = {}
        self.enriched: dict[str, ApolloPerson] = {}
        self.failing: dict[str, Exception] = {}
        self.search_calls: list[tuple[str, list[str]]] = []
        self.enrich_calls: list[str] = []

    async def search_people(self, organization_id: str, titles: list[str]) -> list[ApolloPerson]:
        self.search_calls.append((organization_id, list(titles)))
        if organization_id in self.failing:
            raise self.failing[organization_id]
        return [
            ApolloPerson(**p.to_dict()) for p in self.people.get(organization_id, [])
        ]

    async def enrich_person(self, person_id: str) -> Optional[ApolloPerson]:
        self.enrich_calls.append(person_id)
        return self.enriched.get(person_id)


class FakeLLM:
    """Language model stand-in returning queued responses.

    A queued ``Exception`` instance is raised instead of returned. Once
    the queue is empty the default response is returned.
    """

    model = "fake-model"

    def __init__(self, default: Optional[str] = None) -> None:
        self.responses: list[Any] = []
        self.default = default if default is not None else email_json(
            "Quick question about your team", "Hi {{CONTACT_FIRST_NAME}},\n\nI noticed your work."
        )
        self.prompts: list[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        response = self.responses.pop(0) if self.responses else self.default
        if isinstance(response, Exception):
            raise response
        return response


class FakeSendGrid:
    """SendGrid stand-in that accepts every email unless told otherwise."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.result: Optional[SendResult] = None
        self.error: Optional[Exception] = None

    async def send_email(
        self,
        to_email: str,
        subject: str,
        text_content: str,
        from_email: Optional[str] = None,
        from_name: Optional[str] = None,
    ) -> SendResult:
        self.sent.append({
            "to_email": to_email,
            "subject": subject,
            "text_content": text_content,
            "from_email": from_email,
            "from_name": from_name,
        })
        if self.error is not None:
            raise self.error
        if self.result is not None:
            return self.result
        return SendResult(
            to_email=to_email,
            success=True,
            message_id=f"msg-{len(self.sent)}",
            status_code=202,
            sent_at=datetime.now(timezone.utc),
        )


def email_json(subject: str, body: str) -> str:
    """Model response carrying a draft, wrapped in chatter."""
    return "Here is the email:\n" + json.dumps({"subject": subject, "email_body": body}) + "\nDone."


def sender_unverified_result(to_email: str) -> SendResult:
    return SendResult(
        to_email=to_email,
        success=False,
        status_code=403,
        error="Sender email domain is not verified in SendGrid.",
        error_kind=SendErrorKind.SENDER_UNVERIFIED,
    )


def organization(
    external_id: str,
    name: str,
    domain: Optional[str] = None,
    account_id: Optional[str] = None,
) -> ApolloOrganization:
    return ApolloOrganization(
        id=account_id or external_id,
        organization_id=external_id,
        name=name,
        domain=domain,
        website_url=f"https://{domain}" if domain else None,
        industry="software",
        city="Istanbul",
        country="Turkey",
        employee_count=42,
    )


def person(
    person_id: str,
    first_name: Optional[str],
    email: Optional[str] = None,
    has_email: bool = False,
    title: str = "CEO",
    last_name: Optional[str] = "Doe",
) -> ApolloPerson:
    return ApolloPerson(
        id=person_id,
        first_name=first_name,
        last_name=last_name,
        email=email,
        title=title,
        has_email=has_email,
    )


# ============================================================================
# Database Helpers
# ============================================================================

async def create_company(
    database: Database,
    name: str = "Acme",
    state: PipelineState = PipelineState.PENDING_GENERATION,
    draft: Optional[dict[str, Any]] = None,
    **fields: Any,
) -> str:
    """Insert a company (and optionally its draft) and return its id."""
    fields.setdefault("domain", f"{name.lower().replace(' ', '')}.com")
    async with database.session() as session:
        company = Company(name=name, pipeline_state=state, **fields)
        if draft is not None:
            company.email = EmailDraft(**draft)
        session.add(company)
        await session.flush()
        return company.id


async def load_company(database: Database, company_id: str) -> Optional[Company]:
    async with database.session() as session:
        return await session.get(Company, company_id)


async def audit_rows(database: Database, entity_id: Optional[str] = None) -> list[AuditLog]:
    query = select(AuditLog).order_by(AuditLog.created_at)
    if entity_id is not None:
        query = query.where(AuditLog.entity_id == entity_id)
    async with database.session() as session:
        return list((await session.scalars(query)).all())


# ============================================================================
# Fixtures
# ============================================================================

@pytest_asyncio.fixture
async def database(tmp_path):
    """Fresh SQLite database with all tables created."""
    db = Database(
        f"sqlite:///{tmp_path}/test.db",
        pool_size=1,
        max_overflow=0,
    )
    await db.create_tables()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def catalog(database):
    catalog = Catalog(database)
    await catalog.seed_default_titles()
    return catalog


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def apollo():
    return FakeApollo()


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def sendgrid():
    return FakeSendGrid()


@pytest.fixture
def state_machine(database):
    return PipelineStateMachine(database)


@pytest.fixture
def contact_resolver(database, apollo):
    return ContactResolver(database, apollo)


@pytest.fixture
def draft_generator(database, llm, sleep):
    return DraftGenerator(database, llm, RetryPolicy(max_retries=2, base_delay_seconds=1.0, sleep=sleep))


@pytest.fixture
def dispatcher(database, state_machine, sendgrid):
    return EmailDispatcher(
        database,
        state_machine,
        sendgrid,
        default_from_email="sales@example.com",
        default_from_name="Sales",
    )


@pytest.fixture
def review_service(database, state_machine):
    return DraftReviewService(database, state_machine)


@pytest.fixture
def batch_sleep():
    return RecordingSleep()


@pytest_asyncio.fixture
async def orchestrator(
    database,
    catalog,
    state_machine,
    contact_resolver,
    draft_generator,
    dispatcher,
    review_service,
    batch_sleep,
):
    return BatchOrchestrator(
        database=database,
        state_machine=state_machine,
        contact_resolver=contact_resolver,
        draft_generator=draft_generator,
        dispatcher=dispatcher,
        review_service=review_service,
        config=BatchConfig(chunk_size=3, delay_seconds=0.5, sleep=batch_sleep),
    )
