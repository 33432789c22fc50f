"""Batch orchestration of the outreach pipeline.

Runs a per-company worker over many companies in fixed-size chunks.
Workers inside a chunk run concurrently; the next chunk starts only after
every worker of the current one has settled, with a pause between chunks
(never after the last one). A failing item is recorded in the batch result
and never aborts the run.

Workers never hold a database session across a provider call: reads
happen in one short session, the provider is called, and results are
written in another.
"""

import asyncio
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar

from sqlalchemy import delete, select

from ..config import Config
from ..constants import DEFAULT_CHUNK_DELAY_SECONDS, DEFAULT_CHUNK_SIZE
from ..integrations.apollo import ApolloOrganization
from ..models import (
    AuditAction,
    AuditLog,
    Company,
    Database,
    EmailDraft,
    FetchedOrganization,
    PipelineState,
)
from ..models.company import utcnow
from .contacts import ContactResolver, apply_contact_snapshot
from .dispatcher import EmailDispatcher
from .drafts import ContactInfo, DraftGenerator, GenerationResult
from .reasons import (
    ContactFoundNoEmail,
    GenerationFailed,
    NoApolloId,
    NoValidContact,
    NotGeneratedReason,
    reason_from_payload,
)
from .review import DraftReviewService
from .state_machine import COMPANY_NOT_FOUND, PipelineStateMachine

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

UNKNOWN_COMPANY = "Unknown"


async def run_chunked(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    delay_seconds: float = DEFAULT_CHUNK_DELAY_SECONDS,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> list[tuple[T, Any]]:
    """Run ``worker`` over ``items`` in sequential chunks of concurrent calls.

    Args:
        items: Items in processing order.
        worker: Coroutine function applied to each item.
        chunk_size: Number of workers in flight at once.
        delay_seconds: Pause between two chunks.
        sleep: Awaitable sleep function, replaceable with a fake clock.

    Returns:
        ``(item, outcome)`` pairs in input order. ``outcome`` is the
        worker's return value or the ``Exception`` it raised.
    """
    if chunk_size < 1:
        raise ValueError("chunk_size must be >= 1")

    results: list[tuple[T, Any]] = []
    chunk_count = math.ceil(len(items) / chunk_size)

    for index in range(chunk_count):
        chunk = items[index * chunk_size:(index + 1) * chunk_size]
        logger.debug("Running chunk %d/%d (%d items)", index + 1, chunk_count, len(chunk))

        outcomes = await asyncio.gather(
            *(worker(item) for item in chunk), return_exceptions=True
        )
        for item, outcome in zip(chunk, outcomes):
            if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                raise outcome
            results.append((item, outcome))

        if index < chunk_count - 1:
            await sleep(delay_seconds)

    return results


@dataclass
class BatchConfig:
    """Pacing of batch runs.

    Attributes:
        chunk_size: Workers run concurrently per chunk.
        delay_seconds: Pause between chunks.
        sleep: Awaitable sleep function used for the pause.
    """

    chunk_size: int = DEFAULT_CHUNK_SIZE
    delay_seconds: float = DEFAULT_CHUNK_DELAY_SECONDS
    sleep: Callable[[float], Awaitable[Any]] = field(default=asyncio.sleep, repr=False)

    def __post_init__(self) -> None:
        if self.chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        if self.delay_seconds < 0:
            raise ValueError("delay_seconds must be >= 0")

    @classmethod
    def from_config(cls, config: Config) -> "BatchConfig":
        return cls(
            chunk_size=config.BATCH_CHUNK_SIZE,
            delay_seconds=config.BATCH_CHUNK_DELAY_SECONDS,
        )


class ProcessOutcome(str, Enum):
    """Per-company outcome of the import-and-generate worker."""

    EMAIL_GENERATED = "email_generated"
    NO_CONTACT = "no_contact"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass
class ItemOutcome:
    """What happened to one company in a generation batch."""

    company_id: Optional[str]
    company_name: str
    outcome: ProcessOutcome
    error: Optional[str] = None
    reason: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "company_id": self.company_id,
            "company_name": self.company_name,
            "outcome": self.outcome.value,
            "error": self.error,
            "reason": self.reason,
        }


@dataclass
class ProcessResult:
    """Aggregate of an import-and-generate batch.

    ``processed`` equals ``emails_generated + no_contact + skipped + errors``.
    """

    imported: int = 0
    processed: int = 0
    emails_generated: int = 0
    no_contact: int = 0
    skipped: int = 0
    errors: int = 0
    error_details: list[dict[str, Any]] = field(default_factory=list)
    outcomes: list[ItemOutcome] = field(default_factory=list)

    def record(self, item: ItemOutcome) -> None:
        self.outcomes.append(item)
        self.processed += 1
        if item.outcome == ProcessOutcome.EMAIL_GENERATED:
            self.emails_generated += 1
        elif item.outcome == ProcessOutcome.NO_CONTACT:
            self.no_contact += 1
        elif item.outcome == ProcessOutcome.SKIPPED:
            self.skipped += 1
        else:
            self.errors += 1
            self.error_details.append({
                "company_id": item.company_id,
                "company_name": item.company_name,
                "error": item.error or "Unknown error",
            })

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "success": True,
            "total": len(self.outcomes),
            "imported": self.imported,
            "processed": self.processed,
            "emails_generated": self.emails_generated,
            "no_contact": self.no_contact,
            "skipped": self.skipped,
            "errors": self.errors,
            "error_details": self.error_details,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


@dataclass
class BatchResult:
    """Aggregate of a simple success/failure batch (retry, approve, send, delete).

    Attributes:
        success_label: Name of the success counter in ``to_dict`` output.
        succeeded: Items that completed.
        failed: Items that failed.
        errors: ``{company_id, company_name, error}`` per failed item, in order.
        outcomes: ``{company_id, success}`` per item, in order.
        message: Set when nothing was eligible.
    """

    success_label: str
    succeeded: int = 0
    failed: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)
    outcomes: list[dict[str, Any]] = field(default_factory=list)
    message: Optional[str] = None

    @property
    def processed(self) -> int:
        return self.succeeded + self.failed

    def record(self, company_id: str, company_name: str, error: Optional[str]) -> None:
        self.outcomes.append({"company_id": company_id, "success": error is None})
        if error is None:
            self.succeeded += 1
            return
        self.failed += 1
        self.errors.append({
            "company_id": company_id,
            "company_name": company_name,
            "error": error,
        })

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        data: dict[str, Any] = {
            "success": True,
            self.success_label: self.succeeded,
            "failed": self.failed,
            "errors": self.errors,
            "outcomes": self.outcomes,
        }
        if self.message:
            data["message"] = self.message
        return data


@dataclass
class ImportResult:
    """Outcome of importing organizations without generation."""

    company_ids: list[str] = field(default_factory=list)
    created: int = 0
    reset: int = 0
    unchanged: int = 0

    @property
    def imported(self) -> int:
        return len(self.company_ids)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "imported": self.imported,
            "created": self.created,
            "reset": self.reset,
            "unchanged": self.unchanged,
            "company_ids": self.company_ids,
        }


@dataclass
class _Lead:
    """Detached snapshot of the company fields a worker needs."""

    id: str
    name: str
    domain: str
    website: Optional[str]
    apollo_id: Optional[str]
    pipeline_state: PipelineState
    has_draft: bool
    contact_first_name: Optional[str] = None
    contact_last_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_title: Optional[str] = None
    reason: Optional[NotGeneratedReason] = None

    @classmethod
    def of(cls, company: Company, has_draft: Optional[bool] = None) -> "_Lead":
        if has_draft is None:
            has_draft = company.email is not None
        return cls(
            id=company.id,
            name=company.name,
            domain=company.domain or "",
            website=company.website,
            apollo_id=company.apollo_id,
            pipeline_state=company.pipeline_state,
            has_draft=has_draft,
            contact_first_name=company.target_contact_first_name,
            contact_last_name=company.target_contact_last_name,
            contact_email=company.target_contact_email,
            contact_title=company.target_contact_title,
            reason=reason_from_payload(company.not_generated_reason),
        )


@dataclass
class _Upsert:
    lead: _Lead
    created: bool
    reset: bool


class _WriteRejected(Exception):
    """A write step was refused; the enclosing unit of work rolls back."""


class BatchOrchestrator:
    """Drives companies through the pipeline in paced, failure-isolated batches.

    Args:
        database: Database with pipeline tables.
        state_machine: Transitions and not-generated marking.
        contact_resolver: Finds the contact to write to.
        draft_generator: Generates drafts with retry.
        dispatcher: Sends approved drafts.
        review_service: Approval worker shared with single-company approvals.
        config: Chunk size, delay and sleep function.
    """

    def __init__(
        self,
        database: Database,
        state_machine: PipelineStateMachine,
        contact_resolver: ContactResolver,
        draft_generator: DraftGenerator,
        dispatcher: EmailDispatcher,
        review_service: DraftReviewService,
        config: Optional[BatchConfig] = None,
    ) -> None:
        self.database = database
        self.state_machine = state_machine
        self.contact_resolver = contact_resolver
        self.draft_generator = draft_generator
        self.dispatcher = dispatcher
        self.review_service = review_service
        self.config = config or BatchConfig()

    async def _run(
        self,
        items: Sequence[T],
        worker: Callable[[T], Awaitable[Any]],
    ) -> list[tuple[T, Any]]:
        return await run_chunked(
            items,
            worker,
            chunk_size=self.config.chunk_size,
            delay_seconds=self.config.delay_seconds,
            sleep=self.config.sleep,
        )

    # Import

    async def _upsert_organization(
        self,
        organization: ApolloOrganization,
        performed_by: Optional[str] = None,
    ) -> _Upsert:
        external_id = organization.external_id
        domain = organization.domain or ""

        async with self.database.session() as session:
            company = await session.scalar(
                select(Company)
                .where(Company.apollo_id == external_id)
                .order_by(Company.created_at)
                .limit(1)
            )
            if company is None and domain:
                company = await session.scalar(
                    select(Company)
                    .where(Company.domain == domain)
                    .order_by(Company.created_at)
                    .limit(1)
                )

            created = reset = False
            if company is None:
                company = Company(
                    apollo_id=external_id,
                    name=organization.name,
                    domain=domain,
                    website=organization.website_url,
                    industry=organization.industry,
                    location=organization.location,
                    employee_count=organization.employee_count,
                    pipeline_state=PipelineState.PENDING_GENERATION,
                )
                session.add(company)
                await session.flush()
                created = True
            elif company.pipeline_state == PipelineState.EMAIL_NOT_GENERATED:
                result = self.state_machine.apply(
                    session,
                    company,
                    PipelineState.PENDING_GENERATION,
                    performed_by,
                    {"reimported": True},
                )
                reset = result.success

            fetched = await session.scalar(
                select(FetchedOrganization).where(FetchedOrganization.apollo_id == external_id)
            )
            if fetched is None:
                session.add(FetchedOrganization(
                    apollo_id=external_id,
                    name=organization.name,
                    domain=domain or None,
                ))
            else:
                fetched.name = organization.name
                fetched.domain = domain or None
                fetched.fetched_at = utcnow()

            lead = _Lead.of(company, has_draft=False if created else None)

        return _Upsert(lead=lead, created=created, reset=reset)

    async def import_companies(
        self,
        organizations: Sequence[ApolloOrganization],
        performed_by: Optional[str] = None,
    ) -> ImportResult:
        """Upsert organizations as companies without generating drafts.

        Matching is by Apollo id, then by non-empty domain. An existing
        company in ``email_not_generated`` is reset to ``pending_generation``;
        companies in any other state are left as they are.
        """
        result = ImportResult()
        for organization in _unique_organizations(organizations):
            upsert = await self._upsert_organization(organization, performed_by)
            result.company_ids.append(upsert.lead.id)
            if upsert.created:
                result.created += 1
            elif upsert.reset:
                result.reset += 1
            else:
                result.unchanged += 1

        logger.info(
            "Imported %d companies (%d new, %d reset)",
            result.imported,
            result.created,
            result.reset,
        )
        return result

    # Import and generate

    async def _mark(
        self,
        lead: _Lead,
        reason: NotGeneratedReason,
        outcome: ProcessOutcome,
        performed_by: Optional[str],
        error: Optional[str] = None,
    ) -> ItemOutcome:
        result = await self.state_machine.mark_not_generated(lead.id, reason, performed_by)
        if not result.success:
            return ItemOutcome(
                company_id=lead.id,
                company_name=lead.name,
                outcome=ProcessOutcome.ERROR,
                error=result.error,
                reason=reason.label,
            )
        return ItemOutcome(
            company_id=lead.id,
            company_name=lead.name,
            outcome=outcome,
            error=error,
            reason=reason.label,
        )

    async def _save_draft(
        self,
        company_id: str,
        generation: GenerationResult,
        prompt: str,
        to_states: Sequence[PipelineState],
        audit_details: dict[str, Any],
        performed_by: Optional[str],
    ) -> None:
        """Replace the company's draft and walk it to ``pending_review`` atomically.

        Raises:
            _WriteRejected: If the company is gone or a transition is invalid.
        """
        async with self.database.session() as session:
            company = await session.get(Company, company_id)
            if company is None:
                raise _WriteRejected(COMPANY_NOT_FOUND)

            if company.email is not None:
                company.email = None
                await session.flush()

            company.email = EmailDraft(
                subject=generation.subject,
                body=generation.body,
                prompt_used=prompt,
                model_used=generation.model_used,
            )

            for to_state in to_states:
                transition = self.state_machine.apply(session, company, to_state, performed_by)
                if not transition.success:
                    raise _WriteRejected(transition.error or "Transition failed")
            company.not_generated_reason = None

            session.add(AuditLog(
                entity_type="email",
                entity_id=company.id,
                action=AuditAction.EMAIL_GENERATED,
                details=audit_details,
                performed_by=performed_by,
            ))

    async def _generate_for_lead(
        self,
        lead: _Lead,
        prompt: str,
        performed_by: Optional[str] = None,
    ) -> ItemOutcome:
        """Contact lookup, generation and persistence for one pending company."""
        if lead.has_draft or lead.pipeline_state != PipelineState.PENDING_GENERATION:
            return ItemOutcome(lead.id, lead.name, ProcessOutcome.SKIPPED)

        if not lead.apollo_id:
            return await self._mark(lead, NoApolloId(), ProcessOutcome.NO_CONTACT, performed_by)

        contact = await self.contact_resolver.resolve(lead.apollo_id)
        if not contact.found:
            return await self._mark(lead, NoValidContact(), ProcessOutcome.NO_CONTACT, performed_by)

        async with self.database.session() as session:
            company = await session.get(Company, lead.id)
            if company is None:
                return ItemOutcome(lead.id, lead.name, ProcessOutcome.ERROR, error=COMPANY_NOT_FOUND)
            apply_contact_snapshot(company, contact)

        if not contact.has_email:
            return await self._mark(
                lead, ContactFoundNoEmail(), ProcessOutcome.NO_CONTACT, performed_by
            )

        person = contact.person
        contact_info = ContactInfo(
            first_name=person.first_name or "",
            last_name=person.last_name,
            title=contact.title or person.title,
        )
        generation = await self.draft_generator.generate_with_retry(
            lead.name, lead.domain, prompt, lead.website, contact_info
        )
        if not generation.success:
            error = generation.error or "Unknown error"
            return await self._mark(
                lead, GenerationFailed(error), ProcessOutcome.ERROR, performed_by, error=error
            )

        target_contact = f"{person.first_name} {person.last_name or ''}".strip()
        try:
            await self._save_draft(
                lead.id,
                generation,
                prompt,
                [PipelineState.PENDING_REVIEW],
                {
                    "subject": generation.subject,
                    "body_length": len(generation.body or ""),
                    "target_contact": target_contact,
                    "auto_processed": True,
                },
                performed_by,
            )
        except _WriteRejected as e:
            return ItemOutcome(lead.id, lead.name, ProcessOutcome.ERROR, error=str(e))

        logger.info("Generated draft for %s", lead.name, extra={"company_id": lead.id})
        return ItemOutcome(lead.id, lead.name, ProcessOutcome.EMAIL_GENERATED)

    async def _process_organization(
        self,
        organization: ApolloOrganization,
        prompt: str,
        performed_by: Optional[str],
    ) -> tuple[_Upsert, ItemOutcome]:
        upsert = await self._upsert_organization(organization, performed_by)
        lead = upsert.lead
        try:
            outcome = await self._generate_for_lead(lead, prompt, performed_by)
        except Exception as e:
            logger.exception("Processing %s failed", lead.name, extra={"company_id": lead.id})
            outcome = ItemOutcome(lead.id, lead.name, ProcessOutcome.ERROR, error=str(e))
        return upsert, outcome

    async def process_all(
        self,
        organizations: Sequence[ApolloOrganization],
        custom_prompt: Optional[str] = None,
        performed_by: Optional[str] = None,
    ) -> ProcessResult:
        """Import organizations and generate a draft for each eligible company.

        Returns:
            ProcessResult with counters, per-company outcomes and error details.
        """
        unique = _unique_organizations(organizations)
        result = ProcessResult()
        if not unique:
            return result

        prompt = await self.draft_generator.resolve_prompt(custom_prompt)
        logger.info("Processing %d organizations", len(unique))

        pairs = await self._run(
            unique,
            lambda organization: self._process_organization(organization, prompt, performed_by),
        )
        for organization, outcome in pairs:
            if isinstance(outcome, Exception):
                logger.error("Import of %s failed: %s", organization.name, outcome)
                result.record(ItemOutcome(
                    company_id=None,
                    company_name=organization.name,
                    outcome=ProcessOutcome.ERROR,
                    error=str(outcome),
                ))
                continue
            _, item = outcome
            result.imported += 1
            result.record(item)

        logger.info(
            "Batch done: %d processed, %d generated, %d no contact, %d skipped, %d errors",
            result.processed,
            result.emails_generated,
            result.no_contact,
            result.skipped,
            result.errors,
        )
        return result

    async def _collect_leads(
        self,
        leads: list[_Lead],
        prompt: str,
        performed_by: Optional[str],
    ) -> ProcessResult:
        result = ProcessResult()
        pairs = await self._run(
            leads, lambda lead: self._generate_for_lead(lead, prompt, performed_by)
        )
        for lead, outcome in pairs:
            if isinstance(outcome, Exception):
                logger.error(
                    "Processing %s failed: %s", lead.name, outcome, extra={"company_id": lead.id}
                )
                outcome = ItemOutcome(lead.id, lead.name, ProcessOutcome.ERROR, error=str(outcome))
            result.record(outcome)
        return result

    async def process_pending(
        self,
        custom_prompt: Optional[str] = None,
        performed_by: Optional[str] = None,
    ) -> ProcessResult:
        """Generate drafts for every ``pending_generation`` company without one, oldest first."""
        async with self.database.session() as session:
            companies = await session.scalars(
                select(Company)
                .where(
                    Company.pipeline_state == PipelineState.PENDING_GENERATION,
                    ~Company.email.has(),
                )
                .order_by(Company.created_at.asc())
            )
            leads = [_Lead.of(c) for c in companies.all()]

        if not leads:
            logger.info("No companies in pending_generation state")
            return ProcessResult()

        prompt = await self.draft_generator.resolve_prompt(custom_prompt)
        logger.info("Processing %d pending companies", len(leads))
        result = await self._collect_leads(leads, prompt, performed_by)
        logger.info(
            "Pending batch done: %d generated, %d no contact, %d errors",
            result.emails_generated,
            result.no_contact,
            result.errors,
        )
        return result

    async def generate_for_company(
        self,
        company_id: str,
        custom_prompt: Optional[str] = None,
        performed_by: Optional[str] = None,
    ) -> ProcessResult:
        """Run the generation worker for a single company."""
        async with self.database.session() as session:
            company = await session.get(Company, company_id)
            lead = _Lead.of(company) if company is not None else None

        result = ProcessResult()
        if lead is None:
            result.record(ItemOutcome(
                company_id, UNKNOWN_COMPANY, ProcessOutcome.ERROR, error=COMPANY_NOT_FOUND
            ))
            return result
        if lead.pipeline_state != PipelineState.PENDING_GENERATION:
            result.record(ItemOutcome(
                lead.id,
                lead.name,
                ProcessOutcome.ERROR,
                error=(
                    "Company must be in pending_generation state to generate an email, "
                    f'not "{lead.pipeline_state.value}"'
                ),
            ))
            return result

        prompt = await self.draft_generator.resolve_prompt(custom_prompt)
        return await self._collect_leads([lead], prompt, performed_by)

    # Simple batches

    async def _select_leads(
        self,
        company_ids: Sequence[str],
        *criteria: Any,
        order_by: Any = None,
    ) -> list[_Lead]:
        query = select(Company).where(Company.id.in_(list(company_ids)), *criteria)
        if order_by is not None:
            query = query.order_by(order_by)
        async with self.database.session() as session:
            companies = await session.scalars(query)
            return [_Lead.of(c) for c in companies.all()]

    async def _run_simple(
        self,
        label: str,
        leads: Sequence[_Lead],
        worker: Callable[[_Lead], Awaitable[Optional[str]]],
    ) -> BatchResult:
        result = BatchResult(success_label=label)
        for lead, outcome in await self._run(leads, worker):
            if isinstance(outcome, Exception):
                logger.error(
                    "%s failed: %s",
                    lead.name,
                    outcome,
                    extra={"company_id": lead.id, "batch": label},
                )
                outcome = str(outcome) or type(outcome).__name__
            result.record(lead.id, lead.name, outcome)

        logger.info(
            "Batch done: %d succeeded, %d failed",
            result.succeeded,
            result.failed,
            extra={"batch": label},
        )
        return result

    async def batch_retry(
        self,
        company_ids: Sequence[str],
        custom_prompt: Optional[str] = None,
        performed_by: Optional[str] = None,
    ) -> BatchResult:
        """Regenerate drafts for ``email_not_generated`` companies that have a contact email.

        Other companies are left out of the batch rather than counted as
        failures.
        """
        if not company_ids:
            raise ValueError("No company IDs provided")

        leads = await self._select_leads(
            company_ids,
            Company.pipeline_state == PipelineState.EMAIL_NOT_GENERATED,
            Company.target_contact_email.is_not(None),
        )
        if not leads:
            return BatchResult(
                success_label="generated",
                message="No companies with contacts found to retry",
            )

        prompt = await self.draft_generator.resolve_prompt(custom_prompt)

        async def retry(lead: _Lead) -> Optional[str]:
            contact = ContactInfo(
                first_name=lead.contact_first_name or "",
                last_name=lead.contact_last_name,
                title=lead.contact_title,
            )
            generation = await self.draft_generator.generate_with_retry(
                lead.name, lead.domain, prompt, lead.website, contact
            )
            if not generation.success:
                return generation.error or "Email generation failed"
            try:
                await self._save_draft(
                    lead.id,
                    generation,
                    prompt,
                    [PipelineState.PENDING_GENERATION, PipelineState.PENDING_REVIEW],
                    {
                        "subject": generation.subject,
                        "body_length": len(generation.body or ""),
                        "batch_retry": True,
                        "previous_reason": lead.reason.label if lead.reason else None,
                    },
                    performed_by,
                )
            except _WriteRejected as e:
                return str(e)
            return None

        return await self._run_simple("generated", leads, retry)

    async def batch_approve(
        self,
        company_ids: Sequence[str],
        approved_by: Optional[str] = None,
    ) -> BatchResult:
        """Approve drafts of the given companies that are in ``pending_review``."""
        if not company_ids:
            raise ValueError("No company IDs provided")

        leads = await self._select_leads(
            company_ids, Company.pipeline_state == PipelineState.PENDING_REVIEW
        )
        if not leads:
            return BatchResult(
                success_label="approved",
                message="No companies found in pending_review state",
            )

        async def approve(lead: _Lead) -> Optional[str]:
            result = await self.review_service.approve(lead.id, approved_by)
            return None if result.success else (result.error or "Approval failed")

        return await self._run_simple("approved", leads, approve)

    async def batch_send(
        self,
        company_ids: Sequence[str],
        performed_by: Optional[str] = None,
    ) -> BatchResult:
        """Send approved drafts of the given companies that have a contact email."""
        if not company_ids:
            raise ValueError("No company IDs provided")

        leads = await self._select_leads(
            company_ids,
            Company.pipeline_state == PipelineState.APPROVED_TO_SEND,
            Company.target_contact_email.is_not(None),
            order_by=Company.updated_at.asc(),
        )
        if not leads:
            return BatchResult(success_label="sent", message="No companies ready to send")

        async def send(lead: _Lead) -> Optional[str]:
            result = await self.dispatcher.send(lead.id, performed_by=performed_by)
            return None if result.success else (result.error or "Unknown error")

        return await self._run_simple("sent", leads, send)

    async def _delete_company(
        self,
        company_id: str,
        apollo_id: Optional[str],
        delete_fetched: bool,
    ) -> None:
        async with self.database.session() as session:
            email_ids = list((await session.scalars(
                select(EmailDraft.id).where(EmailDraft.company_id == company_id)
            )).all())

            await session.execute(delete(EmailDraft).where(EmailDraft.company_id == company_id))
            await session.execute(
                delete(AuditLog).where(AuditLog.entity_id.in_([company_id, *email_ids]))
            )
            deleted = await session.execute(delete(Company).where(Company.id == company_id))
            if not deleted.rowcount:
                raise LookupError(COMPANY_NOT_FOUND)

            if delete_fetched and apollo_id:
                await session.execute(
                    delete(FetchedOrganization).where(FetchedOrganization.apollo_id == apollo_id)
                )

    async def batch_delete(
        self,
        company_ids: Sequence[str],
        delete_fetched: bool = False,
    ) -> BatchResult:
        """Delete companies with their drafts and audit rows.

        Each company is removed in its own transaction. With
        ``delete_fetched`` the dedup record is dropped too, so the
        organization can be imported again. Names in error details come
        from a snapshot taken before any deletion.
        """
        if not company_ids:
            raise ValueError("No company IDs provided")

        async with self.database.session() as session:
            rows = await session.execute(
                select(Company.id, Company.name, Company.apollo_id)
                .where(Company.id.in_(list(company_ids)))
            )
            known = {row.id: (row.name, row.apollo_id) for row in rows.all()}

        leads = [
            _Lead(
                id=company_id,
                name=known.get(company_id, (UNKNOWN_COMPANY, None))[0] or UNKNOWN_COMPANY,
                domain="",
                website=None,
                apollo_id=known.get(company_id, (None, None))[1],
                pipeline_state=PipelineState.PENDING_GENERATION,
                has_draft=False,
            )
            for company_id in company_ids
        ]

        async def remove(lead: _Lead) -> Optional[str]:
            await self._delete_company(lead.id, lead.apollo_id, delete_fetched)
            return None

        return await self._run_simple("deleted", leads, remove)


def _unique_organizations(organizations: Sequence[ApolloOrganization]) -> list[ApolloOrganization]:
    """Drop repeated external ids, keeping the first occurrence."""
    seen: set[str] = set()
    unique = []
    for organization in organizations:
        if organization.external_id in seen:
            continue
        seen.add(organization.external_id)
        unique.append(organization)
    return unique
