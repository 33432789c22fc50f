"""Pipeline state machine for company leads.

Every state change goes through :meth:`PipelineStateMachine.transition`,
which validates the edge against :data:`VALID_TRANSITIONS` and writes the
new state together with one ``state_change`` audit row in the same unit of
work. Invalid transitions and missing companies are reported through
:class:`TransitionResult`, never raised.

Rows are not locked. The pipeline assumes a single writer per company
(human-paced dashboard actions and one batch at a time).
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import AuditAction, AuditLog, Company, Database, PipelineState
from .reasons import NotGeneratedReason, is_reason

logger = logging.getLogger(__name__)

COMPANY_NOT_FOUND = "Company not found"

VALID_TRANSITIONS: dict[PipelineState, frozenset[PipelineState]] = {
    PipelineState.PENDING_GENERATION: frozenset({
        PipelineState.EMAIL_NOT_GENERATED,
        PipelineState.PENDING_REVIEW,
    }),
    # Retry
    PipelineState.EMAIL_NOT_GENERATED: frozenset({
        PipelineState.PENDING_GENERATION,
    }),
    # Approve, or send back for regeneration
    PipelineState.PENDING_REVIEW: frozenset({
        PipelineState.APPROVED_TO_SEND,
        PipelineState.PENDING_GENERATION,
    }),
    # Send, or un-approve
    PipelineState.APPROVED_TO_SEND: frozenset({
        PipelineState.SENT,
        PipelineState.PENDING_REVIEW,
    }),
    PipelineState.SENT: frozenset(),
}


def is_valid_transition(from_state: PipelineState, to_state: PipelineState) -> bool:
    """Check whether ``from_state -> to_state`` is an allowed edge.

    A transition to the current state is not an edge and is rejected.
    """
    return to_state in VALID_TRANSITIONS.get(from_state, frozenset())


def invalid_transition_message(from_state: PipelineState, to_state: PipelineState) -> str:
    return f"Invalid state transition from {from_state.value} to {to_state.value}"


@dataclass
class TransitionResult:
    """Outcome of a transition attempt.

    Attributes:
        success: Whether the state changed.
        company_id: Company the transition was attempted on.
        from_state: State before the attempt, if the company exists.
        to_state: Requested target state.
        error: Reason for failure.
    """

    success: bool
    company_id: str
    to_state: PipelineState
    from_state: Optional[PipelineState] = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "success": self.success,
            "company_id": self.company_id,
            "from_state": self.from_state.value if self.from_state else None,
            "to_state": self.to_state.value,
            "error": self.error,
        }


class PipelineStateMachine:
    """Validated, audited state transitions for companies.

    Args:
        database: Database used when the caller does not supply a session.
    """

    def __init__(self, database: Database) -> None:
        self.database = database

    def apply(
        self,
        session: AsyncSession,
        company: Company,
        to_state: PipelineState,
        performed_by: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> TransitionResult:
        """Apply a transition to an already loaded company.

        Changes the state and adds the audit row to ``session``; committing
        is up to the owner of the session. Nothing is changed when the
        transition is invalid.
        """
        from_state = company.pipeline_state
        if not is_valid_transition(from_state, to_state):
            return TransitionResult(
                success=False,
                company_id=company.id,
                from_state=from_state,
                to_state=to_state,
                error=invalid_transition_message(from_state, to_state),
            )

        company.pipeline_state = to_state
        if from_state == PipelineState.EMAIL_NOT_GENERATED:
            company.not_generated_reason = None

        session.add(AuditLog(
            entity_type="company",
            entity_id=company.id,
            action=AuditAction.STATE_CHANGE,
            from_state=from_state.value,
            to_state=to_state.value,
            details=metadata,
            performed_by=performed_by,
        ))

        logger.debug(
            "Company %s: %s -> %s", company.id, from_state.value, to_state.value
        )
        return TransitionResult(
            success=True,
            company_id=company.id,
            from_state=from_state,
            to_state=to_state,
        )

    async def _transition_in(
        self,
        session: AsyncSession,
        company_id: str,
        to_state: PipelineState,
        performed_by: Optional[str],
        metadata: Optional[dict[str, Any]],
    ) -> tuple[TransitionResult, Optional[Company]]:
        company = await session.get(Company, company_id)
        if company is None:
            return (
                TransitionResult(
                    success=False,
                    company_id=company_id,
                    to_state=to_state,
                    error=COMPANY_NOT_FOUND,
                ),
                None,
            )
        return self.apply(session, company, to_state, performed_by, metadata), company

    async def transition(
        self,
        company_id: str,
        to_state: PipelineState,
        performed_by: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
        *,
        session: Optional[AsyncSession] = None,
    ) -> TransitionResult:
        """Move a company to ``to_state`` and record the change.

        Args:
            company_id: Company to transition.
            to_state: Target pipeline state.
            performed_by: Actor identifier for the audit row.
            metadata: Free-form payload stored on the audit row.
            session: Caller's session. When given, the transition joins the
                caller's unit of work and is committed with it.

        Returns:
            TransitionResult; ``error`` is "Company not found" or
            "Invalid state transition from X to Y" on failure.
        """
        if session is not None:
            result, _ = await self._transition_in(
                session, company_id, to_state, performed_by, metadata
            )
            return result

        try:
            async with self.database.session() as own_session:
                result, _ = await self._transition_in(
                    own_session, company_id, to_state, performed_by, metadata
                )
        except SQLAlchemyError as e:
            logger.exception("Transition of company %s to %s failed", company_id, to_state.value)
            return TransitionResult(
                success=False,
                company_id=company_id,
                to_state=to_state,
                error=f"Database error: {e}",
            )

        if not result.success:
            logger.info(
                "Transition rejected: %s",
                result.error,
                extra={"company_id": company_id, "pipeline_state": to_state.value},
            )
        return result

    async def mark_not_generated(
        self,
        company_id: str,
        reason: NotGeneratedReason,
        performed_by: Optional[str] = None,
        *,
        session: Optional[AsyncSession] = None,
    ) -> TransitionResult:
        """Transition to ``email_not_generated`` and store the reason.

        The reason is written only if the transition succeeds, in the same
        unit of work.

        Raises:
            TypeError: If ``reason`` is not a not-generated reason variant.
        """
        if not is_reason(reason):
            raise TypeError(f"Expected a not-generated reason, got {reason!r}")

        payload = reason.to_payload()

        async def mark(active: AsyncSession) -> TransitionResult:
            result, company = await self._transition_in(
                active,
                company_id,
                PipelineState.EMAIL_NOT_GENERATED,
                performed_by,
                payload,
            )
            if result.success and company is not None:
                company.not_generated_reason = payload
            return result

        if session is not None:
            return await mark(session)

        try:
            async with self.database.session() as own_session:
                result = await mark(own_session)
        except SQLAlchemyError as e:
            logger.exception("Marking company %s as not generated failed", company_id)
            return TransitionResult(
                success=False,
                company_id=company_id,
                to_state=PipelineState.EMAIL_NOT_GENERATED,
                error=f"Database error: {e}",
            )

        if result.success:
            logger.info(
                "Email not generated: %s",
                payload["reason"],
                extra={
                    "company_id": company_id,
                    "pipeline_state": PipelineState.EMAIL_NOT_GENERATED.value,
                },
            )
        return result

    async def get_pipeline_stats(self) -> dict[str, Any]:
        """Count companies per state.

        Returns:
            ``{"total": int, "by_state": {state_value: count}}`` with every
            state present.
        """
        by_state = {state.value: 0 for state in PipelineState}
        async with self.database.session() as session:
            rows = await session.execute(
                select(Company.pipeline_state, func.count(Company.id))
                .group_by(Company.pipeline_state)
            )
            for state, count in rows.all():
                by_state[state.value] = count

        return {"total": sum(by_state.values()), "by_state": by_state}

    async def get_companies_by_state(
        self,
        state: PipelineState,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Company], int]:
        """List companies in a state, most recently updated first.

        Returns:
            Tuple of (companies with drafts loaded, total count in the state).
        """
        async with self.database.session() as session:
            total = await session.scalar(
                select(func.count(Company.id)).where(Company.pipeline_state == state)
            )
            companies = await session.scalars(
                select(Company)
                .where(Company.pipeline_state == state)
                .order_by(Company.updated_at.desc(), Company.id)
                .limit(limit)
                .offset(offset)
            )
            return list(companies.all()), int(total or 0)

    async def get_audit_logs(
        self,
        entity_id: Optional[str] = None,
        limit: int = 50,
    ) -> list[AuditLog]:
        """Return audit rows, newest first, optionally for one entity."""
        query = select(AuditLog).order_by(AuditLog.created_at.desc()).limit(limit)
        if entity_id is not None:
            query = query.where(AuditLog.entity_id == entity_id)

        async with self.database.session() as session:
            rows = await session.scalars(query)
            return list(rows.all())
