"""Outreach pipeline core.

The state machine governs how a company moves from import to sent; the
batch orchestrator drives many companies through it with chunked,
failure-isolated workers built from the contact, draft, review and
dispatch services.
"""

from .catalog import Catalog
from .contacts import ContactLookupResult, ContactResolver, ContactResult
from .dispatcher import DispatchResult, EmailDispatcher
from .drafts import ContactInfo, DraftGenerator, GenerationResult, validate_email_content
from .orchestrator import (
    BatchConfig,
    BatchOrchestrator,
    BatchResult,
    ImportResult,
    ItemOutcome,
    ProcessOutcome,
    ProcessResult,
    run_chunked,
)
from .reasons import (
    ContactFoundNoEmail,
    GenerationFailed,
    NoApolloId,
    NotGeneratedReason,
    NoValidContact,
    reason_from_payload,
)
from .retry import RetryPolicy
from .review import DraftReviewService, ReviewResult
from .state_machine import (
    VALID_TRANSITIONS,
    PipelineStateMachine,
    TransitionResult,
    is_valid_transition,
)

__all__ = [
    "BatchConfig",
    "BatchOrchestrator",
    "BatchResult",
    "Catalog",
    "ContactFoundNoEmail",
    "ContactInfo",
    "ContactLookupResult",
    "ContactResolver",
    "ContactResult",
    "DispatchResult",
    "DraftGenerator",
    "DraftReviewService",
    "EmailDispatcher",
    "GenerationFailed",
    "GenerationResult",
    "ImportResult",
    "ItemOutcome",
    "NoApolloId",
    "NoValidContact",
    "NotGeneratedReason",
    "PipelineStateMachine",
    "ProcessOutcome",
    "ProcessResult",
    "RetryPolicy",
    "ReviewResult",
    "TransitionResult",
    "VALID_TRANSITIONS",
    "is_valid_transition",
    "reason_from_payload",
    "run_chunked",
    "validate_email_content",
]
