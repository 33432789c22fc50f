"""Reasons a company ends up in ``email_not_generated``.

The reason is a closed set of variants. It is stored on the company as a
``{"reason": "<label>"}`` payload and parsed back with
:func:`reason_from_payload`.
"""

from dataclasses import dataclass
from typing import Any, Optional, Union

GENERATION_FAILED_PREFIX = "email_generation_failed"


@dataclass(frozen=True)
class NoApolloId:
    """The company has no Apollo organization id to search people by."""

    label = "no_apollo_id"

    def to_payload(self) -> dict[str, str]:
        return {"reason": self.label}


@dataclass(frozen=True)
class NoValidContact:
    """People search found no usable contact."""

    label = "no_valid_contact_found"

    def to_payload(self) -> dict[str, str]:
        return {"reason": self.label}


@dataclass(frozen=True)
class ContactFoundNoEmail:
    """A contact was found but no email address could be revealed."""

    label = "contact_found_no_email"

    def to_payload(self) -> dict[str, str]:
        return {"reason": self.label}


@dataclass(frozen=True)
class GenerationFailed:
    """Draft generation failed after all retries."""

    detail: str

    @property
    def label(self) -> str:
        return f"{GENERATION_FAILED_PREFIX}: {self.detail}"

    def to_payload(self) -> dict[str, str]:
        return {"reason": self.label}


NotGeneratedReason = Union[NoApolloId, NoValidContact, ContactFoundNoEmail, GenerationFailed]

REASON_TYPES = (NoApolloId, NoValidContact, ContactFoundNoEmail, GenerationFailed)

_FIXED_REASONS = {
    NoApolloId.label: NoApolloId(),
    NoValidContact.label: NoValidContact(),
    ContactFoundNoEmail.label: ContactFoundNoEmail(),
}


def reason_from_label(label: str) -> NotGeneratedReason:
    """Parse a stored reason label.

    Raises:
        ValueError: If the label is not a known reason.
    """
    if label in _FIXED_REASONS:
        return _FIXED_REASONS[label]
    if label == GENERATION_FAILED_PREFIX:
        return GenerationFailed(detail="")
    if label.startswith(f"{GENERATION_FAILED_PREFIX}:"):
        return GenerationFailed(detail=label[len(GENERATION_FAILED_PREFIX) + 1:].strip())
    raise ValueError(f"Unknown not-generated reason: {label!r}")


def reason_from_payload(payload: Optional[dict[str, Any]]) -> Optional[NotGeneratedReason]:
    """Parse a stored ``{"reason": ...}`` payload, returning None when absent."""
    if not payload or not payload.get("reason"):
        return None
    return reason_from_label(str(payload["reason"]))


def is_reason(value: Any) -> bool:
    """Return True if value is one of the not-generated reason variants."""
    return isinstance(value, REASON_TYPES)
