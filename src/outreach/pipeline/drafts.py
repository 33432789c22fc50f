"""Email draft generation.

Builds the prompt for a company and contact, calls the language model,
extracts the ``subject`` / ``email_body`` JSON object from the response
and retries failed attempts through a :class:`RetryPolicy`.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy import select

from ..constants import (
    ACTIVE_PROMPT_NAME,
    CONTACT_FIRST_NAME_PLACEHOLDER,
    CONTACT_LAST_NAME_PLACEHOLDER,
    DEFAULT_SYSTEM_PROMPT,
)
from ..integrations.llm_client import LLMClient
from ..models import Database, Prompt
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

_DECODER = json.JSONDecoder()

PARSE_FAILED = "Failed to parse email from AI response"

# Quality thresholds
SUBJECT_MIN_LENGTH = 10
SUBJECT_MAX_LENGTH = 100
BODY_MIN_LENGTH = 100
BODY_MAX_LENGTH = 2000
SPAM_TRIGGERS = [
    "click here",
    "act now",
    "limited time",
    "free offer",
    "guaranteed",
    "100%",
    "urgent",
    "!!!",
]


@dataclass
class ContactInfo:
    """Contact details passed into the prompt."""

    first_name: str
    last_name: Optional[str] = None
    title: Optional[str] = None


@dataclass
class QualityReport:
    """Advisory content checks for a draft."""

    issues: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.issues

    def to_dict(self) -> dict[str, Any]:
        return {"is_valid": self.is_valid, "issues": self.issues}


@dataclass
class GenerationResult:
    """Outcome of generating a draft.

    On success ``subject`` and ``body`` are non-empty strings.
    """

    success: bool
    subject: Optional[str] = None
    body: Optional[str] = None
    error: Optional[str] = None
    raw_response: Optional[str] = None
    attempts: int = 1
    prompt_used: Optional[str] = None
    model_used: Optional[str] = None
    quality: Optional[QualityReport] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "success": self.success,
            "subject": self.subject,
            "body": self.body,
            "error": self.error,
            "attempts": self.attempts,
            "model_used": self.model_used,
            "quality": self.quality.to_dict() if self.quality else None,
        }


def parse_email_response(text: str) -> Optional[tuple[str, str]]:
    """Extract ``(subject, email_body)`` from a model response.

    Free text around the JSON object is ignored, braces included. The first
    object whose ``subject`` and ``email_body`` are non-blank strings wins.
    """
    if not text:
        return None

    start = text.find("{")
    while start != -1:
        try:
            parsed, _ = _DECODER.raw_decode(text, start)
        except ValueError:
            parsed = None
        if isinstance(parsed, dict):
            subject = parsed.get("subject")
            body = parsed.get("email_body")
            if (
                isinstance(subject, str)
                and isinstance(body, str)
                and subject.strip()
                and body.strip()
            ):
                return subject, body
        start = text.find("{", start + 1)
    return None


def fill_placeholders(body: str, contact: Optional[ContactInfo]) -> str:
    """Replace contact-name placeholders left in a generated body."""
    if contact is None or not contact.first_name:
        return body
    body = body.replace(CONTACT_FIRST_NAME_PLACEHOLDER, contact.first_name)
    return body.replace(CONTACT_LAST_NAME_PLACEHOLDER, contact.last_name or "")


def validate_email_content(subject: str, body: str) -> QualityReport:
    """Check length bounds and spam trigger phrases."""
    report = QualityReport()

    if len(subject) < SUBJECT_MIN_LENGTH:
        report.issues.append(f"Subject is too short (minimum {SUBJECT_MIN_LENGTH} characters)")
    if len(subject) > SUBJECT_MAX_LENGTH:
        report.issues.append(f"Subject is too long (maximum {SUBJECT_MAX_LENGTH} characters)")

    if len(body) < BODY_MIN_LENGTH:
        report.issues.append(f"Email body is too short (minimum {BODY_MIN_LENGTH} characters)")
    if len(body) > BODY_MAX_LENGTH:
        report.issues.append(f"Email body is too long (maximum {BODY_MAX_LENGTH} characters)")

    lower_body = body.lower()
    for trigger in SPAM_TRIGGERS:
        if trigger in lower_body:
            report.issues.append(f'Contains potential spam trigger: "{trigger}"')

    return report


def compose_prompt(
    base_prompt: str,
    company_name: str,
    company_domain: str,
    company_website: Optional[str] = None,
    contact: Optional[ContactInfo] = None,
) -> str:
    """Append the company and contact input block to a prompt template."""
    website = company_website or f"https://{company_domain}"
    lines = [
        base_prompt.rstrip(),
        "",
        "---",
        "",
        "Input you will receive:",
        f"COMPANY_WEBSITE_URL: {website}",
        f"COMPANY_NAME: {company_name}",
    ]
    if contact is not None:
        lines.extend([
            f"CONTACT_FIRST_NAME: {contact.first_name}",
            f"CONTACT_LAST_NAME: {contact.last_name or ''}",
            f"CONTACT_TITLE: {contact.title or ''}",
            "",
            f"Replace {CONTACT_FIRST_NAME_PLACEHOLDER} with the actual first name "
            f'"{contact.first_name}". Do not leave placeholders in the email body.',
        ])
    return "\n".join(lines)


class DraftGenerator:
    """Generates email drafts with the language model.

    Args:
        database: Database holding the stored prompt.
        llm: Language model client exposing ``complete(prompt)`` and ``model``.
        retry_policy: Policy applied by :meth:`generate_with_retry`.
    """

    def __init__(
        self,
        database: Database,
        llm: LLMClient,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self.database = database
        self.llm = llm
        self.retry_policy = retry_policy or RetryPolicy()

    async def resolve_prompt(self, custom_prompt: Optional[str] = None) -> str:
        """Custom prompt if given, else the stored active prompt, else the default."""
        if custom_prompt and custom_prompt.strip():
            return custom_prompt

        async with self.database.session() as session:
            stored = await session.scalar(
                select(Prompt.content).where(
                    Prompt.name == ACTIVE_PROMPT_NAME,
                    Prompt.is_active.is_(True),
                )
            )
        if stored and stored.strip():
            return stored
        return DEFAULT_SYSTEM_PROMPT

    async def generate(
        self,
        company_name: str,
        company_domain: str,
        prompt: str,
        company_website: Optional[str] = None,
        contact: Optional[ContactInfo] = None,
    ) -> GenerationResult:
        """Make a single generation attempt.

        Provider errors propagate; an unparseable response is a failed result.
        """
        full_prompt = compose_prompt(
            prompt, company_name, company_domain, company_website, contact
        )
        text = await self.llm.complete(full_prompt)

        parsed = parse_email_response(text)
        if parsed is None:
            return GenerationResult(success=False, error=PARSE_FAILED, raw_response=text)

        subject, body = parsed
        subject = subject.strip()
        body = fill_placeholders(body, contact)
        quality = validate_email_content(subject, body)
        if not quality.is_valid:
            logger.info(
                "Draft for %s has quality issues: %s", company_name, "; ".join(quality.issues)
            )
        return GenerationResult(
            success=True,
            subject=subject,
            body=body,
            quality=quality,
            raw_response=text,
            prompt_used=prompt,
            model_used=getattr(self.llm, "model", None),
        )

    async def generate_with_retry(
        self,
        company_name: str,
        company_domain: str,
        prompt: str,
        company_website: Optional[str] = None,
        contact: Optional[ContactInfo] = None,
    ) -> GenerationResult:
        """Generate a draft, retrying failures according to the retry policy.

        Returns:
            The first successful result, or a failed result whose error is
            "Failed after N attempts. Last error: <error>".
        """
        result, last_error, attempts = await self.retry_policy.run(
            lambda: self.generate(
                company_name, company_domain, prompt, company_website, contact
            ),
            is_success=lambda r: r.success,
            error_of=lambda r: r.error,
        )

        if last_error is None and result is not None:
            result.attempts = attempts
            return result

        logger.warning(
            "Generation for %s failed after %d attempts: %s",
            company_name,
            attempts,
            last_error,
        )
        return GenerationResult(
            success=False,
            error=f"Failed after {attempts} attempts. Last error: {last_error}",
            raw_response=result.raw_response if result is not None else None,
            attempts=attempts,
        )
