"""SendGrid email delivery client.

This module provides a client wrapper for sending single transactional
emails through SendGrid and classifying provider failures.

Usage:
    >>> client = SendGridClient()
    >>> result = await client.send_email(
    ...     to_email="jane@acme.com",
    ...     subject="Quick question about Acme",
    ...     text_content="Hi Jane, ...",
    ...     from_email="me@mycompany.com",
    ... )
    >>> print(result.success, result.message_id)
"""

import asyncio
import html
import logging
import os
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from python_http_client.exceptions import HTTPError
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Content, Email, Mail, To

logger = logging.getLogger(__name__)

EMAIL_REGEX = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

SENDER_UNVERIFIED_MESSAGE = "Sender email domain is not verified in SendGrid."
REJECTED_MESSAGE = "Email was rejected by SendGrid. Check that the sender email is verified."


class SendErrorKind(str, Enum):
    """Classification of a failed send."""

    INVALID_ADDRESS = "invalid_address"
    REJECTED = "rejected"
    SENDER_UNVERIFIED = "sender_unverified"
    OTHER = "other"


class SendGridError(Exception):
    """Base exception for SendGrid errors."""

    pass


class SendGridAuthError(SendGridError):
    """Raised when SendGrid authentication fails."""

    pass


class SendGridRateLimitError(SendGridError):
    """Raised when rate limit is exceeded."""

    def __init__(self, message: str, retry_after: Optional[int] = None):
        super().__init__(message)
        self.retry_after = retry_after


class SendGridValidationError(SendGridError):
    """Raised when a message cannot be built from the given input."""

    pass


@dataclass
class SendResult:
    """Result of sending an email.

    Attributes:
        to_email: Recipient email address.
        success: Whether the provider accepted the message.
        message_id: SendGrid message ID for tracking.
        status_code: HTTP status code from API.
        sent_at: Timestamp when the provider accepted the message.
        error: Error message if send failed.
        error_kind: Classification of the failure.
    """

    to_email: str
    success: bool = True
    message_id: Optional[str] = None
    status_code: int = 0
    sent_at: Optional[datetime] = None
    error: Optional[str] = None
    error_kind: Optional[SendErrorKind] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "to_email": self.to_email,
            "success": self.success,
            "message_id": self.message_id,
            "status_code": self.status_code,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
            "error": self.error,
            "error_kind": self.error_kind.value if self.error_kind else None,
        }


def validate_email(email: Optional[str]) -> bool:
    """Check that a string looks like a deliverable email address."""
    if not email or not isinstance(email, str):
        return False
    return bool(EMAIL_REGEX.match(email.strip()))


def text_to_html(text: str) -> str:
    """Render a plain-text body as HTML, preserving line breaks."""
    return html.escape(text, quote=False).replace("\n", "<br>\n")


def classify_http_error(status_code: int, body: str) -> tuple[SendErrorKind, str]:
    """Map a non-auth, non-rate-limit provider error to a kind and message."""
    if status_code == 403 and "verified" in body.lower():
        return SendErrorKind.SENDER_UNVERIFIED, SENDER_UNVERIFIED_MESSAGE
    if status_code in (400, 403):
        return SendErrorKind.REJECTED, REJECTED_MESSAGE
    return SendErrorKind.OTHER, f"SendGrid error: {status_code} - {body}"


class SendGridClient:
    """Client for SendGrid transactional email delivery.

    Attributes:
        api_key: SendGrid API key.
        default_from_email: Sender used when none is passed.
        default_from_name: Sender display name used when none is passed.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        default_from_email: Optional[str] = None,
        default_from_name: Optional[str] = None,
    ) -> None:
        """Initialize SendGrid client.

        Args:
            api_key: SendGrid API key. Defaults to SENDGRID_API_KEY env var.
            default_from_email: Default sender email. Defaults to SENDGRID_FROM_EMAIL env var.
            default_from_name: Default sender name. Defaults to SENDGRID_FROM_NAME env var.

        Raises:
            ValueError: If API key is not provided.
        """
        self.api_key = api_key or os.environ.get("SENDGRID_API_KEY")
        if not self.api_key:
            raise ValueError(
                "SendGrid API key required. Set SENDGRID_API_KEY environment "
                "variable or pass api_key parameter."
            )

        self.default_from_email = default_from_email or os.environ.get("SENDGRID_FROM_EMAIL", "")
        self.default_from_name = default_from_name or os.environ.get("SENDGRID_FROM_NAME")

        self._client = SendGridAPIClient(api_key=self.api_key)
        logger.info(
            "SendGridClient initialized (from_email=%s)",
            self.default_from_email or "not set",
        )

    def _build_mail(
        self,
        to_email: str,
        from_email: str,
        from_name: Optional[str],
        subject: str,
        text_content: str,
    ) -> Mail:
        if not subject or not text_content:
            raise SendGridValidationError("Subject and body are required")

        mail = Mail()
        mail.from_email = Email(from_email, from_name)
        mail.subject = subject
        mail.add_to(To(to_email))
        mail.add_content(Content("text/plain", text_content))
        mail.add_content(Content("text/html", text_to_html(text_content)))
        return mail

    async def send_email(
        self,
        to_email: str,
        subject: str,
        text_content: str,
        from_email: Optional[str] = None,
        from_name: Optional[str] = None,
    ) -> SendResult:
        """Send a single plain-text email with an HTML alternative.

        Args:
            to_email: Recipient email address.
            subject: Email subject line.
            text_content: Plain text body content.
            from_email: Sender email address.
            from_name: Sender display name.

        Returns:
            SendResult describing acceptance or a classified failure.

        Raises:
            SendGridAuthError: If the API key is rejected.
            SendGridRateLimitError: If the provider throttles the request.
            SendGridValidationError: If subject or body is empty.
        """
        sender_email = from_email or self.default_from_email
        sender_name = from_name or self.default_from_name

        if not validate_email(to_email):
            return SendResult(
                to_email=to_email,
                success=False,
                error=f"Invalid recipient email address: {to_email}",
                error_kind=SendErrorKind.INVALID_ADDRESS,
            )
        if not validate_email(sender_email):
            return SendResult(
                to_email=to_email,
                success=False,
                error=f"Invalid sender email address: {sender_email}",
                error_kind=SendErrorKind.INVALID_ADDRESS,
            )

        mail = self._build_mail(to_email, sender_email, sender_name, subject, text_content)
        logger.info("Sending email to %s", to_email)

        loop = asyncio.get_running_loop()
        try:
            response = await loop.run_in_executor(None, lambda: self._client.send(mail))
        except HTTPError as e:
            status_code = getattr(e, "status_code", 0) or 0
            body = e.body.decode("utf-8", "replace") if isinstance(e.body, bytes) else str(e.body or "")
            logger.error("SendGrid returned %s for %s: %s", status_code, to_email, body)

            if status_code == 401:
                raise SendGridAuthError(f"Authentication failed: {body}") from e
            if status_code == 429:
                raise SendGridRateLimitError(f"Rate limit exceeded: {body}") from e

            kind, message = classify_http_error(status_code, body)
            return SendResult(
                to_email=to_email,
                success=False,
                status_code=status_code,
                error=message,
                error_kind=kind,
            )

        status_code = response.status_code
        if status_code not in (200, 201, 202):
            return SendResult(
                to_email=to_email,
                success=False,
                status_code=status_code,
                error=f"SendGrid returned status code {status_code}",
                error_kind=SendErrorKind.OTHER,
            )

        message_id = None
        if getattr(response, "headers", None):
            message_id = response.headers.get("X-Message-Id")

        logger.info("Email sent: to=%s, message_id=%s", to_email, message_id)
        return SendResult(
            to_email=to_email,
            success=True,
            message_id=message_id,
            status_code=status_code,
            sent_at=datetime.now(timezone.utc),
        )
