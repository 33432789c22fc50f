"""Outreach Pipeline Database Models.

This module contains SQLAlchemy models for the outreach pipeline.
"""

from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase


class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


# Import models to register them with Base metadata
from .company import Company, PipelineState
from .email_draft import EmailDraft
from .audit_log import AuditLog, AuditAction
from .fetched_organization import FetchedOrganization
from .target_title import TargetTitle
from .prompt import Prompt
from .app_settings import AppSettings

# Import database utilities
from .database import Database, normalize_database_url

__all__ = [
    # Base class
    "Base",
    # Models
    "Company",
    "PipelineState",
    "EmailDraft",
    "AuditLog",
    "AuditAction",
    "FetchedOrganization",
    "TargetTitle",
    "Prompt",
    "AppSettings",
    # Database utilities
    "Database",
    "normalize_database_url",
]
