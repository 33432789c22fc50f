"""Unit tests for configuration, logging setup and database URL handling."""

import json
import logging
import os
from unittest.mock import patch

import pytest

from outreach.config import Config, ConfigError
from outreach.logging_utils import HumanReadableFormatter, StructuredFormatter, setup_logging
from outreach.main import create_parser, validate_config
from outreach.models import normalize_database_url


# ============================================================================
# Config
# ============================================================================

class TestConfig:
    """Tests for environment-driven configuration."""

    @pytest.mark.unit
    def test_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            config = Config()

        assert config.APP_ENV == "dev"
        assert config.DATABASE_URL == "sqlite:///./outreach.db"
        assert config.BATCH_CHUNK_SIZE == 3
        assert config.BATCH_CHUNK_DELAY_SECONDS == 0.5
        assert config.GENERATION_MAX_RETRIES == 2
        assert not config.is_production()

    @pytest.mark.unit
    def test_values_from_environment(self):
        env = {
            "APP_ENV": "production",
            "DEBUG": "1",
            "LOG_LEVEL": "warning",
            "DATABASE_URL": "postgresql://u:p@db:5432/outreach",
            "BATCH_CHUNK_SIZE": "5",
        }
        with patch.dict(os.environ, env, clear=True):
            config = Config()

        assert config.is_production()
        assert config.DEBUG is True
        assert config.LOG_LEVEL == "WARNING"
        assert config.BATCH_CHUNK_SIZE == 5
        assert config.get_database_connection_args()["pool_pre_ping"] is True

    @pytest.mark.unit
    def test_sqlite_engine_args_have_no_pool_sizing(self):
        with patch.dict(os.environ, {"DATABASE_URL": "sqlite:///tmp.db"}, clear=True):
            args = Config().get_database_connection_args()

        assert args == {"echo": False}

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "command,missing",
        [("process", "APOLLO_API_KEY"), ("retry", "OPENAI_API_KEY"), ("send", "SENDGRID_API_KEY")],
    )
    def test_commands_check_their_providers(self, command, missing):
        with patch.dict(os.environ, {}, clear=True):
            config = Config()

        with pytest.raises(ConfigError, match=missing):
            validate_config(config, command)

    @pytest.mark.unit
    def test_database_only_commands(self):
        with patch.dict(os.environ, {}, clear=True):
            config = Config()

        validate_config(config, "approve")
        validate_config(config, "delete")


class TestParser:
    """Tests for the command-line parser."""

    @pytest.mark.unit
    def test_process_filters(self):
        args = create_parser().parse_args([
            "process", "--location", "Istanbul, Turkey", "--location", "Ankara, Turkey",
            "--keyword", "saas", "--min-employees", "10",
        ])

        assert args.command == "process"
        assert args.location == ["Istanbul, Turkey", "Ankara, Turkey"]
        assert args.keyword == ["saas"]
        assert args.min_employees == 10
        assert args.page == 1

    @pytest.mark.unit
    def test_pending_and_company_are_exclusive(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["process", "--pending", "--company-id", "abc"])

    @pytest.mark.unit
    def test_delete_flags(self):
        args = create_parser().parse_args(["delete", "a", "b", "--delete-fetched"])

        assert args.company_ids == ["a", "b"]
        assert args.delete_fetched is True


# ============================================================================
# Logging
# ============================================================================

def make_record(message="Processing %s", args=("Acme",), **extra):
    record = logging.LogRecord(
        name="outreach.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg=message,
        args=args,
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestLogging:
    """Tests for log formatters and setup."""

    @pytest.mark.unit
    def test_structured_output_is_json(self):
        formatter = StructuredFormatter(service_name="outreach")

        data = json.loads(formatter.format(make_record(company_id="c-1", chunk=object())))

        assert data["message"] == "Processing Acme"
        assert data["level"] == "INFO"
        assert data["service"] == "outreach"
        assert data["company_id"] == "c-1"
        assert "company_id" not in data["extra"]
        assert isinstance(data["extra"]["chunk"], str)

    @pytest.mark.unit
    def test_human_readable_output(self):
        formatter = HumanReadableFormatter(use_colors=False)

        line = formatter.format(make_record(company_id="c-1", batch="send", attempt=2))

        assert "INFO" in line
        assert "outreach.test: Processing Acme" in line
        assert line.endswith("[batch=send company_id=c-1]")

    @pytest.mark.unit
    def test_setup_replaces_handlers(self):
        setup_logging(level="DEBUG", structured=True)
        logger = setup_logging(level="INFO", structured=False)

        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, HumanReadableFormatter)
        assert root.level == logging.INFO
        assert logger.name == "outreach"
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING


# ============================================================================
# Database URLs
# ============================================================================

class TestDatabaseUrl:
    """Tests for async driver URL normalization."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "url,expected",
        [
            ("postgres://u:p@h/db", "postgresql+asyncpg://u:p@h/db"),
            ("postgresql://u:p@h/db", "postgresql+asyncpg://u:p@h/db"),
            ("sqlite:///./outreach.db", "sqlite+aiosqlite:///./outreach.db"),
            ("sqlite+aiosqlite:///x.db", "sqlite+aiosqlite:///x.db"),
        ],
    )
    def test_normalized(self, url, expected):
        assert normalize_database_url(url) == expected

    @pytest.mark.unit
    @pytest.mark.parametrize("url", ["", "mysql://u:p@h/db"])
    def test_rejected(self, url):
        with pytest.raises(ValueError):
            normalize_database_url(url)
