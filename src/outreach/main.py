#!/usr/bin/env python3
"""CLI entry point for the outreach pipeline.

This module provides the command-line interface for driving companies
through the outreach pipeline. It handles argument parsing, configuration
validation, construction of the database and provider clients, and prints
every result as JSON.

Usage:
    outreach init-db
    outreach process --location "Istanbul, Turkey" --keyword saas --per-page 25
    outreach process --pending
    outreach approve <company-id> [<company-id> ...]
    outreach send <company-id> [<company-id> ...]

Example:
    # Import a page of Apollo results and draft emails for them
    outreach process --location "Berlin, Germany" --min-employees 10 --max-employees 200

    # Show pipeline counters
    outreach stats
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Optional

from .config import Config, ConfigError
from .integrations.apollo import ApolloClient, CompanySearchFilters
from .integrations.llm_client import LLMClient
from .integrations.sendgrid import SendGridClient
from .logging_utils import setup_logging
from .models import Database, PipelineState
from .pipeline import (
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

logger = logging.getLogger(__name__)

CLI_ACTOR = "cli"

# Provider credentials each command needs up front
COMMAND_REQUIREMENTS = {
    "process": ("contacts", "generation"),
    "retry": ("generation",),
    "send": ("email",),
}


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI.

    Returns:
        Configured ArgumentParser instance.
    """
    parser = argparse.ArgumentParser(
        prog="outreach",
        description="Human-in-the-loop B2B outreach pipeline",
        epilog="""
Examples:
  %(prog)s init-db
  %(prog)s process --location "Istanbul, Turkey" --keyword software
  %(prog)s list --state pending_review
  %(prog)s approve 4f0c... 9a1d...
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose output")
    parser.add_argument("--debug", action="store_true", help="Enable debug output")

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init-db", help="Create tables and seed default target titles")
    commands.add_parser("stats", help="Show company counts per pipeline state")
    commands.add_parser("seed-titles", help="Add missing default target titles")

    list_parser = commands.add_parser("list", help="List companies in a pipeline state")
    list_parser.add_argument(
        "--state",
        choices=[state.value for state in PipelineState],
        default=PipelineState.PENDING_REVIEW.value,
        help="Pipeline state (default: pending_review)",
    )
    list_parser.add_argument("--limit", type=int, default=50, help="Page size (default: 50)")
    list_parser.add_argument("--offset", type=int, default=0, help="Page offset (default: 0)")

    process = commands.add_parser(
        "process", help="Import companies from Apollo and generate drafts"
    )
    source = process.add_mutually_exclusive_group()
    source.add_argument(
        "--pending",
        action="store_true",
        help="Process companies already in pending_generation instead of searching",
    )
    source.add_argument(
        "--company-id",
        default=None,
        help="Generate a draft for a single company",
    )
    process.add_argument("--location", action="append", default=[], help="Headquarters location")
    process.add_argument("--keyword", action="append", default=[], help="Organization keyword tag")
    process.add_argument("--industry", action="append", default=[], help="Industry keyword")
    process.add_argument("--min-employees", type=int, default=None, help="Minimum employees")
    process.add_argument("--max-employees", type=int, default=None, help="Maximum employees")
    process.add_argument("--page", type=int, default=1, help="Search page (default: 1)")
    process.add_argument("--per-page", type=int, default=25, help="Results per page (default: 25)")
    process.add_argument(
        "--include-fetched",
        action="store_true",
        help="Also process organizations that were imported before",
    )
    process.add_argument("--prompt-file", default=None, help="Custom prompt file")

    retry = commands.add_parser("retry", help="Regenerate drafts for email_not_generated companies")
    retry.add_argument("company_ids", nargs="+")
    retry.add_argument("--prompt-file", default=None, help="Custom prompt file")

    approve = commands.add_parser("approve", help="Approve drafts in pending_review")
    approve.add_argument("company_ids", nargs="+")

    send = commands.add_parser("send", help="Send approved drafts")
    send.add_argument("company_ids", nargs="+")

    delete = commands.add_parser("delete", help="Delete companies with their drafts")
    delete.add_argument("company_ids", nargs="+")
    delete.add_argument(
        "--delete-fetched",
        action="store_true",
        help="Also forget the organization so it can be imported again",
    )

    return parser


def validate_config(config: Config, command: str) -> None:
    """Check the configuration a command needs.

    Raises:
        ConfigError: If a required setting is missing.
    """
    config.validate_for_database()
    for requirement in COMMAND_REQUIREMENTS.get(command, ()):
        if requirement == "contacts":
            config.validate_for_contacts()
        elif requirement == "generation":
            config.validate_for_generation()
        elif requirement == "email":
            config.validate_for_email()


def build_orchestrator(
    config: Config,
    database: Database,
    command: str,
) -> tuple[BatchOrchestrator, Optional[ApolloClient]]:
    """Construct the pipeline services for one CLI run.

    Provider clients are only created for commands that use them.

    Returns:
        Tuple of (orchestrator, Apollo client or None).
    """
    requirements = COMMAND_REQUIREMENTS.get(command, ())

    apollo = None
    if "contacts" in requirements:
        apollo = ApolloClient(
            api_key=config.APOLLO_API_KEY,
            timeout_seconds=config.APOLLO_TIMEOUT_SECONDS,
        )
    llm = None
    if "generation" in requirements:
        llm = LLMClient(
            api_key=config.OPENAI_API_KEY,
            model=config.OPENAI_MODEL,
            timeout_seconds=config.OPENAI_TIMEOUT_SECONDS,
        )
    sendgrid = None
    if "email" in requirements:
        sendgrid = SendGridClient(
            api_key=config.SENDGRID_API_KEY,
            default_from_email=config.SENDGRID_FROM_EMAIL or None,
            default_from_name=config.SENDGRID_FROM_NAME or None,
        )

    state_machine = PipelineStateMachine(database)
    orchestrator = BatchOrchestrator(
        database=database,
        state_machine=state_machine,
        contact_resolver=ContactResolver(database, apollo),
        draft_generator=DraftGenerator(
            database,
            llm,
            RetryPolicy(
                max_retries=config.GENERATION_MAX_RETRIES,
                base_delay_seconds=config.GENERATION_RETRY_BASE_DELAY_SECONDS,
            ),
        ),
        dispatcher=EmailDispatcher(
            database,
            state_machine,
            sendgrid,
            default_from_email=config.SENDGRID_FROM_EMAIL or None,
            default_from_name=config.SENDGRID_FROM_NAME or None,
        ),
        review_service=DraftReviewService(database, state_machine),
        config=BatchConfig.from_config(config),
    )
    return orchestrator, apollo


def read_prompt(path: Optional[str]) -> Optional[str]:
    if not path:
        return None
    with open(path, encoding="utf-8") as f:
        return f.read()


async def run_process(
    args: argparse.Namespace,
    orchestrator: BatchOrchestrator,
    catalog: Catalog,
    apollo: ApolloClient,
) -> dict[str, Any]:
    custom_prompt = read_prompt(args.prompt_file)

    if args.company_id:
        result = await orchestrator.generate_for_company(
            args.company_id, custom_prompt, performed_by=CLI_ACTOR
        )
        return result.to_dict()
    if args.pending:
        result = await orchestrator.process_pending(custom_prompt, performed_by=CLI_ACTOR)
        return result.to_dict()

    filters = CompanySearchFilters(
        locations=args.location,
        employee_count_min=args.min_employees,
        employee_count_max=args.max_employees,
        industries=args.industry,
        keywords=args.keyword,
    )
    search = await apollo.search_companies(filters, page=args.page, per_page=args.per_page)
    organizations = search.companies
    if not args.include_fetched:
        fetched = set(await catalog.fetched_organization_ids())
        organizations = [o for o in organizations if o.external_id not in fetched]

    result = await orchestrator.process_all(organizations, custom_prompt, performed_by=CLI_ACTOR)
    output = result.to_dict()
    output["search"] = {
        "page": search.page,
        "total_entries": search.total_entries,
        "total_pages": search.total_pages,
        "returned": len(search.companies),
        "new": len(organizations),
    }
    return output


async def run_command(args: argparse.Namespace, config: Config) -> dict[str, Any]:
    """Run one CLI command and return its JSON-serialisable result."""
    database = Database.from_config(config)
    try:
        catalog = Catalog(database, default_sender_email=config.SENDGRID_FROM_EMAIL or None)
        orchestrator, apollo = build_orchestrator(config, database, args.command)
        state_machine = orchestrator.state_machine

        if args.command == "init-db":
            await database.create_tables()
            added = await catalog.seed_default_titles()
            return {"success": True, "titles_added": added}

        if args.command == "stats":
            return await state_machine.get_pipeline_stats()

        if args.command == "list":
            companies, total = await state_machine.get_companies_by_state(
                PipelineState(args.state), limit=args.limit, offset=args.offset
            )
            return {
                "state": args.state,
                "total": total,
                "companies": [c.to_dict() for c in companies],
            }

        if args.command == "seed-titles":
            added = await catalog.seed_default_titles()
            return {"success": True, "titles_added": added}

        if args.command == "process":
            return await run_process(args, orchestrator, catalog, apollo)

        if args.command == "retry":
            result = await orchestrator.batch_retry(
                args.company_ids, read_prompt(args.prompt_file), performed_by=CLI_ACTOR
            )
            return result.to_dict()

        if args.command == "approve":
            result = await orchestrator.batch_approve(args.company_ids, approved_by=CLI_ACTOR)
            return result.to_dict()

        if args.command == "send":
            result = await orchestrator.batch_send(args.company_ids, performed_by=CLI_ACTOR)
            return result.to_dict()

        if args.command == "delete":
            result = await orchestrator.batch_delete(
                args.company_ids, delete_fetched=args.delete_fetched
            )
            return result.to_dict()

        raise ValueError(f"Unknown command: {args.command}")
    finally:
        await database.close()


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the CLI.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    parser = create_parser()
    args = parser.parse_args(argv)
    config = Config()

    level = config.LOG_LEVEL
    if args.debug or config.DEBUG:
        level = "DEBUG"
    elif args.verbose:
        level = "INFO"
    setup_logging(level=level, structured=config.is_production())

    try:
        validate_config(config, args.command)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    try:
        output = asyncio.run(run_command(args, config))
    except KeyboardInterrupt:
        print("\nCancelled by user.", file=sys.stderr)
        return 130
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    except Exception as e:
        logger.exception("Command %s failed", args.command)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(output, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
