"""Command-line entry point."""

from __future__ import annotations

import argparse
import logging
from datetime import date
from pathlib import Path
from typing import Sequence

from .auth import Authenticator
from .config import Settings, load_client_config, load_settings
from .errors import ConfigurationError, OrganizerError
from .graph_client import GraphMailClient
from .models import SearchQuery
from .organizer import OrganizerConfig, PdfOrganizer
from .token_store import TokenStore

logger = logging.getLogger(__name__)


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="email-to-pdf-organizer",
        description="Download PDF attachments from your mailbox into a local directory.",
    )
    parser.add_argument(
        "-o", "--output", type=Path, default=settings.output_dir, help="Output directory for PDF files"
    )
    parser.add_argument(
        "-n",
        "--name-pattern",
        default=settings.name_pattern,
        help="Naming pattern for PDF files; placeholders: {id} {subject} {date} {original_filename}",
    )
    parser.add_argument(
        "-m",
        "--month",
        type=parse_month,
        default=date.today().strftime("%Y-%m"),
        help="Month to filter emails by (YYYY-MM), defaults to the current month",
    )
    parser.add_argument("--all-dates", action="store_true", help="Search without a date range")
    parser.add_argument(
        "--auth-flow",
        choices=["local_callback", "manual"],
        help="How to authorize when no cached token is usable",
    )
    parser.add_argument("--max-messages", type=int, help="Limit how many messages to inspect")
    parser.add_argument("--dry-run", action="store_true", help="List actions without downloading")
    return parser


def parse_month(value: str) -> str:
    try:
        SearchQuery.for_month(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc
    return value


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def main(argv: Sequence[str] | None = None, settings: Settings | None = None) -> int:
    if settings is None:
        try:
            settings = load_settings()
        except ConfigurationError as exc:
            configure_logging("INFO")
            logger.error("%s", exc)
            return 1
    args = build_parser(settings).parse_args(argv)
    configure_logging(settings.log_level)

    query = SearchQuery() if args.all_dates else SearchQuery.for_month(args.month)
    config = OrganizerConfig(
        output_dir=args.output,
        name_pattern=args.name_pattern,
        query=query,
        dry_run=args.dry_run,
        max_messages=args.max_messages,
    )

    if args.auth_flow:
        settings = settings.model_copy(update={"auth_flow": args.auth_flow})

    try:
        client_config = load_client_config(settings.client_config_path)
        authenticator = Authenticator(settings, client_config, TokenStore(settings.token_path))
        organizer = PdfOrganizer(config, authenticator, GraphMailClient(settings))
        organizer.run()
    except OrganizerError as exc:
        logger.error("%s", exc)
        return 1
    return 0
