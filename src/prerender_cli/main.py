"""
CLI main entry point for the Prerender Content Gain Audit.

Thin wrapper around the core engine - no business logic here.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from prerender_audit import PrerenderAuditRunner
from prerender_audit.config import get_settings
from prerender_audit.guidance import GuidanceHandler
from prerender_audit.logger import configure, get_logger
from prerender_audit.messaging import FileQueue
from prerender_audit.poller import ResultPoller
from prerender_audit.repository import JsonFileRepository
from prerender_audit.storage import FileBlobStore
from prerender_audit.verifier import SuggestionVerifier

from .output import print_guidance_result, print_report_summary

logger = get_logger("cli")


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        description="Find pages whose content only appears after JavaScript runs.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s site-1 https://example.com --top-pages top-pages.json
  %(prog)s site-1 https://example.com --scrape-job-id job-42 --wait
  %(prog)s site-1 https://example.com --include https://example.com/pricing
        """,
    )

    parser.add_argument("site_id", type=str, help="Site identifier")
    parser.add_argument("base_url", type=str, help="Base URL of the site")

    parser.add_argument(
        "--storage-dir",
        type=str,
        default=None,
        help="Root directory of the blob store (default: PRERENDER_STORAGE_DIR)",
    )

    parser.add_argument(
        "--bucket",
        type=str,
        default=None,
        help="Bucket holding the scraped pages (default: PRERENDER_SCRAPER_BUCKET)",
    )

    parser.add_argument(
        "--scrape-job-id",
        type=str,
        default=None,
        help="Scrape job the snapshots were stored under (default: site id)",
    )

    parser.add_argument(
        "--top-pages",
        type=str,
        default=None,
        help="JSON file with a list of {url, traffic} objects",
    )

    parser.add_argument(
        "--include",
        type=str,
        nargs="*",
        default=[],
        help="Additional URLs to always compare",
    )

    parser.add_argument(
        "--threshold",
        type=float,
        default=None,
        help="Content gain threshold (default: PRERENDER_CONTENT_GAIN_THRESHOLD)",
    )

    parser.add_argument(
        "--repository",
        type=str,
        default="data/opportunities.json",
        help="JSON file holding opportunities and suggestions (default: data/opportunities.json)",
    )

    parser.add_argument(
        "--outbox",
        type=str,
        default="data/outbox.jsonl",
        help="JSON lines file receiving guidance requests (default: data/outbox.jsonl)",
    )

    parser.add_argument(
        "--wait",
        action="store_true",
        help="Wait for the scraper to write all artifacts before comparing",
    )

    parser.add_argument(
        "--verify-fixed",
        action="store_true",
        help="Mark suggestions of pages already served pre-rendered as FIXED",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    return parser.parse_args(argv)


def read_top_pages(top_pages_file: str | None) -> list[dict]:
    """
    Read top pages from a JSON file.

    Args:
        top_pages_file: Path to the JSON file, or None

    Returns:
        List of top page objects

    Raises:
        SystemExit: If the file cannot be read
    """
    if top_pages_file is None:
        return []

    try:
        file_path = Path(top_pages_file)

        if not file_path.exists():
            print(f"Error: File not found: {top_pages_file}", file=sys.stderr)
            sys.exit(1)

        with open(file_path, "r", encoding="utf-8") as f:
            pages = json.load(f)

        if not isinstance(pages, list):
            print(f"Error: Expected a list of pages in {top_pages_file}", file=sys.stderr)
            sys.exit(1)

        return pages

    except (OSError, ValueError) as e:
        print(f"Error reading file {top_pages_file}: {e}", file=sys.stderr)
        sys.exit(1)


def main(argv: list[str] | None = None) -> None:
    """
    Main CLI entry point.

    Orchestrates the entire CLI workflow:
    1. Parse arguments and load settings
    2. Read top pages from file
    3. Run the audit
    4. Display results
    """
    args = parse_arguments(argv)
    settings = get_settings()

    configure("DEBUG" if args.verbose else settings.log_level, settings.log_file)

    if args.storage_dir:
        settings = settings.model_copy(update={"storage_dir": args.storage_dir})
    if args.bucket:
        settings = settings.model_copy(update={"scraper_bucket": args.bucket})
    if args.threshold is not None:
        settings = settings.model_copy(update={"content_gain_threshold": args.threshold})

    top_pages = read_top_pages(args.top_pages)
    print(f"Found {len(top_pages)} top pages for {args.base_url}\n")

    blob_store = FileBlobStore(settings.storage_dir)
    repository = JsonFileRepository(args.repository)

    poller = None
    if args.wait or settings.wait_for_scrapes:
        poller = ResultPoller(
            blob_store,
            settings.scraper_bucket,
            poll_interval_ms=settings.poll_interval_ms,
            max_wait_ms=settings.max_wait_ms,
        )

    verifier = SuggestionVerifier(repository) if args.verify_fixed else None

    runner = PrerenderAuditRunner.from_settings(
        settings,
        blob_store,
        repository,
        queue=FileQueue(args.outbox),
        poller=poller,
        verifier=verifier,
    )

    logger.info(f"Starting prerender audit for siteId={args.site_id} with {len(top_pages)} top pages")
    print("Comparing snapshots...")
    result = runner.run(
        args.site_id,
        args.base_url,
        top_pages=top_pages,
        included_urls=args.include,
        scrape_job_id=args.scrape_job_id,
    )

    logger.info(f"Prerender audit finished for siteId={args.site_id} with status {result['status']}")
    print_report_summary(result)

    # Exit with error code if the audit failed
    if result["status"] == "ERROR":
        sys.exit(1)


def parse_guidance_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command-line arguments of the guidance callback command.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        description="Merge a guidance service callback into stored suggestions.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s callback.json
  %(prog)s callback.json --repository data/opportunities.json
        """,
    )

    parser.add_argument("message_file", type=str, help="JSON file with the callback message")

    parser.add_argument(
        "--repository",
        type=str,
        default="data/opportunities.json",
        help="JSON file holding opportunities and suggestions (default: data/opportunities.json)",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    return parser.parse_args(argv)


def read_message(message_file: str) -> dict:
    """
    Read a callback message from a JSON file.

    Raises:
        SystemExit: If the file cannot be read or does not hold an object
    """
    try:
        with open(message_file, "r", encoding="utf-8") as f:
            message = json.load(f)
    except (OSError, ValueError) as e:
        print(f"Error reading file {message_file}: {e}", file=sys.stderr)
        sys.exit(1)

    if not isinstance(message, dict):
        print(f"Error: Expected a JSON object in {message_file}", file=sys.stderr)
        sys.exit(1)

    return message


def handle_guidance_main(argv: list[str] | None = None) -> None:
    """
    Entry point of ``prerender-guidance``.

    Applies one guidance callback to the repository file and exits with
    code 1 when the message is rejected or its opportunity is unknown.
    """
    args = parse_guidance_arguments(argv)
    settings = get_settings()

    configure("DEBUG" if args.verbose else settings.log_level, settings.log_file)

    message = read_message(args.message_file)
    repository = JsonFileRepository(args.repository)

    logger.info(f"Handling guidance callback from {args.message_file}")
    result = asyncio.run(GuidanceHandler(repository).handle(message))

    print_guidance_result(result)

    if not result.ok:
        sys.exit(1)


if __name__ == "__main__":
    main()
