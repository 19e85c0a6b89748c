"""Command-line entry point."""
from __future__ import annotations

import argparse
import sys

from dotenv import load_dotenv
from loguru import logger

from release_pilot.config import Settings, get_settings
from release_pilot.digest import trigger_digest_run
from release_pilot.slack import digest_sections, post_digest_to_slack, status_line
from release_pilot.store import create_store

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(description="Release Pilot daily digests")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Aggregate and store a digest")
    run_parser.add_argument("--product", default=None, help="Product identifier")
    run_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print a preview instead of storing and posting to Slack",
    )

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default=DEFAULT_HOST)
    serve_parser.add_argument("--port", type=int, default=DEFAULT_PORT)

    subparsers.add_parser("mcp", help="Run the MCP tool server on stdio")
    return parser.parse_args(argv)


def configure_logging(settings: Settings) -> None:
    """Send logs to stderr at the configured level."""
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level.upper())


def run_command(args: argparse.Namespace, settings: Settings) -> int:
    """Execute one digest run and report it."""
    store = create_store(settings.database_url)
    product_id = args.product or settings.default_product_id
    result = trigger_digest_run(settings, store, product_id, dry_run=args.dry_run)
    if not result.ok or result.digest is None:
        logger.error("Digest run failed: {error}", error=result.error)
        return 1
    digest = result.digest
    if args.dry_run or not settings.slack_webhook_url:
        logger.info("--- DIGEST OUTPUT ---")
        logger.opt(raw=True).info(
            "{message}\n",
            message=f"{digest.title}\n{status_line(digest)}\n\n{digest_sections(digest)}",
        )
        return 0
    post_digest_to_slack(settings.slack_webhook_url, digest)
    return 0


def serve_command(args: argparse.Namespace) -> int:
    """Serve the HTTP API with uvicorn."""
    import uvicorn

    uvicorn.run("release_pilot.server:app", host=args.host, port=args.port)
    return 0


def main(argv: list[str] | None = None) -> int:
    """Run the Release Pilot CLI."""
    load_dotenv()
    args = parse_args(argv)
    settings = get_settings()
    configure_logging(settings)
    if args.command == "run":
        return run_command(args, settings)
    if args.command == "serve":
        return serve_command(args)
    from release_pilot.mcp_server import serve_stdio

    serve_stdio(settings)
    return 0


if __name__ == "__main__":
    sys.exit(main())
