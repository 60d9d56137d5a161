# =============================================================================
# mediaingest/cli/ingest.py - Ingestion CLI (drives a running server)
# =============================================================================
#
# Streams one ingestion job against a mediaingest server and renders every
# event as it arrives, prefixed with its advisory progress percentage:
#
#   [  5%] VALIDATING
#   [ 30%] INITIALIZING
#          Uploading 3.2 MB...
#   [ 60%] PROCESSING
#   [100%] Done: file 7c0f... is ready
#
# Subcommands map one-to-one onto the three input modes, plus a listing:
#
#   upload  - send a small local file through the server (4.5MB ceiling)
#   url     - have the server fetch a remote file (100MB ceiling)
#   direct  - upload straight to the provider with a server-issued
#             credential, then register the result (2GB / 20MB / 50MB)
#   list    - show the tenant's persisted files
#
# Usage examples:
#   python -m mediaingest.cli upload ./clip.mp4 --tenant acme
#   python -m mediaingest.cli url https://cdn.example.com/clip.mp4 --tenant acme
#   python -m mediaingest.cli direct ./lecture.mp4 --tenant acme
#   python -m mediaingest.cli list --tenant acme --limit 20
#
# Exit codes: 0 on a success terminal event, 1 on an error event or any
# MediaIngestError raised client-side.
# =============================================================================

"""Standalone CLI that streams ingestion jobs against a mediaingest server.

Usage::

    python -m mediaingest.cli upload ./clip.mp4 --tenant acme
    python -m mediaingest.cli url https://cdn.example.com/clip.mp4 --tenant acme
    python -m mediaingest.cli direct ./lecture.mp4 --tenant acme
    python -m mediaingest.cli list --tenant acme
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import AsyncIterator

import httpx

from mediaingest.client.api_client import IngestionAPIClient
from mediaingest.client.direct_upload import DirectUploadRunner
from mediaingest.config.settings import Settings
from mediaingest.models.events import EventKind, ProgressEvent
from mediaingest.utils.errors import MediaIngestError
from mediaingest.utils.formatting import format_file_size


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def render_event(event: ProgressEvent) -> str:
    """Format one event as a single console line."""
    percent = event.percent
    prefix = f"[{percent:>3}%]" if percent is not None else " " * 6
    if event.kind is EventKind.SUCCESS:
        if "file_id" in event.result:
            return f"{prefix} Done: file {event.result['file_id']} is ready"
        if "credential" in event.result:
            return f"{prefix} Upload credential issued for {event.result.get('file_name')}"
        return f"{prefix} Done"
    if event.kind is EventKind.ERROR:
        return f"{prefix} Error: {event.message}"
    if event.kind is EventKind.DONE:
        return f"{prefix} Done"
    return f"{prefix} {event.message}"


async def _print_event(event: ProgressEvent) -> None:
    print(render_event(event))


async def _consume(events: AsyncIterator[ProgressEvent]) -> int:
    """Print every event; exit code follows the terminal event."""
    exit_code = 1
    async for event in events:
        print(render_event(event))
        if event.is_terminal:
            exit_code = 1 if event.kind is EventKind.ERROR else 0
    return exit_code


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


async def _handle_upload(args: argparse.Namespace, api: IngestionAPIClient) -> int:
    print(f"Uploading {args.path} through {args.server}")
    return await _consume(api.upload_file(args.path, mime_type=args.mime_type))


async def _handle_url(args: argparse.Namespace, api: IngestionAPIClient) -> int:
    print(f"Importing {args.url}")
    return await _consume(api.import_url(args.url, title=args.title))


async def _handle_direct(
    args: argparse.Namespace,
    api: IngestionAPIClient,
    http_client: httpx.AsyncClient,
) -> int:
    print(f"Uploading {args.path} directly to the provider")
    runner = DirectUploadRunner(api, http_client=http_client)
    record = await runner.run(args.path, mime_type=args.mime_type, report=_print_event)
    print(f"[100%] Done: file {record.id} is ready ({record.provider_uri})")
    return 0


async def _handle_list(args: argparse.Namespace, api: IngestionAPIClient) -> int:
    listing = await api.list_files(limit=args.limit)
    print(f"Files for tenant {api.tenant_id}: {listing.total}")
    for record in listing.files:
        print(
            f"  {record.id}  {record.category.value:<12} "
            f"{format_file_size(record.size):>10}  {record.title}"
        )
    return 0


async def _run(args: argparse.Namespace) -> int:
    timeout = httpx.Timeout(args.timeout, connect=10.0)
    async with httpx.AsyncClient(base_url=args.server, timeout=timeout) as http_client:
        api = IngestionAPIClient(http_client, tenant_id=args.tenant)
        try:
            if args.command == "upload":
                return await _handle_upload(args, api)
            if args.command == "url":
                return await _handle_url(args, api)
            if args.command == "direct":
                return await _handle_direct(args, api, http_client)
            return await _handle_list(args, api)
        except MediaIngestError as exc:
            print(f"Error: {exc.user_message}", file=sys.stderr)
            return 1


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser(app_settings: Settings | None = None) -> argparse.ArgumentParser:
    """Build the argparse parser for the ingestion CLI."""
    port = app_settings.app_port if app_settings is not None else 8000
    parser = argparse.ArgumentParser(
        prog="python -m mediaingest.cli",
        description="Stream media ingestion jobs against a mediaingest server.",
    )
    parser.add_argument(
        "--server",
        default=f"http://localhost:{port}",
        help="Server root URL (default: %(default)s)",
    )
    parser.add_argument("--tenant", required=True, help="Tenant id sent as X-Tenant-ID")
    parser.add_argument(
        "--timeout",
        type=float,
        default=600.0,
        help="Read timeout in seconds for each request (default: 600)",
    )
    subparsers = parser.add_subparsers(dest="command", help="Ingestion commands")

    # -- upload --
    upload_parser = subparsers.add_parser("upload", help="Upload a small file through the server")
    upload_parser.add_argument("path", help="Path to the local file")
    upload_parser.add_argument("--mime-type", dest="mime_type", help="Override the MIME type")

    # -- url --
    url_parser = subparsers.add_parser("url", help="Have the server import a remote file")
    url_parser.add_argument("url", help="Direct link to the media file")
    url_parser.add_argument("--title", help="Title stored on the record")

    # -- direct --
    direct_parser = subparsers.add_parser(
        "direct", help="Upload straight to the provider with a server-issued credential"
    )
    direct_parser.add_argument("path", help="Path to the local file")
    direct_parser.add_argument("--mime-type", dest="mime_type", help="Override the MIME type")

    # -- list --
    list_parser = subparsers.add_parser("list", help="List the tenant's files")
    list_parser.add_argument("--limit", type=int, default=100, help="Maximum rows (default: 100)")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """CLI entry point: parse arguments, run the command, exit with its code."""
    parser = _build_parser(Settings())
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    sys.exit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
