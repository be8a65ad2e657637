# ruff: noqa: T201

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv
from pydantic_core import to_json

from extaudit.adapters.json_export import JsonReportExporter
from extaudit.app import (
    AuditRequest,
    audit_directory,
    lookup_did,
    open_directory,
    patch_directory,
    patch_missing_assignments,
    plan_fixups,
)
from extaudit.config import ConfigurationError, configure_logging, get_directory_config
from extaudit.domain.reconciliation import (
    DEFAULT_RECORDS_PAGE_SIZE,
    DEFAULT_USERS_PAGE_SIZE,
    AuditAuthorizationError,
    summarize,
)
from extaudit.domain.remediation import FixupCategory, PatchOptions
from extaudit.domain.types import AuditKind

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from extaudit.config import DirectoryConfig

log = logging.getLogger(__name__)

EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_UNAUTHORIZED = 3
EXIT_INTERRUPTED = 130
WRITE_COMMANDS = frozenset({"patch", "patch-missing"})


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="extaudit",
        description="Audit extension/DID assignments against ownership records",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    audit = subparsers.add_parser("audit", help="Snapshot the directory and report findings")
    _add_audit_arguments(audit)
    audit.add_argument(
        "--report",
        action="store_true",
        help="Print the full dry-run report instead of the summary",
    )

    plan = subparsers.add_parser("plan", help="Build a fix-up plan from the findings")
    _add_audit_arguments(plan)
    _add_plan_arguments(plan)

    patch = subparsers.add_parser("patch", help="Build and execute a fix-up plan")
    _add_audit_arguments(patch)
    _add_plan_arguments(patch)
    _add_write_arguments(patch)
    patch.add_argument(
        "--category",
        action="append",
        choices=[str(category) for category in FixupCategory],
        help="Plan category to execute; repeat to select several (default: all)",
    )
    patch_missing = subparsers.add_parser(
        "patch-missing",
        help="Reassert the profile number of every user whose number has no record",
    )
    _add_audit_arguments(patch_missing)
    _add_write_arguments(patch_missing)

    lookup = subparsers.add_parser("lookup-did", help="Find DID records for a number")
    lookup.add_argument("number", type=str, help="DID number to look up")

    return parser.parse_args(list(argv))


def _add_audit_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--kind",
        choices=[str(kind) for kind in AuditKind],
        default=str(AuditKind.EXTENSION),
        help="Number space to audit (default: %(default)s)",
    )
    parser.add_argument(
        "--include-inactive",
        action="store_true",
        help="Include inactive users in the snapshot",
    )
    parser.add_argument(
        "--users-page-size",
        type=int,
        default=DEFAULT_USERS_PAGE_SIZE,
        help="Users per page, clamped to the API maximum (default: %(default)s)",
    )
    parser.add_argument(
        "--records-page-size",
        type=int,
        default=DEFAULT_RECORDS_PAGE_SIZE,
        help="Ownership records per page, clamped to the API maximum (default: %(default)s)",
    )


def _add_plan_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--reassert-consistent",
        action="store_true",
        help="Also reassert numbers that are already consistent",
    )
    parser.add_argument(
        "--no-prefer-assign",
        action="store_true",
        help="Clear conflicting numbers instead of assigning available ones",
    )


def _add_write_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--apply",
        action="store_true",
        help="Write changes; without it the run is simulated (WhatIf)",
    )
    parser.add_argument(
        "--sleep-ms",
        type=int,
        default=150,
        help="Delay between writes in milliseconds (default: %(default)s)",
    )
    parser.add_argument(
        "--max-updates",
        type=int,
        default=0,
        help="Stop updating after this many items, 0 for unlimited (default: %(default)s)",
    )
    parser.add_argument(
        "--max-failures",
        type=int,
        default=0,
        help="Skip the rest after this many failures, 0 for unlimited (default: %(default)s)",
    )
    parser.add_argument(
        "--verify",
        action="store_true",
        help="Re-read every patched user afterwards and confirm the change",
    )


def _audit_request(args: argparse.Namespace) -> AuditRequest:
    if args.command == "lookup-did":
        return AuditRequest()
    if args.users_page_size <= 0 or args.records_page_size <= 0:
        raise ValueError("Page sizes must be positive")
    return AuditRequest(
        kind=AuditKind(args.kind),
        include_inactive=args.include_inactive,
        users_page_size=args.users_page_size,
        records_page_size=args.records_page_size,
    )


def _patch_options(args: argparse.Namespace) -> PatchOptions:
    for name in ("sleep_ms", "max_updates", "max_failures"):
        if getattr(args, name) < 0:
            raise ValueError(f"--{name.replace('_', '-')} must be non-negative")
    categories = getattr(args, "category", None) or FixupCategory
    selected = {FixupCategory(value) for value in categories}
    return PatchOptions(
        simulate=not args.apply,
        sleep_between_seconds=args.sleep_ms / 1000,
        max_updates=args.max_updates,
        max_failures=args.max_failures,
        include_missing=FixupCategory.MISSING in selected,
        include_duplicate_user=FixupCategory.DUPLICATE_USER in selected,
        include_discrepancy=FixupCategory.DISCREPANCY in selected,
        include_reassert=FixupCategory.REASSERT in selected,
    )


async def _run_command(
    args: argparse.Namespace,
    config: DirectoryConfig,
    request: AuditRequest,
    options: PatchOptions | None,
) -> bytes:
    exporter = JsonReportExporter()

    async with open_directory(config) as client:
        if args.command == "lookup-did":
            return to_json(await lookup_did(client, args.number), indent=2)

        if args.command == "audit":
            run = await audit_directory(client, request)
            if args.report:
                return exporter.export(run.context, run.report)
            return exporter.export(run.context, run.report.counts)

        prefer_assign = not args.no_prefer_assign
        if args.command == "plan":
            context, plan = await plan_fixups(
                client,
                request,
                reassert_consistent_users=args.reassert_consistent,
                prefer_assign_over_blank=prefer_assign,
            )
            return exporter.export(context, plan)

        if args.command == "patch":
            patch_run = await patch_directory(
                client,
                request,
                options=options,
                reassert_consistent_users=args.reassert_consistent,
                prefer_assign_over_blank=prefer_assign,
                verify_after=args.verify,
            )
            log.info("Patch summary for %s", summarize(patch_run.context))
            return exporter.export(
                patch_run.context,
                {"result": patch_run.result, "verification": patch_run.verification},
            )

        if args.command == "patch-missing":
            patch_run = await patch_missing_assignments(
                client,
                request,
                options=options,
                verify_after=args.verify,
            )
            return exporter.export(
                patch_run.context,
                {"result": patch_run.result, "verification": patch_run.verification},
            )

    raise ValueError(f"Unsupported command: {args.command}")


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)
    configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)

    try:
        config = get_directory_config()
        request = _audit_request(parsed_args)
        options = _patch_options(parsed_args) if parsed_args.command in WRITE_COMMANDS else None
    except (ValueError, ConfigurationError) as exc:
        log.error("CLI validation error: %s", exc)  # noqa: TRY400
        sys.exit(EXIT_USAGE)

    try:
        output = asyncio.run(_run_command(parsed_args, config, request, options))
    except AuditAuthorizationError as exc:
        log.error(str(exc))  # noqa: TRY400
        sys.exit(EXIT_UNAUTHORIZED)
    except Exception:
        log.exception("Fatal error during %s", parsed_args.command)
        sys.exit(EXIT_FAILURE)

    print(output.decode("utf-8"))


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C): exit with the conventional interrupted status.

    ``asyncio.run`` cancels the running task while unwinding, and the executor
    logs how many writes completed before the interruption.
    """
    log.warning("Interrupted by user (Ctrl+C)")
    sys.exit(EXIT_INTERRUPTED)


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
