"""Application orchestration entry points."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from extaudit.adapters.directory import DirectoryClient
from extaudit.config import get_directory_config
from extaudit.domain.reconciliation import (
    DEFAULT_RECORDS_PAGE_SIZE,
    DEFAULT_USERS_PAGE_SIZE,
    build_context,
    build_dry_run_report,
    find_all,
    summarize,
)
from extaudit.domain.remediation import (
    PatchOptions,
    build_plan,
    execute_plan,
    patch_missing,
    verify,
)
from extaudit.domain.types import AuditKind

if TYPE_CHECKING:
    from extaudit.config import DirectoryConfig
    from extaudit.domain.ports import DirectoryGateway, ProgressSink
    from extaudit.domain.reconciliation import DryRunReport, Findings
    from extaudit.domain.remediation import FixupPlan, PatchResult, VerificationResult
    from extaudit.domain.types import AuditContext, OwnershipRecord

DirectoryClientFactory = Callable[["DirectoryConfig"], DirectoryClient]

log = getLogger(__name__)


@dataclass(slots=True, frozen=True, kw_only=True)
class AuditRequest:
    kind: AuditKind = AuditKind.EXTENSION
    include_inactive: bool = False
    users_page_size: int = DEFAULT_USERS_PAGE_SIZE
    records_page_size: int = DEFAULT_RECORDS_PAGE_SIZE


@dataclass(slots=True, frozen=True, kw_only=True)
class AuditRun:
    context: AuditContext
    findings: Findings
    report: DryRunReport


@dataclass(slots=True, frozen=True, kw_only=True)
class PatchRun:
    context: AuditContext
    result: PatchResult
    plan: FixupPlan | None = None
    verification: VerificationResult | None = None


def open_directory(
    config: DirectoryConfig | None = None,
    *,
    client_factory: DirectoryClientFactory = DirectoryClient,
) -> DirectoryClient:
    """Directory client for the configured environment; use it with ``async with``."""

    return client_factory(config or get_directory_config())


async def load_context(
    gateway: DirectoryGateway,
    request: AuditRequest | None = None,
    *,
    progress: ProgressSink | None = None,
) -> AuditContext:
    request = request or AuditRequest()
    return await build_context(
        gateway,
        kind=request.kind,
        include_inactive=request.include_inactive,
        users_page_size=request.users_page_size,
        records_page_size=request.records_page_size,
        progress=progress,
    )


async def audit_directory(
    gateway: DirectoryGateway,
    request: AuditRequest | None = None,
    *,
    progress: ProgressSink | None = None,
) -> AuditRun:
    """Snapshot the directory and derive every finding category."""

    context = await load_context(gateway, request, progress=progress)
    findings = find_all(context)
    report = build_dry_run_report(context)
    log.info("Audit finished: %s", summarize(context))
    return AuditRun(context=context, findings=findings, report=report)


async def plan_fixups(
    gateway: DirectoryGateway,
    request: AuditRequest | None = None,
    *,
    reassert_consistent_users: bool = False,
    prefer_assign_over_blank: bool = True,
    progress: ProgressSink | None = None,
) -> tuple[AuditContext, FixupPlan]:
    context = await load_context(gateway, request, progress=progress)
    plan = build_plan(
        context,
        reassert_consistent_users=reassert_consistent_users,
        prefer_assign_over_blank=prefer_assign_over_blank,
    )
    return context, plan


async def patch_directory(
    gateway: DirectoryGateway,
    request: AuditRequest | None = None,
    *,
    options: PatchOptions | None = None,
    reassert_consistent_users: bool = False,
    prefer_assign_over_blank: bool = True,
    verify_after: bool = False,
    progress: ProgressSink | None = None,
) -> PatchRun:
    """Audit, plan and execute in one pass; optionally re-read what was written.

    Verification only runs for real writes.
    """

    options = options or PatchOptions()
    context, plan = await plan_fixups(
        gateway,
        request,
        reassert_consistent_users=reassert_consistent_users,
        prefer_assign_over_blank=prefer_assign_over_blank,
        progress=progress,
    )
    log.info("Plan ready: %s", plan.summary_text)

    result = await execute_plan(gateway, context, plan.items, options, progress=progress)

    verification: VerificationResult | None = None
    if verify_after and not options.simulate and result.updated:
        verification = await verify(gateway, context, result.updated, progress=progress)

    return PatchRun(context=context, plan=plan, result=result, verification=verification)


async def patch_missing_assignments(
    gateway: DirectoryGateway,
    request: AuditRequest | None = None,
    *,
    options: PatchOptions | None = None,
    verify_after: bool = False,
    progress: ProgressSink | None = None,
) -> PatchRun:
    """Reassert every missing assignment without building a full plan."""

    options = options or PatchOptions()
    context = await load_context(gateway, request, progress=progress)
    result = await patch_missing(gateway, context, options, progress=progress)

    verification: VerificationResult | None = None
    if verify_after and not options.simulate and result.updated:
        verification = await verify(gateway, context, result.updated, progress=progress)

    return PatchRun(context=context, result=result, verification=verification)


async def lookup_did(client: DirectoryClient, number: str) -> list[OwnershipRecord]:
    records = await client.get_dids_by_number(number)
    log.info("DID lookup for %s returned %s records", number, len(records))
    return records
