"""Context summary and the read-only dry-run report."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from .findings import (
    Discrepancy,
    DiscrepancyIssue,
    DuplicateExtensionRecord,
    DuplicateUserAssignment,
    MissingAssignment,
    UserIssue,
    find_all,
)

if TYPE_CHECKING:
    from extaudit.domain.types import AuditContext, AuditKind

log = getLogger(__name__)


class DryRunAction(StrEnum):
    RESYNC = "PatchUserResyncExtension"
    REPORT_ONLY = "ReportOnly"
    MANUAL_REVIEW = "ManualReview"


@dataclass(slots=True, frozen=True, kw_only=True)
class ContextSummary:
    kind: AuditKind
    users_total: int
    users_with_profile_number: int
    distinct_profile_numbers: int
    records_loaded: int

    def __str__(self) -> str:
        return (
            f"AuditKind={self.kind}; UsersTotal={self.users_total}; "
            f"UsersWithProfileNumber={self.users_with_profile_number}; "
            f"DistinctProfileNumbers={self.distinct_profile_numbers}; "
            f"RecordsLoaded={self.records_loaded}"
        )


def summarize(context: AuditContext) -> ContextSummary:
    return ContextSummary(
        kind=context.kind,
        users_total=len(context.users),
        users_with_profile_number=len(context.assignments),
        distinct_profile_numbers=len(context.profile_numbers),
        records_loaded=len(context.records),
    )


@dataclass(slots=True, frozen=True, kw_only=True)
class DryRunRow:
    action: DryRunAction
    category: str
    number: str
    user_id: str | None = None
    user: str | None = None
    record_found: bool | None = None
    owner_before: str | None = None
    expected_after: str = ""
    notes: str = ""


@dataclass(slots=True, frozen=True, kw_only=True)
class DryRunSummary:
    total_rows: int
    missing: int
    discrepancies: int
    duplicate_user_rows: int
    duplicate_record_rows: int
    user_issues: int = 0


@dataclass(slots=True, frozen=True, kw_only=True)
class DryRunReport:
    generated_at: datetime
    summary: ContextSummary
    counts: DryRunSummary
    rows: tuple[DryRunRow, ...]
    missing: tuple[MissingAssignment, ...] = ()
    discrepancies: tuple[Discrepancy, ...] = ()
    duplicate_users: tuple[DuplicateUserAssignment, ...] = ()
    duplicate_records: tuple[DuplicateExtensionRecord, ...] = ()
    user_issues: tuple[UserIssue, ...] = ()


def _owner_display(context: AuditContext, owner_id: str | None) -> str | None:
    if owner_id is None or not owner_id.strip():
        return owner_id
    return context.display_for(owner_id)


def build_dry_run_report(context: AuditContext, *, now: datetime | None = None) -> DryRunReport:
    """Describe what remediation would do for each finding, without planning writes."""

    generated_at = now or datetime.now(UTC)
    findings = find_all(context, now=generated_at)
    rows: list[DryRunRow] = []

    rows.extend(
        DryRunRow(
            action=DryRunAction.RESYNC,
            category="MissingAssignment",
            number=row.number,
            user_id=row.user_id,
            user=context.display_for(row.user_id),
            record_found=False,
            expected_after=f"User PATCH reasserts number {row.number} (sync attempt)",
            notes="Primary target",
        )
        for row in findings.missing
    )
    rows.extend(
        DryRunRow(
            action=DryRunAction.REPORT_ONLY,
            category=str(row.issue),
            number=row.number,
            user_id=row.user_id,
            user=context.display_for(row.user_id),
            record_found=True,
            owner_before=_owner_display(context, row.owner_id),
            expected_after="N/A (ownership records are not writable; fix via user assignment)",
            notes=f"RecordId={row.record_id}; OwnerType={row.owner_type}",
        )
        for row in findings.discrepancies
    )
    rows.extend(
        DryRunRow(
            action=DryRunAction.MANUAL_REVIEW,
            category="DuplicateUserAssignment",
            number=row.number,
            user_id=row.user_id,
            user=context.display_for(row.user_id),
            expected_after="Manual decision required",
            notes="Same number present on multiple users",
        )
        for row in findings.duplicate_users
    )
    rows.extend(
        DryRunRow(
            action=DryRunAction.MANUAL_REVIEW,
            category="DuplicateExtensionRecords",
            number=row.number,
            record_found=True,
            owner_before=_owner_display(context, row.owner_id),
            expected_after="Manual decision required",
            notes=f"Multiple ownership records exist for number; RecordId={row.record_id}",
        )
        for row in findings.duplicate_records
    )

    counts = DryRunSummary(
        total_rows=len(rows),
        missing=len(findings.missing),
        discrepancies=len(findings.discrepancies),
        duplicate_user_rows=len(findings.duplicate_users),
        duplicate_record_rows=len(findings.duplicate_records),
        user_issues=len(findings.user_issues),
    )
    log.info(
        "Dry run report created",
        extra={
            "data": {
                "rows": counts.total_rows,
                "missing": counts.missing,
                "discrepancies": counts.discrepancies,
                "user_issues": counts.user_issues,
                "mismatches": sum(
                    1 for d in findings.discrepancies if d.issue is DiscrepancyIssue.OWNER_MISMATCH
                ),
            }
        },
    )
    return DryRunReport(
        generated_at=generated_at,
        summary=summarize(context),
        counts=counts,
        rows=tuple(rows),
        missing=findings.missing,
        discrepancies=findings.discrepancies,
        duplicate_users=findings.duplicate_users,
        duplicate_records=findings.duplicate_records,
        user_issues=findings.user_issues,
    )
