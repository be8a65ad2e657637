from __future__ import annotations

from datetime import UTC, datetime

from extaudit.domain.reconciliation import (
    DryRunAction,
    assemble_context,
    build_dry_run_report,
    summarize,
)
from extaudit.domain.types import AuditContext, AuditKind
from tests.helpers.directory import make_record, make_user


def test_summary_counts(scenario_context: AuditContext) -> None:
    summary = summarize(scenario_context)

    assert summary.kind is AuditKind.EXTENSION
    assert summary.users_total == 6
    assert summary.users_with_profile_number == 6
    assert summary.distinct_profile_numbers == 5
    assert summary.records_loaded == 7
    assert str(summary) == (
        "AuditKind=extension; UsersTotal=6; UsersWithProfileNumber=6; "
        "DistinctProfileNumbers=5; RecordsLoaded=7"
    )


def test_dry_run_rows_follow_category_order(scenario_context: AuditContext) -> None:
    generated = datetime(2025, 3, 1, tzinfo=UTC)

    report = build_dry_run_report(scenario_context, now=generated)

    assert report.generated_at == generated
    assert [row.category for row in report.rows] == [
        "MissingAssignment",
        "OwnerMismatch",
        "OwnerTypeNotUser",
        "DuplicateUserAssignment",
        "DuplicateUserAssignment",
        "DuplicateExtensionRecords",
        "DuplicateExtensionRecords",
    ]
    assert report.counts.total_rows == 7
    assert report.counts.missing == 1
    assert report.counts.discrepancies == 2
    assert report.counts.duplicate_user_rows == 2
    assert report.counts.duplicate_record_rows == 2


def test_dry_run_actions_and_owner_display(scenario_context: AuditContext) -> None:
    report = build_dry_run_report(scenario_context)
    by_category = {row.category: row for row in report.rows}

    missing = by_category["MissingAssignment"]
    assert missing.action is DryRunAction.RESYNC
    assert missing.record_found is False
    assert missing.user == "Frank"
    assert "500" in missing.expected_after

    mismatch = by_category["OwnerMismatch"]
    assert mismatch.action is DryRunAction.REPORT_ONLY
    assert mismatch.owner_before == "Alice <alice@example.com>"
    assert mismatch.notes == "RecordId=e-300; OwnerType=USER"

    queue_owned = by_category["OwnerTypeNotUser"]
    assert queue_owned.owner_before == "q1"

    assert by_category["DuplicateUserAssignment"].action is DryRunAction.MANUAL_REVIEW
    assert by_category["DuplicateExtensionRecords"].action is DryRunAction.MANUAL_REVIEW


def test_dry_run_report_lists_user_issues_without_adding_rows() -> None:
    context = assemble_context(
        kind=AuditKind.EXTENSION,
        users=[make_user("u1", "Alice", "100", location_ids=(), last_login_days_ago=None)],
        records=[make_record("e-100", "100", owner_id="u1")],
    )

    report = build_dry_run_report(context)

    assert report.rows == ()
    assert report.counts.user_issues == 2
    assert [str(row.issue) for row in report.user_issues] == [
        "NoLocationAssigned",
        "NoTokenIssuedInLast90Days",
    ]
