from __future__ import annotations

from datetime import UTC, datetime, timedelta

from extaudit.domain.reconciliation import (
    DiscrepancyIssue,
    assemble_context,
    discrepancies,
    duplicate_extension_records,
    duplicate_user_assignments,
    find_all,
    UserIssueKind,
    missing_assignments,
    user_issues,
)
from extaudit.domain.types import AuditContext, AuditKind, UserRecord, number_key
from tests.helpers.directory import make_record, make_user


def test_scenario_counts(scenario_context: AuditContext) -> None:
    duplicate_users = duplicate_user_assignments(scenario_context)
    duplicate_records = duplicate_extension_records(scenario_context)
    found = discrepancies(scenario_context)
    missing = missing_assignments(scenario_context)

    assert sorted((row.number, row.user_id) for row in duplicate_users) == [
        ("100", "u1"),
        ("100", "u2"),
    ]
    assert sorted(row.record_id or "" for row in duplicate_records) == ["e-200a", "e-200b"]
    assert {row.number for row in duplicate_records} == {"200"}
    assert sorted((row.number, row.issue) for row in found) == [
        ("300", DiscrepancyIssue.OWNER_MISMATCH),
        ("400", DiscrepancyIssue.OWNER_TYPE_NOT_USER),
    ]
    assert [(row.number, row.user_id, row.issue) for row in missing] == [
        ("500", "u6", "NoExtensionRecord")
    ]


def test_discrepancy_rows_carry_record_details(scenario_context: AuditContext) -> None:
    mismatch = next(
        row for row in discrepancies(scenario_context) if row.number == "300"
    )

    assert mismatch.user_id == "u4"
    assert mismatch.user_name == "Dave"
    assert mismatch.record_id == "e-300"
    assert mismatch.owner_id == "u1"


def test_duplicates_exempt_numbers_from_other_categories(scenario_context: AuditContext) -> None:
    findings = find_all(scenario_context)
    duplicate_keys = {number_key(row.number) for row in findings.duplicate_users} | {
        number_key(row.number) for row in findings.duplicate_records
    }

    assert not duplicate_keys & {number_key(row.number) for row in findings.discrepancies}
    assert not duplicate_keys & {number_key(row.number) for row in findings.missing}


def test_categories_partition_assignments_by_number(scenario_context: AuditContext) -> None:
    findings = find_all(scenario_context)
    missing = {number_key(row.number) for row in findings.missing}
    mismatched = {number_key(row.number) for row in findings.discrepancies}
    duplicates = {number_key(row.number) for row in findings.duplicate_users} | {
        number_key(row.number) for row in findings.duplicate_records
    }

    assert not missing & mismatched
    assert missing | mismatched | duplicates == {"100", "200", "300", "400", "500"}


def test_findings_are_idempotent(scenario_context: AuditContext) -> None:
    first = find_all(scenario_context)
    second = find_all(scenario_context)

    assert first == second


def test_exact_owner_match_produces_no_finding() -> None:
    context = assemble_context(
        kind=AuditKind.EXTENSION,
        users=[make_user("U-7", "Grace", "700")],
        records=[make_record("e-700", "700", owner_type="user", owner_id="u-7")],
    )

    assert discrepancies(context) == []
    assert missing_assignments(context) == []


def test_user_record_with_blank_owner_is_not_a_mismatch() -> None:
    context = assemble_context(
        kind=AuditKind.EXTENSION,
        users=[make_user("u1", "Alice", "800")],
        records=[make_record("e-800", "800", owner_id=None)],
    )

    assert discrepancies(context) == []


def test_numbers_group_case_and_whitespace_insensitively() -> None:
    context = assemble_context(
        kind=AuditKind.EXTENSION,
        users=[
            make_user("u1", "Alice", "ab12"),
            make_user("u2", "Bob", " AB12 "),
        ],
        records=[make_record("e1", "AB12", owner_id="u1")],
    )

    assert len(duplicate_user_assignments(context)) == 2
    assert discrepancies(context) == []
    assert missing_assignments(context) == []


def test_duplicate_records_suppress_missing_for_unrelated_duplication() -> None:
    context = assemble_context(
        kind=AuditKind.EXTENSION,
        users=[make_user("u1", "Alice", "300")],
        records=[
            make_record("e1", "300", owner_type="QUEUE", owner_id="q1"),
            make_record("e2", "300", owner_id="u1"),
        ],
    )

    assert len(duplicate_extension_records(context)) == 2
    assert discrepancies(context) == []
    assert missing_assignments(context) == []


def test_healthy_scenario_users_have_no_issues(scenario_context: AuditContext) -> None:
    assert user_issues(scenario_context) == []
    assert find_all(scenario_context).user_issues == ()


def test_user_issues_flag_location_station_and_stale_login() -> None:
    now = datetime(2025, 6, 1, tzinfo=UTC)
    stale_login = now - timedelta(days=91)
    context = assemble_context(
        kind=AuditKind.EXTENSION,
        users=[
            make_user("u1", "Alice", "100", location_ids=(), station_id=" "),
            make_user("u2", "Bob", "200", last_login_days_ago=None),
            make_user("u3", "Carol", None),
            UserRecord(
                id="u4",
                name="Dave",
                station_id="st-1",
                location_ids=("loc-1",),
                date_last_login=stale_login,
            ),
        ],
        records=[],
    )

    rows = user_issues(context, now=now)

    assert [(row.user_id, row.issue) for row in rows] == [
        ("u1", UserIssueKind.NO_LOCATION),
        ("u1", UserIssueKind.NO_DEFAULT_STATION),
        ("u2", UserIssueKind.NO_RECENT_TOKEN),
        ("u4", UserIssueKind.NO_RECENT_TOKEN),
    ]
    assert rows[2].date_last_login is None
    assert rows[3].date_last_login == stale_login
    assert str(rows[0].issue) == "NoLocationAssigned"
