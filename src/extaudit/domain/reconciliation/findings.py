"""Finding derivation over an :class:`AuditContext`.

Every function here is pure and recomputes from the context on each call, so
all categories always describe the same snapshot. Numbers implicated in
either duplicate set are exempt from the discrepancy and missing categories,
which keeps the four number categories mutually exclusive per number. User
hygiene issues are reported per user and independently of numbers.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from extaudit.domain.types import USER_OWNER_TYPE, number_key, same_id

if TYPE_CHECKING:
    from extaudit.domain.types import AuditContext, ProfileAssignment

log = getLogger(__name__)

MISSING_ISSUE = "NoExtensionRecord"
STALE_LOGIN_AFTER = timedelta(days=90)


class DiscrepancyIssue(StrEnum):
    OWNER_TYPE_NOT_USER = "OwnerTypeNotUser"
    OWNER_MISMATCH = "OwnerMismatch"


class UserIssueKind(StrEnum):
    NO_LOCATION = "NoLocationAssigned"
    NO_DEFAULT_STATION = "NoDefaultStationAssigned"
    NO_RECENT_TOKEN = "NoTokenIssuedInLast90Days"


@dataclass(slots=True, frozen=True, kw_only=True)
class DuplicateUserAssignment:
    number: str
    user_id: str
    user_name: str | None = None
    user_email: str | None = None
    user_state: str | None = None


@dataclass(slots=True, frozen=True, kw_only=True)
class DuplicateExtensionRecord:
    number: str
    record_id: str | None
    owner_type: str | None = None
    owner_id: str | None = None
    pool_id: str | None = None


@dataclass(slots=True, frozen=True, kw_only=True)
class Discrepancy:
    issue: DiscrepancyIssue
    number: str
    user_id: str
    user_name: str | None = None
    user_email: str | None = None
    record_id: str | None = None
    owner_type: str | None = None
    owner_id: str | None = None


@dataclass(slots=True, frozen=True, kw_only=True)
class MissingAssignment:
    number: str
    user_id: str
    user_name: str | None = None
    user_email: str | None = None
    user_state: str | None = None
    issue: str = MISSING_ISSUE


@dataclass(slots=True, frozen=True, kw_only=True)
class UserIssue:
    issue: UserIssueKind
    user_id: str
    user_name: str | None = None
    user_email: str | None = None
    user_state: str | None = None
    date_last_login: datetime | None = None


@dataclass(slots=True, frozen=True, kw_only=True)
class Findings:
    duplicate_users: tuple[DuplicateUserAssignment, ...]
    duplicate_records: tuple[DuplicateExtensionRecord, ...]
    discrepancies: tuple[Discrepancy, ...]
    missing: tuple[MissingAssignment, ...]
    user_issues: tuple[UserIssue, ...] = ()


def group_assignments(context: AuditContext) -> dict[str, list[ProfileAssignment]]:
    grouped: dict[str, list[ProfileAssignment]] = {}
    for assignment in context.assignments:
        grouped.setdefault(number_key(assignment.number), []).append(assignment)
    return grouped


def duplicate_user_assignments(context: AuditContext) -> list[DuplicateUserAssignment]:
    """Every assignment whose number is claimed by more than one user."""

    rows = [
        DuplicateUserAssignment(
            number=assignment.number,
            user_id=assignment.user_id,
            user_name=assignment.user_name,
            user_email=assignment.user_email,
            user_state=assignment.user_state,
        )
        for group in group_assignments(context).values()
        if len(group) > 1
        for assignment in group
    ]
    log.debug(
        "Duplicate user assignments",
        extra={"data": {"rows": len(rows), "numbers": len({number_key(r.number) for r in rows})}},
    )
    return rows


def duplicate_extension_records(context: AuditContext) -> list[DuplicateExtensionRecord]:
    """Every ownership record whose number is backed by more than one record."""

    rows = [
        DuplicateExtensionRecord(
            number=record.number,
            record_id=record.id,
            owner_type=record.owner_type,
            owner_id=record.owner_id,
            pool_id=record.pool_id,
        )
        for group in context.records_by_number.values()
        if len(group) > 1
        for record in group
    ]
    log.debug(
        "Duplicate ownership records",
        extra={"data": {"rows": len(rows), "numbers": len({number_key(r.number) for r in rows})}},
    )
    return rows


def duplicate_number_keys(context: AuditContext) -> tuple[set[str], set[str]]:
    """Number keys in the duplicate-user set and in the duplicate-record set."""

    user_keys = {number_key(row.number) for row in duplicate_user_assignments(context)}
    record_keys = {number_key(row.number) for row in duplicate_extension_records(context)}
    return user_keys, record_keys


def _eligible(context: AuditContext) -> list[ProfileAssignment]:
    user_keys, record_keys = duplicate_number_keys(context)
    return [
        assignment
        for assignment in context.assignments
        if number_key(assignment.number) not in user_keys
        and number_key(assignment.number) not in record_keys
    ]


def discrepancies(context: AuditContext) -> list[Discrepancy]:
    """Uniquely recorded numbers whose recorded owner disagrees with the claiming user."""

    rows: list[Discrepancy] = []
    for assignment in _eligible(context):
        records = context.records_for(assignment.number)
        if len(records) != 1:
            continue
        record = records[0]
        owner_type = (record.owner_type or "").strip()
        owner_id = (record.owner_id or "").strip()

        if owner_type.casefold() != USER_OWNER_TYPE.casefold():
            issue = DiscrepancyIssue.OWNER_TYPE_NOT_USER
        elif owner_id and not same_id(owner_id, assignment.user_id):
            issue = DiscrepancyIssue.OWNER_MISMATCH
        else:
            continue

        rows.append(
            Discrepancy(
                issue=issue,
                number=assignment.number,
                user_id=assignment.user_id,
                user_name=assignment.user_name,
                user_email=assignment.user_email,
                record_id=record.id,
                owner_type=record.owner_type,
                owner_id=record.owner_id,
            )
        )

    log.debug("Discrepancies found", extra={"data": {"count": len(rows)}})
    return rows


def missing_assignments(context: AuditContext) -> list[MissingAssignment]:
    """Claimed numbers with no ownership record at all."""

    rows = [
        MissingAssignment(
            number=assignment.number,
            user_id=assignment.user_id,
            user_name=assignment.user_name,
            user_email=assignment.user_email,
            user_state=assignment.user_state,
        )
        for assignment in _eligible(context)
        if not context.records_for(assignment.number)
    ]
    log.debug("Missing assignments found", extra={"data": {"count": len(rows)}})
    return rows


def user_issues(context: AuditContext, *, now: datetime | None = None) -> list[UserIssue]:
    """Users with no location, no default station, or no login in the last 90 days."""

    cutoff = (now or datetime.now(UTC)) - STALE_LOGIN_AFTER
    rows: list[UserIssue] = []
    for user in context.users:
        kinds: list[UserIssueKind] = []
        if not user.location_ids:
            kinds.append(UserIssueKind.NO_LOCATION)
        if user.station_id is None or not user.station_id.strip():
            kinds.append(UserIssueKind.NO_DEFAULT_STATION)
        if user.date_last_login is None or user.date_last_login < cutoff:
            kinds.append(UserIssueKind.NO_RECENT_TOKEN)
        rows.extend(
            UserIssue(
                issue=kind,
                user_id=user.id,
                user_name=user.name,
                user_email=user.email,
                user_state=user.state,
                date_last_login=user.date_last_login,
            )
            for kind in kinds
        )
    log.info("User issues found", extra={"data": {"count": len(rows)}})
    return rows


def find_all(context: AuditContext, *, now: datetime | None = None) -> Findings:
    findings = Findings(
        duplicate_users=tuple(duplicate_user_assignments(context)),
        duplicate_records=tuple(duplicate_extension_records(context)),
        discrepancies=tuple(discrepancies(context)),
        missing=tuple(missing_assignments(context)),
        user_issues=tuple(user_issues(context, now=now)),
    )
    log.info(
        "Findings computed",
        extra={
            "data": {
                "duplicate_user_rows": len(findings.duplicate_users),
                "duplicate_record_rows": len(findings.duplicate_records),
                "discrepancies": len(findings.discrepancies),
                "missing": len(findings.missing),
                "user_issues": len(findings.user_issues),
            }
        },
    )
    return findings
