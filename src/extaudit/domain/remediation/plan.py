"""Turn findings into a reviewable fix-up plan.

The planner draws replacement numbers from a pool of available numbers:
uniquely recorded, unassigned, and not claimed by any profile. The pool is
sorted and consumed first-in first-out by every stage in a fixed order, so
the same context and flags always produce the same plan.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from extaudit.domain.reconciliation.findings import (
    DiscrepancyIssue,
    discrepancies,
    duplicate_extension_records,
    duplicate_user_assignments,
    missing_assignments,
)
from extaudit.domain.types import USER_OWNER_TYPE, number_key, same_id

if TYPE_CHECKING:
    from extaudit.domain.types import AuditContext


log = getLogger(__name__)


class FixupCategory(StrEnum):
    DUPLICATE_USER = "DuplicateUser"
    MISSING = "Missing"
    DISCREPANCY = "Discrepancy"
    REASSERT = "Reassert"


class FixupAction(StrEnum):
    NONE = "None"
    REASSERT_EXISTING = "ReassertExisting"
    ASSIGN_SPECIFIC = "AssignSpecific"
    CLEAR_EXTENSION = "ClearExtension"


@dataclass(slots=True, kw_only=True)
class FixupItem:
    """One planned change to one user.

    ``action`` and ``recommended_number`` may be edited by a reviewer before the
    plan is executed; everything else is fixed at planning time.
    """

    category: FixupCategory
    user_id: str
    user: str | None
    current_number: str | None
    recommended_number: str | None = None
    action: FixupAction = FixupAction.NONE
    notes: str = ""


@dataclass(slots=True, kw_only=True)
class FixupPlan:
    items: list[FixupItem] = field(default_factory=list["FixupItem"])
    available_numbers: tuple[str, ...] = ()
    summary_text: str = ""

    def items_in(self, category: FixupCategory) -> list[FixupItem]:
        return [item for item in self.items if item.category is category]


def _sort_key(value: str | None) -> tuple[str, str]:
    text = value or ""
    return (text.casefold(), text)


def available_numbers(context: AuditContext) -> list[str]:
    """Numbers that can be handed out: one unassigned record, unused by any profile."""

    duplicate_record_keys = {
        number_key(row.number) for row in duplicate_extension_records(context)
    }
    used_by_profiles = {number_key(assignment.number) for assignment in context.assignments}

    available: list[str] = []
    for key, records in context.records_by_number.items():
        if key in duplicate_record_keys or len(records) != 1 or key in used_by_profiles:
            continue
        record = records[0]
        if record.is_unassigned:
            available.append(record.number)

    available.sort(key=_sort_key)
    return available


def build_plan(
    context: AuditContext,
    *,
    reassert_consistent_users: bool = False,
    prefer_assign_over_blank: bool = True,
) -> FixupPlan:
    """Build one fix-up item per affected user, in a deterministic order."""

    duplicate_users = duplicate_user_assignments(context)
    duplicate_records = duplicate_extension_records(context)
    discrepancy_rows = discrepancies(context)
    missing_rows = missing_assignments(context)

    duplicate_user_keys = {number_key(row.number) for row in duplicate_users}
    duplicate_record_keys = {number_key(row.number) for row in duplicate_records}

    pool = available_numbers(context)
    queue = deque(pool)

    def take_available() -> str | None:
        if not prefer_assign_over_blank or not queue:
            return None
        return queue.popleft()

    items: list[FixupItem] = []

    groups: dict[str, list[tuple[str | None, str, str]]] = {}
    for row in duplicate_users:
        groups.setdefault(number_key(row.number), []).append(
            (row.user_name, row.user_id, row.number)
        )
    for key in sorted(groups):
        members = sorted(
            groups[key],
            key=lambda member: (_sort_key(member[0]), _sort_key(member[1])),
        )
        # the first member keeps the number
        for _name, user_id, number in members[1:]:
            chosen = take_available()
            items.append(
                FixupItem(
                    category=FixupCategory.DUPLICATE_USER,
                    user_id=user_id,
                    user=context.display_for(user_id),
                    current_number=number,
                    recommended_number=chosen,
                    action=FixupAction.CLEAR_EXTENSION
                    if chosen is None
                    else FixupAction.ASSIGN_SPECIFIC,
                    notes="Duplicate profile number; no available number found."
                    if chosen is None
                    else "Duplicate profile number; reassign to available number.",
                )
            )

    for row in sorted(missing_rows, key=lambda r: (_sort_key(r.number), _sort_key(r.user_id))):
        chosen = take_available()
        items.append(
            FixupItem(
                category=FixupCategory.MISSING,
                user_id=row.user_id,
                user=context.display_for(row.user_id),
                current_number=row.number,
                recommended_number=chosen,
                action=FixupAction.CLEAR_EXTENSION if chosen is None else FixupAction.ASSIGN_SPECIFIC,
                notes="No ownership record; clear profile number."
                if chosen is None
                else "No ownership record; assign available number.",
            )
        )

    for row in sorted(
        discrepancy_rows, key=lambda r: (_sort_key(r.number), _sort_key(r.user_id))
    ):
        reason = (
            "Owner mismatch"
            if row.issue is DiscrepancyIssue.OWNER_MISMATCH
            else "Owner type is not USER"
        )
        items.append(
            FixupItem(
                category=FixupCategory.DISCREPANCY,
                user_id=row.user_id,
                user=context.display_for(row.user_id),
                current_number=row.number,
                action=FixupAction.REASSERT_EXISTING,
                notes=f"{reason}; reassert profile number (sync attempt) or choose another action.",
            )
        )

    if reassert_consistent_users:
        for assignment in context.assignments:
            key = number_key(assignment.number)
            if key in duplicate_user_keys or key in duplicate_record_keys:
                continue
            records = context.records_for(assignment.number)
            if len(records) != 1:
                continue
            record = records[0]
            if (record.owner_type or "").strip().casefold() != USER_OWNER_TYPE.casefold():
                continue
            if not same_id(record.owner_id, assignment.user_id):
                continue
            items.append(
                FixupItem(
                    category=FixupCategory.REASSERT,
                    user_id=assignment.user_id,
                    user=context.display_for(assignment.user_id),
                    current_number=assignment.number,
                    recommended_number=assignment.number,
                    action=FixupAction.REASSERT_EXISTING,
                    notes="Consistent assignment; reassert profile number (sync attempt).",
                )
            )

    summary = (
        f"DuplicatesUsers={len(duplicate_users)}; Missing={len(missing_rows)}; "
        f"Discrepancies={len(discrepancy_rows)}; PlanItems={len(items)}; "
        f"AvailableExtensions={len(pool)}"
    )
    log.info("Fix-up plan built: %s", summary)
    return FixupPlan(items=items, available_numbers=tuple(pool), summary_text=summary)
