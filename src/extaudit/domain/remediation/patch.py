"""Apply fix-up items to user profiles with optimistic concurrency."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING, Final

from extaudit.domain.numbers import read_address_number, write_address_number
from extaudit.domain.ports.errors import VersionConflictError
from extaudit.domain.ports.reporting import report_progress
from extaudit.domain.reconciliation.findings import duplicate_number_keys, missing_assignments
from extaudit.domain.types import PHONE_MEDIA, WORK_TYPE, Address, number_key

from .plan import FixupAction, FixupCategory, FixupItem

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable, Sequence

    from extaudit.domain.ports.directory import DirectoryGateway
    from extaudit.domain.ports.reporting import ProgressSink
    from extaudit.domain.types import AuditContext, AuditKind

log = getLogger(__name__)

CLEARED: Final[str] = "(cleared)"


class SkipReason(StrEnum):
    MAX_FAILURES_REACHED = "MaxFailuresReached"
    MAX_UPDATES_REACHED = "MaxUpdatesReached"
    NO_TARGET_EXTENSION = "NoTargetExtension"
    NO_ACTION = "NoAction"
    DUPLICATE_USER_ASSIGNMENT = "DuplicateUserAssignment"


class PatchStatus(StrEnum):
    PATCHED = "Patched"
    WHAT_IF = "WhatIf"


@dataclass(slots=True, frozen=True, kw_only=True)
class PatchOptions:
    """Guardrails for one executor run. Caps of ``0`` mean unlimited."""

    simulate: bool = True
    sleep_between_seconds: float = 0.15
    max_updates: int = 0
    max_failures: int = 0
    include_missing: bool = True
    include_duplicate_user: bool = True
    include_discrepancy: bool = True
    include_reassert: bool = True

    def includes(self, category: FixupCategory) -> bool:
        match category:
            case FixupCategory.MISSING:
                return self.include_missing
            case FixupCategory.DUPLICATE_USER:
                return self.include_duplicate_user
            case FixupCategory.DISCREPANCY:
                return self.include_discrepancy
            case FixupCategory.REASSERT:
                return self.include_reassert


@dataclass(slots=True, frozen=True, kw_only=True)
class PatchUpdatedRow:
    user_id: str
    user: str
    number: str
    status: PatchStatus
    patched_version: int


@dataclass(slots=True, frozen=True, kw_only=True)
class PatchSkippedRow:
    reason: SkipReason
    user_id: str
    user: str
    number: str


@dataclass(slots=True, frozen=True, kw_only=True)
class PatchFailedRow:
    user_id: str
    user: str
    number: str
    error: str
    conflict: bool = False


@dataclass(slots=True, frozen=True, kw_only=True)
class PatchSummary:
    total_plan_items: int
    targeted: int
    updated: int
    skipped: int
    failed: int
    simulate: bool


@dataclass(slots=True, frozen=True, kw_only=True)
class PatchResult:
    summary: PatchSummary
    updated: tuple[PatchUpdatedRow, ...] = ()
    skipped: tuple[PatchSkippedRow, ...] = ()
    failed: tuple[PatchFailedRow, ...] = ()

    @property
    def conflicts(self) -> int:
        return sum(1 for row in self.failed if row.conflict)


@dataclass(slots=True)
class _Outcome:
    updated: list[PatchUpdatedRow] = field(default_factory=list["PatchUpdatedRow"])
    skipped: list[PatchSkippedRow] = field(default_factory=list["PatchSkippedRow"])
    failed: list[PatchFailedRow] = field(default_factory=list["PatchFailedRow"])


def ensure_work_phone_address(addresses: list[Address]) -> int:
    """Index of the work-phone entry, appending one when the list has none.

    A phone entry of another sub-type is never overwritten: its extra
    metadata is copied into a fresh work entry instead.
    """

    for idx, address in enumerate(addresses):
        if address.is_work_phone():
            return idx

    template = next((address for address in addresses if address.is_phone()), None)
    addresses.append(
        Address(
            media_type=PHONE_MEDIA,
            type=WORK_TYPE,
            extension=None,
            extra=dict(template.extra) if template is not None else {},
        )
    )
    return len(addresses) - 1


def target_number(item: FixupItem) -> str | None:
    match item.action:
        case FixupAction.REASSERT_EXISTING:
            return item.current_number
        case FixupAction.ASSIGN_SPECIFIC:
            return item.recommended_number
        case _:
            return None


def _row_label(item: FixupItem) -> str:
    return item.user or item.user_id


async def _patch_one(
    gateway: DirectoryGateway,
    item: FixupItem,
    target: str | None,
    *,
    kind: AuditKind,
    simulate: bool,
) -> PatchUpdatedRow:
    user = await gateway.get_user(item.user_id)
    if user is None or not user.id:
        raise LookupError(f"Failed to GET user {item.user_id}.")

    addresses = user.clone_addresses()
    idx = ensure_work_phone_address(addresses)
    before = read_address_number(addresses[idx], kind)
    write_address_number(addresses[idx], kind, target)
    version = user.version + 1

    log.info(
        "Preparing user number PATCH",
        extra={
            "data": {
                "user_id": item.user_id,
                "category": str(item.category),
                "action": str(item.action),
                "before": before,
                "after": target if target is not None else "(null)",
                "version": version,
            }
        },
    )

    if not simulate:
        await gateway.patch_user(item.user_id, version=version, addresses=addresses)

    return PatchUpdatedRow(
        user_id=item.user_id,
        user=_row_label(item),
        number=target if target is not None else CLEARED,
        status=PatchStatus.WHAT_IF if simulate else PatchStatus.PATCHED,
        patched_version=version,
    )


async def execute_plan(
    gateway: DirectoryGateway,
    context: AuditContext,
    items: Sequence[FixupItem],
    options: PatchOptions | None = None,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    progress: ProgressSink | None = None,
) -> PatchResult:
    """Execute the selected plan items one at a time, in plan order.

    Failures are recorded per item and never abort the run, except that once
    ``max_failures`` is reached every remaining item is skipped without a
    further write. Cancellation propagates from each network call and delay,
    so no write starts after the task is cancelled.
    """

    options = options or PatchOptions()
    targeted = [item for item in items if options.includes(item.category)]
    log.info(
        "Executing fix-up plan",
        extra={
            "data": {
                "plan_items": len(items),
                "targeted": len(targeted),
                "simulate": options.simulate,
                "max_updates": options.max_updates,
                "max_failures": options.max_failures,
            }
        },
    )
    return await _run(
        gateway,
        context,
        targeted,
        options,
        total=len(items),
        sleep=sleep,
        progress=progress,
    )


def missing_items(context: AuditContext) -> list[FixupItem]:
    """One reassert item per missing assignment, keeping the user's own number."""

    return [
        FixupItem(
            category=FixupCategory.MISSING,
            user_id=row.user_id,
            user=context.display_for(row.user_id),
            current_number=row.number,
            action=FixupAction.REASSERT_EXISTING,
            notes="No ownership record; reassert profile number (sync attempt).",
        )
        for row in missing_assignments(context)
    ]


async def patch_missing(
    gateway: DirectoryGateway,
    context: AuditContext,
    options: PatchOptions | None = None,
    *,
    items: Sequence[FixupItem] | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    progress: ProgressSink | None = None,
) -> PatchResult:
    """Re-write each missing assignment's own number to its user profile.

    The write asks the directory to re-create the ownership record. Numbers
    claimed by more than one user are skipped as ``DuplicateUserAssignment``.
    ``items`` defaults to :func:`missing_items` and may be a reviewed subset.
    Caps, simulate mode and failure isolation behave as in :func:`execute_plan`.
    """

    options = options or PatchOptions()
    items = missing_items(context) if items is None else list(items)
    duplicate_users, _ = duplicate_number_keys(context)
    log.info(
        "Patching missing assignments",
        extra={
            "data": {
                "missing": len(items),
                "simulate": options.simulate,
                "max_updates": options.max_updates,
                "max_failures": options.max_failures,
            }
        },
    )
    return await _run(
        gateway,
        context,
        items,
        options,
        total=len(items),
        sleep=sleep,
        progress=progress,
        blocked_numbers=frozenset(duplicate_users),
    )


async def _run(
    gateway: DirectoryGateway,
    context: AuditContext,
    targeted: Sequence[FixupItem],
    options: PatchOptions,
    *,
    total: int,
    sleep: Callable[[float], Awaitable[None]],
    progress: ProgressSink | None,
    blocked_numbers: frozenset[str] = frozenset(),
) -> PatchResult:
    outcome = _Outcome()
    try:
        await _run_items(
            gateway,
            context,
            targeted,
            options,
            outcome,
            sleep=sleep,
            progress=progress,
            blocked_numbers=blocked_numbers,
        )
    except asyncio.CancelledError:
        log.warning(
            "Patch run cancelled; completed writes are not rolled back",
            extra={
                "data": {
                    "updated": len(outcome.updated),
                    "failed": len(outcome.failed),
                    "remaining": len(targeted)
                    - len(outcome.updated)
                    - len(outcome.skipped)
                    - len(outcome.failed),
                    "simulate": options.simulate,
                }
            },
        )
        raise

    result = PatchResult(
        summary=PatchSummary(
            total_plan_items=total,
            targeted=len(targeted),
            updated=len(outcome.updated),
            skipped=len(outcome.skipped),
            failed=len(outcome.failed),
            simulate=options.simulate,
        ),
        updated=tuple(outcome.updated),
        skipped=tuple(outcome.skipped),
        failed=tuple(outcome.failed),
    )
    log.info(
        "Fix-up plan executed",
        extra={
            "data": {
                "updated": result.summary.updated,
                "skipped": result.summary.skipped,
                "failed": result.summary.failed,
                "conflicts": result.conflicts,
                "simulate": options.simulate,
            }
        },
    )
    return result


async def _run_items(
    gateway: DirectoryGateway,
    context: AuditContext,
    targeted: Sequence[FixupItem],
    options: PatchOptions,
    outcome: _Outcome,
    *,
    sleep: Callable[[float], Awaitable[None]],
    progress: ProgressSink | None,
    blocked_numbers: frozenset[str],
) -> None:
    done = 0
    for position, item in enumerate(targeted, start=1):
        if options.max_failures > 0 and len(outcome.failed) >= options.max_failures:
            _skip_all(outcome, targeted[position - 1 :], SkipReason.MAX_FAILURES_REACHED)
            log.warning("Failure cap reached; skipping %s remaining items", len(targeted) - position + 1)
            return

        if item.current_number is not None and number_key(item.current_number) in blocked_numbers:
            _skip_all(outcome, (item,), SkipReason.DUPLICATE_USER_ASSIGNMENT)
            continue

        if options.max_updates > 0 and done >= options.max_updates:
            _skip_all(outcome, (item,), SkipReason.MAX_UPDATES_REACHED)
            continue

        if item.action is FixupAction.NONE:
            _skip_all(outcome, (item,), SkipReason.NO_ACTION)
            continue

        target = target_number(item)
        if item.action is FixupAction.ASSIGN_SPECIFIC and (target is None or not target.strip()):
            _skip_all(outcome, (item,), SkipReason.NO_TARGET_EXTENSION)
            continue

        report_progress(
            progress,
            f"Patching {position}/{len(targeted)}: {_row_label(item)} [{item.category}]",
        )
        try:
            row = await _patch_one(
                gateway,
                item,
                target,
                kind=context.kind,
                simulate=options.simulate,
            )
        except Exception as exc:  # noqa: BLE001
            conflict = isinstance(exc, VersionConflictError)
            outcome.failed.append(
                PatchFailedRow(
                    user_id=item.user_id,
                    user=_row_label(item),
                    number=item.current_number or "",
                    error=str(exc),
                    conflict=conflict,
                )
            )
            log.error(
                "Patch from plan failed",
                exc_info=exc,
                extra={
                    "data": {
                        "user_id": item.user_id,
                        "category": str(item.category),
                        "number": item.current_number,
                        "conflict": conflict,
                        "error": str(exc),
                    }
                },
            )
            continue

        outcome.updated.append(row)
        done += 1
        if not options.simulate and options.sleep_between_seconds > 0:
            await sleep(options.sleep_between_seconds)


def _skip_all(outcome: _Outcome, items: Iterable[FixupItem], reason: SkipReason) -> None:
    outcome.skipped.extend(
        PatchSkippedRow(
            reason=reason,
            user_id=item.user_id,
            user=_row_label(item),
            number=item.current_number or "",
        )
        for item in items
    )
