"""Re-read patched users and confirm the write took effect."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from extaudit.domain.numbers import profile_number
from extaudit.domain.ports.reporting import report_progress

from .patch import CLEARED, PatchStatus

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from extaudit.domain.ports.directory import DirectoryGateway
    from extaudit.domain.ports.reporting import ProgressSink
    from extaudit.domain.types import AuditContext, UserRecord

    from .patch import PatchUpdatedRow

log = getLogger(__name__)


class VerificationStatus(StrEnum):
    CONFIRMED = "Confirmed"
    MISMATCH = "Mismatch"
    USER_NOT_FOUND = "UserNotFound"
    ERROR = "Error"


@dataclass(slots=True, frozen=True, kw_only=True)
class VerificationItem:
    user_id: str
    user: str | None
    expected: str
    actual: str | None
    status: VerificationStatus
    error: str | None = None


@dataclass(slots=True, frozen=True, kw_only=True)
class VerificationResult:
    total: int
    confirmed: int
    mismatched: int
    user_not_found: int
    errors: int
    items: tuple[VerificationItem, ...] = ()


def _is_cleared(value: str | None) -> bool:
    return value is None or not value.strip() or value == CLEARED


def numbers_match(expected: str | None, actual: str | None) -> bool:
    if expected is None or actual is None or _is_cleared(expected) or _is_cleared(actual):
        return _is_cleared(expected) and _is_cleared(actual)
    return expected.strip().casefold() == actual.strip().casefold()


async def verify(
    gateway: DirectoryGateway,
    context: AuditContext,
    updated_rows: Sequence[PatchUpdatedRow],
    *,
    delay_seconds: float = 0.1,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    progress: ProgressSink | None = None,
) -> VerificationResult:
    """Compare each really-patched user's live profile number with what was written.

    Simulated rows are ignored. Errors are recorded per user and never abort
    the pass.
    """

    rows = [row for row in updated_rows if row.status is PatchStatus.PATCHED]
    items: list[VerificationItem] = []
    log.info("Starting post-patch verification", extra={"data": {"count": len(rows)}})

    for position, row in enumerate(rows, start=1):
        report_progress(progress, f"Verifying {position}/{len(rows)}: {row.user or row.user_id}")
        try:
            user = await gateway.get_user(row.user_id)
        except Exception as exc:  # noqa: BLE001
            items.append(
                VerificationItem(
                    user_id=row.user_id,
                    user=row.user,
                    expected=row.number,
                    actual=None,
                    status=VerificationStatus.ERROR,
                    error=str(exc),
                )
            )
            log.error("Verification error", exc_info=exc, extra={"data": {"user_id": row.user_id}})
        else:
            items.append(_classify(row, user, context))

        if position < len(rows) and delay_seconds > 0:
            await sleep(delay_seconds)

    result = VerificationResult(
        total=len(rows),
        confirmed=sum(1 for i in items if i.status is VerificationStatus.CONFIRMED),
        mismatched=sum(1 for i in items if i.status is VerificationStatus.MISMATCH),
        user_not_found=sum(1 for i in items if i.status is VerificationStatus.USER_NOT_FOUND),
        errors=sum(1 for i in items if i.status is VerificationStatus.ERROR),
        items=tuple(items),
    )
    log.info(
        "Post-patch verification complete",
        extra={
            "data": {
                "total": result.total,
                "confirmed": result.confirmed,
                "mismatched": result.mismatched,
                "user_not_found": result.user_not_found,
                "errors": result.errors,
            }
        },
    )
    return result


def _classify(
    row: PatchUpdatedRow, user: UserRecord | None, context: AuditContext
) -> VerificationItem:
    if user is None or not user.id:
        return VerificationItem(
            user_id=row.user_id,
            user=row.user,
            expected=row.number,
            actual=None,
            status=VerificationStatus.USER_NOT_FOUND,
            error="User not found during verification",
        )

    actual = profile_number(user, context.kind)
    if numbers_match(row.number, actual):
        return VerificationItem(
            user_id=row.user_id,
            user=row.user,
            expected=row.number,
            actual=actual or CLEARED,
            status=VerificationStatus.CONFIRMED,
        )

    log.warning(
        "Verification mismatch",
        extra={"data": {"user_id": row.user_id, "expected": row.number, "actual": actual or "(none)"}},
    )
    return VerificationItem(
        user_id=row.user_id,
        user=row.user,
        expected=row.number,
        actual=actual or CLEARED,
        status=VerificationStatus.MISMATCH,
        error=f"Expected '{row.number}' but found '{actual or '(none)'}'",
    )
