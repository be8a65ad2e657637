"""Build the audit snapshot from the directory API.

Users and ownership records are paged to exhaustion, one request at a time.
Any API failure aborts the build: nothing downstream is trustworthy without a
complete snapshot.
"""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING, Final

from extaudit.domain.numbers import profile_number, user_display
from extaudit.domain.ports.errors import ApiError
from extaudit.domain.ports.reporting import report_progress
from extaudit.domain.types import (
    AuditContext,
    AuditKind,
    OwnershipRecord,
    ProfileAssignment,
    UserRecord,
    id_key,
    number_key,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

    from extaudit.domain.ports.directory import DirectoryGateway, Page
    from extaudit.domain.ports.reporting import ProgressSink

log = getLogger(__name__)

USERS_PAGE_SIZE_MAX: Final[int] = 500
RECORDS_PAGE_SIZE_MAX: Final[int] = 100
DEFAULT_USERS_PAGE_SIZE: Final[int] = USERS_PAGE_SIZE_MAX
DEFAULT_RECORDS_PAGE_SIZE: Final[int] = RECORDS_PAGE_SIZE_MAX
_PROGRESS_LOG_EVERY: Final[int] = 500
_AUTH_STATUSES: Final[frozenset[int]] = frozenset({401, 403})


class AuditContextError(RuntimeError):
    """Building the audit context failed at ``stage``."""

    def __init__(self, message: str, *, stage: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.stage = stage
        self.status_code = status_code


class AuditAuthorizationError(AuditContextError):
    """The credential is invalid/expired or lacks permission. Stops the whole workflow."""


def _clamp(value: int, upper: int) -> int:
    return max(1, min(value, upper))


def _translate_error(exc: ApiError, *, stage: str) -> AuditContextError:
    status = exc.status_code
    if status in _AUTH_STATUSES:
        return AuditAuthorizationError(
            f"Token is invalid/expired or lacks required permissions for {stage}. "
            f"Status: {status}.",
            stage=stage,
            status_code=status,
        )
    detail = f"Status: {status}. " if status is not None else ""
    return AuditContextError(
        f"Failed to load {stage}. {detail}Original error: {exc}",
        stage=stage,
        status_code=status,
    )


async def _collect_pages[T](
    fetch: Callable[[int], Awaitable[Page[T] | None]],
    *,
    stage: str,
    label: str,
    progress: ProgressSink | None,
) -> list[T]:
    items: list[T] = []
    page_number = 1
    page_count = 0
    while True:
        report_progress(progress, f"Fetching {label} page {page_number}…")
        try:
            page = await fetch(page_number)
        except ApiError as exc:
            error = _translate_error(exc, stage=stage)
            log.error(str(error))  # noqa: TRY400
            raise error from exc
        if page is None:
            break
        page_count = page.page_count
        items.extend(page.entities)
        log.info(
            "%s page fetched",
            label.capitalize(),
            extra={
                "data": {
                    "page_number": page_number,
                    "page_count": page_count,
                    "entities": len(page.entities),
                    "total_so_far": len(items),
                }
            },
        )
        page_number += 1
        if page_number > page_count:
            break
    return items


def index_records(
    records: Iterable[OwnershipRecord],
) -> dict[str, tuple[OwnershipRecord, ...]]:
    grouped: dict[str, list[OwnershipRecord]] = {}
    for record in records:
        if not record.number.strip():
            continue
        grouped.setdefault(number_key(record.number), []).append(record)
    return {key: tuple(group) for key, group in grouped.items()}


def assemble_context(
    *,
    kind: AuditKind,
    users: Iterable[UserRecord],
    records: Iterable[OwnershipRecord],
    include_inactive: bool = False,
) -> AuditContext:
    """Derive every index of the snapshot from raw users and ownership records."""

    user_list = tuple(users)
    record_list = tuple(record for record in records if record.number.strip())

    users_by_id: dict[str, UserRecord] = {}
    display_by_id: dict[str, str] = {}
    assignments: list[ProfileAssignment] = []
    distinct: dict[str, str] = {}

    for processed, user in enumerate(user_list, start=1):
        if not user.id:
            continue
        users_by_id[id_key(user.id)] = user
        display_by_id[id_key(user.id)] = user_display(user)

        number = profile_number(user, kind)
        if number:
            assignments.append(
                ProfileAssignment(
                    user_id=user.id,
                    number=number,
                    user_name=user.name,
                    user_email=user.email,
                    user_state=user.state,
                )
            )
            distinct.setdefault(number_key(number), number)

        if processed % _PROGRESS_LOG_EVERY == 0:
            log.info(
                "Profile extraction progress",
                extra={
                    "data": {
                        "processed_users": processed,
                        "total_users": len(user_list),
                        "users_with_profile_number": len(assignments),
                    }
                },
            )

    return AuditContext(
        kind=kind,
        include_inactive=include_inactive,
        users=user_list,
        users_by_id=users_by_id,
        user_display_by_id=display_by_id,
        assignments=tuple(assignments),
        profile_numbers=tuple(distinct.values()),
        records=record_list,
        records_by_number=index_records(record_list),
    )


async def build_context(
    gateway: DirectoryGateway,
    *,
    kind: AuditKind = AuditKind.EXTENSION,
    include_inactive: bool = False,
    users_page_size: int = DEFAULT_USERS_PAGE_SIZE,
    records_page_size: int = DEFAULT_RECORDS_PAGE_SIZE,
    progress: ProgressSink | None = None,
) -> AuditContext:
    """Page users and ownership records to exhaustion and index them."""

    users_page_size = _clamp(users_page_size, USERS_PAGE_SIZE_MAX)
    records_page_size = _clamp(records_page_size, RECORDS_PAGE_SIZE_MAX)
    log.info(
        "Building audit context",
        extra={
            "data": {
                "kind": str(kind),
                "include_inactive": include_inactive,
                "users_page_size": users_page_size,
                "records_page_size": records_page_size,
            }
        },
    )

    async def fetch_users(page_number: int) -> Page[UserRecord] | None:
        return await gateway.get_users_page(
            page_size=users_page_size,
            page_number=page_number,
            include_inactive=include_inactive,
        )

    users = await _collect_pages(fetch_users, stage="users", label="users", progress=progress)

    report_progress(
        progress,
        "Extracting profile DIDs…" if kind is AuditKind.DID else "Extracting profile extensions…",
    )

    if kind is AuditKind.DID:
        stage, label = "dids", "DIDs"

        async def fetch_records(page_number: int) -> Page[OwnershipRecord] | None:
            return await gateway.get_dids_page(page_size=records_page_size, page_number=page_number)

    else:
        stage, label = "extensions", "extensions"

        async def fetch_records(page_number: int) -> Page[OwnershipRecord] | None:
            return await gateway.get_extensions_page(
                page_size=records_page_size, page_number=page_number
            )

    records = await _collect_pages(fetch_records, stage=stage, label=label, progress=progress)

    report_progress(progress, "Computing findings…")
    context = assemble_context(
        kind=kind,
        users=users,
        records=records,
        include_inactive=include_inactive,
    )
    log.info(
        "Audit context built",
        extra={
            "data": {
                "kind": str(kind),
                "users_total": len(context.users),
                "users_with_profile_number": len(context.assignments),
                "distinct_profile_numbers": len(context.profile_numbers),
                "records_loaded": len(context.records),
            }
        },
    )
    return context
