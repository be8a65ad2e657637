"""Reusable fakes and builders for directory audit tests."""

from __future__ import annotations

import math
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from extaudit.domain.ports.directory import DirectoryGateway, Page
from extaudit.domain.ports.errors import VersionConflictError
from extaudit.domain.types import Address, AuditKind, OwnershipRecord, UserRecord

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence


def make_user(
    user_id: str,
    name: str | None,
    number: str | None,
    *,
    email: str | None = None,
    version: int = 1,
    kind: AuditKind = AuditKind.EXTENSION,
    address_type: str = "WORK",
    state: str = "active",
    station_id: str | None = "st-1",
    location_ids: tuple[str, ...] = ("loc-1",),
    last_login_days_ago: int | None = 1,
) -> UserRecord:
    addresses: tuple[Address, ...] = ()
    if number is not None:
        if kind is AuditKind.DID:
            address = Address(media_type="PHONE", type=address_type, extra={"address": number})
        else:
            address = Address(media_type="PHONE", type=address_type, extension=number)
        addresses = (address,)
    return UserRecord(
        id=user_id,
        name=name,
        email=email,
        state=state,
        version=version,
        addresses=addresses,
        station_id=station_id,
        location_ids=location_ids,
        date_last_login=None
        if last_login_days_ago is None
        else datetime.now(UTC) - timedelta(days=last_login_days_ago),
    )


def make_record(
    record_id: str,
    number: str,
    *,
    owner_type: str | None = "USER",
    owner_id: str | None = None,
    pool_id: str | None = "pool-1",
) -> OwnershipRecord:
    return OwnershipRecord(
        id=record_id,
        number=number,
        owner_type=owner_type,
        owner_id=owner_id,
        pool_id=pool_id,
    )


def scenario_users() -> list[UserRecord]:
    """Six users claiming 100, 100, 200, 300, 400 and 500."""

    return [
        make_user("u1", "Alice", "100", email="alice@example.com"),
        make_user("u2", "Bob", "100", email="bob@example.com"),
        make_user("u3", "Carol", "200"),
        make_user("u4", "Dave", "300"),
        make_user("u5", "Erin", "400"),
        make_user("u6", "Frank", "500"),
    ]


def scenario_records(*, with_available: bool = True) -> list[OwnershipRecord]:
    """200 twice, 300 owned by u1, 400 owned by a queue, nothing for 500.

    ``with_available`` adds two unassigned numbers (900, 901) and one owned by
    a user outside the snapshot (950).
    """

    records = [
        make_record("e-200a", "200", owner_id="u3"),
        make_record("e-200b", "200", owner_id=None),
        make_record("e-300", "300", owner_id="u1"),
        make_record("e-400", "400", owner_type="QUEUE", owner_id="q1"),
    ]
    if with_available:
        records += [
            make_record("e-901", "901", owner_type=None),
            make_record("e-900", "900", owner_type="USER", owner_id=" "),
            make_record("e-950", "950", owner_id="u9"),
        ]
    return records


class FakeDirectory:
    """In-memory implementation of the directory gateway port."""

    def __init__(
        self,
        users: Iterable[UserRecord] = (),
        *,
        extensions: Iterable[OwnershipRecord] = (),
        dids: Iterable[OwnershipRecord] = (),
    ) -> None:
        self.users: dict[str, UserRecord] = {user.id: user for user in users}
        self.extensions = list(extensions)
        self.dids = list(dids)
        self.page_requests: list[tuple[str, int, int]] = []
        self.get_user_calls: list[str] = []
        self.patches: list[tuple[str, int, list[Address]]] = []
        self.get_errors: dict[str, Exception] = {}
        self.patch_errors: dict[str, Exception] = {}
        self.page_errors: dict[str, Exception] = {}
        self.ignore_patches = False

    async def get_users_page(
        self,
        *,
        page_size: int,
        page_number: int,
        include_inactive: bool,
    ) -> Page[UserRecord] | None:
        users = [
            user
            for user in self.users.values()
            if include_inactive or (user.state or "").casefold() == "active"
        ]
        return self._page("users", users, page_size, page_number)

    async def get_user(self, user_id: str) -> UserRecord | None:
        self.get_user_calls.append(user_id)
        if user_id in self.get_errors:
            raise self.get_errors[user_id]
        return self.users.get(user_id)

    async def patch_user(
        self,
        user_id: str,
        *,
        version: int,
        addresses: Sequence[Address],
    ) -> UserRecord | None:
        if user_id in self.patch_errors:
            raise self.patch_errors[user_id]
        current = self.users[user_id]
        if version != current.version + 1:
            raise VersionConflictError(
                "HTTP 409 Conflict",
                method="PATCH",
                path=f"/api/v2/users/{user_id}",
                status_code=409,
                retryable=False,
                attempts=1,
            )
        copies = [address.clone() for address in addresses]
        self.patches.append((user_id, version, copies))
        if self.ignore_patches:
            return current
        updated = replace(current, version=version, addresses=tuple(copies))
        self.users[user_id] = updated
        return updated

    async def get_extensions_page(
        self,
        *,
        page_size: int,
        page_number: int,
    ) -> Page[OwnershipRecord] | None:
        return self._page("extensions", self.extensions, page_size, page_number)

    async def get_dids_page(
        self,
        *,
        page_size: int,
        page_number: int,
    ) -> Page[OwnershipRecord] | None:
        return self._page("dids", self.dids, page_size, page_number)

    def _page[T](
        self,
        label: str,
        items: Sequence[T],
        page_size: int,
        page_number: int,
    ) -> Page[T]:
        self.page_requests.append((label, page_size, page_number))
        if label in self.page_errors:
            raise self.page_errors[label]
        start = (page_number - 1) * page_size
        return Page(
            entities=tuple(items[start : start + page_size]),
            page_number=page_number,
            page_count=max(1, math.ceil(len(items) / page_size)),
        )


if TYPE_CHECKING:
    _gateway_check: DirectoryGateway = FakeDirectory()
