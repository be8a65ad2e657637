"""Domain records for directory users and number ownership.

Records are snapshots of remote state. ``UserRecord`` and ``OwnershipRecord`` are
frozen; the only mutable values are address working copies cloned at patch time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime

PHONE_MEDIA = "PHONE"
WORK_TYPE = "WORK"
USER_OWNER_TYPE = "USER"


class AuditKind(StrEnum):
    """Which number space is audited."""

    EXTENSION = "extension"
    DID = "did"


@dataclass(slots=True)
class Address:
    """One contact address entry; ``extra`` keeps every field the API sent that we do not model."""

    media_type: str | None = None
    type: str | None = None
    extension: str | None = None
    extra: dict[str, object] = field(default_factory=dict[str, object])

    def is_phone(self) -> bool:
        return (self.media_type or "").casefold() == PHONE_MEDIA.casefold()

    def is_work_phone(self) -> bool:
        return self.is_phone() and (self.type or "").casefold() == WORK_TYPE.casefold()

    def clone(self) -> Address:
        return Address(
            media_type=self.media_type,
            type=self.type,
            extension=self.extension,
            extra=dict(self.extra),
        )


@dataclass(slots=True, frozen=True, kw_only=True)
class UserRecord:
    id: str
    name: str | None = None
    email: str | None = None
    state: str | None = None
    version: int = 0
    addresses: tuple[Address, ...] = ()
    station_id: str | None = None
    location_ids: tuple[str, ...] = ()
    date_last_login: datetime | None = None

    def clone_addresses(self) -> list[Address]:
        return [address.clone() for address in self.addresses]


@dataclass(slots=True, frozen=True, kw_only=True)
class OwnershipRecord:
    """An extension or DID record stating who owns ``number``."""

    id: str | None
    number: str
    owner_type: str | None = None
    owner_id: str | None = None
    pool_id: str | None = None

    @property
    def is_unassigned(self) -> bool:
        owner_type = (self.owner_type or "").strip()
        if not owner_type:
            return True
        return owner_type.casefold() == USER_OWNER_TYPE.casefold() and not (
            self.owner_id or ""
        ).strip()


@dataclass(slots=True, frozen=True, kw_only=True)
class ProfileAssignment:
    """A user paired with the number their profile declares."""

    user_id: str
    number: str
    user_name: str | None = None
    user_email: str | None = None
    user_state: str | None = None


@dataclass(slots=True, frozen=True, kw_only=True)
class AuditContext:
    """Point-in-time snapshot every finding and plan is derived from.

    ``records_by_number`` is keyed by :func:`number_key` and keeps every record
    sharing a number, duplicates included.
    """

    kind: AuditKind
    include_inactive: bool
    users: tuple[UserRecord, ...]
    users_by_id: Mapping[str, UserRecord]
    user_display_by_id: Mapping[str, str]
    assignments: tuple[ProfileAssignment, ...]
    profile_numbers: tuple[str, ...]
    records: tuple[OwnershipRecord, ...]
    records_by_number: Mapping[str, tuple[OwnershipRecord, ...]]

    def records_for(self, number: str) -> tuple[OwnershipRecord, ...]:
        return self.records_by_number.get(number_key(number), ())

    def display_for(self, user_id: str) -> str:
        return self.user_display_by_id.get(id_key(user_id), user_id)


def number_key(number: str) -> str:
    """Grouping key for numbers: comparisons are whitespace- and case-insensitive."""

    return number.strip().casefold()


def id_key(identifier: str) -> str:
    return identifier.strip().casefold()


def same_id(left: str | None, right: str | None) -> bool:
    if left is None or right is None:
        return False
    return id_key(left) == id_key(right)
