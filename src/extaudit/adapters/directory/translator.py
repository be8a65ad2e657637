"""Translate directory payloads into domain records and back."""

from __future__ import annotations

from datetime import UTC
from typing import TYPE_CHECKING

from extaudit.domain.numbers import normalize_did
from extaudit.domain.types import Address, OwnershipRecord, UserRecord

if TYPE_CHECKING:
    from datetime import datetime

    from .schema import AddressPayload, DidPayload, ExtensionPayload, UserPayload


def parse_address(payload: AddressPayload) -> Address:
    return Address(
        media_type=payload.media_type,
        type=payload.type,
        extension=payload.extension,
        extra=payload.extra,
    )


def parse_user(payload: UserPayload) -> UserRecord | None:
    if payload.id is None or not payload.id.strip():
        return None
    return UserRecord(
        id=payload.id,
        name=payload.name,
        email=payload.email,
        state=payload.state,
        version=payload.version,
        addresses=tuple(parse_address(address) for address in payload.addresses or ()),
        station_id=payload.station.id if payload.station else None,
        location_ids=tuple(
            location.id for location in payload.locations or () if location.id is not None
        ),
        date_last_login=_as_utc(payload.last_activity()),
    )


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def parse_extension(payload: ExtensionPayload) -> OwnershipRecord | None:
    number = (payload.number or "").strip()
    if not number:
        return None
    return OwnershipRecord(
        id=payload.id,
        number=number,
        owner_type=payload.owner_type,
        owner_id=payload.owner.id if payload.owner else None,
        pool_id=payload.extension_pool.id if payload.extension_pool else None,
    )


def parse_did(payload: DidPayload) -> OwnershipRecord | None:
    number = normalize_did(payload.did_number())
    if number is None:
        return None
    return OwnershipRecord(
        id=payload.id,
        number=number,
        owner_type=payload.owner_type,
        owner_id=payload.owner.id if payload.owner else None,
        pool_id=payload.did_pool.id if payload.did_pool else None,
    )


def address_to_payload(address: Address) -> dict[str, object]:
    """Serialise an address for a PATCH body, keeping every unmodelled field."""

    body: dict[str, object] = dict(address.extra)
    body["mediaType"] = address.media_type
    body["type"] = address.type
    body["extension"] = address.extension
    return body
