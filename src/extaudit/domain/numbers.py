"""Profile-number extraction and normalisation."""

from __future__ import annotations

from typing import TYPE_CHECKING, Final

from .types import Address, AuditKind, UserRecord

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

DID_ADDRESS_KEYS: Final[tuple[str, ...]] = ("address", "phoneNumber", "number")
DID_WRITE_KEY: Final[str] = "address"
NO_NAME: Final[str] = "(no name)"


def normalize_did(raw: str | None) -> str | None:
    """Strip formatting from a DID, keeping digits and a leading ``+``.

    Returns ``None`` for blank input and the trimmed input when no digits remain.
    """

    if raw is None or not raw.strip():
        return None
    stripped = raw.strip()
    kept: list[str] = []
    for char in stripped:
        if char == "+" and not kept:
            kept.append(char)
        elif char.isdigit():
            kept.append(char)
    normalized = "".join(kept)
    return normalized if normalized.strip() else stripped


def normalize_extension(raw: str | None) -> str | None:
    if raw is None or not raw.strip():
        return None
    return raw.strip()


def _extra_lookup(extra: dict[str, object], key: str) -> object | None:
    if key in extra:
        return extra[key]
    folded = key.casefold()
    for name, value in extra.items():
        if name.casefold() == folded:
            return value
    return None


def address_number_field(address: Address) -> str | None:
    """Raw number stored on an address entry (used for DIDs)."""

    for key in DID_ADDRESS_KEYS:
        value = _extra_lookup(address.extra, key)
        if value is None:
            continue
        if isinstance(value, bool):
            return str(value).lower()
        return str(value)
    return None


def set_address_number_field(address: Address, value: str | None) -> None:
    """Write a DID to the canonical key.

    A clear (``None``) blanks every number key in any casing so no stale
    variant keeps the number alive on the profile.
    """

    folded = {key.casefold() for key in DID_ADDRESS_KEYS} if value is None else set()
    folded.add(DID_WRITE_KEY.casefold())
    for name in list(address.extra):
        if name.casefold() in folded and name != DID_WRITE_KEY:
            del address.extra[name]
    address.extra[DID_WRITE_KEY] = value


def _pick(phones: list[Address], read: Callable[[Address], str | None]) -> str | None:
    for phone in phones:
        if phone.is_work_phone():
            value = read(phone)
            if value is not None and value.strip():
                return value
    for phone in phones:
        value = read(phone)
        if value is not None and value.strip():
            return value
    return None


def _phones(addresses: Iterable[Address]) -> list[Address]:
    return [address for address in addresses if address.is_phone()]


def profile_extension(user: UserRecord) -> str | None:
    """Work-phone extension first, else the first phone entry with an extension."""

    value = _pick(_phones(user.addresses), lambda address: address.extension)
    return normalize_extension(value)


def profile_did(user: UserRecord) -> str | None:
    return _pick(
        _phones(user.addresses),
        lambda address: normalize_did(address_number_field(address)),
    )


def profile_number(user: UserRecord, kind: AuditKind) -> str | None:
    if kind is AuditKind.DID:
        return profile_did(user)
    return profile_extension(user)


def read_address_number(address: Address, kind: AuditKind) -> str | None:
    if kind is AuditKind.DID:
        return address_number_field(address)
    return address.extension


def write_address_number(address: Address, kind: AuditKind, value: str | None) -> None:
    if kind is AuditKind.DID:
        set_address_number_field(address, value)
    else:
        address.extension = value


def user_display(user: UserRecord) -> str:
    name = user.name.strip() if user.name and user.name.strip() else NO_NAME
    if user.email and user.email.strip():
        return f"{name} <{user.email.strip()}>"
    return name
