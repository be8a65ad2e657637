"""Port for the remote directory the audit reads from and patches."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence

    from extaudit.domain.types import Address, OwnershipRecord, UserRecord


@dataclass(slots=True, frozen=True)
class Page[T]:
    """One page of a paged listing."""

    entities: tuple[T, ...]
    page_number: int
    page_count: int


@runtime_checkable
class DirectoryGateway(Protocol):
    """Everything the reconciliation and remediation services need from the API."""

    async def get_users_page(
        self,
        *,
        page_size: int,
        page_number: int,
        include_inactive: bool,
    ) -> Page[UserRecord] | None: ...

    async def get_user(self, user_id: str) -> UserRecord | None: ...

    async def patch_user(
        self,
        user_id: str,
        *,
        version: int,
        addresses: Sequence[Address],
    ) -> UserRecord | None: ...

    async def get_extensions_page(
        self,
        *,
        page_size: int,
        page_number: int,
    ) -> Page[OwnershipRecord] | None: ...

    async def get_dids_page(
        self,
        *,
        page_size: int,
        page_number: int,
    ) -> Page[OwnershipRecord] | None: ...


__all__ = ["DirectoryGateway", "Page"]
