"""Pydantic models describing the directory API payloads."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

EntityT = TypeVar("EntityT")


def _blank_to_none(value: object) -> object:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


class DirectoryBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class AddressPayload(BaseModel):
    """A user address entry. Unknown keys are kept so a PATCH round-trips them."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    media_type: str | None = Field(default=None, alias="mediaType")
    type: str | None = None
    extension: str | None = None

    @property
    def extra(self) -> dict[str, object]:
        return dict(self.__pydantic_extra__ or {})


class EntityRef(DirectoryBaseModel):
    id: str | None = None
    name: str | None = None

    _normalize_id = field_validator("id", mode="before")(_blank_to_none)


class TokenIssuedPayload(DirectoryBaseModel):
    date_issued: datetime | None = Field(default=None, alias="dateIssued")


class UserPayload(DirectoryBaseModel):
    id: str | None = None
    name: str | None = None
    email: str | None = None
    state: str | None = None
    version: int = 0
    addresses: list[AddressPayload] | None = None
    station: EntityRef | None = None
    locations: list[EntityRef] | None = None
    date_last_login: datetime | None = Field(default=None, alias="dateLastLogin")
    last_token_issued: TokenIssuedPayload | None = Field(default=None, alias="lastTokenIssued")

    def last_activity(self) -> datetime | None:
        if self.date_last_login is not None:
            return self.date_last_login
        return self.last_token_issued.date_issued if self.last_token_issued else None


class ExtensionPayload(DirectoryBaseModel):
    id: str | None = None
    number: str | None = None
    owner_type: str | None = Field(default=None, alias="ownerType")
    owner: EntityRef | None = None
    extension_pool: EntityRef | None = Field(default=None, alias="extensionPool")


class DidPayload(DirectoryBaseModel):
    id: str | None = None
    phone_number: str | None = Field(default=None, alias="phoneNumber")
    number: str | None = None
    owner_type: str | None = Field(default=None, alias="ownerType")
    owner: EntityRef | None = None
    did_pool: EntityRef | None = Field(default=None, alias="didPool")

    def did_number(self) -> str | None:
        if self.phone_number is None or not self.phone_number.strip():
            return self.number
        return self.phone_number


class PagedResponse(DirectoryBaseModel, Generic[EntityT]):  # noqa: UP046
    page_count: int = Field(default=0, alias="pageCount")
    page_number: int = Field(default=0, alias="pageNumber")
    page_size: int = Field(default=0, alias="pageSize")
    total: int = 0
    entities: list[EntityT] = Field(default_factory=list)


class UserPatchPayload(DirectoryBaseModel):
    version: int
    addresses: list[dict[str, object]]
