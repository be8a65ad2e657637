"""HTTP client for the telephony directory API."""

from __future__ import annotations

from dataclasses import replace
from logging import getLogger
from typing import TYPE_CHECKING, Final
from urllib.parse import quote

from extaudit.adapters.http_resilience import ApiStatusError, ResilientClient
from extaudit.domain.ports.directory import DirectoryGateway, Page

from .schema import DidPayload, ExtensionPayload, PagedResponse, UserPatchPayload, UserPayload
from .translator import address_to_payload, parse_did, parse_extension, parse_user

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from types import TracebackType

    from extaudit.adapters.api_stats import ApiStats
    from extaudit.config.directory import DirectoryConfig
    from extaudit.config.http_resilience import ResilienceConfig
    from extaudit.domain.types import Address, OwnershipRecord, UserRecord

log = getLogger(__name__)

USERS_PATH: Final[str] = "/api/v2/users"
EXTENSIONS_PATH: Final[str] = "/api/v2/telephony/providers/edges/extensions"
DIDS_PATH: Final[str] = "/api/v2/telephony/providers/edges/dids"
USER_EXPAND: Final[str] = "station,locations,lasttokenissued,authorization.unusedRoles"
_NOT_FOUND: Final[int] = 404
_BAD_REQUEST: Final[int] = 400


def _user_path(user_id: str) -> str:
    return f"{USERS_PATH}/{quote(user_id, safe='')}"


def _default_client_factory(config: ResilienceConfig) -> ResilientClient:
    return ResilientClient(config)


class DirectoryClient:
    """Directory API surface used by the audit, one shared HTTP session per instance.

    Use as an async context manager; the bearer credential is attached to every
    request and never logged.
    """

    def __init__(
        self,
        config: DirectoryConfig,
        *,
        client_factory: Callable[[ResilienceConfig], ResilientClient] | None = None,
    ) -> None:
        self._config = config
        resilience = config.resilience
        headers = dict(resilience.default_headers or {})
        headers["Authorization"] = f"Bearer {config.access_token}"
        headers["Accept"] = "application/json"
        self._resilience = replace(
            resilience,
            base_url=resilience.base_url or config.base_uri,
            default_headers=headers,
        )
        self._client_factory = client_factory or _default_client_factory
        self._client: ResilientClient | None = None

    async def __aenter__(self) -> DirectoryClient:
        self._client = self._client_factory(self._resilience)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def stats(self) -> ApiStats:
        return self._http.stats

    @property
    def _http(self) -> ResilientClient:
        if self._client is None:
            raise RuntimeError("DirectoryClient is not open; use 'async with'")
        return self._client

    async def get_users_page(
        self,
        *,
        page_size: int,
        page_number: int,
        include_inactive: bool,
    ) -> Page[UserRecord] | None:
        params: dict[str, str | int] = {"pageSize": page_size, "pageNumber": page_number}
        if not include_inactive:
            params["state"] = "active"
        params["expand"] = USER_EXPAND

        response = await self._http.get(USERS_PATH, params=params)
        payload = PagedResponse[UserPayload].model_validate(response.json())
        users = [user for user in map(parse_user, payload.entities) if user is not None]
        return Page(
            entities=tuple(users),
            page_number=payload.page_number or page_number,
            page_count=payload.page_count,
        )

    async def get_user(self, user_id: str) -> UserRecord | None:
        try:
            response = await self._http.get(_user_path(user_id))
        except ApiStatusError as exc:
            if exc.status_code == _NOT_FOUND:
                log.info("User %s not found", user_id)
                return None
            raise
        return parse_user(UserPayload.model_validate(response.json()))

    async def patch_user(
        self,
        user_id: str,
        *,
        version: int,
        addresses: Sequence[Address],
    ) -> UserRecord | None:
        body = UserPatchPayload(
            version=version,
            addresses=[address_to_payload(address) for address in addresses],
        )
        response = await self._http.patch(_user_path(user_id), json=body.model_dump(mode="json"))
        if not response.content:
            return None
        return parse_user(UserPayload.model_validate(response.json()))

    async def get_extensions_page(
        self,
        *,
        page_size: int,
        page_number: int,
    ) -> Page[OwnershipRecord] | None:
        response = await self._http.get(
            EXTENSIONS_PATH,
            params={"pageSize": page_size, "pageNumber": page_number},
        )
        payload = PagedResponse[ExtensionPayload].model_validate(response.json())
        records = [r for r in map(parse_extension, payload.entities) if r is not None]
        return Page(
            entities=tuple(records),
            page_number=payload.page_number or page_number,
            page_count=payload.page_count,
        )

    async def get_dids_page(
        self,
        *,
        page_size: int,
        page_number: int,
    ) -> Page[OwnershipRecord] | None:
        response = await self._http.get(
            DIDS_PATH,
            params={"pageSize": page_size, "pageNumber": page_number},
        )
        payload = PagedResponse[DidPayload].model_validate(response.json())
        records = [r for r in map(parse_did, payload.entities) if r is not None]
        return Page(
            entities=tuple(records),
            page_number=payload.page_number or page_number,
            page_count=payload.page_count,
        )

    async def get_dids_by_number(self, number: str) -> list[OwnershipRecord]:
        """Targeted DID lookup; retries with ``number=`` when ``phoneNumber=`` is rejected."""

        try:
            response = await self._http.get(DIDS_PATH, params={"phoneNumber": number})
        except ApiStatusError as exc:
            if exc.status_code != _BAD_REQUEST:
                raise
            log.info("DID lookup by phoneNumber rejected; retrying with number")
            response = await self._http.get(DIDS_PATH, params={"number": number})

        payload = PagedResponse[DidPayload].model_validate(response.json())
        return [r for r in map(parse_did, payload.entities) if r is not None]


if TYPE_CHECKING:

    def _gateway_check(client: DirectoryClient) -> DirectoryGateway:
        return client
