"""Public interface for the directory API adapter."""

from __future__ import annotations

from .client import DIDS_PATH, EXTENSIONS_PATH, USERS_PATH, DirectoryClient
from .schema import AddressPayload, DidPayload, ExtensionPayload, PagedResponse, UserPayload
from .translator import address_to_payload, parse_did, parse_extension, parse_user

__all__ = [
    "DIDS_PATH",
    "EXTENSIONS_PATH",
    "USERS_PATH",
    "AddressPayload",
    "DidPayload",
    "DirectoryClient",
    "ExtensionPayload",
    "PagedResponse",
    "UserPayload",
    "address_to_payload",
    "parse_did",
    "parse_extension",
    "parse_user",
]
