from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from ..utils.auth import STAFF_CAPABILITIES

logger = logging.getLogger(__name__)


class IdentityProviderError(Exception):
    """The identity provider could not be reached or answered unexpectedly."""


@dataclass(frozen=True)
class StaffIdentity:
    id: str
    name: str
    capabilities: frozenset[str]


class IdentityProvider(Protocol):
    async def authenticate(self, username: str, password: str) -> StaffIdentity | None: ...


class HttpIdentityProvider:
    """
    Verifies staff credentials against the hosted identity service.

    The service answers 200 with ``{"id", "name", "capabilities"}`` for valid
    credentials and 401/403 otherwise. Identities without explicit capabilities
    get the full staff set.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def authenticate(self, username: str, password: str) -> StaffIdentity | None:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.url, json={"username": username, "password": password})
        except httpx.RequestError as exc:
            raise IdentityProviderError("identity provider unreachable") from exc

        if response.status_code in (401, 403):
            return None
        if not response.is_success:
            logger.warning("identity provider returned %s", response.status_code)
            raise IdentityProviderError(f"identity provider returned {response.status_code}")

        try:
            data = response.json()
            identity_id = str(data["id"])
        except (ValueError, KeyError, TypeError) as exc:
            raise IdentityProviderError("malformed identity response") from exc
        caps = data.get("capabilities")
        return StaffIdentity(
            id=identity_id,
            name=str(data.get("name") or username),
            capabilities=frozenset(caps) if caps else STAFF_CAPABILITIES,
        )


class UnconfiguredIdentityProvider:
    async def authenticate(self, username: str, password: str) -> StaffIdentity | None:
        raise IdentityProviderError("no identity provider configured")
