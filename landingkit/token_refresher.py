from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
from typing import Any, Protocol

import httpx

from landingkit.credentials import CredentialNotFoundError, CredentialRecord, CredentialStore
from landingkit.models import utcnow

logger = logging.getLogger(__name__)

REFRESH_BUFFER = timedelta(minutes=5)


class TokenRefreshError(RuntimeError):
    def __init__(self, *, message: str, status_code: int = 401) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class IssuedToken:
    access_token: str
    expires_in: int


class TokenIssuer(Protocol):
    async def issue(self, *, shop_domain: str, client_id: str, client_secret: str) -> IssuedToken: ...


class ShopifyTokenIssuer:
    """Mints Admin API tokens through the client-credentials grant."""

    def __init__(self, *, timeout: float = 20.0) -> None:
        self._timeout = timeout

    async def issue(self, *, shop_domain: str, client_id: str, client_secret: str) -> IssuedToken:
        url = f"https://{shop_domain}/admin/oauth/access_token"
        payload = {
            "client_id": client_id,
            "client_secret": client_secret,
            "grant_type": "client_credentials",
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(url, json=payload)
        except httpx.RequestError as exc:
            raise TokenRefreshError(message=f"Network error while refreshing Shopify token: {exc}") from exc

        if response.status_code >= 300:
            raise TokenRefreshError(
                message=f"Shopify token refresh failed ({response.status_code}): {response.text}"
            )

        try:
            body: Any = response.json()
        except ValueError as exc:
            raise TokenRefreshError(message="Shopify token refresh returned invalid JSON") from exc

        if not isinstance(body, dict):
            raise TokenRefreshError(message="Shopify token refresh response must be a JSON object")
        access_token = body.get("access_token")
        expires_in = body.get("expires_in")
        if not isinstance(access_token, str) or not access_token:
            raise TokenRefreshError(message="Shopify token refresh response is missing access_token")
        if isinstance(expires_in, bool) or not isinstance(expires_in, int) or expires_in <= 0:
            raise TokenRefreshError(message="Shopify token refresh response is missing expires_in")
        return IssuedToken(access_token=access_token, expires_in=expires_in)


class TokenRefresher:
    """Hands out currently-valid access tokens, refreshing and persisting them as needed.

    Refreshes are serialized per storefront. A caller that waited on the lock re-reads the
    record first, so concurrent callers collapse into a single issuance.
    """

    def __init__(
        self,
        *,
        store: CredentialStore,
        issuer: TokenIssuer,
        clock: Callable[[], datetime] = utcnow,
        refresh_buffer: timedelta = REFRESH_BUFFER,
    ) -> None:
        self.store = store
        self._issuer = issuer
        self._clock = clock
        self._refresh_buffer = refresh_buffer
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, storefront_id: str) -> asyncio.Lock:
        lock = self._locks.get(storefront_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[storefront_id] = lock
        return lock

    def _load(self, storefront_id: str) -> CredentialRecord:
        record = self.store.get(storefront_id)
        if record is None:
            raise CredentialNotFoundError(storefront_id)
        return record

    def needs_refresh(self, record: CredentialRecord) -> bool:
        if record.expires_at is None:
            return False
        return self._clock() >= record.expires_at - self._refresh_buffer

    async def get_valid_credential(self, storefront_id: str) -> str:
        record = self._load(storefront_id)
        if not self.needs_refresh(record):
            return record.access_token
        if not record.can_refresh:
            logger.warning(
                "Access token is expiring but no client credentials are stored; using cached token",
                extra={"storefrontId": storefront_id, "expiresAt": record.expires_at.isoformat()},
            )
            return record.access_token

        async with self._lock_for(storefront_id):
            record = self._load(storefront_id)
            if not self.needs_refresh(record):
                return record.access_token
            return await self._refresh(record)

    async def force_refresh(self, storefront_id: str, *, stale_token: str | None = None) -> str:
        async with self._lock_for(storefront_id):
            record = self._load(storefront_id)
            if stale_token is not None and record.access_token != stale_token:
                return record.access_token
            return await self._refresh(record)

    async def _refresh(self, record: CredentialRecord) -> str:
        client_id, client_secret = record.client_id, record.client_secret
        if not client_id or not client_secret:
            raise TokenRefreshError(
                message=f"Storefront {record.storefront_id} has no client credentials to mint a new access token"
            )
        try:
            issued = await self._issuer.issue(
                shop_domain=record.shop_domain,
                client_id=client_id,
                client_secret=client_secret,
            )
        except TokenRefreshError:
            logger.error(
                "Access token refresh failed",
                extra={"storefrontId": record.storefront_id, "shopDomain": record.shop_domain},
            )
            raise

        expires_at = self._clock() + timedelta(seconds=issued.expires_in)
        self.store.save_token(record.storefront_id, access_token=issued.access_token, expires_at=expires_at)
        logger.info(
            "Refreshed access token",
            extra={"storefrontId": record.storefront_id, "expiresAt": expires_at.isoformat()},
        )
        return issued.access_token
