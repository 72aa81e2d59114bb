from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from landingkit.credentials import CredentialNotFoundError, CredentialRecord, InMemoryCredentialStore
from landingkit.token_refresher import (
    IssuedToken,
    ShopifyTokenIssuer,
    TokenRefresher,
    TokenRefreshError,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeIssuer:
    def __init__(self, *, token: str = "fresh_token", expires_in: int = 3600, delay: float = 0.0) -> None:
        self.calls: list[dict[str, str]] = []
        self._token = token
        self._expires_in = expires_in
        self._delay = delay

    async def issue(self, *, shop_domain: str, client_id: str, client_secret: str) -> IssuedToken:
        self.calls.append({"shop_domain": shop_domain, "client_id": client_id, "client_secret": client_secret})
        if self._delay:
            await asyncio.sleep(self._delay)
        return IssuedToken(access_token=f"{self._token}_{len(self.calls)}", expires_in=self._expires_in)


class FailingIssuer:
    async def issue(self, *, shop_domain: str, client_id: str, client_secret: str) -> IssuedToken:
        raise TokenRefreshError(message="Shopify token refresh failed (400): invalid_client")


def _record(*, expires_in: timedelta | None, with_client: bool = True) -> CredentialRecord:
    return CredentialRecord(
        storefront_id="1",
        shop_domain="example.myshopify.com",
        access_token="cached_token",
        expires_at=NOW + expires_in if expires_in is not None else None,
        client_id="client_id" if with_client else None,
        client_secret="client_secret" if with_client else None,
    )


def _refresher(store: InMemoryCredentialStore, issuer) -> TokenRefresher:
    return TokenRefresher(store=store, issuer=issuer, clock=lambda: NOW)


def test_fresh_token_is_returned_without_refresh():
    store = InMemoryCredentialStore([_record(expires_in=timedelta(minutes=10))])
    issuer = FakeIssuer()

    token = asyncio.run(_refresher(store, issuer).get_valid_credential("1"))

    assert token == "cached_token"
    assert issuer.calls == []


def test_token_without_expiry_is_returned_as_is():
    store = InMemoryCredentialStore([_record(expires_in=None)])
    issuer = FakeIssuer()

    assert asyncio.run(_refresher(store, issuer).get_valid_credential("1")) == "cached_token"
    assert issuer.calls == []


def test_expiring_token_is_refreshed_once_and_persisted():
    store = InMemoryCredentialStore([_record(expires_in=timedelta(minutes=2))])
    issuer = FakeIssuer(expires_in=86399)

    token = asyncio.run(_refresher(store, issuer).get_valid_credential("1"))

    assert token == "fresh_token_1"
    assert issuer.calls == [
        {"shop_domain": "example.myshopify.com", "client_id": "client_id", "client_secret": "client_secret"}
    ]
    stored = store.get("1")
    assert stored is not None
    assert stored.access_token == "fresh_token_1"
    assert stored.expires_at == NOW + timedelta(seconds=86399)


def test_expired_token_without_client_credentials_falls_back_to_cached_token():
    store = InMemoryCredentialStore([_record(expires_in=timedelta(minutes=-1), with_client=False)])
    issuer = FakeIssuer()

    token = asyncio.run(_refresher(store, issuer).get_valid_credential("1"))

    assert token == "cached_token"
    assert issuer.calls == []


def test_unknown_storefront_raises_not_found():
    refresher = _refresher(InMemoryCredentialStore(), FakeIssuer())

    with pytest.raises(CredentialNotFoundError):
        asyncio.run(refresher.get_valid_credential("missing"))


def test_concurrent_callers_share_a_single_refresh():
    store = InMemoryCredentialStore([_record(expires_in=timedelta(minutes=1))])
    issuer = FakeIssuer(delay=0.01)
    refresher = _refresher(store, issuer)

    async def run_all() -> list[str]:
        return await asyncio.gather(*(refresher.get_valid_credential("1") for _ in range(5)))

    tokens = asyncio.run(run_all())

    assert len(issuer.calls) == 1
    assert tokens == ["fresh_token_1"] * 5


def test_force_refresh_skips_minting_when_token_already_replaced():
    store = InMemoryCredentialStore([_record(expires_in=timedelta(hours=1))])
    issuer = FakeIssuer()
    refresher = _refresher(store, issuer)

    async def run() -> tuple[str, str]:
        first = await refresher.force_refresh("1", stale_token="cached_token")
        second = await refresher.force_refresh("1", stale_token="cached_token")
        return first, second

    first, second = asyncio.run(run())

    assert first == second == "fresh_token_1"
    assert len(issuer.calls) == 1


def test_force_refresh_without_client_credentials_raises():
    store = InMemoryCredentialStore([_record(expires_in=timedelta(hours=1), with_client=False)])
    issuer = FakeIssuer()

    with pytest.raises(TokenRefreshError, match="no client credentials"):
        asyncio.run(_refresher(store, issuer).force_refresh("1", stale_token="cached_token"))

    assert issuer.calls == []


def test_force_refresh_with_half_stored_client_credentials_raises():
    record = replace(_record(expires_in=timedelta(hours=1)), client_secret="")
    issuer = FakeIssuer()

    with pytest.raises(TokenRefreshError, match="no client credentials"):
        asyncio.run(_refresher(InMemoryCredentialStore([record]), issuer).force_refresh("1"))

    assert issuer.calls == []


def test_refresh_failure_propagates_and_keeps_stored_token():
    store = InMemoryCredentialStore([_record(expires_in=timedelta(minutes=1))])

    with pytest.raises(TokenRefreshError, match="invalid_client"):
        asyncio.run(_refresher(store, FailingIssuer()).get_valid_credential("1"))

    stored = store.get("1")
    assert stored is not None
    assert stored.access_token == "cached_token"


def test_shopify_token_issuer_parses_client_credentials_response(monkeypatch):
    captured: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["body"] = request.read()
        return httpx.Response(200, json={"access_token": "shpat_new", "expires_in": 86399, "scope": "write_products"})

    _patch_async_client(monkeypatch, handler)

    issued = asyncio.run(
        ShopifyTokenIssuer().issue(shop_domain="example.myshopify.com", client_id="cid", client_secret="secret")
    )

    assert issued == IssuedToken(access_token="shpat_new", expires_in=86399)
    assert captured["url"] == "https://example.myshopify.com/admin/oauth/access_token"
    assert b'"grant_type":"client_credentials"' in captured["body"].replace(b" ", b"")


def test_shopify_token_issuer_rejects_error_status(monkeypatch):
    _patch_async_client(monkeypatch, lambda request: httpx.Response(400, json={"error": "invalid_client"}))

    with pytest.raises(TokenRefreshError, match="400"):
        asyncio.run(
            ShopifyTokenIssuer().issue(shop_domain="example.myshopify.com", client_id="cid", client_secret="bad")
        )


def test_shopify_token_issuer_rejects_missing_expiry(monkeypatch):
    _patch_async_client(monkeypatch, lambda request: httpx.Response(200, json={"access_token": "shpat_new"}))

    with pytest.raises(TokenRefreshError, match="expires_in"):
        asyncio.run(
            ShopifyTokenIssuer().issue(shop_domain="example.myshopify.com", client_id="cid", client_secret="secret")
        )


def _patch_async_client(monkeypatch, handler) -> None:
    real_async_client = httpx.AsyncClient

    def factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(handler)
        return real_async_client(*args, **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", factory)
