from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy.orm import Session

from landingkit.models import Storefront


class CredentialNotFoundError(LookupError):
    def __init__(self, storefront_id: str) -> None:
        super().__init__(f"No credentials configured for storefront {storefront_id}")
        self.storefront_id = storefront_id


@dataclass(frozen=True)
class CredentialRecord:
    storefront_id: str
    shop_domain: str
    access_token: str
    expires_at: datetime | None = None
    client_id: str | None = None
    client_secret: str | None = None

    @property
    def can_refresh(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def __repr__(self) -> str:
        return (
            f"CredentialRecord(storefront_id={self.storefront_id!r}, shop_domain={self.shop_domain!r}, "
            f"expires_at={self.expires_at!r}, can_refresh={self.can_refresh})"
        )


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo on the way back out.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class CredentialStore(Protocol):
    def get(self, storefront_id: str) -> CredentialRecord | None: ...

    def save_token(self, storefront_id: str, *, access_token: str, expires_at: datetime | None) -> None: ...


class InMemoryCredentialStore:
    def __init__(self, records: list[CredentialRecord] | None = None) -> None:
        self._records: dict[str, CredentialRecord] = {}
        for record in records or []:
            self.put(record)

    def put(self, record: CredentialRecord) -> None:
        self._records[record.storefront_id] = record

    def get(self, storefront_id: str) -> CredentialRecord | None:
        return self._records.get(storefront_id)

    def save_token(self, storefront_id: str, *, access_token: str, expires_at: datetime | None) -> None:
        record = self._records.get(storefront_id)
        if record is None:
            raise CredentialNotFoundError(storefront_id)
        self._records[storefront_id] = replace(record, access_token=access_token, expires_at=expires_at)


class SqlCredentialStore:
    """Credential records backed by the ``storefronts`` table, one row per storefront."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    @staticmethod
    def _to_record(storefront: Storefront) -> CredentialRecord:
        return CredentialRecord(
            storefront_id=str(storefront.id),
            shop_domain=storefront.shop_domain,
            access_token=storefront.access_token,
            expires_at=_as_utc(storefront.expires_at),
            client_id=storefront.client_id,
            client_secret=storefront.client_secret,
        )

    @staticmethod
    def _primary_key(storefront_id: str) -> int | None:
        try:
            return int(storefront_id)
        except (TypeError, ValueError):
            return None

    def get(self, storefront_id: str) -> CredentialRecord | None:
        primary_key = self._primary_key(storefront_id)
        if primary_key is None:
            return None
        with self._session_factory() as session:
            storefront = session.get(Storefront, primary_key)
            if storefront is None:
                return None
            return self._to_record(storefront)

    def save_token(self, storefront_id: str, *, access_token: str, expires_at: datetime | None) -> None:
        primary_key = self._primary_key(storefront_id)
        with self._session_factory() as session:
            storefront = session.get(Storefront, primary_key) if primary_key is not None else None
            if storefront is None:
                raise CredentialNotFoundError(storefront_id)
            storefront.access_token = access_token
            storefront.expires_at = expires_at
            session.commit()
