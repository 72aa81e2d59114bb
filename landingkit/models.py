from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Storefront(Base):
    __tablename__ = "storefronts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(length=255), nullable=False)
    shop_domain: Mapped[str] = mapped_column(String(length=255), unique=True, nullable=False, index=True)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    client_id: Mapped[str | None] = mapped_column(String(length=128), nullable=True)
    client_secret: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )


class ProductRecord(Base):
    __tablename__ = "product_records"
    __table_args__ = (
        UniqueConstraint("storefront_id", "shopify_product_id", name="uq_product_record_storefront_product"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    storefront_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("storefronts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    shopify_product_id: Mapped[str] = mapped_column(String(length=255), nullable=False)
    title: Mapped[str] = mapped_column(String(length=255), nullable=False)
    price: Mapped[str | None] = mapped_column(String(length=32), nullable=True)
    sku: Mapped[str | None] = mapped_column(String(length=255), nullable=True)
    template_suffix: Mapped[str | None] = mapped_column(String(length=128), nullable=True)
    metafields: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    variants_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    has_multiple_variants: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )
