from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from sqlalchemy import select  # noqa: E402

from landingkit.db import SessionLocal, init_db  # noqa: E402
from landingkit.main import shopify_api  # noqa: E402
from landingkit.models import Storefront  # noqa: E402
from landingkit.shopify_api import ShopifyApiError  # noqa: E402


async def _publish_storefront(storefront_id: str, limit: int) -> tuple[int, int]:
    products = await shopify_api.list_products(storefront_id, limit=limit)
    published = 0
    failed = 0
    for product in products:
        try:
            result = await shopify_api.publish_product(storefront_id, product["id"])
        except ShopifyApiError as exc:
            print(f"  [fail] {product['title']}: {exc}")
            failed += 1
            continue
        if result.published:
            print(f"  [ok] {product['title']} -> {', '.join(result.published)}")
            published += 1
        else:
            reasons = "; ".join(item["error"] for item in result.failed) or "no channel accepted the product"
            print(f"  [fail] {product['title']}: {reasons}")
            failed += 1
    return published, failed


def main(storefront_id: str | None, limit: int) -> None:
    init_db()
    with SessionLocal() as session:
        query = select(Storefront).order_by(Storefront.id)
        if storefront_id:
            query = query.where(Storefront.id == int(storefront_id))
        storefronts = [(str(item.id), item.shop_domain) for item in session.scalars(query).all()]

    if not storefronts:
        print("No storefronts found.")
        return

    for current_id, shop_domain in storefronts:
        print(f"Publishing products for {shop_domain} (storefront {current_id})")
        try:
            published, failed = asyncio.run(_publish_storefront(current_id, limit))
        except ShopifyApiError as exc:
            print(f"  Could not list products: {exc}")
            continue
        print(f"  Published: {published}, failed: {failed}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Publish every product of each storefront to the Online Store.")
    parser.add_argument("--storefront-id", default=None, help="Only publish products of this storefront.")
    parser.add_argument("--limit", type=int, default=100, help="Maximum number of products per storefront.")
    args = parser.parse_args()
    main(storefront_id=args.storefront_id, limit=args.limit)
