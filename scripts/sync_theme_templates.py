from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from landingkit.config import settings  # noqa: E402
from landingkit.db import init_db  # noqa: E402
from landingkit.main import load_template_files, shopify_api  # noqa: E402


def main(storefront_id: str, templates_dir: Path) -> None:
    init_db()
    files = load_template_files(templates_dir)
    print(f"Uploading {len(files)} template files from {templates_dir}")
    result = asyncio.run(shopify_api.sync_theme_templates(storefront_id, files))
    for item in result.results:
        marker = "ok" if item["success"] else "fail"
        suffix = f": {item['error']}" if item["error"] else ""
        print(f"  [{marker}] {item['file']}{suffix}")
    print(f"Theme {result.theme_id}: {'all files synced' if result.success else 'some files failed'}")
    if not result.success:
        raise SystemExit(1)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Push the local landing templates to a storefront's main theme.")
    parser.add_argument("storefront_id", help="Storefront id as stored in the storefronts table.")
    parser.add_argument(
        "--templates-dir",
        type=Path,
        default=settings.LANDINGKIT_TEMPLATES_DIR,
        help="Directory whose files are uploaded as theme assets, keyed by relative path.",
    )
    args = parser.parse_args()
    main(storefront_id=args.storefront_id, templates_dir=args.templates_dir)
