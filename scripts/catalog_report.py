#!/usr/bin/env python3
"""Fetch (or read) the product sheet and report which rows normalize and which are dropped."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Dict, Optional

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from services.csv_source import parse_csv, resolve_csv_url  # noqa: E402
from services.product_normalizer import normalize_rows  # noqa: E402
from services.product_service import load_products_from_source  # noqa: E402
from services.storefront_errors import StorefrontError  # noqa: E402


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    src = parser.add_mutually_exclusive_group()
    src.add_argument("--url", default=None, help="Published sheet CSV URL (defaults to STOREFRONT_CSV_URL).")
    src.add_argument("--file", default=None, help="Local CSV export to normalize instead of fetching.")
    parser.add_argument("--out", default=None, help="Write the JSON report here instead of stdout.")
    parser.add_argument("--include-products", action="store_true", help="Include normalized products in the report.")
    return parser.parse_args(argv)


def build_report(report, source: str, include_products: bool) -> Dict[str, object]:
    out: Dict[str, object] = {"source": source, **report.as_dict()}
    if include_products:
        out["products"] = [p.model_dump(mode="json", by_alias=True) for p in report.products]
    return out


async def run(url: Optional[str], file: Optional[str]):
    if file:
        text = Path(file).read_text(encoding="utf-8-sig")
        return normalize_rows(parse_csv(text)), file
    csv_url, _ = resolve_csv_url(url)
    return await load_products_from_source(csv_url), csv_url


def main(argv=None) -> int:
    args = parse_args(argv)
    try:
        report, source = asyncio.run(run(args.url, args.file))
    except StorefrontError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"error: cannot read {args.file}: {e}", file=sys.stderr)
        return 1

    payload = json.dumps(build_report(report, source, args.include_products), indent=2, ensure_ascii=False)
    if args.out:
        out_path = Path(args.out)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(payload + "\n", encoding="utf-8")
        print(f"Wrote {out_path} ({len(report.products)} products, {report.dropped_count} dropped)")
    else:
        print(payload)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
