"""One-off script to inspect a SUUMO listing page when field extraction drifts.

    python scripts/debug_listing_html.py https://suumo.jp/chintai/jnc_000105006617/ --parse
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]


def main() -> int:
    parser = argparse.ArgumentParser(description="Dump the structure of a SUUMO listing page as JSON.")
    parser.add_argument("url", help="Listing detail URL (suumo.jp)")
    parser.add_argument("--parse", action="store_true", help="Also print the parsed PropertyRecord")
    parser.add_argument("--analyze", action="store_true", help="Also run geocoding / elevation / parking")
    parser.add_argument("--verbose", action="store_true", help="DEBUG logging (shows failed strategies)")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    sys.path.insert(0, str(ROOT))
    from backend.src.enrich import analyze_listing  # noqa: PLC0415
    from backend.src.errors import TransportError  # noqa: PLC0415
    from backend.src.listing_parser import describe_listing_html, fetch_listing_markup, parse_listing_html  # noqa: PLC0415

    try:
        markup = fetch_listing_markup(args.url)
    except TransportError as e:
        print("Error:", e, file=sys.stderr)
        return 1

    out = {"structure": describe_listing_html(markup)}
    if args.parse or args.analyze:
        record = parse_listing_html(markup, args.url)
        out["property"] = record.to_dict()
        if args.analyze:
            out["analysis"] = analyze_listing(record).to_dict()

    print(json.dumps(out, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
