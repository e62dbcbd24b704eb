#!/usr/bin/env python3
"""Stand-in scraper stage for local runs and end-to-end tests.

Prints a seller count and writes a small JSON file of scraped products into
the output directory.

Usage:
    python scripts/sample_stages/scrape.py --sellers 3 --products-per-seller 4
    python scripts/sample_stages/scrape.py --require-login   # prints a QR code prompt
    python scripts/sample_stages/scrape.py --exit-code 2     # simulated failure
"""

import argparse
import json
import sys
import time
from pathlib import Path


def main() -> int:
    parser = argparse.ArgumentParser(description="Sample scrape stage")
    parser.add_argument("--sellers", type=int, default=3)
    parser.add_argument("--products-per-seller", type=int, default=4)
    parser.add_argument("--output-dir", type=Path, default=Path("sample_output"))
    parser.add_argument("--delay", type=float, default=0.0, help="Seconds to sleep per seller")
    parser.add_argument("--require-login", action="store_true")
    parser.add_argument("--exit-code", type=int, default=0)
    args = parser.parse_args()

    print(f"Loading seller list... found {args.sellers} seller(s)", flush=True)

    if args.require_login:
        print("Session expired. Please scan QR code with the mobile app to continue.", flush=True)
        return 0

    products = []
    for seller in range(1, args.sellers + 1):
        if args.delay:
            time.sleep(args.delay)
        for item in range(1, args.products_per_seller + 1):
            products.append({"seller": f"seller-{seller}", "sku": f"S{seller}-{item:03d}"})
        print(f"Scraped seller-{seller}: {args.products_per_seller} products", flush=True)

    if args.exit_code:
        print("Scraper crashed while paginating", file=sys.stderr, flush=True)
        return args.exit_code

    args.output_dir.mkdir(parents=True, exist_ok=True)
    (args.output_dir / "scraped.json").write_text(json.dumps(products, indent=2))
    print(f"Wrote {len(products)} products to {args.output_dir / 'scraped.json'}", flush=True)
    return 0


if __name__ == "__main__":
    sys.exit(main())
