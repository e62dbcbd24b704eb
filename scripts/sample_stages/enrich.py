#!/usr/bin/env python3
"""Stand-in enrichment stage: annotates scraped products in place."""

import argparse
import json
import sys
from pathlib import Path


def main() -> int:
    parser = argparse.ArgumentParser(description="Sample enrich stage")
    parser.add_argument("--output-dir", type=Path, default=Path("sample_output"))
    parser.add_argument("--exit-code", type=int, default=0)
    args = parser.parse_args()

    if args.exit_code:
        print("Enrichment service unavailable", file=sys.stderr, flush=True)
        return args.exit_code

    source = args.output_dir / "scraped.json"
    if not source.exists():
        print(f"Missing input file: {source}", file=sys.stderr, flush=True)
        return 3

    products = json.loads(source.read_text())
    for product in products:
        product["category"] = "general"
    (args.output_dir / "enriched.json").write_text(json.dumps(products, indent=2))

    print(f"Enriched {len(products)} products", flush=True)
    return 0


if __name__ == "__main__":
    sys.exit(main())
