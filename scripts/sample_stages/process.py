#!/usr/bin/env python3
"""Stand-in database stage: reports how many enriched products it saved."""

import argparse
import json
import sys
from pathlib import Path


def main() -> int:
    parser = argparse.ArgumentParser(description="Sample process stage")
    parser.add_argument("--output-dir", type=Path, default=Path("sample_output"))
    parser.add_argument("--exit-code", type=int, default=0)
    args = parser.parse_args()

    source = args.output_dir / "enriched.json"
    if not source.exists():
        print(f"Missing input file: {source}", file=sys.stderr, flush=True)
        return 3

    products = json.loads(source.read_text())

    if args.exit_code:
        print("Database write failed", file=sys.stderr, flush=True)
        return args.exit_code

    print(f"Saved {len(products)} products", flush=True)
    return 0


if __name__ == "__main__":
    sys.exit(main())
