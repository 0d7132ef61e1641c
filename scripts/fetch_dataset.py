"""Download an example longitudinal dataset from the Rdatasets mirror.

Usage:
    python scripts/fetch_dataset.py sleepstudy
    python scripts/fetch_dataset.py --package nlme --item Orthodont
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

import requests

from experiment_common import experiment_output_dir, log
from multilevel_leakage.datasets import KNOWN_DATASETS, fetch_rdataset


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("name", nargs="?", choices=sorted(KNOWN_DATASETS))
    parser.add_argument("--package", default=None)
    parser.add_argument("--item", default=None)
    parser.add_argument("--cache-dir", type=Path, default=None)
    args = parser.parse_args()

    if args.name:
        package = KNOWN_DATASETS[args.name]["package"]
        item = KNOWN_DATASETS[args.name]["item"]
    elif args.package and args.item:
        package, item = args.package, args.item
    else:
        parser.error("give a known dataset name or both --package and --item")

    cache_dir = args.cache_dir or experiment_output_dir() / "data"
    try:
        path = fetch_rdataset(package, item, cache_dir)
    except requests.RequestException as exc:
        print(f"ERROR: download of {package}::{item} failed: {exc}", file=sys.stderr)
        return 1
    log(f"{package}::{item} available at {path}")
    print(path)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
