"""Example longitudinal datasets fetched from the Rdatasets CSV mirror."""

from __future__ import annotations

import sys
from pathlib import Path

import pandas as pd
import requests

from .cohort import validate_cohort

RDATASETS_BASE = "https://vincentarelbundock.github.io/Rdatasets/csv"

# Column mappings into the cohort schema plus the formula each dataset is modelled with.
KNOWN_DATASETS = {
    "sleepstudy": {
        "package": "lme4",
        "item": "sleepstudy",
        "columns": {"Subject": "subject", "Days": "time", "Reaction": "score"},
        "formula": "score ~ time",
    },
}


def runs_label(dataset: str) -> str:
    """What the repeated runs of the leakage experiment are, for headings and captions."""
    if dataset == "simulated":
        return "simulated cohorts"
    return f"resampling seeds on {dataset}"


def rdataset_url(package: str, item: str) -> str:
    return f"{RDATASETS_BASE}/{package}/{item}.csv"


def fetch_rdataset(package: str, item: str, cache_dir: Path, timeout: float = 30.0) -> Path:
    """Download ``package::item`` as CSV into *cache_dir* and return the path.

    An existing cached file is returned without any request.

    Raises:
        requests.HTTPError: If the mirror answers with an error status.
    """
    cache_dir.mkdir(parents=True, exist_ok=True)
    path = cache_dir / f"{package}_{item}.csv"
    if path.exists():
        return path

    url = rdataset_url(package, item)
    print(f"Downloading {package}::{item} from {url}", file=sys.stderr)
    resp = requests.get(url, timeout=timeout)
    resp.raise_for_status()
    tmp = path.with_suffix(".csv.part")
    tmp.write_bytes(resp.content)
    tmp.replace(path)
    print(f"  Saved {path} ({len(resp.content)} bytes)", file=sys.stderr)
    return path


def load_known_dataset(name: str, cache_dir: Path) -> tuple[pd.DataFrame, str]:
    """Fetch a dataset from ``KNOWN_DATASETS`` and return (cohort, formula)."""
    try:
        entry = KNOWN_DATASETS[name]
    except KeyError:
        known = ", ".join(sorted(KNOWN_DATASETS))
        raise ValueError(f"unknown dataset {name!r} (known: {known})") from None
    path = fetch_rdataset(entry["package"], entry["item"], cache_dir)
    frame = pd.read_csv(path).rename(columns=entry["columns"])
    return validate_cohort(frame), entry["formula"]
