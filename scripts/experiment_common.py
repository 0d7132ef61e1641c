"""Shared utilities for experiment scripts.

Provides configuration loading, logging, cohort construction, and TSV output
helpers used across experiment_shrinkage.py and experiment_leakage.py.
"""

import json
import sys
from pathlib import Path

import pandas as pd

from multilevel_leakage import CohortConfig, ModelSpec, load_cohort_csv, simulate_cohort

PROJECT_ROOT = Path(__file__).resolve().parent.parent
_CONFIGS_DIR = PROJECT_ROOT / "configs"


def load_config(name: str) -> dict:
    """Load configs/<name>.json with metadata keys (leading '_') stripped."""
    path = _CONFIGS_DIR / f"{name}.json"
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as exc:
        raise ValueError(f"invalid JSON in {path}: {exc}") from exc
    return {k: v for k, v in data.items() if not k.startswith("_")}


# Baseline parameters, loaded from configs/ at import time.
COHORT_BASELINE = load_config("cohort_baseline")
MODEL_BASELINE = load_config("model_spec")

# Seeds 0-49 are the talk's replication set; seed 7 is the cohort shown on the slides.
DEFAULT_SEEDS = list(range(50))
SHOWCASE_SEED = 7
DEFAULT_N_SPLITS = 5

TSV_COLUMNS = [
    "seed",
    "scheme",
    "rmse",
    "n_folds",
    "leakage_fraction",
    "converged_folds",
    "n_subjects",
    "n_observations",
]


def log(msg: str) -> None:
    """Write a message to stderr for progress reporting."""
    print(msg, file=sys.stderr)


def make_cohort_config(overrides: dict | None = None) -> CohortConfig:
    """Build a CohortConfig from the baseline with optional overrides."""
    return CohortConfig.from_dict({**COHORT_BASELINE, **(overrides or {})})


def make_model_spec(overrides: dict | None = None) -> ModelSpec:
    """Build a ModelSpec from the baseline with optional overrides."""
    return ModelSpec.from_dict({**MODEL_BASELINE, **(overrides or {})})


def load_cohort(seed: int, csv_path: Path | None, spec: ModelSpec, config: CohortConfig) -> pd.DataFrame:
    """Simulate a cohort for *seed*, or load *csv_path* when given."""
    if csv_path is not None:
        return load_cohort_csv(csv_path, required=spec.formula_columns())
    return simulate_cohort(config, seed)


def print_header() -> None:
    """Print TSV column header to stdout."""
    print("\t".join(TSV_COLUMNS))


def print_row(seed: int, scheme: str, row: dict) -> None:
    """Print a single result row as TSV to stdout."""
    vals = [
        str(seed),
        scheme,
        f"{row['rmse']:.4f}",
        str(row.get("n_folds", 0)),
        f"{row.get('leakage_fraction', 0.0):.4f}",
        str(row.get("converged_folds", 0)),
        str(row["n_subjects"]),
        str(row["n_observations"]),
    ]
    print("\t".join(vals))


def safe_path(base_dir: Path, *parts: str) -> Path:
    """Safely join path parts and ensure the result is within base_dir.

    Args:
        base_dir: The base directory that the resulting path must be under.
        *parts: Path components to join to base_dir.

    Returns:
        The resolved Path object.

    Raises:
        ValueError: If the resulting path escapes base_dir.
    """
    base_resolved = base_dir.resolve()
    target = base_resolved.joinpath(*parts).resolve()
    if not target.is_relative_to(base_resolved):
        raise ValueError(f"Security error: path {target} escapes base directory {base_resolved}")
    return target


def experiment_output_dir() -> Path:
    """Return the experiments output directory, creating it if needed."""
    out_dir = PROJECT_ROOT / "experiments"
    out_dir.mkdir(exist_ok=True)
    return out_dir


def write_json(path: Path, payload) -> None:
    """Write *payload* as indented JSON, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)
