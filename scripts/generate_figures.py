"""Generate all slide figures from experiment outputs.

Requires:
  experiments/cohort.tsv          -- experiment_shrinkage.py
  experiments/shrinkage.json      -- experiment_shrinkage.py
  experiments/leakage_runs.json   -- experiment_leakage.py

Usage:
    uv run python scripts/generate_figures.py

Output:
    slides/figures/fig_trajectories.png
    slides/figures/fig_shrinkage.png
    slides/figures/fig_cv_schemes.png
    slides/figures/fig_leakage.png
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure scripts/ is on the path when called directly
sys.path.insert(0, str(Path(__file__).resolve().parent))

import matplotlib

matplotlib.use("Agg")

from figures import (
    generate_cv_schemes,
    generate_leakage,
    generate_shrinkage,
    generate_trajectories,
)
from figures._shared import EXPERIMENTS_DIR, FIG_DIR

_COHORT_TSV = EXPERIMENTS_DIR / "cohort.tsv"
_SHRINKAGE_JSON = EXPERIMENTS_DIR / "shrinkage.json"
_RUNS_JSON = EXPERIMENTS_DIR / "leakage_runs.json"


def main() -> None:
    """Generate every figure; each one is skipped when its input is missing."""
    FIG_DIR.mkdir(parents=True, exist_ok=True)
    print("Generating slide figures...")

    print("Figure 1: Subject trajectories")
    generate_trajectories(_COHORT_TSV, FIG_DIR)

    print("Figure 2: Shrinkage")
    generate_shrinkage(_SHRINKAGE_JSON, FIG_DIR)

    print("Figure 3: Cross-validation fold maps")
    generate_cv_schemes(_COHORT_TSV, FIG_DIR)

    print("Figure 4: RMSE by resampling scheme")
    generate_leakage(_RUNS_JSON, FIG_DIR)

    print("Done.")


if __name__ == "__main__":
    main()
