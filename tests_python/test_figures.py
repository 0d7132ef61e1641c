"""Figure generators render from small synthetic experiment outputs."""

from __future__ import annotations

import json
from pathlib import Path

import numpy as np

from experiment_common import write_json
from experiment_shrinkage import run_shrinkage
from figures import generate_cv_schemes, generate_leakage, generate_shrinkage, generate_trajectories
from figures.fig_cv_schemes import fold_grid
from multilevel_leakage import CohortConfig, ModelSpec, simulate_cohort

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_cohort(tmp_path: Path) -> Path:
    frame = simulate_cohort(CohortConfig(n_subjects=14, n_visits=5), seed=0)
    path = tmp_path / "cohort.tsv"
    frame.to_csv(path, sep="\t", index=False)
    return path


def _write_runs(tmp_path: Path, n_seeds: int = 6) -> Path:
    rng = np.random.default_rng(1)
    runs = []
    for seed in range(n_seeds):
        base = 3.0 + rng.normal(0, 0.2)
        runs.append(
            {
                "seed": seed,
                "in_sample": {"conditional_rmse": base - 0.5, "marginal_rmse": base + 3.0},
                "schemes": {
                    "random_kfold": {"rmse": base},
                    "grouped_kfold": {"rmse": base + 2.0},
                    "loso": {"rmse": base + 2.1},
                },
            }
        )
    path = tmp_path / "leakage_runs.json"
    path.write_text(json.dumps({"runs": runs}))
    return path


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


def test_trajectories_figure(tmp_path: Path):
    out = generate_trajectories(_write_cohort(tmp_path), tmp_path / "figs")
    assert out is not None and out.exists()
    assert out.name == "fig_trajectories.png"


def test_shrinkage_figure(tmp_path: Path):
    frame = simulate_cohort(CohortConfig(n_subjects=14, n_visits=5), seed=2)
    path = tmp_path / "shrinkage.json"
    write_json(path, run_shrinkage(frame, ModelSpec()))
    out = generate_shrinkage(path, tmp_path / "figs")
    assert out is not None and out.exists()


def test_cv_schemes_figure(tmp_path: Path):
    out = generate_cv_schemes(_write_cohort(tmp_path), tmp_path / "figs", n_subjects=8)
    assert out is not None and out.exists()


def test_leakage_figure(tmp_path: Path):
    out = generate_leakage(_write_runs(tmp_path), tmp_path / "figs")
    assert out is not None and out.exists()


def test_missing_inputs_are_skipped(tmp_path: Path):
    missing = tmp_path / "missing.json"
    assert generate_trajectories(missing, tmp_path) is None
    assert generate_shrinkage(missing, tmp_path) is None
    assert generate_cv_schemes(missing, tmp_path) is None
    assert generate_leakage(missing, tmp_path) is None
    assert not list(tmp_path.glob("*.png"))


def test_fold_grid_loso_assigns_one_fold_per_subject():
    frame = simulate_cohort(CohortConfig(n_subjects=6, n_visits=4, dropout_rate=0.0), seed=0)
    grid = fold_grid(frame, "loso", n_splits=5, seed=0)
    assert grid.shape == (6, 4)
    for row in grid:
        assert len(set(row)) == 1
    row_wise = fold_grid(frame, "random_kfold", n_splits=4, seed=0)
    assert not np.isnan(row_wise).any()
    assert any(len(set(row)) > 1 for row in row_wise)
