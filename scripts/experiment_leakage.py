"""Leakage experiment: in-sample vs row-wise vs subject-wise cross-validation.

For every seed a cohort is simulated (or a fixed cohort is reshuffled), the
mixed model is fitted to all rows for the in-sample residual error, and then
cross-validated under each resampling scheme. One TSV row per seed and scheme
is streamed to stdout.

Usage:
    uv run python scripts/experiment_leakage.py > experiments/leakage_runs.tsv
    uv run python scripts/experiment_leakage.py --seeds 0-9 --jobs 4
    uv run python scripts/experiment_leakage.py --dataset sleepstudy --seeds 0-19

Output:
    experiments/leakage_runs.json      -- per-seed results
    experiments/leakage_manifest.json  -- run manifest
"""

from __future__ import annotations

import argparse
import sys
import time
from dataclasses import asdict
from pathlib import Path

import pandas as pd

from experiment_common import (
    DEFAULT_N_SPLITS,
    DEFAULT_SEEDS,
    experiment_output_dir,
    load_cohort,
    log,
    make_cohort_config,
    make_model_spec,
    print_header,
    print_row,
    safe_path,
    write_json,
)
from experiment_manifest import write_manifest
from multilevel_leakage import SCHEMES, ModelSpec, cohort_summary, compare_schemes
from multilevel_leakage.datasets import KNOWN_DATASETS, load_known_dataset


def parse_seeds(text: str) -> list[int]:
    """Parse '0-9', '1,4,7' or a mix such as '0-4,10'."""
    seeds: list[int] = []
    for part in text.split(","):
        part = part.strip()
        if not part:
            continue
        if "-" in part:
            lo, hi = part.split("-", 1)
            if int(hi) < int(lo):
                raise ValueError(f"invalid seed range: {part}")
            seeds.extend(range(int(lo), int(hi) + 1))
        else:
            seeds.append(int(part))
    if not seeds:
        raise ValueError(f"no seeds in {text!r}")
    return seeds


def run_seed(
    frame: pd.DataFrame,
    spec: ModelSpec,
    seed: int,
    schemes: list[str],
    n_splits: int,
    n_jobs: int = 1,
) -> dict:
    """Compare in-sample and cross-validated error on one cohort."""
    comparison = compare_schemes(
        frame, spec, schemes=schemes, n_splits=n_splits, seed=seed, n_jobs=n_jobs
    )
    summary = cohort_summary(frame)
    return {
        "seed": seed,
        "n_subjects": summary["n_subjects"],
        "n_observations": summary["n_observations"],
        "converged": comparison["converged"],
        "in_sample": comparison["in_sample"],
        "schemes": {name: cv.to_dict() for name, cv in comparison["schemes"].items()},
    }


def stream_run(run: dict) -> None:
    """Print one TSV row for the in-sample fit and one per scheme."""
    size = {"n_subjects": run["n_subjects"], "n_observations": run["n_observations"]}
    print_row(run["seed"], "in_sample", {"rmse": run["in_sample"]["conditional_rmse"], **size})
    for name, cv in run["schemes"].items():
        print_row(run["seed"], name, {**cv, **size})


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--seeds", type=parse_seeds, default=DEFAULT_SEEDS)
    parser.add_argument("--n-splits", type=int, default=DEFAULT_N_SPLITS)
    parser.add_argument("--schemes", nargs="+", choices=SCHEMES, default=list(SCHEMES))
    parser.add_argument("--jobs", type=int, default=1, help="parallel folds (joblib n_jobs)")
    parser.add_argument("--csv", type=Path, default=None, help="fixed cohort CSV")
    parser.add_argument("--dataset", choices=sorted(KNOWN_DATASETS), default=None)
    parser.add_argument("--out-dir", type=Path, default=None)
    args = parser.parse_args()

    out_dir = args.out_dir or experiment_output_dir()
    out_dir.mkdir(parents=True, exist_ok=True)
    config = make_cohort_config()
    fixed = None
    if args.dataset:
        fixed, formula = load_known_dataset(args.dataset, out_dir / "data")
        spec = make_model_spec({"formula": formula})
        source = args.dataset
    else:
        spec = make_model_spec()
        source = str(args.csv) if args.csv else "simulated"

    log(f"Leakage experiment: {len(args.seeds)} seeds, schemes={args.schemes}, k={args.n_splits}")
    print_header()
    total_start = time.perf_counter()
    runs = []
    for seed in args.seeds:
        t0 = time.perf_counter()
        frame = fixed if fixed is not None else load_cohort(seed, args.csv, spec, config)
        run = run_seed(frame, spec, seed, args.schemes, args.n_splits, n_jobs=args.jobs)
        runs.append(run)
        stream_run(run)
        cv = "  ".join(f"{k}={v['rmse']:.3f}" for k, v in run["schemes"].items())
        log(
            f"  seed={seed:3d}  in_sample={run['in_sample']['conditional_rmse']:.3f}  {cv}"
            f"  {time.perf_counter() - t0:.1f}s"
        )

    write_json(
        safe_path(out_dir, "leakage_runs.json"),
        {
            "experiment": "leakage_cv",
            "dataset": source,
            "formula": spec.formula,
            "n_splits": args.n_splits,
            "schemes": args.schemes,
            "runs": runs,
        },
    )
    first_summary = {"n_subjects": runs[0]["n_subjects"], "n_observations": runs[0]["n_observations"]}
    write_manifest(
        safe_path(out_dir, "leakage_manifest.json"),
        experiment_name="leakage_cv",
        seeds=args.seeds,
        n_splits=args.n_splits,
        schemes=args.schemes,
        cohort_config=asdict(config),
        model_spec=asdict(spec),
        dataset=source,
        cohort_summary=first_summary,
    )
    log(f"Total time: {time.perf_counter() - total_start:.1f}s")


if __name__ == "__main__":
    try:
        main()
    except ValueError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(1)
