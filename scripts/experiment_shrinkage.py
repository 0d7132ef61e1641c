"""Shrinkage experiment: no pooling vs partial pooling on one cohort.

Fits complete-pooling OLS, per-subject lines, and the mixed model to a single
cohort and records the per-subject estimates used by the shrinkage slides.

Usage:
    uv run python scripts/experiment_shrinkage.py
    uv run python scripts/experiment_shrinkage.py --seed 3
    uv run python scripts/experiment_shrinkage.py --dataset sleepstudy

Output:
    experiments/cohort.tsv       -- the cohort (long format)
    experiments/shrinkage.json   -- fits, variance components, per-subject table
"""

from __future__ import annotations

import argparse
import math
import sys
from dataclasses import asdict
from pathlib import Path

import pandas as pd

from experiment_common import (
    SHOWCASE_SEED,
    experiment_output_dir,
    load_cohort,
    log,
    make_cohort_config,
    make_model_spec,
    safe_path,
    write_json,
)
from multilevel_leakage import (
    ModelSpec,
    cohort_summary,
    fit_complete_pooling,
    fit_mixed_model,
    fit_no_pooling,
    in_sample_error,
    shrinkage_table,
    true_subject_effects,
    variance_components,
)
from multilevel_leakage.datasets import KNOWN_DATASETS, load_known_dataset


def _clean(value):
    if isinstance(value, float) and math.isnan(value):
        return None
    return value


def _records(table: pd.DataFrame) -> list[dict]:
    rows = []
    for subject, row in table.iterrows():
        rec = {"subject": str(subject), "n_obs": int(row["n_obs"])}
        for col, val in row.drop("n_obs").items():
            rec[col] = _clean(round(float(val), 4))
        rows.append(rec)
    return rows


def shrinkage_summary(table: pd.DataFrame) -> dict:
    """Spread of no-pooling vs partial-pooling estimates across subjects."""
    slopes = table.dropna(subset=["no_pool_slope"])
    dist_np = (slopes["no_pool_slope"] - slopes["population_slope"]).abs()
    dist_pp = (slopes["partial_slope"] - slopes["population_slope"]).abs()
    return {
        "n_subjects": int(len(table)),
        "n_undefined_slope": int(table["no_pool_slope"].isna().sum()),
        "intercept_sd_no_pool": float(table["no_pool_intercept"].std(ddof=1)),
        "intercept_sd_partial": float(table["partial_intercept"].std(ddof=1)),
        "slope_sd_no_pool": float(slopes["no_pool_slope"].std(ddof=1)),
        "slope_sd_partial": float(slopes["partial_slope"].std(ddof=1)),
        "mean_slope_deviation_no_pool": float(dist_np.mean()),
        "mean_slope_deviation_partial": float(dist_pp.mean()),
        "mean_shrinkage_distance": float(slopes["shrinkage_distance"].mean()),
    }


def run_shrinkage(frame: pd.DataFrame, spec: ModelSpec) -> dict:
    """Fit all three pooling strategies to *frame* and collect the results."""
    pooled = fit_complete_pooling(frame, spec)
    no_pool = fit_no_pooling(frame, spec)
    mixed = fit_mixed_model(frame, spec)
    table = shrinkage_table(frame, mixed, no_pool)

    return {
        "formula": spec.formula,
        "reml": spec.reml,
        "cohort": cohort_summary(frame),
        "complete_pooling": {str(k): round(float(v), 4) for k, v in pooled.params.items()},
        "fixed_effects": {k: round(v, 4) for k, v in mixed.fixed_effects.items()},
        "variance_components": {
            k: round(v, 4) for k, v in variance_components(mixed).items()
        },
        "converged": mixed.converged,
        "warnings": mixed.warnings,
        "in_sample": {k: round(v, 4) for k, v in in_sample_error(mixed, frame).items()},
        "shrinkage": {
            k: round(v, 4) if isinstance(v, float) else v
            for k, v in shrinkage_summary(table).items()
        },
        "subjects": _records(table),
    }


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--seed", type=int, default=SHOWCASE_SEED)
    parser.add_argument("--csv", type=Path, default=None, help="cohort CSV instead of simulation")
    parser.add_argument("--dataset", choices=sorted(KNOWN_DATASETS), default=None)
    parser.add_argument("--out-dir", type=Path, default=None)
    args = parser.parse_args()

    out_dir = args.out_dir or experiment_output_dir()
    out_dir.mkdir(parents=True, exist_ok=True)
    config = make_cohort_config()

    if args.dataset:
        frame, formula = load_known_dataset(args.dataset, out_dir / "data")
        spec = make_model_spec({"formula": formula})
        source = args.dataset
    else:
        spec = make_model_spec()
        frame = load_cohort(args.seed, args.csv, spec, config)
        source = str(args.csv) if args.csv else "simulated"

    summary = cohort_summary(frame)
    log(
        f"Cohort ({source}): {summary['n_subjects']} subjects, "
        f"{summary['n_observations']} observations"
    )

    result = run_shrinkage(frame, spec)
    result = {"experiment": "shrinkage", "dataset": source, "seed": args.seed, **result}
    if source == "simulated":
        truth = true_subject_effects(config, args.seed)
        result["cohort_config"] = asdict(config)
        result["true_effects"] = [
            {
                "subject": r.subject,
                "intercept": round(float(r.intercept), 4),
                "slope": round(float(r.slope), 4),
            }
            for r in truth.itertuples(index=False)
        ]

    frame.to_csv(safe_path(out_dir, "cohort.tsv"), sep="\t", index=False)
    write_json(safe_path(out_dir, "shrinkage.json"), result)

    vc = result["variance_components"]
    sh = result["shrinkage"]
    log(f"  converged={result['converged']}  ICC={vc['icc']:.3f}  sigma={vc['sd_residual']:.3f}")
    log(
        f"  slope SD: no pooling={sh['slope_sd_no_pool']:.3f}  "
        f"partial pooling={sh['slope_sd_partial']:.3f}"
    )
    log(f"  Saved {out_dir / 'shrinkage.json'}")


if __name__ == "__main__":
    try:
        main()
    except ValueError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(1)
