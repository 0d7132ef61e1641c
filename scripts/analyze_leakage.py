"""Statistical analysis of the leakage experiment.

Compares per-seed RMSEs of the in-sample fit and each cross-validation scheme
with paired Wilcoxon signed-rank tests, Cliff's delta, bootstrap CIs of the
mean difference, and Holm-Bonferroni corrected p-values.

Usage:
    uv run python scripts/analyze_leakage.py experiments/leakage_runs.json \
        > experiments/leakage_statistics.json
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

import numpy as np

from analyses.statistics import distribution_stats, holm_bonferroni, paired_comparison
from experiment_common import experiment_output_dir, log

# (reference, candidate): the candidate's RMSE minus the reference's is reported.
COMPARISONS = [
    ("in_sample", "random_kfold"),
    ("random_kfold", "grouped_kfold"),
    ("random_kfold", "loso"),
    ("in_sample", "loso"),
]


def extract_rmse(runs: list[dict], scheme: str) -> np.ndarray:
    """Per-seed RMSE for a scheme; ``in_sample`` reads the conditional residual RMSE."""
    if scheme == "in_sample":
        return np.array([r["in_sample"]["conditional_rmse"] for r in runs], dtype=float)
    return np.array(
        [r["schemes"][scheme]["rmse"] for r in runs if scheme in r["schemes"]], dtype=float
    )


def load_runs(path: Path) -> dict:
    """Read a leakage_runs.json payload; unreadable or invalid JSON raises ValueError."""
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as exc:
        raise ValueError(f"invalid JSON in {path}: {exc}") from exc
    except OSError as exc:
        raise ValueError(f"failed to read {path}: {exc}") from exc


def analyze(payload: dict, alpha: float = 0.05) -> dict:
    """Build the statistics report from a leakage_runs.json payload."""
    runs = payload.get("runs", [])
    if not runs:
        raise ValueError("no runs in leakage results")
    schemes = list(payload.get("schemes") or runs[0]["schemes"].keys())
    in_sample = extract_rmse(runs, "in_sample")

    per_scheme = {"in_sample": {"rmse": distribution_stats(in_sample)}}
    for scheme in schemes:
        values = extract_rmse(runs, scheme)
        leak = [r["schemes"][scheme]["leakage_fraction"] for r in runs if scheme in r["schemes"]]
        optimism = None
        if len(values) == len(in_sample):
            optimism = float(np.mean(values - in_sample))
        per_scheme[scheme] = {
            "rmse": distribution_stats(values),
            "leakage_fraction_mean": float(np.mean(leak)) if leak else 0.0,
            "optimism_vs_in_sample": optimism,
        }

    comparisons = []
    raw_p = []
    for ref, cand in COMPARISONS:
        if ref not in per_scheme or cand not in per_scheme:
            continue
        result = paired_comparison(extract_rmse(runs, ref), extract_rmse(runs, cand))
        result["comparison"] = f"{ref} vs {cand}"
        result["reference"] = ref
        result["candidate"] = cand
        comparisons.append(result)
        raw_p.append(result["p_raw"])

    testable = [i for i, p in enumerate(raw_p) if p is not None]
    corrected = holm_bonferroni([raw_p[i] for i in testable])
    for comp in comparisons:
        comp["p_corrected"] = None
        comp["significant"] = False
    for i, p_corr in zip(testable, corrected, strict=True):
        comparisons[i]["p_corrected"] = round(p_corr, 6)
        comparisons[i]["significant"] = bool(p_corr < alpha)

    headline = {"in_sample_rmse": round(float(np.median(in_sample)), 4)}
    for scheme in schemes:
        headline[f"{scheme}_rmse"] = round(per_scheme[scheme]["rmse"]["median"], 4)
    if "random_kfold" in schemes and "loso" in schemes:
        headline["loso_over_random_kfold"] = round(
            per_scheme["loso"]["rmse"]["median"] / per_scheme["random_kfold"]["rmse"]["median"], 4
        )

    return {
        "experiment": "leakage_cv_statistics",
        "dataset": payload.get("dataset", "simulated"),
        "n_seeds": len(runs),
        "n_splits": payload.get("n_splits"),
        "alpha": alpha,
        "correction": "holm_bonferroni",
        "test": "wilcoxon_signed_rank",
        "per_scheme": per_scheme,
        "comparisons": comparisons,
        "headline": headline,
    }


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("runs", type=Path, nargs="?", default=None)
    parser.add_argument("--out", type=Path, default=None, help="also write the report here")
    parser.add_argument("--alpha", type=float, default=0.05)
    args = parser.parse_args()

    path = args.runs or experiment_output_dir() / "leakage_runs.json"
    if not path.exists():
        print(f"ERROR: leakage results not found: {path}", file=sys.stderr)
        print("  Run: uv run python scripts/experiment_leakage.py", file=sys.stderr)
        return 1
    try:
        report = analyze(load_runs(path), alpha=args.alpha)
    except ValueError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    text = json.dumps(report, indent=2)
    print(text)
    if args.out:
        args.out.parent.mkdir(parents=True, exist_ok=True)
        args.out.write_text(text + "\n", encoding="utf-8")

    log(f"Seeds: {report['n_seeds']}")
    for name, block in report["per_scheme"].items():
        log(f"  {name:14s} median RMSE={block['rmse']['median']:.3f}")
    for comp in report["comparisons"]:
        status = "SIG" if comp["significant"] else "n.s."
        p = comp["p_corrected"]
        p_txt = f"{p:.6f}" if p is not None else "n/a"
        log(f"  [{status}] {comp['comparison']}: p_corr={p_txt}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
