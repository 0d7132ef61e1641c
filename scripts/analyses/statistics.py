"""Statistical helpers for comparing per-seed RMSEs across resampling schemes."""

from __future__ import annotations

import numpy as np
from scipy import stats


def distribution_stats(arr: np.ndarray) -> dict:
    """Compute median, IQR, mean, and SD for an array."""
    arr = np.asarray(arr, dtype=float)
    if len(arr) == 0:
        return {"n": 0, "median": 0.0, "q25": 0.0, "q75": 0.0, "mean": 0.0, "std": 0.0}
    return {
        "n": int(len(arr)),
        "median": float(np.median(arr)),
        "q25": float(np.percentile(arr, 25)),
        "q75": float(np.percentile(arr, 75)),
        "mean": float(np.mean(arr)),
        "std": float(np.std(arr, ddof=1)) if len(arr) > 1 else 0.0,
    }


def cliffs_delta(a: np.ndarray, b: np.ndarray) -> float:
    """Cliff's delta: P(a > b) - P(a < b) over all pairs. Range [-1, 1]."""
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    if len(a) == 0 or len(b) == 0:
        return 0.0
    diff = a[:, None] - b[None, :]
    return float((np.sum(diff > 0) - np.sum(diff < 0)) / diff.size)


def bootstrap_cliffs_delta_ci(
    a: np.ndarray, b: np.ndarray, n_boot: int = 2000, alpha: float = 0.05, seed: int = 42
) -> tuple[float, float]:
    """Percentile bootstrap CI for Cliff's delta, resampling each group independently."""
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    na, nb = len(a), len(b)
    if na < 2 or nb < 2:
        return (0.0, 0.0)
    rng = np.random.default_rng(seed)
    boot = np.empty(n_boot)
    for i in range(n_boot):
        boot[i] = cliffs_delta(a[rng.integers(0, na, size=na)], b[rng.integers(0, nb, size=nb)])
    return (
        float(np.percentile(boot, 100 * alpha / 2)),
        float(np.percentile(boot, 100 * (1 - alpha / 2))),
    )


def bootstrap_mean_ci(
    values: np.ndarray, n_boot: int = 2000, alpha: float = 0.05, seed: int = 42
) -> tuple[float, float]:
    """Percentile bootstrap CI for the mean of *values*."""
    values = np.asarray(values, dtype=float)
    n = len(values)
    if n < 2:
        m = float(values[0]) if n else 0.0
        return (m, m)
    rng = np.random.default_rng(seed)
    means = values[rng.integers(0, n, size=(n_boot, n))].mean(axis=1)
    return (
        float(np.percentile(means, 100 * alpha / 2)),
        float(np.percentile(means, 100 * (1 - alpha / 2))),
    )


def holm_bonferroni(p_values: list[float]) -> list[float]:
    """Apply Holm-Bonferroni correction to a list of p-values.

    Returns corrected p-values in the original order.
    """
    n = len(p_values)
    if n == 0:
        return []
    order = np.argsort(p_values, kind="mergesort")
    corrected = [0.0] * n
    running = 0.0
    for rank, idx in enumerate(order):
        running = max(running, p_values[idx] * (n - rank))
        corrected[idx] = min(running, 1.0)
    return corrected


def paired_comparison(a: np.ndarray, b: np.ndarray) -> dict:
    """Wilcoxon signed-rank test of paired per-seed values a vs b.

    ``mean_diff`` is mean(b - a). All-zero differences give p = 1.
    """
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    if len(a) != len(b):
        raise ValueError(f"paired samples differ in length: {len(a)} vs {len(b)}")
    n = len(a)
    if n < 2:
        return {
            "n_pairs": n,
            "W": None,
            "p_raw": None,
            "mean_diff": None,
            "mean_diff_ci_lo": None,
            "mean_diff_ci_hi": None,
            "cliffs_delta": None,
            "cliffs_delta_ci_lo": None,
            "cliffs_delta_ci_hi": None,
        }
    diff = b - a
    if np.allclose(diff, 0.0):
        w_stat, p_raw = 0.0, 1.0
    else:
        w_stat, p_raw = stats.wilcoxon(b, a, alternative="two-sided")
    ci_lo, ci_hi = bootstrap_mean_ci(diff)
    cd_lo, cd_hi = bootstrap_cliffs_delta_ci(b, a)
    return {
        "n_pairs": n,
        "W": float(w_stat),
        "p_raw": float(p_raw),
        "mean_diff": float(np.mean(diff)),
        "mean_diff_ci_lo": ci_lo,
        "mean_diff_ci_hi": ci_hi,
        "cliffs_delta": cliffs_delta(b, a),
        "cliffs_delta_ci_lo": cd_lo,
        "cliffs_delta_ci_hi": cd_hi,
    }
