"""Cross-validation of the mixed model under row-wise and subject-wise splits.

Every fold refits the mixed model on the training rows and predicts the
held-out rows conditionally (fixed effects plus BLUP). Under row-wise K-fold
the held-out subject has usually been seen in training, so its BLUP carries
information the model would not have for a genuinely new subject. Under
subject-wise splits the BLUP is unavailable and the prediction reduces to the
marginal one.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from sklearn.metrics import mean_squared_error
from sklearn.model_selection import GroupKFold, KFold, LeaveOneGroupOut

from .models import ModelSpec, fit_mixed_model, predict_conditional, predict_marginal

SCHEMES = ("random_kfold", "grouped_kfold", "loso")

SCHEME_LABELS = {
    "in_sample": "In-sample (residual)",
    "random_kfold": "Row-wise K-fold",
    "grouped_kfold": "Subject-wise K-fold",
    "loso": "Leave-one-subject-out",
}


@dataclass
class CVResult:
    scheme: str
    fold_rmse: list[float]
    rmse: float
    leakage_fraction: float
    converged_folds: int
    predictions: np.ndarray = field(repr=False)

    @property
    def n_folds(self) -> int:
        return len(self.fold_rmse)

    def to_dict(self) -> dict:
        return {
            "scheme": self.scheme,
            "rmse": self.rmse,
            "fold_rmse": self.fold_rmse,
            "n_folds": self.n_folds,
            "leakage_fraction": self.leakage_fraction,
            "converged_folds": self.converged_folds,
        }


def rmse(observed, predicted) -> float:
    return float(np.sqrt(mean_squared_error(observed, predicted)))


def make_splits(
    frame: pd.DataFrame,
    scheme: str,
    n_splits: int = 5,
    seed: int = 0,
    group_col: str = "subject",
) -> list[tuple[np.ndarray, np.ndarray]]:
    """Return (train_idx, test_idx) position arrays for *scheme*.

    ``n_splits`` is ignored for ``loso``, which always yields one fold per subject.

    Raises:
        ValueError: For an unknown scheme or an impossible number of folds.
    """
    groups = frame[group_col].astype(str).to_numpy()
    n_groups = len(np.unique(groups))

    if scheme == "random_kfold":
        if not 2 <= n_splits <= len(frame):
            raise ValueError(f"random_kfold needs 2 <= n_splits <= {len(frame)}, got {n_splits}")
        splitter = KFold(n_splits=n_splits, shuffle=True, random_state=seed)
        return list(splitter.split(frame))
    if scheme == "grouped_kfold":
        if not 2 <= n_splits <= n_groups:
            raise ValueError(f"grouped_kfold needs 2 <= n_splits <= {n_groups}, got {n_splits}")
        return list(GroupKFold(n_splits=n_splits).split(frame, groups=groups))
    if scheme == "loso":
        if n_groups < 2:
            raise ValueError("loso needs at least 2 subjects")
        return list(LeaveOneGroupOut().split(frame, groups=groups))
    raise ValueError(f"unknown scheme {scheme!r} (expected one of {', '.join(SCHEMES)})")


def leakage_fraction(
    frame: pd.DataFrame, splits: list[tuple[np.ndarray, np.ndarray]], group_col: str = "subject"
) -> float:
    """Share of held-out rows whose subject also appears in the training rows."""
    groups = frame[group_col].astype(str).to_numpy()
    leaked = 0
    total = 0
    for train_idx, test_idx in splits:
        seen = np.isin(groups[test_idx], groups[train_idx])
        leaked += int(seen.sum())
        total += len(test_idx)
    return leaked / total if total else 0.0


def in_sample_error(fit, frame: pd.DataFrame) -> dict[str, float]:
    """Residual error of the full-data fit, with and without the BLUPs."""
    y = frame[fit.spec.outcome_col].to_numpy(dtype=float)
    return {
        "conditional_rmse": rmse(y, predict_conditional(fit, frame)),
        "marginal_rmse": rmse(y, predict_marginal(fit, frame)),
    }


def _fit_fold(frame: pd.DataFrame, spec: ModelSpec, train_idx, test_idx):
    fit = fit_mixed_model(frame.iloc[train_idx], spec)
    return predict_conditional(fit, frame.iloc[test_idx]), fit.converged


def cross_validate(
    frame: pd.DataFrame,
    spec: ModelSpec,
    scheme: str,
    n_splits: int = 5,
    seed: int = 0,
    n_jobs: int = 1,
) -> CVResult:
    """Refit per fold and score conditional predictions on the held-out rows."""
    splits = make_splits(frame, scheme, n_splits=n_splits, seed=seed, group_col=spec.group_col)
    outcomes = Parallel(n_jobs=n_jobs)(
        delayed(_fit_fold)(frame, spec, train_idx, test_idx) for train_idx, test_idx in splits
    )

    y = frame[spec.outcome_col].to_numpy(dtype=float)
    predictions = np.full(len(frame), np.nan)
    fold_rmse = []
    converged = 0
    for (_, test_idx), (pred, ok) in zip(splits, outcomes, strict=True):
        predictions[test_idx] = pred
        fold_rmse.append(rmse(y[test_idx], pred))
        converged += int(ok)

    return CVResult(
        scheme=scheme,
        fold_rmse=fold_rmse,
        rmse=rmse(y, predictions),
        leakage_fraction=leakage_fraction(frame, splits, spec.group_col),
        converged_folds=converged,
        predictions=predictions,
    )


def compare_schemes(
    frame: pd.DataFrame,
    spec: ModelSpec,
    schemes: tuple[str, ...] | list[str] = SCHEMES,
    n_splits: int = 5,
    seed: int = 0,
    n_jobs: int = 1,
) -> dict:
    """In-sample error of the full fit next to the cross-validated error of each scheme."""
    full_fit = fit_mixed_model(frame, spec)
    return {
        "in_sample": in_sample_error(full_fit, frame),
        "converged": full_fit.converged,
        "schemes": {
            scheme: cross_validate(frame, spec, scheme, n_splits=n_splits, seed=seed, n_jobs=n_jobs)
            for scheme in schemes
        },
    }
