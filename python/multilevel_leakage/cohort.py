"""Repeated-measures cohorts: simulation, loading, and validation.

A cohort is a long-format DataFrame with one row per (subject, time) visit.
Simulated cohorts follow a random-intercept/random-slope growth model:

    score_it = (b0 + u0_i) + (b1 + b_trt * trt_i + u1_i) * t
               + b_age * (age_i - age_mean) + e_it

with (u0_i, u1_i) bivariate normal and e_it independent normal noise.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path

import numpy as np
import pandas as pd

COHORT_COLUMNS = ["subject", "time", "treatment", "age", "score"]
BASE_COLUMNS = ["subject", "time", "score"]


def strip_metadata(data: dict) -> dict:
    """Drop metadata keys (those beginning with '_') from a config mapping."""
    return {k: v for k, v in data.items() if not k.startswith("_")}


def _from_mapping(cls, data: dict):
    known = {f.name for f in fields(cls)}
    values = strip_metadata(data)
    unknown = sorted(set(values) - known)
    if unknown:
        raise ValueError(f"unknown {cls.__name__} keys: {', '.join(unknown)}")
    return cls(**values)


@dataclass(frozen=True)
class CohortConfig:
    n_subjects: int = 60
    n_visits: int = 6
    visit_spacing: float = 1.0
    intercept: float = 23.0
    slope: float = -2.0
    treatment_slope: float = -1.0
    treated_fraction: float = 0.5
    age_mean: float = 42.0
    age_sd: float = 11.0
    age_effect: float = 0.08
    sd_intercept: float = 4.0
    sd_slope: float = 1.2
    re_correlation: float = -0.3
    sd_residual: float = 3.0
    dropout_rate: float = 0.1
    min_visits: int = 3

    def __post_init__(self) -> None:
        if self.n_subjects < 2:
            raise ValueError(f"n_subjects must be >= 2, got {self.n_subjects}")
        if self.n_visits < 1:
            raise ValueError(f"n_visits must be >= 1, got {self.n_visits}")
        if not 1 <= self.min_visits <= self.n_visits:
            raise ValueError(
                f"min_visits must be in [1, n_visits={self.n_visits}], got {self.min_visits}"
            )
        if self.visit_spacing <= 0:
            raise ValueError(f"visit_spacing must be > 0, got {self.visit_spacing}")
        for name in ("age_sd", "sd_intercept", "sd_slope", "sd_residual"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0, got {getattr(self, name)}")
        if not -1.0 <= self.re_correlation <= 1.0:
            raise ValueError(f"re_correlation must be in [-1, 1], got {self.re_correlation}")
        if not 0.0 <= self.dropout_rate < 1.0:
            raise ValueError(f"dropout_rate must be in [0, 1), got {self.dropout_rate}")
        if not 0.0 <= self.treated_fraction <= 1.0:
            raise ValueError(f"treated_fraction must be in [0, 1], got {self.treated_fraction}")

    @classmethod
    def from_dict(cls, data: dict) -> CohortConfig:
        return _from_mapping(cls, data)

    @property
    def random_effects_cov(self) -> np.ndarray:
        """Covariance matrix of (u0, u1)."""
        cov = self.re_correlation * self.sd_intercept * self.sd_slope
        return np.array(
            [
                [self.sd_intercept**2, cov],
                [cov, self.sd_slope**2],
            ]
        )


def _subject_ids(n: int) -> list[str]:
    width = max(3, len(str(n)))
    return [f"S{i + 1:0{width}d}" for i in range(n)]


def _draw_subjects(config: CohortConfig, rng: np.random.Generator) -> pd.DataFrame:
    n = config.n_subjects
    n_treated = int(round(config.treated_fraction * n))
    treatment = np.zeros(n, dtype=int)
    treatment[rng.permutation(n)[:n_treated]] = 1
    age = rng.normal(config.age_mean, config.age_sd, size=n)
    u = rng.multivariate_normal(np.zeros(2), config.random_effects_cov, size=n)
    intercepts = config.intercept + u[:, 0] + config.age_effect * (age - config.age_mean)
    slopes = config.slope + config.treatment_slope * treatment + u[:, 1]
    return pd.DataFrame(
        {
            "subject": _subject_ids(n),
            "treatment": treatment,
            "age": np.round(age, 1),
            "intercept": intercepts,
            "slope": slopes,
        }
    )


def true_subject_effects(config: CohortConfig, seed: int) -> pd.DataFrame:
    """Per-subject intercept and slope drawn by ``simulate_cohort`` for the same seed.

    The intercept already includes the age term, so intercept + slope * t is the
    noise-free trajectory of each subject.
    """
    rng = np.random.default_rng(seed)
    return _draw_subjects(config, rng)


def simulate_cohort(config: CohortConfig, seed: int) -> pd.DataFrame:
    """Simulate a long-format cohort. Identical seeds give identical frames."""
    rng = np.random.default_rng(seed)
    subjects = _draw_subjects(config, rng)
    times = np.arange(config.n_visits) * config.visit_spacing

    rows = []
    for subj in subjects.itertuples(index=False):
        n_obs = config.min_visits
        # Monotone dropout: each visit beyond the guaranteed ones may end follow-up.
        while n_obs < config.n_visits and rng.random() >= config.dropout_rate:
            n_obs += 1
        noise = rng.normal(0.0, config.sd_residual, size=n_obs)
        for t, e in zip(times[:n_obs], noise, strict=True):
            rows.append(
                {
                    "subject": subj.subject,
                    "time": float(t),
                    "treatment": int(subj.treatment),
                    "age": float(subj.age),
                    "score": float(subj.intercept + subj.slope * t + e),
                }
            )
    return pd.DataFrame(rows, columns=COHORT_COLUMNS)


def validate_cohort(frame: pd.DataFrame, required: list[str] | None = None) -> pd.DataFrame:
    """Return a cleaned copy of *frame* sorted by subject and time.

    Rows with a missing outcome are dropped and ``subject`` is coerced to str.

    Raises:
        ValueError: If required columns are missing, no rows remain, or fewer
            than two subjects are present.
    """
    required = list(dict.fromkeys([*BASE_COLUMNS, *(required or [])]))
    missing = [c for c in required if c not in frame.columns]
    if missing:
        raise ValueError(f"cohort is missing required columns: {', '.join(missing)}")

    out = frame.dropna(subset=["score"]).copy()
    if out.empty:
        raise ValueError("cohort has no rows with an observed outcome")
    out["subject"] = out["subject"].astype(str)
    n_subjects = out["subject"].nunique()
    if n_subjects < 2:
        raise ValueError(f"cohort needs at least 2 subjects, got {n_subjects}")
    out = out.sort_values(["subject", "time"], kind="mergesort").reset_index(drop=True)
    return out


def load_cohort_csv(
    path: Path, columns: dict[str, str] | None = None, required: list[str] | None = None
) -> pd.DataFrame:
    """Load a cohort from CSV, renaming source columns through *columns*."""
    frame = pd.read_csv(path)
    if columns:
        frame = frame.rename(columns=columns)
    return validate_cohort(frame, required)


def cohort_summary(frame: pd.DataFrame) -> dict:
    """Describe cohort size and follow-up."""
    visits = frame.groupby("subject").size()
    summary = {
        "n_subjects": int(visits.size),
        "n_observations": int(len(frame)),
        "visits_min": int(visits.min()),
        "visits_median": float(visits.median()),
        "visits_max": int(visits.max()),
        "time_max": float(frame["time"].max()),
    }
    if "treatment" in frame.columns:
        arms = frame.groupby("subject")["treatment"].first().value_counts()
        summary["n_treated"] = int(arms.get(1, 0))
        summary["n_control"] = int(arms.get(0, 0))
    return summary
