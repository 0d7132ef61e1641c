"""Tests for cohort simulation, validation, and CSV loading."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from multilevel_leakage import (
    CohortConfig,
    cohort_summary,
    load_cohort_csv,
    simulate_cohort,
    true_subject_effects,
    validate_cohort,
)
from multilevel_leakage.cohort import COHORT_COLUMNS, strip_metadata

# ---------------------------------------------------------------------------
# CohortConfig
# ---------------------------------------------------------------------------


def test_config_from_dict_strips_metadata_keys():
    cfg = CohortConfig.from_dict({"_description": "x", "n_subjects": 10})
    assert cfg.n_subjects == 10


def test_config_from_dict_rejects_unknown_keys():
    with pytest.raises(ValueError, match="unknown CohortConfig keys"):
        CohortConfig.from_dict({"n_subject": 10})


@pytest.mark.parametrize(
    "overrides",
    [
        {"n_subjects": 1},
        {"min_visits": 0},
        {"n_visits": 3, "min_visits": 4},
        {"sd_residual": -1.0},
        {"re_correlation": 1.5},
        {"dropout_rate": 1.0},
        {"visit_spacing": 0.0},
    ],
)
def test_config_rejects_invalid_values(overrides):
    with pytest.raises(ValueError):
        CohortConfig(**overrides)


def test_random_effects_cov_is_symmetric_positive_semidefinite():
    cov = CohortConfig(sd_intercept=2.0, sd_slope=0.5, re_correlation=-0.4).random_effects_cov
    assert np.allclose(cov, cov.T)
    assert cov[0, 1] == pytest.approx(-0.4 * 2.0 * 0.5)
    assert np.all(np.linalg.eigvalsh(cov) >= -1e-12)


def test_strip_metadata():
    assert strip_metadata({"_a": 1, "b": 2}) == {"b": 2}


# ---------------------------------------------------------------------------
# simulate_cohort
# ---------------------------------------------------------------------------


def test_simulation_is_deterministic_per_seed():
    cfg = CohortConfig(n_subjects=8)
    a = simulate_cohort(cfg, seed=3)
    b = simulate_cohort(cfg, seed=3)
    c = simulate_cohort(cfg, seed=4)
    pd.testing.assert_frame_equal(a, b)
    assert not a["score"].equals(c["score"])


def test_simulation_schema_and_follow_up():
    cfg = CohortConfig(n_subjects=20, n_visits=6, min_visits=3, dropout_rate=0.3)
    frame = simulate_cohort(cfg, seed=0)
    assert list(frame.columns) == COHORT_COLUMNS
    visits = frame.groupby("subject").size()
    assert visits.size == 20
    assert visits.min() >= 3
    assert visits.max() <= 6
    # Dropout is monotone: each subject's visits are a prefix of the schedule.
    for _, grp in frame.groupby("subject"):
        assert list(grp["time"]) == [float(t) for t in range(len(grp))]


def test_no_dropout_gives_complete_follow_up():
    cfg = CohortConfig(n_subjects=5, n_visits=4, min_visits=1, dropout_rate=0.0)
    frame = simulate_cohort(cfg, seed=1)
    assert len(frame) == 20


def test_treatment_is_constant_within_subject_and_balanced():
    cfg = CohortConfig(n_subjects=10, treated_fraction=0.5)
    frame = simulate_cohort(cfg, seed=2)
    per_subject = frame.groupby("subject")["treatment"].nunique()
    assert (per_subject == 1).all()
    assert frame.groupby("subject")["treatment"].first().sum() == 5


def test_true_effects_match_noise_free_simulation():
    cfg = CohortConfig(n_subjects=6, sd_residual=0.0, dropout_rate=0.0)
    frame = simulate_cohort(cfg, seed=5)
    truth = true_subject_effects(cfg, seed=5).set_index("subject")
    merged = frame.join(truth[["intercept", "slope"]], on="subject")
    expected = merged["intercept"] + merged["slope"] * merged["time"]
    assert np.allclose(merged["score"], expected)


# ---------------------------------------------------------------------------
# validate_cohort / load_cohort_csv / cohort_summary
# ---------------------------------------------------------------------------


def test_validate_drops_missing_outcomes_and_sorts():
    frame = pd.DataFrame(
        {
            "subject": [2, 1, 1, 2],
            "time": [1.0, 1.0, 0.0, 0.0],
            "score": [4.0, np.nan, 1.0, 3.0],
        }
    )
    out = validate_cohort(frame)
    assert list(out["subject"]) == ["1", "2", "2"]
    assert list(out["time"]) == [0.0, 0.0, 1.0]


def test_validate_requires_columns():
    frame = pd.DataFrame({"subject": ["a", "b"], "time": [0.0, 0.0], "score": [1.0, 2.0]})
    with pytest.raises(ValueError, match="age"):
        validate_cohort(frame, required=["age"])


def test_validate_needs_two_subjects():
    frame = pd.DataFrame({"subject": ["a", "a"], "time": [0.0, 1.0], "score": [1.0, 2.0]})
    with pytest.raises(ValueError, match="at least 2 subjects"):
        validate_cohort(frame)


def test_load_cohort_csv_renames_columns(tmp_path: Path):
    path = tmp_path / "cohort.csv"
    pd.DataFrame(
        {"Subject": [308, 308, 309], "Days": [0, 1, 0], "Reaction": [250.0, 260.0, 220.0]}
    ).to_csv(path, index=False)
    frame = load_cohort_csv(path, columns={"Subject": "subject", "Days": "time", "Reaction": "score"})
    assert set(frame["subject"]) == {"308", "309"}
    assert len(frame) == 3


def test_cohort_summary_counts_arms():
    cfg = CohortConfig(n_subjects=12, treated_fraction=0.25)
    summary = cohort_summary(simulate_cohort(cfg, seed=0))
    assert summary["n_subjects"] == 12
    assert summary["n_treated"] == 3
    assert summary["n_control"] == 9
    assert summary["visits_min"] <= summary["visits_median"] <= summary["visits_max"]
