"""Tests for pooling fits, mixed-model predictions, and shrinkage."""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest
from scipy.stats import spearmanr

from multilevel_leakage import (
    CohortConfig,
    ModelSpec,
    fit_complete_pooling,
    fit_mixed_model,
    fit_no_pooling,
    predict_conditional,
    predict_marginal,
    shrinkage_table,
    simulate_cohort,
    variance_components,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_SPEC = ModelSpec()


def _cohort(seed: int = 0, **overrides) -> pd.DataFrame:
    base = {"n_subjects": 20, "n_visits": 5, "dropout_rate": 0.2}
    base.update(overrides)
    return simulate_cohort(CohortConfig(**base), seed=seed)


# ---------------------------------------------------------------------------
# ModelSpec
# ---------------------------------------------------------------------------


def test_spec_rejects_formula_without_tilde():
    with pytest.raises(ValueError, match="~"):
        ModelSpec(formula="score time")


def test_spec_rejects_outcome_mismatch():
    with pytest.raises(ValueError, match="outcome_col"):
        ModelSpec(formula="y ~ time")


def test_spec_re_formula():
    assert ModelSpec().re_formula == "~time"
    assert ModelSpec(random_slope=False).re_formula == "1"


def test_formula_columns_skip_builtins():
    spec = ModelSpec(formula="score ~ time * C(treatment) + np.log(age)")
    assert spec.formula_columns() == ["subject", "time", "score", "treatment", "age"]


def test_formula_columns_skip_contrast_arguments():
    spec = ModelSpec(formula="score ~ C(treatment, Sum) + time")
    assert spec.formula_columns() == ["subject", "time", "score", "treatment"]


def test_spec_from_dict_rejects_unknown_keys():
    with pytest.raises(ValueError, match="unknown ModelSpec keys"):
        ModelSpec.from_dict({"formul": "score ~ time"})


# ---------------------------------------------------------------------------
# Pooling fits
# ---------------------------------------------------------------------------


def test_complete_pooling_recovers_population_slope():
    frame = _cohort(seed=1, n_subjects=40, sd_residual=0.5, sd_slope=0.2)
    params = fit_complete_pooling(frame, ModelSpec(formula="score ~ time")).params
    # Population slope averages over arms: -2.0 + 0.5 * -1.0.
    assert params["time"] == pytest.approx(-2.5, abs=0.5)


def test_no_pooling_one_row_per_subject():
    frame = _cohort()
    table = fit_no_pooling(frame, _SPEC)
    assert len(table) == frame["subject"].nunique()
    assert list(table.columns) == ["intercept", "slope", "n_obs"]
    assert table["n_obs"].sum() == len(frame)


def test_no_pooling_single_visit_has_nan_slope():
    frame = pd.DataFrame(
        {"subject": ["a", "a", "b"], "time": [0.0, 1.0, 0.0], "score": [1.0, 3.0, 5.0]}
    )
    table = fit_no_pooling(frame, ModelSpec(formula="score ~ time"))
    assert table.loc["a", "slope"] == pytest.approx(2.0)
    assert np.isnan(table.loc["b", "slope"])
    assert table.loc["b", "intercept"] == pytest.approx(5.0)


# ---------------------------------------------------------------------------
# Mixed model
# ---------------------------------------------------------------------------


def test_mixed_model_needs_two_subjects():
    frame = _cohort().query("subject == 'S001'")
    with pytest.raises(ValueError, match="at least 2 subjects"):
        fit_mixed_model(frame, _SPEC)


def test_mixed_model_random_effects_cover_all_subjects():
    frame = _cohort()
    fit = fit_mixed_model(frame, _SPEC)
    blups = fit.random_effects
    assert list(blups.columns) == ["intercept", "slope"]
    assert set(blups.index) == set(frame["subject"])
    assert set(fit.fixed_effects) >= {"Intercept", "time", "treatment", "age", "time:treatment"}
    assert isinstance(fit.warnings, list)


def test_random_intercept_only_model():
    spec = ModelSpec(random_slope=False)
    fit = fit_mixed_model(_cohort(), spec)
    assert list(fit.random_effects.columns) == ["intercept"]
    vc = variance_components(fit)
    assert "sd_slope" not in vc
    assert 0.0 <= vc["icc"] <= 1.0


def test_conditional_predictions_fit_better_than_marginal():
    frame = _cohort(seed=2, sd_intercept=5.0)
    fit = fit_mixed_model(frame, _SPEC)
    y = frame["score"].to_numpy()
    cond = np.sqrt(np.mean((y - predict_conditional(fit, frame)) ** 2))
    marg = np.sqrt(np.mean((y - predict_marginal(fit, frame)) ** 2))
    assert cond < marg


def test_unseen_subject_gets_marginal_prediction():
    frame = _cohort(seed=3)
    fit = fit_mixed_model(frame, _SPEC)
    new = frame[frame["subject"] == "S001"].assign(subject="NEW")
    assert np.allclose(predict_conditional(fit, new), predict_marginal(fit, new))


def test_variance_components_recover_simulation():
    frame = _cohort(seed=4, n_subjects=60, n_visits=6, dropout_rate=0.0)
    vc = variance_components(fit_mixed_model(frame, _SPEC))
    assert vc["sd_residual"] == pytest.approx(3.0, rel=0.25)
    assert vc["sd_intercept"] == pytest.approx(4.0, rel=0.4)
    assert -1.0 <= vc["re_correlation"] <= 1.0


def test_degenerate_variance_fit_is_not_converged(capsys):
    # No between-subject spread leaves the random-effect covariance on its boundary.
    frame = simulate_cohort(
        CohortConfig(n_subjects=10, n_visits=4, sd_intercept=0, sd_slope=0, dropout_rate=0), 0
    )
    fit = fit_mixed_model(frame, _SPEC)
    assert fit.warnings
    assert fit.converged is False
    assert "MixedLM warning (10 subjects)" in capsys.readouterr().err


# ---------------------------------------------------------------------------
# Shrinkage
# ---------------------------------------------------------------------------


def test_partial_pooling_shrinks_slopes_toward_population():
    frame = _cohort(seed=5, n_subjects=30, sd_residual=4.0)
    fit = fit_mixed_model(frame, _SPEC)
    table = shrinkage_table(frame, fit, fit_no_pooling(frame, _SPEC))
    assert len(table) == 30
    dev_no_pool = (table["no_pool_slope"] - table["population_slope"]).abs().mean()
    dev_partial = (table["partial_slope"] - table["population_slope"]).abs().mean()
    assert dev_partial < dev_no_pool
    assert (table["shrinkage_distance"] >= 0).all()


def test_sparse_subjects_shrink_most():
    frame = _cohort(seed=6, n_subjects=40, n_visits=8, min_visits=2, dropout_rate=0.5)
    fit = fit_mixed_model(frame, _SPEC)
    table = shrinkage_table(frame, fit, fit_no_pooling(frame, _SPEC))
    assert table["n_obs"].nunique() > 2
    rho, _ = spearmanr(table["n_obs"], table["shrinkage_distance"])
    assert rho < 0
