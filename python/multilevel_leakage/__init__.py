"""Multilevel Leakage: mixed models and subject-level leakage in cross-validation."""

from .cohort import (
    CohortConfig,
    cohort_summary,
    load_cohort_csv,
    simulate_cohort,
    true_subject_effects,
    validate_cohort,
)
from .models import (
    MixedFit,
    ModelSpec,
    fit_complete_pooling,
    fit_mixed_model,
    fit_no_pooling,
    predict_conditional,
    predict_marginal,
    shrinkage_table,
    variance_components,
)
from .resampling import (
    SCHEMES,
    CVResult,
    compare_schemes,
    cross_validate,
    in_sample_error,
    leakage_fraction,
    make_splits,
    rmse,
)

__version__ = "0.1.0"

__all__ = [
    "CohortConfig",
    "simulate_cohort",
    "true_subject_effects",
    "validate_cohort",
    "load_cohort_csv",
    "cohort_summary",
    "ModelSpec",
    "MixedFit",
    "fit_complete_pooling",
    "fit_no_pooling",
    "fit_mixed_model",
    "predict_marginal",
    "predict_conditional",
    "variance_components",
    "shrinkage_table",
    "SCHEMES",
    "CVResult",
    "make_splits",
    "leakage_fraction",
    "rmse",
    "in_sample_error",
    "cross_validate",
    "compare_schemes",
]
