"""Complete pooling, no pooling, and partial pooling (mixed model) fits.

The mixed model is a statsmodels ``MixedLM`` with a random intercept and,
optionally, a random slope on time per subject. Predictions come in two
flavours:

- marginal: fixed effects only, i.e. the prediction for a subject the model
  has never seen;
- conditional: fixed effects plus the subject's BLUP, available only for
  subjects present in the training data.

Conditional predictions on held-out rows of a seen subject are the channel
through which row-wise cross-validation leaks information.
"""

from __future__ import annotations

import ast
import sys
import warnings
from dataclasses import dataclass, field

import numpy as np
import pandas as pd
import patsy.builtins
import statsmodels.formula.api as smf
from patsy import ModelDesc
from statsmodels.tools.sm_exceptions import ConvergenceWarning

from .cohort import _from_mapping

_FORMULA_BUILTINS = set(patsy.builtins.__all__)


def _factor_variables(code: str) -> list[str]:
    """Data names read by one patsy factor, e.g. ``C(treatment, Sum)`` -> ``["treatment"]``.

    Called functions, module prefixes such as ``np`` and patsy builtins
    (contrasts, ``I``, ``center``) are not data columns.
    """
    tree = ast.parse(code, mode="eval")
    skip = set(_FORMULA_BUILTINS)
    for node in ast.walk(tree):
        if isinstance(node, ast.Call) and isinstance(node.func, ast.Name):
            skip.add(node.func.id)
        elif isinstance(node, ast.Attribute) and isinstance(node.value, ast.Name):
            skip.add(node.value.id)
    names = [n.id for n in ast.walk(tree) if isinstance(n, ast.Name) and n.id not in skip]
    return list(dict.fromkeys(names))


@dataclass(frozen=True)
class ModelSpec:
    formula: str = "score ~ time * treatment + age"
    group_col: str = "subject"
    time_col: str = "time"
    outcome_col: str = "score"
    random_slope: bool = True
    reml: bool = True
    method: str = "lbfgs"
    maxiter: int = 200

    def __post_init__(self) -> None:
        if "~" not in self.formula:
            raise ValueError(f"formula must contain '~': {self.formula!r}")
        lhs = self.formula.split("~", 1)[0].strip()
        if lhs != self.outcome_col:
            raise ValueError(
                f"formula outcome {lhs!r} does not match outcome_col {self.outcome_col!r}"
            )

    @classmethod
    def from_dict(cls, data: dict) -> ModelSpec:
        return _from_mapping(cls, data)

    @property
    def re_formula(self) -> str:
        return f"~{self.time_col}" if self.random_slope else "1"

    def formula_columns(self) -> list[str]:
        """Data columns referenced by the formula plus grouping and time columns."""
        desc = ModelDesc.from_formula(self.formula)
        cols = []
        for term in [*desc.lhs_termlist, *desc.rhs_termlist]:
            for factor in term.factors:
                cols.extend(_factor_variables(factor.code))
        return list(dict.fromkeys([self.group_col, self.time_col, *cols]))


@dataclass
class MixedFit:
    result: object
    spec: ModelSpec
    converged: bool
    warnings: list[str] = field(default_factory=list)

    @property
    def fixed_effects(self) -> dict[str, float]:
        return {str(k): float(v) for k, v in self.result.fe_params.items()}

    @property
    def random_effects(self) -> pd.DataFrame:
        """BLUPs indexed by subject, columns ``intercept`` and (if modelled) ``slope``."""
        frame = pd.DataFrame.from_dict(
            {k: np.asarray(v, dtype=float) for k, v in self.result.random_effects.items()},
            orient="index",
        )
        frame.columns = ["intercept", "slope"][: frame.shape[1]]
        frame.index = frame.index.astype(str)
        frame.index.name = self.spec.group_col
        return frame

    @property
    def subjects(self) -> list[str]:
        return [str(k) for k in self.result.random_effects]


def _log(msg: str) -> None:
    """Write a message to stderr for progress reporting."""
    print(msg, file=sys.stderr)


def fit_complete_pooling(frame: pd.DataFrame, spec: ModelSpec):
    """Ordinary least squares ignoring the subject structure."""
    return smf.ols(spec.formula, data=frame).fit()


def fit_no_pooling(frame: pd.DataFrame, spec: ModelSpec) -> pd.DataFrame:
    """Fit a separate straight line of outcome on time for every subject.

    Subjects observed at fewer than two distinct time points get their mean
    outcome as intercept and a NaN slope.
    """
    rows = []
    for subject, grp in frame.groupby(spec.group_col, sort=True):
        t = grp[spec.time_col].to_numpy(dtype=float)
        y = grp[spec.outcome_col].to_numpy(dtype=float)
        if np.unique(t).size >= 2:
            slope, intercept = np.polyfit(t, y, 1)
        else:
            intercept, slope = float(np.mean(y)), float("nan")
        rows.append(
            {
                spec.group_col: str(subject),
                "intercept": float(intercept),
                "slope": float(slope),
                "n_obs": int(len(grp)),
            }
        )
    return pd.DataFrame(rows).set_index(spec.group_col)


def fit_mixed_model(frame: pd.DataFrame, spec: ModelSpec) -> MixedFit:
    """Fit the mixed model by REML (or ML when ``spec.reml`` is false).

    Convergence warnings are captured into ``MixedFit.warnings``, logged, and
    mark the fit as not converged; other warnings are re-emitted unchanged.

    Raises:
        ValueError: If the data holds fewer than two subjects.
    """
    n_groups = frame[spec.group_col].nunique()
    if n_groups < 2:
        raise ValueError(f"mixed model needs at least 2 subjects, got {n_groups}")

    model = smf.mixedlm(
        spec.formula, data=frame, groups=spec.group_col, re_formula=spec.re_formula
    )
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        result = model.fit(reml=spec.reml, method=spec.method, maxiter=spec.maxiter)

    messages = []
    for w in caught:
        if issubclass(w.category, ConvergenceWarning):
            messages.append(str(w.message))
        else:
            warnings.warn(w.message, w.category, stacklevel=2)
    for msg in messages:
        _log(f"  MixedLM warning ({n_groups} subjects): {msg}")

    return MixedFit(
        result=result,
        spec=spec,
        converged=bool(getattr(result, "converged", True)) and not messages,
        warnings=messages,
    )


def _random_design(spec: ModelSpec, frame: pd.DataFrame) -> np.ndarray:
    ones = np.ones(len(frame))
    if spec.random_slope:
        return np.column_stack([ones, frame[spec.time_col].to_numpy(dtype=float)])
    return ones[:, None]


def predict_marginal(fit: MixedFit, frame: pd.DataFrame) -> np.ndarray:
    """Population-level prediction from the fixed effects alone."""
    return np.array(fit.result.predict(frame), dtype=float)


def predict_conditional(fit: MixedFit, frame: pd.DataFrame) -> np.ndarray:
    """Fixed effects plus the subject's BLUP.

    Rows whose subject was not in the training data get the marginal prediction.
    """
    pred = predict_marginal(fit, frame)
    blups = fit.random_effects
    groups = frame[fit.spec.group_col].astype(str).to_numpy()
    known = np.isin(groups, blups.index.to_numpy())
    if known.any():
        z = _random_design(fit.spec, frame)[known]
        b = blups.loc[groups[known]].to_numpy(dtype=float)
        pred[known] += np.sum(z * b, axis=1)
    return pred


def variance_components(fit: MixedFit) -> dict[str, float]:
    """Random-effect SDs, their correlation, residual SD and the intraclass correlation."""
    cov_re = np.asarray(fit.result.cov_re, dtype=float)
    sigma2 = float(fit.result.scale)
    tau0_sq = float(cov_re[0, 0])
    out = {
        "sd_intercept": float(np.sqrt(max(tau0_sq, 0.0))),
        "sd_residual": float(np.sqrt(sigma2)),
        "icc": tau0_sq / (tau0_sq + sigma2) if tau0_sq + sigma2 > 0 else 0.0,
    }
    if fit.spec.random_slope and cov_re.shape[0] > 1:
        sd_slope = float(np.sqrt(max(cov_re[1, 1], 0.0)))
        denom = out["sd_intercept"] * sd_slope
        out["sd_slope"] = sd_slope
        out["re_correlation"] = float(cov_re[0, 1] / denom) if denom > 0 else 0.0
    return out


def shrinkage_table(frame: pd.DataFrame, fit: MixedFit, no_pooling: pd.DataFrame) -> pd.DataFrame:
    """Compare each subject's no-pooling line with its partial-pooling line.

    Partial-pooling and population lines are read off predictions at time 0 and
    time 1 using the subject's own covariates, so arm and age effects are
    included in both.
    """
    spec = fit.spec
    first = frame.groupby(spec.group_col, sort=True).first().reset_index()
    first[spec.group_col] = first[spec.group_col].astype(str)
    at0 = first.assign(**{spec.time_col: 0.0})
    at1 = first.assign(**{spec.time_col: 1.0})

    part0 = predict_conditional(fit, at0)
    part1 = predict_conditional(fit, at1)
    pop0 = predict_marginal(fit, at0)
    pop1 = predict_marginal(fit, at1)

    table = pd.DataFrame(
        {
            spec.group_col: first[spec.group_col].to_numpy(),
            "population_intercept": pop0,
            "population_slope": pop1 - pop0,
            "partial_intercept": part0,
            "partial_slope": part1 - part0,
        }
    ).set_index(spec.group_col)
    table = table.join(
        no_pooling.rename(columns={"intercept": "no_pool_intercept", "slope": "no_pool_slope"})
    )
    table["shrinkage_distance"] = np.hypot(
        table["no_pool_intercept"] - table["partial_intercept"],
        table["no_pool_slope"] - table["partial_slope"],
    )
    return table
