"""Render the talk from its template and the analysis outputs.

Reads:
  experiments/shrinkage.json           -- experiment_shrinkage.py
  experiments/leakage_statistics.json  -- analyze_leakage.py

Writes:
  slides/deck.md      -- remark.js markdown source
  slides/index.html   -- self-contained HTML shell (remark.js + MathJax from CDN)

Usage:
    uv run python scripts/build_slides.py
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined, Template, TemplateNotFound
from jinja2.exceptions import UndefinedError

from multilevel_leakage.datasets import runs_label
from multilevel_leakage.resampling import SCHEME_LABELS

PROJECT_ROOT = Path(__file__).resolve().parent.parent
SLIDES_DIR = PROJECT_ROOT / "slides"
EXPERIMENTS_DIR = PROJECT_ROOT / "experiments"
DECK_TEMPLATE = "deck.md.jinja"
HTML_TEMPLATE = "remark.html.jinja"

TITLE = "Borrowing strength, leaking information"
SUBTITLE = "Mixed-effects models for repeated clinical measurements"
REMARK_URL = "https://remarkjs.com/downloads/remark-latest.min.js"
MATHJAX_URL = "https://cdn.jsdelivr.net/npm/mathjax@3/es5/tex-mml-chtml.js"

TABLE_ORDER = ["in_sample", "random_kfold", "grouped_kfold", "loso"]


def make_environment(template_dir: Path = SLIDES_DIR) -> Environment:
    """Jinja2 environment with delimiters that leave LaTeX and markdown braces alone.

    - Variable: <<< var >>>
    - Block: <%% block %%>
    """
    return Environment(
        loader=FileSystemLoader(str(template_dir)),
        variable_start_string="<<<",
        variable_end_string=">>>",
        block_start_string="<%%",
        block_end_string="%%>",
        comment_start_string="<#",
        comment_end_string="#>",
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
        undefined=StrictUndefined,
    )


def get_template(env: Environment, name: str) -> Template:
    try:
        return env.get_template(name)
    except TemplateNotFound as e:
        raise TemplateNotFound(f"slide template not found: {name} in {env.loader.searchpath}") from e


def fmt2(value: float | None) -> str:
    """Two-decimal rendering used for every number on the slides."""
    if value is None:
        return "n/a"
    return f"{value:.2f}"


def fmt_p(p: float | None) -> str:
    if p is None:
        return "n/a"
    if p < 0.001:
        return "< 0.001"
    return f"{p:.3f}"


def fmt_pct(fraction: float | None) -> str:
    if fraction is None:
        return "n/a"
    return f"{100 * fraction:.0f}%"


def _label(scheme: str) -> str:
    return SCHEME_LABELS.get(scheme, scheme)


def build_context(shrinkage: dict, statistics: dict) -> dict:
    """Flatten analysis outputs into the strings the deck template displays."""
    per_scheme = statistics["per_scheme"]
    rmse_rows = []
    for scheme in TABLE_ORDER:
        if scheme not in per_scheme:
            continue
        dist = per_scheme[scheme]["rmse"]
        rmse_rows.append(
            {
                "scheme": scheme,
                "label": _label(scheme),
                "median": fmt2(dist["median"]),
                "q25": fmt2(dist["q25"]),
                "q75": fmt2(dist["q75"]),
                "leakage": fmt_pct(per_scheme[scheme].get("leakage_fraction_mean")),
            }
        )

    comparisons = []
    for comp in statistics.get("comparisons", []):
        lo, hi = comp.get("mean_diff_ci_lo"), comp.get("mean_diff_ci_hi")
        comparisons.append(
            {
                "label": f"{_label(comp['candidate'])} minus {_label(comp['reference'])}",
                "mean_diff": fmt2(comp.get("mean_diff")),
                "ci": f"{fmt2(lo)} to {fmt2(hi)}",
                "p": fmt_p(comp.get("p_corrected")),
            }
        )

    leakage = {
        scheme: f"{100 * per_scheme[scheme].get('leakage_fraction_mean', 0.0):.0f}"
        for scheme in ("random_kfold", "grouped_kfold", "loso")
        if scheme in per_scheme
    }
    ratio = statistics.get("headline", {}).get("loso_over_random_kfold")
    dataset = shrinkage.get("dataset", "simulated")

    return {
        "title": TITLE,
        "subtitle": SUBTITLE,
        "dataset": dataset,
        "visits_label": "weekly visits" if dataset == "simulated" else "visits",
        "runs_label": runs_label(statistics.get("dataset", "simulated")),
        "formula": shrinkage["formula"],
        "reml": shrinkage.get("reml", True),
        "cohort": shrinkage["cohort"],
        "fixed_effects": [(term, fmt2(v)) for term, v in shrinkage["fixed_effects"].items()],
        "vc": {k: fmt2(v) for k, v in shrinkage["variance_components"].items()},
        "shrink": {k: fmt2(v) for k, v in shrinkage["shrinkage"].items() if isinstance(v, float)},
        "in_sample": {k: fmt2(v) for k, v in shrinkage["in_sample"].items()},
        "n_seeds": statistics["n_seeds"],
        "rmse_rows": rmse_rows,
        "comparisons": comparisons,
        "leakage": {"random_kfold": "n/a", "loso": "n/a", **leakage},
        "headline": {"ratio": f"{ratio:.1f}" if ratio is not None else "n/a"},
    }


def render_deck(context: dict, env: Environment | None = None) -> str:
    env = env or make_environment()
    return get_template(env, DECK_TEMPLATE).render(**context)


def render_html(deck: str, title: str = TITLE, env: Environment | None = None) -> str:
    env = env or make_environment()
    return get_template(env, HTML_TEMPLATE).render(
        deck=deck, title=title, remark_url=REMARK_URL, mathjax_url=MATHJAX_URL
    )


def _read_json(path: Path) -> dict:
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as exc:
        raise ValueError(f"invalid JSON in {path}: {exc}") from exc


def build(
    shrinkage_path: Path, statistics_path: Path, out_dir: Path, env: Environment | None = None
) -> tuple[Path, Path]:
    """Render deck.md and index.html into *out_dir* and return both paths."""
    context = build_context(_read_json(shrinkage_path), _read_json(statistics_path))
    env = env or make_environment()
    deck = render_deck(context, env)
    html = render_html(deck, context["title"], env)
    out_dir.mkdir(parents=True, exist_ok=True)
    deck_path = out_dir / "deck.md"
    html_path = out_dir / "index.html"
    deck_path.write_text(deck, encoding="utf-8")
    html_path.write_text(html, encoding="utf-8")
    return deck_path, html_path


def main() -> int:
    shrinkage_path = EXPERIMENTS_DIR / "shrinkage.json"
    statistics_path = EXPERIMENTS_DIR / "leakage_statistics.json"
    for path, producer in [
        (shrinkage_path, "scripts/experiment_shrinkage.py"),
        (statistics_path, "scripts/analyze_leakage.py --out experiments/leakage_statistics.json"),
    ]:
        if not path.exists():
            print(f"ERROR: {path} not found", file=sys.stderr)
            print(f"  Run: uv run python {producer}", file=sys.stderr)
            return 1

    try:
        deck_path, html_path = build(shrinkage_path, statistics_path, SLIDES_DIR)
    except (ValueError, UndefinedError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    print(f"  Saved {deck_path}", file=sys.stderr)
    print(f"  Saved {html_path}", file=sys.stderr)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
