"""Shared constants, imports, and helpers for all figure modules."""

import json
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np  # noqa: F401  (re-exported via * for figure modules)
import pandas as pd

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
EXPERIMENTS_DIR = PROJECT_ROOT / "experiments"
FIG_DIR = PROJECT_ROOT / "slides" / "figures"

# ---------------------------------------------------------------------------
# Okabe-Ito colorblind-safe palette
# ---------------------------------------------------------------------------
COLORS = {
    "in_sample": "#000000",  # black
    "random_kfold": "#E69F00",  # orange
    "grouped_kfold": "#56B4E9",  # sky blue
    "loso": "#0072B2",  # blue
    "control": "#009E73",  # bluish green
    "treated": "#CC79A7",  # reddish purple
    "no_pool": "#D55E00",  # vermillion
    "partial": "#0072B2",  # blue
    "population": "#000000",
}

LABELS = {
    "in_sample": "In-sample",
    "random_kfold": "Row-wise\nK-fold",
    "grouped_kfold": "Subject-wise\nK-fold",
    "loso": "Leave-one-\nsubject-out",
    "control": "Control",
    "treated": "Treated",
}

SCHEME_ORDER = ["in_sample", "random_kfold", "grouped_kfold", "loso"]

# Slides are projected: larger type than print, sans-serif, PNG output.
plt.rcParams.update(
    {
        "font.family": "sans-serif",
        "font.size": 12,
        "axes.labelsize": 13,
        "axes.titlesize": 13,
        "legend.fontsize": 10,
        "xtick.labelsize": 11,
        "ytick.labelsize": 11,
        "lines.linewidth": 1.5,
        "figure.dpi": 150,
        "savefig.dpi": 150,
        "savefig.bbox": "tight",
        "savefig.pad_inches": 0.05,
    }
)


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------


def load_json(path: Path) -> dict:
    """Load an experiment result from a JSON file."""
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def load_cohort_tsv(path: Path) -> pd.DataFrame:
    """Load experiments/cohort.tsv with subject ids kept as strings."""
    return pd.read_csv(path, sep="\t", dtype={"subject": str})


def despine(ax) -> None:
    ax.spines["top"].set_visible(False)
    ax.spines["right"].set_visible(False)


def save(fig, out_dir: Path, name: str) -> Path:
    """Save *fig* as PNG under *out_dir*, close it, and report the path."""
    out_dir.mkdir(parents=True, exist_ok=True)
    out_path = out_dir / f"{name}.png"
    fig.savefig(out_path, format="png")
    plt.close(fig)
    print(f"  Saved {out_path}")
    return out_path
