"""Fold assignment of row-wise K-fold vs leave-one-subject-out.

Each cell is one (subject, visit) observation coloured by the fold in which it
is held out. Row-wise folds scatter a subject's visits over several folds, so
the other visits of the same subject are always in the training data.
"""

from matplotlib.colors import ListedColormap

from figures._shared import *
from multilevel_leakage import make_splits

_FOLD_COLORS = ["#E69F00", "#56B4E9", "#009E73", "#F0E442", "#0072B2", "#D55E00", "#CC79A7"]


def fold_grid(frame: pd.DataFrame, scheme: str, n_splits: int, seed: int) -> np.ndarray:
    """Matrix subjects x visits holding the test-fold index of every observation (NaN if absent)."""
    frame = frame.reset_index(drop=True)
    subjects = list(dict.fromkeys(frame["subject"]))
    times = sorted(frame["time"].unique())
    row_of = {s: i for i, s in enumerate(subjects)}
    col_of = {t: j for j, t in enumerate(times)}

    grid = np.full((len(subjects), len(times)), np.nan)
    for fold, (_, test_idx) in enumerate(make_splits(frame, scheme, n_splits=n_splits, seed=seed)):
        for idx in test_idx:
            grid[row_of[frame.at[idx, "subject"]], col_of[frame.at[idx, "time"]]] = fold
    return grid


def generate_cv_schemes(
    cohort_tsv: Path, out_dir: Path, n_subjects: int = 12, n_splits: int = 5, seed: int = 0
) -> Path | None:
    """Side-by-side fold maps for the first *n_subjects* subjects of the cohort."""
    if not cohort_tsv.exists():
        print(f"  SKIP: {cohort_tsv} not found")
        return None
    frame = load_cohort_tsv(cohort_tsv)
    keep = list(dict.fromkeys(frame["subject"]))[:n_subjects]
    frame = frame[frame["subject"].isin(keep)]

    panels = [
        ("random_kfold", f"Row-wise {n_splits}-fold"),
        ("loso", "Leave-one-subject-out"),
    ]
    fig, axes = plt.subplots(1, 2, figsize=(9, 3.8), sharey=True)
    for ax, (scheme, title) in zip(axes, panels, strict=True):
        grid = fold_grid(frame, scheme, n_splits, seed)
        n_folds = int(np.nanmax(grid)) + 1
        colors = (_FOLD_COLORS * (n_folds // len(_FOLD_COLORS) + 1))[:n_folds]
        ax.imshow(
            np.ma.masked_invalid(grid),
            cmap=ListedColormap(colors),
            vmin=-0.5,
            vmax=n_folds - 0.5,
            aspect="auto",
            interpolation="nearest",
        )
        ax.set_title(title)
        ax.set_xlabel("Visit")
        ax.set_xticks(range(grid.shape[1]))
        ax.set_yticks(range(len(keep)))
        ax.set_yticklabels(keep, fontsize=8)
    axes[0].set_ylabel("Subject")
    fig.suptitle("Colour = fold in which the observation is held out", fontsize=11)
    fig.tight_layout()
    return save(fig, out_dir, "fig_cv_schemes")
