"""Subject trajectories: one thin line per subject, arm means on top."""

from figures._shared import *


def _plot_arm(ax, frame: pd.DataFrame, color: str) -> None:
    for _, grp in frame.groupby("subject"):
        ax.plot(grp["time"], grp["score"], color="#999999", alpha=0.45, linewidth=0.8)
    mean = frame.groupby("time")["score"].mean()
    ax.plot(mean.index, mean.to_numpy(), color=color, linewidth=2.5, marker="o", markersize=4)


def generate_trajectories(cohort_tsv: Path, out_dir: Path) -> Path | None:
    """Spaghetti plot of the cohort, split by arm when a treatment column exists."""
    if not cohort_tsv.exists():
        print(f"  SKIP: {cohort_tsv} not found")
        return None
    frame = load_cohort_tsv(cohort_tsv)

    if "treatment" in frame.columns and frame["treatment"].nunique() > 1:
        fig, axes = plt.subplots(1, 2, figsize=(9, 3.6), sharey=True)
        for ax, (arm, key) in zip(axes, [(0, "control"), (1, "treated")], strict=True):
            sub = frame[frame["treatment"] == arm]
            _plot_arm(ax, sub, COLORS[key])
            ax.set_title(f"{LABELS[key]} (n = {sub['subject'].nunique()})")
            ax.set_xlabel("Week")
            despine(ax)
        axes[0].set_ylabel("Symptom score")
    else:
        fig, ax = plt.subplots(figsize=(6, 3.6))
        _plot_arm(ax, frame, COLORS["population"])
        ax.set_title(f"{frame['subject'].nunique()} subjects")
        ax.set_xlabel("Time")
        ax.set_ylabel("Outcome")
        despine(ax)

    fig.tight_layout()
    return save(fig, out_dir, "fig_trajectories")
