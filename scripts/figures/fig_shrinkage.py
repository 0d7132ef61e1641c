"""Shrinkage figure: no-pooling estimates pulled toward the population line.

Panel A draws an arrow per subject from its own least-squares line
(intercept, slope) to its mixed-model estimate. Panel B shows how far each
subject moved against its number of observations.
"""

from figures._shared import *


def generate_shrinkage(shrinkage_json: Path, out_dir: Path) -> Path | None:
    """Two-panel shrinkage plot from experiments/shrinkage.json."""
    if not shrinkage_json.exists():
        print(f"  SKIP: {shrinkage_json} not found")
        return None
    data = load_json(shrinkage_json)
    table = pd.DataFrame(data["subjects"]).dropna(subset=["no_pool_slope"])
    if table.empty:
        print("  SKIP: no subject with a defined no-pooling slope")
        return None

    fig, axes = plt.subplots(1, 2, figsize=(9.5, 3.8), gridspec_kw={"width_ratios": [3, 2]})

    ax = axes[0]
    for row in table.itertuples(index=False):
        ax.annotate(
            "",
            xy=(row.partial_intercept, row.partial_slope),
            xytext=(row.no_pool_intercept, row.no_pool_slope),
            arrowprops=dict(arrowstyle="->", color="#888888", linewidth=0.7, alpha=0.8),
        )
    ax.scatter(
        table["no_pool_intercept"],
        table["no_pool_slope"],
        s=14,
        color=COLORS["no_pool"],
        label="No pooling (per-subject OLS)",
        zorder=3,
    )
    ax.scatter(
        table["partial_intercept"],
        table["partial_slope"],
        s=14,
        color=COLORS["partial"],
        label="Partial pooling (mixed model)",
        zorder=3,
    )
    ax.scatter(
        [table["population_intercept"].mean()],
        [table["population_slope"].mean()],
        s=90,
        marker="X",
        color=COLORS["population"],
        label="Population estimate",
        zorder=4,
    )
    ax.set_xlabel("Intercept (score at baseline)")
    ax.set_ylabel("Slope (change per week)")
    ax.set_title("(A) Subject estimates shrink toward the mean")
    ax.legend(loc="best", frameon=False)
    despine(ax)

    ax = axes[1]
    ax.scatter(
        table["n_obs"] + np.linspace(-0.15, 0.15, len(table)),
        table["shrinkage_distance"],
        s=16,
        color=COLORS["partial"],
        alpha=0.8,
    )
    ax.set_xlabel("Observations per subject")
    ax.set_ylabel("Shrinkage distance")
    ax.set_title("(B) Fewer visits, more shrinkage")
    ax.set_xticks(sorted(table["n_obs"].unique()))
    despine(ax)

    fig.tight_layout()
    return save(fig, out_dir, "fig_shrinkage")
