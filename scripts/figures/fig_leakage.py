"""Per-seed RMSE by resampling scheme, paired across seeds."""

from multilevel_leakage.datasets import runs_label

from figures._shared import *


def generate_leakage(runs_json: Path, out_dir: Path) -> Path | None:
    """Strip plot with box summary of per-seed RMSE for in-sample and each CV scheme."""
    if not runs_json.exists():
        print(f"  SKIP: {runs_json} not found")
        return None
    payload = load_json(runs_json)
    runs = payload.get("runs", [])
    if not runs:
        print(f"  SKIP: no runs in {runs_json.name}")
        return None

    columns = {"in_sample": [r["in_sample"]["conditional_rmse"] for r in runs]}
    for scheme in SCHEME_ORDER[1:]:
        if all(scheme in r["schemes"] for r in runs):
            columns[scheme] = [r["schemes"][scheme]["rmse"] for r in runs]
    order = [s for s in SCHEME_ORDER if s in columns]
    values = np.array([columns[s] for s in order])

    fig, ax = plt.subplots(figsize=(7.5, 3.8))
    x = np.arange(len(order))
    # Paired lines: one per seed across schemes.
    for seed_vals in values.T:
        ax.plot(x, seed_vals, color="#BBBBBB", linewidth=0.5, alpha=0.6, zorder=1)
    ax.boxplot(
        [v for v in values],
        positions=x,
        widths=0.35,
        showfliers=False,
        medianprops=dict(color="#000000", linewidth=1.5),
        zorder=2,
    )
    rng = np.random.default_rng(0)
    for i, scheme in enumerate(order):
        jitter = rng.uniform(-0.08, 0.08, size=values.shape[1])
        ax.scatter(i + jitter, values[i], s=12, color=COLORS[scheme], alpha=0.85, zorder=3)

    ax.axhline(
        y=float(np.median(values[0])),
        color=COLORS["in_sample"],
        linestyle=":",
        linewidth=1.0,
        label="In-sample median",
    )
    ax.set_xticks(x)
    ax.set_xticklabels([LABELS[s] for s in order])
    ax.set_ylabel("RMSE")
    ax.set_ylim(bottom=0)
    dataset = payload.get("dataset", "simulated")
    ax.set_title(f"Prediction error across {len(runs)} {runs_label(dataset)}")
    ax.legend(loc="upper left", frameon=False)
    despine(ax)

    fig.tight_layout()
    return save(fig, out_dir, "fig_leakage")
