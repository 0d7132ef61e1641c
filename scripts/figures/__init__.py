"""figures: subpackage containing one module per slide figure.

Import any generate_X function directly:
    from figures import generate_shrinkage
"""

import matplotlib

matplotlib.use("Agg")

from figures.fig_cv_schemes import generate_cv_schemes
from figures.fig_leakage import generate_leakage
from figures.fig_shrinkage import generate_shrinkage
from figures.fig_trajectories import generate_trajectories

__all__ = [
    "generate_trajectories",
    "generate_shrinkage",
    "generate_cv_schemes",
    "generate_leakage",
]
