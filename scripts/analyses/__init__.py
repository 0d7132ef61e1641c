"""Analysis subpackage for the leakage experiments.

Modules:
  statistics: paired comparisons, effect sizes, bootstrap CIs, Holm-Bonferroni
"""
