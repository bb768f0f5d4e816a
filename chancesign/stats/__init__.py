"""
Statistical analyses of trial streams.

The package separates generic numerics from the analyses built on them:

1. **Common** (chancesign.stats.common):
   Distribution functions, moments, effect sizes, power and multiple-comparison
   corrections. Pure functions over plain numbers and arrays.

2. **Analyses** (deviation, randomness, baseline, realtime, learning):
   Functions that take an ordered trial sequence plus `AnalysisParameters`
   and return an immutable result object.

3. **Inference** (chancesign.stats.inference):
   Bayes factors and posteriors, sequential probability ratio tests and
   cross-session meta-analysis.

Example:
--------
>>> from chancesign.stats.common.distributions import normal_cdf
>>> round(normal_cdf(1.96), 3)
0.975
"""
