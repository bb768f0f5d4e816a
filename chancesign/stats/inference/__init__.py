"""
chancesign.stats.inference
==========================

Inference across trials and sessions.

- `bayes`: Bayes factors, Normal–Normal posterior updating, credible intervals
- `sequential`: Wald's sequential probability ratio test and adaptive sample size
- `meta`: fixed- and random-effects pooling of per-session effect sizes
"""
