"""
chancesign.stats.common
=======================

Common statistical building blocks.

Distribution functions, moment statistics, effect sizes, power analysis and
multiple-comparison corrections. Everything here is deterministic and free of
side effects; the analyses in `chancesign.stats` compose these functions.
"""
