"""
chancesign.backends.polars
==========================

Polars frames of trials, plus file sources and sinks for them.
"""
