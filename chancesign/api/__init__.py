"""
chancesign.api
==============

Facade over the analysis modules, organized by what an operator wants to
know about a session rather than by statistical method.

Examples
--------
>>> from chancesign.api.session import analyze_session, combine_sessions  # doctest: +SKIP
>>> report = analyze_session(trials)  # doctest: +SKIP
>>> pooled = combine_sessions({"s1": first, "s2": second})  # doctest: +SKIP
"""
