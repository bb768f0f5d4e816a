"""
chancesign.reporting
====================

Polars frames of analysis results and ledger events.
"""
