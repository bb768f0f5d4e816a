"""
chancesign.backends
===================

Tabular adapters between trial sequences and dataframe libraries.
"""
