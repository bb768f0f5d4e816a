"""
chancesign.core
===============

Data model shared by every analysis: trials, typed names, immutable result
objects and the append-only event ledger.
"""
