"""
Pure domain services: aggregation rules, series filtering, readings batches.

Import from the submodules directly; entities depend on aggregation_rules.
"""
