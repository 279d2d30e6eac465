"""
Pure transformation and aggregation functions over upstream payloads.
"""

from .aggregation import aggregate, compute_metric
from .operations import evaluate, filter_rows, project, sort_rows
from .pipeline import apply_node, apply_transformations

__all__ = [
    "aggregate",
    "compute_metric",
    "evaluate",
    "filter_rows",
    "project",
    "sort_rows",
    "apply_node",
    "apply_transformations",
]
