"""
Graph utility functions.

Stateless helpers shared by the matcher, the passes and the equivalence
validator.
"""

import collections
from typing import Dict, List, Optional

import numpy as np

from ..ops import OpKind


def canonicalize_axis(axis: Optional[int], rank: Optional[int]) -> Optional[int]:
    """
    Standardizes negative axes for easier comparison.

    Args:
        axis: Axis value (can be negative)
        rank: Tensor rank

    Returns:
        Non-negative axis value, or None if cannot canonicalize
    """
    if axis is None:
        return None
    if axis >= 0:
        return axis
    if rank is None:
        return None
    return axis + rank


def values_equal(actual, expected) -> bool:
    """
    Compares two attribute values.

    numpy arrays are compared by dtype, shape and content; lists and tuples
    element-wise; everything else with ``==``.
    """
    if isinstance(actual, np.ndarray) or isinstance(expected, np.ndarray):
        a = np.asarray(actual)
        b = np.asarray(expected)
        return a.dtype == b.dtype and a.shape == b.shape and bool(np.array_equal(a, b))
    if isinstance(actual, (list, tuple)) and isinstance(expected, (list, tuple)):
        return len(actual) == len(expected) and all(
            values_equal(a, b) for a, b in zip(actual, expected)
        )
    if isinstance(actual, np.dtype) or isinstance(expected, np.dtype):
        try:
            return np.dtype(actual) == np.dtype(expected)
        except TypeError:
            return False
    return actual == expected


def count_kinds(graph) -> Dict[OpKind, int]:
    """Returns the number of nodes of each kind."""
    counts: Dict[OpKind, int] = collections.defaultdict(int)
    for node in graph:
        counts[node.kind] += 1
    return dict(counts)


def kinds_in_order(graph) -> List[OpKind]:
    """Returns the node kinds of ``graph`` in topological order."""
    return [graph.get_node(node_id).kind for node_id in graph.topological_order()]
