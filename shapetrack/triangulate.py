"""Delaunay triangulation of shape landmarks and extraction of its boundary.

A shape is a 2xN array whose columns are landmarks (row 0 holds x, row 1
holds y). A triangulation is a flat list of landmark indices in which each
consecutive triplet is one triangle.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence

import numpy as np
from scipy.spatial import Delaunay


def _as_shape(shape) -> np.ndarray:
    points = np.asarray(shape, dtype=np.float32)
    if points.ndim != 2 or points.shape[0] != 2:
        raise ValueError(f"a shape is a 2xN matrix, got shape {points.shape}")
    return points


def triangulate_shape(shape) -> list[int]:
    """Delaunay-triangulate the landmarks of a shape.

    Returns indices of triangle vertices, three per triangle, referring to
    columns of `shape`. Landmarks at the same position are represented by
    the first of them. Fewer than three distinct or only collinear
    landmarks give an empty list.
    """
    points = _as_shape(shape).T
    if points.shape[0] < 3:
        return []

    unique_points, first_index = np.unique(points, axis=0, return_index=True)
    if unique_points.shape[0] < 3:
        return []
    centered = unique_points.astype(np.float64) - unique_points.mean(axis=0)
    if np.linalg.matrix_rank(centered) < 2:
        return []

    try:
        triangulation = Delaunay(unique_points.astype(np.float64))
    except (RuntimeError, ValueError):
        return []

    return [int(first_index[v]) for simplex in triangulation.simplices for v in simplex]


def _edge(a: int, b: int) -> tuple[int, int]:
    return (a, b) if a <= b else (b, a)


def boundary_shape_vertices(shape, tris: Sequence[int]) -> list[int]:
    """Indices of landmarks on the outer boundary of a triangulation.

    Boundary edges are the triangle edges that belong to exactly one
    triangle. The edges are ordered by (smaller index, larger index) and
    the smaller index of each is returned.
    """
    _as_shape(shape)
    indices = [int(i) for i in tris]
    triangles = zip(indices[0::3], indices[1::3], indices[2::3])

    counts: Counter[tuple[int, int]] = Counter()
    for a, b, c in triangles:
        counts.update((_edge(a, b), _edge(b, c), _edge(c, a)))

    boundary_edges = sorted(edge for edge, count in counts.items() if count == 1)
    return [first for first, _ in boundary_edges]


def boundary_shape(shape, tris: Sequence[int]) -> np.ndarray:
    """The landmarks selected by `boundary_shape_vertices`, as a 2xM shape."""
    points = _as_shape(shape)
    order = boundary_shape_vertices(points, tris)
    return points[:, np.asarray(order, dtype=np.intp)]