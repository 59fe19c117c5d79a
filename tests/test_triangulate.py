import numpy as np
import pytest

from shapetrack.triangulate import (
    boundary_shape,
    boundary_shape_vertices,
    triangulate_shape,
)

SQUARE = np.array(
    [[0.0, 2.0, 2.0, 0.0],
     [0.0, 0.0, 2.0, 2.0]],
    dtype=np.float32,
)


def _triangles(tris):
    return [tuple(tris[i:i + 3]) for i in range(0, len(tris), 3)]


def _area(shape, tri):
    (x0, y0), (x1, y1), (x2, y2) = (shape[:, i] for i in tri)
    return abs((x1 - x0) * (y2 - y0) - (x2 - x0) * (y1 - y0)) / 2.0


def test_square_gives_two_triangles_covering_it():
    tris = triangulate_shape(SQUARE)
    assert len(tris) == 6
    triangles = _triangles(tris)
    assert all(len(set(t)) == 3 for t in triangles)
    assert all(0 <= i < 4 for i in tris)
    total = sum(_area(SQUARE, t) for t in triangles)
    assert total == pytest.approx(4.0)


def test_square_with_center_triangle_count():
    shape = np.hstack([SQUARE, np.array([[1.0], [1.0]], dtype=np.float32)])
    tris = triangulate_shape(shape)
    triangles = _triangles(tris)
    # n points with h on the hull give 2n - h - 2 triangles
    assert len(triangles) == 2 * 5 - 4 - 2
    assert all(4 in t for t in triangles)
    assert sum(_area(shape, t) for t in triangles) == pytest.approx(4.0)


def test_collinear_points_give_no_triangles():
    shape = np.array([[0.0, 1.0, 2.0, 3.0], [0.0, 1.0, 2.0, 3.0]])
    assert triangulate_shape(shape) == []


def test_too_few_points_give_no_triangles():
    assert triangulate_shape(np.array([[0.0, 1.0], [0.0, 1.0]])) == []


def test_duplicate_landmark_maps_to_first_occurrence():
    shape = np.hstack([SQUARE, SQUARE[:, :1]])
    tris = triangulate_shape(shape)
    assert 4 not in tris
    assert set(tris) == {0, 1, 2, 3}


def test_triangulate_rejects_bad_shape():
    with pytest.raises(ValueError):
        triangulate_shape(np.zeros((3, 4)))


def test_boundary_of_square_triangulation():
    tris = triangulate_shape(SQUARE)
    assert boundary_shape_vertices(SQUARE, tris) == [0, 0, 1, 2]


def test_boundary_independent_of_diagonal():
    a = boundary_shape_vertices(SQUARE, [0, 1, 2, 0, 2, 3])
    b = boundary_shape_vertices(SQUARE, [0, 1, 3, 1, 2, 3])
    assert a == b


def test_boundary_of_single_triangle():
    assert boundary_shape_vertices(SQUARE, [0, 1, 2]) == [0, 0, 1]


def test_boundary_excludes_interior_vertex():
    shape = np.hstack([SQUARE, np.array([[1.0], [1.0]], dtype=np.float32)])
    tris = triangulate_shape(shape)
    vertices = boundary_shape_vertices(shape, tris)
    assert 4 not in vertices
    assert len(vertices) == 4


def test_boundary_shape_selects_columns():
    tris = [0, 1, 2, 0, 2, 3]
    order = boundary_shape_vertices(SQUARE, tris)
    result = boundary_shape(SQUARE, tris)
    assert result.shape == (2, len(order))
    np.testing.assert_array_equal(result, SQUARE[:, order])


def test_boundary_of_empty_triangulation():
    assert boundary_shape_vertices(SQUARE, []) == []
    assert boundary_shape(SQUARE, []).shape == (2, 0)


def test_boundary_shape_out_of_range_index():
    with pytest.raises(IndexError):
        boundary_shape(SQUARE, [0, 1, 9])