from __future__ import annotations

from typing import Callable

import numpy as np
import pytest

from surface_map.mesh import SurfaceMesh


def _make_grid(n: int = 5, jitter: float = 0.0, seed: int = 0) -> SurfaceMesh:
    """Unit square sampled by an n×n grid, each cell split along its diagonal.

    Point (i, j) at (x_i, y_j) has id ``j * n + i``. If `jitter` > 0 the
    interior points are moved by up to ``jitter * h`` in x and y.
    """
    xs = np.linspace(0.0, 1.0, n)
    X, Y = np.meshgrid(xs, xs, indexing="xy")
    verts = np.column_stack([X.ravel(), Y.ravel(), np.zeros(n * n)])

    if jitter > 0.0:
        ij = np.arange(n * n)
        i, j = ij % n, ij // n
        interior = (i > 0) & (i < n - 1) & (j > 0) & (j < n - 1)
        h = 1.0 / (n - 1)
        rng = np.random.default_rng(seed)
        verts[interior, :2] += rng.uniform(-jitter, jitter, (interior.sum(), 2)) * h

    tris = []
    for j in range(n - 1):
        for i in range(n - 1):
            a = j * n + i
            tris.append([a, a + 1, a + n + 1])
            tris.append([a, a + n + 1, a + n])
    return SurfaceMesh(verts=verts, connectivity=np.array(tris, dtype=int))


@pytest.fixture
def make_grid() -> Callable[..., SurfaceMesh]:
    return _make_grid


@pytest.fixture
def simple_triangle_mesh():
    """
    Provides a SurfaceMesh with a single triangle:
        v0 = [0, 0, 0]
        v1 = [1, 0, 0]
        v2 = [0, 1, 0]
    """
    verts = np.array(
        [
            [0.0, 0.0, 0.0],  # v0
            [1.0, 0.0, 0.0],  # v1
            [0.0, 1.0, 0.0],  # v2
        ]
    )
    connectivity = np.array([[0, 1, 2]])  # One triangle
    return SurfaceMesh(verts=verts, connectivity=connectivity)


@pytest.fixture
def two_triangle_square():
    """
    Unit square split into two triangles along the diagonal (0-2):
      v3 (0,1) ---- v2 (1,1)
        |           /  |
        |         /    |
        |       /      |
      v0 (0,0) ---- v1 (1,0)
    Triangles: [0,1,2] and [0,2,3]
    Boundary edges (undirected): (0,1),(1,2),(2,3),(0,3)
    Interior edge: (0,2)
    """
    verts = np.array(
        [
            [0.0, 0.0, 0.0],  # v0
            [1.0, 0.0, 0.0],  # v1
            [1.0, 1.0, 0.0],  # v2
            [0.0, 1.0, 0.0],  # v3
        ],
        dtype=float,
    )
    conn = np.array([[0, 1, 2], [0, 2, 3]], dtype=int)
    return SurfaceMesh(verts=verts, connectivity=conn)


@pytest.fixture
def tetra_surface():
    """
    Closed tetrahedron surface (no boundary).
    Vertices: (0,0,0),(1,0,0),(0,1,0),(0,0,1)
    Faces: (0,1,2),(0,1,3),(1,2,3),(0,2,3)
    """
    verts = np.array(
        [
            [0.0, 0.0, 0.0],
            [1.0, 0.0, 0.0],
            [0.0, 1.0, 0.0],
            [0.0, 0.0, 1.0],
        ],
        dtype=float,
    )
    conn = np.array([[0, 1, 2], [0, 1, 3], [1, 2, 3], [0, 2, 3]], dtype=int)
    return SurfaceMesh(verts=verts, connectivity=conn)
