"""Module defining the EdgeTable of a triangulated surface.

The edge table enumerates every undirected mesh edge exactly once, in a
deterministic (lexicographic) order, and answers adjacency queries. It also
records, for each triangle, which edge lies along each of its three sides,
which the edge weight functions use to find the triangles sharing an edge.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Iterator, Tuple
from numpy.typing import NDArray

import numpy as np
import scipy.sparse as sp

if TYPE_CHECKING:
    from .mesh import SurfaceMesh

_LOGGER = logging.getLogger(__name__)


class EdgeTable:
    """Undirected edges of a triangle mesh.

    Edge ``e`` connects points ``edges[e, 0] < edges[e, 1]``. Side ``k`` of
    triangle ``t`` runs from ``connectivity[t, k]`` to
    ``connectivity[t, (k + 1) % 3]`` and is stored as edge ``face_edges[t, k]``
    (-1 for a degenerate side whose two ends are the same point);
    the point opposite that side is ``connectivity[t, (k + 2) % 3]``.

    Attributes:
        number_of_points (int): Number of points of the mesh.
        edges (NDArray[Any]): Edge end points, shape (n_edges, 2), sorted rows.
        face_edges (NDArray[Any]): Edge index per triangle side, shape (n_tris, 3).
        face_counts (NDArray[Any]): Number of triangles sharing each edge;
            triangles with a repeated corner are not counted.
    """

    edges: NDArray[Any]
    face_edges: NDArray[Any]
    face_counts: NDArray[Any]

    def __init__(self, mesh: SurfaceMesh) -> None:
        conn = np.asarray(mesh.connectivity, dtype=int).reshape(-1, 3)
        n_points = int(mesh.verts.shape[0])

        if (conn < 0).any() or (conn >= n_points).any():
            _LOGGER.error("EdgeTable: connectivity has out-of-range indices.")
            raise ValueError("Connectivity contains out-of-range vertex indices.")

        self.number_of_points = n_points

        heads = conn
        tails = np.roll(conn, -1, axis=1)
        # Sides joining a point to itself are not edges
        valid = heads != tails
        pairs = np.stack(
            [np.minimum(heads, tails)[valid], np.maximum(heads, tails)[valid]],
            axis=-1,
        )

        face_edges = np.full(conn.shape, -1, dtype=int)
        if pairs.shape[0] > 0:
            edges, inverse = np.unique(pairs, axis=0, return_inverse=True)
            face_edges[valid] = np.asarray(inverse, dtype=int).reshape(-1)
            # Triangles with a repeated corner enclose no area and share no edge
            proper = valid.all(axis=1)
            counts = np.bincount(
                face_edges[proper].reshape(-1), minlength=edges.shape[0]
            )
        else:
            edges = np.zeros((0, 2), dtype=int)
            counts = np.zeros(0, dtype=int)

        self.edges = edges.astype(int, copy=False)
        self.face_edges = face_edges
        self.face_counts = counts.astype(int, copy=False)

        # Symmetric point adjacency storing (edge index + 1) so that edge 0
        # is not mistaken for a structural zero.
        n_edges = self.edges.shape[0]
        ids = np.arange(1, n_edges + 1, dtype=int)
        adjacency = sp.coo_matrix(
            (
                np.concatenate([ids, ids]),
                (
                    np.concatenate([self.edges[:, 0], self.edges[:, 1]]),
                    np.concatenate([self.edges[:, 1], self.edges[:, 0]]),
                ),
            ),
            shape=(n_points, n_points),
            dtype=int,
        ).tocsr()
        adjacency.sort_indices()
        self._adjacency = adjacency

        degenerate = int(np.count_nonzero(~valid))
        if degenerate:
            _LOGGER.warning(
                "EdgeTable: %d degenerate triangle side(s) joining a point to itself.",
                degenerate,
            )

        _LOGGER.debug(
            "EdgeTable: points=%d tris=%d -> edges=%d (boundary=%d, non-manifold=%d)",
            n_points,
            conn.shape[0],
            n_edges,
            int(np.count_nonzero(self.face_counts == 1)),
            int(np.count_nonzero(self.face_counts > 2)),
        )

    def __len__(self) -> int:
        return int(self.edges.shape[0])

    def __iter__(self) -> Iterator[Tuple[int, int]]:
        """Iterate over all edges as ``(i, j)`` tuples with ``i < j``."""
        for i, j in self.edges:
            yield int(i), int(j)

    @property
    def number_of_edges(self) -> int:
        return len(self)

    def neighbors(self, ptId: int) -> NDArray[Any]:
        """Return the sorted ids of the points sharing an edge with `ptId`."""
        start, stop = self._adjacency.indptr[ptId], self._adjacency.indptr[ptId + 1]
        return self._adjacency.indices[start:stop].copy()

    def number_of_adjacent_points(self, ptId: int) -> int:
        return int(self._adjacency.indptr[ptId + 1] - self._adjacency.indptr[ptId])

    def edge_id(self, i: int, j: int) -> int:
        """Return the index of edge (i, j) or -1 if the points are not adjacent."""
        return int(self._adjacency[i, j]) - 1

    def is_edge(self, i: int, j: int) -> bool:
        return self.edge_id(i, j) >= 0

    def boundary_edges(self) -> NDArray[Any]:
        """Return the edges that belong to exactly one triangle, shape (k, 2)."""
        return self.edges[self.face_counts == 1]

    def nonmanifold_edges(self) -> NDArray[Any]:
        """Return the edges shared by more than two triangles, shape (k, 2)."""
        return self.edges[self.face_counts > 2]
