"""Assembly of the linear system of a discrete harmonic surface map.

For free points the map values minimise ``sum_ij w_ij |f_i - f_j|^2`` with the
fixed point values held constant. Setting the gradient to zero gives the
system ``A x = b`` over the free points, where for every edge (i, j):

  - both points free: ``A[r, c] -= w`` and ``A[c, r] -= w``;
  - only i free: ``b[r] += w * f_j``;
  - only j free: ``b[c] += w * f_i``;
  - both fixed: no contribution;

and ``A[r, r]`` is the sum of the weights of all edges incident to the free
point of row r, including edges to fixed points.
"""
from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any
from numpy.typing import NDArray

import numpy as np
import scipy.sparse as sp

from .edge_table import EdgeTable
from .partition import PointPartition

_LOGGER = logging.getLogger(__name__)


@dataclass
class StiffnessSystem:
    """Sparse stiffness matrix and dense right-hand side over the free points.

    Attributes:
        A: CSR matrix, shape (n_free, n_free).
        b: Right-hand side, shape (n_free, n_components).
    """

    A: sp.csr_matrix
    b: NDArray[Any]

    @property
    def number_of_nonzeros(self) -> int:
        return int(self.A.nnz)


def active_edges(edges: EdgeTable, partition: PointPartition) -> NDArray[Any]:
    """Return a boolean mask of the edges with at least one free end point."""
    rows = partition.free_rows
    return (rows[edges.edges[:, 0]] >= 0) | (rows[edges.edges[:, 1]] >= 0)


def assemble_stiffness_system(
    edges: EdgeTable,
    partition: PointPartition,
    weights: NDArray[Any],
    values: NDArray[Any],
) -> StiffnessSystem:
    """Assemble the stiffness system of a linear surface map.

    Args:
        edges: Edge table of the surface.
        partition: Fixed/free partition of the surface points.
        weights: Symmetric weights, shape (n_edges,), or directed weights
            ``(w_ij, w_ji)`` per edge (i, j), shape (n_edges, 2).
        values: Map values of all points, shape (n_points, n_components);
            only the rows of fixed points are read.

    Returns:
        The assembled `StiffnessSystem`. With symmetric weights A is exactly
        symmetric since both off-diagonal entries of an edge receive the same
        value.
    """
    w = np.asarray(weights, dtype=float)
    values = np.asarray(values, dtype=float)
    n_edges = len(edges)
    if w.shape not in ((n_edges,), (n_edges, 2)):
        _LOGGER.error(
            "assemble_stiffness_system: weights shape %s, expected (%d,) or (%d, 2)",
            w.shape,
            n_edges,
            n_edges,
        )
        raise ValueError(f"Invalid edge weights shape {w.shape}.")

    if w.ndim == 1:
        w_ij = w_ji = w
    else:
        w_ij, w_ji = w[:, 0], w[:, 1]

    n = partition.number_of_free_points
    m = values.shape[1]
    rows = partition.free_rows

    i = edges.edges[:, 0]
    j = edges.edges[:, 1]
    r = rows[i]
    c = rows[j]
    r_free = r >= 0
    c_free = c >= 0
    both = r_free & c_free
    only_r = r_free & ~c_free
    only_c = c_free & ~r_free

    # Accumulated diagonal; each edge adds its weight to each free end point.
    diag = np.zeros(n, dtype=float)
    np.add.at(diag, r[r_free], w_ij[r_free])
    np.add.at(diag, c[c_free], w_ji[c_free])

    b = np.zeros((n, m), dtype=float)
    np.add.at(b, r[only_r], w_ij[only_r, None] * values[j[only_r]])
    np.add.at(b, c[only_c], w_ji[only_c, None] * values[i[only_c]])

    diag_ids = np.arange(n, dtype=int)
    A = sp.coo_matrix(
        (
            np.concatenate([-w_ij[both], -w_ji[both], diag]),
            (
                np.concatenate([r[both], c[both], diag_ids]),
                np.concatenate([c[both], r[both], diag_ids]),
            ),
        ),
        shape=(n, n),
        dtype=float,
    ).tocsr()

    _LOGGER.debug(
        "assemble_stiffness_system: edges=%d (free-free=%d, free-fixed=%d) -> n=%d m=%d nnz=%d",
        n_edges,
        int(both.sum()),
        int(only_r.sum() + only_c.sum()),
        n,
        m,
        A.nnz,
    )
    return StiffnessSystem(A=A, b=b)
