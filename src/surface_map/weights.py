"""Edge weight functions for linear surface maps.

An edge weight function assigns a scalar to every mesh edge; it defines the
discrete Dirichlet energy minimised by a linear surface mapper. Symmetric
weights return one value per edge, shape (n_edges,). Asymmetric weights return
the directed pair ``(w_ij, w_ji)`` per edge ``(i, j)``, shape (n_edges, 2),
where ``w_ij`` is used in the equation of point ``i``.

Available weights:
  - UniformWeight: w = 1 (Tutte embedding).
  - ChordLengthWeight: w = 1 / |p_i - p_j|^p.
  - CotangentWeight: w = (cot a + cot b) / 2 (discrete harmonic map).
  - MeanValueWeight: Floater's mean value coordinates (asymmetric).
  - CallableWeight: any per-edge function ``f(mesh, i, j) -> float``.
"""
from __future__ import annotations

import abc
import logging
from typing import Any, Callable, Optional
from numpy.typing import NDArray

import numpy as np

from .edge_table import EdgeTable
from .mesh import SurfaceMesh

_LOGGER = logging.getLogger(__name__)


class EdgeWeight(abc.ABC):
    """Strategy computing the weights of all edges of a surface mesh."""

    #: Whether w_ij == w_ji, i.e. whether the weights yield a symmetric system.
    symmetric: bool = True

    @abc.abstractmethod
    def edge_weights(
        self,
        mesh: SurfaceMesh,
        edges: EdgeTable,
        active: Optional[NDArray[Any]] = None,
    ) -> NDArray[Any]:
        """Compute the edge weights.

        Args:
            mesh: Surface mesh.
            edges: Edge table of `mesh`.
            active: Optional boolean mask of the edges whose weight is needed.
                Implementations may return anything for inactive edges.

        Returns:
            Weights of shape (n_edges,) if `symmetric`, else (n_edges, 2).
        """

    def __call__(self, mesh: SurfaceMesh, i: int, j: int) -> float:
        """Return the weight of edge (i, j) as seen from point `i`.

        The weights of all edges of `mesh` are computed on the first query and
        reused while the same mesh is queried.
        """
        edges = mesh.edge_table()
        e = edges.edge_id(i, j)
        if e < 0:
            raise ValueError(f"Points {i} and {j} do not share an edge.")
        cached = getattr(self, "_cached", None)
        if cached is None or cached[0] is not mesh:
            cached = (mesh, self.edge_weights(mesh, edges))
            self._cached = cached
        w = cached[1]
        if self.symmetric:
            return float(w[e])
        return float(w[e, 0] if i < j else w[e, 1])

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


def _edge_lengths(mesh: SurfaceMesh, edges: EdgeTable) -> NDArray[Any]:
    d = mesh.verts[edges.edges[:, 1]] - mesh.verts[edges.edges[:, 0]]
    return np.linalg.norm(d, axis=1)


class UniformWeight(EdgeWeight):
    """Unit weight for every edge."""

    def edge_weights(self, mesh, edges, active=None):
        return np.ones(len(edges), dtype=float)


class ChordLengthWeight(EdgeWeight):
    """Inverse edge length raised to `exponent`.

    Args:
        exponent (float): Power of the edge length, 1 by default.
    """

    def __init__(self, exponent: float = 1.0) -> None:
        self.exponent = float(exponent)

    def edge_weights(self, mesh, edges, active=None):
        lengths = _edge_lengths(mesh, edges)
        zero = lengths <= 1e-12
        if np.any(zero):
            _LOGGER.warning(
                "ChordLengthWeight: %d zero-length edge(s); weight set to 0.",
                int(zero.sum()),
            )
        safe = np.where(zero, 1.0, lengths)
        return np.where(zero, 0.0, safe ** (-self.exponent))

    def __repr__(self) -> str:
        return f"ChordLengthWeight(exponent={self.exponent})"


class CotangentWeight(EdgeWeight):
    """Cotangent weights of the discrete Laplace-Beltrami operator.

    The weight of edge (i, j) is half the sum of the cotangents of the angles
    opposite the edge in the (one or two) triangles sharing it. Weights are
    negative across obtuse configurations; the resulting stiffness matrix is
    still positive semi-definite.
    """

    def edge_weights(self, mesh, edges, active=None):
        conn = mesh.connectivity
        verts = mesh.verts
        weights = np.zeros(len(edges), dtype=float)
        n_degenerate = 0

        for k in range(3):
            a = verts[conn[:, k]]
            b = verts[conn[:, (k + 1) % 3]]
            o = verts[conn[:, (k + 2) % 3]]
            u = a - o
            v = b - o
            sin = np.linalg.norm(np.cross(u, v), axis=1)
            cos = np.einsum("ij,ij->i", u, v)
            degenerate = sin <= 1e-12
            n_degenerate += int(degenerate.sum())
            cot = np.where(degenerate, 0.0, cos / np.where(degenerate, 1.0, sin))
            e = edges.face_edges[:, k]
            keep = e >= 0
            np.add.at(weights, e[keep], 0.5 * cot[keep])

        if n_degenerate:
            _LOGGER.warning(
                "CotangentWeight: %d degenerate triangle angle(s) ignored.",
                n_degenerate,
            )
        negative = int(np.count_nonzero(weights < 0.0))
        if negative:
            _LOGGER.debug("CotangentWeight: %d negative edge weight(s).", negative)
        return weights


class MeanValueWeight(EdgeWeight):
    """Mean value weights (Floater 2003).

    ``w_ij = (tan(a / 2) + tan(b / 2)) / |p_i - p_j|`` where a and b are the
    angles at point i of the triangles sharing edge (i, j). The weights are
    always positive but not symmetric.
    """

    symmetric = False

    def edge_weights(self, mesh, edges, active=None):
        conn = mesh.connectivity
        verts = mesh.verts
        weights = np.zeros((len(edges), 2), dtype=float)

        for k in range(3):
            v = conn[:, k]
            e1 = verts[conn[:, (k + 1) % 3]] - verts[v]
            e2 = verts[conn[:, (k + 2) % 3]] - verts[v]
            l1 = np.linalg.norm(e1, axis=1)
            l2 = np.linalg.norm(e2, axis=1)
            sin = np.linalg.norm(np.cross(e1, e2), axis=1)
            # tan(theta / 2) = (1 - cos) / sin
            ok = (sin > 1e-12) & (l1 > 1e-12) & (l2 > 1e-12)
            half_tan = np.where(
                ok,
                (l1 * l2 - np.einsum("ij,ij->i", e1, e2)) / np.where(ok, sin, 1.0),
                0.0,
            )

            # side k runs v -> next, side k+2 runs prev -> v
            for side, length in ((k, l1), ((k + 2) % 3, l2)):
                e = edges.face_edges[:, side]
                keep = e >= 0
                col = np.where(edges.edges[e[keep], 0] == v[keep], 0, 1)
                contrib = np.where(ok, half_tan / np.where(ok, length, 1.0), 0.0)
                np.add.at(weights, (e[keep], col), contrib[keep])

        return weights


class CallableWeight(EdgeWeight):
    """Wrap a plain function ``f(mesh, i, j) -> float`` as an edge weight.

    Args:
        func: Weight of edge (i, j) as seen from point i.
        symmetric: Whether ``func(mesh, i, j) == func(mesh, j, i)``; if False
            both directions are evaluated.
    """

    def __init__(
        self, func: Callable[[SurfaceMesh, int, int], float], symmetric: bool = True
    ) -> None:
        self.func = func
        self.symmetric = bool(symmetric)

    def edge_weights(self, mesh, edges, active=None):
        n_edges = len(edges)
        if active is None:
            active = np.ones(n_edges, dtype=bool)
        shape = (n_edges,) if self.symmetric else (n_edges, 2)
        weights = np.zeros(shape, dtype=float)
        for e in np.flatnonzero(active):
            i, j = int(edges.edges[e, 0]), int(edges.edges[e, 1])
            if self.symmetric:
                weights[e] = self.func(mesh, i, j)
            else:
                weights[e, 0] = self.func(mesh, i, j)
                weights[e, 1] = self.func(mesh, j, i)
        return weights

    def __repr__(self) -> str:
        name = getattr(self.func, "__name__", repr(self.func))
        return f"CallableWeight({name}, symmetric={self.symmetric})"


def get_weight(name: str | EdgeWeight) -> EdgeWeight:
    """Return an edge weight instance by name ('uniform', 'chord', 'cotangent', 'mean_value')."""
    if isinstance(name, EdgeWeight):
        return name
    factories = {
        "uniform": UniformWeight,
        "tutte": UniformWeight,
        "chord": ChordLengthWeight,
        "chord_length": ChordLengthWeight,
        "cotangent": CotangentWeight,
        "harmonic": CotangentWeight,
        "mean_value": MeanValueWeight,
    }
    try:
        return factories[str(name).lower()]()
    except KeyError:
        raise ValueError(
            f"Unknown edge weight {name!r}; expected one of {sorted(factories)}"
        ) from None
