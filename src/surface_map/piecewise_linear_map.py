"""Module defining the PiecewiseLinearMap, the default surface map output.

A piecewise linear map stores one value vector per surface point and
interpolates linearly across each triangle.
"""
from __future__ import annotations

import logging
from typing import Any
from numpy.typing import ArrayLike, NDArray

import numpy as np

from .mesh import SurfaceMesh

_LOGGER = logging.getLogger(__name__)


class PiecewiseLinearMap:
    """Immutable map from a triangulated surface to R^m.

    Args:
        domain (SurfaceMesh): Surface on which the map is defined.
        values (ArrayLike): Values at the surface points, shape (n_points,)
            or (n_points, m). The array is copied.

    Attributes:
        domain (SurfaceMesh): Surface on which the map is defined.
        values (NDArray[Any]): Read-only values, shape (n_points, m).
    """

    def __init__(self, domain: SurfaceMesh, values: ArrayLike) -> None:
        vals = np.array(values, dtype=float)
        if vals.ndim == 1:
            vals = vals[:, None]
        if vals.shape[0] != domain.number_of_points:
            _LOGGER.error(
                "PiecewiseLinearMap: %d values for %d domain points.",
                vals.shape[0],
                domain.number_of_points,
            )
            raise ValueError(
                f"PiecewiseLinearMap: values length {vals.shape[0]} "
                f"!= n_points {domain.number_of_points}"
            )
        vals.flags.writeable = False
        self._domain = domain
        self._values = vals

    @property
    def domain(self) -> SurfaceMesh:
        return self._domain

    @property
    def values(self) -> NDArray[Any]:
        return self._values

    @property
    def number_of_components(self) -> int:
        return int(self._values.shape[1])

    def value(self, ptId: int) -> NDArray[Any]:
        """Return the map value at surface point `ptId`."""
        return self._values[ptId]

    def evaluate(self, point: ArrayLike, verts_to_search: int = 8) -> NDArray[Any]:
        """Evaluate the map at a 3D point.

        The point is projected onto the surface and the values of the
        containing triangle are interpolated.

        Args:
            point: Coordinates of the point, shape (3,).
            verts_to_search: Number of nearest surface points whose triangles
                are searched for the projection.

        Returns:
            Interpolated value, shape (m,); NaN if the projection falls
            outside the surface.
        """
        _proj, tri, r, t = self._domain.project_point(
            np.asarray(point, dtype=float), verts_to_search=verts_to_search
        )
        if tri < 0:
            return np.full(self.number_of_components, np.nan)
        a, b, c = self._domain.connectivity[tri]
        return (
            (1.0 - r - t) * self._values[a]
            + r * self._values[b]
            + t * self._values[c]
        )

    def evaluate_points(
        self, points: ArrayLike, verts_to_search: int = 8
    ) -> NDArray[Any]:
        """Evaluate the map at several points, shape (n, 3) -> (n, m)."""
        pts = np.asarray(points, dtype=float).reshape(-1, 3)
        out = np.empty((pts.shape[0], self.number_of_components), dtype=float)
        for k, p in enumerate(pts):
            out[k] = self.evaluate(p, verts_to_search=verts_to_search)
        outside = int(np.isnan(out[:, 0]).sum()) if len(out) else 0
        if outside:
            _LOGGER.debug("evaluate_points: %d point(s) outside the domain.", outside)
        return out

    def copy(self) -> PiecewiseLinearMap:
        """Return a copy that shares no value storage with this map."""
        return PiecewiseLinearMap(self._domain, self._values)

    def write_vtu(self, filename: str, name: str = "map") -> None:
        """Write the domain surface with the map values as point data."""
        self._domain.writeVTU(filename, point_data={name: np.array(self._values)})

    def __repr__(self) -> str:
        return (
            f"PiecewiseLinearMap(points={self._domain.number_of_points}, "
            f"components={self.number_of_components})"
        )
