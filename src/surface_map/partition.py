"""Module defining the fixed/free partition of surface points.

Every surface point is either fixed (its map value is prescribed) or free (its
value is solved for). Each class is numbered densely from zero in increasing
point id order, so free point ``k`` corresponds to row ``k`` of the stiffness
system.
"""
from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Union
from numpy.typing import ArrayLike, NDArray

import numpy as np

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Fixed:
    """Index of a point within the list of fixed points."""

    index: int


@dataclass(frozen=True)
class Free:
    """Index of a point within the list of free points (its system row)."""

    index: int


PointIndex = Union[Fixed, Free]


class PointPartition:
    """Disjoint ordered lists of fixed and free point ids.

    Args:
        mask (ArrayLike): Per-point values; non-zero marks a fixed point.

    Attributes:
        fixed_points (NDArray[Any]): Ids of the fixed points, ascending.
        free_points (NDArray[Any]): Ids of the free points, ascending.
    """

    fixed_points: NDArray[Any]
    free_points: NDArray[Any]

    def __init__(self, mask: ArrayLike) -> None:
        arr = np.asarray(mask)
        if arr.ndim > 1:
            arr = arr[:, 0]
        fixed = arr != 0
        n_points = fixed.shape[0]

        self.fixed_points = np.flatnonzero(fixed)
        self.free_points = np.flatnonzero(~fixed)

        # Per-point row lookup, -1 where the point belongs to the other class.
        self._free_index = np.full(n_points, -1, dtype=int)
        self._free_index[self.free_points] = np.arange(len(self.free_points))
        self._fixed_index = np.full(n_points, -1, dtype=int)
        self._fixed_index[self.fixed_points] = np.arange(len(self.fixed_points))

        _LOGGER.debug(
            "PointPartition: points=%d fixed=%d free=%d",
            n_points,
            len(self.fixed_points),
            len(self.free_points),
        )

    @property
    def number_of_points(self) -> int:
        return int(self._free_index.shape[0])

    @property
    def number_of_fixed_points(self) -> int:
        return int(self.fixed_points.shape[0])

    @property
    def number_of_free_points(self) -> int:
        return int(self.free_points.shape[0])

    @property
    def free_rows(self) -> NDArray[Any]:
        """Free index of every point, -1 for fixed points (read-only view)."""
        view = self._free_index.view()
        view.flags.writeable = False
        return view

    def index(self, ptId: int) -> PointIndex:
        """Return the tagged index of point `ptId`."""
        r = int(self._free_index[ptId])
        if r >= 0:
            return Free(r)
        return Fixed(int(self._fixed_index[ptId]))

    def is_fixed(self, ptId: int) -> bool:
        return bool(self._fixed_index[ptId] >= 0)

    def is_free(self, ptId: int) -> bool:
        return bool(self._free_index[ptId] >= 0)

    def free_index(self, ptId: int) -> int:
        """Return the free row of `ptId`, or -1 if the point is fixed."""
        return int(self._free_index[ptId])

    def fixed_index(self, ptId: int) -> int:
        """Return the fixed index of `ptId`, or -1 if the point is free."""
        return int(self._fixed_index[ptId])

    def free_point_id(self, r: int) -> int:
        return int(self.free_points[r])

    def fixed_point_id(self, k: int) -> int:
        return int(self.fixed_points[k])
