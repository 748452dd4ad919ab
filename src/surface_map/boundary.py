"""Boundary detection and boundary conditions for fixed-boundary surface maps.

This module provides:
  - The topological boundary mask of a surface (points on edges that belong
    to exactly one triangle).
  - Extraction of ordered, closed boundary loops.
  - Boundary values placing the longest boundary loop on a circle or on the
    unit square, parameterised by arc length.
"""
from __future__ import annotations

import collections
import logging
from typing import Any, DefaultDict, List, Optional, Sequence, Tuple
from numpy.typing import NDArray

import numpy as np

from .mesh import SurfaceMesh

_LOGGER = logging.getLogger(__name__)


def boundary_mask(mesh: SurfaceMesh) -> NDArray[Any]:
    """Return a uint8 mask with 1 at every boundary point of `mesh`."""
    mask = np.zeros(mesh.number_of_points, dtype=np.uint8)
    mask[mesh.boundary_points()] = 1
    _LOGGER.debug(
        "boundary_mask: %d of %d point(s) on the boundary.",
        int(mask.sum()),
        mask.shape[0],
    )
    return mask


def boundary_loops(mesh: SurfaceMesh) -> List[List[int]]:
    """Return the boundary of `mesh` as ordered loops of point ids.

    Each loop lists its points once (the start point is not repeated at the
    end). Loops are returned longest first. An open chain, which only occurs
    at non-manifold boundary points, is returned as it was walked.
    """
    if mesh.boundary_edges is None:
        mesh.detect_boundary()
    edges = mesh.boundary_edges if mesh.boundary_edges is not None else []

    adj: DefaultDict[int, List[int]] = collections.defaultdict(list)
    for u, v in edges:
        adj[int(u)].append(int(v))
        adj[int(v)].append(int(u))

    deggt2 = [n for n, nbrs in adj.items() if len(nbrs) > 2]
    if deggt2:
        _LOGGER.warning(
            "boundary_loops: found %d non-manifold boundary node(s) (degree > 2).",
            len(deggt2),
        )

    visited: set[Tuple[int, int]] = set()
    loops: List[List[int]] = []
    for start in sorted(adj):
        for first in adj[start]:
            if (min(start, first), max(start, first)) in visited:
                continue
            visited.add((min(start, first), max(start, first)))
            loop = [start]
            cur = first
            while cur != start:
                loop.append(cur)
                candidates = [
                    n for n in adj[cur] if (min(cur, n), max(cur, n)) not in visited
                ]
                if not candidates:
                    _LOGGER.warning(
                        "boundary_loops: open boundary chain ends at node %d.", cur
                    )
                    break
                nxt = candidates[0]
                visited.add((min(cur, nxt), max(cur, nxt)))
                cur = nxt
            loops.append(loop)

    loops.sort(key=len, reverse=True)
    if _LOGGER.isEnabledFor(logging.DEBUG):
        _LOGGER.debug(
            "boundary_loops: %d loop(s), lengths=%s",
            len(loops),
            [len(loop) for loop in loops],
        )
    return loops


def _arc_length_parameter(mesh: SurfaceMesh, loop: Sequence[int]) -> NDArray[Any]:
    """Return the normalised arc length in [0, 1) at each loop point."""
    if len(loop) < 3:
        _LOGGER.error("boundary: degenerate boundary loop with < 3 unique nodes.")
        raise ValueError("Degenerate boundary: need at least 3 unique nodes.")

    closed = list(loop) + [loop[0]]
    pts = mesh.verts
    seg_lengths = np.linalg.norm(pts[closed[1:]] - pts[closed[:-1]], axis=1)
    cum_lengths = np.cumsum(seg_lengths)
    total_length = float(cum_lengths[-1])
    if total_length <= 0.0 or not np.isfinite(total_length):
        _LOGGER.error("boundary: zero or non-finite total boundary length.")
        raise ValueError("Degenerate boundary length.")

    # Start node distance = 0
    return np.concatenate([[0.0], cum_lengths[:-1]]) / total_length


def _longest_loop(mesh: SurfaceMesh, loop: Optional[Sequence[int]]) -> List[int]:
    if loop is not None:
        return [int(i) for i in loop]
    loops = boundary_loops(mesh)
    if not loops:
        _LOGGER.error("boundary: surface has no boundary edges.")
        raise ValueError("Surface has no boundary; cannot fix a boundary loop.")
    if len(loops) > 1:
        _LOGGER.info(
            "boundary: %d boundary loops; fixing the longest (%d points).",
            len(loops),
            len(loops[0]),
        )
    return loops[0]


def circle_boundary_values(
    mesh: SurfaceMesh,
    radius: float = 1.0,
    centre: Sequence[float] = (0.0, 0.0),
    loop: Optional[Sequence[int]] = None,
) -> Tuple[NDArray[Any], NDArray[Any]]:
    """Place a boundary loop on a circle, by arc length.

    Args:
        mesh: Surface mesh with at least one boundary loop.
        radius: Circle radius.
        centre: Circle centre (x, y).
        loop: Ordered point ids to fix; the longest boundary loop by default.

    Returns:
        Tuple[NDArray[Any], NDArray[Any]]:
            - values: shape (n_points, 2), zero at points not on the loop.
            - mask: uint8 shape (n_points,), 1 on the loop.
    """
    ids = _longest_loop(mesh, loop)
    theta = 2.0 * np.pi * _arc_length_parameter(mesh, ids)

    values = np.zeros((mesh.number_of_points, 2), dtype=float)
    values[ids, 0] = centre[0] + radius * np.cos(theta)
    values[ids, 1] = centre[1] + radius * np.sin(theta)
    mask = np.zeros(mesh.number_of_points, dtype=np.uint8)
    mask[ids] = 1
    return values, mask


def square_boundary_values(
    mesh: SurfaceMesh,
    loop: Optional[Sequence[int]] = None,
) -> Tuple[NDArray[Any], NDArray[Any]]:
    """Place a boundary loop on the perimeter of the unit square, by arc length.

    The loop starts at corner (0, 0) and runs counter-clockwise.

    Returns:
        Tuple[NDArray[Any], NDArray[Any]]: values (n_points, 2) and uint8 mask.
    """
    ids = _longest_loop(mesh, loop)
    s = 4.0 * _arc_length_parameter(mesh, ids)
    side = np.minimum(np.floor(s).astype(int), 3)
    f = s - side

    xy = np.empty((len(ids), 2), dtype=float)
    xy[side == 0] = np.stack([f, np.zeros_like(f)], axis=1)[side == 0]
    xy[side == 1] = np.stack([np.ones_like(f), f], axis=1)[side == 1]
    xy[side == 2] = np.stack([1.0 - f, np.ones_like(f)], axis=1)[side == 2]
    xy[side == 3] = np.stack([np.zeros_like(f), 1.0 - f], axis=1)[side == 3]

    values = np.zeros((mesh.number_of_points, 2), dtype=float)
    values[ids] = xy
    mask = np.zeros(mesh.number_of_points, dtype=np.uint8)
    mask[ids] = 1
    return values, mask
