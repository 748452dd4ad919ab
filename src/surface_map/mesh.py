"""Module defining the SurfaceMesh class for 3D triangular surface meshes.

This module provides:
  - Loading from OBJ or any meshio-readable file, or direct arrays.
  - Computation of normals, connectivity and boundary edges.
  - KD-tree spatial queries and projection of points onto the surface.
  - VTU export of point and cell data.

The mesh is the domain of every surface map and is treated as immutable while
a map is being computed.
"""
from __future__ import annotations

import collections
import logging
from typing import Any, Optional, List, Dict, Tuple, DefaultDict
from numpy.typing import NDArray

import numpy as np
import meshio
from scipy.spatial import cKDTree

from .edge_table import EdgeTable

_LOGGER = logging.getLogger(__name__)


class SurfaceMesh:
    """Handle 3D triangular surface meshes.

    Besides the triangles, a mesh read from file may carry auxiliary line and
    vertex primitives and named point/cell data arrays. Only the triangles
    define the surface topology; `surface_copy` strips everything else.

    Args:
        filename (Optional[str]): Path to a mesh file (OBJ or meshio format).
        verts (Optional[NDArray[Any]]): Vertex coordinates (n_nodes×3).
        connectivity (Optional[NDArray[Any]]): Triangle indices (n_triangles×3).
        lines (Optional[NDArray[Any]]): Line primitives (n_lines×2).
        vertices (Optional[NDArray[Any]]): Vertex primitives (point ids).
        point_data (Optional[Dict[str, NDArray[Any]]]): Per-point arrays.
        cell_data (Optional[Dict[str, NDArray[Any]]]): Per-triangle arrays.

    Attributes:
        verts (NDArray[Any]): Vertex array, shape (n_nodes, 3).
        connectivity (NDArray[Any]): Triangle indices, shape (n_triangles, 3).
        normals (NDArray[Any]): Triangle normals, shape (n_triangles, 3).
        node_to_tri (DefaultDict[int, List[int]]): Node→[triangle indices].
        tree (cKDTree): KD-tree over `verts` for nearest-node queries.
        boundary_edges (Optional[NDArray[Any]]): Edges on the mesh boundary.
    """

    verts: NDArray[Any]
    connectivity: NDArray[Any]
    normals: NDArray[Any]
    node_to_tri: DefaultDict[int, List[int]]
    tree: cKDTree
    lines: NDArray[Any]
    vertices: NDArray[Any]
    point_data: Dict[str, NDArray[Any]]
    cell_data: Dict[str, NDArray[Any]]
    boundary_edges: Optional[NDArray[Any]]

    def __init__(
        self,
        filename: Optional[str] = None,
        verts: Optional[NDArray[Any]] = None,
        connectivity: Optional[NDArray[Any]] = None,
        lines: Optional[NDArray[Any]] = None,
        vertices: Optional[NDArray[Any]] = None,
        point_data: Optional[Dict[str, NDArray[Any]]] = None,
        cell_data: Optional[Dict[str, NDArray[Any]]] = None,
    ) -> None:
        """Initialize mesh from a file or provided arrays.

        Raises:
            ValueError: If neither `filename` nor `verts` and `connectivity`
                are provided.
        """
        if filename is not None:
            if str(filename).lower().endswith(".obj"):
                verts, connectivity = self.loadOBJ(filename)
            else:
                verts, connectivity, lines, vertices, point_data, cell_data = (
                    self._load_meshio(filename)
                )

        if verts is None or connectivity is None:
            _LOGGER.error("SurfaceMesh: missing vertices or connectivity.")
            raise ValueError(
                "SurfaceMesh requires a filename or both verts and connectivity."
            )

        self.verts = np.asarray(verts, dtype=float).reshape(-1, 3)
        self.connectivity = np.asarray(connectivity, dtype=int).reshape(-1, 3)
        self.lines = (
            np.zeros((0, 2), dtype=int)
            if lines is None
            else np.asarray(lines, dtype=int).reshape(-1, 2)
        )
        self.vertices = (
            np.zeros(0, dtype=int)
            if vertices is None
            else np.asarray(vertices, dtype=int).reshape(-1)
        )
        self.point_data = {k: np.asarray(v) for k, v in (point_data or {}).items()}
        self.cell_data = {k: np.asarray(v) for k, v in (cell_data or {}).items()}

        # ---- Geometry (vectorized) ---------------------------------------------
        a = self.verts[self.connectivity[:, 0]]  # (n_tris, 3)
        b = self.verts[self.connectivity[:, 1]]
        c = self.verts[self.connectivity[:, 2]]

        n = np.cross(b - a, c - a)  # raw normals
        nn = np.linalg.norm(n, axis=1)  # (n_tris,)
        safe = np.where(nn > 1e-12, nn, 1.0)
        normals = n / safe[:, None]

        deg_mask = nn <= 1e-12
        if np.any(deg_mask):
            # Zero-out degenerate triangle normals to avoid NaNs
            normals[deg_mask] = 0.0
            _LOGGER.warning(
                "SurfaceMesh __init__: %d degenerate triangle(s) with ~zero area; normals set to 0.",
                int(np.count_nonzero(deg_mask)),
            )

        self.normals = normals

        # ---- Topology / search structures --------------------------------------
        self.node_to_tri = collections.defaultdict(list)
        for tri_idx, tri in enumerate(self.connectivity):
            for node in tri:
                self.node_to_tri[int(node)].append(tri_idx)

        self.tree = cKDTree(self.verts)

        # ---- Lazily computed attributes ----------------------------------------
        self.boundary_edges = None
        self._edge_table: Optional[EdgeTable] = None

        _LOGGER.info(
            "SurfaceMesh initialized with %d vertices and %d triangles",
            self.verts.shape[0],
            self.connectivity.shape[0],
        )

    @property
    def number_of_points(self) -> int:
        return int(self.verts.shape[0])

    @property
    def number_of_triangles(self) -> int:
        return int(self.connectivity.shape[0])

    def loadOBJ(self, filename: str) -> Tuple[NDArray[Any], NDArray[Any]]:
        """Read a Wavefront .obj mesh file and return (verts, connectivity).

        Polygons with more than three corners are split into a triangle fan.

        Args:
            filename (str): Path to the .obj file.

        Returns:
            Tuple[NDArray[Any], NDArray[Any]]:
                - verts: Array of shape (n_vertices, 3)
                - connectivity: Array of shape (n_triangles, 3)
        """
        verts: list[list[float]] = []
        connectivity: list[list[int]] = []

        with open(filename, "r") as fh:
            for line in fh:
                vals = line.split()
                if not vals:
                    continue
                if vals[0] == "v":
                    verts.append(list(map(float, vals[1:4])))
                elif vals[0] == "f":
                    # OBJ files are 1-indexed
                    poly = [int(f.split("/")[0]) - 1 for f in vals[1:]]
                    for k in range(1, len(poly) - 1):
                        connectivity.append([poly[0], poly[k], poly[k + 1]])
        _LOGGER.info(
            "Loaded OBJ from %s with %d vertices and %d triangles",
            filename,
            len(verts),
            len(connectivity),
        )

        verts_arr: NDArray[Any] = np.array(verts, dtype=float).reshape(-1, 3)
        connectivity_arr: NDArray[Any] = np.array(connectivity, dtype=int).reshape(
            -1, 3
        )
        return verts_arr, connectivity_arr

    def _load_meshio(self, filename: str) -> Tuple[Any, ...]:
        """Read any meshio-supported file into arrays.

        Triangles are kept, quads are split into two triangles, line and
        vertex cells are kept as auxiliary primitives; other cell types are
        ignored. Cell data is only kept when the file holds a single
        triangle block.
        """
        try:
            m = meshio.read(filename)
        except Exception:
            _LOGGER.exception("SurfaceMesh: failed to read '%s'.", filename)
            raise

        tris: List[NDArray[Any]] = []
        lines: List[NDArray[Any]] = []
        verts_prim: List[NDArray[Any]] = []
        skipped = 0
        for block in m.cells:
            data = np.asarray(block.data, dtype=int)
            if block.type == "triangle":
                tris.append(data)
            elif block.type == "quad":
                tris.append(data[:, [0, 1, 2]])
                tris.append(data[:, [0, 2, 3]])
            elif block.type == "line":
                lines.append(data)
            elif block.type == "vertex":
                verts_prim.append(data.reshape(-1))
            else:
                skipped += len(data)
        if skipped:
            _LOGGER.warning(
                "SurfaceMesh: ignored %d cell(s) of unsupported type in '%s'.",
                skipped,
                filename,
            )

        cell_data: Dict[str, NDArray[Any]] = {}
        if len(m.cells) == 1 and m.cells[0].type == "triangle":
            cell_data = {k: np.asarray(v[0]) for k, v in m.cell_data.items()}

        _LOGGER.info("Loaded '%s' via meshio (%d points).", filename, len(m.points))
        return (
            np.asarray(m.points, dtype=float)[:, :3],
            np.concatenate(tris) if tris else np.zeros((0, 3), dtype=int),
            np.concatenate(lines) if lines else None,
            np.concatenate(verts_prim) if verts_prim else None,
            dict(m.point_data),
            cell_data,
        )

    def surface_copy(self) -> SurfaceMesh:
        """Return a copy of the points and triangles only.

        Line and vertex primitives as well as all point and cell data arrays
        are dropped, so that the copy's topology is exactly the adjacency
        induced by its triangles.
        """
        return SurfaceMesh(
            verts=self.verts.copy(), connectivity=self.connectivity.copy()
        )

    def edge_table(self) -> EdgeTable:
        """Return the (cached) edge table of this mesh."""
        if self._edge_table is None:
            self._edge_table = EdgeTable(self)
        return self._edge_table

    def detect_boundary(self) -> None:
        """Identify boundary edges (edges in exactly one triangle)."""
        table = self.edge_table()
        self.boundary_edges = table.boundary_edges()

        nonmanifold = table.nonmanifold_edges()
        if len(nonmanifold):
            _LOGGER.warning(
                "detect_boundary: %d non-manifold edge(s) detected (used by >2 tris).",
                len(nonmanifold),
            )

        _LOGGER.debug(
            "detect_boundary: tris=%d -> boundary_edges=%d (unique undirected edges=%d).",
            self.number_of_triangles,
            len(self.boundary_edges),
            len(table),
        )

    def boundary_points(self) -> NDArray[Any]:
        """Return the sorted ids of points incident to a boundary edge."""
        if self.boundary_edges is None:
            self.detect_boundary()
        assert self.boundary_edges is not None
        return np.unique(self.boundary_edges.reshape(-1))


    def project_point(
        self,
        point: NDArray[Any],
        verts_to_search: int = 1,
    ) -> Tuple[NDArray[Any], int, float, float]:
        """Project a point onto the mesh and find its containing triangle.

        Candidate triangles are those around the `verts_to_search` nearest
        vertices, tried nearest first.

        Args:
            point (NDArray[Any]): Coordinates to project.
            verts_to_search (int): Number of nearby vertices to search.

        Returns:
            Tuple[NDArray[Any], int, float, float]:
                Projected point, triangle index (−1 if outside), and the local
                coordinates (r, t) such that the projection equals
                ``a + r (b - a) + t (c - a)`` for triangle corners a, b, c.
        """
        if verts_to_search < 1:
            raise ValueError("verts_to_search must be >= 1")

        p = np.asarray(point, dtype=float).reshape(3)
        k = min(int(verts_to_search), self.number_of_points)
        _dists, idxs = self.tree.query(p, k=k)

        # cKDTree returns scalars for k=1; arrays otherwise
        last_result: Tuple[NDArray[Any], int, float, float] = (p, -1, -1.0, -1.0)
        for node_idx in np.atleast_1d(idxs):
            last_result = self.project_point_check(p, int(node_idx))
            if last_result[1] != -1:
                return last_result

        if _LOGGER.isEnabledFor(logging.DEBUG):
            _LOGGER.debug(
                "project_point: no containing triangle for %s among %d candidates.",
                p.tolist(),
                k,
            )
        return last_result

    def project_point_check(
        self,
        point: NDArray[Any],
        node: int,
    ) -> Tuple[NDArray[Any], int, float, float]:
        """Project a point onto the triangles around `node`.

        Triangles are tried in order of increasing distance between the point
        and the triangle plane; the first one containing the in-plane
        projection (with a small tolerance) wins.

        Args:
            point (NDArray[Any]): Coordinates of the point to project.
            node (int): Index of the mesh vertex closest to the point.

        Returns:
            Tuple[NDArray[Any], int, float, float]: As `project_point`.
        """
        EPS = 1e-12
        p = np.asarray(point, dtype=float).reshape(3)

        triangles_list: List[int] = self.node_to_tri.get(node, [])
        if not triangles_list:
            _LOGGER.debug("project_point_check: vertex %d has no triangles.", node)
            return p, -1, -1.0, -1.0

        tri_arr = np.asarray(triangles_list, dtype=int)
        normals = self.normals[tri_arr]
        origins = self.verts[self.connectivity[tri_arr, 0]]
        dist = np.einsum("ij,ij->i", p - origins, normals)

        for idx in np.abs(dist).argsort():
            tri_idx = int(tri_arr[idx])
            projected = p - dist[idx] * normals[idx]

            a, b, c = self.verts[self.connectivity[tri_idx]]
            u = b - a
            v = c - a
            w = projected - a

            # Solve w = r u + t v in the least-squares sense (2×2 normal equations)
            uu, uv, vv = float(u @ u), float(u @ v), float(v @ v)
            wu, wv = float(w @ u), float(w @ v)
            denom = uu * vv - uv * uv
            if denom < EPS or not np.isfinite(denom):
                continue
            r = (wu * vv - wv * uv) / denom
            t = (wv * uu - wu * uv) / denom

            # Allow tiny tolerance to accept boundary hits.
            tol = 1e-9
            if r >= -tol and t >= -tol and r + t <= 1.0 + tol:
                return projected, tri_idx, float(r), float(t)

        return p, -1, -1.0, -1.0

    def writeVTU(
        self,
        filename: str,
        point_data: Optional[Dict[str, NDArray[Any]]] = None,
        cell_data: Optional[Dict[str, NDArray[Any]]] = None,
    ) -> None:
        """Export this mesh (and optional point/cell data) in VTU format.

        Args:
            filename: Output path (e.g., ``"mesh.vtu"``).
            point_data: Optional dict of per-node arrays (shape (n_nodes,) or (n_nodes, k)).
            cell_data: Optional dict of per-triangle arrays (shape (n_tris,) or (n_tris, k)).

        Raises:
            ValueError: If provided data have incompatible lengths.
        """
        pts = self.verts
        con = self.connectivity
        m = meshio.Mesh(points=pts, cells=[("triangle", con)])

        for name, arr in (point_data or {}).items():
            arr_np = np.asarray(arr)
            if arr_np.shape[0] != pts.shape[0]:
                msg = (
                    f"point_data['{name}'] length {arr_np.shape[0]} "
                    f"!= n_nodes {pts.shape[0]}"
                )
                _LOGGER.error("writeVTU: %s", msg)
                raise ValueError(msg)
            m.point_data[name] = arr_np

        if cell_data:
            normalized: Dict[str, List[NDArray[Any]]] = {}
            for name, arr in cell_data.items():
                arr_np = np.asarray(arr)
                if arr_np.shape[0] != con.shape[0]:
                    msg = (
                        f"cell_data['{name}'] length {arr_np.shape[0]} "
                        f"!= n_tris {con.shape[0]}"
                    )
                    _LOGGER.error("writeVTU: %s", msg)
                    raise ValueError(msg)
                normalized[name] = [arr_np]
            m.cell_data = normalized

        try:
            m.write(filename)
        except Exception:
            _LOGGER.exception("writeVTU failed for '%s'.", filename)
            raise
        _LOGGER.info(
            "VTU written to '%s' (nodes=%d, tris=%d)",
            filename,
            pts.shape[0],
            con.shape[0],
        )
