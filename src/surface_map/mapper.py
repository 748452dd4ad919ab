"""Surface mappers computing fixed-boundary linear maps of triangulated surfaces.

A mapper runs in three stages, ``initialize -> solve -> finalize``:

  - initialize validates the input, makes a working copy of the surface that
    only keeps points and triangles, copies the input map values and splits
    the points into fixed (value prescribed) and free (value solved for);
  - solve assembles the stiffness system of the edge weights over the free
    points and solves it, writing the result into the free point values;
  - finalize wraps the surface and the values into the output map.

`SymmetricLinearSurfaceMapper` handles symmetric edge weights (conjugate
gradients); `AsymmetricLinearSurfaceMapper` handles directed edge weights
such as mean value coordinates (BiCGSTAB).
"""
from __future__ import annotations

import abc
import contextlib
import copy
from dataclasses import dataclass
import enum
import logging
from typing import Any, Callable, Iterator, NoReturn, Optional, Tuple, Union
from numpy.typing import ArrayLike, NDArray

import numpy as np

from .boundary import boundary_mask, circle_boundary_values
from .config import config
from .errors import (
    InvalidMaskError,
    InvalidValuesError,
    MapperStateError,
    MissingBoundaryConditionsError,
    MissingSurfaceError,
    NotASurfaceError,
)
from .mesh import SurfaceMesh
from .partition import PointIndex, PointPartition
from .piecewise_linear_map import PiecewiseLinearMap
from .solver import BiCGStabSolver, ConjugateGradientSolver, SolverResult
from .stiffness import active_edges, assemble_stiffness_system
from .weights import CotangentWeight, EdgeWeight, MeanValueWeight, get_weight

_LOGGER = logging.getLogger(__name__)

RemeshFunction = Callable[
    [SurfaceMesh, NDArray[Any], Optional[NDArray[Any]]],
    Optional[Tuple[SurfaceMesh, NDArray[Any], Optional[NDArray[Any]]]],
]
OutputBuilder = Callable[[SurfaceMesh, NDArray[Any]], Any]


class MapperState(enum.IntEnum):
    """Stage reached by a surface mapper."""

    UNINITIALIZED = 0
    INITIALIZED = 1
    SOLVED = 2
    FINALIZED = 3


@dataclass(frozen=True)
class SolveReport:
    """Diagnostics of one linear surface map solve."""

    number_of_points: int
    number_of_free_points: int
    number_of_nonzeros: int
    number_of_components: int
    iterations: int
    error: float
    converged: bool


class SurfaceMapper(abc.ABC):
    """Base class of the fixed-boundary surface mappers.

    Args:
        mesh (Optional[SurfaceMesh]): Input surface.
        values (Optional[ArrayLike]): Map values per surface point, shape
            (n_points,) or (n_points, m). Values at fixed points are the
            boundary conditions; values at free points are the initial guess.
        mask (Optional[ArrayLike]): Per-point fixed point mask (non-zero =
            fixed). Defaults to the topological boundary of the surface.
        remesh (Optional[RemeshFunction]): Called with the working surface,
            values and mask during initialize; may return a replacement
            ``(surface, values, mask)`` triple.
        output_builder (Optional[OutputBuilder]): Builds the output map from
            the surface and the values; `PiecewiseLinearMap` by default.
        verbose (Optional[bool]): Log solve diagnostics at INFO level. Taken
            from the package configuration when None.
    """

    def __init__(
        self,
        mesh: Optional[SurfaceMesh] = None,
        values: Optional[ArrayLike] = None,
        mask: Optional[ArrayLike] = None,
        *,
        remesh: Optional[RemeshFunction] = None,
        output_builder: Optional[OutputBuilder] = None,
        verbose: Optional[bool] = None,
    ) -> None:
        self.mesh = mesh
        self.input = values
        self.mask = mask
        self.remesh = remesh
        self.output_builder = output_builder
        self.verbose = config.verbose if verbose is None else bool(verbose)

        self._surface: Optional[SurfaceMesh] = None
        self._values: Optional[NDArray[Any]] = None
        self._fixed: Optional[NDArray[Any]] = None
        self._partition: Optional[PointPartition] = None
        self._output: Any = None
        self._state = MapperState.UNINITIALIZED

    # ------------------------------------------------------------------ state

    @property
    def state(self) -> MapperState:
        return self._state

    @property
    def surface(self) -> SurfaceMesh:
        """Working copy of the input surface (after initialize)."""
        self._require(MapperState.INITIALIZED, "surface")
        assert self._surface is not None
        return self._surface

    @property
    def values(self) -> NDArray[Any]:
        """Map values of all working surface points, shape (n_points, m)."""
        self._require(MapperState.INITIALIZED, "values")
        assert self._values is not None
        return self._values

    @property
    def fixed_mask(self) -> NDArray[Any]:
        """Effective fixed point mask (after initialize)."""
        self._require(MapperState.INITIALIZED, "fixed_mask")
        assert self._fixed is not None
        return self._fixed

    @property
    def partition(self) -> PointPartition:
        self._require(MapperState.INITIALIZED, "partition")
        assert self._partition is not None
        return self._partition

    @property
    def fixed_points(self) -> NDArray[Any]:
        return self.partition.fixed_points

    @property
    def free_points(self) -> NDArray[Any]:
        return self.partition.free_points

    @property
    def output(self) -> Any:
        """Output map, or None before finalize."""
        return self._output

    @property
    def number_of_points(self) -> int:
        return self.surface.number_of_points

    @property
    def number_of_fixed_points(self) -> int:
        return self.partition.number_of_fixed_points

    @property
    def number_of_free_points(self) -> int:
        return self.partition.number_of_free_points

    @property
    def number_of_components(self) -> int:
        return int(self.values.shape[1])

    def point_index(self, ptId: int) -> PointIndex:
        return self.partition.index(ptId)

    def is_fixed_point(self, ptId: int) -> bool:
        return self.partition.is_fixed(ptId)

    def get_value(self, ptId: int, l: int = 0) -> float:
        return float(self.values[ptId, l])

    def set_value(self, ptId: int, l: int, value: float) -> None:
        self.values[ptId, l] = value

    def _require(self, state: MapperState, what: str) -> None:
        if self._state < state:
            _LOGGER.error(
                "%s.%s: requires state %s, mapper is %s.",
                type(self).__name__,
                what,
                state.name,
                self._state.name,
            )
            raise MapperStateError(
                f"{type(self).__name__}.{what}: call initialize() first"
            )

    # -------------------------------------------------------------- execution

    def run(self) -> Any:
        """Initialize, solve and finalize; return the output map."""
        self.initialize()
        self.solve()
        return self.finalize()

    def _fail(self, error: type, where: str, message: str) -> NoReturn:
        _LOGGER.error("%s::%s: %s", type(self).__name__, where, message)
        raise error(f"{type(self).__name__}::{where}: {message}")

    def initialize(self) -> None:
        """Validate the input and set up the working surface and partition.

        Raises:
            MissingSurfaceError: No input surface.
            NotASurfaceError: The input surface has no triangles.
            InvalidValuesError: The values do not match the number of points.
            InvalidMaskError: The mask does not match the number of points.
            MissingBoundaryConditionsError: No values were given.
        """
        # Free previous output map
        self._output = None
        self._state = MapperState.UNINITIALIZED

        if self.mesh is None:
            self._fail(MissingSurfaceError, "initialize", "Missing input surface mesh")
        assert self.mesh is not None
        if self.mesh.number_of_triangles == 0:
            self._fail(
                NotASurfaceError,
                "initialize",
                "Input point set must be a surface mesh",
            )
        n_points = self.mesh.number_of_points
        if self.input is not None:
            n_values = np.shape(self.input)[0] if np.ndim(self.input) else None
            if n_values != n_points:
                self._fail(
                    InvalidValuesError,
                    "initialize",
                    f"Invalid input map values array ({n_values} values "
                    f"for {n_points} points)",
                )
        if self.mask is not None:
            n_entries = np.shape(self.mask)[0] if np.ndim(self.mask) else None
            if n_entries != n_points:
                self._fail(
                    InvalidMaskError,
                    "initialize",
                    f"Invalid input mask ({n_entries} entries for {n_points} points)",
                )

        # Working surface: points and triangles only
        surface = self.mesh.surface_copy()
        values = self._initialize_values()
        mask = None if self.mask is None else self._as_mask(self.mask, "initialize")

        if self.remesh is not None:
            result = self.remesh(surface, values, mask)
            if result is not None:
                surface, values, mask = result
                values = self._as_values(values, "remesh")
                if values.shape[0] != surface.number_of_points:
                    self._fail(
                        InvalidValuesError,
                        "remesh",
                        "Remeshed map values do not match the surface points",
                    )
                if mask is not None:
                    mask = self._as_mask(mask, "remesh")
                    if mask.shape[0] != surface.number_of_points:
                        self._fail(
                            InvalidMaskError,
                            "remesh",
                            "Remeshed mask does not match the surface points",
                        )
                _LOGGER.debug(
                    "%s: remeshed surface has %d points and %d triangles.",
                    type(self).__name__,
                    surface.number_of_points,
                    surface.number_of_triangles,
                )

        self._surface = surface
        self._values = values
        self._fixed = mask
        self._initialize_mask()
        self._partition = PointPartition(self._fixed)
        self._state = MapperState.INITIALIZED

        _LOGGER.debug(
            "%s initialized: points=%d fixed=%d free=%d components=%d",
            type(self).__name__,
            surface.number_of_points,
            self._partition.number_of_fixed_points,
            self._partition.number_of_free_points,
            values.shape[1],
        )

    def _as_values(self, values: ArrayLike, where: str) -> NDArray[Any]:
        vals = np.array(values, dtype=float)
        if vals.ndim == 1:
            vals = vals[:, None]
        if vals.ndim != 2:
            self._fail(
                InvalidValuesError,
                where,
                f"Map values must be 1-D or 2-D, got shape {vals.shape}",
            )
        return vals

    def _as_mask(self, mask: ArrayLike, where: str) -> NDArray[Any]:
        arr = np.array(mask)
        # Only the first component marks fixed points
        if arr.ndim == 2 and arr.shape[1] > 0:
            arr = arr[:, 0]
        if arr.ndim != 1:
            self._fail(
                InvalidMaskError,
                where,
                f"Mask must be 1-D or 2-D, got shape {arr.shape}",
            )
        return arr

    def _initialize_values(self) -> NDArray[Any]:
        if self.input is None:
            self._fail(
                MissingBoundaryConditionsError,
                "initialize_values",
                "Missing boundary conditions",
            )
        return self._as_values(self.input, "initialize_values")

    def _initialize_mask(self) -> None:
        if self._fixed is None:
            self._fixed = self.boundary_mask()

    def boundary_mask(self) -> NDArray[Any]:
        """Return the topological boundary mask of the working surface."""
        return boundary_mask(self.surface)

    @abc.abstractmethod
    def solve(self) -> Any:
        """Compute the values at the free points."""

    def finalize(self) -> Any:
        """Wrap the working surface and values into the output map.

        Does nothing when the output map already exists.
        """
        self._require(MapperState.INITIALIZED, "finalize")
        if self._output is None:
            builder = self.output_builder or PiecewiseLinearMap
            self._output = builder(self.surface, self.values)
        self._state = MapperState.FINALIZED
        return self._output

    # ------------------------------------------------------------------- copy

    def copy(self) -> SurfaceMapper:
        """Return an independent copy of this mapper.

        Values, masks, working surface, partition and output are copied; the
        input surface is shared since mappers never modify it.
        """
        other = copy.copy(self)
        if self.input is not None:
            other.input = np.array(self.input)
        if self.mask is not None:
            other.mask = np.array(self.mask)
        if self._surface is not None:
            other._surface = self._surface.surface_copy()
        if self._values is not None:
            other._values = self._values.copy()
        if self._fixed is not None:
            other._fixed = self._fixed.copy()
        other._partition = copy.deepcopy(self._partition)
        if self._output is not None:
            copier = getattr(self._output, "copy", None)
            if callable(copier):
                other._output = copier()
            else:
                other._output = copy.deepcopy(self._output)
        return other


class LinearSurfaceMapper(SurfaceMapper):
    """Base class of mappers solving a sparse linear system of edge weights.

    Args:
        weight (Union[str, EdgeWeight]): Edge weight strategy or its name.
        max_iterations (Optional[int]): Solver iteration cap; non-positive
            selects the solver default, None the package configuration.
        tolerance (Optional[float]): Solver tolerance; non-positive selects
            the solver default, None the package configuration.
        **kwargs: Forwarded to `SurfaceMapper`.
    """

    default_weight: type = CotangentWeight

    def __init__(
        self,
        mesh: Optional[SurfaceMesh] = None,
        values: Optional[ArrayLike] = None,
        mask: Optional[ArrayLike] = None,
        *,
        weight: Union[str, EdgeWeight, None] = None,
        max_iterations: Optional[int] = None,
        tolerance: Optional[float] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(mesh, values, mask, **kwargs)
        self.weight = self.default_weight() if weight is None else get_weight(weight)
        self.max_iterations = (
            config.max_iterations if max_iterations is None else int(max_iterations)
        )
        self.tolerance = config.tolerance if tolerance is None else float(tolerance)
        self.report: Optional[SolveReport] = None

    def weight_of(self, i: int, j: int) -> float:
        """Return the weight of surface edge (i, j) as seen from point i."""
        return self.weight(self.surface, i, j)

    @contextlib.contextmanager
    def _diagnostics(self) -> Iterator[None]:
        """Let verbose solves report at INFO whatever the package log level."""
        if not self.verbose or _LOGGER.isEnabledFor(logging.INFO):
            yield
            return
        level = _LOGGER.level
        _LOGGER.setLevel(logging.INFO)
        try:
            yield
        finally:
            _LOGGER.setLevel(level)

    @abc.abstractmethod
    def make_solver(self) -> Any:
        """Return the linear solver of the stiffness system."""

    def solve(self) -> SolveReport:
        """Assemble the stiffness system and solve for the free point values.

        The current free point values are the initial guess. Only free point
        values are modified; a solve that does not converge is kept.

        Returns:
            Diagnostics of the solve (also stored as `report`).
        """
        if self._state not in (MapperState.INITIALIZED, MapperState.SOLVED):
            self._require(MapperState.INITIALIZED, "solve")
            raise MapperStateError(
                f"{type(self).__name__}.solve: mapper already finalized; "
                "call initialize() first"
            )

        surface = self.surface
        partition = self.partition
        values = self.values

        edges = surface.edge_table()
        weights = self.weight.edge_weights(
            surface, edges, active_edges(edges, partition)
        )
        system = assemble_stiffness_system(edges, partition, weights, values)

        n = partition.number_of_free_points
        m = values.shape[1]
        free = partition.free_points
        log = _LOGGER.info if self.verbose else _LOGGER.debug
        with self._diagnostics():
            log("  No. of surface points             = %d", surface.number_of_points)
            log("  No. of free points                = %d", n)
            log("  No. of non-zero stiffness values  = %d", system.number_of_nonzeros)
            log("  Dimension of surface map codomain = %d", m)

            result: SolverResult = self.make_solver().solve(
                system.A, system.b, values[free]
            )
            values[free] = result.x

            log("  No. of iterations                 = %d", result.iterations)
            log("  Estimated error                   = %g", result.error)

        self.report = SolveReport(
            number_of_points=surface.number_of_points,
            number_of_free_points=n,
            number_of_nonzeros=system.number_of_nonzeros,
            number_of_components=m,
            iterations=result.iterations,
            error=result.error,
            converged=result.converged,
        )
        self._state = MapperState.SOLVED
        return self.report


class SymmetricLinearSurfaceMapper(LinearSurfaceMapper):
    """Linear surface mapper for symmetric edge weights.

    The stiffness matrix is symmetric by construction and solved with
    Jacobi-preconditioned conjugate gradients. Cotangent weights (discrete
    harmonic map) are used by default.

    Raises:
        ValueError: If the edge weight strategy is not symmetric.
    """

    default_weight = CotangentWeight

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        if not self.weight.symmetric:
            _LOGGER.error(
                "%s: edge weight %r is not symmetric.",
                type(self).__name__,
                self.weight,
            )
            raise ValueError(
                f"{type(self).__name__} requires symmetric edge weights, "
                f"got {self.weight!r}"
            )

    def make_solver(self) -> ConjugateGradientSolver:
        return ConjugateGradientSolver(self.max_iterations, self.tolerance)


class AsymmetricLinearSurfaceMapper(LinearSurfaceMapper):
    """Linear surface mapper for directed edge weights.

    The equation of a free point uses the weights as seen from that point, so
    the stiffness matrix is not symmetric; it is solved with BiCGSTAB. Mean
    value weights are used by default.
    """

    default_weight = MeanValueWeight

    def make_solver(self) -> BiCGStabSolver:
        return BiCGStabSolver(self.max_iterations, self.tolerance)


def linear_surface_mapper(
    mesh: Optional[SurfaceMesh] = None,
    values: Optional[ArrayLike] = None,
    mask: Optional[ArrayLike] = None,
    *,
    weight: Union[str, EdgeWeight] = "cotangent",
    **kwargs: Any,
) -> LinearSurfaceMapper:
    """Return the linear surface mapper matching the symmetry of `weight`."""
    w = get_weight(weight)
    cls: type[LinearSurfaceMapper] = AsymmetricLinearSurfaceMapper
    if w.symmetric:
        cls = SymmetricLinearSurfaceMapper
    return cls(mesh, values, mask, weight=w, **kwargs)


def map_to_disk(
    mesh: SurfaceMesh,
    weight: Union[str, EdgeWeight] = "cotangent",
    radius: float = 1.0,
    **kwargs: Any,
) -> PiecewiseLinearMap:
    """Map a surface with boundary onto a disk.

    The longest boundary loop is placed on the circle of `radius` by arc
    length and all other points are solved for.

    Args:
        mesh: Surface with at least one boundary loop.
        weight: Edge weight strategy or name.
        radius: Disk radius.
        **kwargs: Forwarded to the mapper (max_iterations, tolerance, ...).

    Returns:
        The piecewise linear disk map (2 components).
    """
    values, mask = circle_boundary_values(mesh, radius=radius)
    mapper = linear_surface_mapper(mesh, values, mask, weight=weight, **kwargs)
    return mapper.run()
