"""The surface_map package computes fixed-boundary maps of triangulated surfaces.

This package offers:
  - Discrete harmonic (and other linear) maps of surface meshes onto a disk,
    square or any domain given by fixed boundary values.
  - Pluggable edge weights (uniform, chord length, cotangent, mean value).
  - Piecewise linear output maps that can be evaluated anywhere on the surface.

Submodules:
  - boundary: Boundary detection and boundary value generators.
  - config: Solver defaults and logging configuration.
  - edge_table: Undirected edge enumeration and adjacency queries.
  - errors: Exceptions raised for invalid mapper input.
  - mapper: Surface mappers (initialize, solve, finalize).
  - mesh: SurfaceMesh class with geometry, topology and I/O.
  - partition: Fixed/free point partition.
  - piecewise_linear_map: Default output map.
  - solver: Iterative sparse solvers (CG, BiCGSTAB).
  - stiffness: Stiffness system assembly.
  - weights: Edge weight strategies.

Classes:
  SurfaceMesh, EdgeTable, PointPartition, SymmetricLinearSurfaceMapper,
  AsymmetricLinearSurfaceMapper, PiecewiseLinearMap
"""

from .config import (
    config,
    configure,
    use,
    settings,
    set_log_level,
)

from surface_map.boundary import (
    boundary_loops,
    boundary_mask,
    circle_boundary_values,
    square_boundary_values,
)
from surface_map.edge_table import EdgeTable
from surface_map.errors import (
    InvalidMaskError,
    InvalidValuesError,
    MapperStateError,
    MissingBoundaryConditionsError,
    MissingSurfaceError,
    NotASurfaceError,
    SurfaceMapperError,
)
from surface_map.mapper import (
    AsymmetricLinearSurfaceMapper,
    LinearSurfaceMapper,
    MapperState,
    SolveReport,
    SurfaceMapper,
    SymmetricLinearSurfaceMapper,
    linear_surface_mapper,
    map_to_disk,
)
from surface_map.mesh import SurfaceMesh
from surface_map.partition import Fixed, Free, PointPartition
from surface_map.piecewise_linear_map import PiecewiseLinearMap
from surface_map.solver import BiCGStabSolver, ConjugateGradientSolver, SolverResult
from surface_map.stiffness import StiffnessSystem, assemble_stiffness_system
from surface_map.weights import (
    CallableWeight,
    ChordLengthWeight,
    CotangentWeight,
    EdgeWeight,
    MeanValueWeight,
    UniformWeight,
    get_weight,
)

__all__ = [
    # Core classes
    "SurfaceMesh",
    "EdgeTable",
    "PointPartition",
    "Fixed",
    "Free",
    "SurfaceMapper",
    "LinearSurfaceMapper",
    "SymmetricLinearSurfaceMapper",
    "AsymmetricLinearSurfaceMapper",
    "MapperState",
    "SolveReport",
    "PiecewiseLinearMap",
    "StiffnessSystem",
    "assemble_stiffness_system",
    "ConjugateGradientSolver",
    "BiCGStabSolver",
    "SolverResult",
    # Edge weights
    "EdgeWeight",
    "UniformWeight",
    "ChordLengthWeight",
    "CotangentWeight",
    "MeanValueWeight",
    "CallableWeight",
    "get_weight",
    # Boundary helpers
    "boundary_mask",
    "boundary_loops",
    "circle_boundary_values",
    "square_boundary_values",
    "linear_surface_mapper",
    "map_to_disk",
    # Errors
    "SurfaceMapperError",
    "MissingSurfaceError",
    "NotASurfaceError",
    "InvalidValuesError",
    "InvalidMaskError",
    "MissingBoundaryConditionsError",
    "MapperStateError",
    # Configuration
    "config",
    "configure",
    "use",
    "settings",
    "set_log_level",
]
