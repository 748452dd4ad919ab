"""Tests for the surface mappers (initialize -> solve -> finalize)."""

import logging

import numpy as np
import pytest

from surface_map.config import set_log_level, use
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
    SurfaceMapper,
    SymmetricLinearSurfaceMapper,
    linear_surface_mapper,
    map_to_disk,
)
from surface_map.mesh import SurfaceMesh
from surface_map.partition import Fixed, Free
from surface_map.piecewise_linear_map import PiecewiseLinearMap
from surface_map.weights import MeanValueWeight, UniformWeight


def _bilinear(corners, x, y):
    """Bilinear interpolation of the values at (0,0), (1,0), (1,1), (0,1)."""
    c00, c10, c11, c01 = (np.asarray(c, dtype=float) for c in corners)
    x = np.asarray(x)[:, None]
    y = np.asarray(y)[:, None]
    return (
        c00 * (1 - x) * (1 - y)
        + c10 * x * (1 - y)
        + c11 * x * y
        + c01 * (1 - x) * y
    )


def _boundary_conditions(mesh, func):
    """Values equal to `func` on the boundary and zero elsewhere."""
    on = np.zeros(mesh.number_of_points, dtype=bool)
    on[mesh.boundary_points()] = True
    values = np.zeros((mesh.number_of_points, 2))
    values[on] = func(mesh.verts[on])
    return values, on.astype(np.uint8)


# ----------------------------------------------------------------- accuracy


def test_unit_square_uniform_weights_reproduce_affine_corner_data(make_grid):
    # Uniform weights on a diagonal-split grid only reproduce corner data whose
    # bilinear interpolant has no xy term, i.e. an affine map.
    mesh = make_grid(6)
    corners = [(0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0)]
    values, mask = _boundary_conditions(
        mesh, lambda p: _bilinear(corners, p[:, 0], p[:, 1])
    )

    mapper = SymmetricLinearSurfaceMapper(mesh, values, mask, weight="uniform")
    out = mapper.run()

    assert isinstance(out, PiecewiseLinearMap)
    assert mapper.report.converged
    np.testing.assert_allclose(out.values, mesh.verts[:, :2], atol=1e-8)


def test_cotangent_weights_reproduce_affine_map(make_grid):
    mesh = make_grid(7, jitter=0.15, seed=0)
    affine = np.array([[2.0, -1.0], [0.5, 3.0]])
    shift = np.array([0.25, -4.0])
    values, mask = _boundary_conditions(mesh, lambda p: p[:, :2] @ affine + shift)

    out = SymmetricLinearSurfaceMapper(mesh, values, mask).run()

    expected = mesh.verts[:, :2] @ affine + shift
    np.testing.assert_allclose(out.values, expected, atol=1e-8)


def test_mean_value_weights_reproduce_affine_map(make_grid):
    mesh = make_grid(7, jitter=0.15, seed=2)
    values, mask = _boundary_conditions(mesh, lambda p: p[:, :2] * [3.0, -2.0])

    mapper = AsymmetricLinearSurfaceMapper(mesh, values, mask)
    out = mapper.run()

    assert isinstance(mapper.weight, MeanValueWeight)
    expected = mesh.verts[:, :2] * [3.0, -2.0]
    np.testing.assert_allclose(out.values, expected, atol=1e-8)


def test_scalar_values_and_three_components(make_grid):
    mesh = make_grid(5)
    x = mesh.verts[:, 0]
    mask = np.zeros(mesh.number_of_points, dtype=np.uint8)
    mask[mesh.boundary_points()] = 1

    out = SymmetricLinearSurfaceMapper(mesh, np.where(mask, x, 0.0), mask).run()
    assert out.number_of_components == 1
    np.testing.assert_allclose(out.values[:, 0], x, atol=1e-8)

    xyz = np.where(mask[:, None], mesh.verts, 0.0)
    out3 = SymmetricLinearSurfaceMapper(mesh, xyz, mask).run()
    assert out3.number_of_components == 3
    np.testing.assert_allclose(out3.values, mesh.verts, atol=1e-8)


# --------------------------------------------------------------- validation


def test_zero_triangle_mesh_is_not_a_surface():
    rng = np.random.default_rng(0)
    mesh = SurfaceMesh(
        verts=rng.random((10, 3)), connectivity=np.zeros((0, 3), dtype=int)
    )
    mapper = SymmetricLinearSurfaceMapper(mesh, np.zeros(10))

    with pytest.raises(NotASurfaceError):
        mapper.initialize()
    assert mapper.state == MapperState.UNINITIALIZED


def test_run_stops_before_solve_on_invalid_input(monkeypatch):
    mesh = SurfaceMesh(
        verts=np.zeros((4, 3)), connectivity=np.zeros((0, 3), dtype=int)
    )
    mapper = SymmetricLinearSurfaceMapper(mesh, np.zeros(4))

    def fail_solve():
        raise AssertionError("solve must not run")

    monkeypatch.setattr(mapper, "solve", fail_solve)
    with pytest.raises(NotASurfaceError):
        mapper.run()


def test_values_length_mismatch(make_grid):
    mesh = make_grid(10)
    assert mesh.number_of_points == 100

    mapper = SymmetricLinearSurfaceMapper(mesh, np.zeros((99, 2)))
    with pytest.raises(InvalidValuesError):
        mapper.initialize()


def test_mask_length_mismatch(make_grid):
    mesh = make_grid(4)
    mapper = SymmetricLinearSurfaceMapper(
        mesh, np.zeros(16), np.ones(15, dtype=np.uint8)
    )
    with pytest.raises(InvalidMaskError):
        mapper.initialize()


def test_missing_surface_and_values(make_grid):
    with pytest.raises(MissingSurfaceError):
        SymmetricLinearSurfaceMapper().initialize()
    with pytest.raises(MissingBoundaryConditionsError):
        SymmetricLinearSurfaceMapper(make_grid(3)).initialize()


def test_scalar_values_and_mask_are_rejected(make_grid):
    mesh = make_grid(3)
    with pytest.raises(InvalidValuesError):
        SymmetricLinearSurfaceMapper(mesh, 1.0).initialize()
    with pytest.raises(InvalidMaskError):
        SymmetricLinearSurfaceMapper(mesh, np.zeros(9), 1).initialize()


def test_input_errors_are_value_errors():
    for cls in (
        MissingSurfaceError,
        NotASurfaceError,
        InvalidValuesError,
        InvalidMaskError,
        MissingBoundaryConditionsError,
    ):
        assert issubclass(cls, SurfaceMapperError)
        assert issubclass(cls, ValueError)


def test_symmetric_mapper_rejects_directed_weights():
    with pytest.raises(ValueError):
        SymmetricLinearSurfaceMapper(weight=MeanValueWeight())


def test_base_mappers_are_abstract():
    with pytest.raises(TypeError):
        SurfaceMapper()
    with pytest.raises(TypeError):
        LinearSurfaceMapper()


def test_mapper_selection_by_weight_symmetry(make_grid):
    mesh = make_grid(3)
    assert isinstance(
        linear_surface_mapper(mesh, weight="cotangent"), SymmetricLinearSurfaceMapper
    )
    assert isinstance(
        linear_surface_mapper(mesh, weight="mean_value"), AsymmetricLinearSurfaceMapper
    )


# --------------------------------------------------------------- invariants


def test_fixed_values_are_bit_identical(make_grid):
    mesh = make_grid(6, jitter=0.1, seed=4)
    rng = np.random.default_rng(9)
    values = rng.normal(size=(mesh.number_of_points, 2))
    mask = rng.integers(0, 2, size=mesh.number_of_points)
    mask[mesh.boundary_points()] = 1
    original = values.copy()

    mapper = SymmetricLinearSurfaceMapper(mesh, values, mask)
    out = mapper.run()

    fixed = mask.astype(bool)
    np.testing.assert_array_equal(out.values[fixed], original[fixed])
    # The input array itself is not modified
    np.testing.assert_array_equal(values, original)


def test_all_points_fixed_is_a_no_op(make_grid):
    mesh = make_grid(4)
    values = np.arange(32.0).reshape(16, 2)

    mapper = SymmetricLinearSurfaceMapper(mesh, values, np.ones(16))
    mapper.initialize()
    report = mapper.solve()

    assert report.number_of_free_points == 0
    assert report.number_of_nonzeros == 0
    assert report.iterations == 0
    np.testing.assert_array_equal(mapper.values, values)


def test_multi_component_mask_uses_first_component(make_grid):
    mesh = make_grid(3)
    mask = np.zeros((9, 2), dtype=np.uint8)
    mask[:, 1] = 1
    mask[[0, 8], 0] = 1

    mapper = SymmetricLinearSurfaceMapper(mesh, np.zeros(9), mask)
    mapper.initialize()
    np.testing.assert_array_equal(mapper.fixed_points, [0, 8])
    assert mapper.fixed_mask.shape == (9,)


def test_default_mask_is_topological_boundary(make_grid):
    mesh = make_grid(5)
    mapper = SymmetricLinearSurfaceMapper(mesh, np.zeros(25))
    mapper.initialize()

    np.testing.assert_array_equal(mapper.fixed_points, mesh.boundary_points())
    assert mapper.number_of_free_points == 9
    assert mapper.point_index(0) == Fixed(0)
    assert mapper.point_index(6) == Free(0)
    assert mapper.is_fixed_point(4)
    assert not mapper.is_fixed_point(12)


def test_working_surface_drops_auxiliary_primitives(two_triangle_square):
    mesh = SurfaceMesh(
        verts=two_triangle_square.verts,
        connectivity=two_triangle_square.connectivity,
        lines=np.array([[1, 3]]),
        point_data={"label": np.arange(4)},
    )
    mapper = SymmetricLinearSurfaceMapper(mesh, np.zeros(4))
    mapper.initialize()

    assert mapper.surface is not mesh
    assert mapper.surface.lines.shape == (0, 2)
    assert mapper.surface.point_data == {}
    assert mesh.lines.shape == (1, 2)


def test_report_and_warm_restart(make_grid):
    mesh = make_grid(8, jitter=0.1, seed=5)
    values, mask = _boundary_conditions(mesh, lambda p: p[:, :2] ** 2)

    mapper = SymmetricLinearSurfaceMapper(mesh, values, mask)
    mapper.initialize()
    first = mapper.solve()
    after_first = mapper.values.copy()
    second = mapper.solve()

    assert first.number_of_points == 64
    assert first.number_of_free_points == 36
    assert first.number_of_components == 2
    assert first.number_of_nonzeros > 36
    assert first.converged and second.converged
    assert second.iterations <= first.iterations
    assert second.error < 1e-10
    np.testing.assert_allclose(mapper.values, after_first, atol=1e-10)
    assert mapper.state == MapperState.SOLVED


def test_iteration_cap_keeps_partial_solution(make_grid):
    mesh = make_grid(10)
    values, mask = _boundary_conditions(mesh, lambda p: p[:, :2])

    mapper = SymmetricLinearSurfaceMapper(mesh, values, mask, max_iterations=1)
    mapper.initialize()
    report = mapper.solve()

    assert report.iterations == 1
    assert not report.converged
    assert np.all(np.isfinite(mapper.values))


def test_solver_defaults_come_from_config():
    with use(max_iterations=7, tolerance=1e-6, verbose=True):
        mapper = SymmetricLinearSurfaceMapper()
    assert mapper.max_iterations == 7
    assert mapper.tolerance == 1e-6
    assert mapper.verbose is True

    explicit = SymmetricLinearSurfaceMapper(
        max_iterations=3, tolerance=1e-4, verbose=False
    )
    assert explicit.max_iterations == 3
    assert explicit.tolerance == 1e-4
    assert explicit.verbose is False


def test_verbose_logs_solve_diagnostics(make_grid, caplog):
    mesh = make_grid(4)
    values, mask = _boundary_conditions(mesh, lambda p: p[:, :2])

    caplog.set_level(logging.INFO, logger="surface_map.mapper")
    SymmetricLinearSurfaceMapper(mesh, values, mask, verbose=True).run()
    messages = [r.getMessage().strip() for r in caplog.records]
    assert any(
        m.startswith("No. of free points") and m.endswith("= 4") for m in messages
    )
    assert "No. of iterations" in caplog.text

    caplog.clear()
    SymmetricLinearSurfaceMapper(mesh, values, mask, verbose=False).run()
    assert "No. of free points" not in caplog.text


def test_verbose_reports_under_default_log_level(make_grid, caplog):
    mesh = make_grid(4)
    values, mask = _boundary_conditions(mesh, lambda p: p[:, :2])
    package = logging.getLogger("surface_map")
    level = package.level

    set_log_level("WARNING")
    try:
        SymmetricLinearSurfaceMapper(mesh, values, mask, verbose=True).run()
        quiet = not logging.getLogger("surface_map.mapper").isEnabledFor(
            logging.INFO
        )
    finally:
        package.setLevel(level)

    assert "No. of free points" in caplog.text
    assert "Estimated error" in caplog.text
    # The mapper logger is back to the package level after the solve
    assert quiet


# ------------------------------------------------------------ state machine


def test_stage_order_is_enforced(make_grid):
    mesh = make_grid(4)
    values, mask = _boundary_conditions(mesh, lambda p: p[:, :2])
    mapper = SymmetricLinearSurfaceMapper(mesh, values, mask)

    assert mapper.state == MapperState.UNINITIALIZED
    assert mapper.output is None
    with pytest.raises(MapperStateError):
        mapper.solve()
    with pytest.raises(MapperStateError):
        mapper.finalize()
    with pytest.raises(MapperStateError):
        mapper.values

    mapper.initialize()
    assert mapper.state == MapperState.INITIALIZED
    mapper.solve()
    out = mapper.finalize()
    assert mapper.state == MapperState.FINALIZED

    # Finalize is idempotent, solve after finalize is not allowed
    assert mapper.finalize() is out
    with pytest.raises(MapperStateError):
        mapper.solve()

    # Re-initializing discards the output
    mapper.initialize()
    assert mapper.output is None
    assert mapper.state == MapperState.INITIALIZED


def test_get_and_set_value(make_grid):
    mesh = make_grid(3)
    mapper = SymmetricLinearSurfaceMapper(mesh, np.arange(9.0))
    mapper.initialize()

    assert mapper.get_value(4) == 4.0
    mapper.set_value(4, 0, -1.0)
    assert mapper.get_value(4) == -1.0
    assert mapper.number_of_components == 1


def test_weight_of_uses_working_surface(two_triangle_square):
    mapper = SymmetricLinearSurfaceMapper(two_triangle_square, np.zeros(4))
    mapper.initialize()
    assert mapper.weight_of(0, 1) == pytest.approx(0.5)
    assert mapper.weight_of(0, 2) == pytest.approx(0.0)


# ------------------------------------------------------------------- hooks


def test_remesh_hook_replaces_working_surface(make_grid):
    coarse = make_grid(3)
    fine = make_grid(5)
    calls = []

    def remesh(surface, values, mask):
        calls.append((surface.number_of_points, values.shape, mask))
        new_values, new_mask = _boundary_conditions(fine, lambda p: p[:, :2])
        return fine, new_values, new_mask

    mapper = SymmetricLinearSurfaceMapper(coarse, np.zeros((9, 2)), remesh=remesh)
    out = mapper.run()

    assert calls == [(9, (9, 2), None)]
    assert mapper.surface is fine
    assert out.values.shape == (25, 2)
    np.testing.assert_allclose(out.values, fine.verts[:, :2], atol=1e-8)


def test_remesh_hook_may_keep_surface(make_grid):
    mesh = make_grid(3)
    mapper = SymmetricLinearSurfaceMapper(
        mesh, np.zeros(9), remesh=lambda surface, values, mask: None
    )
    mapper.initialize()
    assert mapper.number_of_points == 9


def test_remesh_hook_result_is_validated(make_grid):
    mesh = make_grid(3)

    def bad_remesh(surface, values, mask):
        return surface, values[:-1], mask

    mapper = SymmetricLinearSurfaceMapper(mesh, np.zeros(9), remesh=bad_remesh)
    with pytest.raises(InvalidValuesError):
        mapper.initialize()


def test_output_builder(make_grid):
    mesh = make_grid(4)
    values, mask = _boundary_conditions(mesh, lambda p: p[:, :2])
    seen = {}

    def builder(surface, vals):
        seen["surface"] = surface
        return {"uv": vals.copy()}

    mapper = SymmetricLinearSurfaceMapper(mesh, values, mask, output_builder=builder)
    out = mapper.run()

    assert seen["surface"] is mapper.surface
    np.testing.assert_allclose(out["uv"], mesh.verts[:, :2], atol=1e-8)


# -------------------------------------------------------------------- copy


def test_copy_is_independent(make_grid):
    mesh = make_grid(4)
    values, mask = _boundary_conditions(mesh, lambda p: p[:, :2])
    mapper = SymmetricLinearSurfaceMapper(mesh, values, mask, weight=UniformWeight())
    mapper.run()

    other = mapper.copy()
    assert other.state == MapperState.FINALIZED
    assert other.output is not mapper.output
    np.testing.assert_array_equal(other.output.values, mapper.output.values)

    other.initialize()
    other.set_value(5, 0, 100.0)
    assert mapper.get_value(5, 0) != 100.0
    assert mapper.state == MapperState.FINALIZED
    assert other.surface is not mapper.surface


# ------------------------------------------------------------------- disk


def test_map_to_disk(make_grid):
    mesh = make_grid(6)
    out = map_to_disk(mesh, radius=2.0)

    on = np.zeros(mesh.number_of_points, dtype=bool)
    on[mesh.boundary_points()] = True
    r = np.linalg.norm(out.values, axis=1)
    np.testing.assert_allclose(r[on], 2.0)
    assert np.all(r[~on] < 2.0)


def test_map_to_disk_mean_value(make_grid):
    mesh = make_grid(5, jitter=0.1, seed=8)
    out = map_to_disk(mesh, weight="mean_value")
    r = np.linalg.norm(out.values, axis=1)
    assert np.all(r <= 1.0 + 1e-12)
