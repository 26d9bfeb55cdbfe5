import math

import numpy as np
import pytest

from surfacelab.basis import clamped_knot_vector
from surfacelab.errors import InvalidSurfaceError, KnotInsertionError
from surfacelab.geometry import (
    ControlGrid, ControlPoint, NurbsSurface, Vec3, create_bezier_patch, create_grid,
)
from surfacelab.presets import surface_from_zfunc
## unit tests for surfacelab geometry.py


def wavy_rational_surface():
    """A 3x2-span cubic surface with height variation and non-unit weights."""
    surf = surface_from_zfunc(3, 2, lambda u, v: math.sin(3 * u) * math.cos(2 * v),
                              weight=lambda u, v: 1.0 + 0.5 * u * v)
    return surf


SAMPLE_UVS = [(0.0, 0.0), (0.13, 0.77), (0.5, 0.5), (0.91, 0.2), (1.0, 1.0), (0.42, 0.0)]


class TestFactories:

    def test_bezier_patch(self):
        s = create_bezier_patch()
        assert (s.degree_u, s.degree_v) == (3, 3)
        assert (s.cp_count_u, s.cp_count_v) == (4, 4)
        assert (s.span_count_u, s.span_count_v) == (1, 1)
        assert s.knots_u == [0.0] * 4 + [1.0] * 4
        assert all(cp.w == 1.0 for cp in s.grid.points)
        assert s.control_point(0, 0) == Vec3(-1.0, 0.0, -1.0)
        assert s.control_point(3, 3) == Vec3(1.0, 0.0, 1.0)

    def test_grid(self):
        s = create_grid(3, 2)
        assert (s.cp_count_u, s.cp_count_v) == (6, 5)
        assert (s.span_count_u, s.span_count_v) == (3, 2)
        assert len(s.knots_u) == s.cp_count_u + s.degree_u + 1
        assert s.knots_u == clamped_knot_vector(3, 6)

    def test_grid_rejects_zero_spans(self):
        with pytest.raises(InvalidSurfaceError):
            create_grid(0, 2)


class TestValidation:

    def test_wrong_knot_count(self):
        grid = create_bezier_patch().grid
        with pytest.raises(InvalidSurfaceError):
            NurbsSurface(3, 3, [0, 0, 0, 1, 1, 1], [0] * 4 + [1] * 4, grid)

    def test_non_monotonic_knots(self):
        grid = create_grid(2, 1).grid
        with pytest.raises(InvalidSurfaceError):
            NurbsSurface(3, 3, [0, 0, 0, 0, 0.6, 1, 1, 1, 1][::-1], [0] * 4 + [1] * 4, grid)

    def test_non_positive_weight(self):
        pts = [ControlPoint(Vec3(i, 0, j), 0.0 if (i, j) == (1, 1) else 1.0)
               for i in range(2) for j in range(2)]
        with pytest.raises(InvalidSurfaceError):
            NurbsSurface(1, 1, [0, 0, 1, 1], [0, 0, 1, 1], ControlGrid(2, 2, pts))

    def test_bad_degree(self):
        pts = [ControlPoint(Vec3(i, 0, 0)) for i in range(2)]
        with pytest.raises(InvalidSurfaceError):
            NurbsSurface(0, 1, [0, 1, 1], [0, 0, 1, 1], ControlGrid(1, 2, pts))


class TestEvaluate:

    def test_center_of_flat_patch(self):
        s = create_bezier_patch()
        assert list(s.evaluate(0.5, 0.5)) == pytest.approx([0.0, 0.0, 0.0], abs=1e-12)

    def test_corner_interpolation_after_move(self):
        s = create_bezier_patch()
        before = s.evaluate(0.0, 0.0)
        s.set_control_point(0, 0, s.control_point(0, 0) + Vec3(0.0, 1.0, 0.0))
        after = s.evaluate(0.0, 0.0)
        assert list(after - before) == pytest.approx([0.0, 1.0, 0.0])
        assert list(after) == pytest.approx([-1.0, 1.0, -1.0])

    def test_corners_interpolate_control_points(self):
        s = wavy_rational_surface()
        m, n = s.cp_count_u - 1, s.cp_count_v - 1
        for (u, v), (i, j) in (((0, 0), (0, 0)), ((1, 0), (m, 0)), ((0, 1), (0, n)), ((1, 1), (m, n))):
            assert list(s.evaluate(u, v)) == pytest.approx(list(s.control_point(i, j).as_np()))

    def test_degenerate_weights_return_zero(self):
        s = create_bezier_patch()
        s.set_control_point(2, 2, Vec3(5.0, 5.0, 5.0))
        for cp_index in range(16):
            s.set_weight(cp_index // 4, cp_index % 4, 0.0)
        assert list(s.evaluate(0.3, 0.6)) == [0.0, 0.0, 0.0]
        point, d_u, d_v = s.evaluate_with_derivatives(0.3, 0.6)
        assert not np.any(point) and not np.any(d_u) and not np.any(d_v)

    def test_rational_weight_pulls_surface(self):
        s = create_bezier_patch()
        s.set_control_point(1, 1, Vec3(-1 / 3, 1.0, -1 / 3))
        low = s.evaluate(0.4, 0.4)[1]
        s.set_weight(1, 1, 4.0)
        assert s.evaluate(0.4, 0.4)[1] > low


class TestDerivatives:

    def test_point_matches_evaluate(self):
        s = wavy_rational_surface()
        for u, v in SAMPLE_UVS:
            point, _, _ = s.evaluate_with_derivatives(u, v)
            assert list(point) == pytest.approx(list(s.evaluate(u, v)))

    def test_rational_derivative_matches_finite_difference(self):
        s = wavy_rational_surface()
        h = 1e-6
        for u, v in [(0.3, 0.4), (0.55, 0.81), (0.7, 0.15)]:
            _, d_u, d_v = s.evaluate_with_derivatives(u, v)
            fd_u = (s.evaluate(u + h, v) - s.evaluate(u - h, v)) / (2 * h)
            fd_v = (s.evaluate(u, v + h) - s.evaluate(u, v - h)) / (2 * h)
            assert list(d_u) == pytest.approx(list(fd_u), abs=1e-4)
            assert list(d_v) == pytest.approx(list(fd_v), abs=1e-4)

    def test_flat_patch_tangents(self):
        _, d_u, d_v = create_bezier_patch().evaluate_with_derivatives(0.5, 0.5)
        assert list(d_u) == pytest.approx([2.0, 0.0, 0.0])
        assert list(d_v) == pytest.approx([0.0, 0.0, 2.0])


class TestNormal:

    def test_flat_patch_normal(self):
        # cross(+X, +Z) points down -Y
        n = create_bezier_patch().normal(0.25, 0.75)
        assert list(n) == pytest.approx([0.0, -1.0, 0.0])
        assert np.linalg.norm(n) == pytest.approx(1.0)

    def test_degenerate_normal_falls_back_to_up(self):
        s = create_bezier_patch()
        for i in range(4):
            for j in range(4):
                s.set_control_point(i, j, Vec3(0.0, 0.0, 0.0))
        assert list(s.normal(0.5, 0.5)) == [0.0, 1.0, 0.0]


class TestTessellate:

    def test_counts_and_winding(self):
        mesh = create_bezier_patch().tessellate(3, 4)
        assert mesh.vertices.shape == (12, 3)
        assert mesh.normals.shape == (12, 3)
        assert mesh.uvs.shape == (12, 2)
        assert len(mesh.indices) == (3 - 1) * (4 - 1) * 6
        # First quad: a=0, b=1, c=4, d=5
        assert list(mesh.indices[:6]) == [0, 4, 1, 1, 4, 5]

    def test_minimum_samples(self):
        mesh = create_bezier_patch().tessellate(0, 1)
        assert mesh.vertices.shape == (4, 3)
        assert len(mesh.indices) == 6

    def test_boundary_parameters(self):
        s = wavy_rational_surface()
        mesh = s.tessellate(5, 5)
        assert tuple(mesh.uvs[0]) == (0.0, 0.0)
        assert tuple(mesh.uvs[-1]) == (1.0, 1.0)
        last = s.control_point(s.cp_count_u - 1, s.cp_count_v - 1).as_np()
        assert list(mesh.vertices[-1]) == pytest.approx(list(last))

    def test_vertices_lie_on_surface(self):
        s = wavy_rational_surface()
        mesh = s.tessellate(4, 6)
        for vert, (u, v) in zip(mesh.vertices, mesh.uvs):
            assert list(vert) == pytest.approx(list(s.evaluate(u, v)))


class TestKnotInsertion:

    @pytest.mark.parametrize("t", [0.2, 0.5, 0.77])
    def test_insert_u_preserves_shape(self, t):
        s = wavy_rational_surface()
        original = s.clone()
        s.insert_knot_u(t)
        for u, v in SAMPLE_UVS:
            assert list(s.evaluate(u, v)) == pytest.approx(list(original.evaluate(u, v)), abs=1e-6)

    @pytest.mark.parametrize("t", [0.1, 0.5, 0.9])
    def test_insert_v_preserves_shape(self, t):
        s = wavy_rational_surface()
        original = s.clone()
        s.insert_knot_v(t)
        for u, v in SAMPLE_UVS:
            assert list(s.evaluate(u, v)) == pytest.approx(list(original.evaluate(u, v)), abs=1e-6)

    def test_counts_increase_by_one(self):
        s = create_bezier_patch()
        s.insert_knot_u(0.5)
        assert s.cp_count_u == 5 and s.span_count_u == 2
        assert len(s.knots_u) == 9
        assert s.knots_u == [0, 0, 0, 0, 0.5, 1, 1, 1, 1]
        assert s.cp_count_v == 4 and len(s.knots_v) == 8
        s.insert_knot_v(0.25)
        assert s.cp_count_v == 5 and len(s.knots_v) == 9
        assert len(s.grid.points) == 25

    def test_existing_knot_can_be_repeated(self):
        s = wavy_rational_surface()
        original = s.clone()
        t = s.knots_u[4]
        s.insert_knot_u(t)
        assert s.knots_u.count(t) == 2
        assert list(s.evaluate(0.6, 0.3)) == pytest.approx(list(original.evaluate(0.6, 0.3)), abs=1e-6)

    @pytest.mark.parametrize("t", [0.0, 1.0, -0.2, 1.5])
    def test_rejects_knots_outside_domain(self, t):
        s = create_bezier_patch()
        with pytest.raises(KnotInsertionError):
            s.insert_knot_u(t)
        assert s.cp_count_u == 4


class TestClone:

    def test_clone_is_deep(self):
        s = create_grid(2, 2)
        c = s.clone()
        c.set_control_point(0, 0, Vec3(9.0, 9.0, 9.0))
        c.knots_u[4] = 0.25
        c.insert_knot_v(0.5)
        assert s.control_point(0, 0) == Vec3(-1.0, 0.0, -1.0)
        assert s.knots_u[4] == 0.5
        assert s.cp_count_v == 5
