import logging

import pytest

from surfacelab.constraint import Continuity, EdgeConstraint, SurfaceEdge, edge_index
from surfacelab.entity import SurfaceEntity
from surfacelab.geometry import Vec3, create_bezier_patch
from surfacelab.group import PatchGroup
## unit tests for surfacelab group.py


def group_with(count):
    g = PatchGroup(name="Body")
    entities = [SurfaceEntity(create_bezier_patch()) for _ in range(count)]
    for e in entities:
        g.add_surface(e)
    return g, entities


def coords(p):
    return (p.x, p.y, p.z)


class TestSurfaceManagement:

    def test_add_is_idempotent(self):
        g, (a,) = group_with(1)
        g.add_surface(a)
        assert g.surfaces == [a]
        assert a in g
        assert SurfaceEntity(create_bezier_patch()) not in g

    def test_add_at_index(self):
        g, (a, b) = group_with(2)
        c = SurfaceEntity(create_bezier_patch())
        g.add_surface(c, 1)
        assert g.surfaces == [a, c, b]

    def test_lookup_by_id(self):
        g, (a, b) = group_with(2)
        assert g.surface(b.id) is b
        assert g.surface("missing") is None
        assert set(g.surfaces_by_id) == {a.id, b.id}

    def test_remove_cascades_constraints(self):
        g, (a, b, c) = group_with(3)
        ab = EdgeConstraint(a.id, SurfaceEdge.U_MAX, b.id, SurfaceEdge.U_MIN)
        bc = EdgeConstraint(b.id, SurfaceEdge.U_MAX, c.id, SurfaceEdge.U_MIN)
        ca = EdgeConstraint(c.id, SurfaceEdge.V_MAX, a.id, SurfaceEdge.V_MIN)
        for con in (ab, bc, ca):
            g.add_constraint(con)
        removed = g.remove_surface(b)
        assert removed == [ab, bc]
        assert g.constraints == [ca]
        assert g.surfaces == [a, c]
        assert all(not con.touches(b.id) for con in g.constraints)

    def test_add_constraint_once(self):
        g, (a, b) = group_with(2)
        con = EdgeConstraint(a.id, SurfaceEdge.U_MAX, b.id, SurfaceEdge.U_MIN)
        g.add_constraint(con)
        g.add_constraint(con)
        assert g.constraints == [con]
        assert g.constraints_for(a) == [con]


class TestAttachPatch:

    @pytest.mark.parametrize("edge", list(SurfaceEdge))
    def test_boundary_is_shared(self, edge):
        g, (a,) = group_with(1)
        a.apply_control_point_move(*edge_index(a.geometry, edge, 1), Vec3(0.2, 0.9, 0.1))
        new, con = g.attach_patch(a, edge)
        assert g.surfaces == [a, new]
        assert g.constraints == [con]
        assert con.surface_a == a.id and con.edge_a is edge
        assert con.surface_b == new.id
        assert con.kind is Continuity.G0
        for k in range(4):
            pa = a.control_point(*edge_index(a.geometry, con.edge_a, k))
            pb = new.control_point(*edge_index(new.geometry, con.edge_b, k))
            assert pa == pb

    def test_umax_layout(self):
        g, (a,) = group_with(1)
        new, con = g.attach_patch(a, SurfaceEdge.U_MAX)
        assert con.edge_b is SurfaceEdge.U_MIN
        # Existing tangent across the seam is (2/3, 0, 0); rows continue it
        for k in range(4):
            z = a.control_point(3, k).z
            assert coords(new.control_point(0, k)) == pytest.approx((1.0, 0.0, z))
            assert coords(new.control_point(1, k)) == pytest.approx((1.0 + 2 / 3, 0.0, z))
            assert coords(new.control_point(2, k)) == pytest.approx((2.0, 0.0, z))
            assert coords(new.control_point(3, k)) == pytest.approx((1.0 + 4 / 3, 0.0, z))

    def test_new_patch_is_fresh_bezier(self):
        g, (a,) = group_with(1)
        new, _ = g.attach_patch(a, SurfaceEdge.V_MIN)
        geo = new.geometry
        assert (geo.degree_u, geo.degree_v, geo.cp_count_u, geo.cp_count_v) == (3, 3, 4, 4)
        assert new.id != a.id


class TestSplit:

    def test_moves_surfaces_and_internal_constraints(self):
        g, (a, b, c) = group_with(3)
        ab = EdgeConstraint(a.id, SurfaceEdge.U_MAX, b.id, SurfaceEdge.U_MIN)
        bc = EdgeConstraint(b.id, SurfaceEdge.U_MAX, c.id, SurfaceEdge.U_MIN)
        g.add_constraint(ab)
        g.add_constraint(bc)
        new = g.split([b, c])
        assert new.name == "Body_Split"
        assert new.id != g.id
        assert new.surfaces == [b, c]
        assert new.constraints == [bc]
        assert g.surfaces == [a]
        # ab crosses the split and stays behind as an orphan
        assert g.constraints == [ab]

    def test_orphan_is_skipped(self, caplog):
        g, (a, b) = group_with(2)
        g.add_constraint(EdgeConstraint(a.id, SurfaceEdge.U_MAX, b.id, SurfaceEdge.U_MIN))
        g.split([b])
        a.apply_control_point_move(3, 0, Vec3(4.0, 4.0, 4.0))
        with caplog.at_level(logging.WARNING, logger="surfacelab"):
            g.enforce_constraints(a)
        assert "orphaned" in caplog.text
        assert b.revision == 0

    def test_ignores_foreign_surfaces(self):
        g, (a,) = group_with(1)
        stranger = SurfaceEntity(create_bezier_patch())
        new = g.split([stranger])
        assert new.surfaces == []
        assert g.surfaces == [a]


class TestEnforceConstraints:

    def test_single_pass(self):
        g, (a, b, c) = group_with(3)
        g.add_constraint(EdgeConstraint(a.id, SurfaceEdge.U_MAX, b.id, SurfaceEdge.U_MIN))
        g.add_constraint(EdgeConstraint(b.id, SurfaceEdge.U_MIN, c.id, SurfaceEdge.U_MIN))
        target = Vec3(1.0, 2.0, -1.0)
        a.apply_control_point_move(3, 0, target)

        g.enforce_constraints(a)
        assert b.control_point(0, 0) == target
        assert c.control_point(0, 0) != target

        g.enforce_constraints(b)
        assert c.control_point(0, 0) == target

    def test_enforces_every_touching_constraint(self):
        g, (a, b, c) = group_with(3)
        g.add_constraint(EdgeConstraint(a.id, SurfaceEdge.U_MAX, b.id, SurfaceEdge.U_MIN))
        g.add_constraint(EdgeConstraint(c.id, SurfaceEdge.V_MIN, a.id, SurfaceEdge.V_MAX))
        a.apply_control_point_move(3, 3, Vec3(0.0, 5.0, 0.0))
        g.enforce_constraints(a)
        assert b.control_point(0, 3) == Vec3(0.0, 5.0, 0.0)
        assert c.control_point(3, 0) == Vec3(0.0, 5.0, 0.0)
