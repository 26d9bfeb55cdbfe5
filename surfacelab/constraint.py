from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
from typing import Mapping, Tuple

from surfacelab.entity import SurfaceEntity
from surfacelab.geometry import NurbsSurface

logger = logging.getLogger(__name__)


class SurfaceEdge(Enum):
    U_MIN = "UMin"
    U_MAX = "UMax"
    V_MIN = "VMin"
    V_MAX = "VMax"


class Continuity(Enum):
    G0 = "G0"  # positional
    G1 = "G1"  # positional and tangent


_OPPOSITE = {
    SurfaceEdge.U_MIN: SurfaceEdge.U_MAX,
    SurfaceEdge.U_MAX: SurfaceEdge.U_MIN,
    SurfaceEdge.V_MIN: SurfaceEdge.V_MAX,
    SurfaceEdge.V_MAX: SurfaceEdge.V_MIN,
}


# --- Edge utilities ---

def opposite_edge(edge: SurfaceEdge) -> SurfaceEdge:
    return _OPPOSITE[edge]


def edge_length(surface: NurbsSurface, edge: SurfaceEdge) -> int:
    """Number of control points along a boundary edge."""
    if edge in (SurfaceEdge.U_MIN, SurfaceEdge.U_MAX):
        return surface.cp_count_v
    return surface.cp_count_u


def edge_index(surface: NurbsSurface, edge: SurfaceEdge, k: int, boundary: bool = True) -> Tuple[int, int]:
    """
    Grid index (u, v) of control point k along an edge.

    Args:
        surface: The surface owning the edge.
        edge: Which boundary.
        k: Position along the edge.
        boundary: True for the boundary row, False for the adjacent inner row.
    """
    n = surface.cp_count_u - 1
    m = surface.cp_count_v - 1
    if edge is SurfaceEdge.U_MIN:
        return (0 if boundary else 1), k
    if edge is SurfaceEdge.U_MAX:
        return (n if boundary else n - 1), k
    if edge is SurfaceEdge.V_MIN:
        return k, (0 if boundary else 1)
    return k, (m if boundary else m - 1)


# --- Constraint ---

@dataclass(eq=False)
class EdgeConstraint:
    """
    Keeps the shared boundary of two surfaces continuous.

    Surfaces are referenced by id; the owning PatchGroup resolves them. When
    the two edges carry different numbers of control points only the first
    min(len_a, len_b) are matched.
    """
    surface_a: str
    edge_a: SurfaceEdge
    surface_b: str
    edge_b: SurfaceEdge
    kind: Continuity = Continuity.G0

    def touches(self, surface_id: str) -> bool:
        return surface_id == self.surface_a or surface_id == self.surface_b

    def other(self, surface_id: str) -> str:
        return self.surface_b if surface_id == self.surface_a else self.surface_a

    def enforce(self, moved: SurfaceEntity, surfaces: Mapping[str, SurfaceEntity]) -> None:
        """
        Propagate continuity from `moved` to the other surface.

        G0 copies the boundary row; G1 additionally reflects the source's
        inner row about the boundary onto the destination's inner row. All
        writes go through SurfaceEntity.apply_control_point_move.
        """
        if not self.touches(moved.id):
            logger.debug("Constraint %s does not reference surface %s", self, moved.id[:8])
            return
        dst = surfaces.get(self.other(moved.id))
        if dst is None:
            logger.warning("Constraint %s-%s is orphaned; partner surface not in group",
                           self.edge_a.value, self.edge_b.value)
            return
        if moved.id == self.surface_a:
            src_edge, dst_edge = self.edge_a, self.edge_b
        else:
            src_edge, dst_edge = self.edge_b, self.edge_a

        _enforce_g0(moved, src_edge, dst, dst_edge)
        if self.kind is Continuity.G1:
            _enforce_g1(moved, src_edge, dst, dst_edge)


def _shared_length(src: SurfaceEntity, src_edge: SurfaceEdge,
                   dst: SurfaceEntity, dst_edge: SurfaceEdge) -> int:
    src_len = edge_length(src.geometry, src_edge)
    dst_len = edge_length(dst.geometry, dst_edge)
    if src_len != dst_len:
        logger.debug("Edge lengths differ (%d vs %d); matching the first %d",
                     src_len, dst_len, min(src_len, dst_len))
    return min(src_len, dst_len)


def _enforce_g0(src: SurfaceEntity, src_edge: SurfaceEdge,
                dst: SurfaceEntity, dst_edge: SurfaceEdge) -> None:
    for k in range(_shared_length(src, src_edge, dst, dst_edge)):
        su, sv = edge_index(src.geometry, src_edge, k)
        du, dv = edge_index(dst.geometry, dst_edge, k)
        dst.apply_control_point_move(du, dv, src.control_point(su, sv))


def _enforce_g1(src: SurfaceEntity, src_edge: SurfaceEdge,
                dst: SurfaceEntity, dst_edge: SurfaceEdge) -> None:
    for k in range(_shared_length(src, src_edge, dst, dst_edge)):
        boundary = src.control_point(*edge_index(src.geometry, src_edge, k))
        src_inner = src.control_point(*edge_index(src.geometry, src_edge, k, boundary=False))
        du, dv = edge_index(dst.geometry, dst_edge, k, boundary=False)
        dst.apply_control_point_move(du, dv, 2.0 * boundary - src_inner)
