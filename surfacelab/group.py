"""
Patch Group
===========
A named set of SurfaceEntities and the EdgeConstraints between them.

The group is the only place that resolves a constraint's surface ids, so a
removed surface takes its constraints with it and nothing is left pointing
at it.
"""
from __future__ import annotations

from dataclasses import dataclass, field
import logging
import uuid
from typing import Dict, Iterable, List, Optional, Tuple

from surfacelab import config
from surfacelab.constraint import (
    Continuity, EdgeConstraint, SurfaceEdge, edge_index, edge_length, opposite_edge,
)
from surfacelab.entity import SurfaceEntity
from surfacelab.geometry import create_bezier_patch

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class PatchGroup:
    name: str = config.DEFAULT_GROUP_NAME
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    surfaces: List[SurfaceEntity] = field(default_factory=list)
    constraints: List[EdgeConstraint] = field(default_factory=list)

    # --- Surface management ---

    @property
    def surfaces_by_id(self) -> Dict[str, SurfaceEntity]:
        return {s.id: s for s in self.surfaces}

    def surface(self, surface_id: str) -> Optional[SurfaceEntity]:
        return self.surfaces_by_id.get(surface_id)

    def __contains__(self, entity: SurfaceEntity) -> bool:
        return any(s is entity for s in self.surfaces)

    def add_surface(self, entity: SurfaceEntity, index: Optional[int] = None) -> None:
        if entity in self:
            return
        if index is None:
            self.surfaces.append(entity)
        else:
            self.surfaces.insert(index, entity)

    def remove_surface(self, entity: SurfaceEntity) -> List[EdgeConstraint]:
        """
        Remove a surface and every constraint that references it.

        Returns:
            The removed constraints, in their original order.
        """
        self.surfaces = [s for s in self.surfaces if s is not entity]
        removed = [c for c in self.constraints if c.touches(entity.id)]
        self.constraints = [c for c in self.constraints if not c.touches(entity.id)]
        return removed

    def add_constraint(self, constraint: EdgeConstraint) -> None:
        if constraint not in self.constraints:
            self.constraints.append(constraint)

    def constraints_for(self, entity: SurfaceEntity) -> List[EdgeConstraint]:
        return [c for c in self.constraints if c.touches(entity.id)]

    # --- Patch attachment ---

    def attach_patch(self, existing: SurfaceEntity, edge: SurfaceEdge) -> Tuple[SurfaceEntity, EdgeConstraint]:
        """
        Attach a new Bezier patch to `edge` of `existing`.

        The new patch's opposite edge copies the existing boundary row, and
        the remaining rows continue the existing tangent (boundary - inner)
        outward at 1x, 1.5x and 2x so the seam starts without a kink. A G0
        constraint joins the two.

        Returns:
            The new entity (already added to the group) and its constraint.
        """
        entity = SurfaceEntity(create_bezier_patch())
        new_geo = entity.geometry
        ex_geo = existing.geometry
        new_edge = opposite_edge(edge)
        far_edge = opposite_edge(new_edge)

        for k in range(min(edge_length(ex_geo, edge), edge_length(new_geo, new_edge))):
            boundary = ex_geo.control_point(*edge_index(ex_geo, edge, k))
            inner = ex_geo.control_point(*edge_index(ex_geo, edge, k, boundary=False))
            tangent = boundary - inner

            new_geo.set_control_point(*edge_index(new_geo, new_edge, k), boundary)
            new_geo.set_control_point(*edge_index(new_geo, new_edge, k, boundary=False), boundary + tangent)
            new_geo.set_control_point(*edge_index(new_geo, far_edge, k, boundary=False), boundary + 1.5 * tangent)
            new_geo.set_control_point(*edge_index(new_geo, far_edge, k), boundary + 2.0 * tangent)

        constraint = EdgeConstraint(existing.id, edge, entity.id, new_edge, Continuity.G0)
        self.constraints.append(constraint)
        self.surfaces.append(entity)
        logger.info("Attached patch %s to %s of %s in '%s'",
                    entity.id[:8], edge.value, existing.id[:8], self.name)
        return entity, constraint

    # --- Splitting ---

    def split(self, to_split: Iterable[SurfaceEntity]) -> "PatchGroup":
        """
        Move surfaces into a new group.

        Only constraints with both endpoints in the moved set follow them;
        a constraint with one endpoint left behind stays in this group as an
        orphan and is skipped during enforcement.
        """
        moving = [s for s in to_split if s in self]
        moving_ids = {s.id for s in moving}
        new_group = PatchGroup(name=self.name + "_Split")

        for s in moving:
            self.surfaces = [x for x in self.surfaces if x is not s]
            new_group.add_surface(s)

        kept = []
        for c in self.constraints:
            if c.surface_a in moving_ids and c.surface_b in moving_ids:
                new_group.add_constraint(c)
            else:
                kept.append(c)
        self.constraints = kept
        logger.info("Split %d surface(s) from '%s' into '%s'", len(moving), self.name, new_group.name)
        return new_group

    # --- Constraint enforcement ---

    def enforce_constraints(self, moved: SurfaceEntity) -> None:
        """
        Enforce every constraint touching `moved`, once.

        This is a single post-move pass: in a chain A-B-C, moving A updates B
        but not C until enforce_constraints(B) is called as well.
        """
        lookup = self.surfaces_by_id
        for c in self.constraints_for(moved):
            c.enforce(moved, lookup)
