"""
Surface Entity
==============
An editable patch: a NurbsSurface plus identity, display state and a
subscriber list.

Every change to the control data goes through `apply_control_point_move`,
`insert_knot` or `restore_geometry`. Each of these bumps the revision, marks
the entity dirty and notifies subscribers, so renderers and the constraint
engine never miss a change.
"""
from __future__ import annotations

from dataclasses import dataclass, field
import logging
import uuid
from typing import Callable, List, Tuple

from surfacelab import config
from surfacelab.geometry import Direction, NurbsSurface, Vec3

logger = logging.getLogger(__name__)

ChangeListener = Callable[["SurfaceEntity"], None]


@dataclass(eq=False)
class SurfaceEntity:
    geometry: NurbsSurface
    color: Tuple[float, float, float, float] = config.DEFAULT_SURFACE_COLOR
    selected: bool = False
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    revision: int = field(default=0, init=False)
    _dirty: bool = field(default=False, init=False, repr=False)
    _listeners: List[ChangeListener] = field(default_factory=list, init=False, repr=False)

    # --- Observers ---

    def subscribe(self, listener: ChangeListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def poll_dirty(self) -> bool:
        """Return whether the geometry changed since the last poll, and reset."""
        dirty = self._dirty
        self._dirty = False
        return dirty

    def _changed(self) -> int:
        self.revision += 1
        self._dirty = True
        for listener in list(self._listeners):
            listener(self)
        return self.revision

    # --- Mutation ---

    def control_point(self, u: int, v: int) -> Vec3:
        return self.geometry.control_point(u, v)

    def apply_control_point_move(self, u: int, v: int, position: Vec3) -> int:
        """
        Move control point (u, v) to `position` and notify subscribers.

        Returns:
            The new revision number, usable as a change token.
        """
        self.geometry.set_control_point(u, v, position)
        return self._changed()

    def insert_knot(self, direction: Direction, t: float) -> int:
        """Refine the surface with a knot in `direction` ("u" or "v")."""
        if direction == "u":
            self.geometry.insert_knot_u(t)
        else:
            self.geometry.insert_knot_v(t)
        logger.debug("Surface %s refined in %s at %.4f (%dx%d)", self.id[:8], direction, t,
                     self.geometry.cp_count_u, self.geometry.cp_count_v)
        return self._changed()

    def restore_geometry(self, snapshot: NurbsSurface) -> int:
        """Replace the whole surface with a snapshot taken by NurbsSurface.clone()."""
        self.geometry = snapshot.clone()
        return self._changed()
