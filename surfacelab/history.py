"""
Transaction Log
===============
Reversible edit history for the kernel.

Commands form a closed set of dataclass variants. A single dispatcher
(`execute_command`, `undo_command`, `describe`) maps each variant type to its
handlers; passing anything else raises TypeError. The TransactionLog keeps
two LIFO stacks and is the only sanctioned path for persistent edits.
Interactive drags mutate geometry directly and are then recorded by wrapping
the equivalent move command in `AlreadyApplied`.
"""
from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Tuple, Union

from surfacelab.constraint import Continuity, EdgeConstraint, SurfaceEdge
from surfacelab.entity import SurfaceEntity
from surfacelab.geometry import Direction, NurbsSurface, Vec3
from surfacelab.group import PatchGroup

if TYPE_CHECKING:
    from surfacelab.scene import Scene

logger = logging.getLogger(__name__)


# --- Command Variants ---

@dataclass(eq=False)
class MoveControlPoint:
    """Move one control point; re-enforce the group's constraints both ways."""
    surface: SurfaceEntity
    u: int
    v: int
    old: Vec3
    new: Vec3
    group: Optional[PatchGroup] = None


@dataclass(eq=False)
class MoveEntry:
    surface: SurfaceEntity
    u: int
    v: int
    old: Vec3
    new: Vec3
    group: Optional[PatchGroup] = None


@dataclass(eq=False)
class MultiMoveControlPoints:
    """Move many control points atomically (multi-select drag)."""
    moves: List[MoveEntry]


@dataclass(eq=False)
class InsertKnot:
    surface: SurfaceEntity
    t: float
    direction: Direction
    snapshot: Optional[NurbsSurface] = field(default=None, init=False, repr=False)


@dataclass(eq=False)
class AddSurface:
    group: PatchGroup
    surface: SurfaceEntity


@dataclass(eq=False)
class DeleteSurface:
    group: PatchGroup
    surface: SurfaceEntity
    index: Optional[int] = field(default=None, init=False)
    removed_constraints: List[EdgeConstraint] = field(default_factory=list, init=False, repr=False)


@dataclass(eq=False)
class AttachPatch:
    group: PatchGroup
    existing: SurfaceEntity
    edge: SurfaceEdge
    new_surface: Optional[SurfaceEntity] = field(default=None, init=False)
    constraint: Optional[EdgeConstraint] = field(default=None, init=False, repr=False)


@dataclass(eq=False)
class AddGroup:
    scene: "Scene"
    group: PatchGroup


@dataclass(eq=False)
class DeleteGroup:
    scene: "Scene"
    group: PatchGroup
    index: Optional[int] = field(default=None, init=False)


@dataclass(eq=False)
class SetConstraintType:
    """
    Switch a constraint between G0 and G1.

    The destination surface (surface_b) is snapshotted before the switch,
    since G1 enforcement rewrites its whole inner row.
    """
    group: PatchGroup
    constraint: EdgeConstraint
    kind: Continuity
    old_kind: Continuity = field(init=False)
    snapshot: Optional[List[Vec3]] = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        self.old_kind = self.constraint.kind


@dataclass(eq=False)
class AlreadyApplied:
    """
    Record a drag whose moves were already applied to the geometry.

    The first execute is a no-op; redo runs `inner`. Only move commands can
    be wrapped.
    """
    inner: "Command"
    pending: bool = field(default=True, init=False)

    def __post_init__(self) -> None:
        if not isinstance(self.inner, (MoveControlPoint, MultiMoveControlPoints)):
            raise TypeError(f"cannot record {type(self.inner).__name__} as already applied")


Command = Union[
    MoveControlPoint, MultiMoveControlPoints, InsertKnot, AddSurface, DeleteSurface,
    AttachPatch, AddGroup, DeleteGroup, SetConstraintType, AlreadyApplied,
]


# --- Handlers ---

def _exec_move(cmd: MoveControlPoint) -> None:
    cmd.surface.apply_control_point_move(cmd.u, cmd.v, cmd.new)
    if cmd.group is not None:
        cmd.group.enforce_constraints(cmd.surface)


def _undo_move(cmd: MoveControlPoint) -> None:
    cmd.surface.apply_control_point_move(cmd.u, cmd.v, cmd.old)
    if cmd.group is not None:
        cmd.group.enforce_constraints(cmd.surface)


def _apply_moves(cmd: MultiMoveControlPoints, forward: bool) -> None:
    # Apply every move first, then enforce once per (group, surface) pair
    to_enforce: Dict[Tuple[int, str], Tuple[PatchGroup, SurfaceEntity]] = {}
    for m in cmd.moves:
        m.surface.apply_control_point_move(m.u, m.v, m.new if forward else m.old)
        if m.group is not None:
            to_enforce.setdefault((id(m.group), m.surface.id), (m.group, m.surface))
    for group, surface in to_enforce.values():
        group.enforce_constraints(surface)


def _exec_insert_knot(cmd: InsertKnot) -> None:
    cmd.snapshot = cmd.surface.geometry.clone()
    cmd.surface.insert_knot(cmd.direction, cmd.t)


def _undo_insert_knot(cmd: InsertKnot) -> None:
    if cmd.snapshot is not None:
        cmd.surface.restore_geometry(cmd.snapshot)


def _exec_delete_surface(cmd: DeleteSurface) -> None:
    cmd.index = next((i for i, s in enumerate(cmd.group.surfaces) if s is cmd.surface), None)
    cmd.removed_constraints = cmd.group.remove_surface(cmd.surface)


def _undo_delete_surface(cmd: DeleteSurface) -> None:
    # Deleting a surface that was not in the group removed nothing
    if cmd.index is None:
        return
    cmd.group.add_surface(cmd.surface, cmd.index)
    for c in cmd.removed_constraints:
        cmd.group.add_constraint(c)


def _exec_attach(cmd: AttachPatch) -> None:
    if cmd.new_surface is None:
        cmd.new_surface, cmd.constraint = cmd.group.attach_patch(cmd.existing, cmd.edge)
        return
    # Redo restores the very same patch rather than generating a new one
    cmd.group.add_surface(cmd.new_surface)
    cmd.group.add_constraint(cmd.constraint)


def _undo_attach(cmd: AttachPatch) -> None:
    if cmd.new_surface is not None:
        cmd.group.remove_surface(cmd.new_surface)


def _exec_delete_group(cmd: DeleteGroup) -> None:
    cmd.index = cmd.scene.detach_group(cmd.group)


def _exec_set_constraint(cmd: SetConstraintType) -> None:
    group, c = cmd.group, cmd.constraint
    dst = group.surface(c.surface_b)
    cmd.snapshot = dst.geometry.grid.positions() if dst is not None else None
    c.kind = cmd.kind
    src = group.surface(c.surface_a)
    # A downgrade to G0 leaves positions alone
    if cmd.kind is Continuity.G1 and src is not None:
        c.enforce(src, group.surfaces_by_id)


def _undo_set_constraint(cmd: SetConstraintType) -> None:
    dst = cmd.group.surface(cmd.constraint.surface_b)
    if dst is not None and cmd.snapshot is not None:
        n = dst.geometry.cp_count_v
        for idx, pos in enumerate(cmd.snapshot):
            if dst.control_point(idx // n, idx % n) != pos:
                dst.apply_control_point_move(idx // n, idx % n, pos)
    cmd.constraint.kind = cmd.old_kind


def _exec_already_applied(cmd: AlreadyApplied) -> None:
    if cmd.pending:
        cmd.pending = False
        return
    execute_command(cmd.inner)


_Handler = Callable[..., None]

_HANDLERS: Dict[type, Tuple[_Handler, _Handler, Callable[..., str]]] = {
    MoveControlPoint: (
        _exec_move, _undo_move,
        lambda c: "Move control point"),
    MultiMoveControlPoints: (
        lambda c: _apply_moves(c, True), lambda c: _apply_moves(c, False),
        lambda c: f"Move {len(c.moves)} control point(s)"),
    InsertKnot: (
        _exec_insert_knot, _undo_insert_knot,
        lambda c: f"Insert knot {c.direction.upper()} at {c.t:.3f}"),
    AddSurface: (
        lambda c: c.group.add_surface(c.surface), lambda c: c.group.remove_surface(c.surface),
        lambda c: "Add surface"),
    DeleteSurface: (
        _exec_delete_surface, _undo_delete_surface,
        lambda c: "Delete surface"),
    AttachPatch: (
        _exec_attach, _undo_attach,
        lambda c: f"Attach patch to {c.edge.value}"),
    AddGroup: (
        lambda c: c.scene.attach_group(c.group), lambda c: c.scene.detach_group(c.group),
        lambda c: "Add polysurface"),
    DeleteGroup: (
        _exec_delete_group, lambda c: c.scene.attach_group(c.group, c.index),
        lambda c: "Delete polysurface"),
    SetConstraintType: (
        _exec_set_constraint, _undo_set_constraint,
        lambda c: f"Set constraint {c.old_kind.value} → {c.kind.value}"),
    AlreadyApplied: (
        _exec_already_applied, lambda c: undo_command(c.inner),
        lambda c: describe(c.inner)),
}


def _handlers(cmd: Command) -> Tuple[_Handler, _Handler, Callable[..., str]]:
    try:
        return _HANDLERS[type(cmd)]
    except KeyError:
        raise TypeError(f"not a command: {type(cmd).__name__}") from None


def execute_command(cmd: Command) -> None:
    _handlers(cmd)[0](cmd)


def undo_command(cmd: Command) -> None:
    _handlers(cmd)[1](cmd)


def describe(cmd: Command) -> str:
    """Human-readable label for menus and history panels."""
    return _handlers(cmd)[2](cmd)


# --- Transaction Log ---

class TransactionLog:
    """Undo/redo stacks. A new execute discards any redo history."""

    def __init__(self) -> None:
        self._undo: List[Command] = []
        self._redo: List[Command] = []

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    @property
    def undo_depth(self) -> int:
        return len(self._undo)

    @property
    def redo_depth(self) -> int:
        return len(self._redo)

    @property
    def undo_description(self) -> Optional[str]:
        return describe(self._undo[-1]) if self._undo else None

    @property
    def redo_description(self) -> Optional[str]:
        return describe(self._redo[-1]) if self._redo else None

    def execute(self, cmd: Command) -> None:
        """Execute a command and push it onto the undo stack. Clears the redo stack."""
        execute_command(cmd)
        self._undo.append(cmd)
        if self._redo:
            logger.debug("Discarding %d redo step(s)", len(self._redo))
        self._redo.clear()
        logger.info("[Cmd] %s", describe(cmd))

    def undo(self) -> None:
        if not self._undo:
            return
        cmd = self._undo.pop()
        undo_command(cmd)
        self._redo.append(cmd)
        logger.info("[Cmd] Undo %s", describe(cmd))

    def redo(self) -> None:
        if not self._redo:
            return
        cmd = self._redo.pop()
        execute_command(cmd)
        self._undo.append(cmd)
        logger.info("[Cmd] Redo %s", describe(cmd))

    def clear(self) -> None:
        self._undo.clear()
        self._redo.clear()
