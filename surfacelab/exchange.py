"""
Exchange Format I/O
===================
Converts a Scene to and from a JSON exchange document.

The exchange layout follows the usual CAD conventions rather than the
kernel's:
1. Knot vectors are stored in the reduced form with `cp_count + degree - 1`
   values (the first and last clamped knots are omitted).
2. Control points are homogeneous: (x*w, y*w, z*w, w).
3. Grouping is encoded in each object's name as
   "SS|<group id>|<group name>|<surface id>".

Continuity is not stored. On load, G0 constraints are inferred wherever two
surfaces of the same group share a boundary within config.G0_TOLERANCE.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Sequence, Tuple, Union

from surfacelab import config
from surfacelab.constraint import Continuity, EdgeConstraint, SurfaceEdge, edge_index, edge_length
from surfacelab.entity import SurfaceEntity
from surfacelab.errors import ExchangeFormatError, InvalidSurfaceError
from surfacelab.geometry import ControlGrid, ControlPoint, NurbsSurface, Vec3
from surfacelab.group import PatchGroup
from surfacelab.scene import Scene

logger = logging.getLogger(__name__)

FORMAT_NAME = "surfacelab-exchange"
FORMAT_VERSION = 1
NAME_TAG = "SS"


# --- Knot and point conversion ---

def to_exchange_knots(knots: Sequence[float]) -> List[float]:
    """Drop the first and last knot: cp+degree+1 values -> cp+degree-1."""
    return [float(k) for k in knots[1:-1]]


def from_exchange_knots(knots: Sequence[float]) -> List[float]:
    """Repeat the first and last knot: cp+degree-1 values -> cp+degree+1."""
    if not knots:
        raise ExchangeFormatError("empty knot vector")
    return [float(knots[0])] + [float(k) for k in knots] + [float(knots[-1])]


def to_homogeneous(surface: NurbsSurface) -> List[List[float]]:
    """Row-major weight-premultiplied control points."""
    return [[cp.p.x * cp.w, cp.p.y * cp.w, cp.p.z * cp.w, cp.w] for cp in surface.grid.points]


def from_homogeneous(point: Sequence[float]) -> ControlPoint:
    """Project one (xw, yw, zw, w) point; a vanishing weight keeps the raw coordinates."""
    x, y, z, w = (float(c) for c in point)
    if w > config.WEIGHT_EPSILON:
        return ControlPoint(Vec3(x / w, y / w, z / w), w)
    return ControlPoint(Vec3(x, y, z), w)


# --- Surface records ---

def surface_to_record(entity: SurfaceEntity, group: PatchGroup) -> Dict[str, Any]:
    geo = entity.geometry
    return {
        "name": "|".join((NAME_TAG, group.id, group.name, entity.id)),
        "degree": [geo.degree_u, geo.degree_v],
        "count": [geo.cp_count_u, geo.cp_count_v],
        "knots_u": to_exchange_knots(geo.knots_u),
        "knots_v": to_exchange_knots(geo.knots_v),
        "points": to_homogeneous(geo),
        "color": list(entity.color),
    }


def record_to_surface(record: Dict[str, Any]) -> NurbsSurface:
    """
    Rebuild a NurbsSurface from an exchange record.

    Raises:
        ExchangeFormatError: If fields are missing or sizes disagree.
    """
    try:
        p, q = (int(d) for d in record["degree"])
        m, n = (int(c) for c in record["count"])
        points = [from_homogeneous(pt) for pt in record["points"]]
        if len(points) != m * n:
            raise ExchangeFormatError(f"expected {m * n} control points, found {len(points)}")
        return NurbsSurface(p, q,
                            from_exchange_knots(record["knots_u"]),
                            from_exchange_knots(record["knots_v"]),
                            ControlGrid(m, n, points))
    except ExchangeFormatError:
        raise
    except InvalidSurfaceError as e:
        raise ExchangeFormatError(f"invalid surface: {e}") from e
    except (KeyError, TypeError, ValueError) as e:
        raise ExchangeFormatError(f"malformed surface record: {e!r}") from e


def _parse_name(name: Any) -> Tuple[str, str, str]:
    """(group key, group name, surface id) from an encoded object name."""
    parts = name.split("|") if isinstance(name, str) else []
    if len(parts) >= 4 and parts[0] == NAME_TAG:
        # Group names may contain the separator; ids never do
        return parts[1], "|".join(parts[2:-1]), parts[-1]
    if len(parts) == 3 and parts[0] == NAME_TAG:
        return parts[1], parts[2], ""
    return "default", config.DEFAULT_GROUP_NAME, ""


# --- Scene documents ---

def export_scene(scene: Scene) -> Dict[str, Any]:
    """
    Serializes a Scene into a JSON-compatible exchange document.

    Returns:
        A dictionary that is safe to pass to json.dumps.
    """
    return {
        "format": FORMAT_NAME,
        "version": FORMAT_VERSION,
        "objects": [surface_to_record(s, g) for g in scene.groups for s in g.surfaces],
    }


def import_scene(data: Dict[str, Any]) -> Scene:
    """
    Deserializes an exchange document into a new Scene.

    Groups are rebuilt from the object names, then G0 constraints are
    inferred from coincident boundaries. The transaction log starts empty.
    """
    if not isinstance(data, dict) or data.get("format") != FORMAT_NAME:
        raise ExchangeFormatError("not a surfacelab exchange document")
    objects = data.get("objects")
    if not isinstance(objects, list):
        raise ExchangeFormatError("exchange document has no object list")

    scene = Scene()
    groups: Dict[str, PatchGroup] = {}
    for record in objects:
        if not isinstance(record, dict):
            raise ExchangeFormatError("object record must be a mapping")
        geometry = record_to_surface(record)
        key, group_name, surface_id = _parse_name(record.get("name"))

        group = groups.get(key)
        if group is None:
            group = PatchGroup(name=group_name) if key == "default" else PatchGroup(name=group_name, id=key)
            scene.attach_group(group)
            groups[key] = group

        entity = SurfaceEntity(geometry)
        if surface_id:
            entity.id = surface_id
        color = record.get("color")
        if isinstance(color, (list, tuple)) and len(color) == 4:
            try:
                entity.color = tuple(float(c) for c in color)
            except (TypeError, ValueError) as e:
                raise ExchangeFormatError(f"malformed color {color!r}: {e}") from e
        group.add_surface(entity)

    inferred = infer_g0_constraints(scene)
    logger.info(f"Imported {len(objects)} surface(s) in {len(scene.groups)} group(s), "
                f"inferred {len(inferred)} constraint(s)")
    return scene


def save_scene(scene: Scene, path: Union[str, Path]) -> None:
    path = Path(path)
    logger.info(f"Saving scene to: {path}")
    with path.open("w", encoding="utf-8") as fh:
        json.dump(export_scene(scene), fh, indent=2)
    scene.file_path = str(path)


def load_scene(path: Union[str, Path]) -> Scene:
    path = Path(path)
    logger.info(f"Loading scene from: {path}")
    try:
        with path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
    except json.JSONDecodeError as e:
        raise ExchangeFormatError(f"{path} is not valid JSON: {e}") from e
    scene = import_scene(data)
    scene.file_path = str(path)
    return scene


# --- G0 constraint inference ---

def boundaries_coincide(a: NurbsSurface, edge_a: SurfaceEdge, b: NurbsSurface, edge_b: SurfaceEdge,
                        tol: float = config.G0_TOLERANCE) -> bool:
    """True if both edges have the same length and every boundary point pair is within tol."""
    length = edge_length(a, edge_a)
    if length != edge_length(b, edge_b):
        return False
    for k in range(length):
        pa = a.control_point(*edge_index(a, edge_a, k))
        pb = b.control_point(*edge_index(b, edge_b, k))
        if pa.distance_to(pb) > tol:
            return False
    return True


def infer_g0_constraints(scene: Scene, tol: float = config.G0_TOLERANCE) -> List[EdgeConstraint]:
    """
    Add a G0 constraint for each pair of surfaces in a group with a shared boundary.

    Each unordered pair gets at most one constraint: the first coinciding
    (edge_a, edge_b) combination in SurfaceEdge order.
    """
    created = []
    for group in scene.groups:
        surfaces = group.surfaces
        for ia in range(len(surfaces)):
            for ib in range(ia + 1, len(surfaces)):
                sa, sb = surfaces[ia], surfaces[ib]
                match = next(((ea, eb) for ea in SurfaceEdge for eb in SurfaceEdge
                              if boundaries_coincide(sa.geometry, ea, sb.geometry, eb, tol)), None)
                if match is None:
                    continue
                constraint = EdgeConstraint(sa.id, match[0], sb.id, match[1], Continuity.G0)
                group.add_constraint(constraint)
                created.append(constraint)
                logger.debug(f"Inferred G0 {sa.id[:8]}:{match[0].value} <-> {sb.id[:8]}:{match[1].value}")
    return created
