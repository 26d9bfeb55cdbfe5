from __future__ import annotations
from typing import Any, Callable, Dict
import math

from surfacelab import config
from surfacelab.basis import clamped_knot_vector
from surfacelab.geometry import ControlGrid, ControlPoint, NurbsSurface, Vec3

# --- Presets & Generators ---


def surface_from_zfunc(spans_u: int, spans_v: int, zfunc, scale: float = 1.0,
                       weight: Any = 1.0, degree: int = config.DEFAULT_DEGREE) -> NurbsSurface:
    """
    Creates a surface whose control net follows a height function.

    Control points lie on a uniform XZ grid over [-scale, scale] and are
    lifted along Y by `zfunc`.

    Args:
        spans_u: Number of knot spans in u.
        spans_v: Number of knot spans in v.
        zfunc: A function `f(u,v) -> height` where u,v are in [0,1].
        scale: Half-width of the grid in X and Z.
        weight: A constant weight or a function `f(u,v) -> w`.
        degree: Polynomial degree in both directions.

    Returns:
        A new NurbsSurface with uniform clamped knots.
    """
    m = degree + spans_u
    n = degree + spans_v
    pts = []
    for i in range(m):
        u = i / (m - 1)
        for j in range(n):
            v = j / (n - 1)
            x = (u - 0.5) * scale * 2
            z = (v - 0.5) * scale * 2
            w = weight(u, v) if callable(weight) else weight
            pts.append(ControlPoint(Vec3(x, float(zfunc(u, v)), z), w=float(w)))
    return NurbsSurface(degree, degree,
                        clamped_knot_vector(degree, m), clamped_knot_vector(degree, n),
                        ControlGrid(m, n, pts))


def preset_surfaces() -> Dict[str, Callable[[], NurbsSurface]]:
    """
    Named factories for starting surfaces.

    Each call builds a fresh surface, so presets can be added to a scene
    more than once without sharing control grids.
    """
    return {
        "Flat patch": lambda: surface_from_zfunc(1, 1, lambda u, v: 0.0),
        "Saddle": lambda: surface_from_zfunc(
            1, 1, lambda u, v: (u - 0.5) * (v - 0.5) * 4),
        "Wave": lambda: surface_from_zfunc(
            3, 3, lambda u, v: 0.4 * math.sin(2 * math.pi * u) * math.cos(2 * math.pi * v)),
        "Dome": lambda: surface_from_zfunc(
            3, 3, lambda u, v: 1 - 2 * ((u - 0.5) ** 2 + (v - 0.5) ** 2),
            weight=lambda u, v: 1 / (1 + 2 * ((u - 0.5) ** 2 + (v - 0.5) ** 2))),
    }
