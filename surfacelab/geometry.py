from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Literal, NamedTuple, Sequence, Tuple
import logging
import math

import numpy as np

from surfacelab import config
from surfacelab.basis import (
    basis_funs, bezier_knot_vector, clamped_knot_vector, ders_basis_funs,
    find_span, is_clamped,
)
from surfacelab.errors import InvalidSurfaceError, KnotInsertionError

logger = logging.getLogger(__name__)

# --- Type Definitions ---

Direction = Literal["u", "v"]
"""Parametric direction of a knot vector or a control-grid axis."""


# --- Core Dataclasses ---

@dataclass(frozen=True)
class Vec3:
    """Represents a 3D vector or point."""
    x: float
    y: float
    z: float

    def as_np(self) -> np.ndarray:
        """Return the vector as a NumPy array."""
        return np.array([self.x, self.y, self.z], dtype=float)

    def __add__(self, other: "Vec3") -> "Vec3":
        return Vec3(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: "Vec3") -> "Vec3":
        return Vec3(self.x - other.x, self.y - other.y, self.z - other.z)

    def __mul__(self, s: float) -> "Vec3":
        return Vec3(self.x * s, self.y * s, self.z * s)

    __rmul__ = __mul__

    def distance_to(self, other: "Vec3") -> float:
        return math.sqrt((self.x - other.x) ** 2 + (self.y - other.y) ** 2 + (self.z - other.z) ** 2)


@dataclass(frozen=True)
class ControlPoint:
    """Represents a control point, with a position and a weight."""
    p: Vec3
    w: float = 1.0  # Weight; w=1.0 for non-rational points.


@dataclass
class ControlGrid:
    """
    Represents a grid of control points for a tensor-product surface.

    Attributes:
        m: The number of control points in the u-direction.
        n: The number of control points in the v-direction.
        points: A flat list of m*n control points, stored in row-major order.
    """
    m: int
    n: int
    points: List[ControlPoint]

    def at(self, i: int, j: int) -> ControlPoint:
        """
        Access the control point at grid index (i, j).

        Args:
            i: The row index (in u-direction, from 0 to m-1).
            j: The column index (in v-direction, from 0 to n-1).

        Returns:
            The ControlPoint at the specified grid location.
        """
        if not (0 <= i < self.m and 0 <= j < self.n):
            raise IndexError(f"control point ({i}, {j}) outside {self.m}x{self.n} grid")
        return self.points[i * self.n + j]

    def set(self, i: int, j: int, cp: ControlPoint) -> None:
        """Replace the control point at grid index (i, j)."""
        if not (0 <= i < self.m and 0 <= j < self.n):
            raise IndexError(f"control point ({i}, {j}) outside {self.m}x{self.n} grid")
        self.points[i * self.n + j] = cp

    def positions(self) -> List[Vec3]:
        """Row-major copy of the positions only."""
        return [cp.p for cp in self.points]

    def to_numpy(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Convert the control grid to NumPy arrays for efficient computation.

        Returns:
            A tuple (P, W) where:
            - P is an (m, n, 3) array of control point positions.
            - W is an (m, n) array of control point weights.
        """
        P = np.zeros((self.m, self.n, 3), dtype=float)
        W = np.ones((self.m, self.n), dtype=float)
        for i in range(self.m):
            for j in range(self.n):
                cp = self.at(i, j)
                P[i, j, :] = cp.p.as_np()
                W[i, j] = cp.w
        return P, W

    def copy(self) -> "ControlGrid":
        return ControlGrid(self.m, self.n, list(self.points))


class Tessellation(NamedTuple):
    """Triangle mesh sampled from a surface, indexed row-major like the grid."""
    vertices: np.ndarray  # (samples_u * samples_v, 3)
    normals: np.ndarray  # (samples_u * samples_v, 3)
    indices: np.ndarray  # flat, 6 per quad
    uvs: np.ndarray  # (samples_u * samples_v, 2)


# --- Surface Model ---

@dataclass
class NurbsSurface:
    """
    A rational tensor-product B-spline surface with clamped knot vectors.

    The control grid has `degree_u + span_count_u` rows and
    `degree_v + span_count_v` columns, and each knot vector has
    `cp_count + degree + 1` entries. The definition is validated on
    construction; an ill-formed surface raises InvalidSurfaceError.
    """
    degree_u: int
    degree_v: int
    knots_u: List[float]
    knots_v: List[float]
    grid: ControlGrid = field(repr=False)

    def __post_init__(self) -> None:
        self.knots_u = [float(k) for k in self.knots_u]
        self.knots_v = [float(k) for k in self.knots_v]
        self.validate()

    # --- Dimensions ---

    @property
    def cp_count_u(self) -> int:
        return self.grid.m

    @property
    def cp_count_v(self) -> int:
        return self.grid.n

    @property
    def span_count_u(self) -> int:
        return self.grid.m - self.degree_u

    @property
    def span_count_v(self) -> int:
        return self.grid.n - self.degree_v

    @property
    def domain_u(self) -> Tuple[float, float]:
        return self.knots_u[self.degree_u], self.knots_u[self.cp_count_u]

    @property
    def domain_v(self) -> Tuple[float, float]:
        return self.knots_v[self.degree_v], self.knots_v[self.cp_count_v]

    def validate(self) -> None:
        """Raise InvalidSurfaceError if any NURBS invariant is violated."""
        for name, degree, knots, count in (
                ("u", self.degree_u, self.knots_u, self.grid.m),
                ("v", self.degree_v, self.knots_v, self.grid.n)):
            if degree < 1:
                raise InvalidSurfaceError(f"degree in {name} must be >= 1, got {degree}")
            if count < degree + 1:
                raise InvalidSurfaceError(
                    f"{count} control points in {name} cannot carry degree {degree}")
            if len(knots) != count + degree + 1:
                raise InvalidSurfaceError(
                    f"knot vector in {name} has {len(knots)} values, expected {count + degree + 1}")
            if not is_clamped(degree, knots):
                raise InvalidSurfaceError(f"knot vector in {name} is not clamped and non-decreasing")
        if len(self.grid.points) != self.grid.m * self.grid.n:
            raise InvalidSurfaceError(
                f"grid holds {len(self.grid.points)} points, expected {self.grid.m * self.grid.n}")
        if any(cp.w <= 0.0 for cp in self.grid.points):
            raise InvalidSurfaceError("control point weights must be positive")

    # --- Control Point Access ---

    def control_point(self, u: int, v: int) -> Vec3:
        return self.grid.at(u, v).p

    def weight(self, u: int, v: int) -> float:
        return self.grid.at(u, v).w

    def set_control_point(self, u: int, v: int, position: Vec3) -> None:
        """Write a position, keeping the weight. Editors go through SurfaceEntity."""
        self.grid.set(u, v, ControlPoint(position, self.grid.at(u, v).w))

    def set_weight(self, u: int, v: int, w: float) -> None:
        self.grid.set(u, v, ControlPoint(self.grid.at(u, v).p, float(w)))

    # --- Evaluation ---

    def _spans(self, u: float, v: float) -> Tuple[int, int]:
        span_u = find_span(self.cp_count_u - 1, self.degree_u, u, self.knots_u)
        span_v = find_span(self.cp_count_v - 1, self.degree_v, v, self.knots_v)
        return span_u, span_v

    def evaluate(self, u: float, v: float) -> np.ndarray:
        """
        Evaluates the surface point S(u,v).

        Sums the contributions of the (p+1)x(q+1) active control points in
        homogeneous space and divides by the accumulated weight. A weight sum
        at or below config.WEIGHT_EPSILON yields the zero point.

        Returns:
            A NumPy array of shape (3,).
        """
        p, q = self.degree_u, self.degree_v
        u_span, v_span = self._spans(u, v)
        Nu = basis_funs(u_span, u, p, self.knots_u)
        Nv = basis_funs(v_span, v, q, self.knots_v)

        S_h = np.zeros(3, dtype=float)
        w_sum = 0.0
        for a in range(p + 1):
            i = u_span - p + a
            for b in range(q + 1):
                j = v_span - q + b
                cp = self.grid.at(i, j)
                basis_w = Nu[a] * Nv[b] * cp.w
                S_h += basis_w * cp.p.as_np()
                w_sum += basis_w

        if w_sum <= config.WEIGHT_EPSILON:
            return np.zeros(3, dtype=float)
        return S_h / w_sum

    def _derivatives(self, P: np.ndarray, W: np.ndarray, u: float, v: float
                     ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        p, q = self.degree_u, self.degree_v
        u_span, v_span = self._spans(u, v)
        ders_u = ders_basis_funs(u_span, u, p, 1, self.knots_u)
        ders_v = ders_basis_funs(v_span, v, q, 1, self.knots_v)

        # Homogeneous point and partials: xyz*w in [0:3], w in [3]
        S = np.zeros(4, dtype=float)
        Su = np.zeros(4, dtype=float)
        Sv = np.zeros(4, dtype=float)
        for a in range(p + 1):
            i = u_span - p + a
            for b in range(q + 1):
                j = v_span - q + b
                Pw = np.append(P[i, j] * W[i, j], W[i, j])
                S += ders_u[0, a] * ders_v[0, b] * Pw
                Su += ders_u[1, a] * ders_v[0, b] * Pw
                Sv += ders_u[0, a] * ders_v[1, b] * Pw

        w_inv = 1.0 / S[3] if S[3] > config.WEIGHT_EPSILON else 0.0
        point = S[:3] * w_inv
        # Quotient rule: dP/du = (dA/du - w_u * P) / w
        d_u = (Su[:3] - Su[3] * point) * w_inv
        d_v = (Sv[:3] - Sv[3] * point) * w_inv
        return point, d_u, d_v

    def evaluate_with_derivatives(self, u: float, v: float
                                  ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Evaluates S(u,v) and the first partial derivatives dS/du, dS/dv.

        Uses the analytic rational derivative (The NURBS Book, A4.4) rather
        than finite differences.

        Returns:
            A tuple (point, dU, dV) of NumPy arrays of shape (3,).
        """
        P, W = self.grid.to_numpy()
        return self._derivatives(P, W, u, v)

    def normal(self, u: float, v: float) -> np.ndarray:
        """Unit normal cross(dU, dV); the up vector where the cross product vanishes."""
        _, d_u, d_v = self.evaluate_with_derivatives(u, v)
        return _unit_normal(d_u, d_v)

    # --- Tessellation ---

    def tessellate(self, samples_u: int, samples_v: int) -> Tessellation:
        """
        Samples the surface on a (samples_u x samples_v) grid and triangulates.

        Args:
            samples_u: Samples along u, raised to at least 2.
            samples_v: Samples along v, raised to at least 2.

        Returns:
            A Tessellation with two triangles per quad cell, wound (a, c, b)
            and (b, c, d) where a=(i,j), b=(i,j+1), c=(i+1,j), d=(i+1,j+1).
        """
        samples_u = max(2, int(samples_u))
        samples_v = max(2, int(samples_v))
        P, W = self.grid.to_numpy()

        count = samples_u * samples_v
        vertices = np.zeros((count, 3), dtype=float)
        normals = np.zeros((count, 3), dtype=float)
        uvs = np.zeros((count, 2), dtype=float)

        for i in range(samples_u):
            u = min(i / (samples_u - 1), 1.0)
            for j in range(samples_v):
                v = min(j / (samples_v - 1), 1.0)
                idx = i * samples_v + j
                point, d_u, d_v = self._derivatives(P, W, u, v)
                vertices[idx] = point
                normals[idx] = _unit_normal(d_u, d_v)
                uvs[idx] = (u, v)

        indices = np.zeros((samples_u - 1) * (samples_v - 1) * 6, dtype=np.int64)
        k = 0
        for i in range(samples_u - 1):
            for j in range(samples_v - 1):
                a = i * samples_v + j
                b = a + 1
                c = (i + 1) * samples_v + j
                d = c + 1
                indices[k:k + 6] = (a, c, b, b, c, d)
                k += 6

        return Tessellation(vertices, normals, indices, uvs)

    # --- Knot Insertion (Boehm's algorithm) ---

    def insert_knot_u(self, t: float) -> None:
        """Insert knot t into knots_u, adding one row of control points."""
        self._insert_knot("u", t)

    def insert_knot_v(self, t: float) -> None:
        """Insert knot t into knots_v, adding one column of control points."""
        self._insert_knot("v", t)

    def _insert_knot(self, direction: Direction, t: float) -> None:
        t = float(t)
        if direction == "u":
            degree, knots, count = self.degree_u, self.knots_u, self.cp_count_u
        else:
            degree, knots, count = self.degree_v, self.knots_v, self.cp_count_v
        lo, hi = knots[degree], knots[count]
        if not lo < t < hi:
            raise KnotInsertionError(f"knot {t} outside open domain ({lo}, {hi}) in {direction}")

        k = find_span(count - 1, degree, t, knots)
        alpha = insertion_alpha(t, k, degree, knots)
        new_knots = knots[:k + 1] + [t] + knots[k + 1:]

        m, n = self.grid.m, self.grid.n
        if direction == "u":
            lines = [[self.grid.at(i, j) for i in range(m)] for j in range(n)]
            refined = [_refine_line(line, k, degree, alpha) for line in lines]
            points = [refined[j][i] for i in range(m + 1) for j in range(n)]
            self.grid = ControlGrid(m + 1, n, points)
            self.knots_u = new_knots
        else:
            lines = [[self.grid.at(i, j) for j in range(n)] for i in range(m)]
            refined = [_refine_line(line, k, degree, alpha) for line in lines]
            points = [cp for line in refined for cp in line]
            self.grid = ControlGrid(m, n + 1, points)
            self.knots_v = new_knots
        logger.debug("Inserted knot %s=%.4f at span %d", direction, t, k)

    # --- Deep Clone ---

    def clone(self) -> "NurbsSurface":
        return NurbsSurface(self.degree_u, self.degree_v,
                            list(self.knots_u), list(self.knots_v), self.grid.copy())


# --- Helpers ---

def _unit_normal(d_u: np.ndarray, d_v: np.ndarray) -> np.ndarray:
    n = np.cross(d_u, d_v)
    length_sq = float(np.dot(n, n))
    if length_sq <= config.NORMAL_EPSILON:
        return np.array(config.UP_VECTOR, dtype=float)
    return n / math.sqrt(length_sq)


def insertion_alpha(t: float, k: int, degree: int, knots: Sequence[float]) -> np.ndarray:
    """
    Blend factors for inserting t into span k.

    alpha[i] = (t - knots[idx]) / (knots[idx+degree] - knots[idx]) with
    idx = k - degree + i, and 0 where the denominator is numerically zero.
    """
    alpha = np.zeros(degree + 1, dtype=float)
    for i in range(degree + 1):
        idx = k - degree + i
        denom = knots[idx + degree] - knots[idx]
        alpha[i] = 0.0 if denom < config.KNOT_EPSILON else (t - knots[idx]) / denom
    return alpha


def _refine_line(line: List[ControlPoint], k: int, degree: int, alpha: np.ndarray) -> List[ControlPoint]:
    """Refine one row or column of control points; the result has one more point."""
    out = list(line[:k - degree + 1])
    for i in range(k - degree + 1, k + 1):
        a = float(alpha[i - (k - degree)])
        cur, prev = line[i], line[i - 1]
        wa = a * cur.w + (1.0 - a) * prev.w
        # Blend in homogeneous space, then project back
        ph = cur.p * (a * cur.w) + prev.p * ((1.0 - a) * prev.w)
        if wa > config.WEIGHT_EPSILON:
            ph = ph * (1.0 / wa)
        out.append(ControlPoint(ph, wa))
    out.extend(line[k:])
    return out


def flat_grid(cp_u: int, cp_v: int) -> ControlGrid:
    """Flat XZ grid from (-1,-1) to (1,1) with unit weights."""
    pts = []
    for i in range(cp_u):
        x = -1.0 + 2.0 * i / (cp_u - 1)
        for j in range(cp_v):
            z = -1.0 + 2.0 * j / (cp_v - 1)
            pts.append(ControlPoint(Vec3(x, 0.0, z), 1.0))
    return ControlGrid(cp_u, cp_v, pts)


# --- Factories ---

def create_bezier_patch(degree: int = config.DEFAULT_DEGREE) -> NurbsSurface:
    """A flat single-span Bezier patch, 4x4 control points at the default degree."""
    count = degree + 1
    return NurbsSurface(degree, degree,
                        bezier_knot_vector(degree), bezier_knot_vector(degree),
                        flat_grid(count, count))


def create_grid(spans_u: int, spans_v: int, degree: int = config.DEFAULT_DEGREE) -> NurbsSurface:
    """
    A flat multi-span surface with uniform clamped knots.

    Each direction carries `degree + spans` control points, so
    create_grid(1, 1) matches create_bezier_patch().
    """
    if spans_u < 1 or spans_v < 1:
        raise InvalidSurfaceError(f"span counts must be >= 1, got {spans_u}x{spans_v}")
    cp_u = degree + spans_u
    cp_v = degree + spans_v
    return NurbsSurface(degree, degree,
                        clamped_knot_vector(degree, cp_u), clamped_knot_vector(degree, cp_v),
                        flat_grid(cp_u, cp_v))
