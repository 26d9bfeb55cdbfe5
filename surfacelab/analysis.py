from __future__ import annotations
from typing import Any, Dict, Tuple
import math

import numpy as np

from surfacelab import config
from surfacelab.geometry import NurbsSurface

# --- Second Derivatives ---


def _step(t: float, h: float, lo: float, hi: float) -> Tuple[float, float]:
    """Parameters bracketing t by h, pulled back inside [lo, hi]."""
    return max(lo, t - h), min(hi, t + h)


def second_derivatives(surface: NurbsSurface, u: float, v: float, h: float = 1e-4
                       ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Approximates Suu, Svv and Suv at (u,v).

    Differences the analytic first derivatives, so only one level of
    truncation error is introduced. The stencil is one-sided at the edges
    of the domain.

    Returns:
        A tuple (Suu, Svv, Suv) of NumPy arrays of shape (3,).
    """
    (u0, u1), (v0, v1) = surface.domain_u, surface.domain_v
    ua, ub = _step(u, h * (u1 - u0), u0, u1)
    va, vb = _step(v, h * (v1 - v0), v0, v1)

    _, du_a, dv_a = surface.evaluate_with_derivatives(ua, v)
    _, du_b, dv_b = surface.evaluate_with_derivatives(ub, v)
    _, _, dv_lo = surface.evaluate_with_derivatives(u, va)
    _, _, dv_hi = surface.evaluate_with_derivatives(u, vb)

    du_span = max(1e-12, ub - ua)
    dv_span = max(1e-12, vb - va)
    return (du_b - du_a) / du_span, (dv_hi - dv_lo) / dv_span, (dv_b - dv_a) / du_span


# --- Shape Operator ---


def principal_curvatures(first: np.ndarray, second: np.ndarray
                         ) -> Tuple[float, float, np.ndarray]:
    """
    Eigen-decomposition of the shape operator I^-1 II.

    Args:
        first: The 2x2 first fundamental form [[E, F], [F, G]].
        second: The 2x2 second fundamental form [[e, f], [f, g]].

    Returns:
        (k1, k2, coeffs) with k1 >= k2; coeffs[:, i] holds the (du, dv)
        components of the i-th principal direction.

    Raises:
        np.linalg.LinAlgError: If the first fundamental form is singular.
    """
    shape_op = np.linalg.solve(first, second)
    vals, vecs = np.linalg.eig(shape_op)
    order = np.argsort(np.real(vals))[::-1]
    vals = np.real(vals[order])
    vecs = np.real(vecs[:, order])
    return float(vals[0]), float(vals[1]), vecs


def _tangent_direction(coeff: np.ndarray, Su: np.ndarray, Sv: np.ndarray, n: np.ndarray) -> np.ndarray:
    d = coeff[0] * Su + coeff[1] * Sv
    d = d - np.dot(d, n) * n
    length = np.linalg.norm(d)
    return d / length if length > 0 else d


# --- Differential Geometry ---


def differential(surface: NurbsSurface, u: float, v: float, h: float = 1e-4) -> Dict[str, Any]:
    """
    Calculates differential properties of a surface at (u,v).

    Args:
        surface: The surface to analyse.
        u: The u-parameter for evaluation.
        v: The v-parameter for evaluation.
        h: The relative step size for the second derivatives.

    Returns:
        A dictionary containing:
        - S: The surface point.
        - Su, Sv: First partial derivatives (analytic).
        - Suu, Svv, Suv: Second partial derivatives.
        - normal: The unit normal vector.
        - E, F, G: Coefficients of the First Fundamental Form.
        - e, f, g: Coefficients of the Second Fundamental Form.
        - K, H: Gaussian and Mean curvatures (NaN on a degenerate metric).
        - k1, k2: Principal curvatures.
        - d1, d2: Principal direction vectors.
    """
    S, Su, Sv = surface.evaluate_with_derivatives(u, v)
    Suu, Svv, Suv = second_derivatives(surface, u, v, h)

    cross = np.cross(Su, Sv)
    cross_len = float(np.linalg.norm(cross))
    n = cross / cross_len if cross_len > 1e-12 else np.array(config.UP_VECTOR, dtype=float)

    E, F, G = float(Su @ Su), float(Su @ Sv), float(Sv @ Sv)
    e, f, g = float(n @ Suu), float(n @ Suv), float(n @ Svv)

    metric = E * G - F * F
    K = H = math.nan
    if abs(metric) >= 1e-20:
        K = (e * g - f * f) / metric
        H = (E * g - 2 * F * f + G * e) / (2 * metric)

    k1 = k2 = math.nan
    d1 = d2 = np.full(3, np.nan)
    try:
        k1, k2, coeffs = principal_curvatures(np.array([[E, F], [F, G]]), np.array([[e, f], [f, g]]))
        d1 = _tangent_direction(coeffs[:, 0], Su, Sv, n)
        d2 = _tangent_direction(coeffs[:, 1], Su, Sv, n)
    except np.linalg.LinAlgError:
        # Singular first fundamental form (degenerate parameterization)
        pass

    return {
        "S": S, "Su": Su, "Sv": Sv, "Suu": Suu, "Svv": Svv, "Suv": Suv,
        "normal": n, "E": E, "F": F, "G": G, "e": e, "f": f, "g": g,
        "K": K, "H": H, "k1": k1, "k2": k2, "d1": d1, "d2": d2
    }
