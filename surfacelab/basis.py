from __future__ import annotations
from bisect import bisect_right
from typing import List, Sequence

import numpy as np

# --- Knot Span Search ---


def find_span(n: int, p: int, u: float, U: Sequence[float]) -> int:
    """
    Index i of the knot span with U[i] <= u < U[i+1] (The NURBS Book, A2.1).

    Parameters outside the domain are clamped: u >= U[n+1] maps to the last
    span n and u <= U[p] to the first span p.

    Args:
        n: Index of the last control point (count - 1).
        p: Degree.
        u: Parameter value.
        U: Clamped knot vector.
    """
    if u >= U[n + 1]:
        return n
    if u <= U[p]:
        return p
    # Binary search restricted to the active knots U[p..n+1]
    return bisect_right(U, u, p, n + 1) - 1


# --- Basis Functions ---


def basis_funs(i: int, u: float, p: int, U: Sequence[float]) -> np.ndarray:
    """
    The p+1 non-zero basis functions N_{i-p,p}(u) .. N_{i,p}(u).

    Triangular Cox-de Boor recurrence (The NURBS Book, A2.2). Inside a valid
    span every denominator is positive and the values sum to one.
    """
    N = np.zeros(p + 1, dtype=float)
    N[0] = 1.0
    left = [0.0] * (p + 1)
    right = [0.0] * (p + 1)
    for deg in range(1, p + 1):
        left[deg] = u - U[i + 1 - deg]
        right[deg] = U[i + deg] - u
        carry = 0.0
        for r in range(deg):
            ratio = N[r] / (right[r + 1] + left[deg - r])
            N[r] = carry + right[r + 1] * ratio
            carry = left[deg - r] * ratio
        N[deg] = carry
    return N


def ders_basis_funs(i: int, u: float, p: int, n: int, U: Sequence[float]) -> np.ndarray:
    """
    Computes the non-zero basis functions and their derivatives.

    Implements Algorithm A2.3 of The NURBS Book: the triangular table `ndu`
    holds the basis functions and knot differences, and a two-row buffer `a`
    holds the coefficients of the current and previous derivative order.

    Args:
        i: The knot span index (from find_span).
        u: The parameter value.
        p: The degree of the basis function.
        n: The highest derivative order requested.
        U: The knot vector.

    Returns:
        A NumPy array of shape (min(n, p)+1, p+1) where row k holds the k-th
        derivatives of N_{i-p,p}(u), ..., N_{i,p}(u).
    """
    ndu = np.zeros((p + 1, p + 1), dtype=float)
    ndu[0, 0] = 1.0
    left = [0.0] * (p + 1)
    right = [0.0] * (p + 1)
    for deg in range(1, p + 1):
        left[deg] = u - U[i + 1 - deg]
        right[deg] = U[i + deg] - u
        carry = 0.0
        for r in range(deg):
            # Lower triangle: knot differences. Upper triangle: basis values.
            ndu[deg, r] = right[r + 1] + left[deg - r]
            ratio = ndu[r, deg - 1] / ndu[deg, r]
            ndu[r, deg] = carry + right[r + 1] * ratio
            carry = left[deg - r] * ratio
        ndu[deg, deg] = carry

    d = min(n, p)
    ders = np.zeros((d + 1, p + 1), dtype=float)
    ders[0, :] = ndu[:, p]

    a = np.zeros((2, p + 1), dtype=float)
    for r in range(p + 1):
        s1, s2 = 0, 1
        a[0, 0] = 1.0
        for k in range(1, d + 1):
            dd = 0.0
            rk = r - k
            pk = p - k
            if r >= k:
                a[s2, 0] = a[s1, 0] / ndu[pk + 1, rk]
                dd = a[s2, 0] * ndu[rk, pk]
            j1 = 1 if rk >= -1 else -rk
            j2 = k - 1 if r - 1 <= pk else p - r
            for j in range(j1, j2 + 1):
                a[s2, j] = (a[s1, j] - a[s1, j - 1]) / ndu[pk + 1, rk + j]
                dd += a[s2, j] * ndu[rk + j, pk]
            if r <= pk:
                a[s2, k] = -a[s1, k - 1] / ndu[pk + 1, r]
                dd += a[s2, k] * ndu[r, pk]
            ders[k, r] = dd
            s1, s2 = s2, s1

    # Multiply through by p!/(p-k)!
    factor = p
    for k in range(1, d + 1):
        ders[k, :] *= factor
        factor *= (p - k)
    return ders


# --- Knot Vector Generation ---


def clamped_knot_vector(degree: int, n_ctrl: int) -> List[float]:
    """
    Uniform clamped knot vector for `n_ctrl` control points.

    The end values repeat `degree+1` times so the surface interpolates its
    corner control points; the `n_ctrl - degree` spans all have equal width.

    Returns:
        A list of `n_ctrl + degree + 1` floats from 0.0 to 1.0.
    """
    spans = n_ctrl - degree
    interior = [k / spans for k in range(1, spans)]
    return [0.0] * (degree + 1) + interior + [1.0] * (degree + 1)


def bezier_knot_vector(degree: int) -> List[float]:
    """Single-span clamped knot vector, e.g. degree 3 -> [0,0,0,0,1,1,1,1]."""
    return [0.0] * (degree + 1) + [1.0] * (degree + 1)


def is_clamped(degree: int, knots: Sequence[float]) -> bool:
    """True if `knots` is non-decreasing with `degree+1` repeated end values."""
    if len(knots) < 2 * (degree + 1):
        return False
    if any(knots[k] > knots[k + 1] for k in range(len(knots) - 1)):
        return False
    head = knots[:degree + 1]
    tail = knots[-(degree + 1):]
    if any(k != head[0] for k in head) or any(k != tail[0] for k in tail):
        return False
    return head[0] < tail[0]
