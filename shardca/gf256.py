"""
GF(2^8) arithmetic.

Elements are ints in [0, 255]. Addition is xor; multiplication is done
through exp/log tables for the AES field (reduction polynomial 0x11B,
generator 0x03). The tables are built once at import.
"""

from __future__ import annotations

from typing import Sequence

ORDER = 256
REDUCTION_POLY = 0x11B
GENERATOR = 0x03


def _build_tables() -> tuple[list[int], list[int]]:
    exp = [0] * 510
    log = [0] * ORDER
    x = 1
    for i in range(255):
        exp[i] = x
        log[x] = i
        # x * 3 == (x * 2) ^ x
        doubled = x << 1
        if doubled & 0x100:
            doubled ^= REDUCTION_POLY
        x = doubled ^ x
    # Doubled length so mul() can skip the mod 255
    for i in range(255, 510):
        exp[i] = exp[i - 255]
    return exp, log


EXP, LOG = _build_tables()


def add(a: int, b: int) -> int:
    """Field addition (and subtraction)."""
    return a ^ b


sub = add


def mul(a: int, b: int) -> int:
    """Field multiplication."""
    if a == 0 or b == 0:
        return 0
    return EXP[LOG[a] + LOG[b]]


def inv(a: int) -> int:
    """Multiplicative inverse."""
    if a == 0:
        raise ZeroDivisionError("Cannot invert zero in GF(2^8)")
    return EXP[255 - LOG[a]]


def div(a: int, b: int) -> int:
    """Field division a / b."""
    return mul(a, inv(b))


def eval_poly(coeffs: Sequence[int], x: int) -> int:
    """Evaluate a polynomial (constant term first) at *x* with Horner's method."""
    result = 0
    for c in reversed(coeffs):
        result = add(mul(result, x), c)
    return result


def interpolate_at_zero(xs: Sequence[int], ys: Sequence[int]) -> int:
    """
    Lagrange interpolation of the points (xs[j], ys[j]), evaluated at x = 0.

    The x values must be distinct and non-zero; callers validate that.
    """
    result = 0
    for j, (xj, yj) in enumerate(zip(xs, ys)):
        num = 1
        den = 1
        for m, xm in enumerate(xs):
            if m == j:
                continue
            num = mul(num, xm)             # (0 - x_m) == x_m
            den = mul(den, add(xj, xm))    # (x_j - x_m) == x_j ^ x_m
        result = add(result, mul(yj, div(num, den)))
    return result
