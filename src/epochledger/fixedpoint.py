"""
epochledger/fixedpoint.py

Checked unsigned arithmetic for weights, integrals and balances.

Python integers never wrap, so the bounds of a 256-bit word are enforced
explicitly: anything leaving [0, MAX_UINT256] is an invalid state.
"""

from .config import MAX_UINT256, PRECISION
from .exceptions import ArithmeticStateError


def check_uint(value: int, what: str = "value") -> int:
    """Return value if it fits an unsigned 256-bit word."""
    if value < 0:
        raise ArithmeticStateError(f"{what} underflow: {value}")
    if value > MAX_UINT256:
        raise ArithmeticStateError(f"{what} overflow: {value}")
    return value


def add(a: int, b: int, what: str = "sum") -> int:
    return check_uint(a + b, what)


def sub(a: int, b: int, what: str = "difference") -> int:
    return check_uint(a - b, what)


def mul_div(a: int, b: int, denominator: int, what: str = "product") -> int:
    """floor(a * b / denominator) with an overflow check on the product."""
    if denominator <= 0:
        raise ArithmeticStateError(f"{what}: division by {denominator}")
    return check_uint(a * b, what) // denominator


def to_integral(amount: int, weight: int) -> int:
    """Reward per unit of weight in PRECISION fixed point."""
    return mul_div(amount, PRECISION, weight, "integral increment")


def from_integral(delta_integral: int, weight: int) -> int:
    """Reward earned by `weight` over an integral increase."""
    return mul_div(check_uint(delta_integral, "integral delta"), weight, PRECISION, "accrual")
