"""Deterministic integer arithmetic shared by the engines.

Every engine computes on unsigned integers with floor division so that any
replaying verifier reproduces results bit for bit:
1. No floating point anywhere
2. Explicit bounds on every externally supplied quantity
3. Overflow checked against the store's column width
"""

from __future__ import annotations

from typing import Any

from .types import MAX_UINT, AmountOverflowError, ValidationError


def to_uint(value: Any, name: str = "value") -> int:
    """Validate an unsigned integer input.

    Args:
        value: Raw value (must be an int, bools are rejected)
        name: Name for error messages

    Returns:
        The value, unchanged

    Raises:
        ValidationError: If the value is not an int in [0, MAX_UINT]
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer, got {type(value).__name__}", field=name)
    if value < 0:
        raise ValidationError(f"{name} is negative", field=name)
    if value > MAX_UINT:
        raise AmountOverflowError(f"{name} exceeds {MAX_UINT}", field=name)
    return value


def floor_div(numerator: int, denominator: int) -> int:
    """Floor division that refuses a zero denominator."""
    if denominator == 0:
        raise ValidationError("division by zero")
    return numerator // denominator


def abs_diff(a: int, b: int) -> int:
    return a - b if a >= b else b - a


def clamp(value: int, min_val: int, max_val: int) -> int:
    """Clamp an integer to a range."""
    return max(min_val, min(value, max_val))


def checked_add(a: int, b: int, name: str = "value") -> int:
    """Add two amounts, failing if the result no longer fits the store."""
    total = a + b
    if total > MAX_UINT:
        raise AmountOverflowError(f"{name} would exceed {MAX_UINT}", field=name)
    return total


__all__ = ["to_uint", "floor_div", "abs_diff", "clamp", "checked_add"]
