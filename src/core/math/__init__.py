"""
Core math modules

Высокоточная десятичная арифметика и масштабированные целые протокола.
"""

# Fixed Point
from src.core.math.fixed_point import (
    # Scales
    D9,
    D9_DEC,
    D18,
    D18_DEC,
    D27,
    D27_DEC,
    MAX_PRICE,
    MAX_WEIGHT,
    ONE,
    PRECISION_DIGITS,
    UINT256_MAX,
    ZERO,
    # Precision context
    Numeric,
    precision,
    with_precision,
    # Conversion
    decimal_scale,
    from_scaled_int,
    to_decimal,
    to_scaled_int,
    # Utilities
    ceil_div,
    clamp,
)

__all__ = [
    # Fixed Point: Scales
    "D9",
    "D9_DEC",
    "D18",
    "D18_DEC",
    "D27",
    "D27_DEC",
    "MAX_PRICE",
    "MAX_WEIGHT",
    "ONE",
    "PRECISION_DIGITS",
    "UINT256_MAX",
    "ZERO",
    # Fixed Point: Precision context
    "Numeric",
    "precision",
    "with_precision",
    # Fixed Point: Conversion
    "decimal_scale",
    "from_scaled_int",
    "to_decimal",
    "to_scaled_int",
    # Fixed Point: Utilities
    "ceil_div",
    "clamp",
]
