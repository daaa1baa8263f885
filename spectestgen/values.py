"""Render typed script values as Python source literals.

The literals produced here are evaluated by the generated test modules
against the runtime helper's width casts (``i32``, ``f32``...), so every float
is rebuilt from its exact bit pattern whenever a decimal would lose
information (NaN payloads).
"""

import struct

from spectestgen.models import Float32Value, Float64Value, Int32Value, Int64Value, Value

F32_EXPONENT_MASK = 0x7F80_0000
F32_MANTISSA_MASK = 0x007F_FFFF
F32_SIGN_MASK = 0x8000_0000
F64_EXPONENT_MASK = 0x7FF0_0000_0000_0000
F64_MANTISSA_MASK = 0x000F_FFFF_FFFF_FFFF
F64_SIGN_MASK = 0x8000_0000_0000_0000


def type_of(value: Value) -> str:
    """Return the width type token for a value.

    Args:
        value: Script value.

    Returns:
        One of ``i32``, ``i64``, ``f32`` or ``f64``.
    """
    match value:
        case Int32Value():
            return "i32"
        case Int64Value():
            return "i64"
        case Float32Value():
            return "f32"
        case Float64Value():
            return "f64"
    raise TypeError(f"Unsupported value: {value!r}")


def _classify(
    bits: int, exponent_mask: int, mantissa_mask: int, sign_mask: int
) -> tuple[bool, bool, bool]:
    """Split a float bit pattern into (is_nan, is_infinite, is_negative)."""
    exponent_full = (bits & exponent_mask) == exponent_mask
    mantissa = bits & mantissa_mask
    negative = bool(bits & sign_mask)
    return exponent_full and mantissa != 0, exponent_full and mantissa == 0, negative


def _f32_parts(bits: int) -> tuple[bool, bool, bool]:
    return _classify(bits, F32_EXPONENT_MASK, F32_MANTISSA_MASK, F32_SIGN_MASK)


def _f64_parts(bits: int) -> tuple[bool, bool, bool]:
    return _classify(bits, F64_EXPONENT_MASK, F64_MANTISSA_MASK, F64_SIGN_MASK)


def is_nan(value: Value) -> bool:
    """Check whether a value is a NaN, judged on its bit pattern.

    Args:
        value: Script value.

    Returns:
        True for f32/f64 NaNs of any payload, False otherwise.
    """
    match value:
        case Float32Value(bits=bits):
            return _f32_parts(bits)[0]
        case Float64Value(bits=bits):
            return _f64_parts(bits)[0]
    return False


def f32_bits_to_float(bits: int) -> float:
    """Widen an f32 bit pattern to a Python float (exact for non-NaN values)."""
    return struct.unpack("<f", bits.to_bytes(4, "little"))[0]


def f64_bits_to_float(bits: int) -> float:
    """Reinterpret an f64 bit pattern as a Python float."""
    return struct.unpack("<d", bits.to_bytes(8, "little"))[0]


def literal_of(value: Value) -> str:
    """Return deterministic Python source text that evaluates to ``value``.

    Args:
        value: Script value.

    Returns:
        Source literal using the runtime helper's casts and constants.
    """
    match value:
        case Int32Value(value=number):
            return f"i32({number})"
        case Int64Value(value=number):
            return f"i64({number})"
        case Float32Value(bits=bits):
            nan, infinite, negative = _f32_parts(bits)
            if infinite:
                return "F32_NEG_INFINITY" if negative else "F32_INFINITY"
            if nan:
                return f"f32_from_bits(0x{bits:08x})"
            return f"f32({f32_bits_to_float(bits)!r})"
        case Float64Value(bits=bits):
            nan, infinite, negative = _f64_parts(bits)
            if infinite:
                return "F64_NEG_INFINITY" if negative else "F64_INFINITY"
            if nan:
                return f"f64_from_bits(0x{bits:016x})"
            return f"f64({f64_bits_to_float(bits)!r})"
    raise TypeError(f"Unsupported value: {value!r}")
