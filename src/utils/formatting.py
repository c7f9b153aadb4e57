from __future__ import annotations

from decimal import Decimal


def format_decimal(value: Decimal) -> str:
    quantized = value.normalize()
    # Avoid scientific notation for integers.
    if quantized == quantized.to_integral():
        return f"{quantized:.0f}"
    return format(quantized, "f")


def format_paisa(paisa: int) -> str:
    sign = "-" if paisa < 0 else ""
    rupees, rest = divmod(abs(paisa), 100)
    return f"{sign}{rupees}.{rest:02d}"


def format_hex(data: bytes) -> str:
    return "0x" + data.hex()


def format_units(raw_value: int, decimals: int) -> str:
    """Render an integer token amount with ``decimals`` places, without exponent notation."""
    if decimals <= 0:
        return str(raw_value)
    digits = str(raw_value).rjust(decimals + 1, "0")
    whole, fraction = digits[:-decimals], digits[-decimals:].rstrip("0")
    return f"{whole}.{fraction}" if fraction else whole
