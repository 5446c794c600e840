"""
Module: crew_kernel.db.types
Responsibility: Money coercion and the rounding helper shared by
    models, domain, and services.  Centralizes precision and rounding so every
    escrow amount is computed and stored identically.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats for money.  All monetary amounts use Decimal.
    - round_money() is the ONLY sanctioned rounding function for money.
      Rounding is half-up to the configured currency unit.

Failure modes:
    - decimal.InvalidOperation if a non-numeric string reaches to_money().
"""

from decimal import ROUND_HALF_UP, Decimal

DEFAULT_ROUNDING = ROUND_HALF_UP


def to_money(value: Decimal | int | str) -> Decimal:
    """
    Coerce an int, str, or Decimal to Decimal.

    Floats are refused: they cannot represent currency amounts exactly.
    """
    if isinstance(value, float):
        raise TypeError(f"Float not allowed for money: {value!r}")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(
    value: Decimal,
    decimal_places: int = 0,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the currency unit.

    Args:
        value: The Decimal value to round.
        decimal_places: Places of the currency unit (0 rounds to whole units).
        rounding: Rounding mode (default: ROUND_HALF_UP).

    Returns:
        Rounded Decimal value.
    """
    quantum = Decimal(1).scaleb(-decimal_places)
    return value.quantize(quantum, rounding=rounding)
