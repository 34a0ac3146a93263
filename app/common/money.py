"""
Aritmética monetaria del ledger.

Todos los montos se manejan como Decimal cuantizado a centavos; las cantidades
de inventario a milésimas. La tolerancia financiera solo se usa donde antes se
comparaban flotantes (saldo "en cero", sobrepago).
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, Optional

from app.core.config import settings

CENTS = Decimal("0.01")
QUANTITY_STEP = Decimal("0.001")
ZERO = Decimal("0.00")


def to_decimal(value) -> Optional[Decimal]:
    """Convierte a Decimal; None si el valor no es numérico."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None


def money(value) -> Decimal:
    """Cuantiza a centavos. Valores no numéricos o no finitos cuentan como cero."""
    amount = to_decimal(value)
    if amount is None or not amount.is_finite():
        return ZERO
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def quantity(value) -> Decimal:
    amount = to_decimal(value)
    if amount is None or not amount.is_finite():
        return Decimal("0.000")
    return amount.quantize(QUANTITY_STEP, rounding=ROUND_HALF_UP)


def non_negative_money(value) -> Decimal:
    """Como money(), pero negativos y NaN se fijan en cero."""
    amount = money(value)
    return amount if amount > ZERO else ZERO


def sum_money(values: Iterable) -> Decimal:
    return sum((non_negative_money(v) for v in values), ZERO)


def is_positive_finite(value) -> bool:
    amount = to_decimal(value)
    return amount is not None and amount.is_finite() and amount > 0


def is_zero(amount: Decimal, tolerance: Optional[Decimal] = None) -> bool:
    tolerance = settings.FINANCIAL_TOLERANCE if tolerance is None else tolerance
    return abs(amount) <= tolerance


def exceeds(amount: Decimal, limit: Decimal, tolerance: Optional[Decimal] = None) -> bool:
    """True si amount supera limit por más de la tolerancia."""
    tolerance = settings.FINANCIAL_TOLERANCE if tolerance is None else tolerance
    return amount - limit > tolerance
