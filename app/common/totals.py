"""
Cálculo de totales de documentos (facturas y recibos POS)
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Tuple

from app.common.money import money, quantity, ZERO


@dataclass
class LineTotals:
    quantity: Decimal
    rate: Decimal
    tax_rate: Decimal
    line_amount: Decimal
    line_tax: Decimal


@dataclass
class DocumentTotals:
    subtotal: Decimal
    taxes_total: Decimal
    discount: Decimal
    shipping: Decimal
    total_amount: Decimal
    lines: List[LineTotals]


def calculate_line(qty, rate, tax_rate=ZERO) -> LineTotals:
    """line_amount = quantity * rate; el impuesto es un porcentaje del monto de la línea"""
    qty = quantity(qty)
    rate = money(rate)
    tax_rate = Decimal(str(tax_rate or 0))
    line_amount = money(qty * rate)
    line_tax = money(line_amount * tax_rate / Decimal("100"))
    return LineTotals(
        quantity=qty,
        rate=rate,
        tax_rate=tax_rate,
        line_amount=line_amount,
        line_tax=line_tax
    )


def calculate_totals(lines: Iterable[Tuple], discount=ZERO, shipping=ZERO) -> DocumentTotals:
    """total = subtotal + impuestos + envío - descuento.

    `lines` son tuplas (quantity, rate, tax_rate). El total puede quedar
    negativo; el llamador decide si lo rechaza.
    """
    computed = [calculate_line(*line) for line in lines]
    subtotal = sum((line.line_amount for line in computed), ZERO)
    taxes_total = sum((line.line_tax for line in computed), ZERO)
    discount = money(discount)
    shipping = money(shipping)

    return DocumentTotals(
        subtotal=subtotal,
        taxes_total=taxes_total,
        discount=discount,
        shipping=shipping,
        total_amount=subtotal + taxes_total + shipping - discount,
        lines=computed
    )
