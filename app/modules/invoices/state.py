"""
Máquina de estados de la factura.

derive_invoice_state es una función pura: recibe el estado persistido, el total,
los montos de los pagos y las fechas, y devuelve los campos derivados. La usan
Invoice.recalculate (llamado por los servicios y por el hook before_flush) y
la tarea periódica de vencimientos.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from app.common.money import non_negative_money, sum_money, is_zero, ZERO
from app.modules.invoices.models import InvoiceStatus

# Estados en los que contenido y totales quedan bloqueados
LOCKED_STATUSES = frozenset({
    InvoiceStatus.SENT,
    InvoiceStatus.PARTIALLY_PAID,
    InvoiceStatus.OVERDUE,
    InvoiceStatus.PAID,
})

# Estados con saldo por cobrar
RECEIVABLE_STATUSES = frozenset({
    InvoiceStatus.SENT,
    InvoiceStatus.PARTIALLY_PAID,
    InvoiceStatus.OVERDUE,
})

# Estados que no cuentan como ingreso
REVENUE_EXCLUDED_STATUSES = frozenset({
    InvoiceStatus.DRAFT,
    InvoiceStatus.CANCELLED,
})


@dataclass(frozen=True)
class InvoiceState:
    status: InvoiceStatus
    amount_paid: Decimal
    balance_due: Decimal
    overdue_flag: bool


def derive_invoice_state(
    status: InvoiceStatus,
    total,
    payment_amounts: Iterable,
    due_date: Optional[date],
    today: Optional[date] = None,
    tolerance: Optional[Decimal] = None,
) -> InvoiceState:
    today = today or date.today()
    status = InvoiceStatus(status)

    total = non_negative_money(total)
    amount_paid = sum_money(payment_amounts)
    balance_due = max(ZERO, total - amount_paid)

    fully_paid = is_zero(balance_due, tolerance) and total > ZERO
    past_due = due_date is not None and today > due_date

    if status == InvoiceStatus.DRAFT:
        new_status = InvoiceStatus.DRAFT
    elif status == InvoiceStatus.CANCELLED:
        # Una factura anulada que ya está saldada se considera pagada
        new_status = InvoiceStatus.PAID if fully_paid else InvoiceStatus.CANCELLED
    elif fully_paid:
        new_status = InvoiceStatus.PAID
    elif amount_paid > ZERO:
        new_status = InvoiceStatus.PARTIALLY_PAID
    elif past_due:
        new_status = InvoiceStatus.OVERDUE
    else:
        new_status = InvoiceStatus.SENT

    overdue_flag = (
        new_status in RECEIVABLE_STATUSES
        and past_due
        and not is_zero(balance_due, tolerance)
    )

    return InvoiceState(
        status=new_status,
        amount_paid=amount_paid,
        balance_due=balance_due,
        overdue_flag=overdue_flag,
    )
