"""
Revenue Report Service

Reglas para no contar dos veces el mismo dinero:
- ingreso por facturas = suma de amount_paid de facturas que no están en
  borrador ni anuladas (los pagos viven en la factura);
- ingreso POS = suma del total de recibos completados, de origen POS y sin
  factura vinculada (un recibo vinculado solo documenta el pago de una factura);
- por cobrar = suma de balance_due de facturas sent / partially_paid / overdue;
  el reporte de antigüedad lista esas mismas facturas una por una.
"""

from collections import OrderedDict
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional, Tuple
import logging

from sqlalchemy import func

from app.common.money import money, ZERO
from app.core.config import settings
from app.modules.invoices.models import Invoice
from app.modules.invoices.state import REVENUE_EXCLUDED_STATUSES, RECEIVABLE_STATUSES
from app.modules.receipts.models import SalesReceipt, ReceiptStatus, ReceiptSource
from ..schemas import (
    RevenueSummary, RevenueTrendPoint, RevenueTrendResponse, TrendGrouping,
    StatusBreakdownItem, StatusBreakdownResponse, AgingItem, AgingReportResponse
)
from .base import BaseReportService

logger = logging.getLogger(__name__)


class RevenueReportService(BaseReportService):
    """Service for revenue reports"""

    def _revenue_invoices(self, start_date: Optional[date], end_date: Optional[date], *columns):
        query = self._get_base_invoice_query(*columns).filter(
            Invoice.status.notin_(list(REVENUE_EXCLUDED_STATUSES))
        )
        return self._apply_date_filter(query, Invoice.issue_date, start_date, end_date)

    def _standalone_receipts(self, start_date: Optional[date], end_date: Optional[date], *columns):
        query = self._get_base_receipt_query(*columns).filter(
            SalesReceipt.status == ReceiptStatus.COMPLETED,
            SalesReceipt.source == ReceiptSource.POS,
            SalesReceipt.invoice_id.is_(None)
        )
        return self._apply_date_filter(query, SalesReceipt.receipt_date, start_date, end_date)

    def _totals(self, start_date: Optional[date], end_date: Optional[date]) -> Tuple[Decimal, Decimal]:
        invoice_revenue = self._sum(self._revenue_invoices(start_date, end_date), Invoice.amount_paid)
        pos_revenue = self._sum(self._standalone_receipts(start_date, end_date), SalesReceipt.total_amount)
        return invoice_revenue, pos_revenue

    def aggregate_revenue(self, start_date: Optional[date] = None, end_date: Optional[date] = None) -> RevenueSummary:
        """Ingreso realizado y saldo por cobrar del período"""
        invoice_revenue, pos_revenue = self._totals(start_date, end_date)

        outstanding_query = self._apply_date_filter(
            self._get_base_invoice_query().filter(Invoice.status.in_(list(RECEIVABLE_STATUSES))),
            Invoice.issue_date, start_date, end_date
        )
        outstanding = self._sum(outstanding_query, Invoice.balance_due)

        total_revenue = invoice_revenue + pos_revenue
        summary = RevenueSummary(
            period_start=start_date,
            period_end=end_date,
            invoice_revenue=invoice_revenue,
            pos_revenue=pos_revenue,
            total_revenue=total_revenue,
            outstanding=outstanding
        )

        # Comparación con el período anterior de igual duración
        if start_date and end_date:
            previous_end = start_date - timedelta(days=1)
            previous_start = previous_end - (end_date - start_date)
            previous_total = sum(self._totals(previous_start, previous_end), ZERO)
            summary.previous_total_revenue = previous_total
            summary.revenue_change_percent = (
                money((total_revenue - previous_total) / previous_total * 100)
                if previous_total > ZERO else ZERO
            )

        logger.debug(
            f"Revenue tenant={self.tenant_id} {start_date}..{end_date}: "
            f"invoices={invoice_revenue}, pos={pos_revenue}, outstanding={outstanding}"
        )
        return summary

    @staticmethod
    def _bucket(value: date, group_by: TrendGrouping) -> str:
        if group_by == TrendGrouping.YEAR:
            return f"{value.year:04d}"
        if group_by == TrendGrouping.MONTH:
            return f"{value.year:04d}-{value.month:02d}"
        return value.isoformat()

    def revenue_trend(self, start_date: Optional[date] = None, end_date: Optional[date] = None,
                      group_by: TrendGrouping = TrendGrouping.MONTH) -> RevenueTrendResponse:
        """Ingreso agrupado por día, mes o año con las mismas reglas de aggregate_revenue"""
        group_by = TrendGrouping(group_by)
        buckets = {}

        invoice_rows = self._revenue_invoices(start_date, end_date, Invoice.issue_date, Invoice.amount_paid).all()
        for issue_date, amount_paid in invoice_rows:
            key = self._bucket(issue_date, group_by)
            invoice_total, pos_total = buckets.get(key, (ZERO, ZERO))
            buckets[key] = (invoice_total + money(amount_paid), pos_total)

        receipt_rows = self._standalone_receipts(
            start_date, end_date, SalesReceipt.receipt_date, SalesReceipt.total_amount
        ).all()
        for receipt_date, total_amount in receipt_rows:
            key = self._bucket(receipt_date, group_by)
            invoice_total, pos_total = buckets.get(key, (ZERO, ZERO))
            buckets[key] = (invoice_total, pos_total + money(total_amount))

        ordered = OrderedDict(sorted(buckets.items()))
        return RevenueTrendResponse(
            group_by=group_by,
            points=[
                RevenueTrendPoint(
                    period=period,
                    invoice_revenue=invoice_total,
                    pos_revenue=pos_total,
                    total_revenue=invoice_total + pos_total
                )
                for period, (invoice_total, pos_total) in ordered.items()
            ]
        )

    def status_breakdown(self, start_date: Optional[date] = None, end_date: Optional[date] = None) -> StatusBreakdownResponse:
        """Cantidad y montos de facturas por estado (sin borradores ni anuladas)"""
        rows = self._revenue_invoices(
            start_date, end_date,
            Invoice.status,
            func.count(Invoice.id),
            func.coalesce(func.sum(Invoice.total_amount), 0),
            func.coalesce(func.sum(Invoice.amount_paid), 0),
            func.coalesce(func.sum(Invoice.balance_due), 0)
        ).group_by(Invoice.status).all()

        statuses = [
            StatusBreakdownItem(
                status=status,
                count=count,
                total_amount=money(total_amount),
                amount_paid=money(amount_paid),
                balance_due=money(balance_due)
            )
            for status, count, total_amount, amount_paid, balance_due in rows
        ]
        statuses.sort(key=lambda item: item.status.value)

        return StatusBreakdownResponse(period_start=start_date, period_end=end_date, statuses=statuses)

    def aging(self, as_of_date: Optional[date] = None, limit: int = 100, offset: int = 0) -> AgingReportResponse:
        """Cuentas por cobrar con antigüedad, ordenadas por fecha de vencimiento.

        Solo facturas sent / partially_paid / overdue con saldo mayor a la
        tolerancia; borradores, pagadas y anuladas nunca aparecen.
        """
        as_of_date = as_of_date or date.today()

        query = self._get_base_invoice_query().filter(
            Invoice.status.in_(list(RECEIVABLE_STATUSES)),
            Invoice.balance_due > settings.FINANCIAL_TOLERANCE,
            Invoice.issue_date <= as_of_date
        )

        total_invoices = query.count()
        total_balance_due = self._sum(query, Invoice.balance_due)
        invoices = query.order_by(Invoice.due_date, Invoice.number).offset(offset).limit(limit).all()

        items = []
        overdue_invoices_count = 0
        overdue_amount = ZERO
        current_amount = ZERO

        for invoice in invoices:
            balance_due = money(invoice.balance_due)
            days_overdue = self._days_between(invoice.due_date, as_of_date)
            is_overdue = days_overdue > 0

            if is_overdue:
                overdue_invoices_count += 1
                overdue_amount += balance_due
            else:
                current_amount += balance_due

            items.append(AgingItem(
                invoice_id=invoice.id,
                invoice_number=invoice.number,
                customer_id=invoice.customer_id,
                customer_name=invoice.customer_name,
                status=invoice.status,
                issue_date=invoice.issue_date,
                due_date=invoice.due_date,
                total_amount=money(invoice.total_amount),
                amount_paid=money(invoice.amount_paid),
                balance_due=balance_due,
                days_overdue=max(0, days_overdue),
                is_overdue=is_overdue
            ))

        return AgingReportResponse(
            as_of_date=as_of_date,
            invoices=items,
            total_invoices=total_invoices,
            total_balance_due=total_balance_due,
            overdue_invoices_count=overdue_invoices_count,
            overdue_amount=overdue_amount,
            current_amount=current_amount
        )
