"""
Base service class for Reports module

Provides common functionality for all report services: tenant filtering,
date range filters and exact money sums.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.common.money import money
from app.modules.invoices.models import Invoice
from app.modules.receipts.models import SalesReceipt


class BaseReportService:
    """Base service class for all report services"""

    def __init__(self, db: Session, tenant_id: UUID):
        self.db = db
        self.tenant_id = tenant_id

    def _get_base_invoice_query(self, *columns):
        """Get base query for invoices with tenant filtering"""
        return self.db.query(*(columns or (Invoice,))).filter(
            Invoice.tenant_id == self.tenant_id
        )

    def _get_base_receipt_query(self, *columns):
        """Get base query for sales receipts with tenant filtering"""
        return self.db.query(*(columns or (SalesReceipt,))).filter(
            SalesReceipt.tenant_id == self.tenant_id
        )

    def _apply_date_filter(self, query, date_field, start_date: Optional[date], end_date: Optional[date]):
        """Apply an inclusive date range filter; missing ends are open"""
        if start_date:
            query = query.filter(date_field >= start_date)
        if end_date:
            query = query.filter(date_field <= end_date)
        return query

    def _sum(self, query, column) -> Decimal:
        """SUM exacto en centavos (SQLite puede devolver float)"""
        value = query.with_entities(func.coalesce(func.sum(column), 0)).scalar()
        return money(value)

    def _days_between(self, from_date: date, to_date: Optional[date] = None) -> int:
        """Días de from_date a to_date (hoy por defecto); negativo si aún no llega"""
        return ((to_date or date.today()) - from_date).days
