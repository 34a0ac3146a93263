"""
Pydantic schemas for Reports module

Request filters and responses of the revenue reports.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.modules.invoices.models import InvoiceStatus


class TrendGrouping(str, Enum):
    DAY = "day"
    MONTH = "month"
    YEAR = "year"


class RevenueSummary(BaseModel):
    """Realized revenue without double counting"""
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    invoice_revenue: Decimal = Field(description="Sum of amount_paid of issued invoices")
    pos_revenue: Decimal = Field(description="Sum of standalone completed POS receipts")
    total_revenue: Decimal
    outstanding: Decimal = Field(description="Sum of balance_due of receivable invoices")
    previous_total_revenue: Optional[Decimal] = Field(None, description="Same-length period right before")
    revenue_change_percent: Optional[Decimal] = None


class RevenueTrendPoint(BaseModel):
    period: str
    invoice_revenue: Decimal
    pos_revenue: Decimal
    total_revenue: Decimal


class RevenueTrendResponse(BaseModel):
    group_by: TrendGrouping
    points: List[RevenueTrendPoint]


class StatusBreakdownItem(BaseModel):
    status: InvoiceStatus
    count: int
    total_amount: Decimal
    amount_paid: Decimal
    balance_due: Decimal


class StatusBreakdownResponse(BaseModel):
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    statuses: List[StatusBreakdownItem]


class AgingItem(BaseModel):
    """Factura por cobrar con su antigüedad"""
    invoice_id: UUID
    invoice_number: str
    customer_id: UUID
    customer_name: str
    status: InvoiceStatus
    issue_date: date
    due_date: date
    total_amount: Decimal
    amount_paid: Decimal
    balance_due: Decimal
    days_overdue: int
    is_overdue: bool


class AgingReportResponse(BaseModel):
    """Receivables aging, oldest due date first"""
    as_of_date: date
    invoices: List[AgingItem]
    total_invoices: int
    total_balance_due: Decimal
    overdue_invoices_count: int
    overdue_amount: Decimal
    current_amount: Decimal
