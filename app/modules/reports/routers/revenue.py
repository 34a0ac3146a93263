"""
Revenue Reports Router
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from app.dependencies.dbDependecies import db_dependency
from app.dependencies.companyDependencies import TenantId
from ..services.revenue import RevenueReportService
from ..schemas import (
    RevenueSummary, RevenueTrendResponse, StatusBreakdownResponse, TrendGrouping,
    AgingReportResponse
)


router = APIRouter(prefix="/reports/revenue", tags=["Reports"])


def _validate_range(start_date: Optional[date], end_date: Optional[date]):
    if start_date and end_date and end_date < start_date:
        raise HTTPException(422, "end_date must be greater than or equal to start_date")


@router.get("/summary", response_model=RevenueSummary)
def get_revenue_summary(
    db: db_dependency,
    tenant_id: TenantId,
    start_date: Optional[date] = Query(None, description="Start date for the report period"),
    end_date: Optional[date] = Query(None, description="End date for the report period")
):
    """Invoice revenue, standalone POS revenue and outstanding balance."""
    _validate_range(start_date, end_date)
    return RevenueReportService(db, tenant_id).aggregate_revenue(start_date, end_date)


@router.get("/trend", response_model=RevenueTrendResponse)
def get_revenue_trend(
    db: db_dependency,
    tenant_id: TenantId,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    group_by: TrendGrouping = Query(TrendGrouping.MONTH, description="day, month or year")
):
    """Revenue grouped by period."""
    _validate_range(start_date, end_date)
    return RevenueReportService(db, tenant_id).revenue_trend(start_date, end_date, group_by)


@router.get("/status-breakdown", response_model=StatusBreakdownResponse)
def get_status_breakdown(
    db: db_dependency,
    tenant_id: TenantId,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None)
):
    """Invoice counts and amounts per status."""
    _validate_range(start_date, end_date)
    return RevenueReportService(db, tenant_id).status_breakdown(start_date, end_date)


@router.get("/aging", response_model=AgingReportResponse)
def get_aging_report(
    db: db_dependency,
    tenant_id: TenantId,
    as_of_date: Optional[date] = Query(None, description="Reference date (defaults to today)"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0)
):
    """Receivable invoices with positive balance, oldest due date first."""
    return RevenueReportService(db, tenant_id).aging(as_of_date, limit, offset)
