from fastapi import APIRouter, status, Query
from typing import Optional
from uuid import UUID
from datetime import date

from app.core.config import settings
from app.dependencies.dbDependecies import db_dependency
from app.dependencies.companyDependencies import TenantId, ActingUserId
from app.modules.receipts.service import SalesReceiptService
from app.modules.receipts.models import ReceiptStatus
from app.modules.receipts.schemas import SalesReceiptCreate, SalesReceiptDetail, SalesReceiptList

router = APIRouter(prefix="/receipts", tags=["POS Receipts"])


@router.post("/", response_model=SalesReceiptDetail, status_code=status.HTTP_201_CREATED)
def create_receipt(receipt_data: SalesReceiptCreate, db: db_dependency, tenant_id: TenantId, user_id: ActingUserId):
    """
    Crear una venta POS

    Descuenta stock de los bienes con inventario. Si algún item no alcanza,
    no se crea el recibo (409). No acepta vínculos a facturas (400).
    """
    return SalesReceiptService(db).create_pos_receipt(receipt_data, tenant_id, user_id)


@router.get("/", response_model=SalesReceiptList)
def list_receipts(
    db: db_dependency,
    tenant_id: TenantId,
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    status: Optional[ReceiptStatus] = Query(None),
    start_date: Optional[date] = Query(None, description="Fecha inicial (YYYY-MM-DD)"),
    end_date: Optional[date] = Query(None, description="Fecha final (YYYY-MM-DD)")
):
    return SalesReceiptService(db).get_receipts(tenant_id, status, start_date, end_date, limit, offset)


@router.get("/{receipt_id}", response_model=SalesReceiptDetail)
def get_receipt(receipt_id: UUID, db: db_dependency, tenant_id: TenantId):
    return SalesReceiptService(db).get_receipt_by_id(receipt_id, tenant_id)


@router.post("/{receipt_id}/cancel", response_model=SalesReceiptDetail)
def cancel_receipt(receipt_id: UUID, db: db_dependency, tenant_id: TenantId, user_id: ActingUserId):
    """Anular un recibo POS y devolver el stock"""
    return SalesReceiptService(db).cancel_receipt(receipt_id, tenant_id, user_id)
