from fastapi import APIRouter, status, Query, Response
from typing import List, Optional
from uuid import UUID
from datetime import date

from app.core.config import settings
from app.dependencies.dbDependecies import db_dependency
from app.dependencies.companyDependencies import TenantId, ActingUserId
from app.modules.invoices.service import InvoiceService
from app.modules.invoices.models import InvoiceStatus
from app.modules.invoices.schemas import (
    InvoiceCreate, InvoiceDetail, InvoiceList, InvoiceUpdate,
    InvoiceFilters, PaymentCreate, PaymentOut, DuplicateCheckRequest, DuplicateCheckResponse
)

# Router principal del módulo de facturas
router = APIRouter(prefix="/invoices", tags=["Invoices"])


@router.post("/", response_model=InvoiceDetail, status_code=status.HTTP_201_CREATED)
def create_invoice(invoice_data: InvoiceCreate, db: db_dependency, tenant_id: TenantId, user_id: ActingUserId):
    """
    Crear una nueva factura en borrador

    El número se asigna al crear; el estado inicial siempre es draft.
    """
    return InvoiceService(db).create_invoice(invoice_data, tenant_id, user_id)


@router.post("/check-duplicate", response_model=DuplicateCheckResponse)
def check_duplicate_invoice(check: DuplicateCheckRequest, db: db_dependency, tenant_id: TenantId):
    """
    Buscar facturas que parezcan duplicadas antes de crear una nueva

    Coinciden cliente, fecha de emisión, fecha de vencimiento y total; las
    anuladas no cuentan. Devuelve hasta 5 coincidencias.
    """
    return InvoiceService(db).find_duplicates(tenant_id, check)


@router.get("/", response_model=InvoiceList)
def list_invoices(
    db: db_dependency,
    tenant_id: TenantId,
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    start_date: Optional[date] = Query(None, description="Fecha inicial (YYYY-MM-DD)"),
    end_date: Optional[date] = Query(None, description="Fecha final (YYYY-MM-DD)"),
    customer_id: Optional[UUID] = Query(None, description="Filtrar por cliente"),
    status: Optional[InvoiceStatus] = Query(None, description="Estado de la factura"),
    overdue_only: bool = Query(False, description="Solo facturas vencidas con saldo"),
    search: Optional[str] = Query(None, description="Buscar por número, cliente o notas")
):
    """Listar facturas con filtros"""
    filters = InvoiceFilters(
        status=status,
        customer_id=customer_id,
        date_from=start_date,
        date_to=end_date,
        overdue_only=overdue_only,
        search=search
    )
    return InvoiceService(db).get_invoices(tenant_id, filters, limit, offset)


@router.get("/{invoice_id}", response_model=InvoiceDetail)
def get_invoice(invoice_id: UUID, db: db_dependency, tenant_id: TenantId):
    return InvoiceService(db).get_invoice_by_id(invoice_id, tenant_id)


@router.patch("/{invoice_id}", response_model=InvoiceDetail)
def update_invoice(invoice_id: UUID, invoice_update: InvoiceUpdate, db: db_dependency, tenant_id: TenantId):
    """
    Actualizar una factura (solo si está en estado draft)

    Facturas enviadas, vencidas o pagadas responden 409.
    """
    return InvoiceService(db).update_invoice_draft(invoice_id, invoice_update, tenant_id)


@router.delete("/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_invoice(invoice_id: UUID, db: db_dependency, tenant_id: TenantId):
    """Eliminar una factura en borrador"""
    InvoiceService(db).delete_draft_invoice(invoice_id, tenant_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{invoice_id}/send", response_model=InvoiceDetail)
def mark_invoice_sent(invoice_id: UUID, db: db_dependency, tenant_id: TenantId):
    """
    Marcar la factura como enviada (draft -> sent)

    Solo desde borrador; a partir de aquí contenido y totales quedan bloqueados.
    """
    return InvoiceService(db).mark_invoice_sent(invoice_id, tenant_id)


@router.post("/{invoice_id}/cancel", response_model=InvoiceDetail)
def cancel_invoice(invoice_id: UUID, db: db_dependency, tenant_id: TenantId):
    """
    Anular una factura

    Una factura totalmente pagada permanece en estado paid.
    """
    return InvoiceService(db).cancel_invoice(invoice_id, tenant_id)


@router.post("/{invoice_id}/payments", response_model=InvoiceDetail, status_code=status.HTTP_201_CREATED)
def record_payment(invoice_id: UUID, payment_data: PaymentCreate, db: db_dependency,
                   tenant_id: TenantId, user_id: ActingUserId):
    """
    Registrar un pago sobre la factura

    No se aceptan pagos en borradores ni anuladas, ni montos que superen el saldo.
    Reenviar la misma idempotency_key devuelve la factura sin registrar otro pago.
    """
    return InvoiceService(db).record_payment(invoice_id, payment_data, tenant_id, user_id)


@router.get("/{invoice_id}/payments", response_model=List[PaymentOut])
def list_invoice_payments(invoice_id: UUID, db: db_dependency, tenant_id: TenantId):
    return InvoiceService(db).get_invoice_payments(invoice_id, tenant_id)
