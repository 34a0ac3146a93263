from pydantic import BaseModel, Field, field_validator, model_validator
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import date, datetime

from app.modules.invoices.models import InvoiceStatus, PaymentMethod


# Invoice Line Item Schemas
class InvoiceLineItemCreate(BaseModel):
    item_id: UUID
    quantity: Decimal = Field(..., gt=0, description="Cantidad debe ser mayor a 0")
    rate: Optional[Decimal] = Field(None, ge=0, description="Precio unitario; por defecto el precio de venta del item")
    tax_rate: Decimal = Field(Decimal("0"), ge=0, description="Impuesto en porcentaje sobre el monto de la línea")


class InvoiceLineItemOut(BaseModel):
    id: UUID
    item_id: UUID
    position: int
    name: str
    quantity: Decimal
    rate: Decimal
    tax_rate: Decimal
    line_amount: Decimal
    line_tax: Decimal

    class Config:
        from_attributes = True


# Invoice Schemas
class InvoiceCreate(BaseModel):
    customer_id: UUID
    issue_date: date = Field(default_factory=date.today)
    due_date: Optional[date] = None  # Por defecto, la fecha de emisión
    notes: Optional[str] = None
    discount: Decimal = Field(Decimal("0"), ge=0)
    shipping: Decimal = Field(Decimal("0"), ge=0)
    items: List[InvoiceLineItemCreate] = Field(..., min_length=1, description="Debe incluir al menos un item")

    @model_validator(mode='after')
    def validate_due_date(self):
        if self.due_date and self.issue_date and self.due_date < self.issue_date:
            raise ValueError('La fecha de vencimiento no puede ser anterior a la fecha de emisión')
        return self


class InvoiceUpdate(BaseModel):
    """Campos editables de un borrador. Los omitidos no cambian."""
    customer_id: Optional[UUID] = None
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None
    discount: Optional[Decimal] = Field(None, ge=0)
    shipping: Optional[Decimal] = Field(None, ge=0)
    items: Optional[List[InvoiceLineItemCreate]] = Field(None, min_length=1)

    @model_validator(mode='after')
    def validate_due_date(self):
        if self.due_date and self.issue_date and self.due_date < self.issue_date:
            raise ValueError('La fecha de vencimiento no puede ser anterior a la fecha de emisión')
        return self


class InvoiceOut(BaseModel):
    id: UUID
    customer_id: UUID
    customer_name: str
    number: str
    status: InvoiceStatus
    issue_date: date
    due_date: date
    notes: Optional[str] = None
    subtotal: Decimal
    discount: Decimal
    shipping: Decimal
    taxes_total: Decimal
    total_amount: Decimal
    amount_paid: Decimal
    balance_due: Decimal
    overdue_flag: bool
    sent_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class InvoiceDetail(InvoiceOut):
    """Esquema detallado que incluye line items y payments"""
    line_items: List[InvoiceLineItemOut]
    payments: List['PaymentOut'] = []

    class Config:
        from_attributes = True


class InvoiceList(BaseModel):
    invoices: List[InvoiceOut]
    total: int
    limit: int
    offset: int


# Payment Schemas
class PaymentCreate(BaseModel):
    # Positivo y finito se valida en el servicio (400 con detalle por campo)
    amount: Decimal
    method: PaymentMethod = PaymentMethod.CASH
    reference: Optional[str] = Field(None, max_length=100)
    payment_date: date = Field(default_factory=date.today)
    notes: Optional[str] = None
    idempotency_key: Optional[str] = Field(None, min_length=1, max_length=100)

    @field_validator('reference', 'notes')
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v


class PaymentOut(BaseModel):
    id: UUID
    invoice_id: UUID
    position: int
    amount: Decimal
    method: PaymentMethod
    reference: Optional[str] = None
    payment_date: date
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


# Search y Filter Schemas
class InvoiceFilters(BaseModel):
    """Filtros para búsqueda de facturas"""
    status: Optional[InvoiceStatus] = None
    customer_id: Optional[UUID] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    overdue_only: bool = False
    search: Optional[str] = Field(None, description="Buscar en número, nombre del cliente o notas")


class DuplicateCheckRequest(BaseModel):
    """Datos de una factura a punto de crearse"""
    customer_id: UUID
    issue_date: date
    due_date: date
    total_amount: Decimal = Field(..., ge=0)


class DuplicateCheckResponse(BaseModel):
    is_duplicate: bool
    matching_invoices: List[InvoiceOut]
    count: int


# Forward reference resolution
InvoiceDetail.model_rebuild()
