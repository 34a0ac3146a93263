from pydantic import BaseModel, ConfigDict, Field
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import date, datetime

from app.modules.invoices.models import PaymentMethod
from app.modules.receipts.models import ReceiptStatus, ReceiptSource


class SalesReceiptLineItemCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    item_id: UUID
    quantity: Decimal = Field(..., gt=0, description="Cantidad debe ser mayor a 0")
    rate: Optional[Decimal] = Field(None, ge=0, description="Precio unitario; por defecto el precio de venta del item")
    tax_rate: Decimal = Field(Decimal("0"), ge=0)
    # Se rechaza en el servicio: los recibos POS no se vinculan a facturas
    invoice_id: Optional[UUID] = None


class SalesReceiptCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    customer_id: Optional[UUID] = None  # Sin cliente = venta de mostrador
    receipt_date: date = Field(default_factory=date.today)
    payment_method: PaymentMethod = PaymentMethod.CASH
    payment_reference: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None
    discount: Decimal = Field(Decimal("0"), ge=0)
    shipping: Decimal = Field(Decimal("0"), ge=0)
    items: List[SalesReceiptLineItemCreate] = Field(..., min_length=1, description="Debe incluir al menos un item")
    invoice_id: Optional[UUID] = None


class SalesReceiptLineItemOut(BaseModel):
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


class SalesReceiptOut(BaseModel):
    id: UUID
    number: str
    customer_id: Optional[UUID] = None
    customer_name: str
    invoice_id: Optional[UUID] = None
    source: ReceiptSource
    status: ReceiptStatus
    receipt_date: date
    payment_method: PaymentMethod
    payment_reference: Optional[str] = None
    notes: Optional[str] = None
    subtotal: Decimal
    discount: Decimal
    shipping: Decimal
    taxes_total: Decimal
    total_amount: Decimal
    cancelled_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class SalesReceiptDetail(SalesReceiptOut):
    line_items: List[SalesReceiptLineItemOut]


class SalesReceiptList(BaseModel):
    receipts: List[SalesReceiptOut]
    total: int
    limit: int
    offset: int
