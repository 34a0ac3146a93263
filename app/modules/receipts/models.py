from app.database.database import Base
from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, UniqueConstraint, CheckConstraint,
    Numeric, Enum, Date, Text, Uuid
)
from sqlalchemy.orm import relationship
from sqlalchemy.ext.orderinglist import ordering_list
from datetime import date
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin
from app.modules.invoices.models import PaymentMethod
import enum


class ReceiptStatus(str, enum.Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ReceiptSource(str, enum.Enum):
    POS = "pos"


class SalesReceipt(Base, TenantMixin, TimestampMixin):
    """Venta de mostrador pagada en el acto: sin vencimiento ni pagos parciales.

    invoice_id solo existe en registros históricos que documentan el pago de
    una factura; esos recibos nunca cuentan como ingreso POS.
    """
    __tablename__ = "sales_receipts"

    id = Column(Uuid, primary_key=True, default=uuid4)

    # References
    customer_id = Column(Uuid, ForeignKey("customers.id"), nullable=True)  # Null = cliente de mostrador
    customer_name = Column(String(200), nullable=False)
    invoice_id = Column(Uuid, ForeignKey("invoices.id"), nullable=True, index=True)
    created_by = Column(Uuid, nullable=True)

    number = Column(String(50), nullable=False)
    source = Column(Enum(ReceiptSource), nullable=False, default=ReceiptSource.POS)
    status = Column(Enum(ReceiptStatus), nullable=False, default=ReceiptStatus.COMPLETED)
    receipt_date = Column(Date, nullable=False, default=date.today)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    payment_method = Column(Enum(PaymentMethod), nullable=False, default=PaymentMethod.CASH)
    payment_reference = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)

    # Totals
    subtotal = Column(Numeric(15, 2), nullable=False, default=0)
    discount = Column(Numeric(15, 2), nullable=False, default=0)
    shipping = Column(Numeric(15, 2), nullable=False, default=0)
    taxes_total = Column(Numeric(15, 2), nullable=False, default=0)
    total_amount = Column(Numeric(15, 2), nullable=False, default=0)

    # Relationships
    customer = relationship("Customer")
    invoice = relationship("Invoice")
    line_items = relationship(
        "SalesReceiptLineItem",
        back_populates="receipt",
        order_by="SalesReceiptLineItem.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "number", name="uq_receipt_tenant_number"),
        CheckConstraint("total_amount >= 0", name="ck_receipt_total_non_negative"),
    )


class SalesReceiptLineItem(Base, TimestampMixin):
    __tablename__ = "sales_receipt_line_items"

    id = Column(Uuid, primary_key=True, default=uuid4)
    receipt_id = Column(Uuid, ForeignKey("sales_receipts.id", ondelete="CASCADE"), nullable=False, index=True)
    item_id = Column(Uuid, ForeignKey("items.id"), nullable=False)
    position = Column(Integer, nullable=False, default=0)

    name = Column(String(200), nullable=False)
    quantity = Column(Numeric(10, 3), nullable=False)
    rate = Column(Numeric(15, 2), nullable=False)
    tax_rate = Column(Numeric(5, 2), nullable=False, default=0)
    line_amount = Column(Numeric(15, 2), nullable=False)
    line_tax = Column(Numeric(15, 2), nullable=False, default=0)

    # Relationships
    receipt = relationship("SalesReceipt", back_populates="line_items")
    item = relationship("Item")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_receipt_line_quantity_positive"),
    )
