from app.database.database import Base
from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint,
    CheckConstraint, Numeric, Enum, Date, Text, Uuid, event
)
from sqlalchemy.orm import relationship, Session
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.sql import func
from datetime import date, datetime, timezone
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin
import enum


class InvoiceStatus(str, enum.Enum):
    DRAFT = "draft"                    # Borrador, editable
    SENT = "sent"                      # Emitida, pendiente de pago
    PARTIALLY_PAID = "partially_paid"
    OVERDUE = "overdue"                # Vencida sin pagos
    PAID = "paid"
    CANCELLED = "cancelled"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CREDIT_CARD = "credit_card"
    BANK_TRANSFER = "bank_transfer"
    CHEQUE = "cheque"
    ONLINE = "online"
    OTHER = "other"


class Invoice(Base, TenantMixin, TimestampMixin):
    __tablename__ = "invoices"

    id = Column(Uuid, primary_key=True, default=uuid4)

    # References
    customer_id = Column(Uuid, ForeignKey("customers.id"), nullable=False)
    customer_name = Column(String(200), nullable=False)  # Snapshot al crear
    created_by = Column(Uuid, nullable=True)

    # Invoice data
    number = Column(String(50), nullable=False)
    status = Column(Enum(InvoiceStatus), nullable=False, default=InvoiceStatus.DRAFT)

    # Dates
    issue_date = Column(Date, nullable=False, default=date.today)
    due_date = Column(Date, nullable=False, default=date.today)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    notes = Column(Text, nullable=True)

    # Totals
    subtotal = Column(Numeric(15, 2), nullable=False, default=0)
    discount = Column(Numeric(15, 2), nullable=False, default=0)
    shipping = Column(Numeric(15, 2), nullable=False, default=0)
    taxes_total = Column(Numeric(15, 2), nullable=False, default=0)
    total_amount = Column(Numeric(15, 2), nullable=False, default=0)

    # Derived, recalculados en cada flush
    amount_paid = Column(Numeric(15, 2), nullable=False, default=0)
    balance_due = Column(Numeric(15, 2), nullable=False, default=0)
    overdue_flag = Column(Boolean, nullable=False, default=False)

    # Relationships
    customer = relationship("Customer")
    line_items = relationship(
        "InvoiceLineItem",
        back_populates="invoice",
        order_by="InvoiceLineItem.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan"
    )
    payments = relationship(
        "Payment",
        back_populates="invoice",
        order_by="Payment.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "number", name="uq_invoice_tenant_number"),
        CheckConstraint("discount >= 0", name="ck_invoice_discount_non_negative"),
        CheckConstraint("shipping >= 0", name="ck_invoice_shipping_non_negative"),
        CheckConstraint("amount_paid >= 0", name="ck_invoice_amount_paid_non_negative"),
        CheckConstraint("balance_due >= 0", name="ck_invoice_balance_non_negative"),
    )

    def recalculate(self, today: date = None):
        """Aplicar la máquina de estados sobre los pagos actuales"""
        from app.modules.invoices.state import derive_invoice_state

        if today is not None:
            # El hook de flush reevalúa con la misma fecha y luego la descarta
            self._evaluated_on = today
        else:
            today = getattr(self, "_evaluated_on", None)

        state = derive_invoice_state(
            status=self.status or InvoiceStatus.DRAFT,
            total=self.total_amount,
            payment_amounts=[payment.amount for payment in self.payments],
            due_date=self.due_date,
            today=today,
        )

        if state.status == InvoiceStatus.PAID and self.paid_at is None:
            self.paid_at = datetime.now(timezone.utc)

        self.status = state.status
        self.amount_paid = state.amount_paid
        self.balance_due = state.balance_due
        self.overdue_flag = state.overdue_flag
        return state

    def forget_evaluation_date(self):
        vars(self).pop("_evaluated_on", None)


class InvoiceLineItem(Base, TimestampMixin):
    __tablename__ = "invoice_line_items"

    id = Column(Uuid, primary_key=True, default=uuid4)
    invoice_id = Column(Uuid, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    item_id = Column(Uuid, ForeignKey("items.id"), nullable=False)
    position = Column(Integer, nullable=False, default=0)

    # Snapshot data (para preservar información si el item cambia)
    name = Column(String(200), nullable=False)

    quantity = Column(Numeric(10, 3), nullable=False)
    rate = Column(Numeric(15, 2), nullable=False)
    tax_rate = Column(Numeric(5, 2), nullable=False, default=0)  # Porcentaje
    line_amount = Column(Numeric(15, 2), nullable=False)  # quantity * rate
    line_tax = Column(Numeric(15, 2), nullable=False, default=0)

    # Relationships
    invoice = relationship("Invoice", back_populates="line_items")
    item = relationship("Item")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_invoice_line_quantity_positive"),
        CheckConstraint("rate >= 0", name="ck_invoice_line_rate_non_negative"),
    )


class Payment(Base, TenantMixin):
    """Pago de una factura. Solo se agregan, nunca se editan ni eliminan."""
    __tablename__ = "payments"

    id = Column(Uuid, primary_key=True, default=uuid4)
    invoice_id = Column(Uuid, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    amount = Column(Numeric(15, 2), nullable=False)
    method = Column(Enum(PaymentMethod), nullable=False, default=PaymentMethod.CASH)
    reference = Column(String(100), nullable=True)  # Número de referencia, cheque, etc.
    payment_date = Column(Date, nullable=False, default=date.today)
    notes = Column(Text, nullable=True)
    idempotency_key = Column(String(100), nullable=True)
    created_by = Column(Uuid, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    invoice = relationship("Invoice", back_populates="payments")

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
        UniqueConstraint("invoice_id", "idempotency_key", name="uq_payment_invoice_idempotency_key"),
    )


@event.listens_for(Session, "before_flush")
def recalculate_invoices_before_flush(session, flush_context, instances):
    """Ninguna factura se persiste con campos derivados desactualizados"""
    for obj in list(session.new) + list(session.dirty):
        if isinstance(obj, Invoice):
            obj.recalculate()
            obj.forget_evaluation_date()
