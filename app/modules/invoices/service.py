from fastapi import HTTPException
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy import or_, desc
from typing import List, Optional
from uuid import UUID
from datetime import date, datetime, timezone
import logging

from app.core.config import settings
from app.database.database import claim_write_lock
from app.common.errors import (
    validation_error, field_error, conflict_error, not_found_error, internal_error
)
from app.common.money import money, sum_money, is_zero, exceeds, is_positive_finite, ZERO
from app.common.totals import calculate_totals
from app.modules.invoices.models import Invoice, InvoiceLineItem, Payment, InvoiceStatus
from app.modules.invoices.schemas import (
    InvoiceCreate, InvoiceUpdate, PaymentCreate, InvoiceFilters, DuplicateCheckRequest
)
from app.modules.invoices.state import RECEIVABLE_STATUSES
from app.modules.customers.service import CustomerService
from app.modules.items.service import ItemService
from app.modules.sequences.service import SequenceService

logger = logging.getLogger(__name__)


class InvoiceService:
    def __init__(self, db: Session):
        self.db = db

    # ===== Consultas =====

    def get_invoice_by_id(self, invoice_id: UUID, tenant_id: UUID) -> Invoice:
        """Obtener factura por ID con detalles completos"""
        invoice = self.db.query(Invoice).options(
            selectinload(Invoice.line_items),
            selectinload(Invoice.payments)
        ).filter(
            Invoice.id == invoice_id,
            Invoice.tenant_id == tenant_id
        ).first()

        if not invoice:
            raise not_found_error("Factura no encontrada")
        return invoice

    def _lock_invoice(self, invoice_id: UUID, tenant_id: UUID) -> Invoice:
        """SELECT ... FOR UPDATE; el segundo escritor espera y ve el estado confirmado"""
        claim_write_lock(self.db, Invoice, Invoice.id == invoice_id, Invoice.tenant_id == tenant_id)
        invoice = self.db.query(Invoice).options(
            selectinload(Invoice.line_items),
            selectinload(Invoice.payments)
        ).filter(
            Invoice.id == invoice_id,
            Invoice.tenant_id == tenant_id
        ).with_for_update().populate_existing().first()

        if not invoice:
            raise not_found_error("Factura no encontrada")
        return invoice

    def get_invoices(self, tenant_id: UUID, filters: InvoiceFilters, limit: int = 100, offset: int = 0) -> dict:
        """Obtener lista de facturas con filtros"""
        query = self.db.query(Invoice).filter(Invoice.tenant_id == tenant_id)

        if filters.status:
            query = query.filter(Invoice.status == filters.status)
        if filters.customer_id:
            query = query.filter(Invoice.customer_id == filters.customer_id)
        if filters.date_from:
            query = query.filter(Invoice.issue_date >= filters.date_from)
        if filters.date_to:
            query = query.filter(Invoice.issue_date <= filters.date_to)
        if filters.overdue_only:
            query = query.filter(Invoice.overdue_flag.is_(True))
        if filters.search:
            query = query.filter(or_(
                Invoice.number.ilike(f"%{filters.search}%"),
                Invoice.customer_name.ilike(f"%{filters.search}%"),
                Invoice.notes.ilike(f"%{filters.search}%")
            ))

        total = query.count()
        invoices = query.order_by(desc(Invoice.created_at), desc(Invoice.number)).offset(offset).limit(limit).all()

        return {
            "invoices": invoices,
            "total": total,
            "limit": limit,
            "offset": offset
        }

    def find_duplicates(self, tenant_id: UUID, check: DuplicateCheckRequest, limit: int = 5) -> dict:
        """Facturas no anuladas con mismo cliente, fechas y total"""
        matches = self.db.query(Invoice).filter(
            Invoice.tenant_id == tenant_id,
            Invoice.customer_id == check.customer_id,
            Invoice.issue_date == check.issue_date,
            Invoice.due_date == check.due_date,
            Invoice.total_amount == money(check.total_amount),
            Invoice.status != InvoiceStatus.CANCELLED
        ).order_by(Invoice.number).limit(limit).all()

        if matches:
            logger.info(f"Posible factura duplicada para cliente {check.customer_id}: {[m.number for m in matches]}")
        return {
            "is_duplicate": bool(matches),
            "matching_invoices": matches,
            "count": len(matches)
        }

    def get_invoice_payments(self, invoice_id: UUID, tenant_id: UUID) -> List[Payment]:
        return list(self.get_invoice_by_id(invoice_id, tenant_id).payments)

    # ===== Borradores =====

    def _build_line_items(self, tenant_id: UUID, items) -> List[InvoiceLineItem]:
        lines = ItemService(self.db).resolve_lines(tenant_id, items)
        line_items = [
            InvoiceLineItem(
                item_id=line.item.id,
                name=line.item.name,
                quantity=line.quantity,
                rate=line.rate,
                tax_rate=line.tax_rate
            )
            for line in lines
        ]
        return line_items

    def _apply_totals(self, invoice: Invoice):
        totals = calculate_totals(
            [(li.quantity, li.rate, li.tax_rate) for li in invoice.line_items],
            discount=invoice.discount,
            shipping=invoice.shipping
        )
        if totals.total_amount < ZERO:
            raise validation_error([field_error("discount", "El descuento no puede superar el total de la factura")])

        for line_item, computed in zip(invoice.line_items, totals.lines):
            line_item.quantity = computed.quantity
            line_item.rate = computed.rate
            line_item.line_amount = computed.line_amount
            line_item.line_tax = computed.line_tax

        invoice.subtotal = totals.subtotal
        invoice.taxes_total = totals.taxes_total
        invoice.discount = totals.discount
        invoice.shipping = totals.shipping
        invoice.total_amount = totals.total_amount

    def create_invoice(self, invoice_data: InvoiceCreate, tenant_id: UUID, user_id: Optional[UUID] = None) -> Invoice:
        """Crear factura en borrador.

        Se valida todo antes de pedir el número: un número asignado a una
        factura que luego no se guarda queda como hueco en la secuencia.
        """
        try:
            customer = CustomerService(self.db).get_active_customer(tenant_id, invoice_data.customer_id)
            customer_name = customer.name

            invoice = Invoice(
                tenant_id=tenant_id,
                customer_id=customer.id,
                customer_name=customer_name,
                created_by=user_id,
                status=InvoiceStatus.DRAFT,
                issue_date=invoice_data.issue_date,
                due_date=invoice_data.due_date or invoice_data.issue_date,
                notes=invoice_data.notes,
                discount=invoice_data.discount,
                shipping=invoice_data.shipping
            )
            invoice.line_items.extend(self._build_line_items(tenant_id, invoice_data.items))
            self._apply_totals(invoice)

            # Commit propio del contador; la factura aún no está en la sesión
            invoice.number = SequenceService(self.db).allocate_invoice_number(tenant_id)

            invoice.recalculate()
            self.db.add(invoice)
            self.db.commit()
            self.db.refresh(invoice)

            logger.info(f"Factura {invoice.number} creada en borrador para tenant {tenant_id}: total={invoice.total_amount}")
            return invoice

        except HTTPException:
            self.db.rollback()
            raise
        except Exception:
            self.db.rollback()
            logger.error(f"Error creando factura para tenant {tenant_id}", exc_info=True)
            raise internal_error("Error creando factura")

    def update_invoice_draft(self, invoice_id: UUID, update_data: InvoiceUpdate, tenant_id: UUID) -> Invoice:
        """Editar una factura; solo se permite en borrador"""
        try:
            invoice = self._lock_invoice(invoice_id, tenant_id)

            if invoice.status != InvoiceStatus.DRAFT:
                logger.warning(f"Edición rechazada para factura {invoice.number} en estado {invoice.status.value}")
                raise conflict_error(
                    f"Solo se pueden editar facturas en borrador (estado actual: {invoice.status.value})"
                )

            fields = update_data.model_dump(exclude_unset=True, exclude={"items"})

            if "customer_id" in fields and fields["customer_id"] is not None:
                customer = CustomerService(self.db).get_active_customer(tenant_id, fields["customer_id"])
                invoice.customer_id = customer.id
                invoice.customer_name = customer.name

            for name in ("issue_date", "due_date", "notes", "discount", "shipping"):
                if name in fields and (fields[name] is not None or name == "notes"):
                    setattr(invoice, name, fields[name])

            if invoice.due_date < invoice.issue_date:
                raise validation_error([field_error(
                    "due_date", "La fecha de vencimiento no puede ser anterior a la fecha de emisión"
                )])

            if update_data.items is not None:
                new_line_items = self._build_line_items(tenant_id, update_data.items)
                invoice.line_items.clear()
                invoice.line_items.extend(new_line_items)

            self._apply_totals(invoice)
            invoice.recalculate()
            self.db.commit()
            self.db.refresh(invoice)

            logger.info(f"Factura {invoice.number} actualizada: total={invoice.total_amount}")
            return invoice

        except HTTPException:
            self.db.rollback()
            raise
        except Exception:
            self.db.rollback()
            logger.error(f"Error actualizando factura {invoice_id}", exc_info=True)
            raise internal_error("Error actualizando factura")

    def delete_draft_invoice(self, invoice_id: UUID, tenant_id: UUID) -> None:
        """Eliminar factura; solo borradores (su número queda como hueco)"""
        try:
            invoice = self._lock_invoice(invoice_id, tenant_id)
            if invoice.status != InvoiceStatus.DRAFT:
                raise conflict_error("Solo se pueden eliminar facturas en borrador")

            number = invoice.number
            self.db.delete(invoice)
            self.db.commit()
            logger.info(f"Factura borrador {number} eliminada")

        except HTTPException:
            self.db.rollback()
            raise
        except Exception:
            self.db.rollback()
            logger.error(f"Error eliminando factura {invoice_id}", exc_info=True)
            raise internal_error("Error eliminando factura")

    # ===== Transiciones =====

    def mark_invoice_sent(self, invoice_id: UUID, tenant_id: UUID) -> Invoice:
        """draft -> sent (u overdue si ya pasó la fecha de vencimiento)"""
        try:
            invoice = self._lock_invoice(invoice_id, tenant_id)

            if invoice.status != InvoiceStatus.DRAFT:
                raise conflict_error(
                    f"Solo las facturas en borrador pueden marcarse como enviadas (estado actual: {invoice.status.value})"
                )
            if not invoice.line_items:
                raise validation_error([field_error("items", "La factura no tiene items")])
            if money(invoice.total_amount) <= ZERO:
                # Nunca podría llegar a `paid`: cualquier pago sería sobrepago
                field = "discount" if money(invoice.discount) > ZERO else "items"
                raise validation_error([field_error(field, "El total de la factura debe ser mayor a 0 para enviarla")])

            invoice.status = InvoiceStatus.SENT
            invoice.sent_at = datetime.now(timezone.utc)
            invoice.recalculate()
            self.db.commit()
            self.db.refresh(invoice)

            logger.info(f"Factura {invoice.number} marcada como {invoice.status.value}")
            return invoice

        except HTTPException:
            self.db.rollback()
            raise
        except Exception:
            self.db.rollback()
            logger.error(f"Error enviando factura {invoice_id}", exc_info=True)
            raise internal_error("Error actualizando factura")

    def cancel_invoice(self, invoice_id: UUID, tenant_id: UUID) -> Invoice:
        """Anular factura.

        Si ya está saldada, la máquina de estados la deja en `paid`: el dinero
        recibido no se puede desconocer anulando el documento.
        """
        try:
            invoice = self._lock_invoice(invoice_id, tenant_id)

            if invoice.status == InvoiceStatus.CANCELLED:
                raise conflict_error("La factura ya está anulada")

            invoice.status = InvoiceStatus.CANCELLED
            state = invoice.recalculate()

            if state.status == InvoiceStatus.PAID:
                logger.warning(f"Anulación de factura {invoice.number} ignorada: la factura está totalmente pagada")
            else:
                invoice.cancelled_at = datetime.now(timezone.utc)
                logger.info(f"Factura {invoice.number} anulada (pagado={invoice.amount_paid})")

            self.db.commit()
            self.db.refresh(invoice)
            return invoice

        except HTTPException:
            self.db.rollback()
            raise
        except Exception:
            self.db.rollback()
            logger.error(f"Error anulando factura {invoice_id}", exc_info=True)
            raise internal_error("Error anulando factura")

    # ===== Pagos =====

    def record_payment(self, invoice_id: UUID, payment_data: PaymentCreate, tenant_id: UUID,
                       user_id: Optional[UUID] = None) -> Invoice:
        """Registrar un pago: lectura, validación y escritura en una sola transacción.

        Los conflictos transitorios de la base (deadlock, serialización, lock
        timeout) se reintentan hasta TRANSACTION_MAX_RETRIES veces.
        """
        retries = max(1, settings.TRANSACTION_MAX_RETRIES)

        for attempt in range(1, retries + 1):
            try:
                return self._record_payment_once(invoice_id, payment_data, tenant_id, user_id)
            except HTTPException:
                self.db.rollback()
                raise
            except (OperationalError, IntegrityError) as e:
                # IntegrityError: otro request registró la misma idempotency_key
                self.db.rollback()
                logger.warning(
                    f"Conflicto de concurrencia registrando pago en factura {invoice_id} "
                    f"(intento {attempt}/{retries}): {e.__class__.__name__}"
                )
            except Exception:
                self.db.rollback()
                logger.error(f"Error registrando pago en factura {invoice_id}", exc_info=True)
                raise internal_error("Error registrando el pago")

        logger.error(f"Reintentos agotados registrando pago en factura {invoice_id}")
        raise internal_error("Error registrando el pago")

    def _record_payment_once(self, invoice_id: UUID, payment_data: PaymentCreate, tenant_id: UUID,
                             user_id: Optional[UUID]) -> Invoice:
        invoice = self._lock_invoice(invoice_id, tenant_id)

        key = payment_data.idempotency_key
        if key and any(payment.idempotency_key == key for payment in invoice.payments):
            logger.info(f"Pago repetido con idempotency_key={key} en factura {invoice.number}; sin cambios")
            self.db.rollback()
            return self.get_invoice_by_id(invoice_id, tenant_id)

        if invoice.status in (InvoiceStatus.DRAFT, InvoiceStatus.CANCELLED):
            logger.warning(f"Pago rechazado: factura {invoice.number} en estado {invoice.status.value}")
            raise conflict_error(
                f"No se pueden registrar pagos en facturas en estado {invoice.status.value}"
            )

        amount_paid = sum_money(payment.amount for payment in invoice.payments)
        remaining = money(invoice.total_amount) - amount_paid

        if invoice.status == InvoiceStatus.PAID and is_zero(max(ZERO, remaining)):
            logger.warning(f"Pago rechazado: factura {invoice.number} ya está pagada")
            raise conflict_error("La factura ya está pagada")

        if not is_positive_finite(payment_data.amount) or money(payment_data.amount) <= ZERO:
            raise validation_error([field_error("amount", "El monto del pago debe ser mayor a 0")])

        amount = money(payment_data.amount)
        if exceeds(amount, remaining):
            logger.warning(f"Sobrepago rechazado en factura {invoice.number}: pago={amount}, saldo={remaining}")
            raise conflict_error(f"El pago de {amount} excede el saldo pendiente de {remaining}")

        invoice.payments.append(Payment(
            tenant_id=tenant_id,
            amount=amount,
            method=payment_data.method,
            reference=payment_data.reference,
            payment_date=payment_data.payment_date,
            notes=payment_data.notes,
            idempotency_key=key,
            created_by=user_id
        ))
        state = invoice.recalculate()

        self.db.commit()
        self.db.refresh(invoice)

        logger.info(
            f"Pago de {amount} registrado en factura {invoice.number}: "
            f"estado={state.status.value}, pagado={state.amount_paid}, saldo={state.balance_due}"
        )
        return invoice

    # ===== Vencimientos =====

    def refresh_overdue(self, tenant_id: Optional[UUID] = None, today: Optional[date] = None) -> int:
        """Reevaluar facturas por cobrar para que `overdue` avance con el tiempo.

        Devuelve cuántas facturas cambiaron de estado o de overdue_flag.
        """
        today = today or date.today()
        try:
            criteria = [Invoice.status.in_(list(RECEIVABLE_STATUSES))]
            if tenant_id is not None:
                criteria.append(Invoice.tenant_id == tenant_id)
            claim_write_lock(self.db, Invoice, *criteria)
            query = self.db.query(Invoice).filter(*criteria)

            invoices = query.options(selectinload(Invoice.payments)).with_for_update().populate_existing().all()

            changed = 0
            try:
                for invoice in invoices:
                    before = (invoice.status, invoice.overdue_flag)
                    invoice.recalculate(today=today)
                    if (invoice.status, invoice.overdue_flag) != before:
                        changed += 1
                self.db.commit()
            finally:
                # La fecha del barrido no se arrastra a escrituras posteriores
                for invoice in invoices:
                    invoice.forget_evaluation_date()

            if changed:
                logger.info(f"Vencimientos actualizados: {changed} facturas")
            return changed

        except Exception:
            self.db.rollback()
            logger.error("Error actualizando vencimientos de facturas", exc_info=True)
            raise
