from fastapi import HTTPException
from sqlalchemy.orm import Session, selectinload
from sqlalchemy import desc
from typing import Optional
from uuid import UUID
from datetime import date, datetime, timezone
import logging

from app.database.database import claim_write_lock
from app.common.errors import (
    validation_error, field_error, conflict_error, not_found_error, internal_error
)
from app.common.money import ZERO
from app.common.totals import calculate_totals
from app.modules.receipts.models import (
    SalesReceipt, SalesReceiptLineItem, ReceiptStatus, ReceiptSource
)
from app.modules.receipts.schemas import SalesReceiptCreate
from app.modules.customers.service import CustomerService
from app.modules.items.service import ItemService
from app.modules.inventory.service import InventoryService, StockResult
from app.modules.sequences.service import SequenceService

logger = logging.getLogger(__name__)

WALK_IN_CUSTOMER_NAME = "Cliente de mostrador"


class SalesReceiptService:
    """Ventas POS.

    El recibo y los descuentos de stock van en UNA transacción: si un
    descuento condicional falla, se revierte todo el recibo.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_receipt_by_id(self, receipt_id: UUID, tenant_id: UUID, for_update: bool = False) -> SalesReceipt:
        query = self.db.query(SalesReceipt).options(
            selectinload(SalesReceipt.line_items)
        ).filter(
            SalesReceipt.id == receipt_id,
            SalesReceipt.tenant_id == tenant_id
        )
        if for_update:
            claim_write_lock(self.db, SalesReceipt, SalesReceipt.id == receipt_id, SalesReceipt.tenant_id == tenant_id)
            query = query.with_for_update().populate_existing()

        receipt = query.first()
        if not receipt:
            raise not_found_error("Recibo no encontrado")
        return receipt

    def get_receipts(self, tenant_id: UUID, status: Optional[ReceiptStatus] = None,
                     date_from: Optional[date] = None, date_to: Optional[date] = None,
                     limit: int = 100, offset: int = 0) -> dict:
        query = self.db.query(SalesReceipt).filter(SalesReceipt.tenant_id == tenant_id)
        if status:
            query = query.filter(SalesReceipt.status == status)
        if date_from:
            query = query.filter(SalesReceipt.receipt_date >= date_from)
        if date_to:
            query = query.filter(SalesReceipt.receipt_date <= date_to)

        total = query.count()
        receipts = query.order_by(desc(SalesReceipt.created_at), desc(SalesReceipt.number)).offset(offset).limit(limit).all()
        return {"receipts": receipts, "total": total, "limit": limit, "offset": offset}

    def _reject_invoice_linkage(self, receipt_data: SalesReceiptCreate):
        """Cobrar una factura es un pago sobre la factura, nunca un recibo POS"""
        errors = []
        if receipt_data.invoice_id is not None:
            errors.append(field_error(
                "invoice_id",
                "Los recibos POS no pueden vincularse a una factura; registre el pago en la factura"
            ))
        for index, line in enumerate(receipt_data.items):
            if line.invoice_id is not None:
                errors.append(field_error(
                    f"items[{index}].invoice_id",
                    "Las líneas de un recibo POS no pueden referenciar facturas"
                ))
        if errors:
            logger.warning(f"Recibo POS rechazado por vínculo a factura: {errors}")
            raise validation_error(errors)

    def create_pos_receipt(self, receipt_data: SalesReceiptCreate, tenant_id: UUID,
                           user_id: Optional[UUID] = None) -> SalesReceipt:
        """Crear venta POS completa con descuento de inventario"""
        try:
            self._reject_invoice_linkage(receipt_data)

            customer = CustomerService(self.db).find_customer(tenant_id, receipt_data.customer_id)
            customer_name = customer.name if customer else WALK_IN_CUSTOMER_NAME

            lines = ItemService(self.db).resolve_lines(tenant_id, receipt_data.items)
            totals = calculate_totals(
                [(line.quantity, line.rate, line.tax_rate) for line in lines],
                discount=receipt_data.discount,
                shipping=receipt_data.shipping
            )
            if totals.total_amount < ZERO:
                raise validation_error([field_error("discount", "El descuento no puede superar el total de la venta")])

            # Respuesta temprana sin consumir número; el UPDATE condicional decide después
            inventory = InventoryService(self.db)
            shortages = [
                check for check in inventory.check_availability(
                    tenant_id, [(line.item.id, line.quantity) for line in lines]
                )
                if not check.is_sufficient
            ]
            if shortages:
                shortage = shortages[0]
                logger.warning(f"Venta POS rechazada por stock: {[s.item_name for s in shortages]}")
                raise conflict_error(
                    f"Stock insuficiente para '{shortage.item_name}'. "
                    f"Disponible: {shortage.available_quantity}, Solicitado: {shortage.requested_quantity}"
                )

            receipt = SalesReceipt(
                tenant_id=tenant_id,
                customer_id=customer.id if customer else None,
                customer_name=customer_name,
                created_by=user_id,
                source=ReceiptSource.POS,
                status=ReceiptStatus.COMPLETED,
                receipt_date=receipt_data.receipt_date,
                payment_method=receipt_data.payment_method,
                payment_reference=receipt_data.payment_reference,
                notes=receipt_data.notes,
                subtotal=totals.subtotal,
                discount=totals.discount,
                shipping=totals.shipping,
                taxes_total=totals.taxes_total,
                total_amount=totals.total_amount
            )
            for line, computed in zip(lines, totals.lines):
                receipt.line_items.append(SalesReceiptLineItem(
                    item_id=line.item.id,
                    name=line.item.name,
                    quantity=computed.quantity,
                    rate=computed.rate,
                    tax_rate=computed.tax_rate,
                    line_amount=computed.line_amount,
                    line_tax=computed.line_tax
                ))

            receipt.number = SequenceService(self.db).allocate_receipt_number(tenant_id)

            # Desde aquí todo es una sola transacción
            self.db.add(receipt)
            self.db.flush()

            for line_item in receipt.line_items:
                result = inventory.decrement_stock(
                    tenant_id, line_item.item_id, line_item.quantity,
                    reference=receipt.number, user_id=user_id
                )
                if result == StockResult.INSUFFICIENT:
                    number, item_name = receipt.number, line_item.name
                    self.db.rollback()
                    logger.warning(
                        f"Compensación: recibo {number} revertido por stock insuficiente de '{item_name}' "
                        f"(tenant {tenant_id}); el número {number} queda sin usar"
                    )
                    raise conflict_error(f"Stock insuficiente para '{item_name}'")

            self.db.commit()
            self.db.refresh(receipt)

            logger.info(f"Recibo POS {receipt.number} creado: total={receipt.total_amount}, cliente={customer_name}")
            return receipt

        except HTTPException:
            self.db.rollback()
            raise
        except Exception:
            self.db.rollback()
            logger.error(f"Error creando recibo POS para tenant {tenant_id}", exc_info=True)
            raise internal_error("Error creando recibo")

    def cancel_receipt(self, receipt_id: UUID, tenant_id: UUID, user_id: Optional[UUID] = None) -> SalesReceipt:
        """Anular recibo y devolver el stock en la misma transacción"""
        try:
            receipt = self.get_receipt_by_id(receipt_id, tenant_id, for_update=True)

            if receipt.status == ReceiptStatus.CANCELLED:
                raise conflict_error("El recibo ya está anulado")

            inventory = InventoryService(self.db)
            for line_item in receipt.line_items:
                inventory.restore_stock(
                    tenant_id, line_item.item_id, line_item.quantity,
                    reference=receipt.number, user_id=user_id
                )

            receipt.status = ReceiptStatus.CANCELLED
            receipt.cancelled_at = datetime.now(timezone.utc)
            self.db.commit()
            self.db.refresh(receipt)

            logger.info(f"Recibo POS {receipt.number} anulado; stock restaurado")
            return receipt

        except HTTPException:
            self.db.rollback()
            raise
        except Exception:
            self.db.rollback()
            logger.error(f"Error anulando recibo {receipt_id}", exc_info=True)
            raise internal_error("Error anulando recibo")
