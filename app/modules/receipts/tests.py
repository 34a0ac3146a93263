"""
Tests para recibos de venta POS

- Creación con descuento atómico de stock
- Rechazo por stock insuficiente sin tocar inventario ni numeración
- Rechazo de vínculos a facturas
- Anulación con devolución de stock
"""

import pytest
from decimal import Decimal
from unittest.mock import patch
from uuid import uuid4
from fastapi import HTTPException

from app.modules.items.models import ItemType, Item
from app.modules.inventory.models import InventoryMovement
from app.modules.inventory.service import InventoryService, StockResult
from app.modules.receipts.models import SalesReceipt, ReceiptStatus, ReceiptSource
from app.modules.receipts.schemas import SalesReceiptCreate, SalesReceiptLineItemCreate
from app.modules.receipts.service import SalesReceiptService, WALK_IN_CUSTOMER_NAME


# ===== FIXTURES =====

@pytest.fixture
def service(db_session):
    return SalesReceiptService(db_session)


def receipt_for(*lines, **kwargs):
    return SalesReceiptCreate(
        items=[SalesReceiptLineItemCreate(item_id=item.id, quantity=Decimal(str(qty))) for item, qty in lines],
        **kwargs
    )


def stock_of(db_session, item):
    db_session.expire_all()
    return db_session.get(Item, item.id).stock_quantity


# ===== TESTS DE CREACIÓN =====

class TestCreatePosReceipt:

    def test_creates_completed_receipt_and_decrements_stock(self, service, db_session, make_item, tenant_id):
        item = make_item(name="Café", price="8.50", stock="10")
        receipt = service.create_pos_receipt(receipt_for((item, 3)), tenant_id)

        assert receipt.number == "REC-00001"
        assert receipt.status == ReceiptStatus.COMPLETED
        assert receipt.source == ReceiptSource.POS
        assert receipt.invoice_id is None
        assert receipt.total_amount == Decimal("25.50")
        assert receipt.customer_name == WALK_IN_CUSTOMER_NAME
        assert stock_of(db_session, item) == Decimal("7")

        movement = db_session.query(InventoryMovement).filter(InventoryMovement.item_id == item.id).one()
        assert movement.quantity == Decimal("-3")
        assert movement.reference == "REC-00001"

    def test_named_customer_is_snapshotted(self, service, make_item, customer, tenant_id):
        item = make_item()
        receipt = service.create_pos_receipt(receipt_for((item, 1), customer_id=customer.id), tenant_id)
        assert receipt.customer_id == customer.id
        assert receipt.customer_name == customer.name

    def test_insufficient_stock_is_rejected_and_stock_unchanged(self, service, db_session, make_item, tenant_id):
        """Recibo por 5 unidades con stock 3 -> rechazado, el stock sigue en 3"""
        item = make_item(stock="3")
        with pytest.raises(HTTPException) as exc_info:
            service.create_pos_receipt(receipt_for((item, 5)), tenant_id)

        assert exc_info.value.status_code == 409
        assert stock_of(db_session, item) == Decimal("3")
        assert db_session.query(SalesReceipt).count() == 0

        # No se consumió número
        assert service.create_pos_receipt(receipt_for((item, 1)), tenant_id).number == "REC-00001"

    def test_repeated_item_lines_are_checked_together(self, service, db_session, make_item, tenant_id):
        item = make_item(stock="4")
        with pytest.raises(HTTPException) as exc_info:
            service.create_pos_receipt(receipt_for((item, 3), (item, 2)), tenant_id)
        assert exc_info.value.status_code == 409
        assert stock_of(db_session, item) == Decimal("4")

    def test_failed_decrement_rolls_back_whole_receipt(self, service, db_session, make_item, tenant_id):
        """Si otro proceso se lleva el stock entre la verificación y el UPDATE"""
        first = make_item(name="Primero", stock="10")
        second = make_item(name="Segundo", stock="10")

        original = InventoryService.decrement_stock

        def racing_decrement(self, tenant, item_id, quantity, reference=None, user_id=None):
            if item_id == second.id:
                return StockResult.INSUFFICIENT
            return original(self, tenant, item_id, quantity, reference=reference, user_id=user_id)

        with patch.object(InventoryService, "decrement_stock", racing_decrement):
            with pytest.raises(HTTPException) as exc_info:
                service.create_pos_receipt(receipt_for((first, 2), (second, 2)), tenant_id)

        assert exc_info.value.status_code == 409
        assert stock_of(db_session, first) == Decimal("10")
        assert db_session.query(SalesReceipt).count() == 0
        assert db_session.query(InventoryMovement).count() == 0

    def test_services_and_untracked_goods_are_exempt(self, service, db_session, make_item, tenant_id):
        consulting = make_item(name="Asesoría", price="100", stock="0", item_type=ItemType.SERVICE)
        untracked = make_item(name="Bolsa", price="1", stock="0", track_inventory=False)

        receipt = service.create_pos_receipt(receipt_for((consulting, 2), (untracked, 5)), tenant_id)

        assert receipt.total_amount == Decimal("205.00")
        assert stock_of(db_session, consulting) == Decimal("0")
        assert db_session.query(InventoryMovement).count() == 0

    def test_invoice_linkage_is_rejected(self, service, make_item, tenant_id, db_session):
        item = make_item()
        with pytest.raises(HTTPException) as exc_info:
            service.create_pos_receipt(receipt_for((item, 1), invoice_id=uuid4()), tenant_id)
        assert exc_info.value.status_code == 400
        assert exc_info.value.detail["errors"][0]["field"] == "invoice_id"
        assert db_session.query(SalesReceipt).count() == 0

    def test_line_invoice_linkage_is_rejected(self, service, make_item, tenant_id):
        item = make_item()
        data = SalesReceiptCreate(items=[
            SalesReceiptLineItemCreate(item_id=item.id, quantity=Decimal("1"), invoice_id=uuid4())
        ])
        with pytest.raises(HTTPException) as exc_info:
            service.create_pos_receipt(data, tenant_id)
        assert exc_info.value.status_code == 400
        assert exc_info.value.detail["errors"][0]["field"] == "items[0].invoice_id"

    def test_item_of_other_tenant_is_rejected(self, service, make_item, other_company, tenant_id):
        foreign = make_item(tenant=other_company.id)
        with pytest.raises(HTTPException) as exc_info:
            service.create_pos_receipt(receipt_for((foreign, 1)), tenant_id)
        assert exc_info.value.status_code == 400


# ===== TESTS DE ANULACIÓN =====

class TestCancelReceipt:

    def test_cancel_restores_stock(self, service, db_session, make_item, tenant_id):
        item = make_item(stock="10")
        receipt = service.create_pos_receipt(receipt_for((item, 4)), tenant_id)
        assert stock_of(db_session, item) == Decimal("6")

        cancelled = service.cancel_receipt(receipt.id, tenant_id)

        assert cancelled.status == ReceiptStatus.CANCELLED
        assert cancelled.cancelled_at is not None
        assert stock_of(db_session, item) == Decimal("10")
        movements = db_session.query(InventoryMovement).filter(InventoryMovement.item_id == item.id).all()
        assert sorted(m.quantity for m in movements) == [Decimal("-4"), Decimal("4")]

    def test_cancel_twice_is_a_conflict(self, service, make_item, tenant_id):
        item = make_item()
        receipt = service.create_pos_receipt(receipt_for((item, 1)), tenant_id)
        service.cancel_receipt(receipt.id, tenant_id)
        with pytest.raises(HTTPException) as exc_info:
            service.cancel_receipt(receipt.id, tenant_id)
        assert exc_info.value.status_code == 409

    def test_other_tenant_cannot_cancel(self, service, make_item, tenant_id, other_company):
        item = make_item()
        receipt = service.create_pos_receipt(receipt_for((item, 1)), tenant_id)
        with pytest.raises(HTTPException) as exc_info:
            service.cancel_receipt(receipt.id, other_company.id)
        assert exc_info.value.status_code == 404


# ===== TESTS DE API =====

class TestReceiptAPI:

    def test_create_and_get(self, client, headers, make_item):
        item = make_item(price="12.00", stock="5")
        response = client.post("/receipts/", json={
            "payment_method": "credit_card",
            "items": [{"item_id": str(item.id), "quantity": "2"}]
        }, headers=headers)
        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "completed"
        assert Decimal(body["total_amount"]) == Decimal("24")

        response = client.get(f"/receipts/{body['id']}", headers=headers)
        assert response.status_code == 200
        assert len(response.json()["line_items"]) == 1

    def test_oversell_is_409(self, client, headers, make_item):
        item = make_item(stock="3")
        response = client.post("/receipts/", json={
            "items": [{"item_id": str(item.id), "quantity": "5"}]
        }, headers=headers)
        assert response.status_code == 409

    def test_unknown_fields_are_rejected(self, client, headers, make_item):
        item = make_item()
        response = client.post("/receipts/", json={
            "invoice": "INV-00001",
            "items": [{"item_id": str(item.id), "quantity": "1"}]
        }, headers=headers)
        assert response.status_code == 422
