"""
Tests para el inventario del ledger

El descuento de stock es un UPDATE condicional; bajo concurrencia nunca
puede quedar negativo ni venderse más de lo disponible.
"""

import pytest
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from uuid import uuid4
from fastapi import HTTPException

from app.modules.items.models import Item, ItemType
from app.modules.inventory.models import InventoryMovement
from app.modules.inventory.service import InventoryService, StockResult


def current_stock(session_factory, item_id):
    session = session_factory()
    try:
        return session.get(Item, item_id).stock_quantity
    finally:
        session.close()


class TestDecrementStock:

    def test_decrement_within_stock(self, db_session, make_item, tenant_id):
        item = make_item(stock="5")
        service = InventoryService(db_session)

        assert service.decrement_stock(tenant_id, item.id, Decimal("2"), reference="REC-00001") == StockResult.OK
        db_session.commit()

        db_session.refresh(item)
        assert item.stock_quantity == Decimal("3")
        assert db_session.query(InventoryMovement).count() == 1

    def test_exact_stock_can_be_sold(self, db_session, make_item, tenant_id):
        item = make_item(stock="2")
        assert InventoryService(db_session).decrement_stock(tenant_id, item.id, 2) == StockResult.OK
        db_session.commit()
        db_session.refresh(item)
        assert item.stock_quantity == Decimal("0")

    def test_insufficient_stock_leaves_row_untouched(self, db_session, make_item, tenant_id):
        item = make_item(stock="3")
        result = InventoryService(db_session).decrement_stock(tenant_id, item.id, Decimal("5"))
        db_session.commit()

        assert result == StockResult.INSUFFICIENT
        db_session.refresh(item)
        assert item.stock_quantity == Decimal("3")
        assert db_session.query(InventoryMovement).count() == 0

    def test_services_are_exempt(self, db_session, make_item, tenant_id):
        item = make_item(stock="0", item_type=ItemType.SERVICE)
        assert InventoryService(db_session).decrement_stock(tenant_id, item.id, 10) == StockResult.EXEMPT

    @pytest.mark.parametrize("quantity", [0, -1, "NaN"])
    def test_invalid_quantity_is_rejected(self, db_session, make_item, tenant_id, quantity):
        item = make_item()
        with pytest.raises(HTTPException) as exc_info:
            InventoryService(db_session).decrement_stock(tenant_id, item.id, quantity)
        assert exc_info.value.status_code == 400

    def test_item_of_other_tenant_is_not_found(self, db_session, make_item, other_company):
        item = make_item()
        with pytest.raises(HTTPException) as exc_info:
            InventoryService(db_session).decrement_stock(other_company.id, item.id, 1)
        assert exc_info.value.status_code == 404

    def test_concurrent_decrements_never_oversell(self, session_factory, make_item, tenant_id):
        """10 ventas concurrentes de 1 unidad sobre stock 3 -> exactamente 3 éxitos"""
        item = make_item(stock="3")
        item_id = item.id

        def sell(_):
            session = session_factory()
            try:
                result = InventoryService(session).decrement_stock(tenant_id, item_id, Decimal("1"))
                session.commit()
                return result
            finally:
                session.close()

        with ThreadPoolExecutor(max_workers=5) as executor:
            results = list(executor.map(sell, range(10)))

        assert results.count(StockResult.OK) == 3
        assert results.count(StockResult.INSUFFICIENT) == 7
        assert current_stock(session_factory, item_id) == Decimal("0")

    def test_concurrent_large_decrements_only_one_wins(self, session_factory, make_item, tenant_id):
        item = make_item(stock="5")
        item_id = item.id

        def sell(_):
            session = session_factory()
            try:
                result = InventoryService(session).decrement_stock(tenant_id, item_id, Decimal("4"))
                session.commit()
                return result
            finally:
                session.close()

        with ThreadPoolExecutor(max_workers=4) as executor:
            results = list(executor.map(sell, range(4)))

        assert results.count(StockResult.OK) == 1
        assert current_stock(session_factory, item_id) == Decimal("1")


class TestRestoreAndAvailability:

    def test_restore_adds_stock_and_movement(self, db_session, make_item, tenant_id):
        item = make_item(stock="1")
        service = InventoryService(db_session)
        assert service.restore_stock(tenant_id, item.id, Decimal("2"), reference="REC-00009") == StockResult.OK
        db_session.commit()

        db_session.refresh(item)
        assert item.stock_quantity == Decimal("3")
        movement = service.get_movements(tenant_id, item.id)[0]
        assert movement.movement_type == "IN"
        assert movement.reference == "REC-00009"

    def test_check_availability_aggregates_lines(self, db_session, make_item, tenant_id):
        item = make_item(stock="4")
        service_item = make_item(item_type=ItemType.SERVICE)

        checks = InventoryService(db_session).check_availability(
            tenant_id, [(item.id, 3), (item.id, 2), (service_item.id, 100)]
        )

        assert len(checks) == 1
        assert checks[0].requested_quantity == Decimal("5")
        assert checks[0].is_sufficient is False


class TestStockAPI:

    def test_item_stock_endpoint(self, client, headers, make_item):
        item = make_item(stock="7")
        response = client.get(f"/stock/items/{item.id}", headers=headers)
        assert response.status_code == 200
        assert Decimal(response.json()["stock_quantity"]) == Decimal("7")
        assert response.json()["type"] == "goods"

    def test_unknown_item_is_404(self, client, headers):
        response = client.get(f"/stock/items/{uuid4()}", headers=headers)
        assert response.status_code == 404

    def test_check_endpoint(self, client, headers, make_item):
        item = make_item(stock="1")
        response = client.post("/stock/check", json={
            "items": [{"item_id": str(item.id), "quantity": "2"}]
        }, headers=headers)
        assert response.status_code == 200
        assert response.json()[0]["is_sufficient"] is False
