from typing import List, Optional, Tuple
from uuid import UUID
from decimal import Decimal
from sqlalchemy.orm import Session
from sqlalchemy import and_, update, desc
from fastapi import HTTPException, status
import enum
import logging

from app.common.money import quantity as to_quantity, is_positive_finite
from app.modules.items.models import Item, ItemType
from app.modules.inventory.models import InventoryMovement
from app.modules.inventory.schemas import MovementType, StockCheck

logger = logging.getLogger(__name__)


class StockResult(str, enum.Enum):
    OK = "ok"
    EXEMPT = "exempt"                  # Servicio o bien sin seguimiento de inventario
    INSUFFICIENT = "insufficient_stock"


class InventoryService:
    """Service for stock operations of the ledger.

    Stock is shared mutable state across server processes, so every change is a
    single conditional UPDATE evaluated by the database. Nothing here commits:
    the caller owns the transaction.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_item(self, tenant_id: UUID, item_id: UUID) -> Item:
        """Get an item scoped to the tenant (other tenants' items look missing)."""
        item = self.db.query(Item).filter(
            Item.id == item_id,
            Item.tenant_id == tenant_id
        ).first()

        if not item:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Item no encontrado"
            )
        return item

    def _validate_quantity(self, quantity) -> Decimal:
        if not is_positive_finite(quantity):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"errors": [{"field": "quantity", "message": "La cantidad debe ser mayor a 0"}]}
            )
        return to_quantity(quantity)

    def check_availability(self, tenant_id: UUID, requests: List[Tuple[UUID, Decimal]]) -> List[StockCheck]:
        """Read-only pre-check of requested quantities, aggregated per item.

        It only gives the caller a friendly early answer; the conditional
        UPDATE in decrement_stock is what actually protects the stock.
        """
        requested = {}
        for item_id, qty in requests:
            requested[item_id] = requested.get(item_id, Decimal("0")) + to_quantity(qty)

        checks = []
        for item_id, qty in requested.items():
            item = self.get_item(tenant_id, item_id)
            if not item.is_stock_tracked:
                continue
            available = to_quantity(item.stock_quantity)
            checks.append(StockCheck(
                item_id=item.id,
                item_name=item.name,
                requested_quantity=qty,
                available_quantity=available,
                is_sufficient=available >= qty
            ))
        return checks

    def decrement_stock(self, tenant_id: UUID, item_id: UUID, quantity,
                        reference: Optional[str] = None, user_id: Optional[UUID] = None) -> StockResult:
        """Atomically take `quantity` units out of stock.

        The UPDATE only matches while stock_quantity >= quantity, so two
        concurrent sales of the last unit cannot both succeed.
        """
        qty = self._validate_quantity(quantity)
        item = self.get_item(tenant_id, item_id)

        if not item.is_stock_tracked:
            logger.debug(f"Item {item_id} exento de inventario ({item.type.value}, track={item.track_inventory})")
            return StockResult.EXEMPT

        result = self.db.execute(
            update(Item)
            .where(
                and_(
                    Item.id == item_id,
                    Item.tenant_id == tenant_id,
                    Item.type == ItemType.GOODS,
                    Item.track_inventory.is_(True),
                    Item.stock_quantity >= qty
                )
            )
            .values(stock_quantity=Item.stock_quantity - qty)
            .execution_options(synchronize_session=False)
        )
        # The loaded instance no longer reflects the row
        self.db.expire(item)

        if result.rowcount != 1:
            logger.warning(f"Stock insuficiente para item {item_id}: solicitado {qty}")
            return StockResult.INSUFFICIENT

        self.db.add(InventoryMovement(
            tenant_id=tenant_id,
            item_id=item_id,
            quantity=-qty,
            movement_type=MovementType.OUT.value,
            reference=reference,
            notes=f"Venta {reference}" if reference else None,
            created_by=user_id
        ))
        logger.info(f"Stock descontado: item={item_id}, cantidad={qty}, referencia={reference}")
        return StockResult.OK

    def restore_stock(self, tenant_id: UUID, item_id: UUID, quantity,
                      reference: Optional[str] = None, user_id: Optional[UUID] = None) -> StockResult:
        """Put units back (e.g. a cancelled sale). Same atomic UPDATE, without the guard."""
        qty = self._validate_quantity(quantity)
        item = self.get_item(tenant_id, item_id)

        if not item.is_stock_tracked:
            return StockResult.EXEMPT

        self.db.execute(
            update(Item)
            .where(Item.id == item_id, Item.tenant_id == tenant_id)
            .values(stock_quantity=Item.stock_quantity + qty)
            .execution_options(synchronize_session=False)
        )
        self.db.expire(item)

        self.db.add(InventoryMovement(
            tenant_id=tenant_id,
            item_id=item_id,
            quantity=qty,
            movement_type=MovementType.IN.value,
            reference=reference,
            notes=f"Reversión {reference}" if reference else None,
            created_by=user_id
        ))
        logger.info(f"Stock restaurado: item={item_id}, cantidad={qty}, referencia={reference}")
        return StockResult.OK

    def get_movements(self, tenant_id: UUID, item_id: UUID, limit: int = 100, offset: int = 0) -> List[InventoryMovement]:
        """List stock movements of an item, newest first."""
        self.get_item(tenant_id, item_id)
        return self.db.query(InventoryMovement).filter(
            InventoryMovement.tenant_id == tenant_id,
            InventoryMovement.item_id == item_id
        ).order_by(desc(InventoryMovement.created_at)).offset(offset).limit(limit).all()
