from fastapi import APIRouter, Query
from typing import List
from uuid import UUID

from app.core.config import settings
from app.dependencies.dbDependecies import db_dependency
from app.dependencies.companyDependencies import TenantId
from app.modules.inventory.service import InventoryService
from app.modules.inventory.schemas import (
    ItemStockOut, InventoryMovementOut, StockCheck, StockCheckRequest
)

stock_router = APIRouter(prefix="/stock", tags=["Stock"])


@stock_router.get("/items/{item_id}", response_model=ItemStockOut)
def get_item_stock(item_id: UUID, db: db_dependency, tenant_id: TenantId):
    """Get current stock of an item."""
    return InventoryService(db).get_item(tenant_id, item_id)


@stock_router.get("/items/{item_id}/movements", response_model=List[InventoryMovementOut])
def get_item_movements(
    item_id: UUID,
    db: db_dependency,
    tenant_id: TenantId,
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0)
):
    """Get stock movements of an item, newest first."""
    return InventoryService(db).get_movements(tenant_id, item_id, limit, offset)


@stock_router.post("/check", response_model=List[StockCheck])
def check_stock(request: StockCheckRequest, db: db_dependency, tenant_id: TenantId):
    """Check availability for a prospective sale. Services and untracked goods are omitted."""
    return InventoryService(db).check_availability(
        tenant_id, [(line.item_id, line.quantity) for line in request.items]
    )
