from pydantic import BaseModel, Field
from typing import List, Optional
from uuid import UUID
from decimal import Decimal
from datetime import datetime
from enum import Enum
from app.modules.items.models import ItemType

class MovementType(str, Enum):
    IN = "IN"
    OUT = "OUT"

class StockCheck(BaseModel):
    item_id: UUID
    item_name: str
    requested_quantity: Decimal
    available_quantity: Decimal
    is_sufficient: bool

class ItemStockOut(BaseModel):
    id: UUID
    name: str
    type: ItemType
    stock_quantity: Decimal
    track_inventory: bool
    is_low_stock: bool

    class Config:
        from_attributes = True

class InventoryMovementOut(BaseModel):
    id: UUID
    item_id: UUID
    quantity: Decimal
    movement_type: MovementType
    reference: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True

class StockCheckLine(BaseModel):
    item_id: UUID
    quantity: Decimal = Field(..., gt=0)

class StockCheckRequest(BaseModel):
    items: List[StockCheckLine] = Field(..., min_length=1)
