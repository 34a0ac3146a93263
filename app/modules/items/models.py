from app.database.database import Base
from sqlalchemy import Column, String, Boolean, Numeric, Enum, UniqueConstraint, CheckConstraint, Uuid
from sqlalchemy.orm import relationship
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin
import enum


class ItemType(str, enum.Enum):
    GOODS = "goods"        # Bienes físicos, descuentan stock
    SERVICE = "service"    # Servicios, nunca afectan inventario


class Item(Base, TenantMixin, TimestampMixin):
    __tablename__ = "items"

    id = Column(Uuid, primary_key=True, default=uuid4)
    type = Column(Enum(ItemType), nullable=False, default=ItemType.GOODS)
    name = Column(String(200), nullable=False)
    sku = Column(String(50), nullable=True)
    description = Column(String(500), nullable=True)
    selling_price = Column(Numeric(15, 2), nullable=False, default=0)

    # Inventario: solo se modifica con UPDATE condicional (ver InventoryService)
    stock_quantity = Column(Numeric(12, 3), nullable=False, default=0)
    low_stock_threshold = Column(Numeric(12, 3), nullable=False, default=10)
    track_inventory = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, nullable=False, default=True)

    movements = relationship("InventoryMovement", back_populates="item")

    __table_args__ = (
        UniqueConstraint("tenant_id", "sku", name="uq_item_tenant_sku"),
        CheckConstraint("stock_quantity >= 0", name="ck_item_stock_non_negative"),
        CheckConstraint("selling_price >= 0", name="ck_item_price_non_negative"),
    )

    @property
    def is_stock_tracked(self) -> bool:
        """Solo los bienes con seguimiento de inventario descuentan stock"""
        return self.type == ItemType.GOODS and bool(self.track_inventory)

    @property
    def is_low_stock(self) -> bool:
        return self.is_stock_tracked and self.stock_quantity <= self.low_stock_threshold
