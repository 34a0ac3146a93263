from app.database.database import Base
from sqlalchemy import Column, String, ForeignKey, Numeric, Uuid
from sqlalchemy.orm import relationship
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin


class InventoryMovement(Base, TenantMixin, TimestampMixin):
    """Rastro de cada cambio de stock hecho por el ledger"""
    __tablename__ = "inventory_movements"

    id = Column(Uuid, primary_key=True, default=uuid4)
    item_id = Column(Uuid, ForeignKey("items.id"), nullable=False, index=True)

    quantity = Column(Numeric(12, 3), nullable=False)  # Negativo para salidas
    movement_type = Column(String(20), nullable=False)  # IN, OUT
    reference = Column(String(100), nullable=True)  # Número de recibo, factura, etc.
    notes = Column(String(255), nullable=True)

    created_by = Column(Uuid, nullable=True)

    # Relationships
    item = relationship("Item", back_populates="movements")
