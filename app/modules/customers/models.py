from app.database.database import Base
from sqlalchemy import Column, String, Boolean, Uuid
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin


class Customer(Base, TenantMixin, TimestampMixin):
    """Cliente. Solo se consulta para validar referencias y tomar un snapshot del nombre."""
    __tablename__ = "customers"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(200), nullable=False)
    phone = Column(String(50), nullable=True)
    email = Column(String(100), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
