from app.database.database import Base
from sqlalchemy import Column, String, Boolean, DateTime, Uuid
from sqlalchemy.sql import func
import uuid


class Company(Base):
    """Tenant. El CRUD vive fuera del ledger; aquí solo se leen sus prefijos de numeración."""
    __tablename__ = "companies"

    id = Column(Uuid, primary_key=True, index=True, default=uuid.uuid4)
    name = Column(String(200), nullable=False, unique=True, index=True)
    invoice_prefix = Column(String(10), nullable=True)  # Ej: "INV", "FAC"
    receipt_prefix = Column(String(10), nullable=True)  # Ej: "REC", "POS"
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
