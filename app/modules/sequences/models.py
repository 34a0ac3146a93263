from app.database.database import Base
from sqlalchemy import Column, Integer, DateTime, Enum, UniqueConstraint, Uuid
from sqlalchemy.sql import func
from uuid import uuid4
from app.common.mixins import TenantMixin
import enum


class SequenceKind(str, enum.Enum):
    INVOICE = "invoice"
    RECEIPT = "receipt"


class DocumentCounter(Base, TenantMixin):
    """Contador de numeración por empresa y tipo de documento.

    Solo se modifica con un único INSERT ... ON CONFLICT DO UPDATE ... RETURNING
    (ver SequenceService); ningún otro componente lo lee.
    """
    __tablename__ = "document_counters"

    id = Column(Uuid, primary_key=True, default=uuid4)
    kind = Column(Enum(SequenceKind), nullable=False)
    current_value = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("tenant_id", "kind", name="uq_counter_tenant_kind"),
    )
