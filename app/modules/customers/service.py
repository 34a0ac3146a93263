from typing import Optional
from uuid import UUID
from sqlalchemy.orm import Session
import logging

from app.common.errors import validation_error, field_error
from app.modules.customers.models import Customer

logger = logging.getLogger(__name__)


class CustomerService:
    """Consulta de clientes para documentos del ledger (el CRUD vive fuera)"""

    def __init__(self, db: Session):
        self.db = db

    def get_active_customer(self, tenant_id: UUID, customer_id: UUID, field: str = "customer_id") -> Customer:
        customer = self.db.query(Customer).filter(
            Customer.id == customer_id,
            Customer.tenant_id == tenant_id
        ).first()

        if not customer:
            raise validation_error([field_error(field, "El cliente no existe o no pertenece a esta empresa")])
        if not customer.is_active:
            raise validation_error([field_error(field, "El cliente está inactivo")])
        return customer

    def find_customer(self, tenant_id: UUID, customer_id: Optional[UUID]) -> Optional[Customer]:
        if customer_id is None:
            return None
        return self.get_active_customer(tenant_id, customer_id)
