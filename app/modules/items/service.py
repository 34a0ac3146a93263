from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional
from uuid import UUID
from sqlalchemy.orm import Session
import logging

from app.common.errors import validation_error, field_error
from app.modules.items.models import Item

logger = logging.getLogger(__name__)


@dataclass
class ResolvedLine:
    item: Item
    quantity: Decimal
    rate: Decimal
    tax_rate: Decimal


class ItemService:
    """Consulta de items del catálogo para armar líneas de documentos"""

    def __init__(self, db: Session):
        self.db = db

    def resolve_lines(self, tenant_id: UUID, lines) -> List[ResolvedLine]:
        """Validar items de cada línea; el precio por defecto es el de venta.

        Acumula todos los errores y responde 400 una sola vez.
        """
        errors = []
        resolved = []

        item_ids = {line.item_id for line in lines}
        items = {
            item.id: item
            for item in self.db.query(Item).filter(
                Item.tenant_id == tenant_id,
                Item.id.in_(item_ids)
            ).all()
        } if item_ids else {}

        for index, line in enumerate(lines):
            item: Optional[Item] = items.get(line.item_id)
            if not item:
                errors.append(field_error(f"items[{index}].item_id", "El item no existe o no pertenece a esta empresa"))
                continue
            if not item.is_active:
                errors.append(field_error(f"items[{index}].item_id", f"El item '{item.name}' está inactivo"))
                continue

            rate = line.rate if line.rate is not None else item.selling_price
            resolved.append(ResolvedLine(
                item=item,
                quantity=line.quantity,
                rate=Decimal(str(rate)),
                tax_rate=line.tax_rate or Decimal("0")
            ))

        if errors:
            logger.warning(f"Líneas inválidas para tenant {tenant_id}: {errors}")
            raise validation_error(errors)
        return resolved
