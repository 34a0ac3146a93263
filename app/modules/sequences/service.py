"""
Generador de secuencias para numeración de documentos.

Cada llamada ejecuta un único upsert atómico contra document_counters y hace
commit inmediatamente, de modo que varios procesos pueden pedir números a la
vez sin duplicados. Un número entregado a un documento que luego no se guarda
se pierde: se aceptan huecos, nunca duplicados.
"""
from fastapi import HTTPException, status
from sqlalchemy.orm import Session
from sqlalchemy import update, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.sql import func
from uuid import UUID, uuid4
import logging

from app.core.config import settings
from app.modules.sequences.models import DocumentCounter, SequenceKind
from app.modules.company.models import Company

logger = logging.getLogger(__name__)


def format_document_number(prefix: str, value: int, padding: int = None) -> str:
    """PREFIX-NNNNN"""
    padding = settings.DOCUMENT_NUMBER_PADDING if padding is None else padding
    clean_prefix = (prefix or "").strip().upper().rstrip("-")
    return f"{clean_prefix}-{value:0{padding}d}"


class SequenceService:
    def __init__(self, db: Session):
        self.db = db

    def next_sequence(self, tenant_id: UUID, kind: SequenceKind) -> int:
        """Incrementar y devolver el contador de (tenant_id, kind).

        Hace commit de la sesión: llamarlo antes de agregar el documento que
        usará el número.
        """
        kind = SequenceKind(kind)
        retries = max(1, settings.TRANSACTION_MAX_RETRIES)

        for attempt in range(1, retries + 1):
            try:
                value = self._increment(tenant_id, kind)
                self.db.commit()
                logger.debug(f"Secuencia {kind.value} de {tenant_id} -> {value}")
                return value
            except OperationalError as e:
                self.db.rollback()
                logger.warning(f"Conflicto transitorio asignando secuencia {kind.value} (intento {attempt}/{retries}): {e}")
            except Exception:
                self.db.rollback()
                logger.error(f"Error asignando secuencia {kind.value} para {tenant_id}", exc_info=True)
                raise HTTPException(
                    status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                    detail="No fue posible generar el número de documento"
                )

        logger.error(f"Reintentos agotados asignando secuencia {kind.value} para {tenant_id}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="No fue posible generar el número de documento"
        )

    def _increment(self, tenant_id: UUID, kind: SequenceKind) -> int:
        dialect = self.db.get_bind().dialect.name

        if dialect in ("postgresql", "sqlite"):
            if dialect == "postgresql":
                from sqlalchemy.dialects.postgresql import insert
            else:
                from sqlalchemy.dialects.sqlite import insert

            stmt = insert(DocumentCounter).values(
                id=uuid4(),
                tenant_id=tenant_id,
                kind=kind,
                current_value=1
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[DocumentCounter.tenant_id, DocumentCounter.kind],
                set_={
                    "current_value": DocumentCounter.current_value + 1,
                    "updated_at": func.now()
                }
            ).returning(DocumentCounter.current_value)
            return self.db.execute(stmt).scalar_one()

        return self._increment_generic(tenant_id, kind)

    def _increment_generic(self, tenant_id: UUID, kind: SequenceKind) -> int:
        """Para motores sin upsert: UPDATE con bloqueo de fila y alta bajo savepoint"""
        where = (DocumentCounter.tenant_id == tenant_id, DocumentCounter.kind == kind)
        bump = (
            update(DocumentCounter)
            .where(*where)
            .values(current_value=DocumentCounter.current_value + 1)
            .execution_options(synchronize_session=False)
        )

        if self.db.execute(bump).rowcount == 0:
            try:
                with self.db.begin_nested():
                    self.db.add(DocumentCounter(tenant_id=tenant_id, kind=kind, current_value=1))
                return 1
            except IntegrityError:
                # Otro proceso creó el contador entre el UPDATE y el INSERT
                self.db.execute(bump)

        return self.db.execute(select(DocumentCounter.current_value).where(*where)).scalar_one()

    def _prefix_for(self, tenant_id: UUID, kind: SequenceKind) -> str:
        company = self.db.query(Company).filter(Company.id == tenant_id).first()
        if kind == SequenceKind.INVOICE:
            configured = company.invoice_prefix if company else None
            return configured or settings.DEFAULT_INVOICE_PREFIX
        configured = company.receipt_prefix if company else None
        return configured or settings.DEFAULT_RECEIPT_PREFIX

    def allocate_number(self, tenant_id: UUID, kind: SequenceKind) -> str:
        prefix = self._prefix_for(tenant_id, kind)
        value = self.next_sequence(tenant_id, kind)
        return format_document_number(prefix, value)

    def allocate_invoice_number(self, tenant_id: UUID) -> str:
        """Generar número de factura (ej: INV-00001)"""
        return self.allocate_number(tenant_id, SequenceKind.INVOICE)

    def allocate_receipt_number(self, tenant_id: UUID) -> str:
        """Generar número de recibo POS (ej: REC-00001)"""
        return self.allocate_number(tenant_id, SequenceKind.RECEIPT)
