"""
Background tasks for invoices
"""
from app.core.celery import celery_app
from app.database.database import SessionLocal
from app.modules.invoices.service import InvoiceService
from uuid import UUID
import logging

logger = logging.getLogger(__name__)


@celery_app.task(bind=True)
def refresh_overdue_invoices(self, tenant_id: str = None):
    """
    Periodic task: reevaluate receivable invoices so `overdue` status and
    overdue_flag age without waiting for the next write
    """
    db = SessionLocal()
    try:
        changed = InvoiceService(db).refresh_overdue(UUID(tenant_id) if tenant_id else None)
        logger.info(f"Overdue sweep finished: {changed} invoices updated")
        return {"status": "completed", "updated": changed}

    except Exception as e:
        logger.error(f"Overdue sweep failed: {str(e)}")
        raise self.retry(exc=e, countdown=60, max_retries=3)
    finally:
        db.close()
