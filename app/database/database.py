from sqlalchemy import create_engine, update
from sqlalchemy.orm import Session, sessionmaker, declarative_base
from app.core.config import settings
import logging

logger = logging.getLogger(__name__)


def build_engine(url: str, echo: bool = False):
    """Crea el engine; SQLite no admite pool_size y necesita compartir conexión entre hilos."""
    if url.startswith("sqlite"):
        return create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30}
        )
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        echo=echo
    )


engine = build_engine(settings.database_url, echo=settings.DEBUG and settings.ENVIRONMENT == "development")

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def claim_write_lock(db: Session, model, *criteria) -> None:
    """Toma el lock de escritura antes de un SELECT ... FOR UPDATE.

    SQLite ignora FOR UPDATE y pysqlite no abre transacción en un SELECT, así
    que dos sesiones leerían el mismo estado. Un UPDATE sin cambios abre la
    transacción con el lock de escritura; la otra sesión espera (busy timeout)
    hasta el commit y luego lee el estado confirmado. En PostgreSQL no hace nada.
    """
    if db.get_bind().dialect.name != "sqlite":
        return
    db.execute(
        update(model)
        .where(*criteria)
        .values(tenant_id=model.tenant_id)
        .execution_options(synchronize_session=False)
    )


def get_db():
    """Genera una sesión de base de datos por request."""
    db = SessionLocal()
    try:
        yield db
    except Exception as e:
        logger.error(f"Database error: {e}")
        db.rollback()
        raise
    finally:
        db.close()
