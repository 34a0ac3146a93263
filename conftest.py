"""
Fixtures compartidos de los tests del ledger.

Cada test usa su propia base SQLite en archivo (tmp_path), así los tests de
concurrencia con hilos usan conexiones reales e independientes.
"""
import os

os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DEBUG"] = "false"

import pytest
from decimal import Decimal
from uuid import uuid4
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from app.main import app
from app.database.database import Base, build_engine, get_db
from app.modules.company.models import Company
from app.modules.customers.models import Customer
from app.modules.items.models import Item, ItemType


# ===== DATABASE =====

@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    """TestClient con get_db apuntando a la base del test"""
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


# ===== DATOS =====

def _create_company(db_session, **overrides):
    company = Company(
        name=overrides.pop("name", f"Empresa {uuid4().hex[:8]}"),
        invoice_prefix=overrides.pop("invoice_prefix", "INV"),
        receipt_prefix=overrides.pop("receipt_prefix", "REC"),
        **overrides
    )
    db_session.add(company)
    db_session.commit()
    db_session.refresh(company)
    return company


@pytest.fixture
def company(db_session):
    return _create_company(db_session)


@pytest.fixture
def other_company(db_session):
    return _create_company(db_session, invoice_prefix="FAC", receipt_prefix="POS")


@pytest.fixture
def tenant_id(company):
    return company.id


@pytest.fixture
def headers(tenant_id):
    return {"X-Company-ID": str(tenant_id)}


@pytest.fixture
def make_customer(db_session, tenant_id):
    def _make(name="Cliente de Prueba", is_active=True, tenant=None):
        customer = Customer(tenant_id=tenant or tenant_id, name=name, is_active=is_active)
        db_session.add(customer)
        db_session.commit()
        db_session.refresh(customer)
        return customer
    return _make


@pytest.fixture
def customer(make_customer):
    return make_customer()


@pytest.fixture
def make_item(db_session, tenant_id):
    def _make(name="Producto", price="50.00", stock="100", item_type=ItemType.GOODS,
              track_inventory=True, is_active=True, tenant=None):
        item = Item(
            tenant_id=tenant or tenant_id,
            type=item_type,
            name=name,
            selling_price=Decimal(price),
            stock_quantity=Decimal(stock),
            track_inventory=track_inventory,
            is_active=is_active
        )
        db_session.add(item)
        db_session.commit()
        db_session.refresh(item)
        return item
    return _make
