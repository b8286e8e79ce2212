import os
from datetime import date, datetime, timezone
from decimal import Decimal

# L'engine applicatif est créé à l'import : pas de Postgres pour la suite
os.environ.setdefault("DATABASE_URL", "sqlite:///./oms-tests-app.db")
os.environ.setdefault("SWEEPER_ENABLED", "false")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from backend.app.db.base import Base
from backend.app.db.models import models_v1  # noqa: F401  (enregistre les tables)
from backend.app.db.models.core_types import Role
from backend.app.db.models.models_v1 import Product, StockBatch, User
from backend.services.orders import place_order

NOW = datetime(2025, 1, 10, 9, 0, tzinfo=timezone.utc)
PHARMACY_TENANT = "pharmacy-test"
CUSTOMER_TENANT = "customer-test"


@pytest.fixture(scope="function")
def engine(tmp_path):
    """
    Base dédiée par test.

    TEST_DATABASE_URL permet de viser un Postgres jetable ; par défaut un
    fichier SQLite temporaire (plusieurs sessions peuvent s'y connecter,
    ce qu'exigent les tests de concurrence).
    """
    url = os.getenv("TEST_DATABASE_URL") or f"sqlite:///{tmp_path / 'oms.db'}"
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}

    eng = create_engine(url, connect_args=connect_args)
    Base.metadata.create_all(bind=eng)
    try:
        yield eng
    finally:
        Base.metadata.drop_all(bind=eng)
        eng.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# ---------- DONNÉES ----------
@pytest.fixture
def retailer(db_session) -> User:
    user = User(username="pharmacist", tenant_id=PHARMACY_TENANT, role=Role.retailer, active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def customer(db_session) -> User:
    user = User(username="customer", tenant_id=CUSTOMER_TENANT, role=Role.customer, active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def make_product(db_session):
    """
    make_product("Paracetamol", [("B1", 3, date(2025, 1, 1))], total=None)

    total=None : agrégat = somme des lots (cohérent). Sinon agrégat forcé.
    """

    def _make(name, batches, *, price=Decimal("10.00"), total=None, tenant_id=PHARMACY_TENANT):
        product = Product(
            tenant_id=tenant_id,
            name=name,
            price=price,
            total_quantity=sum(qty for _, qty, _ in batches) if total is None else total,
            active=True,
        )
        db_session.add(product)
        db_session.flush()
        for batch_number, qty, expiry in batches:
            db_session.add(
                StockBatch(
                    tenant_id=tenant_id,
                    product_id=product.id,
                    batch_number=batch_number,
                    quantity=qty,
                    expiry_date=expiry,
                )
            )
        db_session.commit()
        return product

    return _make


@pytest.fixture
def place(db_session, customer):
    """place([(product, qty), ...]) -> commande pending au nom du client de test."""

    def _place(items, *, now=NOW, tenant_id=PHARMACY_TENANT, **extra):
        lines = [
            {
                "product_id": product.id,
                "product_name": product.name,
                "quantity": qty,
                "unit_price": product.price,
            }
            for product, qty in items
        ]
        payload = {
            "tenant_id": tenant_id,
            "customer_id": customer.id,
            "customer_tenant_id": CUSTOMER_TENANT,
            "customer_name": "Asha",
            "store_name": "Test Pharmacy",
            "lines": lines,
            "total": sum((product.price * qty for product, qty in items), Decimal("0")),
            **extra,
        }
        return place_order(db_session, payload, now=now)

    return _place


@pytest.fixture
def fefo_product(make_product):
    # B1 expire avant B2 : consommé en premier
    return make_product(
        "Paracetamol 500mg",
        [("B1", 3, date(2025, 1, 1)), ("B2", 10, date(2025, 6, 1))],
    )
