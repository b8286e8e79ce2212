from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import select

from backend.app.db.session import SessionLocal
from backend.app.db.models.models_v1 import Product, StockBatch, User
from backend.app.db.models.core_types import Role
from backend.services.inventory import rebuild_total_quantity

DEMO_TENANT = "pharmacy-demo"
CUSTOMER_TENANT = "customer-demo"

DEMO_STOCK = [
    # (produit, prix, [(lot, qté, expiration)])
    ("Paracetamol 500mg", Decimal("2.50"), [("PCM-2401", 40, date(2026, 3, 31)), ("PCM-2407", 120, date(2027, 1, 31))]),
    ("Amoxicillin 250mg", Decimal("8.00"), [("AMX-2405", 30, date(2026, 11, 30))]),
    ("ORS Sachet", Decimal("1.20"), [("ORS-2402", 15, date(2026, 6, 30)), ("ORS-2410", 60, date(2027, 6, 30))]),
]


def run_seed():
    db = SessionLocal()
    try:
        # 1) Compte pharmacie (retailer) + un client
        for username, tenant_id, role in (
            ("demo-pharmacy", DEMO_TENANT, Role.retailer),
            ("demo-customer", CUSTOMER_TENANT, Role.customer),
        ):
            if not db.scalar(select(User).where(User.username == username)):
                db.add(User(username=username, tenant_id=tenant_id, role=role, active=True))
        db.commit()

        # 2) Catalogue + lots ; l'agrégat est reconstruit depuis les lots
        product_ids = []
        for name, price, batches in DEMO_STOCK:
            product = db.scalar(
                select(Product).where(Product.tenant_id == DEMO_TENANT, Product.name == name)
            )
            if product:
                continue

            product = Product(tenant_id=DEMO_TENANT, name=name, price=price, total_quantity=0)
            db.add(product)
            db.flush()
            for batch_number, qty, expiry in batches:
                db.add(
                    StockBatch(
                        tenant_id=DEMO_TENANT,
                        product_id=product.id,
                        batch_number=batch_number,
                        quantity=qty,
                        expiry_date=expiry,
                    )
                )
            product_ids.append(product.id)

        db.flush()
        rebuild_total_quantity(db, tenant_id=DEMO_TENANT, product_ids=product_ids)
        db.commit()

        print(f"SEED OK: tenant={DEMO_TENANT}, products={len(DEMO_STOCK)}")
    finally:
        db.close()


if __name__ == "__main__":
    run_seed()
