import pytest
from fastapi.testclient import TestClient

from backend.app.api.deps import get_db
from backend.app.main import app

from conftest import CUSTOMER_TENANT, PHARMACY_TENANT


@pytest.fixture
def client(session_factory):
    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    # pas de `with` : le lifespan (sweeper) ne démarre pas
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def pharmacy_headers(retailer):
    return {"X-Actor-Id": str(retailer.id), "X-Tenant-Id": PHARMACY_TENANT}


@pytest.fixture
def customer_headers(customer):
    return {"X-Actor-Id": str(customer.id), "X-Tenant-Id": CUSTOMER_TENANT}


def _place(client, headers, product_id, quantity=2):
    res = client.post(
        "/v1/orders",
        headers=headers,
        json={
            "tenant_id": PHARMACY_TENANT,
            "customer_name": "Asha",
            "lines": [
                {"product_id": product_id, "product_name": "Paracetamol 500mg", "quantity": quantity, "unit_price": "10.00"}
            ],
            "total": str(10 * quantity),
        },
    )
    assert res.status_code == 201, res.text
    return res.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_missing_actor_headers_is_401(client):
    assert client.get("/v1/pharmacy/orders").status_code == 401


def test_pickup_flow_over_http(client, fefo_product, pharmacy_headers, customer_headers, customer):
    """
    GIVEN un client qui commande 2 unités
    WHEN la pharmacie accepte, prépare, marque prête puis encaisse en cash

    THEN
    - chaque étape répond 200 avec le nouveau statut
    - le détail contient les 5 événements
    - les stats comptent 1 commande complétée
    """
    order = _place(client, customer_headers, fefo_product.id)
    assert order["status"] == "pending"
    assert order["customer_id"] == customer.id
    assert order["customer_tenant_id"] == CUSTOMER_TENANT

    oid = order["id"]
    res = client.post(f"/v1/pharmacy/orders/{oid}/accept", headers=pharmacy_headers, json={"estimated_minutes": 15})
    assert res.status_code == 200, res.text
    assert res.json()["status"] == "confirmed"
    assert res.json()["estimated_ready_minutes"] == 15

    assert client.post(f"/v1/pharmacy/orders/{oid}/preparing", headers=pharmacy_headers).json()["status"] == "preparing"
    assert client.post(f"/v1/pharmacy/orders/{oid}/ready", headers=pharmacy_headers).json()["status"] == "ready"

    res = client.post(f"/v1/pharmacy/orders/{oid}/complete", headers=pharmacy_headers, json={"payment_method": "cash"})
    assert res.status_code == 200
    assert res.json()["payment_status"] == "paid"

    detail = client.get(f"/v1/pharmacy/orders/{oid}", headers=pharmacy_headers).json()
    assert [e["event_type"] for e in detail["events"]] == ["placed", "accepted", "preparing", "ready", "completed"]
    assert detail["events"][1]["metadata"] == {"estimated_minutes": 15}

    stats = client.get("/v1/pharmacy/dashboard/stats", headers=pharmacy_headers).json()
    assert stats["total_orders"] == 1
    assert stats["counts"]["completed"] == 1

    stock = client.get("/v1/stock", headers=pharmacy_headers).json()
    assert stock[0]["total_quantity"] == 11


def test_domain_errors_map_to_http_status(client, fefo_product, pharmacy_headers, customer_headers):
    oid = _place(client, customer_headers, fefo_product.id)["id"]

    # transition invalide
    res = client.post(f"/v1/pharmacy/orders/{oid}/ready", headers=pharmacy_headers)
    assert res.status_code == 409
    assert res.json()["code"] == "INVALID_STATE_TRANSITION"

    # raison de rejet vide
    res = client.post(f"/v1/pharmacy/orders/{oid}/reject", headers=pharmacy_headers, json={"reason": ""})
    assert res.status_code == 400
    assert res.json()["code"] == "VALIDATION_ERROR"

    # commande d'une autre pharmacie
    other = {"X-Actor-Id": pharmacy_headers["X-Actor-Id"], "X-Tenant-Id": "other-pharmacy"}
    assert client.get(f"/v1/pharmacy/orders/{oid}", headers=other).status_code == 404
    assert client.post(f"/v1/pharmacy/orders/{oid}/accept", headers=other).status_code == 403

    assert client.get("/v1/pharmacy/orders/999", headers=pharmacy_headers).status_code == 404
    assert client.get("/v1/pharmacy/orders?status=lost", headers=pharmacy_headers).status_code == 400


def test_insufficient_inventory_is_409(client, fefo_product, pharmacy_headers, customer_headers):
    oid = _place(client, customer_headers, fefo_product.id, quantity=20)["id"]

    res = client.post(f"/v1/pharmacy/orders/{oid}/accept", headers=pharmacy_headers)

    assert res.status_code == 409
    assert res.json()["unavailable"] == ["Paracetamol 500mg"]


def test_customer_cancel_and_notifications(client, fefo_product, pharmacy_headers, customer_headers):
    oid = _place(client, customer_headers, fefo_product.id)["id"]

    assert client.post(f"/v1/orders/{oid}/cancel", headers=pharmacy_headers).status_code == 403
    res = client.post(f"/v1/orders/{oid}/cancel", headers=customer_headers)
    assert res.status_code == 200
    assert res.json()["status"] == "cancelled"

    notifs = client.get("/v1/notifications", headers=pharmacy_headers).json()
    assert [n["title"] for n in notifs] == ["Order Cancelled", "New Order Received"]

    assert client.post(f"/v1/notifications/{notifs[0]['id']}/read", headers=customer_headers).status_code == 404
    assert client.post(f"/v1/notifications/{notifs[0]['id']}/read", headers=pharmacy_headers).status_code == 204
    assert client.get("/v1/notifications", headers=pharmacy_headers).json()[0]["read"] is True
