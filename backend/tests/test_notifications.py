from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from backend.app.core.exceptions import NotFoundError
from backend.app.db.models.models_v1 import Notification, Order
from backend.services.notifications import (
    PHARMACY_TEMPLATES,
    list_notifications,
    mark_notification_read,
    notify_customer,
)
from backend.services.orders import accept_order, mark_preparing, reject_order

from conftest import CUSTOMER_TENANT, NOW, PHARMACY_TENANT


def test_customer_is_notified_on_accept_and_not_on_preparing(db_session, fefo_product, place, customer):
    """
    GIVEN une commande acceptée (20 min) puis passée en préparation
    THEN
    - une notification "Order Confirmed" pour le client, dans son tenant
    - rien de plus pour "preparing" (pas de template)
    """
    order = place([(fefo_product, 1)])
    accept_order(db_session, order.id, actor_id=None, estimated_minutes=20, now=NOW + timedelta(minutes=1))
    mark_preparing(db_session, order.id, actor_id=None, now=NOW + timedelta(minutes=2))

    notifs = list_notifications(db_session, user_id=customer.id, tenant_id=CUSTOMER_TENANT)

    assert [n.type for n in notifs] == ["accepted"]
    assert notifs[0].title == "Order Confirmed"
    assert notifs[0].message == "Test Pharmacy confirmed your order. Ready in 20 mins."
    assert notifs[0].order_id == order.id
    assert notifs[0].read is False


def test_rejection_message_carries_reason(db_session, fefo_product, place, customer):
    order = place([(fefo_product, 1)])
    reject_order(db_session, order.id, actor_id=None, reason="Prescription required", now=NOW)

    notif = db_session.execute(select(Notification).where(Notification.user_id == customer.id)).scalar_one()

    assert notif.title == "Order Rejected"
    assert notif.message.endswith("Reason: Prescription required")


def test_pharmacy_gets_new_order_notification(db_session, fefo_product, place, retailer):
    order = place([(fefo_product, 2)])

    notifs = list_notifications(db_session, user_id=retailer.id, tenant_id=PHARMACY_TENANT)

    assert len(notifs) == 1
    assert notifs[0].title == "New Order Received"
    assert notifs[0].message == f"Order #{order.id} from Asha - ₹20.00"


def test_no_retailer_means_no_pharmacy_notification(db_session, fefo_product, place):
    place([(fefo_product, 1)])

    assert db_session.execute(select(Notification)).scalars().all() == []


def test_order_without_customer_is_not_notified(db_session, fefo_product, place):
    order = place([(fefo_product, 1)], customer_id=None)

    assert notify_customer(db_session, order, "accepted", {"estimated_minutes": 10}) is None


def test_unknown_event_has_no_template(db_session, fefo_product, place):
    order = place([(fefo_product, 1)])

    assert notify_customer(db_session, order, "preparing") is None


def test_mark_read_only_for_recipient(db_session, fefo_product, place, customer, retailer):
    order = place([(fefo_product, 1)])
    reject_order(db_session, order.id, actor_id=None, reason="Closed", now=NOW)
    notif_id = db_session.execute(
        select(Notification.id).where(Notification.user_id == customer.id)
    ).scalar_one()

    with pytest.raises(NotFoundError):
        mark_notification_read(db_session, notification_id=notif_id, user_id=retailer.id)

    mark_notification_read(db_session, notification_id=notif_id, user_id=customer.id)

    assert db_session.get(Notification, notif_id).read is True


def test_list_is_newest_first_and_limited(db_session, fefo_product, place, customer):
    for minute in range(3):
        order = place([(fefo_product, 1)], now=NOW + timedelta(minutes=minute))
        reject_order(db_session, order.id, actor_id=None, reason=f"r{minute}", now=NOW + timedelta(minutes=minute))

    notifs = list_notifications(db_session, user_id=customer.id, tenant_id=CUSTOMER_TENANT, limit=2)

    assert [n.message.rsplit(" ", 1)[-1] for n in notifs] == ["r2", "r1"]


def test_pharmacy_templates_show_the_full_order_id():
    order = Order(id=1234567890123, total=Decimal("5.00"), customer_name="Ravi")

    _, placed = PHARMACY_TEMPLATES["placed"](order, {})
    _, cancelled = PHARMACY_TEMPLATES["cancelled"](order, {})

    assert placed == "Order #1234567890123 from Ravi - ₹5.00"
    assert cancelled == "Customer cancelled order #1234567890123"
