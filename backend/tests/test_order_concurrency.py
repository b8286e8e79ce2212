from datetime import timedelta

import pytest
from sqlalchemy import select

from backend.app.core.exceptions import InsufficientInventory, InvalidStateTransition
from backend.app.db.models.core_types import OrderStatus
from backend.app.db.models.models_v1 import Order, OrderEvent, Product
from backend.services.orders import accept_order, cancel_order, expire_order

from conftest import NOW


def test_double_accept_from_stale_session_deducts_once(db_session, session_factory, fefo_product, place):
    """
    GIVEN
    - deux sessions (deux pharmaciens) voient la même commande pending
    - la session B accepte et commit

    THEN
    - l'accept de la session A (vue périmée) échoue en InvalidStateTransition
    - le stock n'est déduit qu'une fois, un seul événement "accepted"
    """
    order_id = place([(fefo_product, 5)]).id

    session_a = session_factory()
    session_b = session_factory()
    try:
        # A charge la commande (pending) et la garde en identity map
        assert session_a.get(Order, order_id).status == OrderStatus.pending

        accept_order(session_b, order_id, actor_id=None, now=NOW + timedelta(minutes=1))

        with pytest.raises(InvalidStateTransition) as excinfo:
            accept_order(session_a, order_id, actor_id=None, now=NOW + timedelta(minutes=1))
        assert excinfo.value.current == "confirmed"
    finally:
        session_a.close()
        session_b.close()

    db_session.expire_all()
    assert db_session.get(Product, fefo_product.id).total_quantity == 8
    accepted = db_session.execute(
        select(OrderEvent).where(OrderEvent.order_id == order_id).where(OrderEvent.event_type == "accepted")
    ).scalars().all()
    assert len(accepted) == 1


def test_cancel_loses_against_concurrent_accept(db_session, session_factory, fefo_product, place, customer):
    """
    GIVEN le client voit sa commande pending pendant que la pharmacie l'accepte
    THEN l'annulation échoue, la commande reste confirmed
    """
    order_id = place([(fefo_product, 2)]).id
    customer_id = customer.id

    client_session = session_factory()
    try:
        client_session.get(Order, order_id)
        accept_order(db_session, order_id, actor_id=None, now=NOW + timedelta(minutes=1))

        with pytest.raises(InvalidStateTransition):
            cancel_order(client_session, order_id, customer_id=customer_id, now=NOW + timedelta(minutes=2))
    finally:
        client_session.close()

    db_session.expire_all()
    assert db_session.get(Order, order_id).status == OrderStatus.confirmed


def test_expire_after_concurrent_accept_is_a_noop(db_session, session_factory, fefo_product, place):
    """
    GIVEN le sweeper a lu la commande pending, la pharmacie accepte juste avant l'échéance
    THEN expire_order ne touche pas la commande (CAS perdu, pas d'événement)
    """
    order_id = place([(fefo_product, 2)]).id

    sweeper_session = session_factory()
    try:
        sweeper_session.get(Order, order_id)
        accept_order(db_session, order_id, actor_id=None, now=NOW + timedelta(minutes=29))

        expire_order(sweeper_session, order_id, now=NOW + timedelta(minutes=31))
    finally:
        sweeper_session.close()

    db_session.expire_all()
    assert db_session.get(Order, order_id).status == OrderStatus.confirmed
    events = db_session.execute(
        select(OrderEvent.event_type).where(OrderEvent.order_id == order_id).order_by(OrderEvent.id)
    ).scalars().all()
    assert events == ["placed", "accepted"]


def test_two_orders_on_same_product_cannot_both_pass_a_stale_stock_check(
    db_session, session_factory, fefo_product, place
):
    """
    GIVEN
    - agrégat = 13, deux commandes pending de 10 unités chacune
    - la session A a lu le produit (agrégat 13) avant que B n'accepte la commande 2

    THEN
    - l'accept de A relit l'agrégat verrouillé (3) : InsufficientInventory
    - une seule déduction, agrégat final = 3, commande 1 toujours pending
    """
    first_id = place([(fefo_product, 10)]).id
    second_id = place([(fefo_product, 10)]).id
    product_id = fefo_product.id

    session_a = session_factory()
    session_b = session_factory()
    try:
        assert session_a.get(Product, product_id).total_quantity == 13
        session_a.get(Order, first_id)

        accept_order(session_b, second_id, actor_id=None, now=NOW + timedelta(minutes=1))

        with pytest.raises(InsufficientInventory) as excinfo:
            accept_order(session_a, first_id, actor_id=None, now=NOW + timedelta(minutes=2))
        assert excinfo.value.unavailable == ["Paracetamol 500mg"]
    finally:
        session_a.close()
        session_b.close()

    db_session.expire_all()
    assert db_session.get(Product, product_id).total_quantity == 3
    assert db_session.get(Order, first_id).status == OrderStatus.pending
    assert db_session.get(Order, second_id).status == OrderStatus.confirmed
