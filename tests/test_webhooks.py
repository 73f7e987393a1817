import uuid

from sqlmodel import select

from app.models.cart import CartItem
from app.models.order import Order
from app.services import checkout_metadata
from tests.fakes import FAKE_SIGNATURE, checkout_event

API = "/api/v1"
WEBHOOK = f"{API}/webhooks/stripe"


def post_event(client, body: bytes, signature: str | None = FAKE_SIGNATURE):
    headers = {"Content-Type": "application/json"}
    if signature is not None:
        headers["Stripe-Signature"] = signature
    return client.post(WEBHOOK, content=body, headers=headers)


def all_orders(session):
    session.expire_all()
    return session.exec(select(Order)).all()


class TestStripeWebhook:
    def test_checkout_to_orders_end_to_end(self, session, client, login, gateway, shopper, make_product, make_address):
        cake = make_product(name="Cake A", price=12.0)
        tart = make_product(name="Tart B", price=3.0)
        address = make_address(shopper)
        login(shopper)
        client.post(f"{API}/cart", json={"product_id": str(cake.id), "quantity": 2})
        client.post(f"{API}/cart", json={"product_id": str(tart.id), "quantity": 1})

        opened = client.post(f"{API}/checkout", json={"address_id": str(address.id)}).json()
        # Nothing is created before the processor confirms payment
        assert all_orders(session) == []

        resp = post_event(
            client,
            checkout_event(
                opened["session_id"],
                metadata=gateway.calls[0]["metadata"],
            ),
        )

        assert resp.status_code == 200
        assert resp.json() == {"received": True}
        mine = client.get(f"{API}/orders/me").json()
        assert sorted((o["product_name"], o["quantity"]) for o in mine) == [("Cake A", 2), ("Tart B", 1)]
        assert all(o["payment_method"] == "fake" for o in mine)
        assert client.get(f"{API}/cart").json()["items"] == []

    def test_bad_signature_is_rejected(self, session, client, shopper, make_product, make_address):
        product = make_product()
        address = make_address(shopper)
        body = checkout_event(
            "cs_forged",
            metadata=checkout_metadata.encode(shopper.id, address.id, [product.id]),
            line_items=[1],
        )

        assert post_event(client, body, signature="forged").status_code == 400
        assert post_event(client, body, signature=None).status_code == 400
        assert all_orders(session) == []

    def test_other_events_are_acknowledged(self, client):
        body = checkout_event("cs_x", metadata=None, event_type="payment_intent.created")
        resp = post_event(client, body)
        assert resp.status_code == 200
        assert resp.json() == {"received": True}

    def test_failed_materialization_is_still_acknowledged(self, session, client, shopper, make_address):
        address = make_address(shopper)
        body = checkout_event(
            "cs_ghost",
            metadata=checkout_metadata.encode(shopper.id, address.id, [uuid.uuid4()]),
            line_items=[1],
        )

        resp = post_event(client, body)

        assert resp.status_code == 200
        assert all_orders(session) == []

    def test_redelivery_creates_no_duplicates(self, session, client, shopper, make_product, make_address):
        product = make_product()
        address = make_address(shopper)
        body = checkout_event(
            "cs_twice",
            metadata=checkout_metadata.encode(shopper.id, address.id, [product.id]),
            line_items=[3],
        )

        assert post_event(client, body).status_code == 200
        assert post_event(client, body).status_code == 200

        (order,) = all_orders(session)
        assert order.quantity == 3

    def test_async_payment_confirmation(self, session, client, shopper, make_product, make_address):
        product = make_product()
        address = make_address(shopper)
        metadata = checkout_metadata.encode(shopper.id, address.id, [product.id])

        post_event(client, checkout_event("cs_async", metadata, line_items=[1], payment_status="unpaid"))
        assert all_orders(session) == []

        post_event(
            client,
            checkout_event(
                "cs_async",
                metadata,
                line_items=[1],
                event_type="checkout.session.async_payment_succeeded",
            ),
        )
        assert len(all_orders(session)) == 1

    def test_line_item_lookup_outage(self, session, client, gateway, shopper, make_product, make_address):
        product = make_product()
        address = make_address(shopper)
        session.add(CartItem(user_id=shopper.id, product_id=product.id, quantity=1))
        session.commit()
        gateway.configure(should_succeed=False)

        body = checkout_event(
            "cs_outage",
            metadata=checkout_metadata.encode(shopper.id, address.id, [product.id]),
        )

        assert post_event(client, body).status_code == 503
        assert all_orders(session) == []
        session.expire_all()
        (row,) = session.exec(select(CartItem)).all()
        assert row.is_active is True
