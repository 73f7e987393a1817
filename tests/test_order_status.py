import pytest
from fastapi import HTTPException

from app.repositories.address_repo import AddressRepository
from app.repositories.order_repo import OrderRepository
from app.repositories.product_repo import ProductRepository
from app.schemas.order import OrderCreate
from app.services.address_service import AddressService
from app.services.order_service import (
    ORDER_TRANSITIONS,
    PAYMENT_TRANSITIONS,
    OrderService,
    check_transition,
)

API = "/api/v1"


@pytest.fixture
def order(session, shopper, make_product, make_address):
    service = OrderService(OrderRepository(), ProductRepository(), AddressService(AddressRepository()))
    return service.create_order(
        session,
        OrderCreate(
            user_id=shopper.id,
            address_id=make_address(shopper).id,
            product_id=make_product(price=20.0).id,
            quantity=2,
        ),
    )


class TestTransitionTable:
    @pytest.mark.parametrize(
        "current,new",
        [
            ("PENDING", "CONFIRMED"),
            ("PENDING", "CANCELLED"),
            ("CONFIRMED", "SHIPPED"),
            ("PROCESSING", "SHIPPED"),
            ("SHIPPED", "DELIVERED"),
            ("DELIVERED", "DELIVERED"),
        ],
    )
    def test_allowed(self, current, new):
        check_transition("order", ORDER_TRANSITIONS, current, new)

    @pytest.mark.parametrize(
        "current,new",
        [
            ("PENDING", "DELIVERED"),
            ("SHIPPED", "CANCELLED"),
            ("DELIVERED", "PENDING"),
            ("CANCELLED", "CONFIRMED"),
        ],
    )
    def test_rejected(self, current, new):
        with pytest.raises(HTTPException) as exc_info:
            check_transition("order", ORDER_TRANSITIONS, current, new)
        assert exc_info.value.status_code == 400

    def test_refunded_is_terminal(self):
        assert PAYMENT_TRANSITIONS["REFUNDED"] == set()
        with pytest.raises(HTTPException):
            check_transition("payment", PAYMENT_TRANSITIONS, "REFUNDED", "PAID")


class TestAdminUpdate:
    def test_walks_through_fulfilment(self, client, login, admin, order):
        login(admin)
        for step in ("CONFIRMED", "PROCESSING", "SHIPPED", "DELIVERED"):
            resp = client.patch(
                f"{API}/orders/{order.id}",
                json={"order_status": step, "delivery_status": step},
            )
            assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["order_status"] == "DELIVERED"
        assert body["delivery_status"] == "DELIVERED"

    def test_skipping_ahead_is_rejected(self, client, login, admin, order):
        login(admin)
        resp = client.patch(f"{API}/orders/{order.id}", json={"order_status": "DELIVERED"})
        assert resp.status_code == 400
        assert client.get(f"{API}/orders/{order.id}").json()["order_status"] == "PENDING"

    def test_unknown_status_is_schema_error(self, client, login, admin, order):
        login(admin)
        resp = client.patch(f"{API}/orders/{order.id}", json={"order_status": "LOST"})
        assert resp.status_code == 422

    def test_cancelling_via_update_cancels_delivery(self, client, login, admin, order):
        login(admin)
        resp = client.patch(f"{API}/orders/{order.id}", json={"order_status": "CANCELLED"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["delivery_status"] == "CANCELLED"
        assert body["cancelled_at"] is not None

    def test_payment_refund_flow(self, client, login, admin, order):
        login(admin)
        assert client.patch(
            f"{API}/orders/{order.id}", json={"payment_status": "PAID"}
        ).status_code == 200
        resp = client.patch(
            f"{API}/orders/{order.id}",
            json={"payment_status": "REFUNDED", "refund_amount": 40.0},
        )
        assert resp.status_code == 200
        assert resp.json()["refund_amount"] == 40.0
        assert client.patch(
            f"{API}/orders/{order.id}", json={"payment_status": "PAID"}
        ).status_code == 400

    def test_tracking_number_only(self, client, login, admin, order):
        login(admin)
        resp = client.patch(f"{API}/orders/{order.id}", json={"tracking_number": "1Z999"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["tracking_number"] == "1Z999"
        assert body["order_status"] == "PENDING"


class TestCancel:
    def test_admin_cancel(self, client, login, admin, order):
        login(admin)
        resp = client.post(
            f"{API}/orders/{order.id}/cancel",
            json={"reason": "changed mind"},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["order_status"] == "CANCELLED"
        assert body["delivery_status"] == "CANCELLED"
        assert body["cancellation_reason"] == "changed mind"
        assert body["cancelled_at"] is not None
        assert body["refund_amount"] == 0.0

    def test_cancel_twice_is_rejected(self, client, login, admin, order):
        login(admin)
        assert client.post(f"{API}/orders/{order.id}/cancel", json={}).status_code == 200
        assert client.post(f"{API}/orders/{order.id}/cancel", json={}).status_code == 400

    def test_shipped_order_cannot_be_cancelled(self, client, login, admin, order):
        login(admin)
        client.patch(f"{API}/orders/{order.id}", json={"order_status": "CONFIRMED"})
        client.patch(f"{API}/orders/{order.id}", json={"order_status": "SHIPPED"})
        resp = client.post(f"{API}/orders/{order.id}/cancel", json={"reason": "late"})
        assert resp.status_code == 400

    def test_refund_above_grand_total(self, client, login, admin, order):
        login(admin)
        resp = client.post(
            f"{API}/orders/{order.id}/cancel",
            json={"reason": "damaged", "refund_amount": 40.01},
        )
        assert resp.status_code == 400

    def test_shopper_cancels_pending_order(self, client, login, shopper, order):
        login(shopper)
        resp = client.post(f"{API}/orders/me/{order.id}/cancel", json={"reason": "changed mind"})
        assert resp.status_code == 200
        assert resp.json()["order_status"] == "CANCELLED"

    def test_shopper_cannot_cancel_processing_order(self, client, login, admin, shopper, order):
        login(admin)
        client.patch(f"{API}/orders/{order.id}", json={"order_status": "PROCESSING"})

        login(shopper)
        resp = client.post(f"{API}/orders/me/{order.id}/cancel", json={})
        assert resp.status_code == 400

    def test_shopper_cannot_cancel_foreign_order(self, client, login, make_user, order):
        login(make_user())
        resp = client.post(f"{API}/orders/me/{order.id}/cancel", json={})
        assert resp.status_code == 404
