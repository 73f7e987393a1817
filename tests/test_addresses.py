import random

import pytest
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from app.models.address import Address, UserAddress
from app.repositories.address_repo import AddressRepository
from app.repositories.order_repo import OrderRepository
from app.repositories.product_repo import ProductRepository
from app.schemas.address import AddressUpdate
from app.schemas.order import OrderCreate
from app.services.address_service import AddressService
from app.services.order_service import OrderService

API = "/api/v1"

ADDRESS = {
    "address_line1": "742 Evergreen Terrace",
    "city": "Springfield",
    "state": "OR",
    "postal_code": "97403",
    "first_name": "Marge",
    "last_name": "Simpson",
    "phone": "555-0113",
}


def defaults_of(session, user_id):
    session.expire_all()
    stmt = select(UserAddress).where(
        UserAddress.user_id == user_id,
        UserAddress.is_default == True,  # noqa: E712
    )
    return session.exec(stmt).all()


class TestAddressRoutes:
    def test_first_address_becomes_default(self, client, login, shopper):
        login(shopper)
        resp = client.post(f"{API}/addresses", json=ADDRESS)
        assert resp.status_code == 201
        assert resp.json()["is_default"] is True

        second = client.post(
            f"{API}/addresses", json={**ADDRESS, "address_line1": "1 Other Rd"}
        ).json()
        assert second["is_default"] is False

    def test_duplicate_link_conflicts(self, client, login, shopper):
        login(shopper)
        assert client.post(f"{API}/addresses", json=ADDRESS).status_code == 201
        assert client.post(f"{API}/addresses", json=ADDRESS).status_code == 409

    def test_identical_address_is_shared(self, session, client, login, make_user):
        alice, bob = make_user(), make_user()

        login(alice)
        a = client.post(f"{API}/addresses", json=ADDRESS).json()
        login(bob)
        b = client.post(f"{API}/addresses", json={**ADDRESS, "first_name": "Homer"}).json()

        assert a["id"] == b["id"]
        assert b["first_name"] == "Homer"
        assert len(session.exec(select(Address)).all()) == 1

    def test_editing_shared_address_leaves_other_shopper_alone(self, session, client, login, make_user):
        alice, bob = make_user(), make_user()
        login(alice)
        shared = client.post(f"{API}/addresses", json=ADDRESS).json()
        login(bob)
        client.post(f"{API}/addresses", json=ADDRESS)

        login(alice)
        resp = client.patch(f"{API}/addresses/{shared['id']}", json={"address_line1": "99 Oak Ave"})

        assert resp.status_code == 200
        moved = resp.json()
        assert moved["id"] != shared["id"]
        assert moved["address_line1"] == "99 Oak Ave"
        assert moved["city"] == ADDRESS["city"]
        assert moved["is_default"] is True
        assert [a["id"] for a in client.get(f"{API}/addresses").json()] == [moved["id"]]

        login(bob)
        kept = client.get(f"{API}/addresses/{shared['id']}").json()
        assert kept["address_line1"] == ADDRESS["address_line1"]
        session.expire_all()
        assert len(session.exec(select(Address)).all()) == 2

    def test_edit_reuses_identical_address(self, session, client, login, make_user):
        alice, bob = make_user(), make_user()
        login(bob)
        target = client.post(f"{API}/addresses", json={**ADDRESS, "address_line1": "99 Oak Ave"}).json()
        login(alice)
        mine = client.post(f"{API}/addresses", json=ADDRESS).json()

        resp = client.patch(f"{API}/addresses/{mine['id']}", json={"address_line1": "99 Oak Ave"})

        assert resp.json()["id"] == target["id"]
        session.expire_all()
        # Alice's old row had no other reference left
        assert [a.address_line1 for a in session.exec(select(Address)).all()] == ["99 Oak Ave"]

    def test_edit_into_own_existing_address_conflicts(self, client, login, shopper):
        login(shopper)
        client.post(f"{API}/addresses", json={**ADDRESS, "address_line1": "99 Oak Ave"})
        mine = client.post(f"{API}/addresses", json=ADDRESS).json()

        resp = client.patch(f"{API}/addresses/{mine['id']}", json={"address_line1": "99 Oak Ave"})

        assert resp.status_code == 409

    def test_set_default_moves_flag(self, session, client, login, shopper):
        login(shopper)
        first = client.post(f"{API}/addresses", json=ADDRESS).json()
        second = client.post(
            f"{API}/addresses", json={**ADDRESS, "address_line1": "1 Other Rd"}
        ).json()

        resp = client.post(f"{API}/addresses/{second['id']}/default")
        assert resp.status_code == 200
        assert resp.json()["is_default"] is True

        (default,) = defaults_of(session, shopper.id)
        assert str(default.address_id) == second["id"]
        listed = client.get(f"{API}/addresses").json()
        assert listed[0]["id"] == second["id"]
        assert {a["id"] for a in listed} == {first["id"], second["id"]}

    def test_filters(self, client, login, shopper):
        login(shopper)
        client.post(f"{API}/addresses", json=ADDRESS)
        client.post(
            f"{API}/addresses",
            json={**ADDRESS, "address_line1": "5 Elm St", "city": "Shelbyville"},
        )

        listed = client.get(f"{API}/addresses", params={"city": "Shelbyville"}).json()
        assert [a["address_line1"] for a in listed] == ["5 Elm St"]

    def test_update(self, client, login, shopper):
        login(shopper)
        created = client.post(f"{API}/addresses", json=ADDRESS).json()

        resp = client.patch(
            f"{API}/addresses/{created['id']}",
            json={"phone": "555-9999", "address_line2": "Apt 2"},
        )

        assert resp.status_code == 200
        body = resp.json()
        # Sole reference: edited in place
        assert body["id"] == created["id"]
        assert body["phone"] == "555-9999"
        assert body["address_line2"] == "Apt 2"
        assert body["city"] == ADDRESS["city"]

    def test_required_field_cannot_be_nulled(self, client, login, shopper):
        login(shopper)
        created = client.post(f"{API}/addresses", json=ADDRESS).json()
        resp = client.patch(f"{API}/addresses/{created['id']}", json={"city": None})
        assert resp.status_code == 400

    def test_foreign_address_is_not_found(self, client, login, make_user):
        owner, stranger = make_user(), make_user()
        login(owner)
        created = client.post(f"{API}/addresses", json=ADDRESS).json()

        login(stranger)
        assert client.get(f"{API}/addresses/{created['id']}").status_code == 404
        assert client.post(f"{API}/addresses/{created['id']}/default").status_code == 404

    def test_delete_keeps_shared_row(self, session, client, login, make_user):
        alice, bob = make_user(), make_user()
        login(alice)
        created = client.post(f"{API}/addresses", json=ADDRESS).json()
        login(bob)
        client.post(f"{API}/addresses", json=ADDRESS)

        assert client.delete(f"{API}/addresses/{created['id']}").status_code == 204
        assert client.get(f"{API}/addresses").json() == []
        session.expire_all()
        assert len(session.exec(select(Address)).all()) == 1

    def test_delete_removes_unreferenced_row(self, session, client, login, shopper):
        login(shopper)
        created = client.post(f"{API}/addresses", json=ADDRESS).json()
        client.delete(f"{API}/addresses/{created['id']}")
        session.expire_all()
        assert session.exec(select(Address)).all() == []


class TestDefaultConvergence:
    @pytest.mark.parametrize("seed", range(10))
    def test_exactly_one_default_after_any_sequence(self, seed, session, shopper, make_address):
        rng = random.Random(seed)
        service = AddressService(AddressRepository())
        ids = [make_address(shopper).id for _ in range(4)]

        for _ in range(12):
            target = rng.choice(ids)
            if rng.random() < 0.5:
                service.set_default(session, shopper.id, target)
            else:
                service.update_address(session, shopper.id, target, AddressUpdate(is_default=True))

            defaults = defaults_of(session, shopper.id)
            assert len(defaults) == 1
            assert defaults[0].address_id == target

    def test_set_default_is_idempotent(self, session, shopper, make_address):
        service = AddressService(AddressRepository())
        make_address(shopper)
        second = make_address(shopper)

        service.set_default(session, shopper.id, second.id)
        service.set_default(session, shopper.id, second.id)

        (default,) = defaults_of(session, shopper.id)
        assert default.address_id == second.id

    def test_schema_rejects_second_default(self, session, shopper, make_address):
        make_address(shopper)
        make_address(shopper)
        links = session.exec(select(UserAddress).where(UserAddress.user_id == shopper.id)).all()
        for link in links:
            link.is_default = True
            session.add(link)

        with pytest.raises(IntegrityError):
            session.commit()
        session.rollback()

        assert len(defaults_of(session, shopper.id)) == 1


class TestAddressEdits:
    def test_ordered_address_is_not_rewritten(self, session, shopper, make_product, make_address):
        address_repo = AddressRepository()
        service = AddressService(address_repo)
        orders = OrderService(OrderRepository(), ProductRepository(), service)
        address = make_address(shopper)
        order = orders.create_order(
            session,
            OrderCreate(user_id=shopper.id, address_id=address.id, product_id=make_product().id, quantity=1),
        )

        edited = service.update_address(
            session, shopper.id, address.id, AddressUpdate(address_line1="99 Oak Ave")
        )

        assert edited.id != address.id
        session.expire_all()
        assert address_repo.get_by_id(session, order.address_id).address_line1 == address.address_line1
        assert address_repo.get_link(session, shopper.id, address.id) is None
