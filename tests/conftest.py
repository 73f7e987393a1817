import os
import uuid

# Settings are read at import time by app.database / app.main
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_dummy")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from app.core.auth import require_auth
from app.core.stripe_client import get_payment_gateway
from app.database import get_session
from app.main import app
from app.models.product import Product
from app.models.user import User
from app.repositories.address_repo import AddressRepository
from app.schemas.address import AddressCreate
from app.services.address_service import AddressService
from tests.fakes import FakeGateway


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(session, gateway):
    def get_session_override():
        yield session

    app.dependency_overrides[get_session] = get_session_override
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def login():
    """
    Act as `user` for subsequent requests. Role checks of
    require_user / require_admin still apply.
    """

    def _login(user: User) -> None:
        app.dependency_overrides[require_auth] = lambda: user

    return _login


@pytest.fixture
def make_user(session):
    def _make_user(role: str = "user", email: str | None = None) -> User:
        user_id = uuid.uuid4()
        user = User(
            id=user_id,
            email=email or f"{user_id.hex[:8]}@example.com",
            name=user_id.hex[:8],
            role=role,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def shopper(make_user):
    return make_user("user")


@pytest.fixture
def admin(make_user):
    return make_user("admin")


@pytest.fixture
def make_product(session):
    def _make_product(
        name: str = "Strawberry Cake",
        price: float = 10.0,
        stock_on_hand: int = 100,
        is_active: bool = True,
    ) -> Product:
        product = Product(
            name=name,
            price=price,
            stock_on_hand=stock_on_hand,
            is_active=is_active,
        )
        session.add(product)
        session.commit()
        session.refresh(product)
        return product

    return _make_product


@pytest.fixture
def make_address(session):
    service = AddressService(AddressRepository())

    def _make_address(user: User, **overrides):
        data = {
            "address_line1": f"{uuid.uuid4().hex[:6]} Main St",
            "city": "Springfield",
            "state": "IL",
            "postal_code": "62701",
            "first_name": "Ada",
            "last_name": "Lovelace",
            "phone": "555-0100",
        }
        data.update(overrides)
        return service.create_address(session, user.id, AddressCreate(**data))

    return _make_address
