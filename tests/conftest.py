"""
Shared fixtures: in-memory SQLite, fake catalog, mocked event publisher
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["EVENT_BUS_URL"] = ""
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["STRIPE_API_KEY"] = "sk_test_dummy"

import pytest
from unittest.mock import Mock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

import storefront.data.models  # noqa: F401
from storefront.data.database import Base, get_db
from storefront.data.models.user import UserModel
from storefront.domain.errors import NotFound
from storefront.main import create_app
from storefront.services.cart_service import CartService
from storefront.services.event_publisher import EventPublisher, get_event_publisher
from storefront.services.order_service import OrderService
from storefront.services.product_client import ProductClient, get_product_client

WEBHOOK_SECRET = "whsec_test_secret"

CATALOG = {
    1: {"id": 1, "name": "Keyboard", "description": "Mechanical keyboard", "price": "20.00"},
    2: {"id": 2, "name": "Mouse", "description": "Wireless mouse", "price": "15.00"},
    3: {"id": 3, "name": "Cable", "description": "USB-C cable", "price": "5.50"},
}


@pytest.fixture
def products():
    """Mutable copy of the catalog, tests may change prices"""
    return {pid: dict(p) for pid, p in CATALOG.items()}


@pytest.fixture
def product_client(products):
    client = Mock(spec=ProductClient)

    def fetch(product_id):
        if product_id not in products:
            raise NotFound(f"Product not found with id: {product_id}")
        return dict(products[product_id])

    client.fetch_product.side_effect = fetch
    return client


@pytest.fixture
def publisher():
    return Mock(spec=EventPublisher)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=True, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def user(db):
    u = UserModel(id=1, name="Alice", email="alice@example.com")
    db.add(u)
    db.commit()
    return u


@pytest.fixture
def other_user(db):
    u = UserModel(id=2, name="Bob", email="bob@example.com")
    db.add(u)
    db.commit()
    return u


@pytest.fixture
def cart_service(db, product_client, publisher):
    return CartService(db, product_client, publisher)


@pytest.fixture
def order_service(db, product_client, publisher):
    return OrderService(db, product_client, publisher)


@pytest.fixture
def client(session_factory, product_client, publisher):
    app = create_app()

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_product_client] = lambda: product_client
    app.dependency_overrides[get_event_publisher] = lambda: publisher
    return TestClient(app)


def published_order_events(publisher):
    return [c.args[0] for c in publisher.publish_order_event.call_args_list]


def event_types(publisher):
    return [e.event_type for e in published_order_events(publisher)]
