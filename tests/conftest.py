import os
from decimal import Decimal
from typing import Callable, Generator
from unittest.mock import patch

# Override settings for tests before importing app modules
TEST_DATABASE_URL = "sqlite:///:memory:"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["JWT_SECRET"] = "test-secret-key-for-testing-only"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_mock"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_mock"
os.environ["STRIPE_CURRENCY"] = "usd"
os.environ["PLATFORM_FEE_PERCENTAGE"] = "3"
os.environ["ADMIN_EMAIL"] = "admin@example.com"
os.environ["CLIENT_URL"] = "http://localhost:5173"
os.environ["SERVER_URL"] = "http://localhost:8000"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from showcase.api.auth import create_access_token, get_password_hash
from showcase.config import settings
from showcase.main import app
from showcase.models import Product, User
from showcase.models.database import Base, get_db

# Create test database engine
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=test_engine)
    db_session = TestSessionLocal()
    try:
        yield db_session
    finally:
        db_session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def client(db: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def stripe_api():
    """Stand-in for the Stripe SDK as seen by the service layer; nothing reaches the network."""
    with patch("showcase.services.stripe_service.stripe") as mock_stripe:
        mock_stripe.checkout.Session.create.return_value.url = "https://checkout.stripe.com/c/pay/cs_test_123"
        mock_stripe.checkout.Session.create.return_value.id = "cs_test_123"
        mock_stripe.checkout.Session.retrieve.return_value = {
            "id": "cs_test_123",
            "payment_status": "paid",
            "payment_intent": "pi_test_123",
        }
        mock_stripe.Transfer.create.return_value.id = "tr_test_123"
        yield mock_stripe


@pytest.fixture
def make_user(db: Session) -> Callable[..., User]:
    counter = {"n": 0}

    def _make_user(
        email: str | None = None,
        payout_ready: bool = False,
        payout_automation_enabled: bool | None = None,
        payout_destination_account_id: str | None = None,
    ) -> User:
        counter["n"] += 1
        enabled = payout_ready if payout_automation_enabled is None else payout_automation_enabled
        destination = payout_destination_account_id
        if destination is None and payout_ready:
            destination = f"acct_test_{counter['n']}"
        user = User(
            email=email or f"user{counter['n']}@example.com",
            display_name=f"User {counter['n']}",
            hashed_password=get_password_hash("testpassword123"),
            payout_automation_enabled=enabled,
            payout_destination_account_id=destination,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_product(db: Session) -> Callable[..., Product]:
    def _make_product(seller: User | None, price: str = "100.00", quantity: int = 10, title: str = "Handmade mug") -> Product:
        product = Product(
            title=title,
            description=f"{title} for tests",
            price=Decimal(price),
            quantity=quantity,
            seller_id=seller.id if seller else None,
            image_url="https://cdn.example.com/mug.jpg",
        )
        db.add(product)
        db.commit()
        db.refresh(product)
        return product

    return _make_product


@pytest.fixture
def buyer(make_user) -> User:
    return make_user(email="buyer@example.com")


@pytest.fixture
def seller(make_user) -> User:
    return make_user(email="seller@example.com", payout_ready=True)


@pytest.fixture
def admin_user(make_user) -> User:
    return make_user(email="admin@example.com")


@pytest.fixture
def headers_for() -> Callable[[User], dict[str, str]]:
    def _headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user.id, settings)}"}

    return _headers


@pytest.fixture
def auth_headers(buyer, headers_for) -> dict[str, str]:
    return headers_for(buyer)


@pytest.fixture
def admin_headers(admin_user, headers_for) -> dict[str, str]:
    return headers_for(admin_user)


@pytest.fixture
def order_payload() -> Callable[..., dict]:
    return build_order_payload


def build_order_payload(lines: list[tuple[int, int]], **overrides) -> dict:
    payload = {
        "customerName": "Ana Gomez",
        "customerEmail": "ana@example.com",
        "customerPhone": "3000000000",
        "customerAddress": "Calle 1 # 2-3",
        "customerCity": "Bogota",
        "items": [{"productId": product_id, "quantity": quantity} for product_id, quantity in lines],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def place_order(client) -> Callable[..., dict]:
    """Create a pending order through the API and return the response body."""

    def _place_order(lines: list[tuple[int, int]], headers: dict | None = None, **overrides) -> dict:
        response = client.post("/api/orders/create", json=build_order_payload(lines, **overrides), headers=headers or {})
        assert response.status_code == 200, response.text
        return response.json()

    return _place_order
