import os

# przed importem cart_service: bez postgresa i brokera
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")
os.environ.setdefault("CART_CACHE_ENABLED", "false")

from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from cart_service.domain.cart import Cart
from cart_service.services.cart_service import CartService
from cart_service.services.checkout_service import CheckoutService
from cart_service.services.item_service import ItemService
from cart_service.services.merge_service import MergeService
from tests.fakes import FakeOrderClient, FakeProductClient, InMemoryCartStore


@pytest.fixture
def now():
    return datetime.now(timezone.utc)


@pytest.fixture
def store():
    return InMemoryCartStore()


@pytest.fixture
def products():
    client = FakeProductClient()
    client.add("croissant", "Butter Croissant", "3.50", sku="BK-001", category="Pastry", preparation_time_minutes=5)
    client.add("baguette", "Baguette", "4.25", sku="BK-002", category="Bread")
    client.add("cake", "Chocolate Cake", "25.00", sku="BK-003", category="Cakes", preparation_time_minutes=30)
    return client


@pytest.fixture
def orders():
    return FakeOrderClient()


@pytest.fixture
def notifications():
    return Mock()


@pytest.fixture
def item_service(store, products):
    return ItemService(store, products, max_quantity_per_item=50, max_items_per_cart=100)


@pytest.fixture
def cart_service(store):
    return CartService(store)


@pytest.fixture
def merge_service(store):
    return MergeService(store, max_quantity_per_item=50)


@pytest.fixture
def checkout_service(store, item_service, orders, notifications):
    return CheckoutService(store, item_service, orders, notifications)


@pytest.fixture
def user_cart(store):
    return store.put(Cart.create(user_id="user-1"))


@pytest.fixture
def guest_cart(store):
    return store.put(Cart.create(session_id="session-1"))
