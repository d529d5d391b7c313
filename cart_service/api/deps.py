# cart_service/api/deps.py
"""Skladanie serwisow dla routerow (FastAPI Depends); w testach podmieniane przez dependency_overrides."""
from functools import lru_cache
from typing import Callable

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from cart_service.data.database import get_db
from cart_service.repos.cart_repo import CartRepo
from cart_service.services.cart_cache import CartCache
from cart_service.services.cart_service import CartService
from cart_service.services.checkout_service import CheckoutService
from cart_service.services.item_service import ItemService
from cart_service.services.merge_service import MergeService
from cart_service.services.notification_service import NotificationService
from cart_service.services.order_client import OrderClient
from cart_service.services.product_client import ProductClient
from cart_service.tasks.validation import schedule_cart_validation
from cart_service.utils.settings import ADMIN_ROLE, CART_CACHE_ENABLED, CHECK_PRICE_ON_VIEW


def get_store(db: Session = Depends(get_db)) -> CartRepo:
    return CartRepo(db)


def get_product_client() -> ProductClient:
    return ProductClient()


def get_order_client() -> OrderClient:
    return OrderClient()


def get_notification_service() -> NotificationService:
    return NotificationService()


@lru_cache
def _shared_cache() -> CartCache:
    return CartCache()


def get_cart_cache() -> CartCache | None:
    return _shared_cache() if CART_CACHE_ENABLED else None


def get_validation_scheduler() -> Callable[[str], None] | None:
    return schedule_cart_validation if CHECK_PRICE_ON_VIEW else None


def get_cart_service(store: CartRepo = Depends(get_store)) -> CartService:
    return CartService(store)


def get_item_service(
    store: CartRepo = Depends(get_store),
    product_client: ProductClient = Depends(get_product_client),
) -> ItemService:
    return ItemService(store, product_client)


def get_merge_service(store: CartRepo = Depends(get_store)) -> MergeService:
    return MergeService(store)


def get_checkout_service(
    store: CartRepo = Depends(get_store),
    item_service: ItemService = Depends(get_item_service),
    order_client: OrderClient = Depends(get_order_client),
    notification_service: NotificationService = Depends(get_notification_service),
) -> CheckoutService:
    return CheckoutService(store, item_service, order_client, notification_service)


def require_admin(x_user_role: str | None = Header(None)) -> str:
    # rola ustawiana przez gateway po uwierzytelnieniu
    if x_user_role is None or x_user_role.upper() != ADMIN_ROLE.upper():
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required")
    return x_user_role
