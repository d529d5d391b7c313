# cart_service/services/checkout_service.py
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from cart_service.domain.cart import Cart, CartStatus, utcnow
from cart_service.domain.errors import (
    CartNotModifiable,
    CartServiceError,
    ConcurrencyConflict,
    EmptyCart,
    ItemsUnavailable,
)
from cart_service.domain.ports import CartStore, OrderGateway
from cart_service.services.item_service import ItemService
from cart_service.services.notification_service import NotificationService
from cart_service.utils.retry import conflict_retry
from cart_service.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class CheckoutResult:
    cart: Cart
    order: dict[str, Any]

    @property
    def order_id(self) -> str:
        return str(self.order["id"])


def build_order_payload(cart: Cart, details: dict[str, Any]) -> dict[str, Any]:
    """
    Zamowienie dla order-service: dane klienta/dostawy/platnosci z requestu,
    kwota = total_amount koszyka, jedna linia na aktywna pozycje.
    """
    payload = {k: v for k, v in details.items() if v is not None}
    payload.update(
        {
            "user_id": cart.user_id,
            "cart_id": cart.id,
            "payment_amount": str(cart.total_amount),
            "currency_code": cart.currency_code,
            "items": [
                {
                    "product_id": item.product_id,
                    "quantity": item.quantity,
                    "unit_price": str(item.unit_price),
                    "special_instructions": item.special_instructions,
                }
                for item in cart.active_items
            ],
        }
    )
    return payload


class CheckoutService:
    """
    Use Case: zamiana koszyka w zamowienie.

    1. Pusty koszyk -> EmptyCart (bez zmian stanu)
    2. Blokujaca walidacja pozycji w product-service
    3. Tworzy zamowienie w order-service (bez retry)
    4. Oznacza koszyk jako CONVERTED
    5. Wysyla powiadomienie (async)

    Blad na krokach 1-3 zostawia koszyk ACTIVE.
    """

    def __init__(
        self,
        store: CartStore,
        item_service: ItemService,
        order_client: OrderGateway,
        notification_service: NotificationService | None = None,
    ):
        self.store = store
        self.item_service = item_service
        self.order_client = order_client
        self.notification_service = notification_service or NotificationService()

    def checkout(self, cart_id: str, details: dict[str, Any] | None = None) -> CheckoutResult:
        logger.info(f"Checking out cart {cart_id}")
        now = utcnow()

        cart = self.store.load(cart_id)
        if cart.is_empty:
            raise EmptyCart(cart_id)
        cart.ensure_modifiable()
        # przeterminowany koszyk nie przechodzi w CONVERTED, stan zapisze odczyt albo sweep
        if cart.can_be_abandoned(now) or cart.is_expired(now):
            raise CartNotModifiable(f"Cart {cart_id} is no longer active and cannot be checked out")

        self.item_service.validate_against_catalog(cart.active_items, now=now, strict=True)
        cart.recompute_totals()

        unavailable = [i.product_id for i in cart.active_items if i.has_stock_issue]
        if unavailable:
            raise ItemsUnavailable(unavailable)

        payload = build_order_payload(cart, details or {})
        order = self.order_client.create_order(payload, acting_user_id=cart.user_id)
        order_id = str(order["id"])

        cart = self._mark_converted(cart, order_id, now)
        logger.info(f"Cart {cart_id} checked out successfully -> order {order_id}")

        try:
            self.notification_service.send_cart_converted(cart.user_id, cart.id, order_id)
        except Exception as e:
            logger.warning(f"Failed to dispatch conversion notification for cart {cart_id}: {e}")

        return CheckoutResult(cart=cart, order=order)

    def _mark_converted(self, cart: Cart, order_id: str, now: datetime) -> Cart:
        cart.mark_as_converted(order_id, now)
        try:
            return self.store.save(cart)
        except ConcurrencyConflict:
            # zamowienie juz istnieje, powtarzamy tylko zmiane statusu
            logger.warning(f"Cart {cart.id} changed during checkout, retrying conversion to order {order_id}")
            return self._retry_conversion(cart.id, order_id)

    @conflict_retry()
    def _retry_conversion(self, cart_id: str, order_id: str) -> Cart:
        cart = self.store.load(cart_id)
        if cart.status == CartStatus.CONVERTED:
            if cart.converted_order_id != order_id:
                logger.error(f"Cart {cart_id} already converted to order {cart.converted_order_id}, new order {order_id}")
            return cart

        try:
            cart.mark_as_converted(order_id)
        except CartServiceError:
            logger.error(f"Order {order_id} created but cart {cart_id} could not be converted")
            raise
        return self.store.save(cart)
