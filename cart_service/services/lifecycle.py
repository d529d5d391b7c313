# cart_service/services/lifecycle.py
from datetime import datetime

from cart_service.domain.cart import Cart
from cart_service.domain.ports import CartStore
from cart_service.utils.logging import get_logger

logger = get_logger(__name__)


def refresh_lifecycle(store: CartStore, cart: Cart, now: datetime | None = None) -> Cart:
    """Leniwe porzucenie/wygasniecie przy odczycie; zapisuje tylko gdy status sie zmienil."""
    previous = cart.status
    changed = cart.evaluate_lifecycle(now)
    if changed is None:
        return cart

    logger.info(f"Cart {cart.id} moved from {previous.value} to {changed.value} on read")
    return store.save(cart)


def load_for_update(store: CartStore, cart_id: str, now: datetime | None = None) -> Cart:
    cart = refresh_lifecycle(store, store.load(cart_id), now)
    cart.ensure_modifiable()
    return cart
