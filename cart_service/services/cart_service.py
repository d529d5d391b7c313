# cart_service/services/cart_service.py
from datetime import datetime, timedelta, timezone

from cart_service.domain.cart import Cart, CartStatus, utcnow
from cart_service.domain.errors import CartNotModifiable, CartValidationError, ConcurrencyConflict
from cart_service.domain.ports import CartStore
from cart_service.domain.statistics import CartStatistics, build_statistics
from cart_service.services.lifecycle import load_for_update, refresh_lifecycle
from cart_service.utils.retry import conflict_retry
from cart_service.utils.settings import MAX_PAGE_SIZE, STATISTICS_DEFAULT_DAYS
from cart_service.utils.logging import get_logger

logger = get_logger(__name__)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class CartService:
    """
    Skladanie koszyka: find-or-create dla usera / sesji i zmiany na poziomie koszyka.
    commands (create, update, attach, save, reactivate, clear) modyfikuja stan
    query (get, list) tylko odczyt, z leniwa ocena wygasniecia/porzucenia
    """

    def __init__(self, store: CartStore):
        self.store = store

    #query - odczyt
    def get_cart(self, cart_id: str) -> Cart:
        cart = self.store.load(cart_id)
        try:
            return refresh_lifecycle(self.store, cart)
        except ConcurrencyConflict:
            # ktos wlasnie zapisal koszyk, oddaj swiezy stan
            logger.info(f"Cart {cart_id} changed during read, reloading")
            return self.store.load(cart_id)

    def list_user_carts(self, user_id: str) -> list[Cart]:
        return self.store.list_by_user(user_id)

    #query - panel administracyjny
    def list_carts_by_status(self, status: CartStatus) -> list[Cart]:
        return self.store.list_by_status(status)

    def list_carts(self, page: int = 0, size: int = 20) -> tuple[list[Cart], int]:
        if page < 0:
            raise CartValidationError("Page index cannot be negative")
        if not 1 <= size <= MAX_PAGE_SIZE:
            raise CartValidationError(f"Page size must be between 1 and {MAX_PAGE_SIZE}")
        return self.store.list_page(page, size)

    def get_statistics(self, start: datetime | None = None, end: datetime | None = None) -> CartStatistics:
        """Domyslnie ostatnie STATISTICS_DEFAULT_DAYS dni; zakres po created_at, obustronnie domkniety."""
        # daty bez strefy traktujemy jako UTC
        end = _as_utc(end) or utcnow()
        start = _as_utc(start) or end - timedelta(days=STATISTICS_DEFAULT_DAYS)
        if start > end:
            raise CartValidationError("Statistics start date must not be after end date")

        stats = build_statistics(self.store.figures_between(start, end), start, end)
        logger.info(f"Cart statistics {start:%Y-%m-%d}..{end:%Y-%m-%d}: {stats.total_carts} carts")
        return stats

    #commands
    @conflict_retry()
    def create_cart(self, user_id: str | None = None, session_id: str | None = None, **details) -> Cart:
        """
        Zwraca aktywny koszyk usera/sesji, wznawia odlozony (SAVED) albo tworzy nowy.
        Gdy podano oba identyfikatory, wlascicielem jest user.
        """
        if user_id:
            session_id = None

        if user_id or session_id:
            for status in (CartStatus.ACTIVE, CartStatus.SAVED):
                existing = self._find_owned(user_id, session_id, status)
                if existing is None:
                    continue
                existing = refresh_lifecycle(self.store, existing)
                if existing.status == CartStatus.ACTIVE:
                    logger.info(f"Owner {user_id or session_id} already has active cart {existing.id}")
                    existing.update_activity()
                    return self.store.save(existing)
                if existing.status == CartStatus.SAVED:
                    existing.reactivate()
                    logger.info(f"Saved cart {existing.id} of {user_id or session_id} reactivated")
                    return self.store.save(existing)

        cart = Cart.create(user_id=user_id, session_id=session_id, **details)
        self.store.save(cart)

        logger.info(f"Created cart {cart.id} for {'user ' + user_id if user_id else 'session ' + session_id}")
        return cart

    def get_or_create_for_user(self, user_id: str) -> Cart:
        return self.create_cart(user_id=user_id)

    def get_or_create_for_session(self, session_id: str) -> Cart:
        return self.create_cart(session_id=session_id)

    @conflict_retry()
    def update_cart(self, cart_id: str, **changes) -> Cart:
        now = utcnow()
        cart = load_for_update(self.store, cart_id, now)
        cart.update_details(now, **changes)

        logger.info(f"Cart {cart_id} details updated: {sorted(k for k, v in changes.items() if v is not None)}")
        return self.store.save(cart)

    @conflict_retry()
    def attach_user(self, cart_id: str, user_id: str) -> Cart:
        now = utcnow()
        cart = refresh_lifecycle(self.store, self.store.load(cart_id), now)
        if cart.status not in (CartStatus.ACTIVE, CartStatus.SAVED):
            raise CartNotModifiable(f"Cart {cart_id} is {cart.status.value} and cannot change owner")
        cart.attach_user(user_id, now)

        logger.info(f"Cart {cart_id} attached to user {user_id}, expires at {cart.expires_at}")
        return self.store.save(cart)

    @conflict_retry()
    def save_cart_for_later(self, cart_id: str) -> Cart:
        now = utcnow()
        cart = refresh_lifecycle(self.store, self.store.load(cart_id), now)
        cart.mark_as_saved(now)

        logger.info(f"Cart {cart_id} saved for later")
        return self.store.save(cart)

    @conflict_retry()
    def reactivate_cart(self, cart_id: str) -> Cart:
        now = utcnow()
        cart = refresh_lifecycle(self.store, self.store.load(cart_id), now)
        cart.reactivate(now)

        logger.info(f"Cart {cart_id} reactivated")
        return self.store.save(cart)

    @conflict_retry()
    def clear_cart(self, cart_id: str) -> Cart:
        now = utcnow()
        cart = load_for_update(self.store, cart_id, now)
        cleared = cart.clear_items(now)

        logger.info(f"Cart {cart_id} cleared, {cleared} items removed")
        return self.store.save(cart)

    def _find_owned(self, user_id: str | None, session_id: str | None, status: CartStatus) -> Cart | None:
        if user_id:
            return self.store.load_by_user(user_id, status)
        return self.store.load_by_session(session_id, status)
