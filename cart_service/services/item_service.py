# cart_service/services/item_service.py
from datetime import datetime
from decimal import Decimal
from typing import Iterable

from cart_service.domain.cart import Cart, CartItem, CartItemStatus, CartStatus, utcnow
from cart_service.domain.errors import (
    CartValidationError,
    DuplicateItem,
    ExternalServiceError,
    InsufficientStock,
    InvalidQuantity,
    LimitExceeded,
    ProductNotFound,
)
from cart_service.domain.ports import CartStore, ProductGateway, StockCheck
from cart_service.services.lifecycle import load_for_update, refresh_lifecycle
from cart_service.utils.retry import conflict_retry
from cart_service.utils.settings import (
    CHECK_STOCK_ON_ADD,
    MAX_CART_VALUE,
    MAX_ITEMS_PER_CART,
    MAX_QUANTITY_PER_ITEM,
    STOCK_CHECK_MODE,
)
from cart_service.utils.logging import get_logger

logger = get_logger(__name__)

STOCK_MODES = ("soft", "hard")


class ItemService:
    """
    Operacje na pozycjach koszyka (add / update / remove / save for later / move).

    Kazda komenda: load -> zmiana agregatu -> recompute_totals -> save z wersja.
    Przy ConcurrencyConflict cala komenda jest powtarzana od nowego odczytu.

    Stock check:
    - soft: wynik zapisany na pozycji (has_stock_issue), blad product-service tylko logowany
    - hard: brak stanu -> InsufficientStock, blad product-service -> ExternalServiceError
    """

    def __init__(
        self,
        store: CartStore,
        product_client: ProductGateway,
        max_quantity_per_item: int = MAX_QUANTITY_PER_ITEM,
        max_items_per_cart: int = MAX_ITEMS_PER_CART,
        max_cart_value: Decimal | None = MAX_CART_VALUE,
        check_stock_on_add: bool = CHECK_STOCK_ON_ADD,
        stock_check_mode: str = STOCK_CHECK_MODE,
    ):
        if stock_check_mode not in STOCK_MODES:
            raise ValueError(f"stock_check_mode must be one of {STOCK_MODES}, got {stock_check_mode!r}")
        self.store = store
        self.product_client = product_client
        self.max_quantity_per_item = max_quantity_per_item
        self.max_items_per_cart = max_items_per_cart
        self.max_cart_value = max_cart_value
        self.check_stock_on_add = check_stock_on_add
        self.stock_check_mode = stock_check_mode

    # --- walidacje ---

    def _check_quantity(self, quantity: int) -> None:
        if quantity < 1:
            raise InvalidQuantity("Quantity must be at least 1")
        if quantity > self.max_quantity_per_item:
            raise LimitExceeded(f"Maximum quantity per item exceeded: {self.max_quantity_per_item}")

    def _check_cart_value(self, cart: Cart, additional: Decimal) -> None:
        if self.max_cart_value is None or additional <= 0:
            return
        if cart.subtotal + additional > self.max_cart_value:
            raise LimitExceeded(f"Maximum cart value exceeded: {self.max_cart_value}")

    def _check_line_limit(self, cart: Cart) -> None:
        if len(cart.active_items) >= self.max_items_per_cart:
            raise LimitExceeded(f"Maximum items per cart exceeded: {self.max_items_per_cart}")

    def _check_stock(self, product_id: str, quantity: int) -> StockCheck | None:
        if not self.check_stock_on_add:
            return None

        try:
            stock = self.product_client.check_stock(product_id, quantity)
        except ExternalServiceError as e:
            if self.stock_check_mode == "hard":
                raise
            logger.warning(f"Stock validation failed for product {product_id}: {e}")
            return None

        if not stock.sufficient and self.stock_check_mode == "hard":
            raise InsufficientStock(product_id, quantity, stock.stock_quantity)
        return stock

    @staticmethod
    def _apply_stock(item: CartItem, stock: StockCheck | None) -> None:
        if stock is None:
            return
        if stock.stock_quantity is not None:
            item.stock_quantity = stock.stock_quantity
        elif not stock.sufficient:
            item.stock_quantity = 0
        item.availability_message = None if stock.sufficient else "Insufficient stock"

    # --- operacje na agregacie ---

    def add_item(
        self,
        cart: Cart,
        product_id: str,
        quantity: int,
        price_override: Decimal | None = None,
        special_instructions: str | None = None,
        added_from: str | None = None,
        metadata: str | None = None,
        now: datetime | None = None,
    ) -> CartItem:
        """Nowa linia w koszyku. Duplikat aktywnej linii jest odrzucany, nie scalany."""
        now = now or utcnow()
        cart.ensure_modifiable()
        self._check_quantity(quantity)

        if cart.find_active_item(product_id) is not None:
            raise DuplicateItem(product_id)
        self._check_line_limit(cart)

        logger.info(f"Fetching product {product_id} from product-service")
        product = self.product_client.get_product(product_id)
        if product is None:
            raise ProductNotFound(product_id)

        unit_price = product.price if price_override is None else price_override
        self._check_cart_value(cart, Decimal(str(unit_price)) * quantity)

        stock = self._check_stock(product_id, quantity)

        item = CartItem.from_product(
            product,
            quantity=quantity,
            unit_price=unit_price,
            special_instructions=special_instructions,
            added_from=added_from,
            metadata=metadata,
            now=now,
        )
        self._apply_stock(item, stock)
        cart.add_line(item, now)

        logger.info(f"Added product {product_id} x{quantity} to cart {cart.id} as item {item.id}")
        return item

    def validate_against_catalog(
        self,
        items: Iterable[CartItem],
        now: datetime | None = None,
        strict: bool = False,
    ) -> bool:
        """
        Uzgadnia pozycje z katalogiem: dostepnosc, stan, cena (original_unit_price bez zmian).
        Domyslnie best-effort: blad product-service jest logowany i zwracamy False.
        strict=True (checkout) przepuszcza ExternalServiceError do wywolujacego.
        Wywolujacy musi potem przeliczyc totals koszyka.
        """
        items = list(items)
        if not items:
            return True

        now = now or utcnow()
        try:
            results = self.product_client.validate_many([i.product_id for i in items])
        except ExternalServiceError as e:
            if strict:
                raise
            logger.warning(f"Failed to validate {len(items)} cart items: {e}")
            return False

        for item, result in zip(items, results):
            before = item.unit_price
            item.apply_validation(result.available, result.stock_quantity, result.current_price, now)
            if item.unit_price != before:
                logger.info(f"Price of product {item.product_id} changed {before} -> {item.unit_price}")
        return True

    # --- komendy na koszyku ---

    @conflict_retry()
    def add_item_to_cart(
        self,
        cart_id: str,
        product_id: str,
        quantity: int,
        price_override: Decimal | None = None,
        special_instructions: str | None = None,
        added_from: str | None = None,
        metadata: str | None = None,
    ) -> Cart:
        """
        Dodanie produktu; jesli aktywna linia juz jest, zwieksza jej ilosc.
        Suma ponad limit jest odrzucana (48 + 5 przy limicie 50 -> LimitExceeded),
        bez przycinania.
        """
        now = utcnow()
        cart = load_for_update(self.store, cart_id, now)

        existing = cart.find_active_item(product_id)
        if existing is None:
            self.add_item(
                cart,
                product_id,
                quantity,
                price_override=price_override,
                special_instructions=special_instructions,
                added_from=added_from,
                metadata=metadata,
                now=now,
            )
        else:
            self._check_quantity(quantity)
            new_quantity = existing.quantity + quantity
            if new_quantity > self.max_quantity_per_item:
                raise LimitExceeded(f"Maximum quantity per item exceeded: {self.max_quantity_per_item}")
            self._check_cart_value(cart, existing.unit_price * quantity)
            self._apply_stock(existing, self._check_stock(product_id, new_quantity))

            logger.info(
                f"Product {product_id} already in cart {cart_id}, "
                f"quantity {existing.quantity} -> {new_quantity}"
            )
            existing.set_quantity(new_quantity, now)
            if special_instructions is not None:
                existing.special_instructions = special_instructions
            cart.recompute_totals()
            cart.update_activity(now)

        return self.store.save(cart)

    @conflict_retry()
    def update_item(
        self,
        item_id: str,
        quantity: int,
        special_instructions: str | None = None,
        metadata: str | None = None,
    ) -> Cart:
        now = utcnow()
        cart = self._load_item_cart(item_id, now)

        item = cart.get_item(item_id)
        if item.is_removed:
            raise CartValidationError(f"Removed item {item_id} cannot be updated")

        self._check_quantity(quantity)
        if item.is_active:
            self._check_cart_value(cart, item.unit_price * (quantity - item.quantity))
            self._apply_stock(item, self._check_stock(item.product_id, quantity))

        item.set_quantity(quantity, now)
        if special_instructions is not None:
            item.special_instructions = special_instructions
        if metadata is not None:
            item.metadata = metadata

        cart.recompute_totals()
        cart.update_activity(now)
        logger.info(f"Cart item {item_id} updated, quantity {quantity}")
        return self.store.save(cart)

    @conflict_retry()
    def remove_item(self, item_id: str) -> Cart:
        now = utcnow()
        cart = self._load_item_cart(item_id, now)

        cart.get_item(item_id).remove(now)
        cart.recompute_totals()
        cart.update_activity(now)

        logger.info(f"Cart item {item_id} removed from cart {cart.id}")
        return self.store.save(cart)

    @conflict_retry()
    def save_for_later(self, item_id: str) -> Cart:
        now = utcnow()
        cart = self._load_item_cart(item_id, now)

        cart.get_item(item_id).save_for_later(now)
        cart.recompute_totals()
        cart.update_activity(now)

        logger.info(f"Cart item {item_id} saved for later")
        return self.store.save(cart)

    @conflict_retry()
    def move_to_cart(self, item_id: str) -> Cart:
        now = utcnow()
        cart = self._load_item_cart(item_id, now)

        item = cart.get_item(item_id)
        if item.is_saved_for_later:
            if cart.find_active_item(item.product_id) is not None:
                raise DuplicateItem(item.product_id)
            self._check_line_limit(cart)
            # ilosc mogla wzrosnac gdy pozycja byla odlozona
            self._check_cart_value(cart, item.total_price)
            self._apply_stock(item, self._check_stock(item.product_id, item.quantity))
        item.move_to_cart(now)
        cart.recompute_totals()
        cart.update_activity(now)

        logger.info(f"Cart item {item_id} moved back to cart")
        return self.store.save(cart)

    @conflict_retry()
    def reconcile_cart(self, cart_id: str) -> Cart:
        """Tlo: walidacja cen/stanow; nie dotyka ilosci, added_from ani instrukcji."""
        now = utcnow()
        cart = refresh_lifecycle(self.store, self.store.load(cart_id), now)
        if cart.status not in (CartStatus.ACTIVE, CartStatus.SAVED):
            return cart

        items = [i for i in cart.items if not i.is_removed]
        if not self.validate_against_catalog(items, now=now):
            return cart

        cart.recompute_totals()
        return self.store.save(cart)

    # --- zapytania ---

    def get_item(self, item_id: str) -> CartItem:
        return self.store.load_by_item(item_id).get_item(item_id)

    def list_items(self, cart_id: str, status: CartItemStatus | None = None) -> list[CartItem]:
        cart = self.store.load(cart_id)
        if status is None:
            return cart.active_items
        return [i for i in cart.items if i.status == status]

    def _load_item_cart(self, item_id: str, now: datetime) -> Cart:
        cart = refresh_lifecycle(self.store, self.store.load_by_item(item_id), now)
        cart.ensure_modifiable()
        return cart
