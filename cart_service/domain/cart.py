# cart_service/domain/cart.py
"""
Agregat koszyka: Cart + CartItem.

Cart jest jedyna jednostka spojnosci - pozycje zmieniamy tylko przez koszyk,
a po kazdej zmianie struktury, ilosci lub ceny wolamy recompute_totals().
Totals liczy czysta funkcja compute_totals(), wiec niezmienniki mozna testowac
bez bazy i bez serwisow.
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Iterable

from cart_service.domain.errors import (
    CartItemNotFound,
    CartNotModifiable,
    CartValidationError,
    DuplicateItem,
    EmptyCart,
    InvalidQuantity,
    InvalidTransition,
    OwnershipConflict,
)

TAX_RATE = Decimal("0.08")
USER_CART_TTL = timedelta(days=30)
GUEST_CART_TTL = timedelta(hours=24)
ABANDONMENT_THRESHOLD = timedelta(hours=24)

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


class CartStatus(str, Enum):
    ACTIVE = "ACTIVE"
    SAVED = "SAVED"
    ABANDONED = "ABANDONED"
    CONVERTED = "CONVERTED"
    EXPIRED = "EXPIRED"


class CartItemStatus(str, Enum):
    ACTIVE = "ACTIVE"
    SAVED_FOR_LATER = "SAVED_FOR_LATER"
    REMOVED = "REMOVED"


_TRANSITIONS = {
    CartStatus.ACTIVE: {
        CartStatus.SAVED,
        CartStatus.ABANDONED,
        CartStatus.CONVERTED,
        CartStatus.EXPIRED,
    },
    CartStatus.SAVED: {CartStatus.ACTIVE, CartStatus.EXPIRED},
}


@dataclass(frozen=True)
class ProductSnapshot:
    """Dane produktu z product-service w momencie dodania do koszyka."""

    product_id: str
    name: str
    price: Decimal
    sku: str | None = None
    category: str | None = None
    description: str | None = None
    image_url: str | None = None
    preparation_time_minutes: int | None = None


@dataclass
class CartItem:
    product_id: str
    product_name: str
    quantity: int
    unit_price: Decimal
    id: str = field(default_factory=new_id)
    original_unit_price: Decimal | None = None
    status: CartItemStatus = CartItemStatus.ACTIVE
    product_sku: str | None = None
    product_category: str | None = None
    product_description: str | None = None
    product_image_url: str | None = None
    preparation_time_minutes: int | None = None
    currency_code: str = "USD"
    special_instructions: str | None = None
    is_available: bool = True
    stock_quantity: int | None = None
    availability_message: str | None = None
    added_from: str | None = None
    metadata: str | None = None
    added_at: datetime = field(default_factory=utcnow)
    updated_at: datetime | None = None
    last_validated_at: datetime | None = None
    saved_for_later_at: datetime | None = None
    removed_at: datetime | None = None

    def __post_init__(self):
        if self.quantity < 1:
            raise InvalidQuantity("Quantity must be at least 1")
        self.unit_price = money(self.unit_price)
        if self.original_unit_price is None:
            self.original_unit_price = self.unit_price
        else:
            self.original_unit_price = money(self.original_unit_price)
        if self.updated_at is None:
            self.updated_at = self.added_at

    @classmethod
    def from_product(
        cls,
        product: ProductSnapshot,
        quantity: int,
        unit_price: Decimal | None = None,
        currency_code: str = "USD",
        special_instructions: str | None = None,
        added_from: str | None = None,
        metadata: str | None = None,
        now: datetime | None = None,
    ) -> "CartItem":
        now = now or utcnow()
        return cls(
            product_id=product.product_id,
            product_name=product.name,
            quantity=quantity,
            unit_price=product.price if unit_price is None else unit_price,
            product_sku=product.sku,
            product_category=product.category,
            product_description=product.description,
            product_image_url=product.image_url,
            preparation_time_minutes=product.preparation_time_minutes,
            currency_code=currency_code,
            special_instructions=special_instructions,
            added_from=added_from,
            metadata=metadata,
            added_at=now,
        )

    # pola wyliczane - nigdy nie ustawiane recznie

    @property
    def total_price(self) -> Decimal:
        return self.unit_price * self.quantity

    @property
    def price_change_amount(self) -> Decimal:
        return self.unit_price - self.original_unit_price

    @property
    def price_changed(self) -> bool:
        return self.price_change_amount != ZERO

    @property
    def has_stock_issue(self) -> bool:
        if not self.is_available:
            return True
        return self.stock_quantity is not None and self.stock_quantity < self.quantity

    @property
    def total_preparation_minutes(self) -> int:
        return (self.preparation_time_minutes or 0) * self.quantity

    @property
    def is_active(self) -> bool:
        return self.status == CartItemStatus.ACTIVE

    @property
    def is_saved_for_later(self) -> bool:
        return self.status == CartItemStatus.SAVED_FOR_LATER

    @property
    def is_removed(self) -> bool:
        return self.status == CartItemStatus.REMOVED

    def set_quantity(self, quantity: int, now: datetime | None = None) -> None:
        if quantity < 1:
            raise InvalidQuantity("Quantity must be at least 1")
        self.quantity = quantity
        self.updated_at = now or utcnow()

    def set_unit_price(self, unit_price, now: datetime | None = None) -> None:
        self.unit_price = money(unit_price)
        self.updated_at = now or utcnow()

    def save_for_later(self, now: datetime | None = None) -> None:
        if self.status != CartItemStatus.ACTIVE:
            raise InvalidTransition(f"Only active items can be saved for later (item {self.id} is {self.status.value})")
        now = now or utcnow()
        self.status = CartItemStatus.SAVED_FOR_LATER
        self.saved_for_later_at = now
        self.updated_at = now

    def move_to_cart(self, now: datetime | None = None) -> None:
        if self.status != CartItemStatus.SAVED_FOR_LATER:
            raise InvalidTransition(f"Only saved items can be moved to cart (item {self.id} is {self.status.value})")
        self.status = CartItemStatus.ACTIVE
        self.saved_for_later_at = None
        self.updated_at = now or utcnow()

    def remove(self, now: datetime | None = None) -> None:
        if self.status == CartItemStatus.REMOVED:
            raise InvalidTransition(f"Item {self.id} is already removed")
        now = now or utcnow()
        self.status = CartItemStatus.REMOVED
        self.removed_at = now
        self.updated_at = now

    def apply_validation(
        self,
        available: bool | None,
        stock_quantity: int | None,
        current_price: Decimal | None,
        now: datetime | None = None,
    ) -> None:
        """Wynik walidacji z katalogu: tylko dostepnosc, cena i znacznik czasu."""
        now = now or utcnow()
        self.is_available = True if available is None else bool(available)
        self.stock_quantity = stock_quantity
        self.availability_message = None if self.is_available else "Product is currently unavailable"
        if current_price is not None and money(current_price) != self.unit_price:
            self.set_unit_price(current_price, now)
        self.last_validated_at = now

    def clone(self, now: datetime | None = None) -> "CartItem":
        return CartItem(
            product_id=self.product_id,
            product_name=self.product_name,
            quantity=self.quantity,
            unit_price=self.unit_price,
            product_sku=self.product_sku,
            product_category=self.product_category,
            product_description=self.product_description,
            product_image_url=self.product_image_url,
            preparation_time_minutes=self.preparation_time_minutes,
            currency_code=self.currency_code,
            special_instructions=self.special_instructions,
            added_from=self.added_from,
            metadata=self.metadata,
            added_at=now or utcnow(),
        )


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    item_count: int
    total_quantity: int


def compute_totals(items: Iterable[CartItem], discount_amount: Decimal = ZERO) -> Totals:
    active = [i for i in items if i.status == CartItemStatus.ACTIVE]

    subtotal = sum((i.total_price for i in active), ZERO)
    tax = money(subtotal * TAX_RATE)
    discount = money(discount_amount or ZERO)

    total = subtotal + tax - discount
    if total < ZERO:
        total = ZERO

    return Totals(
        subtotal=subtotal,
        tax_amount=tax,
        discount_amount=discount,
        total_amount=total,
        item_count=len(active),
        total_quantity=sum(i.quantity for i in active),
    )


# pola koszyka ktore mozna zmienic przez update_details
DETAIL_FIELDS = (
    "customer_name",
    "customer_email",
    "currency_code",
    "discount_code",
    "discount_amount",
    "special_instructions",
    "delivery_type",
    "delivery_address",
    "source",
    "device_type",
    "user_agent",
    "metadata",
)


@dataclass
class Cart:
    id: str = field(default_factory=new_id)
    user_id: str | None = None
    session_id: str | None = None
    status: CartStatus = CartStatus.ACTIVE
    currency_code: str = "USD"
    customer_name: str | None = None
    customer_email: str | None = None
    discount_code: str | None = None
    discount_amount: Decimal = ZERO
    special_instructions: str | None = None
    delivery_type: str | None = None
    delivery_address: str | None = None
    source: str | None = None
    device_type: str | None = None
    user_agent: str | None = None
    metadata: str | None = None
    subtotal: Decimal = ZERO
    tax_amount: Decimal = ZERO
    total_amount: Decimal = ZERO
    item_count: int = 0
    total_quantity: int = 0
    items: list[CartItem] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime | None = None
    last_activity_at: datetime | None = None
    expires_at: datetime | None = None
    abandoned_at: datetime | None = None
    converted_at: datetime | None = None
    converted_order_id: str | None = None
    merged_cart_ids: list[str] = field(default_factory=list)
    version: int = 0

    def __post_init__(self):
        if self.updated_at is None:
            self.updated_at = self.created_at
        if self.last_activity_at is None:
            self.last_activity_at = self.created_at
        if self.expires_at is None:
            self.expires_at = self.last_activity_at + self.expiration_window

    @classmethod
    def create(
        cls,
        user_id: str | None = None,
        session_id: str | None = None,
        now: datetime | None = None,
        **details,
    ) -> "Cart":
        if bool(user_id) == bool(session_id):
            raise CartValidationError("A cart is owned by exactly one of user_id or session_id")
        now = now or utcnow()
        cart = cls(user_id=user_id, session_id=session_id, created_at=now)
        for name, value in details.items():
            if name not in DETAIL_FIELDS:
                raise CartValidationError(f"Unknown cart field: {name}")
            if value is not None:
                setattr(cart, name, value)
        cart.recompute_totals()
        return cart

    # --- widoki ---

    @property
    def is_guest(self) -> bool:
        return self.user_id is None

    @property
    def expiration_window(self) -> timedelta:
        return GUEST_CART_TTL if self.is_guest else USER_CART_TTL

    @property
    def active_items(self) -> list[CartItem]:
        return [i for i in self.items if i.status == CartItemStatus.ACTIVE]

    @property
    def saved_items(self) -> list[CartItem]:
        return [i for i in self.items if i.status == CartItemStatus.SAVED_FOR_LATER]

    @property
    def is_empty(self) -> bool:
        return not self.active_items

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at is not None and self.expires_at < (now or utcnow())

    def find_active_item(self, product_id: str) -> CartItem | None:
        return next((i for i in self.items if i.product_id == product_id and i.is_active), None)

    def get_item(self, item_id: str) -> CartItem:
        item = next((i for i in self.items if i.id == item_id), None)
        if item is None:
            raise CartItemNotFound(item_id)
        return item

    # --- totals / aktywnosc ---

    def recompute_totals(self) -> Totals:
        totals = compute_totals(self.items, self.discount_amount)
        self.subtotal = totals.subtotal
        self.tax_amount = totals.tax_amount
        self.discount_amount = totals.discount_amount
        self.total_amount = totals.total_amount
        self.item_count = totals.item_count
        self.total_quantity = totals.total_quantity
        return totals

    def update_activity(self, now: datetime | None = None) -> None:
        now = now or utcnow()
        self.last_activity_at = now
        self.updated_at = now
        self.expires_at = now + self.expiration_window

    def ensure_modifiable(self) -> None:
        if self.status != CartStatus.ACTIVE:
            raise CartNotModifiable(f"Cart {self.id} is {self.status.value} and cannot be modified")

    # --- pozycje ---

    def add_line(self, item: CartItem, now: datetime | None = None) -> CartItem:
        self.ensure_modifiable()
        if item.is_active and self.find_active_item(item.product_id) is not None:
            raise DuplicateItem(item.product_id)
        item.currency_code = self.currency_code
        self.items.append(item)
        self.recompute_totals()
        self.update_activity(now)
        return item

    def clear_items(self, now: datetime | None = None) -> int:
        self.ensure_modifiable()
        now = now or utcnow()
        cleared = 0
        for item in self.items:
            if not item.is_removed:
                item.remove(now)
                cleared += 1
        self.recompute_totals()
        self.update_activity(now)
        return cleared

    def update_details(self, now: datetime | None = None, **changes) -> None:
        for name, value in changes.items():
            if name not in DETAIL_FIELDS:
                raise CartValidationError(f"Unknown cart field: {name}")
            if value is None:
                continue
            if name == "discount_amount":
                value = money(value)
                if value < ZERO:
                    raise CartValidationError("Discount amount cannot be negative")
            setattr(self, name, value)
        self.recompute_totals()
        self.update_activity(now)

    def attach_user(self, user_id: str, now: datetime | None = None) -> None:
        if not user_id:
            raise OwnershipConflict("user_id cannot be cleared")
        if self.user_id is not None and self.user_id != user_id:
            raise OwnershipConflict(f"Cart {self.id} already belongs to another user")
        self.user_id = user_id
        # dluzsze okno wygasania od razu
        self.update_activity(now)

    # --- maszyna stanow ---

    def _transition(self, target: CartStatus) -> None:
        if target not in _TRANSITIONS.get(self.status, set()):
            raise InvalidTransition(f"Cart {self.id} cannot go from {self.status.value} to {target.value}")
        self.status = target

    def can_be_abandoned(self, now: datetime | None = None, threshold: timedelta = ABANDONMENT_THRESHOLD) -> bool:
        now = now or utcnow()
        return (
            self.status == CartStatus.ACTIVE
            and not self.is_empty
            and now - self.last_activity_at >= threshold
        )

    def mark_as_abandoned(self, now: datetime | None = None, threshold: timedelta = ABANDONMENT_THRESHOLD) -> None:
        now = now or utcnow()
        if not self.can_be_abandoned(now, threshold):
            raise InvalidTransition(f"Cart {self.id} is not eligible for abandonment")
        self._transition(CartStatus.ABANDONED)
        self.abandoned_at = now
        self.updated_at = now

    def mark_as_expired(self, now: datetime | None = None) -> None:
        now = now or utcnow()
        if not self.is_expired(now):
            raise InvalidTransition(f"Cart {self.id} has not expired yet")
        self._transition(CartStatus.EXPIRED)
        self.updated_at = now

    def mark_as_converted(self, order_id: str, now: datetime | None = None) -> None:
        if self.status == CartStatus.ACTIVE and self.is_empty:
            raise EmptyCart(self.id)
        now = now or utcnow()
        self._transition(CartStatus.CONVERTED)
        self.converted_at = now
        self.converted_order_id = order_id
        self.updated_at = now

    def mark_as_saved(self, now: datetime | None = None) -> None:
        self._transition(CartStatus.SAVED)
        self.update_activity(now)

    def reactivate(self, now: datetime | None = None) -> None:
        self._transition(CartStatus.ACTIVE)
        self.update_activity(now)

    def evaluate_lifecycle(
        self,
        now: datetime | None = None,
        abandonment_threshold: timedelta = ABANDONMENT_THRESHOLD,
    ) -> CartStatus | None:
        """
        Leniwa ocena stanu (odczyt i sweep). Porzucenie sprawdzamy przed
        wygasnieciem. Zwraca nowy status albo None gdy nic sie nie zmienilo.
        """
        now = now or utcnow()
        if self.can_be_abandoned(now, abandonment_threshold):
            self.mark_as_abandoned(now, abandonment_threshold)
            return self.status
        if self.status in (CartStatus.ACTIVE, CartStatus.SAVED) and self.is_expired(now):
            self.mark_as_expired(now)
            return self.status
        return None

    def __str__(self):
        return (
            f"Cart(id={self.id}, user_id={self.user_id}, status={self.status.value}, "
            f"item_count={self.item_count}, total_amount={self.total_amount})"
        )
