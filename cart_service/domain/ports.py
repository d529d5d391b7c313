# cart_service/domain/ports.py
"""Kontrakty wspolpracownikow (product-service, order-service, magazyn koszykow)."""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol

from cart_service.domain.cart import Cart, CartStatus, ProductSnapshot
from cart_service.domain.statistics import CartFigures


@dataclass(frozen=True)
class StockCheck:
    sufficient: bool
    stock_quantity: int | None = None


@dataclass(frozen=True)
class ProductValidation:
    available: bool | None
    stock_quantity: int | None
    current_price: Decimal | None


class ProductGateway(Protocol):
    def get_product(self, product_id: str) -> ProductSnapshot | None: ...

    def check_stock(self, product_id: str, quantity: int) -> StockCheck: ...

    def validate_many(self, product_ids: list[str]) -> list[ProductValidation]: ...


class OrderGateway(Protocol):
    def create_order(self, payload: dict[str, Any], acting_user_id: str | None = None) -> dict[str, Any]: ...


class CartStore(Protocol):
    """
    save() jest warunkowy na wersji: zapis przechodzi tylko gdy wersja w bazie
    == cart.version, inaczej ConcurrencyConflict. Po zapisie cart.version += 1.
    """

    def load(self, cart_id: str) -> Cart: ...

    def load_by_item(self, item_id: str) -> Cart: ...

    def load_by_user(self, user_id: str, status: CartStatus = CartStatus.ACTIVE) -> Cart | None: ...

    def load_by_session(self, session_id: str, status: CartStatus = CartStatus.ACTIVE) -> Cart | None: ...

    def list_by_user(self, user_id: str) -> list[Cart]: ...

    def list_by_status(self, status: CartStatus) -> list[Cart]: ...

    def list_page(self, page: int, size: int) -> tuple[list[Cart], int]: ...

    def figures_between(self, start: datetime, end: datetime) -> list[CartFigures]: ...

    def save(self, cart: Cart) -> Cart: ...

    def delete(self, cart: Cart) -> None: ...

    # zapytania tylko dla maintenance

    def find_abandonment_candidates(self, cutoff: datetime) -> list[Cart]: ...

    def find_expirable(self, now: datetime) -> list[Cart]: ...

    def find_terminal_before(self, cutoff: datetime) -> list[Cart]: ...

    def find_empty_before(self, cutoff: datetime) -> list[Cart]: ...

    def find_recently_abandoned(self, since: datetime) -> list[Cart]: ...

    def purge_removed_items(self, cutoff: datetime) -> int: ...
