# cart_service/repos/cart_repo.py
from datetime import datetime

from sqlalchemy import and_, delete, exists, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from cart_service.data.models.cart import CartModel
from cart_service.data.models.cart_item import CartItemModel
from cart_service.domain.cart import Cart, CartItem, CartItemStatus, CartStatus
from cart_service.domain.errors import CartItemNotFound, CartNotFound, ConcurrencyConflict
from cart_service.domain.statistics import CartFigures
from cart_service.utils.logging import get_logger

logger = get_logger(__name__)

_CART_FIELDS = (
    "user_id",
    "session_id",
    "currency_code",
    "customer_name",
    "customer_email",
    "discount_code",
    "special_instructions",
    "delivery_type",
    "delivery_address",
    "source",
    "device_type",
    "user_agent",
    "subtotal",
    "tax_amount",
    "discount_amount",
    "total_amount",
    "item_count",
    "total_quantity",
    "created_at",
    "updated_at",
    "last_activity_at",
    "expires_at",
    "abandoned_at",
    "converted_at",
    "converted_order_id",
)

_ITEM_FIELDS = (
    "product_id",
    "product_sku",
    "product_name",
    "product_category",
    "product_description",
    "product_image_url",
    "preparation_time_minutes",
    "quantity",
    "unit_price",
    "original_unit_price",
    "currency_code",
    "special_instructions",
    "is_available",
    "stock_quantity",
    "availability_message",
    "added_from",
    "added_at",
    "updated_at",
    "last_validated_at",
    "saved_for_later_at",
    "removed_at",
)


def _item_to_domain(row: CartItemModel) -> CartItem:
    values = {name: getattr(row, name) for name in _ITEM_FIELDS}
    return CartItem(
        id=row.id,
        status=CartItemStatus(row.status),
        metadata=row.metadata_json,
        **values,
    )


def _cart_to_domain(row: CartModel) -> Cart:
    values = {name: getattr(row, name) for name in _CART_FIELDS}
    return Cart(
        id=row.id,
        status=CartStatus(row.status),
        metadata=row.metadata_json,
        merged_cart_ids=[x for x in (row.merged_cart_ids or "").split(",") if x],
        version=row.version,
        items=[_item_to_domain(i) for i in row.items],
        **values,
    )


def _cart_columns(cart: Cart) -> dict:
    values = {name: getattr(cart, name) for name in _CART_FIELDS}
    values["status"] = cart.status.value
    values["metadata_json"] = cart.metadata
    values["merged_cart_ids"] = ",".join(cart.merged_cart_ids)
    return values


def _item_row(cart_id: str, item: CartItem) -> CartItemModel:
    values = {name: getattr(item, name) for name in _ITEM_FIELDS}
    return CartItemModel(
        id=item.id,
        cart_id=cart_id,
        status=item.status.value,
        total_price=item.total_price,
        metadata_json=item.metadata,
        **values,
    )


class CartRepo:
    """
    Magazyn agregatow Cart na SQLAlchemy.

    Optimistic locking na kolumnie version:
    UPDATE carts SET ..., version = v + 1 WHERE id = :id AND version = v
    0 wierszy -> ktos inny zapisal koszyk w miedzyczasie -> ConcurrencyConflict.
    """

    def __init__(self, db: Session):
        self.db = db

    def _select(self):
        return (
            select(CartModel)
            .options(selectinload(CartModel.items))
            .execution_options(populate_existing=True)
        )

    def _first(self, stmt) -> Cart | None:
        row = self.db.execute(stmt).scalars().first()
        return _cart_to_domain(row) if row else None

    def _all(self, stmt) -> list[Cart]:
        return [_cart_to_domain(row) for row in self.db.execute(stmt).scalars().all()]

    # --- odczyt ---

    def load(self, cart_id: str) -> Cart:
        cart = self._first(self._select().where(CartModel.id == cart_id))
        if cart is None:
            raise CartNotFound(cart_id)
        return cart

    def load_by_item(self, item_id: str) -> Cart:
        cart_id = self.db.execute(
            select(CartItemModel.cart_id).where(CartItemModel.id == item_id)
        ).scalar_one_or_none()
        if cart_id is None:
            raise CartItemNotFound(item_id)
        return self.load(cart_id)

    def load_by_user(self, user_id: str, status: CartStatus = CartStatus.ACTIVE) -> Cart | None:
        return self._first(
            self._select()
            .where(CartModel.user_id == user_id, CartModel.status == status.value)
            .order_by(CartModel.last_activity_at.desc())
        )

    def load_by_session(self, session_id: str, status: CartStatus = CartStatus.ACTIVE) -> Cart | None:
        return self._first(
            self._select()
            .where(CartModel.session_id == session_id, CartModel.status == status.value)
            .order_by(CartModel.last_activity_at.desc())
        )

    def list_by_user(self, user_id: str) -> list[Cart]:
        return self._all(
            self._select().where(CartModel.user_id == user_id).order_by(CartModel.created_at.desc())
        )

    # --- panel administracyjny ---

    def list_by_status(self, status: CartStatus) -> list[Cart]:
        return self._all(
            self._select().where(CartModel.status == status.value).order_by(CartModel.updated_at.desc())
        )

    def list_page(self, page: int, size: int) -> tuple[list[Cart], int]:
        total = self.db.execute(select(func.count()).select_from(CartModel)).scalar_one()
        carts = self._all(
            self._select()
            .order_by(CartModel.updated_at.desc(), CartModel.id)
            .offset(page * size)
            .limit(size)
        )
        return carts, total

    def figures_between(self, start: datetime, end: datetime) -> list[CartFigures]:
        rows = self.db.execute(
            select(
                CartModel.status,
                CartModel.total_amount,
                CartModel.item_count,
                CartModel.source,
                CartModel.created_at,
            ).where(CartModel.created_at.between(start, end))
        ).all()
        return [
            CartFigures(
                status=CartStatus(row.status),
                total_amount=row.total_amount,
                item_count=row.item_count,
                source=row.source,
                created_at=row.created_at,
            )
            for row in rows
        ]

    # --- zapis ---

    def save(self, cart: Cart) -> Cart:
        if cart.version == 0:
            row = CartModel(id=cart.id, version=1, **_cart_columns(cart))
            row.items = [_item_row(cart.id, item) for item in cart.items]
            self.db.add(row)
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                raise ConcurrencyConflict(cart.id, 0)
            cart.version = 1
            return cart

        values = {getattr(CartModel, k): v for k, v in _cart_columns(cart).items()}
        values[CartModel.version] = cart.version + 1

        rowcount = self.db.execute(
            update(CartModel)
            .where(CartModel.id == cart.id, CartModel.version == cart.version)
            .values(values)
            .execution_options(synchronize_session=False)
        ).rowcount

        if rowcount == 0:
            self.db.rollback()
            logger.warning(f"Optimistic lock failed for cart {cart.id} at version {cart.version}")
            raise ConcurrencyConflict(cart.id, cart.version)

        self._sync_items(cart)
        self.db.commit()
        cart.version += 1
        return cart

    def _sync_items(self, cart: Cart) -> None:
        keep = [item.id for item in cart.items]
        self.db.execute(
            delete(CartItemModel)
            .where(CartItemModel.cart_id == cart.id, CartItemModel.id.not_in(keep))
            .execution_options(synchronize_session=False)
        )
        for item in cart.items:
            self.db.merge(_item_row(cart.id, item))

    def delete(self, cart: Cart) -> None:
        self.db.execute(
            delete(CartItemModel)
            .where(CartItemModel.cart_id == cart.id)
            .execution_options(synchronize_session=False)
        )
        rowcount = self.db.execute(
            delete(CartModel)
            .where(CartModel.id == cart.id, CartModel.version == cart.version)
            .execution_options(synchronize_session=False)
        ).rowcount
        if rowcount == 0:
            self.db.rollback()
            raise ConcurrencyConflict(cart.id, cart.version)
        self.db.commit()

    # --- maintenance ---

    def find_abandonment_candidates(self, cutoff: datetime) -> list[Cart]:
        return self._all(
            self._select().where(
                CartModel.status == CartStatus.ACTIVE.value,
                CartModel.last_activity_at <= cutoff,
                CartModel.item_count > 0,
            )
        )

    def find_expirable(self, now: datetime) -> list[Cart]:
        return self._all(
            self._select().where(
                CartModel.status.in_([CartStatus.ACTIVE.value, CartStatus.SAVED.value]),
                CartModel.expires_at < now,
            )
        )

    def find_terminal_before(self, cutoff: datetime) -> list[Cart]:
        return self._all(
            self._select().where(
                or_(
                    and_(CartModel.status == CartStatus.ABANDONED.value, CartModel.abandoned_at < cutoff),
                    and_(CartModel.status == CartStatus.EXPIRED.value, CartModel.updated_at < cutoff),
                )
            )
        )

    def find_empty_before(self, cutoff: datetime) -> list[Cart]:
        has_saved = exists().where(
            CartItemModel.cart_id == CartModel.id,
            CartItemModel.status == CartItemStatus.SAVED_FOR_LATER.value,
        )
        return self._all(
            self._select().where(
                CartModel.item_count == 0,
                CartModel.updated_at < cutoff,
                CartModel.status != CartStatus.CONVERTED.value,
                ~has_saved,
            )
        )

    def find_recently_abandoned(self, since: datetime) -> list[Cart]:
        return self._all(
            self._select().where(
                CartModel.status == CartStatus.ABANDONED.value,
                CartModel.abandoned_at >= since,
            )
        )

    def purge_removed_items(self, cutoff: datetime) -> int:
        stale = and_(
            CartItemModel.status == CartItemStatus.REMOVED.value,
            CartItemModel.removed_at < cutoff,
        )
        # podbij wersje koszykow, zeby stary odczyt nie przywrocil usunietych pozycji
        self.db.execute(
            update(CartModel)
            .where(CartModel.id.in_(select(CartItemModel.cart_id).where(stale)))
            .values({CartModel.version: CartModel.version + 1})
            .execution_options(synchronize_session=False)
        )
        purged = self.db.execute(
            delete(CartItemModel).where(stale).execution_options(synchronize_session=False)
        ).rowcount
        self.db.commit()
        return purged
