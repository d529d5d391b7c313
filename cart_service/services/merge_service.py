# cart_service/services/merge_service.py
from dataclasses import dataclass
from datetime import datetime

from cart_service.domain.cart import Cart, CartStatus, utcnow
from cart_service.domain.errors import CartNotFound, CartValidationError
from cart_service.domain.ports import CartStore
from cart_service.services.lifecycle import refresh_lifecycle
from cart_service.utils.retry import conflict_retry
from cart_service.utils.settings import MAX_QUANTITY_PER_ITEM
from cart_service.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class MergeOutcome:
    added: int = 0
    merged: int = 0
    skipped: int = 0


def merge_items(
    source: Cart,
    target: Cart,
    handle_duplicates: bool,
    max_quantity_per_item: int,
    now: datetime | None = None,
) -> MergeOutcome:
    """
    Kopiuje aktywne pozycje source do target (source zostaje bez zmian).
    Duplikat: suma ilosci przycieta do limitu. Zapisane na pozniej i usuniete sa pomijane.
    """
    now = now or utcnow()
    outcome = MergeOutcome()

    for source_item in source.active_items:
        existing = target.find_active_item(source_item.product_id)
        if existing is None:
            target.add_line(source_item.clone(now), now)
            outcome.added += 1
        elif handle_duplicates:
            quantity = min(existing.quantity + source_item.quantity, max_quantity_per_item)
            existing.set_quantity(quantity, now)
            outcome.merged += 1
        else:
            outcome.skipped += 1

    # target wygrywa przy konflikcie
    if target.customer_name is None and source.customer_name is not None:
        target.customer_name = source.customer_name
    if target.customer_email is None and source.customer_email is not None:
        target.customer_email = source.customer_email

    target.merged_cart_ids.append(source.id)
    target.recompute_totals()
    target.update_activity(now)
    return outcome


class MergeService:
    """
    Scalanie koszyka goscia z koszykiem usera po logowaniu.

    Target zapamietuje id scalonych koszykow (merged_cart_ids) w tym samym zapisie
    co pozycje, wiec ponowienie tego samego merge nie podwaja ilosci, tylko
    dokancza ewentualne usuniecie source.
    """

    def __init__(self, store: CartStore, max_quantity_per_item: int = MAX_QUANTITY_PER_ITEM):
        self.store = store
        self.max_quantity_per_item = max_quantity_per_item

    @conflict_retry()
    def merge_carts(
        self,
        source_cart_id: str,
        target_cart_id: str,
        handle_duplicates: bool = True,
        delete_source: bool = False,
    ) -> Cart:
        logger.info(f"Merging carts: {source_cart_id} -> {target_cart_id}")

        if source_cart_id == target_cart_id:
            raise CartValidationError("Cannot merge a cart into itself")

        now = utcnow()
        target = self.store.load(target_cart_id)

        # ponowienie po zmianie statusu target tylko dokancza usuniecie source
        if source_cart_id in target.merged_cart_ids:
            logger.info(f"Cart {source_cart_id} already merged into {target_cart_id}")
            if delete_source:
                self._delete_if_present(source_cart_id)
            return target

        target = refresh_lifecycle(self.store, target, now)
        target.ensure_modifiable()

        source = self.store.load(source_cart_id)
        if source.status == CartStatus.CONVERTED:
            raise CartValidationError(f"Cart {source_cart_id} was already converted to an order")

        outcome = merge_items(source, target, handle_duplicates, self.max_quantity_per_item, now)
        self.store.save(target)

        if delete_source:
            self.store.delete(source)
            logger.info(f"Source cart {source_cart_id} deleted after merge")

        logger.info(
            f"Carts merged into {target_cart_id}: added={outcome.added} "
            f"merged={outcome.merged} skipped={outcome.skipped}"
        )
        return target

    def _delete_if_present(self, cart_id: str) -> None:
        try:
            source = self.store.load(cart_id)
        except CartNotFound:
            return
        self.store.delete(source)
        logger.info(f"Source cart {cart_id} deleted on merge retry")
