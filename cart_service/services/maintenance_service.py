# cart_service/services/maintenance_service.py
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from cart_service.domain.cart import ABANDONMENT_THRESHOLD, Cart, CartStatus, utcnow
from cart_service.domain.errors import ConcurrencyConflict
from cart_service.domain.ports import CartStore
from cart_service.services.notification_service import NotificationService
from cart_service.utils.logging import get_logger

logger = get_logger(__name__)

TERMINAL_RETENTION = timedelta(days=7)
EMPTY_CART_RETENTION = timedelta(hours=1)
REMOVED_ITEM_RETENTION = timedelta(days=30)
REMINDER_WINDOW = timedelta(hours=2)


@dataclass
class SweepReport:
    abandoned: int = 0
    expired: int = 0
    deleted_terminal: int = 0
    deleted_empty: int = 0
    purged_items: int = 0
    conflicts: int = 0
    touched_cart_ids: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "abandoned": self.abandoned,
            "expired": self.expired,
            "deleted_terminal": self.deleted_terminal,
            "deleted_empty": self.deleted_empty,
            "purged_items": self.purged_items,
            "conflicts": self.conflicts,
        }


class MaintenanceService:
    """
    Okresowe sprzatanie koszykow (celery beat).

    Kolejnosc w sweepie: porzucenie -> wygasniecie -> usuniecie ABANDONED/EXPIRED
    po 7 dniach -> usuniecie pustych koszykow po 1h -> purge pozycji REMOVED po 30 dniach.
    Kazdy koszyk zapisywany osobno z wersja; konflikt oznacza ze ktos wlasnie
    uzywa koszyka, wiec zostawiamy go na nastepny sweep.
    """

    def __init__(
        self,
        store: CartStore,
        notification_service: NotificationService | None = None,
        abandonment_threshold: timedelta = ABANDONMENT_THRESHOLD,
        terminal_retention: timedelta = TERMINAL_RETENTION,
        empty_cart_retention: timedelta = EMPTY_CART_RETENTION,
        removed_item_retention: timedelta = REMOVED_ITEM_RETENTION,
    ):
        self.store = store
        self.notification_service = notification_service or NotificationService()
        self.abandonment_threshold = abandonment_threshold
        self.terminal_retention = terminal_retention
        self.empty_cart_retention = empty_cart_retention
        self.removed_item_retention = removed_item_retention

    def run_sweep(self, now: datetime | None = None) -> SweepReport:
        now = now or utcnow()
        logger.info("Cart maintenance sweep started")

        report = SweepReport()
        self.abandon_idle_carts(now, report)
        self.expire_carts(now, report)
        self.delete_terminal_carts(now, report)
        self.delete_empty_carts(now, report)
        report.purged_items = self.purge_removed_items(now)

        logger.info(f"Cart maintenance sweep finished: {report.as_dict()}")
        return report

    def abandon_idle_carts(self, now: datetime | None = None, report: SweepReport | None = None) -> SweepReport:
        now = now or utcnow()
        report = report or SweepReport()
        carts = self.store.find_abandonment_candidates(now - self.abandonment_threshold)
        logger.info(f"Found {len(carts)} idle carts to abandon")

        for cart in carts:
            # wynik zapytania moze byc nieaktualny, sprawdzamy na agregacie
            if not cart.can_be_abandoned(now, self.abandonment_threshold):
                continue
            cart.mark_as_abandoned(now, self.abandonment_threshold)
            if self._save(cart, report):
                report.abandoned += 1
        return report

    def expire_carts(self, now: datetime | None = None, report: SweepReport | None = None) -> SweepReport:
        now = now or utcnow()
        report = report or SweepReport()
        carts = self.store.find_expirable(now)
        logger.info(f"Found {len(carts)} carts to expire")

        for cart in carts:
            if cart.status not in (CartStatus.ACTIVE, CartStatus.SAVED) or not cart.is_expired(now):
                continue
            cart.mark_as_expired(now)
            if self._save(cart, report):
                report.expired += 1
        return report

    def delete_terminal_carts(self, now: datetime | None = None, report: SweepReport | None = None) -> SweepReport:
        now = now or utcnow()
        report = report or SweepReport()
        carts = self.store.find_terminal_before(now - self.terminal_retention)
        logger.info(f"Found {len(carts)} abandoned/expired carts to delete")

        for cart in carts:
            if self._delete(cart, report):
                report.deleted_terminal += 1
        return report

    def delete_empty_carts(self, now: datetime | None = None, report: SweepReport | None = None) -> SweepReport:
        now = now or utcnow()
        report = report or SweepReport()
        carts = self.store.find_empty_before(now - self.empty_cart_retention)
        logger.info(f"Found {len(carts)} empty carts to delete")

        for cart in carts:
            # koszyk z pozycjami odlozonymi na pozniej nie jest pusty
            if any(not i.is_removed for i in cart.items):
                continue
            if cart.status == CartStatus.CONVERTED:
                continue
            if self._delete(cart, report):
                report.deleted_empty += 1
        return report

    def purge_removed_items(self, now: datetime | None = None) -> int:
        now = now or utcnow()
        purged = self.store.purge_removed_items(now - self.removed_item_retention)
        logger.info(f"Purged {purged} removed cart items")
        return purged

    def find_abandonment_reminders(self, now: datetime | None = None, window: timedelta = REMINDER_WINDOW) -> list[Cart]:
        """Koszyki userow porzucone w ostatnim oknie; koszyki gosci nie maja adresata."""
        now = now or utcnow()
        carts = [c for c in self.store.find_recently_abandoned(now - window) if c.user_id is not None]
        logger.info(f"Found {len(carts)} recently abandoned carts for reminders")
        return carts

    def send_abandonment_reminders(self, now: datetime | None = None, window: timedelta = REMINDER_WINDOW) -> int:
        sent = 0
        for cart in self.find_abandonment_reminders(now, window):
            try:
                self.notification_service.send_abandonment_reminder(cart.user_id, cart.id, str(cart.total_amount))
                sent += 1
            except Exception as e:
                logger.warning(f"Failed to send abandonment reminder for cart {cart.id}: {e}")
        return sent

    def _save(self, cart: Cart, report: SweepReport) -> bool:
        try:
            self.store.save(cart)
        except ConcurrencyConflict:
            logger.info(f"Cart {cart.id} changed during sweep, skipping")
            report.conflicts += 1
            return False
        report.touched_cart_ids.append(cart.id)
        return True

    def _delete(self, cart: Cart, report: SweepReport) -> bool:
        try:
            self.store.delete(cart)
        except ConcurrencyConflict:
            logger.info(f"Cart {cart.id} changed during sweep, not deleting")
            report.conflicts += 1
            return False
        report.touched_cart_ids.append(cart.id)
        return True
