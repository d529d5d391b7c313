# cart_service/tasks/validation.py
from cart_service.celery_worker import celery_app
from cart_service.data.database import SessionLocal
from cart_service.domain.errors import CartNotFound, ConcurrencyConflict
from cart_service.repos.cart_repo import CartRepo
from cart_service.services.cart_cache import CartCache
from cart_service.services.item_service import ItemService
from cart_service.services.product_client import ProductClient
from cart_service.utils.settings import CART_CACHE_ENABLED
from cart_service.utils.logging import get_logger

logger = get_logger(__name__)


@celery_app.task(name="cart_service.tasks.validation.validate_cart_items_task")
def validate_cart_items_task(cart_id: str):
    """Tlo: uzgodnienie cen i dostepnosci pozycji z product-service."""
    logger.info(f"Validate cart items task started for cart {cart_id}")

    db = SessionLocal()
    try:
        service = ItemService(CartRepo(db), ProductClient())
        cart = service.reconcile_cart(cart_id)
        if CART_CACHE_ENABLED:
            CartCache().invalidate(cart_id)
        return {"cart_id": cart.id, "version": cart.version}
    except CartNotFound:
        logger.info(f"Cart {cart_id} no longer exists, skipping validation")
    except ConcurrencyConflict:
        # koszyk jest wlasnie zmieniany, walidacja wroci przy nastepnym odczycie
        logger.info(f"Cart {cart_id} busy, validation skipped")
    finally:
        db.close()


def schedule_cart_validation(cart_id: str) -> None:
    try:
        validate_cart_items_task.delay(cart_id)
    except Exception as e:
        logger.warning(f"Failed to queue validation for cart {cart_id}: {e}")
