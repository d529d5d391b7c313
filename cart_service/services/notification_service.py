# cart_service/services/notification_service.py
from cart_service.celery_worker import celery_app
from cart_service.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationService:
    """
    Serwis do wysylania powiadomien o koszykach.
    Uzywa Celery do asynchronicznego przetwarzania.
    """

    @staticmethod
    def send_cart_converted(user_id: str | None, cart_id: str, order_id: str):
        send_cart_converted_task.delay(user_id, cart_id, order_id)

    @staticmethod
    def send_abandonment_reminder(user_id: str | None, cart_id: str, total_amount: str):
        """Przypomnienie o porzuconym koszyku (tylko koszyki userow maja adresata)."""
        send_abandonment_reminder_task.delay(user_id, cart_id, total_amount)


@celery_app.task(name="cart_service.services.notification_service.send_cart_converted_task")
def send_cart_converted_task(user_id: str | None, cart_id: str, order_id: str):
    # kanal dostarczenia (email/push) poza tym serwisem, tu tylko log
    logger.info(f"[NOTIFICATION] User {user_id or 'guest'}: cart {cart_id} converted to order {order_id}")
    return {"user_id": user_id, "cart_id": cart_id, "order_id": order_id, "status": "sent"}


@celery_app.task(name="cart_service.services.notification_service.send_abandonment_reminder_task")
def send_abandonment_reminder_task(user_id: str | None, cart_id: str, total_amount: str):
    logger.info(f"[NOTIFICATION] User {user_id}: you left {total_amount} in cart {cart_id}")
    return {"user_id": user_id, "cart_id": cart_id, "status": "sent"}
