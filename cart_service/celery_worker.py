# cart_service/celery_worker.py
from celery import Celery
from celery.schedules import crontab

from cart_service.utils.settings import (
    CELERY_BROKER_URL,
    CELERY_RESULT_BACKEND,
    MAINTENANCE_INTERVAL_SECONDS,
)

celery_app = Celery(
    "cart",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

# WAZNE: explicite importuj taski, zeby Celery je zarejestrowal
celery_app.conf.imports = (
    "cart_service.tasks.maintenance",
    "cart_service.tasks.validation",
    "cart_service.services.notification_service",
)

celery_app.conf.beat_schedule = {
    "sweep-carts": {
        "task": "cart_service.tasks.maintenance.sweep_carts_task",
        "schedule": MAINTENANCE_INTERVAL_SECONDS,  # domyslnie co 6h
    },
    "abandoned-cart-reminders": {
        "task": "cart_service.tasks.maintenance.notify_abandoned_carts_task",
        "schedule": crontab(hour=12, minute=0),
    },
}

celery_app.conf.timezone = "UTC"
