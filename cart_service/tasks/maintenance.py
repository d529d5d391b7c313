# cart_service/tasks/maintenance.py
from cart_service.celery_worker import celery_app
from cart_service.data.database import SessionLocal
from cart_service.repos.cart_repo import CartRepo
from cart_service.services.maintenance_service import MaintenanceService
from cart_service.utils.logging import get_logger

logger = get_logger(__name__)


@celery_app.task(name="cart_service.tasks.maintenance.sweep_carts_task")
def sweep_carts_task():
    logger.info("Cart sweep task started")

    db = SessionLocal()
    try:
        report = MaintenanceService(CartRepo(db)).run_sweep()
        return report.as_dict()
    finally:
        db.close()


@celery_app.task(name="cart_service.tasks.maintenance.notify_abandoned_carts_task")
def notify_abandoned_carts_task():
    logger.info("Abandoned cart reminders task started")

    db = SessionLocal()
    try:
        sent = MaintenanceService(CartRepo(db)).send_abandonment_reminders()
        logger.info(f"Sent {sent} abandoned cart reminders")
        return {"sent": sent}
    finally:
        db.close()
