from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cart_service.celery_worker import celery_app
from cart_service.data.database import init_db
from cart_service.domain.cart import Cart, CartItem, CartStatus
from cart_service.repos.cart_repo import CartRepo
from cart_service.services.notification_service import send_abandonment_reminder_task, send_cart_converted_task
from cart_service.tasks import maintenance, validation


@pytest.fixture
def session_factory():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    init_db(bind=engine)
    yield sessionmaker(bind=engine, autoflush=False)
    engine.dispose()


def save_cart(session_factory, cart):
    db = session_factory()
    try:
        return CartRepo(db).save(cart)
    finally:
        db.close()


def load_cart(session_factory, cart_id):
    db = session_factory()
    try:
        return CartRepo(db).load(cart_id)
    finally:
        db.close()


def idle_cart(now, hours, **owner):
    at = now - timedelta(hours=hours)
    cart = Cart.create(now=at, **(owner or {"session_id": "s1"}))
    cart.add_line(CartItem(product_id="croissant", product_name="Croissant", quantity=1, unit_price=Decimal("3.50")), at)
    return cart


class TestMaintenanceTasks:
    def test_sweep_task_abandons_idle_carts(self, session_factory, now):
        cart = save_cart(session_factory, idle_cart(now, 25))

        with patch.object(maintenance, "SessionLocal", session_factory):
            result = maintenance.sweep_carts_task()

        assert result["abandoned"] == 1
        assert load_cart(session_factory, cart.id).status == CartStatus.ABANDONED

    def test_reminder_task_dispatches_notifications(self, session_factory, now):
        cart = idle_cart(now, 30, user_id="user-1")
        cart.mark_as_abandoned(now - timedelta(minutes=30))
        save_cart(session_factory, cart)

        with patch.object(maintenance, "SessionLocal", session_factory), patch.object(
            send_abandonment_reminder_task, "delay"
        ) as delay:
            result = maintenance.notify_abandoned_carts_task()

        assert result == {"sent": 1}
        delay.assert_called_once_with("user-1", cart.id, "3.78")

    def test_beat_schedule(self):
        schedule = celery_app.conf.beat_schedule
        assert schedule["sweep-carts"]["task"] == maintenance.sweep_carts_task.name
        assert schedule["abandoned-cart-reminders"]["task"] == maintenance.notify_abandoned_carts_task.name


class TestValidationTask:
    def test_reconciles_prices(self, session_factory, now, products):
        cart = save_cart(session_factory, idle_cart(now, 1))
        products.price_updates["croissant"] = Decimal("3.90")

        with patch.object(validation, "SessionLocal", session_factory), patch.object(
            validation, "ProductClient", return_value=products
        ):
            result = validation.validate_cart_items_task(cart.id)

        assert result == {"cart_id": cart.id, "version": 2}
        assert load_cart(session_factory, cart.id).items[0].unit_price == Decimal("3.90")

    def test_missing_cart_is_skipped(self, session_factory, products):
        with patch.object(validation, "SessionLocal", session_factory), patch.object(
            validation, "ProductClient", return_value=products
        ):
            assert validation.validate_cart_items_task("missing") is None

    def test_schedule_survives_broker_failure(self):
        with patch.object(validation.validate_cart_items_task, "delay", side_effect=ConnectionError("no broker")):
            validation.schedule_cart_validation("c1")


class TestNotificationTasks:
    def test_tasks_report_sent(self):
        assert send_cart_converted_task("user-1", "c1", "o1")["status"] == "sent"
        assert send_abandonment_reminder_task("user-1", "c1", "3.78")["status"] == "sent"
