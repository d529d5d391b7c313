from datetime import timedelta
from decimal import Decimal

import pytest

from cart_service.domain.cart import USER_CART_TTL, Cart, CartItem, CartStatus
from cart_service.domain.errors import CartNotFound, CartNotModifiable, CartValidationError, OwnershipConflict


def idle_cart(now, hours, **owner):
    cart = Cart.create(now=now - timedelta(hours=hours), **owner)
    item = CartItem(product_id="croissant", product_name="Croissant", quantity=1, unit_price=Decimal("3.50"))
    cart.add_line(item, now - timedelta(hours=hours))
    return cart


class TestFindOrCreate:
    def test_user_cart_is_reused(self, cart_service, store):
        first = cart_service.get_or_create_for_user("user-7")
        second = cart_service.get_or_create_for_user("user-7")

        assert first.id == second.id
        assert len(store.carts) == 1
        assert not first.is_guest

    def test_session_cart_is_reused(self, cart_service):
        cart = cart_service.get_or_create_for_session("abc")

        assert cart.is_guest
        assert cart.session_id == "abc"
        assert cart_service.get_or_create_for_session("abc").id == cart.id

    def test_user_wins_when_both_ids_given(self, cart_service):
        cart = cart_service.create_cart(user_id="user-7", session_id="abc", source="WEB")

        assert cart.user_id == "user-7"
        assert cart.session_id is None
        assert cart.source == "WEB"

    def test_owner_is_required(self, cart_service):
        with pytest.raises(CartValidationError):
            cart_service.create_cart()

    def test_abandoned_cart_is_not_reused(self, cart_service, store, now):
        old = store.put(idle_cart(now, 30, user_id="user-7"))

        fresh = cart_service.get_or_create_for_user("user-7")

        assert fresh.id != old.id
        assert store.load(old.id).status == CartStatus.ABANDONED
        assert fresh.status == CartStatus.ACTIVE

    def test_saved_cart_is_reactivated(self, cart_service, store):
        saved = cart_service.save_cart_for_later(cart_service.get_or_create_for_user("user-7").id)

        cart = cart_service.get_or_create_for_user("user-7")

        assert cart.id == saved.id
        assert cart.status == CartStatus.ACTIVE
        assert len(store.carts) == 1

    def test_active_cart_wins_over_saved(self, cart_service, store):
        saved = cart_service.save_cart_for_later(cart_service.get_or_create_for_session("abc").id)
        active = store.put(Cart.create(session_id="abc"))

        assert cart_service.get_or_create_for_session("abc").id == active.id
        assert store.load(saved.id).status == CartStatus.SAVED

    def test_expired_saved_cart_is_not_reused(self, cart_service, store, now):
        old = idle_cart(now, 0, session_id="abc")
        old.mark_as_saved(now - timedelta(hours=25))
        store.put(old)

        fresh = cart_service.get_or_create_for_session("abc")

        assert fresh.id != old.id
        assert store.load(old.id).status == CartStatus.EXPIRED


class TestCartCommands:
    def test_get_missing_cart(self, cart_service):
        with pytest.raises(CartNotFound):
            cart_service.get_cart("nope")

    def test_get_cart_applies_lazy_abandonment(self, cart_service, store, now):
        cart = store.put(idle_cart(now, 25, session_id="s"))

        assert cart_service.get_cart(cart.id).status == CartStatus.ABANDONED
        assert store.load(cart.id).status == CartStatus.ABANDONED

    def test_get_cart_for_recent_cart_does_not_write(self, cart_service, store, now):
        cart = store.put(idle_cart(now, 1, session_id="s"))
        saves = store.save_count

        assert cart_service.get_cart(cart.id).status == CartStatus.ACTIVE
        assert store.save_count == saves

    def test_update_details(self, cart_service, user_cart):
        cart = cart_service.update_cart(user_cart.id, customer_name="Ann", delivery_type="PICKUP", discount_amount=None)

        assert cart.customer_name == "Ann"
        assert cart.delivery_type == "PICKUP"

    def test_attach_user_extends_expiry(self, cart_service, guest_cart):
        cart = cart_service.attach_user(guest_cart.id, "user-3")

        assert cart.user_id == "user-3"
        assert cart.expires_at == cart.last_activity_at + USER_CART_TTL

    def test_attach_user_cannot_change_owner(self, cart_service, user_cart):
        with pytest.raises(OwnershipConflict):
            cart_service.attach_user(user_cart.id, "someone-else")

    def test_attach_user_rejected_for_converted_cart(self, cart_service, store, now):
        cart = idle_cart(now, 0, session_id="s")
        cart.mark_as_converted("order-1", now)
        store.put(cart)

        with pytest.raises(CartNotModifiable):
            cart_service.attach_user(cart.id, "user-3")

    def test_clear_cart(self, cart_service, store, now):
        cart = store.put(idle_cart(now, 0, user_id="u"))

        cleared = cart_service.clear_cart(cart.id)

        assert cleared.is_empty
        assert cleared.subtotal == Decimal("0")
        assert all(i.is_removed for i in cleared.items)

    def test_save_and_reactivate(self, cart_service, store, now):
        cart = store.put(idle_cart(now, 0, user_id="u"))

        assert cart_service.save_cart_for_later(cart.id).status == CartStatus.SAVED
        assert cart_service.reactivate_cart(cart.id).status == CartStatus.ACTIVE

    def test_list_user_carts(self, cart_service, store):
        store.put(Cart.create(user_id="user-5"))
        store.put(Cart.create(user_id="user-5"))
        store.put(Cart.create(user_id="user-6"))

        assert len(cart_service.list_user_carts("user-5")) == 2


class TestAdminQueries:
    def test_list_by_status_newest_first(self, cart_service, store, now):
        older = store.put(idle_cart(now, 3, user_id="u1"))
        newer = store.put(idle_cart(now, 1, user_id="u2"))
        converted = idle_cart(now, 0, user_id="u3")
        converted.mark_as_converted("order-1", now)
        store.put(converted)

        active = cart_service.list_carts_by_status(CartStatus.ACTIVE)

        assert [c.id for c in active] == [newer.id, older.id]
        assert [c.id for c in cart_service.list_carts_by_status(CartStatus.CONVERTED)] == [converted.id]

    def test_list_carts_pages(self, cart_service, store, now):
        carts = [store.put(idle_cart(now, hours, session_id=f"s{hours}")) for hours in (3, 2, 1)]

        first, total = cart_service.list_carts(page=0, size=2)
        second, _ = cart_service.list_carts(page=1, size=2)

        assert total == 3
        assert [c.id for c in first] == [carts[2].id, carts[1].id]
        assert [c.id for c in second] == [carts[0].id]

    def test_list_carts_rejects_bad_paging(self, cart_service):
        with pytest.raises(CartValidationError):
            cart_service.list_carts(page=-1)
        with pytest.raises(CartValidationError):
            cart_service.list_carts(size=0)

    def test_statistics_default_to_last_30_days(self, cart_service, store, now):
        store.put(idle_cart(now, 24 * 40, user_id="u1"))
        recent = idle_cart(now, 1, user_id="u2")
        recent.mark_as_converted("order-1", now)
        store.put(recent)

        stats = cart_service.get_statistics()

        assert stats.end - stats.start == timedelta(days=30)
        assert stats.total_carts == 1
        assert stats.converted_carts == 1
        assert stats.conversion_rate == Decimal("100.00")

    def test_statistics_for_explicit_naive_range(self, cart_service, store, now):
        store.put(idle_cart(now, 24 * 40, user_id="u1"))
        start = (now - timedelta(days=41)).replace(tzinfo=None)

        stats = cart_service.get_statistics(start, now.replace(tzinfo=None))

        assert stats.total_carts == 1
        assert stats.start.tzinfo is not None

    def test_statistics_reject_inverted_range(self, cart_service, now):
        with pytest.raises(CartValidationError):
            cart_service.get_statistics(now, now - timedelta(days=1))
