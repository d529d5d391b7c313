from decimal import Decimal

import pytest

from cart_service.domain.cart import CartStatus
from cart_service.domain.errors import CartNotFound, CartNotModifiable, CartValidationError
from cart_service.services.merge_service import MergeService


@pytest.fixture
def guest_with_items(item_service, guest_cart):
    item_service.add_item_to_cart(guest_cart.id, "croissant", 2)
    item_service.add_item_to_cart(guest_cart.id, "cake", 1)
    return guest_cart


class TestMergeCarts:
    def test_duplicates_are_summed_and_source_deleted(self, merge_service, item_service, store, guest_with_items, user_cart):
        item_service.add_item_to_cart(user_cart.id, "croissant", 3)

        target = merge_service.merge_carts(guest_with_items.id, user_cart.id, delete_source=True)

        quantities = {i.product_id: i.quantity for i in target.active_items}
        assert quantities == {"croissant": 5, "cake": 1}
        assert target.subtotal == Decimal("42.50")
        assert guest_with_items.id not in store.carts
        assert store.load(user_cart.id).total_quantity == 6

    def test_duplicate_sum_is_clamped(self, store, products, item_service, guest_cart, user_cart):
        item_service.add_item_to_cart(guest_cart.id, "croissant", 30)
        item_service.add_item_to_cart(user_cart.id, "croissant", 40)

        target = MergeService(store, max_quantity_per_item=50).merge_carts(guest_cart.id, user_cart.id)

        assert target.active_items[0].quantity == 50

    def test_duplicates_skipped_when_not_handled(self, merge_service, item_service, guest_with_items, user_cart):
        item_service.add_item_to_cart(user_cart.id, "croissant", 3)

        target = merge_service.merge_carts(guest_with_items.id, user_cart.id, handle_duplicates=False)

        quantities = {i.product_id: i.quantity for i in target.active_items}
        assert quantities == {"croissant": 3, "cake": 1}

    def test_source_kept_by_default(self, merge_service, store, guest_with_items, user_cart):
        merge_service.merge_carts(guest_with_items.id, user_cart.id)

        source = store.load(guest_with_items.id)
        assert source.status == CartStatus.ACTIVE
        assert source.total_quantity == 3

    def test_merged_items_are_new_lines(self, merge_service, store, guest_with_items, user_cart):
        target = merge_service.merge_carts(guest_with_items.id, user_cart.id)

        source_ids = {i.id for i in store.load(guest_with_items.id).items}
        assert not source_ids & {i.id for i in target.items}

    def test_saved_and_removed_items_are_not_merged(self, merge_service, item_service, store, guest_with_items, user_cart):
        source = store.load(guest_with_items.id)
        cake = next(i for i in source.items if i.product_id == "cake")
        croissant = next(i for i in source.items if i.product_id == "croissant")
        item_service.save_for_later(cake.id)
        item_service.remove_item(croissant.id)

        target = merge_service.merge_carts(guest_with_items.id, user_cart.id)

        assert target.items == []

    def test_customer_details_fill_only_gaps(self, merge_service, cart_service, guest_with_items, user_cart):
        cart_service.update_cart(guest_with_items.id, customer_name="Guest", customer_email="guest@example.com")
        cart_service.update_cart(user_cart.id, customer_name="Registered")

        target = merge_service.merge_carts(guest_with_items.id, user_cart.id)

        assert target.customer_name == "Registered"
        assert target.customer_email == "guest@example.com"

    def test_merge_into_self_is_rejected(self, merge_service, user_cart):
        with pytest.raises(CartValidationError):
            merge_service.merge_carts(user_cart.id, user_cart.id)

    def test_converted_source_is_rejected(self, merge_service, store, guest_with_items, user_cart):
        source = store.load(guest_with_items.id)
        source.mark_as_converted("order-1")
        store.save(source)

        with pytest.raises(CartValidationError):
            merge_service.merge_carts(guest_with_items.id, user_cart.id)

    def test_target_must_be_active(self, merge_service, cart_service, guest_with_items, user_cart):
        cart_service.save_cart_for_later(user_cart.id)
        with pytest.raises(CartNotModifiable):
            merge_service.merge_carts(guest_with_items.id, user_cart.id)

    def test_missing_source(self, merge_service, user_cart):
        with pytest.raises(CartNotFound):
            merge_service.merge_carts("missing", user_cart.id)


class TestMergeIdempotency:
    def test_repeated_merge_does_not_double_quantities(self, merge_service, store, guest_with_items, user_cart):
        merge_service.merge_carts(guest_with_items.id, user_cart.id)
        target = merge_service.merge_carts(guest_with_items.id, user_cart.id)

        assert {i.product_id: i.quantity for i in target.active_items} == {"croissant": 2, "cake": 1}
        assert target.merged_cart_ids == [guest_with_items.id]

    def test_retry_completes_pending_delete(self, merge_service, store, guest_with_items, user_cart):
        merge_service.merge_carts(guest_with_items.id, user_cart.id, delete_source=False)

        target = merge_service.merge_carts(guest_with_items.id, user_cart.id, delete_source=True)

        assert guest_with_items.id not in store.carts
        assert target.total_quantity == 3

    def test_retry_after_source_deleted_returns_target(self, merge_service, store, guest_with_items, user_cart):
        merge_service.merge_carts(guest_with_items.id, user_cart.id, delete_source=True)

        target = merge_service.merge_carts(guest_with_items.id, user_cart.id, delete_source=True)

        assert target.id == user_cart.id
        assert target.total_quantity == 3

    def test_retry_completes_delete_after_target_saved(self, merge_service, cart_service, store, guest_with_items, user_cart):
        merge_service.merge_carts(guest_with_items.id, user_cart.id, delete_source=False)
        cart_service.save_cart_for_later(user_cart.id)

        target = merge_service.merge_carts(guest_with_items.id, user_cart.id, delete_source=True)

        assert guest_with_items.id not in store.carts
        assert target.status == CartStatus.SAVED

    def test_retry_completes_delete_after_target_converted(
        self, merge_service, checkout_service, store, guest_with_items, user_cart
    ):
        merge_service.merge_carts(guest_with_items.id, user_cart.id, delete_source=False)
        checkout_service.checkout(user_cart.id, {})

        target = merge_service.merge_carts(guest_with_items.id, user_cart.id, delete_source=True)

        assert guest_with_items.id not in store.carts
        assert target.status == CartStatus.CONVERTED

    def test_saved_target_keeps_unmerged_source(self, merge_service, cart_service, store, guest_with_items, user_cart):
        cart_service.save_cart_for_later(user_cart.id)

        with pytest.raises(CartNotModifiable):
            merge_service.merge_carts(guest_with_items.id, user_cart.id, delete_source=True)

        assert guest_with_items.id in store.carts

    def test_merge_is_one_atomic_save(self, merge_service, store, guest_with_items, user_cart):
        store.before_save.append(lambda s, cart: s.bump_version(cart.id))

        target = merge_service.merge_carts(guest_with_items.id, user_cart.id)

        assert target.total_quantity == 3
        assert store.load(user_cart.id).merged_cart_ids == [guest_with_items.id]
