from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cart_service.data.database import init_db
from cart_service.domain.cart import Cart, CartItem, CartItemStatus, CartStatus
from cart_service.domain.errors import CartItemNotFound, CartNotFound, ConcurrencyConflict
from cart_service.repos.cart_repo import CartRepo


@pytest.fixture
def session_factory():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    init_db(bind=engine)
    yield sessionmaker(bind=engine, autoflush=False)
    engine.dispose()


@pytest.fixture
def repo(session_factory):
    db = session_factory()
    yield CartRepo(db)
    db.close()


def line(product_id, price="3.50", quantity=1):
    return CartItem(product_id=product_id, product_name=product_id.title(), quantity=quantity, unit_price=Decimal(price))


def stored_cart(repo, now, **owner):
    cart = Cart.create(now=now, **owner)
    cart.add_line(line("croissant", quantity=2), now)
    return repo.save(cart)


class TestSaveAndLoad:
    def test_round_trip(self, repo, now):
        cart = Cart.create(user_id="user-1", now=now, customer_name="Ann", metadata='{"a": 1}')
        cart.add_line(line("croissant", quantity=2), now)
        cart.merged_cart_ids.append("old-cart")
        repo.save(cart)

        loaded = repo.load(cart.id)

        assert loaded.version == 1
        assert loaded.customer_name == "Ann"
        assert loaded.metadata == '{"a": 1}'
        assert loaded.merged_cart_ids == ["old-cart"]
        assert loaded.subtotal == Decimal("7.00")
        assert loaded.last_activity_at == now
        assert loaded.last_activity_at.tzinfo is not None
        assert [(i.product_id, i.quantity, i.unit_price) for i in loaded.items] == [
            ("croissant", 2, Decimal("3.50"))
        ]

    def test_missing_cart(self, repo):
        with pytest.raises(CartNotFound):
            repo.load("missing")

    def test_update_syncs_items(self, repo, now):
        cart = stored_cart(repo, now, user_id="user-1")
        cart.add_line(line("cake", "25.00"), now)
        cart.items[0].set_quantity(4, now)
        repo.save(cart)

        loaded = repo.load(cart.id)
        assert loaded.version == 2
        assert {i.product_id: i.quantity for i in loaded.items} == {"croissant": 4, "cake": 1}

    def test_items_dropped_from_aggregate_are_deleted(self, repo, now):
        cart = stored_cart(repo, now, user_id="user-1")
        cart.items = []
        cart.recompute_totals()
        repo.save(cart)

        assert repo.load(cart.id).items == []

    def test_stale_version_is_rejected(self, session_factory, now):
        first, second = CartRepo(session_factory()), CartRepo(session_factory())
        cart = stored_cart(first, now, user_id="user-1")

        a = first.load(cart.id)
        b = second.load(cart.id)
        a.update_details(customer_name="A")
        first.save(a)

        b.update_details(customer_name="B")
        with pytest.raises(ConcurrencyConflict):
            second.save(b)
        assert first.load(cart.id).customer_name == "A"

    def test_delete_requires_current_version(self, repo, now):
        cart = stored_cart(repo, now, user_id="user-1")
        stale = repo.load(cart.id)
        cart.update_details(customer_name="X")
        repo.save(cart)

        with pytest.raises(ConcurrencyConflict):
            repo.delete(stale)

        repo.delete(cart)
        with pytest.raises(CartNotFound):
            repo.load(cart.id)


class TestQueries:
    def test_load_by_item(self, repo, now):
        cart = stored_cart(repo, now, user_id="user-1")

        assert repo.load_by_item(cart.items[0].id).id == cart.id
        with pytest.raises(CartItemNotFound):
            repo.load_by_item("missing")

    def test_active_cart_by_owner(self, repo, now):
        converted = stored_cart(repo, now - timedelta(hours=1), user_id="user-1")
        converted.mark_as_converted("order-1", now)
        repo.save(converted)
        active = stored_cart(repo, now, user_id="user-1")
        guest = stored_cart(repo, now, session_id="sess")

        assert repo.load_by_user("user-1").id == active.id
        assert repo.load_by_session("sess").id == guest.id
        assert repo.load_by_user("nobody") is None
        assert [c.id for c in repo.list_by_user("user-1")] == [active.id, converted.id]

    def test_saved_cart_by_owner(self, repo, now):
        saved = stored_cart(repo, now, user_id="user-2")
        saved.mark_as_saved(now)
        repo.save(saved)

        assert repo.load_by_user("user-2") is None
        assert repo.load_by_user("user-2", CartStatus.SAVED).id == saved.id

    def test_maintenance_queries(self, repo, now):
        idle = stored_cart(repo, now - timedelta(hours=30), user_id="u1")
        empty = repo.save(Cart.create(session_id="s1", now=now - timedelta(hours=2)))
        overdue = repo.save(Cart.create(session_id="s2", now=now - timedelta(hours=25)))
        abandoned = stored_cart(repo, now - timedelta(days=10), user_id="u2")
        abandoned.mark_as_abandoned(now - timedelta(days=8))
        repo.save(abandoned)

        assert [c.id for c in repo.find_abandonment_candidates(now - timedelta(hours=24))] == [idle.id]
        assert [c.id for c in repo.find_expirable(now)] == [overdue.id]
        assert [c.id for c in repo.find_terminal_before(now - timedelta(days=7))] == [abandoned.id]
        assert {c.id for c in repo.find_empty_before(now - timedelta(hours=1))} == {empty.id, overdue.id}
        assert repo.find_recently_abandoned(now - timedelta(hours=2)) == []

    def test_saved_items_keep_cart_out_of_empty_query(self, repo, now):
        cart = Cart.create(user_id="u1", now=now - timedelta(hours=2))
        cart.add_line(line("croissant"), now - timedelta(hours=2))
        cart.items[0].save_for_later(now - timedelta(hours=2))
        cart.recompute_totals()
        repo.save(cart)

        assert repo.find_empty_before(now - timedelta(hours=1)) == []


class TestPurge:
    def test_purges_old_removed_items_and_bumps_version(self, repo, now):
        cart = stored_cart(repo, now, user_id="u1")
        cart.add_line(line("cake", "25.00"), now)
        cart.items[0].remove(now - timedelta(days=31))
        cart.recompute_totals()
        repo.save(cart)

        assert repo.purge_removed_items(now - timedelta(days=30)) == 1

        loaded = repo.load(cart.id)
        assert [i.product_id for i in loaded.items] == ["cake"]
        assert loaded.items[0].status == CartItemStatus.ACTIVE
        assert loaded.version == cart.version + 1
        with pytest.raises(ConcurrencyConflict):
            repo.save(cart)

    def test_recent_removed_items_are_kept(self, repo, now):
        cart = stored_cart(repo, now, user_id="u1")
        cart.items[0].remove(now - timedelta(days=2))
        cart.recompute_totals()
        repo.save(cart)

        assert repo.purge_removed_items(now - timedelta(days=30)) == 0
        assert repo.load(cart.id).items[0].status == CartItemStatus.REMOVED
        assert repo.load(cart.id).status == CartStatus.ACTIVE


class TestAdminQueries:
    def test_list_by_status(self, repo, now):
        older = stored_cart(repo, now - timedelta(hours=2), user_id="u1")
        newer = stored_cart(repo, now - timedelta(hours=1), session_id="s1")
        converted = stored_cart(repo, now, user_id="u2")
        converted.mark_as_converted("order-1", now)
        repo.save(converted)

        assert [c.id for c in repo.list_by_status(CartStatus.ACTIVE)] == [newer.id, older.id]
        assert [c.id for c in repo.list_by_status(CartStatus.CONVERTED)] == [converted.id]
        assert repo.list_by_status(CartStatus.EXPIRED) == []

    def test_list_page(self, repo, now):
        carts = [stored_cart(repo, now - timedelta(hours=h), session_id=f"s{h}") for h in (3, 2, 1)]

        page, total = repo.list_page(0, 2)
        last, _ = repo.list_page(1, 2)

        assert total == 3
        assert [c.id for c in page] == [carts[2].id, carts[1].id]
        assert [c.id for c in last] == [carts[0].id]
        assert last[0].items[0].product_id == "croissant"

    def test_figures_between(self, repo, now):
        stored_cart(repo, now - timedelta(days=40), user_id="u1")
        recent = Cart.create(session_id="s1", now=now - timedelta(days=1), source="WEB")
        recent.add_line(line("cake", "25.00"), now - timedelta(days=1))
        repo.save(recent)

        figures = repo.figures_between(now - timedelta(days=30), now)

        assert len(figures) == 1
        assert figures[0].status == CartStatus.ACTIVE
        assert figures[0].source == "WEB"
        assert figures[0].item_count == 1
        assert figures[0].total_amount == Decimal("27.00")
        assert figures[0].created_at.tzinfo is not None
