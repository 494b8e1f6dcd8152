"""Two-session interleavings against a file-backed SQLite database.

Each test lets a competing request commit between the moment the first
request loads the quote and the moment it writes, then checks that the
committed state is still consistent.
"""

import pytest
from sqlalchemy import select

from printshop.app.routes.common import to_http_exception
from printshop.domain.enums import UserRole
from printshop.domain.errors import ConcurrentUpdateError
from printshop.domain.models import BaseProduct, Category, ProductSize, Quote, QuoteItem, SizeQuantity, User
from printshop.infra.database import Database
from printshop.services.quote_lifecycle import QuoteLifecycleService
from printshop.services.selection import SelectionCommitter


@pytest.fixture
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path}/shared.db")
    await db.init_models()
    yield db
    await db.dispose()


async def _seed(database, status="draft", item_count=0, **quote_kwargs):
    """Insert a customer, a supplier and one quote; return their ids."""
    async with database.session_factory() as session:
        customer = User(
            name="Customer", email="customer@example.com", role="customer", status="active",
            total_rating_points=0, rated_deals_count=0,
        )
        supplier = User(name="Supplier", email="supplier@example.com", role="supplier", status="active")
        category = Category(name="Cards")
        session.add_all([customer, supplier, category])
        await session.flush()
        product = BaseProduct(name="Business Cards", category_id=category.id)
        session.add(product)
        await session.flush()
        size = ProductSize(product_id=product.id, name="85x55mm")
        session.add(size)
        await session.flush()
        unit = SizeQuantity(size_id=size.id, quantity=500)
        session.add(unit)
        await session.flush()
        quote = Quote(
            customer_id=customer.id,
            status=status,
            version=1,
            total_supplier_cost=0.0,
            final_value=0.0,
            **quote_kwargs,
        )
        quote.items = [
            QuoteItem(size_quantity_id=unit.id, quantity=1, customer_price=0.0) for _ in range(item_count)
        ]
        session.add(quote)
        await session.commit()
        return {
            "customer_id": customer.id,
            "supplier_id": supplier.id,
            "unit_id": unit.id,
            "quote_id": quote.id,
            "item_ids": [i.id for i in quote.items],
        }


def _interleave(monkeypatch, store, competing):
    """Run ``competing`` to completion right after ``store`` loads its quote."""
    lock_quote = store.lock_quote

    async def lock_then_compete(quote_id):
        quote = await lock_quote(quote_id)
        await competing()
        return quote

    monkeypatch.setattr(store, "lock_quote", lock_then_compete)


async def _load(database, model, row_id):
    async with database.session_factory() as session:
        return await session.get(model, row_id)


class TestConcurrentRevision:

    async def test_superseded_quote_keeps_a_single_child(self, database, monkeypatch):
        ids = await _seed(database, status="sent")
        quote_id = ids["quote_id"]

        async with database.session_factory() as first, database.session_factory() as second:
            service = QuoteLifecycleService(first)
            _interleave(monkeypatch, service.quotes, lambda: QuoteLifecycleService(second).revise_quote(quote_id))

            with pytest.raises(ConcurrentUpdateError):
                await service.revise_quote(quote_id)

        async with database.session_factory() as session:
            children = (
                await session.execute(select(Quote).where(Quote.parent_quote_id == quote_id))
            ).scalars().all()
        assert [c.version for c in children] == [2]
        assert (await _load(database, Quote, quote_id)).status == "superseded"


class TestConcurrentStatusChange:

    async def test_first_committed_transition_wins(self, database, monkeypatch):
        ids = await _seed(database, status="sent")
        quote_id = ids["quote_id"]

        async with database.session_factory() as first, database.session_factory() as second:
            service = QuoteLifecycleService(first)
            _interleave(
                monkeypatch,
                service.quotes,
                lambda: QuoteLifecycleService(second).reject_quote(quote_id, "Too slow", UserRole.CUSTOMER),
            )

            with pytest.raises(ConcurrentUpdateError):
                await service.update_status(quote_id, "approved", UserRole.CUSTOMER)

        stored = await _load(database, Quote, quote_id)
        assert stored.status == "rejected"
        assert stored.rejection_reason == "Too slow"

    async def test_send_loses_to_concurrent_revision(self, database, monkeypatch):
        ids = await _seed(database, status="draft", item_count=1)
        quote_id = ids["quote_id"]
        async with database.session_factory() as session:
            item = await session.get(QuoteItem, ids["item_ids"][0])
            item.customer_price = 10.0
            await session.commit()

        async with database.session_factory() as first, database.session_factory() as second:
            service = QuoteLifecycleService(first)
            _interleave(monkeypatch, service.quotes, lambda: QuoteLifecycleService(second).revise_quote(quote_id))

            with pytest.raises(ConcurrentUpdateError):
                await service.send_to_customer(quote_id)

        assert (await _load(database, Quote, quote_id)).status == "superseded"


class TestConcurrentRating:

    async def test_customer_totals_counted_once(self, database, monkeypatch):
        ids = await _seed(database, status="approved")
        quote_id = ids["quote_id"]

        async with database.session_factory() as first, database.session_factory() as second:
            service = QuoteLifecycleService(first)
            _interleave(monkeypatch, service.quotes, lambda: QuoteLifecycleService(second).rate_deal(quote_id, 8))

            with pytest.raises(ConcurrentUpdateError):
                await service.rate_deal(quote_id, 6)

        assert (await _load(database, Quote, quote_id)).deal_rating == 8
        customer = await _load(database, User, ids["customer_id"])
        assert (customer.total_rating_points, customer.rated_deals_count) == (8, 1)

    async def test_rerating_after_a_committed_rating_replaces_it(self, database):
        ids = await _seed(database, status="approved")
        quote_id = ids["quote_id"]

        async with database.session_factory() as first, database.session_factory() as second:
            await QuoteLifecycleService(first).rate_deal(quote_id, 8)
            await QuoteLifecycleService(second).rate_deal(quote_id, 6)

        customer = await _load(database, User, ids["customer_id"])
        assert (customer.total_rating_points, customer.rated_deals_count) == (6, 1)


class TestConcurrentSelection:

    async def test_totals_include_both_committed_selections(self, database, monkeypatch):
        ids = await _seed(database, status="draft", item_count=2)
        quote_id, supplier_id, unit_id = ids["quote_id"], ids["supplier_id"], ids["unit_id"]
        first_item, second_item = ids["item_ids"]

        async with database.session_factory() as first, database.session_factory() as second:
            committer = SelectionCommitter(first)
            _interleave(
                monkeypatch,
                committer.quotes,
                lambda: SelectionCommitter(second).select_supplier_for_items(
                    quote_id, supplier_id,
                    [{"quote_item_id": second_item, "size_quantity_id": unit_id, "price_per_unit": 40.0}],
                    markup_percentage=25,
                ),
            )

            result = await committer.select_supplier_for_items(
                quote_id, supplier_id,
                [{"quote_item_id": first_item, "size_quantity_id": unit_id, "price_per_unit": 20.0}],
                markup_percentage=25,
            )

        assert result["totals"]["total_supplier_cost"] == 60.0
        assert result["totals"]["final_value"] == 75.0
        stored = await _load(database, Quote, quote_id)
        assert (stored.total_supplier_cost, stored.final_value) == (60.0, 75.0)


def test_concurrent_update_maps_to_conflict():
    assert to_http_exception(ConcurrentUpdateError("Quote", 1)).status_code == 409
