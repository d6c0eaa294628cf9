"""
Order Repository Integration Tests

OrderRepository and CatalogRepository against a live PostgreSQL. Each test
creates its own rows and removes them afterwards.

Usage:
    pytest tests/integration/order_service -v
"""
import uuid
from datetime import timezone
from decimal import Decimal

import pytest
import pytest_asyncio

from microservices.order_service.catalog_repository import CatalogRepository
from microservices.order_service.models import (
    AuthenticatedUser, OrderDraft, OrderLine, PaymentLinkStatus, ShippingAddress,
)
from microservices.order_service.order_repository import OrderRepository
from tests.contracts.order.data_contract import OrderTestDataFactory

pytestmark = [pytest.mark.integration, pytest.mark.asyncio]


@pytest.fixture
def requester_prefix():
    return f"it_{uuid.uuid4().hex[:8]}_"


@pytest_asyncio.fixture
async def repo(db, requester_prefix):
    repository = OrderRepository(db)
    await repository.ensure_schema()
    repository.requester_prefix = requester_prefix
    yield repository
    await db.execute(
        f"DELETE FROM {repository._table} WHERE requester_key LIKE $1", [f"{requester_prefix}%"]
    )


def make_user_id(repo: OrderRepository) -> str:
    return repo.requester_prefix + OrderTestDataFactory.make_user_id()


async def create_order(repo: OrderRepository, user_id=None, quantity: int = 2):
    product = OrderTestDataFactory.make_catalog_product()
    draft = OrderDraft(
        order_code=await repo.next_order_code(),
        requester=AuthenticatedUser(user_id=user_id or make_user_id(repo)),
        products=[OrderLine(product=product.product_id, name=product.name, quantity=quantity, price=product.price)],
        shipping_address=ShippingAddress(**OrderTestDataFactory.make_shipping_address().model_dump()),
        payment_method="PayOS",
        description=OrderTestDataFactory.make_description(),
        total_price=product.price * quantity,
    )
    return await repo.create_order(draft)


class TestOrderStore:

    async def test_create_and_get_round_trips_document(self, repo):
        order = await create_order(repo)

        stored = await repo.get_order(order.order_id)

        assert stored.order_id == order.order_id
        assert stored.products == order.products
        assert stored.shipping_address == order.shipping_address
        assert stored.total_price == order.total_price
        assert stored.payment_link_status == PaymentLinkStatus.PENDING
        assert stored.payment_attempts == 1

    async def test_set_paid_twice_keeps_paid_at(self, repo):
        order = await create_order(repo)

        first = await repo.set_paid(order.order_id)
        second = await repo.set_paid(order.order_id)

        assert first.is_paid is True
        assert first.paid_at is not None
        assert second.paid_at == first.paid_at

    async def test_set_paid_unknown_order_returns_none(self, repo):
        assert await repo.set_paid(OrderTestDataFactory.make_order_id()) is None

    async def test_soft_deleted_order_hidden_from_listings_but_readable(self, repo):
        user_id = make_user_id(repo)
        kept = await create_order(repo, user_id=user_id)
        deleted = await create_order(repo, user_id=user_id)

        first = await repo.soft_delete(deleted.order_id)
        second = await repo.soft_delete(deleted.order_id)
        listed = await repo.list_orders(limit=200)
        mine = await repo.list_orders_by_requester(user_id)
        direct = await repo.get_order(deleted.order_id)

        listed_ids = {o.order_id for o in listed}
        assert kept.order_id in listed_ids
        assert deleted.order_id not in listed_ids
        assert [o.order_id for o in mine] == [kept.order_id]
        assert direct is not None and direct.is_deleted is True
        assert second.deleted_at == first.deleted_at

    async def test_previous_order_code_still_resolves(self, repo):
        order = await create_order(repo)
        new_code = await repo.next_order_code()

        updated = await repo.update_payment_link(
            order.order_id, PaymentLinkStatus.PENDING,
            order_code=new_code, expected_code=order.order_code,
        )
        by_old = await repo.get_order_by_code(order.order_code)
        by_new = await repo.get_order_by_code(new_code)

        assert updated.order_code == new_code
        assert updated.previous_order_codes == [order.order_code]
        assert updated.payment_attempts == 2
        assert by_old.order_id == order.order_id
        assert by_new.order_id == order.order_id

    async def test_stale_expected_code_claims_nothing(self, repo):
        order = await create_order(repo)
        winner_code = await repo.next_order_code()
        loser_code = await repo.next_order_code()
        await repo.update_payment_link(
            order.order_id, PaymentLinkStatus.PENDING,
            order_code=winner_code, expected_code=order.order_code,
        )

        lost = await repo.update_payment_link(
            order.order_id, PaymentLinkStatus.PENDING,
            order_code=loser_code, expected_code=order.order_code,
        )

        assert lost is None
        stored = await repo.get_order(order.order_id)
        assert stored.order_code == winner_code
        assert await repo.get_order_by_code(loser_code) is None

    async def test_link_created_records_link_id(self, repo):
        order = await create_order(repo)
        link_id = OrderTestDataFactory.make_payment_link_id()

        updated = await repo.update_payment_link(
            order.order_id, PaymentLinkStatus.CREATED, payment_link_id=link_id
        )

        assert updated.payment_link_status == PaymentLinkStatus.CREATED
        assert updated.payment_link_id == link_id
        assert updated.order_code == order.order_code

    async def test_sales_by_date_includes_paid_order(self, repo):
        order = await create_order(repo)
        paid = await repo.set_paid(order.order_id)

        rows = await repo.sales_by_date()

        day = paid.paid_at.astimezone(timezone.utc).strftime("%Y-%m-%d")
        totals = {row.date: row.total_sales for row in rows}
        assert totals[day] >= order.total_price


@pytest_asyncio.fixture
async def catalog(db):
    schema = f"catalog_test_{uuid.uuid4().hex[:8]}"
    await db.execute(f'CREATE SCHEMA "{schema}"')
    await db.execute(f'''
        CREATE TABLE "{schema}".products (
            product_id     TEXT PRIMARY KEY,
            name           TEXT NOT NULL,
            price          NUMERIC NOT NULL,
            count_in_stock INTEGER,
            category_id    TEXT
        )
    ''')
    yield CatalogRepository(db, schema=schema)
    await db.execute(f'DROP SCHEMA "{schema}" CASCADE')


class TestCatalogReader:

    async def test_resolve_many_returns_existing_only(self, db, catalog):
        product = OrderTestDataFactory.make_catalog_product(price=Decimal("125000.50"))
        await db.execute(
            f'INSERT INTO "{catalog.schema}".products (product_id, name, price, count_in_stock) '
            f'VALUES ($1, $2, $3, NULL)',
            [product.product_id, product.name, product.price],
        )
        missing = OrderTestDataFactory.make_unknown_product_id()

        resolved = await catalog.resolve_many({product.product_id, missing})

        assert set(resolved) == {product.product_id}
        assert resolved[product.product_id].price == Decimal("125000.50")
        assert resolved[product.product_id].count_in_stock == 0

    async def test_empty_set_skips_query(self, catalog):
        assert await catalog.resolve_many(set()) == {}


class TestPostgresClient:

    async def test_health_check(self, db):
        assert await db.health_check() is True

    async def test_execute_reports_affected_rows(self, db, catalog):
        product = OrderTestDataFactory.make_catalog_product()
        affected = await db.execute(
            f'INSERT INTO "{catalog.schema}".products (product_id, name, price) VALUES ($1, $2, $3)',
            [product.product_id, product.name, product.price],
        )

        assert affected == 1
