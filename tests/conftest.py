from datetime import datetime

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from bizdata.main import app
from bizdata.core import models
from bizdata.core.database import Base
from bizdata.core.services import get_dispatcher, get_query_service
from bizdata.ai_feature.service import BusinessQueryService
from bizdata.core.protocol.catalog import Catalog
from bizdata.core.protocol.client import ProtocolClient
from bizdata.core.protocol.dispatcher import ProtocolDispatcher
from bizdata.core.protocol.gateway import DataGateway
from bizdata.core.protocol.intents import IntentClassifier
from bizdata.core.protocol.orchestrator import DataCollector
from bizdata.core.protocol.stores import PrimaryStore, SecondarySnapshot
from bizdata.core.protocol.temporal import TemporalParser

# Every test runs "on" this instant: Wednesday, May 15 2024
NOW = datetime(2024, 5, 15, 10, 0)


def fixed_clock():
    return NOW


class FailingStore:
    """Primary store stand-in that is always down."""

    def __init__(self):
        self.calls = 0

    async def _fail(self, *args, **kwargs):
        self.calls += 1
        raise ConnectionError("primary store unreachable")

    find_customers = _fail
    count_customers = _fail
    find_products = _fail
    count_products = _fail
    find_sales = _fail
    find_expenses = _fail
    expense_totals_by_category = _fail


SNAPSHOT_DATA = {
    "customers": [
        {"id": 1, "name": "Snapshot Co", "email": "snap@example.com", "company": "Snap", "createdAt": "2024-05-01T09:00:00"},
        {"id": 2, "name": "Archive Ltd", "email": "archive@example.com", "company": "Archive", "createdAt": "2023-06-01T09:00:00"},
    ],
    "products": [
        {"id": 1, "name": "Snapshot Lamp", "sku": "S-1", "price": 1000, "stock": 3, "category": "lighting"},
        {"id": 2, "name": "Snapshot Desk", "sku": "S-2", "price": 20000, "stock": 12, "category": "furniture"},
    ],
    "sales": [
        {"id": 1, "amount": 5000, "paymentMethod": "cash", "saleDate": "2024-05-02T12:00:00"},
        {"id": 2, "amount": 7000, "paymentMethod": "credit_card", "saleDate": "2024-05-10T12:00:00"},
        {"id": 3, "amount": 9999, "paymentMethod": "cash", "saleDate": "2023-01-10T12:00:00"},
    ],
    "expenses": [
        {"id": 1, "description": "Rent", "amount": 3000, "category": "rent", "expenseDate": "2024-05-01T09:00:00"},
    ],
}


# Seeded primary database, one fresh file per test
@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'business.db'}", echo=False)
    async with engine.begin() as conn:
        # Create all tables
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with factory() as session:
        tanaka = models.Customer(name="Tanaka Trading", email="tanaka@example.com", company="Tanaka Trading", created_at=datetime(2024, 5, 10))
        sato = models.Customer(name="Sato Design", email="sato@example.com", company="Sato Design", created_at=datetime(2024, 3, 1))
        harbor = models.Customer(name="Blue Harbor", email="harbor@example.com", company="Blue Harbor Cafe", created_at=datetime(2024, 4, 20))
        session.add_all([tanaka, sato, harbor])
        await session.flush()

        session.add_all(
            [
                models.Product(name="Desk Lamp", sku="LMP-1", price=4800, stock=25, category="lighting", is_active=True, created_at=datetime(2024, 1, 5)),
                models.Product(name="Oak Shelf", sku="SHF-1", price=12000, stock=4, category="furniture", is_active=True, created_at=datetime(2024, 2, 10)),
                models.Product(name="Cable Kit", sku="CBL-1", price=900, stock=2, category="accessories", is_active=True, created_at=datetime(2024, 3, 18)),
                models.Product(name="Old Stool", sku="STL-1", price=3000, stock=0, category="furniture", is_active=False, created_at=datetime(2023, 11, 1)),
                models.Sale(customer_id=tanaka.id, product_name="Desk Lamp", amount=9600, payment_method="bank_transfer", sale_date=datetime(2024, 4, 3, 10)),
                models.Sale(customer_id=sato.id, product_name="Oak Shelf", amount=12000, payment_method="credit_card", sale_date=datetime(2024, 4, 21, 16)),
                models.Sale(customer_id=harbor.id, product_name="Cable Kit", amount=1800, payment_method="cash", sale_date=datetime(2024, 5, 8, 12)),
                models.Sale(customer_id=tanaka.id, product_name="Cable Kit", amount=2400, payment_method="cash", sale_date=datetime(2024, 5, 14, 9)),
                models.Sale(customer_id=sato.id, product_name="Desk Lamp", amount=5000, payment_method="cash", sale_date=datetime(2024, 1, 10, 9)),
                models.Expense(description="Office rent", amount=8000, category="rent", payment_method="bank_transfer", expense_date=datetime(2024, 4, 1, 9)),
                models.Expense(description="Shipping", amount=1200, category="logistics", payment_method="credit_card", expense_date=datetime(2024, 5, 6, 9)),
                models.Expense(description="Courier", amount=800, category="logistics", payment_method="cash", expense_date=datetime(2024, 5, 10, 9)),
                models.Expense(description="Office rent", amount=8000, category="rent", payment_method="bank_transfer", expense_date=datetime(2023, 12, 20, 9)),
            ]
        )
        await session.commit()

    yield factory
    # tmp_path cleanup removes the file
    await engine.dispose()


@pytest.fixture
def snapshot():
    return SecondarySnapshot(SNAPSHOT_DATA)


@pytest.fixture
def empty_snapshot():
    return SecondarySnapshot({})


@pytest.fixture
def primary_store(session_factory):
    return PrimaryStore(session_factory)


@pytest.fixture
def gateway(primary_store, snapshot):
    return DataGateway(primary_store, snapshot, primary_timeout=5.0, clock=fixed_clock)


@pytest.fixture
def degraded_gateway(snapshot):
    return DataGateway(FailingStore(), snapshot, primary_timeout=5.0, clock=fixed_clock)


@pytest.fixture
def dispatcher(gateway):
    return ProtocolDispatcher(Catalog(), gateway)


@pytest.fixture
def protocol_client(dispatcher):
    return ProtocolClient(dispatcher, timeout=5.0)


@pytest.fixture
def collector(protocol_client):
    return DataCollector(protocol_client, clock=fixed_clock)


@pytest.fixture
def query_service(collector, protocol_client):
    return BusinessQueryService(
        classifier=IntentClassifier.for_locales(["en", "ja"]),
        temporal_parser=TemporalParser.for_locales(["en", "ja"]),
        collector=collector,
        client=protocol_client,
    )


# Client
@pytest_asyncio.fixture(scope="function")
async def client(dispatcher, query_service):
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_query_service] = lambda: query_service

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
