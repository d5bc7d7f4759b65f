"""Shared fixtures: SQLAlchemy models, a seeded aiosqlite database and catalogs."""

from __future__ import annotations

from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy import Float, ForeignKey, Integer, String
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.pool import StaticPool

from apiforge import (
    ApiForgeConfig,
    FieldCatalog,
    InMemoryCacheService,
    SQLAlchemyAccessor,
    VirtualFieldCache,
    VirtualFieldEngine,
)


class Base(DeclarativeBase):
    pass


class UserRecord(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    first_name: Mapped[str] = mapped_column(String(50))
    last_name: Mapped[str] = mapped_column(String(50))
    email: Mapped[str | None] = mapped_column(String(100), nullable=True)
    age: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="active")
    orders: Mapped[list[OrderRecord]] = relationship(back_populates="user")


class OrderRecord(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"))
    total: Mapped[float] = mapped_column(Float)
    user: Mapped[UserRecord] = relationship(back_populates="orders")


class DictRedis:
    """
    Dict-backed stand-in for ``redis.asyncio.Redis``.

    Covers only the calls RedisCacheService makes for reads and batch writes.
    Values are stored as the JSON strings the service sends.
    """

    def __init__(self) -> None:
        self.store: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self.store.get(key)

    async def mget(self, keys: list[str]) -> list[str | None]:
        return [self.store.get(k) for k in keys]

    async def set(self, key: str, value: str) -> None:
        self.store[key] = value

    async def setex(self, key: str, ttl: int, value: str) -> None:
        self.store[key] = value

    def pipeline(self) -> _DictPipeline:
        return _DictPipeline(self)


class _DictPipeline:
    def __init__(self, redis: DictRedis) -> None:
        self._redis = redis
        self._pending: list[tuple[str, str]] = []

    async def __aenter__(self) -> _DictPipeline:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self._pending.clear()

    def set(self, key: str, value: str) -> None:
        self._pending.append((key, value))

    def setex(self, key: str, ttl: int, value: str) -> None:
        self._pending.append((key, value))

    async def execute(self) -> None:
        for key, value in self._pending:
            self._redis.store[key] = value
        self._pending.clear()


# (id, first, last, age, status, order totals)
USERS: list[tuple[int, str, str, int, str, list[float]]] = [
    (1, "John", "Doe", 34, "active", [20.0, 30.0]),
    (2, "Alice", "Brown", 28, "active", [100.0, 200.0]),
    (3, "Joan", "Smith", 45, "inactive", [120.0]),
    (4, "Bob", "Stone", 19, "active", [40.0, 40.0]),
    (5, "Carol", "White", 52, "active", [250.0, 250.0]),
    (6, "Joe", "King", 23, "banned", [10.0]),
    (7, "Dave", "Black", 31, "active", [220.0]),
    (8, "Eve", "Green", 40, "inactive", [400.0, 10.0]),
    (9, "Frank", "Moore", 60, "active", []),
    (10, "Grace", "Hall", 37, "active", [75.0, 75.0]),
]

# ids ranked by total order value, highest first
RANKED_BY_ORDER_VALUE = [5, 8, 2, 7, 10, 3, 4, 1, 6, 9]


def full_name(user: Any, deps: Any) -> str:
    return f"{deps['first_name']} {deps['last_name']}"


def total_orders_value(user: Any, deps: Any) -> float:
    return float(sum(order.total for order in deps["orders"]))


def build_catalog(config: ApiForgeConfig | None = None) -> FieldCatalog:
    config = config or ApiForgeConfig()
    catalog = FieldCatalog(config.field_selection)
    catalog.register_field("id", {"type": "integer"})
    catalog.register_field("first_name", {"type": "string", "searchable": True})
    catalog.register_field("last_name", {"type": "string", "searchable": True})
    catalog.register_field("email", {"type": "string"})
    catalog.register_field("age", {"type": "integer"})
    catalog.register_field(
        "status",
        {"type": "enum", "enum_values": ["active", "inactive", "banned"]},
    )
    catalog.register_virtual_field(
        "full_name",
        {
            "type": "string",
            "compute": full_name,
            "dependencies": ["first_name", "last_name"],
            "cacheable": True,
        },
    )
    catalog.register_virtual_field(
        "total_orders_value",
        {
            "type": "decimal",
            "compute": total_orders_value,
            "relationships": ["orders"],
        },
    )
    return catalog


def build_engine(
    catalog: FieldCatalog, config: ApiForgeConfig | None = None
) -> VirtualFieldEngine:
    config = config or ApiForgeConfig()
    return VirtualFieldEngine(
        catalog,
        accessor=SQLAlchemyAccessor(),
        cache=VirtualFieldCache(InMemoryCacheService()),
        config=config.virtual_fields,
    )


@pytest.fixture
def catalog() -> FieldCatalog:
    return build_catalog()


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False)
    async with factory() as session:
        order_id = 1
        for user_id, first, last, age, status, totals in USERS:
            session.add(
                UserRecord(
                    id=user_id,
                    first_name=first,
                    last_name=last,
                    email=f"{first.lower()}@example.com",
                    age=age,
                    status=status,
                )
            )
            for total in totals:
                session.add(OrderRecord(id=order_id, user_id=user_id, total=total))
                order_id += 1
        await session.commit()

    yield factory
    await engine.dispose()


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session
