"""Reusable catalog data and database helpers for the test scenarios."""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pedidobot.core.database import Base
from pedidobot.models.product import Flavor, Product
from pedidobot.services.catalog import seed_catalog
import pedidobot.models  # noqa: F401

CATALOG = [
    {
        "name": "JUMEX LB 460",
        "brand": "JUMEX",
        "price_cents": 21000,
        "package_size": 6,
        "flavors": ["MANZANA", "MANGO", "DURAZNO"],
    },
    {
        "name": "BIDA 237",
        "brand": "BIDA",
        "price_cents": 18000,
        "package_size": 12,
        "flavors": ["MANZANA", "UVA", "FRESA"],
    },
    {
        "name": "JUMEX 125",
        "brand": "JUMEX",
        "price_cents": 23800,
        "package_size": 10,
        "flavors": ["MANZANA", "MANGO"],
    },
]

CUSTOMER_PHONE = "5217771234567"
CUSTOMER_NAME = "Ana"


def build_session(with_catalog: bool = True):
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    if with_catalog:
        seed_catalog(db, CATALOG)
    return db


def product_id(db, name: str) -> int:
    return db.query(Product).filter(Product.name == name).one().id


def flavor_id(db, name: str) -> int:
    return db.query(Flavor).filter(Flavor.name == name).one().id


class ScriptedProvider:
    """Completion provider that answers from a list and records the prompts."""

    name = "scripted"

    def __init__(self, *replies: str) -> None:
        self.replies = list(replies)
        self.calls: list[list[dict]] = []

    def complete(self, messages: list[dict]) -> str:
        self.calls.append(messages)
        if not self.replies:
            return ""
        return self.replies.pop(0)


class FailingProvider:
    name = "failing"

    def __init__(self, exc: Exception | None = None) -> None:
        self.exc = exc or TimeoutError("completion timed out")
        self.calls = 0

    def complete(self, messages: list[dict]) -> str:
        self.calls += 1
        raise self.exc
