from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from pedidobot.models.product import Flavor, Product, ProductFlavor

logger = logging.getLogger(__name__)


class CatalogUnavailableError(RuntimeError):
    pass


@dataclass(frozen=True)
class CatalogFlavor:
    id: int
    name: str


@dataclass(frozen=True)
class CatalogProduct:
    id: int
    name: str
    brand: str | None
    price_cents: int
    package_size: int
    flavors: tuple[CatalogFlavor, ...] = field(default_factory=tuple)

    @property
    def flavor_names(self) -> list[str]:
        return [flavor.name for flavor in self.flavors]

    def find_flavor(self, flavor_id: int | None) -> CatalogFlavor | None:
        if flavor_id is None:
            return None
        for flavor in self.flavors:
            if flavor.id == flavor_id:
                return flavor
        return None


def _to_catalog_product(product: Product) -> CatalogProduct:
    flavors = sorted(
        (CatalogFlavor(id=link.flavor.id, name=link.flavor.name) for link in product.flavor_links if link.flavor),
        key=lambda flavor: flavor.id,
    )
    return CatalogProduct(
        id=product.id,
        name=product.name,
        brand=product.brand,
        price_cents=int(product.retail_price_cents or 0),
        package_size=int(product.package_size or 1),
        flavors=tuple(flavors),
    )


def list_products(db: Session) -> list[CatalogProduct]:
    try:
        products = (
            db.query(Product)
            .options(selectinload(Product.flavor_links).selectinload(ProductFlavor.flavor))
            .filter(Product.active.is_(True))
            .order_by(Product.id.asc())
            .all()
        )
    except SQLAlchemyError as exc:
        logger.exception("catalog query failed")
        raise CatalogUnavailableError("catalog unavailable") from exc
    return [_to_catalog_product(product) for product in products]


def group_by_brand(products: list[CatalogProduct]) -> dict[str, list[CatalogProduct]]:
    grouped: dict[str, list[CatalogProduct]] = {}
    for product in products:
        brand = (product.brand or product.name.split(" ")[0]).upper()
        grouped.setdefault(brand, []).append(product)
    return grouped


def seed_catalog(db: Session, entries: list[dict]) -> int:
    """Insert products (and their flavors) that do not exist yet, matched by name.

    Each entry has ``name``, ``brand``, ``price_cents``, ``package_size`` and
    ``flavors`` (a list of flavor names). Returns the number of new products.
    """
    flavors = {flavor.name: flavor for flavor in db.query(Flavor).all()}
    existing = {name for (name,) in db.query(Product.name).all()}

    created = 0
    for entry in entries:
        if entry["name"] in existing:
            continue
        product = Product(
            name=entry["name"],
            brand=entry.get("brand"),
            retail_price_cents=int(entry["price_cents"]),
            package_size=int(entry.get("package_size") or 1),
            active=entry.get("active", True),
        )
        for flavor_name in entry.get("flavors", []):
            flavor_name = flavor_name.strip().upper()
            flavor = flavors.get(flavor_name)
            if flavor is None:
                flavor = Flavor(name=flavor_name)
                db.add(flavor)
                flavors[flavor_name] = flavor
            product.flavor_links.append(ProductFlavor(flavor=flavor))
        db.add(product)
        existing.add(entry["name"])
        created += 1

    db.commit()
    logger.info("catalog seeded new_products=%s", created)
    return created
