from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from pedidobot.ai.schema import ExtractedOrderOp
from pedidobot.models.sale import Sale
from pedidobot.services import cart_store
from pedidobot.services.cart_store import CartLine, CartPersistenceError
from pedidobot.services.catalog import CatalogProduct
from pedidobot.services.pricing import split_package_price

logger = logging.getLogger(__name__)


@dataclass
class CartView:
    sale: Sale | None
    lines: list[CartLine]
    total_cents: int

    @property
    def is_empty(self) -> bool:
        return not self.lines or self.total_cents <= 0


def load_cart_view(db: Session, user_id: int) -> CartView:
    """Open cart of a user with its total derived from the stored line items."""
    sale = cart_store.get_open_cart(db, user_id)
    if not sale:
        return CartView(sale=None, lines=[], total_cents=0)
    lines = cart_store.get_lines(db, sale)
    total = sum(line.price_cents for line in lines)
    if total != sale.total_cents:
        logger.warning("stale cart total sale_id=%s cached=%s actual=%s", sale.id, sale.total_cents, total)
        cart_store.recalculate_total(db, sale)
    return CartView(sale=sale, lines=lines, total_cents=total)


def validate_operations(ops: list[ExtractedOrderOp], products: list[CatalogProduct]) -> list[ExtractedOrderOp]:
    """Drop operations on unknown products or flavors not sold for that product."""
    by_id = {product.id: product for product in products}
    valid: list[ExtractedOrderOp] = []
    for op in ops:
        product = by_id.get(op.product_id)
        if not product:
            logger.warning("operation dropped: unknown product_id=%s", op.product_id)
            continue
        if op.flavor_id is not None and product.flavors and not product.find_flavor(op.flavor_id):
            logger.warning("operation dropped: flavor_id=%s not sold for product_id=%s", op.flavor_id, op.product_id)
            continue
        valid.append(op)
    return valid


def reprice_operations(ops: list[ExtractedOrderOp], products: list[CatalogProduct]) -> list[ExtractedOrderOp]:
    """Recompute add sub-totals from the catalog price.

    All ``add`` operations of one product in a turn are priced together with
    :func:`split_package_price`, so flavor splits of a package add up to the
    package price to the cent. Pieces that do not complete whole packages are
    logged and priced per piece.
    """
    by_id = {product.id: product for product in products}
    groups: dict[int, list[int]] = {}
    for index, op in enumerate(ops):
        if op.operation == "add" and op.product_id in by_id:
            groups.setdefault(op.product_id, []).append(index)

    repriced = list(ops)
    for product_id, indexes in groups.items():
        product = by_id[product_id]
        quantities = [ops[index].quantity for index in indexes]
        if sum(quantities) % product.package_size:
            logger.warning(
                "incomplete package product_id=%s pieces=%s package_size=%s",
                product_id,
                sum(quantities),
                product.package_size,
            )
        prices = split_package_price(product.price_cents, product.package_size, quantities)
        for index, price_cents in zip(indexes, prices):
            if ops[index].subtotal_cents != price_cents:
                logger.info(
                    "subtotal corrected product_id=%s flavor_id=%s model=%s catalog=%s",
                    product_id,
                    ops[index].flavor_id,
                    ops[index].subtotal_cents,
                    price_cents,
                )
                repriced[index] = ops[index].model_copy(update={"subtotal_cents": price_cents})
    return repriced


def rebalance_product_lines(db: Session, sale: Sale, product: CatalogProduct) -> None:
    """Split the package price of ``product`` across all of its lines in the cart.

    Lines are priced together in insertion order with
    :func:`split_package_price`, so flavor splits left over from earlier turns
    and corrections still add up to the package price to the cent.
    """
    items = [item for item in cart_store.get_items(db, sale) if item.product_id == product.id]
    if not items:
        return
    quantities = [int(item.quantity or 0) for item in items]
    prices = split_package_price(product.price_cents, product.package_size, quantities)
    changes = {item.id: price for item, price in zip(items, prices) if int(item.price_cents or 0) != price}
    if changes:
        logger.info("cart lines repriced product_id=%s lines=%s", product.id, len(changes), extra={"sale_id": sale.id})
        cart_store.set_item_prices(db, changes)


def apply_operations(
    db: Session,
    user_id: int,
    ops: list[ExtractedOrderOp],
    products: list[CatalogProduct] | None = None,
) -> CartView:
    """Apply operations in order to the user's open cart and return the refreshed cart.

    When ``products`` is given, every product touched by the operations is
    repriced across all of its cart lines afterwards. A store failure stops at
    the failing operation and raises ``CartPersistenceError``; earlier
    operations stay applied.
    """
    sale = cart_store.find_or_create_open_cart(db, user_id)
    by_id = {product.id: product for product in products or []}

    applied = 0
    touched: list[int] = []
    try:
        for op in ops:
            if op.operation == "remove":
                removed = cart_store.remove_item(db, sale, product_id=op.product_id, flavor_id=op.flavor_id)
                if not removed:
                    logger.info("remove ignored, no line product_id=%s flavor_id=%s", op.product_id, op.flavor_id)
            else:
                cart_store.upsert_item(
                    db,
                    sale,
                    product_id=op.product_id,
                    flavor_id=op.flavor_id,
                    quantity=op.quantity,
                    price_cents=op.subtotal_cents,
                )
            if op.product_id not in touched:
                touched.append(op.product_id)
            applied += 1
        for product_id in touched:
            if product_id in by_id:
                rebalance_product_lines(db, sale, by_id[product_id])
        cart_store.recalculate_total(db, sale)
    except CartPersistenceError:
        logger.warning(
            "cart reconciliation aborted sale_id=%s applied=%s of %s", sale.id, applied, len(ops), extra={"sale_id": sale.id}
        )
        raise

    lines = cart_store.get_lines(db, sale)
    return CartView(sale=sale, lines=lines, total_cents=sale.total_cents)
