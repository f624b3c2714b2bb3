from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from pedidobot.models.sale import STATUS_CART, STATUS_CANCELLED, STATUS_CONFIRMED, Sale, SaleItem

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = {STATUS_CONFIRMED, STATUS_CANCELLED}


class CartPersistenceError(RuntimeError):
    pass


@dataclass
class CartLine:
    product_id: int
    product_name: str
    flavor_id: int | None
    flavor_name: str | None
    quantity: int
    price_cents: int


def _item_key_filter(query, product_id: int, flavor_id: int | None):
    query = query.filter(SaleItem.product_id == product_id)
    if flavor_id is None:
        return query.filter(SaleItem.flavor_id.is_(None))
    return query.filter(SaleItem.flavor_id == flavor_id)


def _rollback(db: Session, action: str, exc: Exception) -> CartPersistenceError:
    db.rollback()
    logger.exception("cart store %s failed", action)
    return CartPersistenceError(f"cart {action} failed: {exc}")


def get_open_cart(db: Session, user_id: int) -> Sale | None:
    return (
        db.query(Sale)
        .filter(Sale.user_id == user_id, Sale.status == STATUS_CART)
        .order_by(Sale.id.desc())
        .first()
    )


def find_or_create_open_cart(db: Session, user_id: int) -> Sale:
    sale = get_open_cart(db, user_id)
    if sale:
        return sale
    try:
        sale = Sale(user_id=user_id, status=STATUS_CART, total_cents=0)
        db.add(sale)
        db.commit()
        db.refresh(sale)
    except IntegrityError as exc:
        # another turn created it first
        db.rollback()
        sale = get_open_cart(db, user_id)
        if sale:
            return sale
        raise _rollback(db, "create", exc) from exc
    except SQLAlchemyError as exc:
        raise _rollback(db, "create", exc) from exc
    logger.info("open cart created sale_id=%s user_id=%s", sale.id, user_id, extra={"sale_id": sale.id})
    return sale


def get_items(db: Session, sale: Sale) -> list[SaleItem]:
    return db.query(SaleItem).filter(SaleItem.sale_id == sale.id).order_by(SaleItem.id.asc()).all()


def get_lines(db: Session, sale: Sale) -> list[CartLine]:
    lines: list[CartLine] = []
    for item in get_items(db, sale):
        lines.append(
            CartLine(
                product_id=item.product_id,
                product_name=item.product.name if item.product else f"Producto {item.product_id}",
                flavor_id=item.flavor_id,
                flavor_name=item.flavor.name if item.flavor else None,
                quantity=int(item.quantity or 0),
                price_cents=int(item.price_cents or 0),
            )
        )
    return lines


def upsert_item(
    db: Session,
    sale: Sale,
    *,
    product_id: int,
    flavor_id: int | None,
    quantity: int,
    price_cents: int,
) -> SaleItem:
    """Add quantity and sub-total to the (product, flavor) row of a cart, creating it if needed."""
    try:
        item = _item_key_filter(db.query(SaleItem).filter(SaleItem.sale_id == sale.id), product_id, flavor_id).first()
        if item:
            item.quantity = int(item.quantity or 0) + quantity
            item.price_cents = int(item.price_cents or 0) + price_cents
        else:
            item = SaleItem(
                sale_id=sale.id,
                product_id=product_id,
                flavor_id=flavor_id,
                quantity=quantity,
                price_cents=price_cents,
            )
            db.add(item)
        db.commit()
    except SQLAlchemyError as exc:
        raise _rollback(db, "upsert", exc) from exc
    return item


def remove_item(db: Session, sale: Sale, *, product_id: int, flavor_id: int | None) -> bool:
    try:
        deleted = _item_key_filter(
            db.query(SaleItem).filter(SaleItem.sale_id == sale.id), product_id, flavor_id
        ).delete(synchronize_session=False)
        db.commit()
    except SQLAlchemyError as exc:
        raise _rollback(db, "remove", exc) from exc
    return bool(deleted)


def set_item_prices(db: Session, prices: dict[int, int]) -> None:
    """Overwrite the sub-total of cart rows, keyed by ``SaleItem.id``."""
    if not prices:
        return
    try:
        for item in db.query(SaleItem).filter(SaleItem.id.in_(list(prices))).all():
            item.price_cents = prices[item.id]
        db.commit()
    except SQLAlchemyError as exc:
        raise _rollback(db, "reprice", exc) from exc


def recalculate_total(db: Session, sale: Sale) -> int:
    try:
        total = (
            db.query(func.coalesce(func.sum(SaleItem.price_cents), 0))
            .filter(SaleItem.sale_id == sale.id)
            .scalar()
        )
        sale.total_cents = int(total or 0)
        db.commit()
        db.refresh(sale)
    except SQLAlchemyError as exc:
        raise _rollback(db, "recalculate", exc) from exc
    return sale.total_cents


def set_status(db: Session, sale: Sale, status: str) -> Sale:
    if status not in TERMINAL_STATUSES | {STATUS_CART}:
        raise ValueError(f"invalid sale status: {status}")
    try:
        sale.status = status
        db.commit()
        db.refresh(sale)
    except SQLAlchemyError as exc:
        raise _rollback(db, "status update", exc) from exc
    logger.info("sale %s -> %s", sale.id, status, extra={"sale_id": sale.id})
    return sale
