import pytest
from sqlalchemy.exc import OperationalError

from pedidobot.ai.schema import ExtractedOrderOp
from pedidobot.bot.reconciler import apply_operations, load_cart_view, reprice_operations, validate_operations
from pedidobot.models.sale import STATUS_CART, STATUS_CONFIRMED, Sale, SaleItem
from pedidobot.services import cart_store
from pedidobot.services.cart_store import CartPersistenceError
from pedidobot.services.catalog import list_products, seed_catalog
from pedidobot.services.users import find_or_create_user
from tests.fixtures_data import CUSTOMER_PHONE, build_session, flavor_id, product_id


def _op(product, flavor, quantity, subtotal, operation="add"):
    return ExtractedOrderOp(
        product_id=product,
        flavor_id=flavor,
        quantity=quantity,
        subtotal_cents=subtotal,
        operation=operation,
    )


def _setup():
    db = build_session()
    user = find_or_create_user(db, CUSTOMER_PHONE, "Ana")
    return db, user


def test_two_adds_with_same_key_merge_into_one_line():
    db, user = _setup()
    lb460 = product_id(db, "JUMEX LB 460")
    mango = flavor_id(db, "MANGO")

    view = apply_operations(db, user.id, [_op(lb460, mango, 3, 10500), _op(lb460, mango, 2, 7000)])

    assert len(view.lines) == 1
    assert view.lines[0].quantity == 5
    assert view.lines[0].price_cents == 17500
    assert view.total_cents == 17500


def test_add_then_remove_leaves_no_line_for_the_key():
    db, user = _setup()
    lb460 = product_id(db, "JUMEX LB 460")
    mango = flavor_id(db, "MANGO")

    apply_operations(db, user.id, [_op(lb460, mango, 3, 10500)])
    view = apply_operations(db, user.id, [_op(lb460, mango, 3, 0, "remove")])

    assert view.lines == []
    assert view.total_cents == 0


def test_remove_of_missing_key_is_a_silent_no_op():
    db, user = _setup()
    lb460 = product_id(db, "JUMEX LB 460")
    bida = product_id(db, "BIDA 237")

    apply_operations(db, user.id, [_op(lb460, flavor_id(db, "MANGO"), 6, 21000)])
    rows_before = db.query(SaleItem).count()

    view = apply_operations(db, user.id, [_op(bida, flavor_id(db, "UVA"), 12, 0, "remove")])

    assert db.query(SaleItem).count() == rows_before
    assert view.total_cents == 21000


def test_total_is_rederived_from_lines_after_any_sequence():
    db, user = _setup()
    lb460 = product_id(db, "JUMEX LB 460")
    bida = product_id(db, "BIDA 237")
    manzana = flavor_id(db, "MANZANA")
    uva = flavor_id(db, "UVA")

    ops = [
        _op(lb460, manzana, 3, 10500),
        _op(bida, uva, 12, 18000),
        _op(lb460, manzana, 3, 10500),
        _op(bida, uva, 12, 0, "remove"),
        _op(lb460, None, 6, 21000),
    ]
    view = apply_operations(db, user.id, ops)

    sale = db.query(Sale).filter(Sale.id == view.sale.id).one()
    items = db.query(SaleItem).filter(SaleItem.sale_id == sale.id).all()
    assert sale.total_cents == sum(item.price_cents for item in items) == 42000
    assert view.total_cents == 42000
    assert {(item.flavor_id, item.quantity) for item in items} == {(manzana, 6), (None, 6)}


def test_stale_cached_total_is_corrected_on_read():
    db, user = _setup()
    lb460 = product_id(db, "JUMEX LB 460")
    view = apply_operations(db, user.id, [_op(lb460, flavor_id(db, "MANGO"), 6, 21000)])
    view.sale.total_cents = 1
    db.commit()

    refreshed = load_cart_view(db, user.id)

    assert refreshed.total_cents == 21000
    assert db.query(Sale).filter(Sale.id == view.sale.id).one().total_cents == 21000


def test_user_has_at_most_one_open_cart():
    db, user = _setup()
    lb460 = product_id(db, "JUMEX LB 460")

    apply_operations(db, user.id, [_op(lb460, flavor_id(db, "MANGO"), 6, 21000)])
    apply_operations(db, user.id, [_op(lb460, flavor_id(db, "DURAZNO"), 6, 21000)])
    assert db.query(Sale).filter(Sale.user_id == user.id, Sale.status == STATUS_CART).count() == 1

    cart_store.set_status(db, cart_store.get_open_cart(db, user.id), STATUS_CONFIRMED)
    apply_operations(db, user.id, [_op(lb460, flavor_id(db, "MANGO"), 6, 21000)])

    assert db.query(Sale).filter(Sale.user_id == user.id, Sale.status == STATUS_CART).count() == 1
    assert db.query(Sale).filter(Sale.user_id == user.id).count() == 2


def test_store_failure_aborts_remaining_operations(monkeypatch):
    db, user = _setup()
    lb460 = product_id(db, "JUMEX LB 460")
    calls = []
    original_upsert = cart_store.upsert_item

    def flaky_upsert(db_, sale, **kwargs):
        calls.append(kwargs["flavor_id"])
        if len(calls) == 2:
            db_.rollback()
            raise CartPersistenceError("cart upsert failed: disk I/O error")
        return original_upsert(db_, sale, **kwargs)

    monkeypatch.setattr(cart_store, "upsert_item", flaky_upsert)
    ops = [
        _op(lb460, flavor_id(db, "MANZANA"), 2, 7000),
        _op(lb460, flavor_id(db, "MANGO"), 2, 7000),
        _op(lb460, flavor_id(db, "DURAZNO"), 2, 7000),
    ]

    with pytest.raises(CartPersistenceError):
        apply_operations(db, user.id, ops)

    assert len(calls) == 2
    view = load_cart_view(db, user.id)
    assert [line.flavor_name for line in view.lines] == ["MANZANA"]
    assert view.total_cents == 7000


def test_cart_store_wraps_database_errors(monkeypatch):
    db, user = _setup()
    sale = cart_store.find_or_create_open_cart(db, user.id)

    def broken_commit():
        raise OperationalError("UPDATE", {}, Exception("database is locked"))

    monkeypatch.setattr(db, "commit", broken_commit)

    with pytest.raises(CartPersistenceError):
        cart_store.upsert_item(db, sale, product_id=1, flavor_id=None, quantity=1, price_cents=100)


def test_validate_drops_unknown_products_and_foreign_flavors():
    db, _ = _setup()
    products = list_products(db)
    lb460 = product_id(db, "JUMEX LB 460")

    ops = validate_operations(
        [
            _op(lb460, flavor_id(db, "MANGO"), 6, 21000),
            _op(999, None, 6, 21000),
            _op(lb460, flavor_id(db, "UVA"), 6, 21000),
        ],
        products,
    )

    assert [op.flavor_id for op in ops] == [flavor_id(db, "MANGO")]


def test_reprice_uses_catalog_price_and_last_split_remainder():
    db, _ = _setup()
    products = list_products(db)
    jumex125 = product_id(db, "JUMEX 125")

    ops = reprice_operations(
        [
            _op(jumex125, flavor_id(db, "MANZANA"), 5, 11000),
            _op(jumex125, flavor_id(db, "MANGO"), 5, 11000),
        ],
        products,
    )

    assert [op.subtotal_cents for op in ops] == [11900, 11900]
    assert sum(op.subtotal_cents for op in ops) == 23800


def test_flavor_swap_keeps_the_package_price_to_the_cent():
    db, user = _setup()
    seed_catalog(
        db,
        [
            {
                "name": "TRIO",
                "brand": "TRIO",
                "price_cents": 10000,
                "package_size": 3,
                "flavors": ["LIMON", "TAMARINDO", "JAMAICA", "HORCHATA"],
            }
        ],
    )
    products = list_products(db)
    trio = product_id(db, "TRIO")
    limon, tamarindo, jamaica, horchata = (
        flavor_id(db, name) for name in ("LIMON", "TAMARINDO", "JAMAICA", "HORCHATA")
    )

    first = reprice_operations([_op(trio, limon, 1, 0), _op(trio, tamarindo, 1, 0), _op(trio, jamaica, 1, 0)], products)
    view = apply_operations(db, user.id, first, products)
    assert view.total_cents == 10000

    correction = reprice_operations([_op(trio, jamaica, 1, 0, "remove"), _op(trio, horchata, 1, 0)], products)
    view = apply_operations(db, user.id, correction, products)

    assert [(line.flavor_name, line.quantity, line.price_cents) for line in view.lines] == [
        ("LIMON", 1, 3333),
        ("TAMARINDO", 1, 3333),
        ("HORCHATA", 1, 3334),
    ]
    assert view.total_cents == 10000
    assert db.query(Sale).filter(Sale.id == view.sale.id).one().total_cents == 10000
