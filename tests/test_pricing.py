from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tikprofil.core.database import Base
from tikprofil.models.business import BusinessSettings
from tikprofil.models.product import Product
from tikprofil.schemas.checkout import CheckoutItem
from tikprofil.services.pricing import (
    effective_price,
    expected_delivery_fee,
    lines_subtotal,
    reconcile_total,
    reserve_stock,
    verify_prices,
)
from tests.fixtures_data import seed_catalog

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def db():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    seed_catalog(session)
    try:
        yield session
    finally:
        session.close()


def _item(**overrides) -> CheckoutItem:
    values = {"productId": "p-burger", "name": "Klasik Burger", "basePrice": 100, "quantity": 1}
    values.update(overrides)
    return CheckoutItem.model_validate(values)


def test_effective_price_uses_sale_price_until_it_expires():
    product = Product(
        price=Decimal("100"),
        discount_price=Decimal("80"),
        discount_until=NOW + timedelta(hours=1),
    )

    assert effective_price(product, NOW) == Decimal("80")
    assert effective_price(product, NOW + timedelta(hours=2)) == Decimal("100")


def test_verify_prices_reprices_from_catalog(db):
    lines, errors = verify_prices(
        db,
        1,
        [
            _item(
                quantity=2,
                basePrice=120,
                selectedSize={"id": "large", "name": "Büyük", "priceModifier": 20},
                selectedExtras=[{"id": "cheese", "name": "Cheddar", "price": 10}],
            ),
            _item(productId="p-cola", name="Kola", basePrice=25, quantity=3),
        ],
        NOW,
    )

    assert errors == []
    assert [line.line_total for line in lines] == [Decimal("260.00"), Decimal("75.00")]
    assert lines_subtotal(lines) == Decimal("335.00")
    assert lines[0].to_item_dict()["selectedSize"]["priceModifier"] == 20.0


def test_verify_prices_collects_every_error(db):
    _lines, errors = verify_prices(
        db,
        1,
        [
            _item(basePrice=90),
            _item(productId="p-yok", name="Hayalet"),
            _item(productId="p-pizza", name="Margarita", basePrice=150),
            _item(selectedSize={"id": "xxl", "name": "Dev"}),
            _item(selectedExtras=[{"id": "cheese", "name": "Cheddar", "price": 1}]),
        ],
        NOW,
    )

    assert errors == [
        "Fiyat uyuşmazlığı: Klasik Burger (DB: ₺100.00, Client: ₺90.00)",
        "Ürün bulunamadı: Hayalet (p-yok)",
        "Ürün bu işletmeye ait değil: Margarita",
        "Geçersiz boyut seçimi: Klasik Burger - Dev",
        "Ekstra fiyat uyuşmazlığı: Cheddar (DB: 10, Client: 1.0)",
    ]


def test_verify_prices_accepts_custom_extras_and_tolerance(db):
    lines, errors = verify_prices(
        db,
        1,
        [_item(basePrice=100.004, selectedExtras=[{"id": "sos", "name": "Acı Sos", "price": 5}])],
        NOW,
    )

    assert errors == []
    assert lines[0].unit_price == Decimal("105.00")


def test_out_of_stock_product_is_rejected(db):
    cola = db.get(Product, "p-cola")
    cola.in_stock = False
    db.commit()

    _lines, errors = verify_prices(db, 1, [_item(productId="p-cola", name="Kola", basePrice=25)], NOW)

    assert errors == ["Ürün stokta yok: Kola"]


def test_reserve_stock_decrements_tracked_products_only(db):
    lines, _ = verify_prices(
        db,
        1,
        [_item(quantity=4), _item(productId="p-cola", name="Kola", basePrice=25, quantity=2)],
        NOW,
    )

    assert reserve_stock(db, 1, lines) == []
    db.commit()
    db.expire_all()

    assert db.get(Product, "p-cola").stock == 3
    assert db.get(Product, "p-burger").stock == 0


def test_reserve_stock_sums_duplicate_lines(db):
    lines, _ = verify_prices(
        db,
        1,
        [
            _item(productId="p-cola", name="Kola", basePrice=25, quantity=3),
            _item(productId="p-cola", name="Kola", basePrice=25, quantity=3),
        ],
        NOW,
    )

    assert reserve_stock(db, 1, lines) == ["Yetersiz stok: Kola (İstenen: 6, Mevcut: 5)"]


def test_expected_delivery_fee_rules():
    settings = BusinessSettings(delivery_fee=Decimal("15"), free_delivery_threshold=Decimal("500"))

    assert expected_delivery_fee(None, "delivery", 100) is None
    assert expected_delivery_fee(settings, "pickup", 100) == Decimal("0")
    assert expected_delivery_fee(settings, "delivery", 499.99) == Decimal("15.00")
    assert expected_delivery_fee(settings, "delivery", 500) == Decimal("0")


def test_reconcile_total_tolerance_is_inclusive():
    assert reconcile_total(subtotal=225, delivery_fee=15, discount=22.5, submitted_total=217.51) == (
        True,
        Decimal("217.50"),
    )
    assert reconcile_total(subtotal=225, delivery_fee=15, discount=22.5, submitted_total=217.52)[0] is False
