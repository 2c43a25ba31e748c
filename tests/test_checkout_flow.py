from decimal import Decimal
from unittest.mock import patch

import httpx
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tikprofil.core import request_context
from tikprofil.core.database import Base, get_db
from tikprofil.core.rate_limiter import InMemoryRateLimiterService
from tikprofil.middleware.observability import ObservabilityMiddleware
from tikprofil.models.business import BusinessSettings
from tikprofil.models.coupon import Coupon, CouponUsage
from tikprofil.models.order import Order
from tikprofil.models.product import Product
from tikprofil.routers import checkout as checkout_router
from tikprofil.services import checkout as checkout_service
from tikprofil.services import notifications
import tikprofil.services.event_handlers  # noqa: F401
from tests.fixtures_data import (
    CUSTOMER_PHONE,
    FREE_DELIVERY_COUPON,
    PERCENT_COUPON,
    checkout_payload,
    make_coupon,
    seed_catalog,
)

CHECKOUT_URL = "/api/fastfood/checkout"


def _build_client(monkeypatch, *, limiter=None, with_settings=True):
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    seed_catalog(db, with_settings=with_settings)

    monkeypatch.setattr(
        checkout_router,
        "checkout_rate_limiter",
        limiter or InMemoryRateLimiterService(limit=100, window_seconds=600),
    )

    app = FastAPI()
    app.add_middleware(ObservabilityMiddleware)
    app.include_router(checkout_router.router)
    app.dependency_overrides[get_db] = lambda: db

    return TestClient(app), db


def _add_coupon(db, **overrides) -> Coupon:
    coupon = make_coupon(**overrides)
    db.add(coupon)
    db.commit()
    db.refresh(coupon)
    return coupon


def _cola_stock(db) -> int:
    db.expire_all()
    return db.get(Product, "p-cola").stock


def test_checkout_happy_path_persists_pending_order(monkeypatch):
    client, db = _build_client(monkeypatch)

    response = client.post(CHECKOUT_URL, json=checkout_payload(), headers={"User-Agent": "pytest-agent"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["total"] == 240.0
    assert body["discountAmount"] == 0.0
    assert body["message"] == "Siparişiniz başarıyla alındı"
    assert response.headers["X-RateLimit-Limit"] == "100"
    assert response.headers["X-RateLimit-Remaining"] == "99"
    assert response.headers["X-Request-ID"]

    order = db.query(Order).filter(Order.id == body["orderId"]).one()
    assert order.status == "pending"
    assert [entry["status"] for entry in order.status_history] == ["pending"]
    assert order.customer_phone == CUSTOMER_PHONE
    assert order.customer_email == "ayse@example.com"
    assert order.subtotal == Decimal("225.00")
    assert order.delivery_fee == Decimal("15.00")
    assert order.total == Decimal("240.00")
    assert order.price_verified is True
    assert order.user_agent == "pytest-agent"
    assert order.qr_code.startswith("burger-istanbul-")
    assert order.items[0]["name"] == "Klasik Burger"
    assert order.items[0]["lineTotal"] == 200.0
    assert _cola_stock(db) == 4


def test_checkout_with_percentage_coupon_records_usage(monkeypatch):
    client, db = _build_client(monkeypatch)
    coupon = _add_coupon(db, **PERCENT_COUPON)

    payload = checkout_payload(couponCode="indirim10", discountAmount=22.5, total=217.5)
    response = client.post(CHECKOUT_URL, json=payload)

    assert response.status_code == 200
    body = response.json()
    assert body["discountAmount"] == 22.5
    assert body["total"] == 217.5

    db.expire_all()
    assert db.get(Coupon, coupon.id).current_usage_count == 1
    usage = db.query(CouponUsage).one()
    assert usage.order_id == body["orderId"]
    assert usage.code == "INDIRIM10"
    assert usage.customer_phone == CUSTOMER_PHONE
    assert usage.discount_amount == Decimal("22.50")

    order = db.get(Order, body["orderId"])
    assert order.coupon_id == coupon.id
    assert order.coupon_snapshot == {
        "id": coupon.id,
        "code": "INDIRIM10",
        "discountType": "percentage",
        "discountValue": 10.0,
    }


def test_free_delivery_coupon_discounts_the_delivery_fee(monkeypatch):
    client, db = _build_client(monkeypatch)
    _add_coupon(db, **FREE_DELIVERY_COUPON)

    response = client.post(CHECKOUT_URL, json=checkout_payload(couponCode="KARGO", discountAmount=15, total=225))

    assert response.status_code == 200
    assert response.json()["total"] == 225.0
    assert response.json()["discountAmount"] == 15.0


def test_total_mismatch_is_rejected_without_side_effects(monkeypatch):
    client, db = _build_client(monkeypatch)
    coupon = _add_coupon(db, **PERCENT_COUPON)

    # client ignores the coupon discount but stays self-consistent
    response = client.post(CHECKOUT_URL, json=checkout_payload(couponCode="INDIRIM10"))

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Toplam tutar uyuşmazlığı"}
    assert db.query(Order).count() == 0
    assert db.query(CouponUsage).count() == 0
    db.expire_all()
    assert db.get(Coupon, coupon.id).current_usage_count == 0
    assert _cola_stock(db) == 5


def test_exhausted_coupon_is_rejected(monkeypatch):
    client, db = _build_client(monkeypatch)
    _add_coupon(db, **PERCENT_COUPON, max_usage_count=3, current_usage_count=3)

    response = client.post(CHECKOUT_URL, json=checkout_payload(couponCode="INDIRIM10", discountAmount=22.5, total=217.5))

    assert response.status_code == 400
    assert response.json()["error"] == "Bu kupon kullanım limitine ulaşmış"
    assert db.query(Order).count() == 0
    assert _cola_stock(db) == 5


def test_unknown_coupon_code_is_rejected(monkeypatch):
    client, db = _build_client(monkeypatch)

    response = client.post(CHECKOUT_URL, json=checkout_payload(couponCode="YOKBOYLE", discountAmount=10, total=230))

    assert response.status_code == 400
    assert response.json()["error"] == "Geçersiz kupon kodu"


def test_unknown_business_returns_404(monkeypatch):
    client, _db = _build_client(monkeypatch)

    response = client.post(CHECKOUT_URL, json=checkout_payload(businessSlug="olmayan-isletme"))

    assert response.status_code == 404
    assert response.json()["error"] == "İşletme bulunamadı"


def test_business_slug_is_matched_case_insensitively(monkeypatch):
    client, _db = _build_client(monkeypatch)

    response = client.post(CHECKOUT_URL, json=checkout_payload(businessSlug="Burger-Istanbul"))

    assert response.status_code == 200


def test_malformed_json_returns_400(monkeypatch):
    client, _db = _build_client(monkeypatch)

    response = client.post(CHECKOUT_URL, content=b"{not json", headers={"Content-Type": "application/json"})

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Geçersiz istek formatı"}


def test_schema_violation_returns_first_message(monkeypatch):
    client, _db = _build_client(monkeypatch)

    missing_address = client.post(CHECKOUT_URL, json=checkout_payload(delivery={"type": "delivery", "address": "kısa"}))
    missing_table = client.post(
        CHECKOUT_URL,
        json=checkout_payload(delivery={"type": "table"}, deliveryFee=0, total=225),
    )
    bad_total = client.post(CHECKOUT_URL, json=checkout_payload(total=200))

    assert missing_address.status_code == 400
    assert missing_address.json()["error"] == "Teslimat adresi gerekli (en az 10 karakter)"
    assert missing_table.json()["error"] == "Masa numarası gerekli"
    assert bad_total.json()["error"] == "Toplam tutar hesaplama hatası"


def test_item_quantity_bounds(monkeypatch):
    client, _db = _build_client(monkeypatch)
    payload = checkout_payload()
    payload["items"][0]["quantity"] = 0

    response = client.post(CHECKOUT_URL, json=payload)

    assert response.status_code == 400
    assert response.json()["error"] == "En az 1 adet gerekli"


def test_malformed_email_is_rejected(monkeypatch):
    client, db = _build_client(monkeypatch)
    customer = {"name": "Ali Veli", "phone": "05321234567"}

    double_dot = client.post(CHECKOUT_URL, json=checkout_payload(customer={**customer, "email": "ali@bar..com"}))
    no_domain = client.post(CHECKOUT_URL, json=checkout_payload(customer={**customer, "email": "ali@"}))
    blank = client.post(CHECKOUT_URL, json=checkout_payload(customer={**customer, "email": "  "}))

    assert double_dot.status_code == 400
    assert double_dot.json()["error"] == "Geçerli e-posta girin"
    assert no_domain.status_code == 400
    assert no_domain.json()["error"] == "Geçerli e-posta girin"
    assert blank.status_code == 200
    assert db.query(Order).one().customer_email is None


def test_item_note_markup_is_not_stored(monkeypatch):
    client, db = _build_client(monkeypatch)
    payload = checkout_payload()
    payload["items"][0]["note"] = "&lt;img src=x onerror=alert(1)&gt; soğansız <b>lütfen</b>"

    response = client.post(CHECKOUT_URL, json=payload)

    assert response.status_code == 200
    note = db.query(Order).one().items[0]["note"]
    assert "<" not in note
    assert "onerror=" not in note
    assert "soğansız" in note
    assert "lütfen" in note


def test_closed_business_rejects_orders(monkeypatch):
    client, db = _build_client(monkeypatch)
    settings = db.query(BusinessSettings).one()
    settings.is_active = False
    db.commit()

    response = client.post(CHECKOUT_URL, json=checkout_payload())

    assert response.status_code == 400
    assert response.json()["error"] == "Sipariş alma şu anda kapalı"


def test_delivery_minimum_order_amount(monkeypatch):
    client, db = _build_client(monkeypatch)
    payload = checkout_payload(
        items=[{"productId": "p-cola", "name": "Kola", "basePrice": 25, "quantity": 1, "selectedExtras": []}],
        subtotal=25,
        total=40,
    )

    response = client.post(CHECKOUT_URL, json=payload)

    assert response.status_code == 400
    assert response.json()["error"] == "Minimum sipariş tutarı: ₺50"


def test_price_tampering_is_rejected(monkeypatch):
    client, db = _build_client(monkeypatch)
    monkeypatch.setattr(checkout_service, "EXPOSE_ERROR_DETAILS", False)
    payload = checkout_payload(subtotal=205, total=220)
    payload["items"][0]["basePrice"] = 90

    response = client.post(CHECKOUT_URL, json=payload)

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Fiyat doğrulama hatası"}
    assert db.query(Order).count() == 0


def test_price_details_are_exposed_in_development(monkeypatch):
    client, _db = _build_client(monkeypatch)
    monkeypatch.setattr(checkout_service, "EXPOSE_ERROR_DETAILS", True)
    payload = checkout_payload()
    payload["items"][0]["productId"] = "p-pizza"

    response = client.post(CHECKOUT_URL, json=payload)

    assert response.status_code == 400
    assert response.json()["details"] == ["Ürün bu işletmeye ait değil: Klasik Burger"]


def test_size_and_extras_are_priced_from_catalog(monkeypatch):
    client, db = _build_client(monkeypatch)
    payload = checkout_payload(subtotal=285, total=300)
    payload["items"][0].update(
        {
            "basePrice": 120,
            "quantity": 2,
            "selectedSize": {"id": "large", "name": "Büyük", "priceModifier": 20},
            "selectedExtras": [{"id": "cheese", "name": "Cheddar", "price": 10}],
        }
    )

    response = client.post(CHECKOUT_URL, json=payload)

    assert response.status_code == 200
    item = db.get(Order, response.json()["orderId"]).items[0]
    assert item["unitPrice"] == 130.0
    assert item["selectedSize"]["id"] == "large"


def test_subtotal_must_match_verified_lines(monkeypatch):
    client, _db = _build_client(monkeypatch)

    response = client.post(CHECKOUT_URL, json=checkout_payload(subtotal=200, total=215))

    assert response.status_code == 400
    assert response.json()["error"] == "Ara toplam uyuşmazlığı"


def test_delivery_fee_must_match_business_settings(monkeypatch):
    client, _db = _build_client(monkeypatch)

    response = client.post(CHECKOUT_URL, json=checkout_payload(deliveryFee=0, total=225))

    assert response.status_code == 400
    assert response.json()["error"] == "Teslimat ücreti uyuşmazlığı"


def test_pickup_orders_have_no_delivery_fee(monkeypatch):
    client, _db = _build_client(monkeypatch)

    response = client.post(
        CHECKOUT_URL,
        json=checkout_payload(delivery={"type": "pickup"}, deliveryFee=0, total=225),
    )

    assert response.status_code == 200


def test_insufficient_stock_rolls_back(monkeypatch):
    client, db = _build_client(monkeypatch)
    payload = checkout_payload(subtotal=350, total=365)
    payload["items"][1]["quantity"] = 6

    response = client.post(CHECKOUT_URL, json=payload)

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Stok hatası"
    assert body["details"] == ["Yetersiz stok: Kola (İstenen: 6, Mevcut: 5)"]
    assert _cola_stock(db) == 5


def test_selling_last_units_marks_product_out_of_stock(monkeypatch):
    client, db = _build_client(monkeypatch)
    payload = checkout_payload(subtotal=325, total=340)
    payload["items"][1]["quantity"] = 5

    response = client.post(CHECKOUT_URL, json=payload)

    assert response.status_code == 200
    db.expire_all()
    cola = db.get(Product, "p-cola")
    assert cola.stock == 0
    assert cola.in_stock is False


def test_rate_limit_blocks_after_limit(monkeypatch):
    limiter = InMemoryRateLimiterService(limit=1, window_seconds=600, block_seconds=3600)
    client, _db = _build_client(monkeypatch, limiter=limiter)

    first = client.post(CHECKOUT_URL, json=checkout_payload())
    second = client.post(CHECKOUT_URL, json=checkout_payload())

    assert first.status_code == 200
    assert second.status_code == 429
    assert second.json()["error"] == "Çok fazla istek. Lütfen bekleyin."
    assert second.headers["Retry-After"] == "3600"


def test_order_created_event_is_emitted_after_commit(monkeypatch):
    client, _db = _build_client(monkeypatch)

    with patch("tikprofil.services.checkout.emit_order_created") as emit_mock:
        ok = client.post(CHECKOUT_URL, json=checkout_payload())
        rejected = client.post(CHECKOUT_URL, json=checkout_payload(deliveryFee=0, total=225))

    assert ok.status_code == 200
    assert rejected.status_code == 400
    emit_mock.assert_called_once()
    assert emit_mock.call_args.kwargs["business_slug"] == "burger-istanbul"
    assert emit_mock.call_args.kwargs["business_name"] == "Burger İstanbul"


def test_order_events_carry_the_request_and_business_context(monkeypatch):
    client, _db = _build_client(monkeypatch)
    seen = {}

    def _record(*_args, **_kwargs):
        seen["request_id"] = request_context.get_request_id()
        seen["business_id"] = request_context.get_business_id()

    with patch("tikprofil.services.checkout.emit_order_created", side_effect=_record):
        response = client.post(CHECKOUT_URL, json=checkout_payload(), headers={"X-Request-ID": "req-42"})

    assert response.status_code == 200
    assert seen == {"request_id": "req-42", "business_id": "1"}
    assert request_context.get_business_id() is None


def test_notification_failure_does_not_fail_checkout(monkeypatch):
    client, db = _build_client(monkeypatch)
    monkeypatch.setattr(notifications, "NOTIFY_WEBHOOK_URL", "http://notify.local/hook")

    class _RefusingClient:
        def __init__(self, *args, **kwargs):
            pass

        def post(self, *args, **kwargs):
            raise httpx.ConnectError("connection refused")

        def close(self):
            pass

    monkeypatch.setattr(notifications.httpx, "Client", _RefusingClient)

    response = client.post(CHECKOUT_URL, json=checkout_payload())

    assert response.status_code == 200
    assert db.query(Order).count() == 1


def test_unexpected_error_returns_generic_500(monkeypatch):
    client, _db = _build_client(monkeypatch)

    def _explode(*_args, **_kwargs):
        raise RuntimeError("db down")

    monkeypatch.setattr(checkout_router, "place_order", _explode)

    response = client.post(CHECKOUT_URL, json=checkout_payload())

    assert response.status_code == 500
    assert response.json()["error"] == "Sipariş işlenirken bir hata oluştu. Lütfen tekrar deneyin."
