"""Reusable dataset for backend test scenarios."""

from copy import deepcopy
from decimal import Decimal

from tikprofil.models.business import Business, BusinessSettings
from tikprofil.models.coupon import Coupon
from tikprofil.models.product import Product

BUSINESS = {
    "id": 1,
    "slug": "burger-istanbul",
    "name": "Burger İstanbul",
    "whatsapp_phone": "0532 111 22 33",
    "is_active": True,
}

OTHER_BUSINESS = {
    "id": 2,
    "slug": "pizza-ankara",
    "name": "Pizza Ankara",
    "whatsapp_phone": "905551112233",
    "is_active": True,
}

SETTINGS = {
    "business_id": 1,
    "is_active": True,
    "min_order_amount": Decimal("50"),
    "delivery_fee": Decimal("15"),
    "free_delivery_threshold": Decimal("500"),
}

PRODUCTS = [
    {
        "id": "p-burger",
        "business_id": 1,
        "category_id": "c-burgers",
        "name": "Klasik Burger",
        "price": Decimal("100"),
        "in_stock": True,
        "track_stock": False,
        "stock": 0,
        "sizes": [{"id": "large", "name": "Büyük", "priceModifier": 20}],
        "extras": [{"id": "cheese", "name": "Cheddar", "price": 10}],
    },
    {
        "id": "p-cola",
        "business_id": 1,
        "category_id": "c-drinks",
        "name": "Kola",
        "price": Decimal("25"),
        "in_stock": True,
        "track_stock": True,
        "stock": 5,
        "sizes": [],
        "extras": [],
    },
    {
        "id": "p-pizza",
        "business_id": 2,
        "category_id": "c-pizza",
        "name": "Margarita",
        "price": Decimal("150"),
        "in_stock": True,
        "track_stock": False,
        "stock": 0,
        "sizes": [],
        "extras": [],
    },
]

COUPON_DEFAULTS = {
    "business_id": 1,
    "title": "Kupon",
    "description": "",
    "emoji": "🎉",
    "discount_type": "percentage",
    "discount_value": Decimal("10"),
    "max_discount_amount": None,
    "bogo_buy_quantity": 1,
    "bogo_get_quantity": 1,
    "bogo_discount_percent": 100,
    "min_order_amount": Decimal("0"),
    "max_usage_count": 0,
    "usage_per_user": 0,
    "current_usage_count": 0,
    "valid_until": None,
    "is_active": True,
    "applicable_to": "all",
    "applicable_category_ids": [],
    "applicable_product_ids": [],
    "is_public": True,
    "is_first_order_only": False,
}

PERCENT_COUPON = {
    "code": "INDIRIM10",
    "discount_type": "percentage",
    "discount_value": Decimal("10"),
    "max_discount_amount": Decimal("50"),
    "min_order_amount": Decimal("100"),
}

FREE_DELIVERY_COUPON = {
    "code": "KARGO",
    "discount_type": "free_delivery",
    "discount_value": Decimal("0"),
}

# 2 x burger (100) + 1 x cola (25) = 225, delivery fee 15, no coupon
HAPPY_PATH_CHECKOUT = {
    "businessSlug": "burger-istanbul",
    "items": [
        {
            "productId": "p-burger",
            "name": "Klasik Burger",
            "basePrice": 100,
            "quantity": 2,
            "selectedExtras": [],
        },
        {
            "productId": "p-cola",
            "name": "Kola",
            "basePrice": 25,
            "quantity": 1,
            "selectedExtras": [],
        },
    ],
    "customer": {"name": "Ayşe Yılmaz", "phone": "0532 123 45 67", "email": "Ayse@Example.com"},
    "delivery": {"type": "delivery", "address": "Moda Cad. No:12 Kadıköy"},
    "payment": {"method": "cash"},
    "orderNote": "Zile basmayın",
    "subtotal": 225,
    "discountAmount": 0,
    "deliveryFee": 15,
    "total": 240,
}

CUSTOMER_PHONE = "05321234567"


def checkout_payload(**overrides) -> dict:
    payload = deepcopy(HAPPY_PATH_CHECKOUT)
    payload.update(overrides)
    return payload


def make_coupon(**overrides) -> Coupon:
    values = deepcopy(COUPON_DEFAULTS)
    values.update(overrides)
    values.setdefault("code", "TEST")
    return Coupon(**values)


def seed_catalog(db, *, with_settings: bool = True) -> None:
    db.add(Business(**BUSINESS))
    db.add(Business(**OTHER_BUSINESS))
    db.flush()
    if with_settings:
        db.add(BusinessSettings(**SETTINGS))
    for product in PRODUCTS:
        db.add(Product(**deepcopy(product)))
    db.commit()
