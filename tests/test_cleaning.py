"""Tests for order field normalization."""

import pytest

from commerce_agent.orders import OrderDraft, OrderItem, clean_order_draft, validate_order_details
from commerce_agent.orders.cleaning import (
    clean_city,
    clean_customer_name,
    clean_phone_number,
    clean_product_color,
    clean_product_size,
)


@pytest.mark.parametrize("raw,expected", [
    ("01012345678", "01012345678"),
    ("010 1234 5678", "01012345678"),
    ("1012345678", "01012345678"),
    ("+201012345678", "01012345678"),
    ("12345", None),
    (None, None),
])
def test_clean_phone_number(raw, expected) -> None:
    assert clean_phone_number(raw) == expected


@pytest.mark.parametrize("raw,expected", [
    ("42", "42"),
    ("مقاس 38.5", "38"),
    ("9", "39"),
    ("large", "40"),
    ("200", None),
    ("", None),
])
def test_clean_product_size(raw, expected) -> None:
    assert clean_product_size(raw) == expected


@pytest.mark.parametrize("raw,expected", [
    ("اسود", "أسود"),
    ("Black", "أسود"),
    ("لون ابيض", "أبيض"),
    ("نيفي", "كحلي"),
    ("فوشيا", "فوشيا"),
])
def test_clean_product_color(raw, expected) -> None:
    assert clean_product_color(raw) == expected


def test_clean_city_strips_prefix_and_maps() -> None:
    assert clean_city("محافظة الاسكندريه") == "الإسكندرية"
    assert clean_city("القاهرة") == "القاهرة"


def test_clean_customer_name_rejects_ids() -> None:
    assert clean_customer_name("user 12345") == "user"
    assert clean_customer_name("12") is None
    assert clean_customer_name("(سارة أحمد)") == "سارة أحمد"


def test_clean_order_draft_keeps_unknown_size_text() -> None:
    draft = OrderDraft(
        customer_name="أحمد محمد",
        customer_phone="1012345678",
        customer_address="  شارع  التحرير ",
        city="القاهره",
        items=[OrderItem(product="(حذاء رياضي)", size="مقاس كبير جدا", color="red")]
    )

    cleaned = clean_order_draft(draft)

    assert cleaned.customer_phone == "01012345678"
    assert cleaned.customer_address == "شارع التحرير"
    assert cleaned.city == "القاهرة"
    assert cleaned.items[0].product == "حذاء رياضي"
    assert cleaned.items[0].size == "مقاس كبير جدا"
    assert cleaned.items[0].color == "أحمر"
    assert cleaned.is_complete()


def test_validate_order_details(complete_draft) -> None:
    assert validate_order_details(complete_draft).is_valid

    validation = validate_order_details(OrderDraft(items=[OrderItem(product="حذاء", size="99")]))
    assert not validation.is_valid
    assert "رقم الهاتف مفقود" in validation.errors
    assert "مقاس غير معتاد: 99" in validation.warnings
