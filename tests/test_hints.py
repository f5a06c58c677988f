"""Tests for the regex hint pre-pass."""

import pytest

from commerce_agent.orders import extract_hints


def test_full_order_message() -> None:
    message = "الاسم: أحمد محمد\n01012345678\nشارع التحرير عمارة 5\nمحافظة القاهرة\nمقاس 42 لون اسود"

    hints = extract_hints(message)

    assert hints.has_data
    assert hints.customer_name == "أحمد محمد"
    assert hints.customer_phone == "01012345678"
    assert hints.city == "القاهرة"
    assert hints.product_size == "42"
    assert hints.product_color == "اسود"
    assert "التحرير عمارة 5" in hints.customer_address


def test_arabic_indic_digits_are_normalized() -> None:
    hints = extract_hints("رقمي ٠١٠١٢٣٤٥٦٧٨")
    assert hints.customer_phone == "01012345678"


def test_phone_without_leading_zero() -> None:
    hints = extract_hints("كلمني على 1012345678")
    assert hints.customer_phone == "1012345678"


def test_governorate_without_prefix() -> None:
    hints = extract_hints("التوصيل للجيزة ولا الإسكندرية؟")
    assert hints.city == "الإسكندرية"


@pytest.mark.parametrize("message", ["مرحبا", "بكام الحذاء ده؟", "", None])
def test_no_hints(message) -> None:
    hints = extract_hints(message)
    assert not hints.has_data
    assert hints.customer_phone is None


def test_word_containing_keyword_is_not_an_address() -> None:
    hints = extract_hints("الحذاء صحي جدا")
    assert hints.customer_address is None


def test_address_stops_before_phone() -> None:
    hints = extract_hints("العنوان: شارع النيل برج 3 01098765432")
    assert hints.customer_address == "شارع النيل برج 3"
    assert hints.customer_phone == "01098765432"
