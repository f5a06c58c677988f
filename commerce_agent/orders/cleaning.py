"""
Normalization and validation of extracted order fields.

AI Assistant Notes:
- Cleaners never raise; unusable input becomes None
- Colors and cities are mapped to their canonical Arabic spelling
- Phones are normalized to the 11-digit Egyptian mobile format (01xxxxxxxxx)
- validate_order_details() reports problems, it does not block order creation
"""

import re
from typing import Any, List, Optional
import logging

from pydantic import BaseModel, Field

from .models import OrderDraft, OrderItem

logger = logging.getLogger(__name__)

BRACKETS = re.compile(r"[()\[\]{}]")

COLOR_MAP = {
    # Basic colors
    'اسود': 'أسود',
    'ابيض': 'أبيض',
    'احمر': 'أحمر',
    'ازرق': 'أزرق',
    'اخضر': 'أخضر',
    'اصفر': 'أصفر',
    'بنفسجي': 'بنفسجي',
    'وردي': 'وردي',
    'برتقالي': 'برتقالي',
    'بني': 'بني',
    'بيج': 'بيج',
    'رمادي': 'رمادي',
    'كحلي': 'كحلي',
    'نيفي': 'كحلي',
    'navy': 'كحلي',
    # English names
    'black': 'أسود',
    'white': 'أبيض',
    'red': 'أحمر',
    'blue': 'أزرق',
    'green': 'أخضر',
    'yellow': 'أصفر',
    'brown': 'بني',
    'beige': 'بيج',
    'gray': 'رمادي',
    'grey': 'رمادي',
    'pink': 'وردي',
    'purple': 'بنفسجي',
    'orange': 'برتقالي',
    # Common misspellings
    'اسوود': 'أسود',
    'ابييض': 'أبيض',
    'احمرر': 'أحمر',
    'ازررق': 'أزرق',
}

CITY_MAP = {
    'القاهره': 'القاهرة',
    'الاسكندريه': 'الإسكندرية',
    'الاسكندرية': 'الإسكندرية',
    'الإسكندريه': 'الإسكندرية',
    'اسكندريه': 'الإسكندرية',
    'اسكندرية': 'الإسكندرية',
    'الجيزه': 'الجيزة',
    'شبرا': 'شبرا الخيمة',
    'المنصوره': 'المنصورة',
    'اسيوط': 'أسيوط',
    'الاقصر': 'الأقصر',
    'اسوان': 'أسوان',
    'الاسماعيليه': 'الإسماعيلية',
    'الاسماعيلية': 'الإسماعيلية',
    'البحيره': 'البحيرة',
    'الغربيه': 'الغربية',
    'المنوفيه': 'المنوفية',
    'القليوبيه': 'القليوبية',
    'الشرقيه': 'الشرقية',
    'الدقهليه': 'الدقهلية',
    'سموحه': 'الإسكندرية',
    'سموحة': 'الإسكندرية',
}

SIZE_TEXT_MAP = {
    'صغير': '37',
    'متوسط': '38',
    'كبير': '40',
    'small': '37',
    'medium': '38',
    'large': '40',
    'xl': '41',
    'xxl': '42',
}

# Valid numeric shoe sizes (children 25-35, women 35-42, men 39-46)
MIN_SIZE = 25
MAX_SIZE = 46


class OrderValidation(BaseModel):
    """Problems found in a cleaned draft."""
    is_valid: bool = True
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


def clean_product_name(name: Any) -> Optional[str]:
    if not name or not isinstance(name, str):
        return None
    cleaned = re.sub(r"\s+", " ", BRACKETS.sub("", name)).strip()
    return cleaned or None


def clean_product_color(color: Any) -> Optional[str]:
    """Map a color to its canonical Arabic name; unknown colors pass through."""
    if not color or not isinstance(color, str):
        return None
    key = BRACKETS.sub("", color).strip()
    key = re.sub(r"^(?:ال|لون)\s*", "", key).lower()
    return COLOR_MAP.get(key) or color.strip() or None


def clean_product_size(size: Any) -> Optional[str]:
    """
    Normalize a size to a whole-number shoe size.

    European sizes 6-12 are converted by adding 30; text sizes (small, xl,
    كبير, ...) use SIZE_TEXT_MAP. Returns None when nothing usable is found.
    """
    if size is None or size == "":
        return None

    match = re.search(r"(\d+(?:\.\d+)?)", str(size))
    if match:
        numeric = float(match.group(1))
        if MIN_SIZE <= numeric <= MAX_SIZE:
            return str(round(numeric))
        if 6 <= numeric <= 12:
            converted = round(numeric + 30)
            if 35 <= converted <= 42:
                return str(converted)

    return SIZE_TEXT_MAP.get(str(size).strip().lower())


def clean_customer_name(name: Any) -> Optional[str]:
    """Drop digits and brackets; names shorter than 3 chars (or numeric ids) are rejected."""
    if not name or not isinstance(name, str):
        return None
    cleaned = BRACKETS.sub("", name)
    cleaned = re.sub(r"\d+", "", cleaned)
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    if len(cleaned) < 3:
        return None
    return cleaned


def clean_phone_number(phone: Any) -> Optional[str]:
    """Return an 11-digit 01xxxxxxxxx phone, or None."""
    if not phone:
        return None
    digits = re.sub(r"[^0-9]", "", str(phone))
    if len(digits) == 11 and digits.startswith("01"):
        return digits
    if len(digits) == 10 and digits.startswith("1"):
        return "0" + digits
    if len(digits) == 12 and digits.startswith("201"):
        return "0" + digits[2:]
    return None


def clean_address(address: Any) -> Optional[str]:
    if not address or not isinstance(address, str):
        return None
    cleaned = re.sub(r"\s+", " ", BRACKETS.sub("", address)).strip()
    return cleaned or None


def clean_city(city: Any) -> Optional[str]:
    if not city or not isinstance(city, str):
        return None
    cleaned = BRACKETS.sub("", city).strip()
    cleaned = re.sub(r"^(?:محافظة|مدينة)\s*", "", cleaned)
    return CITY_MAP.get(cleaned, cleaned) or None


def clean_order_draft(draft: OrderDraft) -> OrderDraft:
    """
    Return a copy of the draft with every field normalized.

    A size that cannot be normalized keeps its original text so the customer's
    wording is not lost; an invalid phone becomes None and is asked for again.
    """
    items = [
        OrderItem(
            product=clean_product_name(item.product),
            size=clean_product_size(item.size) or item.size,
            color=clean_product_color(item.color),
            quantity=item.quantity
        )
        for item in draft.items
    ]
    return OrderDraft(
        customer_name=clean_customer_name(draft.customer_name),
        customer_phone=clean_phone_number(draft.customer_phone),
        customer_address=clean_address(draft.customer_address),
        city=clean_city(draft.city),
        items=items
    )


def validate_order_details(draft: OrderDraft) -> OrderValidation:
    """Check a cleaned draft; missing required fields are errors, odd values warnings."""
    validation = OrderValidation()
    item = draft.primary_item

    if not item or not item.product:
        validation.errors.append('اسم المنتج مفقود')
    if not draft.customer_name:
        validation.errors.append('اسم العميل غير واضح أو مفقود')
    if not draft.customer_phone:
        validation.errors.append('رقم الهاتف مفقود')
    elif not re.fullmatch(r"01[0-9]{9}", draft.customer_phone):
        validation.errors.append(f'رقم هاتف غير صحيح: {draft.customer_phone}')
    if not draft.customer_address:
        validation.errors.append('العنوان مفقود')
    if not draft.city:
        validation.errors.append('المدينة/المحافظة مفقودة')

    if item:
        if not item.color:
            validation.warnings.append('اللون مفقود')
        if not item.size:
            validation.warnings.append('المقاس مفقود')
        elif not item.size.isdigit() or not MIN_SIZE <= int(item.size) <= MAX_SIZE:
            validation.warnings.append(f'مقاس غير معتاد: {item.size}')

    validation.is_valid = not validation.errors
    return validation
