"""
Regex pre-pass over the latest customer message.

AI Assistant Notes:
- Harvests high-precision candidates (phone, size, color, governorate,
  address, name) before the single language-model pass
- Every pattern is best effort; a miss leaves the field None and is never an error
- The hints are passed to the model as fallback data and the phone hint
  overrides an under-specified model phone during reconciliation
"""

import re
from typing import Dict, List, Optional
import logging

from .models import RegexHints

logger = logging.getLogger(__name__)

# Arabic-Indic and Eastern Arabic-Indic digits -> ASCII
DIGIT_TRANSLATION = str.maketrans("٠١٢٣٤٥٦٧٨٩۰۱۲۳۴۵۶۷۸۹", "01234567890123456789")

COLOR_VOCABULARY = (
    "ابيض|اسود|أسود|أبيض|احمر|أحمر|ازرق|أزرق|اخضر|أخضر|اصفر|أصفر|"
    "برتقالي|وردي|بنفسجي|رمادي|بيج|بني|ذهبي|فضي"
)

GOVERNORATES = (
    "القاهرة|الجيزة|الاسكندرية|الإسكندرية|الاسكندريه|الإسكندريه|القليوبية|الشرقية|"
    "الغربية|الدقهلية|المنوفية|البحيرة|كفر الشيخ|دمياط|بورسعيد|الإسماعيلية|السويس|"
    "شمال سيناء|جنوب سيناء|البحر الأحمر|الوادي الجديد|مطروح|أسوان|قنا|سوهاج|الأقصر|"
    "أسيوط|المنيا|بنى سويف|الفيوم"
)

ADDRESS_KEYWORDS = "شارع|حي|منطقة|برج|عمارة|محلة|درب|زقاق|شقة|طابق|سموحه|النصر|الشروق"

# Keywords that mark a line as an address when it also names the governorate
CITY_LINE_ADDRESS_KEYWORDS = ("شارع", "برج", "عمارة", "سموحه", "النصر", "الشروق")

# Stops a captured address/name before a governorate or a phone number
FIELD_TERMINATOR = r"(?:\s+محافظة|\s+01[0-9]|$)"

PHONE_IN_TEXT = re.compile(r"01[0-9]{9}")


class RegexHintExtractor:
    """
    Extracts candidate order fields from a single message.
    Patterns are tried in order and the first usable match wins.
    """

    def __init__(self):
        """Initialize the extractor with its pattern table."""
        self.extraction_patterns = self._initialize_extraction_patterns()

    def _initialize_extraction_patterns(self) -> Dict[str, List[re.Pattern]]:
        """Initialize regex patterns for hint extraction."""
        return {
            'customer_phone': [
                re.compile(r"01[0-9]{9}"),
                re.compile(r"(?<![0-9])0?1[0-9]{9}(?![0-9])"),
            ],
            'product_size': [
                re.compile(r"مقاس[:\s]+([0-9]+)"),
                re.compile(r"مقاس\s*([0-9]+)"),
                re.compile(r"(?<![0-9])([0-9]{1,2})\s*مقاس"),
            ],
            'product_color': [
                re.compile(rf"لون[:\s]*({COLOR_VOCABULARY})"),
                re.compile(rf"({COLOR_VOCABULARY})\s*لون"),
            ],
            'city': [
                re.compile(r"محافظة[:\s]+(\S+)"),
                re.compile(rf"(?<!\w)({GOVERNORATES})(?!\w)"),
            ],
            'customer_address': [
                re.compile(rf"عنوان[:\s]+(.+?){FIELD_TERMINATOR}"),
                re.compile(rf"شارع[:\s]+(.+?){FIELD_TERMINATOR}"),
            ],
            'address_keywords': [
                re.compile(rf"(?<!\w)(?:{ADDRESS_KEYWORDS})\s+[^012\n]+"),
            ],
            'customer_name': [
                re.compile(rf"الاسم[:\s]+(.+?){FIELD_TERMINATOR}"),
                re.compile(rf"اسمي[:\s]+(.+?){FIELD_TERMINATOR}"),
                re.compile(rf"اسم[:\s]+(.+?){FIELD_TERMINATOR}"),
            ],
        }

    @staticmethod
    def _strip_other_fields(text: str) -> str:
        """Remove size, color, governorate and phone fragments from an address."""
        text = re.sub(r"مقاس\s*[0-9]+", "", text)
        text = re.sub(r"(?<!\w)لون\s*\S+", "", text)
        text = re.sub(r"محافظة\s*\S+", "", text)
        text = PHONE_IN_TEXT.sub("", text)
        return re.sub(r"\s+", " ", text).strip()

    def _first_match(self, field: str, text: str, group: int = 1) -> Optional[str]:
        for pattern in self.extraction_patterns[field]:
            match = pattern.search(text)
            if match:
                return match.group(group).strip()
        return None

    def _extract_phone(self, lines: List[str], full_text: str) -> Optional[str]:
        # Line by line first so a phone on its own line wins
        for line in lines:
            phone = self._first_match('customer_phone', line, group=0)
            if phone:
                return phone
        return self._first_match('customer_phone', full_text, group=0)

    def _extract_address(self, lines: List[str], full_text: str, city: Optional[str]) -> Optional[str]:
        for pattern in self.extraction_patterns['customer_address']:
            match = pattern.search(full_text)
            if match and len(match.group(1).strip()) > 3:
                address = self._strip_other_fields(match.group(1))
                if len(address) > 3:
                    return address

        # Fallback 1: any address keyword followed by text
        match = self.extraction_patterns['address_keywords'][0].search(full_text)
        if match:
            address = self._strip_other_fields(match.group(0))
            if len(address) > 3:
                return address

        # Fallback 2: a line naming the governorate together with an address keyword
        if city:
            for line in lines:
                if city in line and any(keyword in line for keyword in CITY_LINE_ADDRESS_KEYWORDS):
                    address = line.replace(f"محافظة {city}", "").replace(city, "")
                    address = self._strip_other_fields(address)
                    if len(address) > 3:
                        return address

        # Fallback 3: an address-looking line without any digits
        keyword_pattern = re.compile(rf"(?<!\w)(?:{ADDRESS_KEYWORDS})(?!\w)")
        for line in lines:
            if keyword_pattern.search(line) and not re.search(r"[0-9]", line):
                address = self._strip_other_fields(line)
                if len(address) > 3:
                    return address

        return None

    def _extract_name(self, lines: List[str]) -> Optional[str]:
        for line in lines:
            for pattern in self.extraction_patterns['customer_name']:
                match = pattern.search(line)
                if match and len(match.group(1).strip()) > 2:
                    return match.group(1).strip()
        return None

    def extract(self, message: Optional[str]) -> RegexHints:
        """
        Extract hints from one message.

        Args:
            message: Latest customer message

        Returns:
            RegexHints with has_data set when any field matched
        """
        text = (message or "").translate(DIGIT_TRANSLATION).strip()
        if not text:
            return RegexHints()

        lines = [line.strip() for line in text.split("\n") if line.strip()]

        city = self._first_match('city', text)
        hints = RegexHints(
            customer_phone=self._extract_phone(lines, text),
            product_size=self._first_match('product_size', text),
            product_color=self._first_match('product_color', text),
            city=city,
            customer_address=self._extract_address(lines, text, city),
            customer_name=self._extract_name(lines)
        )
        hints.has_data = any([
            hints.customer_phone,
            hints.product_size,
            hints.product_color,
            hints.city,
            hints.customer_address,
            hints.customer_name,
        ])

        logger.debug(f"Regex hints: {hints.model_dump(exclude_none=True)}")
        return hints


_default_extractor = RegexHintExtractor()


def extract_hints(message: Optional[str]) -> RegexHints:
    """Extract regex hints with the shared extractor."""
    return _default_extractor.extract(message)
