"""
Single-pass order extraction.
"""

from .models import (
    ExtractionResult,
    ExtractionStatus,
    OrderDraft,
    OrderItem,
    RegexHints,
    REQUIRED_ORDER_FIELDS,
)
from .hints import RegexHintExtractor, extract_hints
from .cleaning import clean_order_draft, validate_order_details, OrderValidation
from .parser import parse_model_output
from .prompt import build_prompt
from .engine import OrderExtractionEngine, reconcile, contains_affirmation

__all__ = [
    "ExtractionResult",
    "ExtractionStatus",
    "OrderDraft",
    "OrderItem",
    "RegexHints",
    "REQUIRED_ORDER_FIELDS",
    "RegexHintExtractor",
    "extract_hints",
    "clean_order_draft",
    "validate_order_details",
    "OrderValidation",
    "parse_model_output",
    "build_prompt",
    "OrderExtractionEngine",
    "reconcile",
    "contains_affirmation",
]
