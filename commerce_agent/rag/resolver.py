"""
Knowledge-base context resolution for prompt building.

AI Assistant Notes:
- Pure: no I/O, safe to call per request, results are never cached
- Only allow-listed metadata leaves this module; internal fields on raw hits
  (notes, costs, supplier data, ...) are dropped
- Product hits use the full content; the compressed summary omits sizes and
  colors and is only a fallback
"""

from enum import Enum
from typing import Any, Dict, Iterable, List, Optional
import logging

from pydantic import BaseModel, Field, computed_field

logger = logging.getLogger(__name__)

METADATA_ALLOW_LIST = (
    "id",
    "name",
    "price",
    "category",
    "hasImages",
    "hasValidImages",
    "images",
    "variants",
)

# Raw field name -> exposed name
METADATA_RENAMES = {"product_variants": "variants"}


class RagItemType(str, Enum):
    PRODUCT = "product"
    FAQ = "faq"
    POLICY = "policy"


class RagContextItem(BaseModel):
    """One sanitized knowledge-base entry."""
    type: RagItemType
    index: int = Field(..., ge=1)
    content: str
    metadata: Optional[Dict[str, Any]] = None


class RagContext(BaseModel):
    """Sanitized context bundle handed to the prompt builder."""
    items: List[RagContextItem] = Field(default_factory=list)

    @computed_field
    @property
    def has_data(self) -> bool:
        return bool(self.items)

    @computed_field
    @property
    def has_products(self) -> bool:
        return any(item.type == RagItemType.PRODUCT for item in self.items)


SECTION_LABELS = {
    RagItemType.PRODUCT: "منتج",
    RagItemType.FAQ: "سؤال شائع",
    RagItemType.POLICY: "سياسة",
}


class RagContextResolver:
    """Turns raw retrieval hits into a RagContext."""

    @staticmethod
    def sanitize_metadata(raw: Any) -> Optional[Dict[str, Any]]:
        """Copy allow-listed fields only; None when nothing survives."""
        if not isinstance(raw, dict):
            return None

        sanitized = {}
        for field_name, value in raw.items():
            exposed = METADATA_RENAMES.get(field_name, field_name)
            if exposed not in METADATA_ALLOW_LIST or value is None:
                continue
            # An explicit 'variants' wins over the renamed raw field
            if exposed in sanitized and field_name != exposed:
                continue
            sanitized[exposed] = value
        return sanitized or None

    @staticmethod
    def _content_for(hit: Dict[str, Any], item_type: RagItemType) -> str:
        content = hit.get("content")
        if isinstance(content, str) and content.strip():
            return content.strip()

        if item_type == RagItemType.PRODUCT:
            compressed = hit.get("compressed")
            if isinstance(compressed, dict) and isinstance(compressed.get("summary"), str):
                return compressed["summary"].strip()
        return ""

    def resolve(self, hits: Optional[Iterable[Any]]) -> RagContext:
        """
        Build a context bundle from raw hits.

        Unknown hit types, non-dict hits and hits without usable content are
        dropped; indexes are 1-based over the kept items.
        """
        items: List[RagContextItem] = []
        for hit in hits or []:
            if not isinstance(hit, dict):
                continue
            try:
                item_type = RagItemType(hit.get("type"))
            except ValueError:
                logger.debug(f"Skipping knowledge hit of unknown type {hit.get('type')!r}")
                continue

            content = self._content_for(hit, item_type)
            if not content:
                continue

            items.append(RagContextItem(
                type=item_type,
                index=len(items) + 1,
                content=content,
                metadata=self.sanitize_metadata(hit.get("metadata"))
            ))

        return RagContext(items=items)

    def format_for_prompt(self, context: RagContext) -> str:
        """Render numbered knowledge sections; empty string without data."""
        if not context.has_data:
            return ""

        sections = ["🗂️ معلومات من قاعدة المعرفة:"]
        for item in context.items:
            sections.append(f"{SECTION_LABELS[item.type]} {item.index}:\n{item.content}")

        if context.has_products:
            sections.append("استخدم بيانات المنتجات أعلاه فقط عند ذكر الأسعار والمقاسات والألوان.")
        return "\n\n".join(sections)
