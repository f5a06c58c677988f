"""
Knowledge-base context resolution.
"""

from .resolver import RagContext, RagContextItem, RagContextResolver, RagItemType, METADATA_ALLOW_LIST

__all__ = ["RagContext", "RagContextItem", "RagContextResolver", "RagItemType", "METADATA_ALLOW_LIST"]
