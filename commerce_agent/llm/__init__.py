"""
Language-model collaborators.
"""

from .client import LanguageModelClient, LanguageModelReply, OpenRouterClient

__all__ = ["LanguageModelClient", "LanguageModelReply", "OpenRouterClient"]
