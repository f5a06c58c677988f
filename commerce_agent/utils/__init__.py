"""
Utility modules for the commerce agent core.
"""

from .langfuse_client import langfuse_client, LangfuseClient, observe

__all__ = ["langfuse_client", "LangfuseClient", "observe"]
