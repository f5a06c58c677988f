"""
Commerce agent core: tenant-isolated conversation memory, single-pass order
extraction and knowledge-base context for a multi-tenant commerce chat agent.
"""

__version__ = "0.1.0"
