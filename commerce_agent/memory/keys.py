"""
Tenant-scoped memory keys.

A key always carries a tenant. With a conversation id the memory is isolated
per session, without it the memory is shared by all of the participant's
conversations inside that tenant.

Segments are joined with KEY_DELIMITER after escaping, so a delimiter inside
an id never lines up with a segment boundary: tenant "a" with conversation
"x" and tenant "a_x" get different keys.
"""

from dataclasses import dataclass
from typing import Optional

from commerce_agent.errors import IsolationError

KEY_DELIMITER = "_"
ESCAPE = "\\"


def escape_segment(segment: str) -> str:
    """Escape the escape character first, then the delimiter."""
    return str(segment).replace(ESCAPE, ESCAPE * 2).replace(KEY_DELIMITER, ESCAPE + KEY_DELIMITER)


@dataclass(frozen=True)
class TenantScopedKey:
    """Addresses one participant's memory inside one tenant."""

    tenant_id: str
    participant_id: str
    conversation_id: Optional[str] = None

    def __post_init__(self):
        if not self.tenant_id or not str(self.tenant_id).strip():
            raise IsolationError("tenant_id is required for every memory operation")
        if not self.participant_id or not str(self.participant_id).strip():
            raise IsolationError("participant_id is required for every memory operation")

    @property
    def cache_key(self) -> str:
        segments = [self.tenant_id, self.participant_id]
        if self.conversation_id:
            segments.insert(1, self.conversation_id)
        return KEY_DELIMITER.join(escape_segment(segment) for segment in segments)

    @property
    def tenant_prefix(self) -> str:
        return tenant_prefix(self.tenant_id)


def tenant_prefix(tenant_id: str) -> str:
    """Exact prefix shared by every cache key of a tenant."""
    return f"{escape_segment(tenant_id)}{KEY_DELIMITER}"


def is_well_formed(cache_key: str, tenant_id: Optional[str]) -> bool:
    """
    Check that a raw cache key is owned by an explicit tenant.

    The owning tenant is recorded next to the cached turns; the key must start
    with that tenant's exact prefix and carry at least one more segment.
    """
    if not tenant_id or not cache_key.startswith(tenant_prefix(tenant_id)):
        return False
    return bool(cache_key[len(tenant_prefix(tenant_id)):])
