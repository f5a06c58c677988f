"""
Shipping-lookup collaborator.

The engine only needs a delivery estimate for a city; ShippingZoneRepository
provides it from the shipping_zones table and any object with the same
method can replace it.
"""

from typing import Optional, Protocol

from commerce_agent.database.repositories import ShippingZoneRepository


class ShippingLookup(Protocol):
    def estimate_delivery_time(self, city: str, tenant_id: str) -> Optional[str]: ...


__all__ = ["ShippingLookup", "ShippingZoneRepository"]
