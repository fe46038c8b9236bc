"""
External platform adapters for the reconciliation feature.
"""

from .shopee_adapter import ShopeeUpdateAdapter, translate_shipments
from .shopee_client import ShopeeApiError, ShopeeFleetClient

__all__ = ["ShopeeApiError", "ShopeeFleetClient", "ShopeeUpdateAdapter", "translate_shipments"]
