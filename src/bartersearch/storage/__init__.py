"""
bartersearch storage.

Motor-backed MongoDB access for the marketplace collections.
"""

from .mongo import GEO_FIELD, TEXT_INDEX_NAME, MarketplaceStore

__all__ = ["MarketplaceStore", "GEO_FIELD", "TEXT_INDEX_NAME"]
