"""Marketplace search API client"""

from skillsync.marketplace.client import (
    MarketplaceClient,
    SearchResponse,
    SkillListing,
    decode_search_payload,
)

__all__ = ["MarketplaceClient", "SearchResponse", "SkillListing", "decode_search_payload"]
