# flasharb/dex/__init__.py
"""
Venue models (constant-product, stable-swap, aggregator) and on-chain router adapters
"""

from flasharb.dex.venues import Pool, Venue, VenueKind, VenueRegistry

__all__ = ["Pool", "Venue", "VenueKind", "VenueRegistry"]
