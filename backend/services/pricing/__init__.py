"""
Trip pricing service.

Pure distance/duration/price calculations for point-to-point trips.
"""

from .engine import PriceBreakdown, PricingConfig, PricingEngine, Surcharge

__all__ = [
    "PriceBreakdown",
    "PricingConfig",
    "PricingEngine",
    "Surcharge",
]
