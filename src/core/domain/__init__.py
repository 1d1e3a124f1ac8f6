"""
Domain models and value objects.

Contains the canonical rebalance model (ranges, per-token params, rebalance
state, transaction args, auction metrics) and the unit converters.
"""

from src.core.domain.rebalance import (
    AuctionMetrics,
    AuctionRound,
    FolioVersion,
    OpenAuctionArgs,
    PriceControl,
    PriceRange,
    RebalanceLimits,
    RebalanceState,
    StartRebalanceArgs,
    TokenRebalanceParams,
    WeightControl,
    WeightRange,
)
from src.core.domain.units import (
    NANO_USD_PER_USD,
    assets_to_whole,
    balance_to_whole,
    d18_to_fraction,
    fraction_to_d18,
    limit_to_whole,
    price_to_usd,
    supply_to_whole,
    usd_to_price,
    weight_to_whole,
    whole_to_limit,
    whole_to_weight,
)

__all__ = [
    # Units module
    "NANO_USD_PER_USD",
    "assets_to_whole",
    "balance_to_whole",
    "d18_to_fraction",
    "fraction_to_d18",
    "limit_to_whole",
    "price_to_usd",
    "supply_to_whole",
    "usd_to_price",
    "weight_to_whole",
    "whole_to_limit",
    "whole_to_weight",
    # Enums
    "AuctionRound",
    "FolioVersion",
    "PriceControl",
    "WeightControl",
    # Ranges
    "PriceRange",
    "RebalanceLimits",
    "WeightRange",
    # Rebalance state
    "RebalanceState",
    "TokenRebalanceParams",
    # Transaction args / metrics
    "AuctionMetrics",
    "OpenAuctionArgs",
    "StartRebalanceArgs",
]
