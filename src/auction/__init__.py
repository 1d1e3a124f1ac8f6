"""
Auction Round Engine: EJECT / PROGRESS / FINAL раунды ребалансировки.
"""

from src.auction.config import DEFAULT_AUCTION_POLICY, AuctionPolicy
from src.auction.round_engine import (
    AuctionRoundEngine,
    RoundClassification,
    compute_next_auction,
    is_rebalance_complete,
)

__all__ = [
    "DEFAULT_AUCTION_POLICY",
    "AuctionPolicy",
    "AuctionRoundEngine",
    "RoundClassification",
    "compute_next_auction",
    "is_rebalance_complete",
]
