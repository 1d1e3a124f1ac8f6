"""
Rebalance initialization, basket metrics and on-chain layout adapters.
"""

from src.rebalance.adapters import (
    RebalanceRecord,
    RebalanceRecordV4,
    RebalanceRecordV5,
    RebalanceTimestamps,
    StartRebalanceArgsV4,
    TokenRebalanceParamsV5,
    from_canonical,
    parse_rebalance_record,
    start_rebalance_args_for_version,
    to_canonical,
)
from src.rebalance.basket import (
    allocation_error,
    basket_accuracy,
    basket_distribution,
    eject_from_target_basket,
    price_ranges_to_usd,
    target_basket_from_weights,
)
from src.rebalance.start_rebalance import (
    DEFAULT_START_POLICY,
    StartRebalancePolicy,
    initialize_rebalance,
)

__all__ = [
    # Start rebalance
    "DEFAULT_START_POLICY",
    "StartRebalancePolicy",
    "initialize_rebalance",
    # Basket metrics
    "allocation_error",
    "basket_accuracy",
    "basket_distribution",
    "eject_from_target_basket",
    "price_ranges_to_usd",
    "target_basket_from_weights",
    # Version adapter
    "RebalanceRecord",
    "RebalanceRecordV4",
    "RebalanceRecordV5",
    "RebalanceTimestamps",
    "StartRebalanceArgsV4",
    "TokenRebalanceParamsV5",
    "from_canonical",
    "parse_rebalance_record",
    "start_rebalance_args_for_version",
    "to_canonical",
]
