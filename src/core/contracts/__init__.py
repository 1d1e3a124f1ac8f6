"""
Contract Validation Module

JSON Schema контракты on-chain записей ребалансировки (V4/V5).
"""

from .validators import (
    ContractValidator,
    RebalanceV4Validator,
    RebalanceV5Validator,
    SchemaLoader,
    ValidationError,
    validate_rebalance_record,
    validator_for_version,
)

__all__ = [
    # Classes
    "SchemaLoader",
    "ContractValidator",
    "RebalanceV4Validator",
    "RebalanceV5Validator",
    "ValidationError",
    # Functions
    "validator_for_version",
    "validate_rebalance_record",
]
