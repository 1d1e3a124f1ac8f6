"""
Test suite for the Folio rebalance engine

Contains:
- tests/unit/          : Unit tests for individual modules
                         (fixed point, units, basket, start rebalance,
                          auction rounds, version adapters, contracts)
"""
