"""
Core domain models, mathematical primitives, errors and invariants.

This module contains the foundational building blocks that are independent
of external systems (RPC providers, price feeds, etc.).
"""
