"""Synthetic data generation utilities.

Produces realistic-but-fake Online Retail exports to exercise the star
schema pipeline without access to the production extract.
"""

from .generator import (
    Customer,
    RawTransaction,
    ScenarioConfig,
    generate_customers,
    generate_transactions,
    transactions_to_frame,
)

__all__ = [
    "Customer",
    "RawTransaction",
    "ScenarioConfig",
    "generate_customers",
    "generate_transactions",
    "transactions_to_frame",
]
