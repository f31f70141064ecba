"""Shared fixtures for star schema tests."""

from datetime import date

import pandas as pd
import pytest

from retail_star_schema.foundation.sales_fact import RAW_COLUMNS
from retail_star_schema.synthetic import (
    ScenarioConfig,
    generate_customers,
    generate_transactions,
    transactions_to_frame,
)


def make_raw(rows) -> pd.DataFrame:
    """Build a raw frame from ``(invoice, customer, product, ts, qty, price[, country])`` tuples."""
    records = []
    for row in rows:
        invoice, customer, product, ts, quantity, price, *rest = row
        records.append(
            {
                "invoice_id": invoice,
                "customer_id": customer,
                "product_name": product,
                "invoice_ts": ts,
                "quantity": quantity,
                "unit_price": price,
                "country": rest[0] if rest else "United Kingdom",
            }
        )
    return pd.DataFrame(records, columns=RAW_COLUMNS)


@pytest.fixture
def raw_factory():
    return make_raw


@pytest.fixture(scope="session")
def synthetic_raw() -> pd.DataFrame:
    """About a year of synthetic export lines, including invalid rows and returns."""
    start, end = date(2010, 12, 1), date(2011, 12, 9)
    customers = generate_customers(80, start, end, seed=11)
    transactions = generate_transactions(
        customers,
        start,
        end,
        scenario=ScenarioConfig(
            seed=11, return_rate=0.1, excess_return_rate=0.05, invalid_row_rate=0.05
        ),
    )
    return transactions_to_frame(transactions)
