"""Dimension table builders for the retail star schema.

Each builder is a pure leaf transform over the sales fact or a static
reference table. Lookups that find no match fall back to a default value
(``Uncategorised`` products, ``Unknown`` geography) rather than failing.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, Mapping

import numpy as np
import pandas as pd

from retail_star_schema.foundation.sales_fact import normalise_product_name
from retail_star_schema.reference import COUNTRY_REFERENCE_COLUMNS

logger = logging.getLogger(__name__)

CUSTOMER_COLUMNS = ["customer_id", "country_id", "country"]
GEOGRAPHY_COLUMNS = [
    "country_id",
    "country",
    "region",
    "continent",
    "customer_count",
    "market_significant",
]
PRODUCT_COLUMNS = ["product_id", "product_name", "category"]
DATE_COLUMNS = [
    "date",
    "day",
    "month",
    "year",
    "day_of_week",
    "weekday_name",
    "month_name",
    "quarter",
    "quarter_label",
    "is_month_start",
]


def validate_country_reference(reference: pd.DataFrame) -> pd.DataFrame:
    """Check the country reference and return a trimmed copy.

    Raises:
        ValueError: If columns are missing or a country is listed twice
    """
    missing_cols = set(COUNTRY_REFERENCE_COLUMNS) - set(reference.columns)
    if missing_cols:
        raise ValueError(
            f"Country reference missing required columns: {sorted(missing_cols)}"
        )
    cleaned = reference[COUNTRY_REFERENCE_COLUMNS].copy()
    cleaned["country"] = cleaned["country"].astype(str).str.strip()
    duplicated = cleaned["country"][cleaned["country"].duplicated()].unique().tolist()
    if duplicated:
        raise ValueError(
            f"Country reference lists countries more than once: {duplicated[:5]}"
        )
    return cleaned


def assign_country_ids(
    reference_countries: Iterable[str], fact_countries: Iterable[str]
) -> dict[str, int]:
    """Assign 1-based country ids by alphabetical rank.

    The id space covers every reference country plus any country that appears
    in the fact but is missing from the reference, so every customer always
    has a valid geography key.
    """
    names = {str(name).strip() for name in reference_countries}
    names.update(str(name).strip() for name in fact_countries)
    return {name: idx for idx, name in enumerate(sorted(names), start=1)}


def build_customer_dimension(
    fact: pd.DataFrame, country_ids: Mapping[str, int]
) -> pd.DataFrame:
    """One row per distinct customer with their geography key.

    A customer's country is the country recorded on their earliest fact row
    (invoice id breaks ties), so customers who ordered from more than one
    country are still counted exactly once.
    """
    if fact.empty:
        return pd.DataFrame(columns=CUSTOMER_COLUMNS)

    first_rows = (
        fact.sort_values(["customer_id", "invoice_date", "transaction_time", "invoice_id"])
        .drop_duplicates("customer_id", keep="first")
        .loc[:, ["customer_id", "country"]]
    )
    unmapped = sorted(set(first_rows["country"]) - set(country_ids))
    if unmapped:
        raise ValueError(f"Countries without a country id: {unmapped[:5]}")

    customers = first_rows.assign(
        country_id=first_rows["country"].map(country_ids).astype("int64")
    )
    return customers[CUSTOMER_COLUMNS].sort_values("customer_id").reset_index(drop=True)


def build_geography_dimension(
    customers: pd.DataFrame,
    country_reference: pd.DataFrame,
    country_ids: Mapping[str, int],
    significance_threshold: int = 20,
    unknown_label: str = "Unknown",
) -> pd.DataFrame:
    """Country -> region -> continent with realised customer counts.

    Parameters
    ----------
    customers:
        The realised customer dimension (see :func:`build_customer_dimension`).
    country_reference:
        Static table with ``country``, ``region`` and ``continent`` columns.
    country_ids:
        Output of :func:`assign_country_ids`.
    significance_threshold:
        Minimum number of distinct customers for a market to be flagged
        ``market_significant == "Yes"``.
    unknown_label:
        Region/continent used for countries absent from the reference.
    """
    reference = validate_country_reference(country_reference).set_index("country")

    geography = pd.DataFrame(
        {"country": list(country_ids), "country_id": list(country_ids.values())}
    )
    geography = geography.join(reference, on="country")

    not_referenced = geography.loc[geography["region"].isna(), "country"].tolist()
    if not_referenced:
        logger.warning(
            f"{len(not_referenced)} countries missing from the country reference; "
            f"region/continent set to {unknown_label!r}: {not_referenced[:5]}"
        )
    geography[["region", "continent"]] = geography[["region", "continent"]].fillna(
        unknown_label
    )

    counts = customers.groupby("country_id")["customer_id"].nunique()
    geography["customer_count"] = (
        geography["country_id"].map(counts).fillna(0).astype("int64")
    )
    geography["market_significant"] = np.where(
        geography["customer_count"] >= significance_threshold, "Yes", "No"
    )
    return (
        geography[GEOGRAPHY_COLUMNS].sort_values("country_id").reset_index(drop=True)
    )


def build_product_dimension(
    fact: pd.DataFrame,
    category_map: Mapping[str, str] | None = None,
    default_category: str = "Uncategorised",
) -> pd.DataFrame:
    """One row per product id, categorised through a manual lookup.

    Category keys are normalised the same way product names are in the fact,
    so ``"WHITE METAL LANTERN"`` and ``"White Metal Lantern"`` match.
    """
    lookup = {
        normalise_product_name(name): category
        for name, category in (category_map or {}).items()
    }
    products = (
        fact[["product_id", "product_name"]]
        .drop_duplicates("product_id")
        .sort_values("product_id")
        .reset_index(drop=True)
    )
    products["category"] = products["product_name"].map(lookup).fillna(default_category)

    uncategorised = int((products["category"] == default_category).sum())
    if uncategorised:
        logger.info(
            f"{uncategorised}/{len(products)} products have no category mapping "
            f"and were set to {default_category!r}"
        )
    return products[PRODUCT_COLUMNS]


def build_date_dimension(start: date, end: date) -> pd.DataFrame:
    """One row per calendar day in ``[start, end]``.

    Quarters use fixed three-month buckets (Q1 = Jan-Mar ... Q4 = Oct-Dec);
    ``day_of_week`` runs from Monday = 1 to Sunday = 7.
    """
    if start > end:
        raise ValueError(
            f"start must not be after end: start={start.isoformat()}, end={end.isoformat()}"
        )
    days = pd.Series(pd.date_range(start=start, end=end, freq="D"), name="date")
    quarter_number = (days.dt.month - 1) // 3 + 1
    quarter = "Q" + quarter_number.astype(str)

    return pd.DataFrame(
        {
            "date": days,
            "day": days.dt.day,
            "month": days.dt.month,
            "year": days.dt.year,
            "day_of_week": days.dt.dayofweek + 1,
            "weekday_name": days.dt.day_name(),
            "month_name": days.dt.month_name(),
            "quarter": quarter,
            "quarter_label": quarter + " " + days.dt.year.astype(str),
            "is_month_start": days.dt.is_month_start,
        }
    )[DATE_COLUMNS]


def month_starts(date_dimension: pd.DataFrame, until: pd.Timestamp) -> list[pd.Timestamp]:
    """Month-start dates of the date dimension on or before ``until``."""
    mask = date_dimension["is_month_start"] & (date_dimension["date"] <= until)
    return list(date_dimension.loc[mask, "date"])
