"""Acquisition cohorts and monthly retention counts.

A customer's cohort is the calendar month of their first sale. For every
later month in which they buy again we record how many whole calendar months
have passed since acquisition, then count active customers per country,
cohort and offset.

The table is built in two explicit passes:

1. :func:`aggregate_cohort_activity` counts distinct active customers per
   ``(country_id, cohort_month, months_since_acquisition)``.
2. :func:`backfill_cohort_size` broadcasts the month-0 count of each
   ``(country_id, cohort_month)`` onto every row of that cohort.

Quick Start
-----------
>>> cohorts = build_cohort_table(fact, customer_dim)  # doctest: +SKIP
>>> cohorts.head()  # doctest: +SKIP
"""

from __future__ import annotations

import logging

import pandas as pd

from retail_star_schema.foundation.sales_fact import SALE

logger = logging.getLogger(__name__)

ACTIVITY_COLUMNS = [
    "country_id",
    "cohort_month",
    "months_since_acquisition",
    "active_customers",
]
COHORT_COLUMNS = ACTIVITY_COLUMNS + ["cohort_size", "retention_rate"]


def month_start(values: pd.Series) -> pd.Series:
    """Truncate timestamps to the first day of their month."""
    return values.dt.to_period("M").dt.to_timestamp()


def months_between(later: pd.Series, earlier: pd.Series) -> pd.Series:
    """Whole calendar months from ``earlier`` to ``later``.

    Uses year/month arithmetic only, so the day of month never matters:
    2011-01-31 -> 2011-02-01 is one month.
    """
    return (later.dt.year - earlier.dt.year) * 12 + (later.dt.month - earlier.dt.month)


def customer_activity(fact: pd.DataFrame) -> pd.DataFrame:
    """Distinct (customer, activity month) pairs with the customer's cohort month.

    Only sale rows count as activity. The cohort month is the earliest
    activity month, so every returned row has ``activity_month >= cohort_month``.
    """
    sales = fact.loc[fact["transaction_type"] == SALE, ["customer_id", "invoice_date"]]
    activity = (
        sales.assign(activity_month=month_start(sales["invoice_date"]))
        .drop_duplicates(["customer_id", "activity_month"])
        .loc[:, ["customer_id", "activity_month"]]
    )
    cohort_month = activity.groupby("customer_id")["activity_month"].min()
    activity = activity.join(cohort_month.rename("cohort_month"), on="customer_id")
    activity["months_since_acquisition"] = months_between(
        activity["activity_month"], activity["cohort_month"]
    ).astype("int64")
    return activity.reset_index(drop=True)


def aggregate_cohort_activity(
    fact: pd.DataFrame, customers: pd.DataFrame
) -> pd.DataFrame:
    """First pass: active customer counts per country, cohort and month offset."""
    activity = customer_activity(fact)
    if activity.empty:
        return pd.DataFrame(columns=ACTIVITY_COLUMNS)

    activity = activity.merge(
        customers[["customer_id", "country_id"]], on="customer_id", how="left"
    )
    unmapped = activity.loc[activity["country_id"].isna(), "customer_id"].unique()
    if len(unmapped):
        raise ValueError(
            f"{len(unmapped)} customers missing from the customer dimension: "
            f"{list(unmapped[:5])}"
        )
    activity["country_id"] = activity["country_id"].astype("int64")

    return (
        activity.groupby(
            ["country_id", "cohort_month", "months_since_acquisition"], as_index=False
        )["customer_id"]
        .nunique()
        .rename(columns={"customer_id": "active_customers"})
    )[ACTIVITY_COLUMNS]


def backfill_cohort_size(activity: pd.DataFrame) -> pd.DataFrame:
    """Second pass: copy each cohort's month-0 count onto all of its rows."""
    if activity.empty:
        return pd.DataFrame(columns=COHORT_COLUMNS)

    keys = ["country_id", "cohort_month"]
    sizes = (
        activity.loc[activity["months_since_acquisition"] == 0]
        .set_index(keys)["active_customers"]
        .rename("cohort_size")
    )
    cohorts = activity.join(sizes, on=keys)
    if cohorts["cohort_size"].isna().any():
        raise ValueError("Cohort activity is missing month-0 rows for some cohorts")
    cohorts["cohort_size"] = cohorts["cohort_size"].astype("int64")
    cohorts["retention_rate"] = (
        cohorts["active_customers"] / cohorts["cohort_size"]
    ).round(4)
    return (
        cohorts[COHORT_COLUMNS]
        .sort_values(["country_id", "cohort_month", "months_since_acquisition"])
        .reset_index(drop=True)
    )


def build_cohort_table(fact: pd.DataFrame, customers: pd.DataFrame) -> pd.DataFrame:
    """Build the cohort retention table from the sales fact.

    Parameters
    ----------
    fact:
        Sales fact table (see :mod:`retail_star_schema.foundation.sales_fact`).
    customers:
        Customer dimension providing ``customer_id -> country_id``.

    Returns
    -------
    pd.DataFrame
        Columns ``country_id, cohort_month, months_since_acquisition,
        active_customers, cohort_size, retention_rate``.
    """
    cohorts = backfill_cohort_size(aggregate_cohort_activity(fact, customers))
    logger.info(
        f"Cohort table built: {len(cohorts)} rows across "
        f"{cohorts['cohort_month'].nunique()} cohort months"
    )
    return cohorts
