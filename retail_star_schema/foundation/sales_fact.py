"""Sales fact construction from raw retail transaction rows.

The fact builder is the only stage that reads raw input. Every other table in
the star schema is derived from its output, so all data-quality filtering
happens here:

- rows with a non-positive (or unparseable) unit price are dropped
- rows without a customer id are dropped
- rows without a product description are dropped
- rows whose timestamp cannot be parsed are dropped (a date is never invented)
- rows whose quantity is not a whole number are dropped
- return rows are dropped for every (customer, product) pair whose total
  returned quantity exceeds the total sold quantity

None of these raise; each drop is counted in :class:`FactBuildStats`.
Structural problems (missing columns) raise ``ValueError`` and abort the
stage.
"""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass

import pandas as pd

from retail_star_schema.config import PipelineConfig

logger = logging.getLogger(__name__)

RAW_COLUMNS = [
    "invoice_id",
    "customer_id",
    "product_name",
    "invoice_ts",
    "quantity",
    "unit_price",
    "country",
]

FACT_COLUMNS = [
    "invoice_id",
    "customer_id",
    "product_id",
    "product_name",
    "invoice_date",
    "transaction_time",
    "transaction_type",
    "quantity",
    "unit_price",
    "total_amount",
    "country",
]

SALE = "Sale"
RETURN = "Return"

_WHOLE_NUMBER_ID = re.compile(r"^(\d+)\.0+$")


@dataclass(slots=True)
class FactBuildStats:
    """Row accounting for a single fact build.

    Each ``*`` counter is the number of rows removed for that reason. Filters
    run in the order the fields are declared, so a row is counted once, under
    the first reason that removes it.
    """

    total_rows: int
    invalid_unit_price: int = 0
    missing_customer_id: int = 0
    blank_product_name: int = 0
    invalid_timestamp: int = 0
    invalid_quantity: int = 0
    ineligible_returns: int = 0
    rows_after_cleaning: int = 0

    @property
    def rows_dropped(self) -> int:
        return self.total_rows - self.rows_after_cleaning

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass
class SalesFactResult:
    """The materialised fact table plus its build statistics."""

    fact: pd.DataFrame
    stats: FactBuildStats


def normalise_product_name(value: object) -> str:
    """Collapse whitespace and title-case a product description.

    >>> normalise_product_name("  WHITE HANGING  HEART T-LIGHT HOLDER ")
    'White Hanging Heart T-Light Holder'
    """
    if pd.isna(value):
        return ""
    return " ".join(str(value).split()).title()


def normalise_customer_id(value: object) -> str:
    """Return a canonical string customer id, or ``""`` when missing.

    Spreadsheet exports often carry numeric ids as floats (``17850.0``); those
    are rendered without the trailing fraction.

    >>> normalise_customer_id(17850.0)
    '17850'
    >>> normalise_customer_id(None)
    ''
    """
    if pd.isna(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    text = str(value).strip()
    match = _WHOLE_NUMBER_ID.match(text)
    if match:
        return match.group(1)
    return text


def _parse_timestamps(values: pd.Series, timestamp_format: str | None) -> pd.Series:
    if pd.api.types.is_datetime64_any_dtype(values):
        return values
    if timestamp_format:
        return pd.to_datetime(values, format=timestamp_format, errors="coerce")
    return pd.to_datetime(values, format="ISO8601", errors="coerce")


def assign_product_ids(product_names: pd.Series) -> dict[str, int]:
    """Map each distinct product name to a dense 1-based id in lexical order."""
    ordered = sorted(set(product_names))
    return {name: idx for idx, name in enumerate(ordered, start=1)}


def eligible_return_pairs(rows: pd.DataFrame) -> pd.MultiIndex:
    """Return the (customer_id, product_name) pairs whose returns may be kept.

    This is the first of the two returns-validation passes: sold and returned
    quantities are totalled over the whole dataset, and a pair is eligible
    when its total returned quantity does not exceed its total sold quantity.
    """
    quantities = rows["quantity"]
    totals = (
        rows.assign(
            sold=quantities.where(quantities >= 0, 0),
            returned=(-quantities).where(quantities < 0, 0),
        )
        .groupby(["customer_id", "product_name"], sort=False)[["sold", "returned"]]
        .sum()
    )
    return totals.index[totals["returned"] <= totals["sold"]]


class SalesFactBuilder:
    """Build the canonical sales/returns fact table from raw rows."""

    def __init__(self, config: PipelineConfig | None = None):
        self.config = config or PipelineConfig()

    def build(self, raw: pd.DataFrame) -> SalesFactResult:
        missing_cols = set(RAW_COLUMNS) - set(raw.columns)
        if missing_cols:
            raise ValueError(
                f"Raw transactions missing required columns: {sorted(missing_cols)}"
            )

        stats = FactBuildStats(total_rows=len(raw))
        rows = raw[RAW_COLUMNS].copy()

        rows["unit_price"] = pd.to_numeric(rows["unit_price"], errors="coerce")
        valid = rows["unit_price"] > 0
        stats.invalid_unit_price = int((~valid).sum())
        rows = rows[valid].copy()

        rows["customer_id"] = rows["customer_id"].map(normalise_customer_id)
        valid = rows["customer_id"] != ""
        stats.missing_customer_id = int((~valid).sum())
        rows = rows[valid].copy()

        rows["product_name"] = rows["product_name"].map(normalise_product_name)
        valid = rows["product_name"] != ""
        stats.blank_product_name = int((~valid).sum())
        rows = rows[valid].copy()

        rows["invoice_ts"] = _parse_timestamps(
            rows["invoice_ts"], self.config.timestamp_format
        )
        valid = rows["invoice_ts"].notna()
        stats.invalid_timestamp = int((~valid).sum())
        rows = rows[valid].copy()

        rows["quantity"] = pd.to_numeric(rows["quantity"], errors="coerce")
        valid = rows["quantity"].notna() & (rows["quantity"] % 1 == 0)
        stats.invalid_quantity = int((~valid).sum())
        rows = rows[valid].copy()
        rows["quantity"] = rows["quantity"].astype("int64")

        rows["transaction_type"] = SALE
        rows.loc[rows["quantity"] < 0, "transaction_type"] = RETURN

        # Second pass: set-membership filter against the fully aggregated pairs.
        eligible = eligible_return_pairs(rows)
        pair_index = pd.MultiIndex.from_frame(rows[["customer_id", "product_name"]])
        keep = (rows["transaction_type"] == SALE).to_numpy() | pair_index.isin(eligible)
        stats.ineligible_returns = int((~keep).sum())
        rows = rows[keep].copy()

        product_ids = assign_product_ids(rows["product_name"])
        rows["product_id"] = rows["product_name"].map(product_ids).astype("int64")
        rows["invoice_id"] = rows["invoice_id"].astype(str).str.strip()
        rows["invoice_date"] = rows["invoice_ts"].dt.normalize()
        rows["transaction_time"] = rows["invoice_ts"].dt.strftime("%H:%M:%S")
        rows["total_amount"] = (rows["quantity"] * rows["unit_price"]).round(2)
        rows["country"] = (
            rows["country"]
            .fillna(self.config.unknown_geography)
            .astype(str)
            .str.strip()
            .replace("", self.config.unknown_geography)
        )

        fact = (
            rows.sort_values(
                ["invoice_ts", "invoice_id", "product_id"], kind="mergesort"
            )[FACT_COLUMNS]
            .reset_index(drop=True)
        )
        stats.rows_after_cleaning = len(fact)

        logger.info(
            f"Sales fact built: {stats.rows_after_cleaning}/{stats.total_rows} rows kept "
            f"(unit_price={stats.invalid_unit_price}, "
            f"customer_id={stats.missing_customer_id}, "
            f"product_name={stats.blank_product_name}, "
            f"timestamp={stats.invalid_timestamp}, "
            f"quantity={stats.invalid_quantity}, "
            f"ineligible_returns={stats.ineligible_returns})"
        )
        if stats.invalid_timestamp:
            logger.warning(
                f"{stats.invalid_timestamp} rows dropped with unparseable invoice "
                f"timestamps (format={self.config.timestamp_format!r})"
            )
        return SalesFactResult(fact=fact, stats=stats)


def build_sales_fact(
    raw: pd.DataFrame, config: PipelineConfig | None = None
) -> SalesFactResult:
    """Convenience wrapper around :class:`SalesFactBuilder`."""
    return SalesFactBuilder(config).build(raw)
