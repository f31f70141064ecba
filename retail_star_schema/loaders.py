"""Readers for the raw export and the static reference tables."""

from __future__ import annotations

import logging
from pathlib import Path

import pandas as pd

from retail_star_schema.config import RawColumnMapping
from retail_star_schema.foundation.sales_fact import RAW_COLUMNS
from retail_star_schema.reference import COUNTRY_REFERENCE_COLUMNS

logger = logging.getLogger(__name__)

MAX_INPUT_BYTES = 250 * 1024 * 1024  # 250 MiB cap to avoid accidental OOM


def _check_size(path: Path) -> Path:
    resolved = path.resolve()
    size = resolved.stat().st_size
    if size > MAX_INPUT_BYTES:
        raise ValueError(
            f"Input file {resolved} is {size} bytes; exceeds limit of {MAX_INPUT_BYTES} bytes"
        )
    return resolved


def rename_raw_columns(
    frame: pd.DataFrame, columns: RawColumnMapping | None = None
) -> pd.DataFrame:
    """Rename source headers to canonical column names.

    Raises:
        ValueError: If any mapped source header is missing
    """
    columns = columns or RawColumnMapping()
    rename_map = columns.rename_map()
    missing_cols = set(rename_map) - set(frame.columns)
    if missing_cols:
        raise ValueError(f"Raw export missing required columns: {sorted(missing_cols)}")
    return frame.rename(columns=rename_map)[RAW_COLUMNS]


def load_raw_transactions(
    path: str | Path, columns: RawColumnMapping | None = None, encoding: str = "utf-8"
) -> pd.DataFrame:
    """Read the raw transaction CSV export.

    Identifiers and timestamps are read as text so that parsing (and the
    rejection of malformed values) happens in the fact builder.

    Example:
        >>> raw = load_raw_transactions("data/online_retail.csv")
        >>> fact = build_sales_fact(raw).fact
    """
    columns = columns or RawColumnMapping()
    resolved = _check_size(Path(path))
    text_columns = [columns.invoice_id, columns.customer_id, columns.invoice_ts]
    frame = pd.read_csv(
        resolved,
        dtype={name: str for name in text_columns},
        encoding=encoding,
    )
    logger.info(f"Loaded {len(frame)} raw rows from {resolved}")
    return rename_raw_columns(frame, columns)


def load_country_reference(path: str | Path) -> pd.DataFrame:
    """Read a ``country,region,continent`` CSV."""
    frame = pd.read_csv(_check_size(Path(path)), dtype=str)
    missing_cols = set(COUNTRY_REFERENCE_COLUMNS) - set(frame.columns)
    if missing_cols:
        raise ValueError(
            f"Country reference missing required columns: {sorted(missing_cols)}"
        )
    return frame[COUNTRY_REFERENCE_COLUMNS]


def load_category_map(
    path: str | Path,
    product_col: str = "product_name",
    category_col: str = "category",
) -> dict[str, str]:
    """Read a product name -> category CSV into a mapping.

    Rows with an empty product name or category are ignored. When a product is
    listed more than once the last row wins and a warning is logged.
    """
    frame = pd.read_csv(_check_size(Path(path)), dtype=str)
    missing_cols = {product_col, category_col} - set(frame.columns)
    if missing_cols:
        raise ValueError(f"Category map missing required columns: {sorted(missing_cols)}")

    frame = frame[[product_col, category_col]].dropna()
    duplicated = frame[product_col][frame[product_col].duplicated()].unique().tolist()
    if duplicated:
        logger.warning(
            f"Category map lists {len(duplicated)} products more than once; "
            f"keeping the last entry: {duplicated[:5]}"
        )
    return dict(zip(frame[product_col], frame[category_col]))
