"""Pipeline configuration models.

All calibration constants that shape the star schema live here so that a
rebuild is reproducible: the RFM score bands (the monetary bands were derived
once from the 80th percentile of historical monthly customer revenue and are
deliberately *not* recomputed per run), the date dimension window and the
market-significance threshold.
"""

from __future__ import annotations

import json
from datetime import date
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator


class RawColumnMapping(BaseModel):
    """Source headers of the raw transaction export.

    Defaults match the Online Retail export. Each field maps the canonical
    column name used throughout the pipeline to the header in the input file.
    """

    invoice_id: str = Field(default="InvoiceNo", description="Invoice number header")
    customer_id: str = Field(default="CustomerID", description="Customer id header")
    product_name: str = Field(default="Description", description="Product description header")
    invoice_ts: str = Field(default="InvoiceDate", description="Invoice timestamp header")
    quantity: str = Field(default="Quantity", description="Signed quantity header")
    unit_price: str = Field(default="UnitPrice", description="Unit price header")
    country: str = Field(default="Country", description="Customer country header")

    def rename_map(self) -> dict[str, str]:
        """Return a ``{source_header: canonical_name}`` mapping for ``DataFrame.rename``."""
        return {source: canonical for canonical, source in self.model_dump().items()}


class ScoreBands(BaseModel):
    """Four thresholds that split a metric into scores 5..1.

    ``thresholds[0]`` is the boundary for score 5, ``thresholds[1]`` for
    score 4 and so on; anything that clears none of them scores 1. Bands are
    closed intervals evaluated top-down, first match wins.

    ``direction="lower"`` means smaller values are better (recency: value
    <= threshold). ``direction="higher"`` means larger values are better
    (frequency, monetary: value >= threshold).
    """

    thresholds: tuple[float, float, float, float]
    direction: Literal["lower", "higher"]

    @model_validator(mode="after")
    def _check_ordering(self) -> "ScoreBands":
        pairs = zip(self.thresholds, self.thresholds[1:])
        if self.direction == "lower":
            ordered = all(a < b for a, b in pairs)
            expected = "strictly increasing"
        else:
            ordered = all(a > b for a, b in pairs)
            expected = "strictly decreasing"
        if not ordered:
            raise ValueError(
                f"Thresholds for direction={self.direction!r} must be {expected}: "
                f"{self.thresholds}"
            )
        return self


DEFAULT_SEGMENT_PRIORITIES: dict[str, str] = {
    "Champions": "High Value",
    "Loyal Customers": "High Value",
    "Big Spenders": "High Value",
    "Potential Loyalists": "Growth",
    "New Customers": "Growth",
    "At Risk": "High Risk",
}


class RFMScoringConfig(BaseModel):
    """Score bands and segment rollup for the monthly RFM snapshots."""

    recency: ScoreBands = Field(
        default_factory=lambda: ScoreBands(thresholds=(30, 60, 90, 180), direction="lower"),
        description="Days since last purchase",
    )
    frequency: ScoreBands = Field(
        default_factory=lambda: ScoreBands(thresholds=(10, 6, 3, 2), direction="higher"),
        description="Distinct invoices up to the snapshot",
    )
    monetary: ScoreBands = Field(
        default_factory=lambda: ScoreBands(
            thresholds=(685, 513, 342, 175), direction="higher"
        ),
        description="Cumulative revenue up to the snapshot",
    )
    segment_priorities: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_SEGMENT_PRIORITIES),
        description="Segment name to priority rollup",
    )
    default_priority: str = Field(default="Low Engagement")
    lookahead_months: int = Field(default=4, ge=0, le=12)

    @field_validator("recency")
    @classmethod
    def _recency_is_lower_better(cls, value: ScoreBands) -> ScoreBands:
        if value.direction != "lower":
            raise ValueError("Recency bands must use direction='lower'")
        return value

    @field_validator("frequency", "monetary")
    @classmethod
    def _higher_is_better(cls, value: ScoreBands) -> ScoreBands:
        if value.direction != "higher":
            raise ValueError("Frequency and monetary bands must use direction='higher'")
        return value


class PipelineConfig(BaseModel):
    """Top level configuration for a star schema rebuild."""

    date_window_start: date = Field(default=date(2010, 12, 1))
    date_window_end: date = Field(default=date(2011, 12, 31))
    timestamp_format: str | None = Field(
        default="%m/%d/%Y %H:%M",
        description="strptime format of the raw invoice timestamp; None lets pandas infer ISO 8601",
    )
    market_significance_threshold: int = Field(default=20, ge=1)
    default_category: str = Field(default="Uncategorised")
    unknown_geography: str = Field(default="Unknown")
    columns: RawColumnMapping = Field(default_factory=RawColumnMapping)
    rfm: RFMScoringConfig = Field(default_factory=RFMScoringConfig)

    @model_validator(mode="after")
    def _check_window(self) -> "PipelineConfig":
        if self.date_window_start > self.date_window_end:
            raise ValueError(
                f"date_window_start must not be after date_window_end: "
                f"start={self.date_window_start.isoformat()}, "
                f"end={self.date_window_end.isoformat()}"
            )
        return self

    @classmethod
    def from_json_file(cls, path: str | Path) -> "PipelineConfig":
        with Path(path).open("r", encoding="utf-8") as fh:
            payload = json.load(fh)
        return cls.model_validate(payload)
