"""Star schema orchestration.

Runs the stages in dependency order::

    raw rows -> sales fact -> customer -> geography
                           -> product
                           -> cohort
    date dimension -> month starts -> RFM snapshots (with the sales fact)

Every stage is a drop-and-rebuild of one table; if any stage raises, the run
is abandoned and no partial :class:`StarSchema` is returned.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Mapping

import pandas as pd

from retail_star_schema.config import PipelineConfig
from retail_star_schema.foundation.cohorts import build_cohort_table
from retail_star_schema.foundation.dimensions import (
    assign_country_ids,
    build_customer_dimension,
    build_date_dimension,
    build_geography_dimension,
    build_product_dimension,
    month_starts,
    validate_country_reference,
)
from retail_star_schema.foundation.rfm import RFMSnapshotBuilder
from retail_star_schema.foundation.sales_fact import FactBuildStats, SalesFactBuilder
from retail_star_schema.reference import default_country_reference

logger = logging.getLogger(__name__)


@dataclass
class StarSchema:
    """Container for every table produced by one pipeline run."""

    sales_fact: pd.DataFrame
    customer_dim: pd.DataFrame
    geography_dim: pd.DataFrame
    product_dim: pd.DataFrame
    date_dim: pd.DataFrame
    cohorts: pd.DataFrame
    rfm_snapshots: pd.DataFrame
    fact_stats: FactBuildStats
    stage_seconds: dict[str, float] = field(default_factory=dict)

    def tables(self) -> dict[str, pd.DataFrame]:
        """Return tables keyed by their export name."""
        return {
            "fact_sales": self.sales_fact,
            "dim_customer": self.customer_dim,
            "dim_geography": self.geography_dim,
            "dim_product": self.product_dim,
            "dim_date": self.date_dim,
            "cohort_retention": self.cohorts,
            "rfm_snapshots": self.rfm_snapshots,
        }

    def summary(self) -> dict[str, Any]:
        """Return a JSON-serialisable description of the build."""
        return {
            "row_counts": {name: len(table) for name, table in self.tables().items()},
            "fact_build": self.fact_stats.as_dict(),
            "stage_seconds": {
                stage: round(seconds, 3) for stage, seconds in self.stage_seconds.items()
            },
        }


class StarSchemaPipeline:
    """Build the full star schema from raw transactions and reference tables.

    Example:
        pipeline = StarSchemaPipeline(PipelineConfig())
        schema = pipeline.run(raw_df, category_map={"Regency Cakestand 3 Tier": "Kitchen"})
        schema.rfm_snapshots.head()
    """

    def __init__(self, config: PipelineConfig | None = None):
        self.config = config or PipelineConfig()

    def run(
        self,
        raw: pd.DataFrame,
        country_reference: pd.DataFrame | None = None,
        category_map: Mapping[str, str] | None = None,
    ) -> StarSchema:
        config = self.config
        if country_reference is None:
            country_reference = default_country_reference()
        country_reference = validate_country_reference(country_reference)
        timings: dict[str, float] = {}

        def timed(stage: str, func, *args, **kwargs):
            started = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception:
                logger.error(f"Stage {stage!r} failed; aborting star schema rebuild")
                raise
            timings[stage] = time.perf_counter() - started
            return result

        fact_result = timed("sales_fact", SalesFactBuilder(config).build, raw)
        fact = fact_result.fact

        country_ids = assign_country_ids(country_reference["country"], fact["country"])
        customers = timed("dim_customer", build_customer_dimension, fact, country_ids)
        geography = timed(
            "dim_geography",
            build_geography_dimension,
            customers,
            country_reference,
            country_ids,
            config.market_significance_threshold,
            config.unknown_geography,
        )
        products = timed(
            "dim_product",
            build_product_dimension,
            fact,
            category_map,
            config.default_category,
        )
        dates = timed(
            "dim_date",
            build_date_dimension,
            config.date_window_start,
            config.date_window_end,
        )
        cohorts = timed("cohort_retention", build_cohort_table, fact, customers)

        if fact.empty:
            snapshot_dates: list[pd.Timestamp] = []
        else:
            snapshot_dates = month_starts(dates, fact["invoice_date"].max())
        rfm = timed(
            "rfm_snapshots", RFMSnapshotBuilder(config.rfm).build, fact, snapshot_dates
        )

        schema = StarSchema(
            sales_fact=fact,
            customer_dim=customers,
            geography_dim=geography,
            product_dim=products,
            date_dim=dates,
            cohorts=cohorts,
            rfm_snapshots=rfm,
            fact_stats=fact_result.stats,
            stage_seconds=timings,
        )
        logger.info(f"Star schema built: {schema.summary()['row_counts']}")
        return schema
