"""Transformation stages of the retail star schema.

This package exposes the sales fact builder, the dimension builders, the
cohort retention aggregator and the monthly RFM snapshot scorer.
"""

from .cohorts import build_cohort_table
from .dimensions import (
    assign_country_ids,
    build_customer_dimension,
    build_date_dimension,
    build_geography_dimension,
    build_product_dimension,
)
from .rfm import RFMSnapshotBuilder, SegmentRule, SEGMENT_RULES, build_rfm_snapshots
from .sales_fact import (
    FactBuildStats,
    SalesFactBuilder,
    SalesFactResult,
    build_sales_fact,
)

__all__ = [
    "FactBuildStats",
    "SalesFactBuilder",
    "SalesFactResult",
    "build_sales_fact",
    "assign_country_ids",
    "build_customer_dimension",
    "build_geography_dimension",
    "build_product_dimension",
    "build_date_dimension",
    "build_cohort_table",
    "RFMSnapshotBuilder",
    "SegmentRule",
    "SEGMENT_RULES",
    "build_rfm_snapshots",
]
