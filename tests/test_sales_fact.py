"""Tests for the sales fact builder."""

import numpy as np
import pandas as pd
import pytest

from retail_star_schema.config import PipelineConfig
from retail_star_schema.foundation.sales_fact import (
    FACT_COLUMNS,
    RETURN,
    SALE,
    SalesFactBuilder,
    build_sales_fact,
    normalise_customer_id,
    normalise_product_name,
)


class TestNormalisation:
    """Test product name and customer id normalisation."""

    def test_product_name_whitespace_and_case(self):
        assert (
            normalise_product_name("  WHITE HANGING  HEART T-LIGHT HOLDER ")
            == "White Hanging Heart T-Light Holder"
        )

    def test_missing_product_name_is_blank(self):
        assert normalise_product_name(None) == ""
        assert normalise_product_name(np.nan) == ""

    @pytest.mark.parametrize(
        "value, expected",
        [
            (17850.0, "17850"),
            (17850, "17850"),
            ("17850.0", "17850"),
            (" 17850 ", "17850"),
            ("C-1", "C-1"),
            (None, ""),
            (np.nan, ""),
            ("   ", ""),
        ],
    )
    def test_customer_id(self, value, expected):
        assert normalise_customer_id(value) == expected


class TestRowFilters:
    """Data-quality filters drop rows without raising."""

    def test_non_positive_unit_price_dropped(self, raw_factory):
        raw = raw_factory(
            [
                ("536365", "17850", "Lantern", "12/01/2010 08:26", 6, 0.0),
                ("536366", "17850", "Lantern", "12/01/2010 08:28", 6, -11.06),
                ("536367", "17850", "Lantern", "12/01/2010 08:34", 6, 2.55),
            ]
        )
        result = build_sales_fact(raw)

        assert len(result.fact) == 1
        assert result.fact.loc[0, "invoice_id"] == "536367"
        assert result.stats.invalid_unit_price == 2

    def test_missing_customer_id_dropped(self, raw_factory):
        raw = raw_factory(
            [
                ("536365", None, "Lantern", "12/01/2010 08:26", 6, 2.55),
                ("536366", "", "Lantern", "12/01/2010 08:26", 6, 2.55),
                ("536367", "  ", "Lantern", "12/01/2010 08:26", 6, 2.55),
                ("536368", 17850.0, "Lantern", "12/01/2010 08:26", 6, 2.55),
            ]
        )
        result = build_sales_fact(raw)

        assert result.fact["customer_id"].tolist() == ["17850"]
        assert result.stats.missing_customer_id == 3

    def test_blank_product_name_dropped(self, raw_factory):
        raw = raw_factory(
            [
                ("536365", "17850", None, "12/01/2010 08:26", 6, 2.55),
                ("536366", "17850", "Lantern", "12/01/2010 08:26", 6, 2.55),
            ]
        )
        result = build_sales_fact(raw)

        assert len(result.fact) == 1
        assert result.stats.blank_product_name == 1

    def test_malformed_timestamp_dropped_not_defaulted(self, raw_factory):
        raw = raw_factory(
            [
                ("536365", "17850", "Lantern", "not a date", 6, 2.55),
                ("536366", "17850", "Lantern", "13/45/2011 10:00", 6, 2.55),
                ("536367", "17850", "Lantern", "12/01/2010 08:26", 6, 2.55),
            ]
        )
        result = build_sales_fact(raw)

        assert result.fact["invoice_id"].tolist() == ["536367"]
        assert result.stats.invalid_timestamp == 2
        assert result.fact["invoice_date"].notna().all()

    def test_fractional_quantity_dropped(self, raw_factory):
        raw = raw_factory(
            [
                ("536365", "17850", "Lantern", "12/01/2010 08:26", 1.5, 2.55),
                ("536366", "17850", "Lantern", "12/01/2010 08:26", "abc", 2.55),
                ("536367", "17850", "Lantern", "12/01/2010 08:26", 2, 2.55),
            ]
        )
        result = build_sales_fact(raw)

        assert result.fact["quantity"].tolist() == [2]
        assert result.stats.invalid_quantity == 2

    def test_each_dropped_row_counted_once(self, raw_factory):
        raw = raw_factory(
            [
                # Both price and customer invalid: counted under price only.
                ("536365", None, "Lantern", "12/01/2010 08:26", 6, 0.0),
                ("536366", "17850", "Lantern", "12/01/2010 08:26", 6, 2.55),
            ]
        )
        stats = build_sales_fact(raw).stats

        assert stats.invalid_unit_price == 1
        assert stats.missing_customer_id == 0
        assert stats.rows_dropped == 1
        assert stats.rows_after_cleaning == 1

    def test_missing_column_raises(self, raw_factory):
        raw = raw_factory([("536365", "17850", "Lantern", "12/01/2010 08:26", 6, 2.55)])
        with pytest.raises(ValueError, match="missing required columns"):
            build_sales_fact(raw.drop(columns=["unit_price"]))


class TestFactColumns:
    """Derived fact attributes."""

    def test_schema_and_derived_values(self, raw_factory):
        raw = raw_factory(
            [("536365", "17850", "WHITE METAL LANTERN", "12/01/2010 08:26", 6, 3.39)]
        )
        fact = build_sales_fact(raw).fact

        assert list(fact.columns) == FACT_COLUMNS
        row = fact.iloc[0]
        assert row["product_name"] == "White Metal Lantern"
        assert row["invoice_date"] == pd.Timestamp("2010-12-01")
        assert row["transaction_time"] == "08:26:00"
        assert row["transaction_type"] == SALE
        assert row["total_amount"] == pytest.approx(20.34)

    def test_transaction_type_from_quantity_sign(self, raw_factory):
        raw = raw_factory(
            [
                ("536365", "17850", "Lantern", "12/01/2010 08:26", 0, 2.55),
                ("536366", "17850", "Lantern", "12/01/2010 08:26", 4, 2.55),
                ("C536367", "17850", "Lantern", "12/02/2010 09:00", -2, 2.55),
            ]
        )
        fact = build_sales_fact(raw).fact.set_index("invoice_id")

        assert fact.loc["536365", "transaction_type"] == SALE
        assert fact.loc["536366", "transaction_type"] == SALE
        assert fact.loc["C536367", "transaction_type"] == RETURN
        assert fact.loc["C536367", "total_amount"] == pytest.approx(-5.10)

    def test_product_ids_follow_name_order(self, raw_factory):
        raw = raw_factory(
            [
                ("1", "17850", "b item", "12/01/2010 08:26", 1, 1.0),
                ("2", "17850", "A ITEM", "12/01/2010 08:27", 1, 1.0),
                ("3", "17850", " a  item", "12/01/2010 08:28", 1, 1.0),
                ("4", "17850", "C item", "12/01/2010 08:29", 1, 1.0),
            ]
        )
        fact = build_sales_fact(raw).fact
        ids = dict(zip(fact["product_name"], fact["product_id"]))

        assert ids == {"A Item": 1, "B Item": 2, "C Item": 3}

    def test_iso_timestamps_with_format_none(self, raw_factory):
        raw = raw_factory([("1", "17850", "Lantern", "2011-03-04T10:15:00", 1, 1.0)])
        fact = build_sales_fact(raw, PipelineConfig(timestamp_format=None)).fact

        assert fact.loc[0, "invoice_date"] == pd.Timestamp("2011-03-04")
        assert fact.loc[0, "transaction_time"] == "10:15:00"

    def test_already_parsed_timestamps(self, raw_factory):
        raw = raw_factory([("1", "17850", "Lantern", "12/01/2010 08:26", 1, 1.0)])
        raw["invoice_ts"] = pd.to_datetime(["2011-05-06 07:08"])
        fact = build_sales_fact(raw).fact

        assert fact.loc[0, "invoice_date"] == pd.Timestamp("2011-05-06")

    def test_blank_country_defaults_to_unknown(self, raw_factory):
        raw = raw_factory([("1", "17850", "Lantern", "12/01/2010 08:26", 1, 1.0, None)])
        fact = build_sales_fact(raw).fact

        assert fact.loc[0, "country"] == "Unknown"


class TestReturnsValidation:
    """Two-pass returns eligibility per (customer, product)."""

    def test_returns_up_to_sold_quantity_kept(self, raw_factory):
        raw = raw_factory(
            [
                ("1", "17850", "Lantern", "12/01/2010 08:26", 3, 2.0),
                ("2", "17850", "Lantern", "12/05/2010 08:26", 2, 2.0),
                ("C3", "17850", "Lantern", "12/07/2010 08:26", -3, 2.0),
                ("C4", "17850", "Lantern", "12/09/2010 08:26", -2, 2.0),
            ]
        )
        result = build_sales_fact(raw)

        assert len(result.fact) == 4
        assert result.stats.ineligible_returns == 0

    def test_excess_returns_drop_every_return_row_for_pair(self, raw_factory):
        raw = raw_factory(
            [
                ("1", "17850", "Lantern", "12/01/2010 08:26", 5, 2.0),
                ("C2", "17850", "Lantern", "12/03/2010 08:26", -2, 2.0),
                ("C3", "17850", "Lantern", "12/04/2010 08:26", -4, 2.0),
            ]
        )
        result = build_sales_fact(raw)

        # Not clamped: neither return survives, the sale always does.
        assert result.fact["invoice_id"].tolist() == ["1"]
        assert result.stats.ineligible_returns == 2

    def test_eligibility_uses_whole_dataset_not_running_totals(self, raw_factory):
        raw = raw_factory(
            [
                ("C1", "17850", "Lantern", "12/01/2010 08:26", -4, 2.0),
                ("2", "17850", "Lantern", "12/20/2010 08:26", 4, 2.0),
            ]
        )
        result = build_sales_fact(raw)

        assert sorted(result.fact["transaction_type"]) == [RETURN, SALE]

    def test_pairs_are_independent(self, raw_factory):
        raw = raw_factory(
            [
                ("1", "17850", "Lantern", "12/01/2010 08:26", 2, 2.0),
                ("1", "17850", "Candle", "12/01/2010 08:26", 2, 1.0),
                ("C2", "17850", "Lantern", "12/02/2010 08:26", -3, 2.0),
                ("C2", "17850", "Candle", "12/02/2010 08:26", -1, 1.0),
                # Another customer's sale does not make the first customer's return eligible.
                ("3", "13047", "Lantern", "12/02/2010 09:00", 10, 2.0),
            ]
        )
        fact = build_sales_fact(raw).fact
        returns = fact[fact["transaction_type"] == RETURN]

        assert returns["product_name"].tolist() == ["Candle"]

    def test_returns_never_exceed_sales_on_synthetic_data(self, synthetic_raw):
        result = build_sales_fact(synthetic_raw)
        fact = result.fact

        assert result.stats.ineligible_returns > 0
        assert (fact["unit_price"] > 0).all()
        assert (fact["customer_id"].str.len() > 0).all()

        sold = fact[fact["quantity"] >= 0].groupby(["customer_id", "product_id"])["quantity"].sum()
        returned = (
            -fact[fact["quantity"] < 0].groupby(["customer_id", "product_id"])["quantity"].sum()
        )
        for pair, quantity in returned.items():
            assert quantity <= sold.get(pair, 0)

    def test_builder_reuses_config(self, raw_factory):
        config = PipelineConfig(timestamp_format="%Y-%m-%d %H:%M")
        builder = SalesFactBuilder(config)
        raw = raw_factory([("1", "17850", "Lantern", "2011-01-02 03:04", 1, 1.0)])

        assert len(builder.build(raw).fact) == 1
        assert len(builder.build(raw).fact) == 1
