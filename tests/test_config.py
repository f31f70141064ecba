"""Tests for pipeline configuration validation."""

import json
from datetime import date

import pytest
from pydantic import ValidationError

from retail_star_schema.config import (
    PipelineConfig,
    RawColumnMapping,
    RFMScoringConfig,
    ScoreBands,
)


class TestScoreBands:
    """Threshold ordering must agree with direction."""

    def test_lower_direction_requires_increasing_thresholds(self):
        with pytest.raises(ValidationError, match="strictly increasing"):
            ScoreBands(thresholds=(60, 30, 90, 180), direction="lower")

    def test_higher_direction_requires_decreasing_thresholds(self):
        with pytest.raises(ValidationError, match="strictly decreasing"):
            ScoreBands(thresholds=(2, 3, 6, 10), direction="higher")

    def test_equal_thresholds_rejected(self):
        with pytest.raises(ValidationError):
            ScoreBands(thresholds=(10, 6, 6, 2), direction="higher")

    def test_recency_must_be_lower_is_better(self):
        with pytest.raises(ValidationError, match="Recency bands"):
            RFMScoringConfig(
                recency=ScoreBands(thresholds=(180, 90, 60, 30), direction="higher")
            )

    def test_monetary_must_be_higher_is_better(self):
        with pytest.raises(ValidationError, match="Frequency and monetary"):
            RFMScoringConfig(
                monetary=ScoreBands(thresholds=(175, 342, 513, 685), direction="lower")
            )


class TestRFMScoringConfig:
    """Calibrated defaults."""

    def test_defaults(self):
        scoring = RFMScoringConfig()

        assert scoring.recency.thresholds == (30, 60, 90, 180)
        assert scoring.frequency.thresholds == (10, 6, 3, 2)
        assert scoring.monetary.thresholds == (685, 513, 342, 175)
        assert scoring.segment_priorities["Champions"] == "High Value"
        assert scoring.segment_priorities["New Customers"] == "Growth"
        assert scoring.default_priority == "Low Engagement"
        assert scoring.lookahead_months == 4

    def test_lookahead_range(self):
        with pytest.raises(ValidationError):
            RFMScoringConfig(lookahead_months=13)

    def test_defaults_not_shared_between_instances(self):
        first = RFMScoringConfig()
        first.segment_priorities["Others"] = "Growth"

        assert "Others" not in RFMScoringConfig().segment_priorities


class TestPipelineConfig:
    """Top-level configuration."""

    def test_inverted_window_rejected(self):
        with pytest.raises(ValidationError, match="date_window_start"):
            PipelineConfig(
                date_window_start=date(2012, 1, 1), date_window_end=date(2011, 1, 1)
            )

    def test_threshold_must_be_positive(self):
        with pytest.raises(ValidationError):
            PipelineConfig(market_significance_threshold=0)

    def test_rename_map(self):
        mapping = RawColumnMapping().rename_map()

        assert mapping["InvoiceNo"] == "invoice_id"
        assert mapping["Description"] == "product_name"
        assert len(mapping) == 7

    def test_from_json_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(
            json.dumps(
                {
                    "date_window_start": "2011-01-01",
                    "date_window_end": "2011-06-30",
                    "market_significance_threshold": 5,
                    "columns": {"customer_id": "Customer ID"},
                    "rfm": {
                        "monetary": {
                            "thresholds": [1000, 500, 250, 100],
                            "direction": "higher",
                        }
                    },
                }
            )
        )

        config = PipelineConfig.from_json_file(path)

        assert config.date_window_start == date(2011, 1, 1)
        assert config.market_significance_threshold == 5
        assert config.columns.customer_id == "Customer ID"
        assert config.columns.invoice_id == "InvoiceNo"
        assert config.rfm.monetary.thresholds == (1000, 500, 250, 100)
        assert config.rfm.recency.thresholds == (30, 60, 90, 180)

    def test_from_json_file_invalid(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"rfm": {"lookahead_months": -1}}))

        with pytest.raises(ValidationError):
            PipelineConfig.from_json_file(path)

    def test_json_round_trip_of_dump(self):
        payload = PipelineConfig().model_dump(mode="json")

        assert payload["date_window_start"] == "2010-12-01"
        assert PipelineConfig.model_validate(payload) == PipelineConfig()
