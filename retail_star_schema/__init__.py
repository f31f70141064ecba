"""Batch transformations that turn a retail transaction export into a star schema."""

from .config import PipelineConfig, RawColumnMapping, RFMScoringConfig, ScoreBands
from .pipeline import StarSchema, StarSchemaPipeline

__all__ = [
    "PipelineConfig",
    "RawColumnMapping",
    "RFMScoringConfig",
    "ScoreBands",
    "StarSchema",
    "StarSchemaPipeline",
]

__version__ = "0.1.0"
