"""Write star schema tables for the reporting layer.

Each table becomes one CSV in the output directory, alongside a
``build_summary.json`` describing the run (row counts, rows dropped by the
fact builder, stage timings and the configuration used).
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from retail_star_schema.config import PipelineConfig
from retail_star_schema.pipeline import StarSchema

logger = logging.getLogger(__name__)

SUMMARY_FILENAME = "build_summary.json"


def export_star_schema_csv(
    schema: StarSchema,
    output_dir: str | Path,
    date_format: str = "%Y-%m-%d",
) -> dict[str, Path]:
    """Export every table to ``<output_dir>/<table>.csv``.

    Parameters
    ----------
    schema:
        Result of :meth:`StarSchemaPipeline.run`.
    output_dir:
        Directory to write into; created when missing. Existing files with the
        same names are overwritten (drop-and-rebuild).
    date_format:
        Format for date columns. Dashboard tools import ISO dates reliably.

    Returns
    -------
    dict[str, Path]
        Table name to written file path.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    written: dict[str, Path] = {}
    for name, table in schema.tables().items():
        path = output_dir / f"{name}.csv"
        table.to_csv(path, index=False, date_format=date_format)
        written[name] = path
        logger.info(f"Exported {name} ({len(table)} rows) to {path}")
    return written


def export_build_summary_json(
    schema: StarSchema,
    output_path: str | Path,
    config: PipelineConfig | None = None,
    metadata: dict[str, Any] | None = None,
) -> Path:
    """Write the run summary as JSON.

    Examples
    --------
    >>> export_build_summary_json(
    ...     schema,
    ...     "out/build_summary.json",
    ...     config=pipeline.config,
    ...     metadata={"source": "online_retail.csv"},
    ... )  # doctest: +SKIP
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    report = {
        "metadata": metadata or {},
        "timestamp": datetime.now().isoformat(),
        **schema.summary(),
    }
    if config is not None:
        report["config"] = config.model_dump(mode="json")

    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(report, f, indent=2)

    logger.info(f"Build summary exported to {output_path}")
    return output_path


def export_star_schema(
    schema: StarSchema,
    output_dir: str | Path,
    config: PipelineConfig | None = None,
    metadata: dict[str, Any] | None = None,
) -> dict[str, Path]:
    """Export all tables plus the build summary into ``output_dir``."""
    written = export_star_schema_csv(schema, output_dir)
    written["build_summary"] = export_build_summary_json(
        schema, Path(output_dir) / SUMMARY_FILENAME, config=config, metadata=metadata
    )
    return written
