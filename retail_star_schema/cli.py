"""Command line entry points for the retail star schema pipeline."""

from __future__ import annotations

import argparse
import logging
from datetime import date
from pathlib import Path

from pydantic import ValidationError

from retail_star_schema.config import PipelineConfig
from retail_star_schema.exports import export_star_schema
from retail_star_schema.loaders import (
    load_category_map,
    load_country_reference,
    load_raw_transactions,
)
from retail_star_schema.logging_config import configure_logging
from retail_star_schema.pipeline import StarSchemaPipeline
from retail_star_schema.synthetic import (
    ScenarioConfig,
    generate_customers,
    generate_transactions,
    transactions_to_frame,
)

logger = logging.getLogger(__name__)


def _add_logging_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        default="console",
        choices=["console", "json"],
        help="Log renderer (default: console)",
    )


def build_star_schema_cli(argv: list[str] | None = None) -> int:
    """Rebuild every star schema table from a raw transaction export.

    Args:
        argv: Command line arguments (defaults to sys.argv)

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    parser = argparse.ArgumentParser(
        description="Build the retail star schema from a raw transaction CSV"
    )
    parser.add_argument("input", type=Path, help="Path to the raw transaction CSV")
    parser.add_argument(
        "--output-dir",
        type=Path,
        required=True,
        help="Directory for the exported tables and build summary",
    )
    parser.add_argument(
        "--countries",
        type=Path,
        help="CSV with country,region,continent columns (defaults to the bundled table)",
    )
    parser.add_argument(
        "--categories",
        type=Path,
        help="CSV with product_name,category columns",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="JSON file with pipeline configuration overrides",
    )
    _add_logging_arguments(parser)

    args = parser.parse_args(argv)
    configure_logging(args.log_level, args.log_format)

    try:
        config = (
            PipelineConfig.from_json_file(args.config) if args.config else PipelineConfig()
        )
    except (OSError, ValueError, ValidationError) as exc:
        logger.error(f"Invalid configuration {args.config}: {exc}")
        return 2

    try:
        raw = load_raw_transactions(args.input, config.columns)
        countries = load_country_reference(args.countries) if args.countries else None
        categories = load_category_map(args.categories) if args.categories else None
    except (OSError, ValueError) as exc:
        logger.error(f"Failed to load inputs: {exc}")
        return 1

    if raw.empty:
        logger.error("No transactions found in input file")
        return 1

    try:
        schema = StarSchemaPipeline(config).run(raw, countries, categories)
    except ValueError as exc:
        logger.error(f"Star schema rebuild failed: {exc}")
        return 1

    written = export_star_schema(
        schema,
        args.output_dir,
        config=config,
        metadata={"source": str(args.input)},
    )
    logger.info(f"Exported {len(written)} files to {args.output_dir}")
    return 0


def generate_synthetic_export_cli(argv: list[str] | None = None) -> int:
    """Write a synthetic Online-Retail-shaped CSV for demos and smoke tests."""
    parser = argparse.ArgumentParser(description=generate_synthetic_export_cli.__doc__)
    parser.add_argument("output", type=Path, help="Path for the generated CSV")
    parser.add_argument("--customers", type=int, default=200)
    parser.add_argument("--start", type=date.fromisoformat, default=date(2010, 12, 1))
    parser.add_argument("--end", type=date.fromisoformat, default=date(2011, 12, 9))
    parser.add_argument("--seed", type=int, default=42)
    _add_logging_arguments(parser)

    args = parser.parse_args(argv)
    configure_logging(args.log_level, args.log_format)

    if args.start > args.end:
        logger.error(f"--start {args.start} is after --end {args.end}")
        return 1

    customers = generate_customers(args.customers, args.start, args.end, seed=args.seed)
    transactions = generate_transactions(
        customers, args.start, args.end, scenario=ScenarioConfig(seed=args.seed)
    )
    frame = transactions_to_frame(transactions)

    # Write with the export's own headers so the file round-trips through the loader.
    headers = PipelineConfig().columns.model_dump()
    frame = frame.rename(columns=headers)
    args.output.parent.mkdir(parents=True, exist_ok=True)
    frame.to_csv(args.output, index=False)
    logger.info(
        f"Wrote {len(frame)} synthetic rows for {len(customers)} customers to {args.output}"
    )
    return 0


def main() -> None:
    raise SystemExit(build_star_schema_cli())


if __name__ == "__main__":  # pragma: no cover
    main()
