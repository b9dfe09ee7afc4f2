"""Pipeline CLI Entry Point

Provides the command-line interface for loading Contentful entries as
documents. Handles argument parsing, logging configuration, credentials
from the environment, and orchestration of the loading job.

Usage:
    python -m src.run_pipeline --config config.json --output-dir output
    python -m src.run_pipeline --config config.json --input entries.json
"""

import argparse
import logging
import time
from pathlib import Path

from src.contentful_pipeline.config import Settings
from src.contentful_pipeline.contentful_client import client_for_api
from src.contentful_pipeline.loaders import load_config_file
from src.contentful_pipeline.pipeline import run_pipeline


def configure_logging(log_name: str = "pipeline") -> None:
    """Configure logging with both console and file output.

    Sets up:
      - Root logger at DEBUG level
      - Console handler at INFO level for user-facing messages
      - File handler at DEBUG level for detailed troubleshooting
      - Reduced verbosity for HTTP and client library loggers
    """
    log_dir = Path("logs")
    log_dir.mkdir(exist_ok=True)
    log_file = log_dir / f"{log_name}.log"

    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG)

    for noisy in ("urllib3", "httpx", "openai", "opensearch"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)

    # Clear existing handlers to avoid duplicates if run multiple times
    logger.handlers.clear()
    logger.addHandler(console_handler)
    logger.addHandler(file_handler)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Load Contentful entries as text documents"
    )
    config_group = parser.add_mutually_exclusive_group()
    config_group.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to the loader config JSON file.",
    )
    config_group.add_argument(
        "--config-json",
        type=str,
        default=None,
        help="Loader config as an inline JSON string.",
    )
    parser.add_argument(
        "--input",
        type=Path,
        default=None,
        help="Offline JSON file with raw entries (skips the Contentful API).",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("output"),
        help="Directory where output files will be written.",
    )
    parser.add_argument(
        "--api-type",
        choices=["delivery", "preview"],
        default="delivery",
        help="Contentful API to query (default: delivery).",
    )
    parser.add_argument(
        "--environment-id",
        type=str,
        default=None,
        help="Contentful environment id (default: CONTENTFUL_ENVIRONMENT or master).",
    )
    parser.add_argument(
        "--include",
        type=int,
        default=1,
        help="Number of link levels to include in the response (default: 1).",
    )
    parser.add_argument(
        "--include-all",
        action="store_true",
        help="Fetch every page of entries.",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Page size when not fetching all entries (API default: 100).",
    )
    parser.add_argument(
        "--query",
        type=str,
        default=None,
        help="Search query JSON, also merged into document metadata.",
    )
    parser.add_argument(
        "--include-field-names",
        action="store_true",
        help="Prefix rendered values with their field names.",
    )
    parser.add_argument(
        "--string-output",
        action="store_true",
        help="Also write the plain list of document texts.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Process data but don't write any output files.",
    )
    parser.add_argument(
        "--no-history",
        action="store_true",
        help="Overwrite output files instead of creating timestamped versions",
    )
    return parser


def main(argv=None) -> int:
    """
    CLI entrypoint for the Contentful document loader.

    Returns a Unix-style exit code (0 on success, non-zero on failure).
    """
    configure_logging()
    logger = logging.getLogger(__name__)

    args = build_parser().parse_args(argv)

    logger.info("=== Starting Contentful document loader ===")
    logger.info("Source: %s", args.input if args.input else f"Contentful {args.api_type} API")
    logger.info("Output directory: %s", args.output_dir)
    logger.info("Include all: %s", args.include_all)
    logger.info("Dry_run: %s", args.dry_run)
    logger.info("Keep history: %s", not args.no_history)

    try:
        start_time = time.time()

        settings = Settings.from_env()
        environment_id = args.environment_id or settings.contentful_environment
        config = load_config_file(args.config) if args.config else args.config_json

        client = None
        if args.input is None:
            if not settings.contentful_space_id:
                raise ValueError("CONTENTFUL_SPACE_ID is not set")
            client = client_for_api(
                args.api_type,
                settings.contentful_space_id,
                settings.contentful_delivery_token,
                settings.contentful_preview_token,
                environment_id,
            )

        total_entries, processed_count, output_paths = run_pipeline(
            config,
            output_dir=args.output_dir,
            client=client,
            input_path=args.input,
            space_id=settings.contentful_space_id or "",
            environment_id=environment_id,
            metadata=args.query,
            include=args.include,
            limit=args.limit,
            include_all=args.include_all,
            include_field_names=args.include_field_names,
            string_output=args.string_output,
            dry_run=args.dry_run,
            keep_history=not args.no_history,
        )

        elapsed_time = time.time() - start_time

        logger.info("=" * 70)
        logger.info("Loader completed successfully in %.2fs", elapsed_time)
        logger.info("  Processed:  %d documents from %d entries", processed_count, total_entries)
        for name, path in output_paths.items():
            logger.info("  %-12s %s", f"{name}:", path)
        logger.info("=" * 70)

    except Exception as e:
        logger.exception("Loader failed with an unhandled exception: %s", e)
        return 1

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
