"""
Command-line interface for running the customer pipeline.

Usage:
    customer-etl run --input <file_path> [options]
    customer-etl init-db [options]
"""

import argparse
import signal
import sys
from pathlib import Path

from dotenv import load_dotenv

from customer_etl.core.config import load_config
from customer_etl.core.exceptions import ConfigurationError, ConnectivityError
from customer_etl.core.models import RunReport, RunState
from customer_etl.observability.logger import configure_logging, get_logger, log_operation
from customer_etl.observability.metrics import generate_metrics, start_metrics_server
from customer_etl.pipeline import PipelineOrchestrator
from customer_etl.sinks import InMemorySink, PostgresSink
from customer_etl.sources import CSVFileSource, JSONLinesSource, RecordSource
from customer_etl.warehouse import DatabaseConnectionPool, QuarantineWriter, SchemaManager

logger = get_logger(__name__)

EXIT_COMPLETED = 0
EXIT_FAILED = 1
EXIT_CANCELLED = 2

EXIT_CODES = {
    RunState.COMPLETED: EXIT_COMPLETED,
    RunState.FAILED: EXIT_FAILED,
    RunState.CANCELLED: EXIT_CANCELLED,
}

JSONL_SUFFIXES = {".jsonl", ".ndjson"}


def detect_format(path: Path) -> str:
    """'jsonl' for .jsonl/.ndjson (optionally .gz), 'csv' otherwise."""
    suffixes = [s.lower() for s in path.suffixes]
    if suffixes and suffixes[-1] == ".gz":
        suffixes = suffixes[:-1]
    if suffixes and suffixes[-1] in JSONL_SUFFIXES:
        return "jsonl"
    return "csv"


def build_source(input_path: Path, file_format: str, delimiter: str = ",") -> RecordSource:
    if file_format == "auto":
        file_format = detect_format(input_path)
    if file_format == "jsonl":
        return JSONLinesSource(input_path)
    return CSVFileSource(input_path, delimiter=delimiter)


def build_pool(args, timeout: float = 30.0) -> DatabaseConnectionPool:
    return DatabaseConnectionPool(
        host=args.db_host,
        port=args.db_port,
        database=args.db_name,
        user=args.db_user,
        password=args.db_password,
        max_size=max(2, getattr(args, "concurrency", None) or 4) + 1,
        timeout=timeout,
    )


def write_report(report: RunReport, destination: str) -> None:
    """Write the full report as JSON to a file, or to stdout for '-'."""
    payload = report.model_dump_json(indent=2)
    if destination == "-":
        sys.stdout.write(payload + "\n")
        return
    Path(destination).write_text(payload + "\n")
    logger.info(f"Run report written to {destination}")


class _SignalCancellation:
    """Routes SIGINT/SIGTERM to orchestrator.cancel() for the duration of a run."""

    SIGNALS = (signal.SIGINT, signal.SIGTERM)

    def __init__(self, orchestrator: PipelineOrchestrator):
        self.orchestrator = orchestrator
        self._previous = {}

    def _handle(self, signum, frame):
        self.orchestrator.cancel(f"received {signal.Signals(signum).name}")

    def __enter__(self):
        for signum in self.SIGNALS:
            self._previous[signum] = signal.signal(signum, self._handle)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        for signum, handler in self._previous.items():
            signal.signal(signum, handler)
        return False


def run_command(args) -> int:
    """
    Execute a pipeline run.

    Args:
        args: Command-line arguments

    Returns:
        Process exit code
    """
    input_path = Path(args.input)
    if not input_path.exists():
        logger.error(f"Input file not found: {args.input}")
        return EXIT_FAILED

    try:
        config = load_config(
            args.config,
            overrides={
                "batch_size": args.batch_size,
                "concurrency": args.concurrency,
                "min_quality_score": args.min_quality_score,
                "run_timeout_seconds": args.timeout,
            },
        )
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_FAILED

    if args.metrics_port:
        start_metrics_server(args.metrics_port)
        logger.info(f"Metrics endpoint listening on port {args.metrics_port}")

    source = build_source(input_path, args.format, delimiter=args.delimiter)

    pool = None
    quarantine_writer = None
    if args.dry_run:
        logger.info("DRY RUN MODE: records are loaded into memory only")
        sink = InMemorySink()
    else:
        try:
            pool = build_pool(args, timeout=config.sink_timeout_seconds)
            pool.open()
        except (ConfigurationError, ConnectivityError) as e:
            logger.error(f"Cannot connect to database: {e}")
            return EXIT_FAILED
        with log_operation("Ensure warehouse schema", logger=logger):
            SchemaManager(pool).ensure_schema()
        sink = PostgresSink(pool, timeout_seconds=config.sink_timeout_seconds)

    try:
        orchestrator = PipelineOrchestrator(source, sink, config)
        if pool is not None:
            sink.run_id = orchestrator.run_id
            quarantine_writer = QuarantineWriter(pool, orchestrator.run_id)
            orchestrator.quarantine_writer = quarantine_writer

        with _SignalCancellation(orchestrator):
            report = orchestrator.run()
    finally:
        sink.close()
        if pool is not None:
            pool.close()

    summary = report.summary()
    logger.info("=" * 60)
    logger.info(f"RUN {report.state.value.upper()}")
    logger.info("=" * 60)
    for key, value in summary.items():
        logger.info(f"{key}: {value}")
    if report.error:
        logger.error(f"Run failed: {report.error}")
    if report.cancel_reason:
        logger.warning(f"Run cancelled: {report.cancel_reason}")

    if args.report:
        write_report(report, args.report)

    if args.metrics_file:
        Path(args.metrics_file).write_bytes(generate_metrics())
        logger.info(f"Metrics written to {args.metrics_file}")

    return EXIT_CODES[report.state]


def init_db_command(args) -> int:
    """Create the warehouse tables."""
    try:
        pool = build_pool(args)
        pool.open()
    except (ConfigurationError, ConnectivityError) as e:
        logger.error(f"Cannot connect to database: {e}")
        return EXIT_FAILED

    try:
        with log_operation("Ensure warehouse schema", logger=logger):
            SchemaManager(pool).ensure_schema()
        logger.info("Warehouse schema is up to date")
    finally:
        pool.close()
    return EXIT_COMPLETED


def _add_db_arguments(parser: argparse.ArgumentParser) -> None:
    # Defaults come from DB_* environment variables
    parser.add_argument("--db-host", default=None, help="Database host (env: DB_HOST)")
    parser.add_argument("--db-port", type=int, default=None, help="Database port (env: DB_PORT)")
    parser.add_argument("--db-name", default=None, help="Database name (env: DB_NAME)")
    parser.add_argument("--db-user", default=None, help="Database user (env: DB_USER)")
    parser.add_argument("--db-password", default=None, help="Database password (env: DB_PASSWORD)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="customer-etl",
        description="Customer ETL pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Load a CSV file into PostgreSQL
  customer-etl run --input data/customers.csv

  # Validate and transform only, print the report
  customer-etl run --input data/customers.csv --dry-run --report -

  # Use a config file and expose Prometheus metrics
  customer-etl run --input data/customers.jsonl --config config/pipeline.yaml \\
      --metrics-port 9108

  # Create the warehouse tables
  customer-etl init-db
        """
    )
    parser.add_argument("--env-file", default=None, help="Load environment variables from this file")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ERROR (env: LOG_LEVEL)")
    parser.add_argument(
        "--log-format",
        default="json",
        choices=["json", "text"],
        help="Log output format (default: json)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Run the pipeline over an input file")
    run_parser.add_argument("--input", required=True, help="Path to input file")
    run_parser.add_argument(
        "--format",
        default="auto",
        choices=["auto", "csv", "jsonl"],
        help="Input file format (default: from file extension)"
    )
    run_parser.add_argument("--delimiter", default=",", help="CSV delimiter (default: ,)")
    run_parser.add_argument("--config", default=None, help="Path to pipeline YAML config")
    run_parser.add_argument("--batch-size", type=int, default=None, help="Override batch_size")
    run_parser.add_argument("--concurrency", type=int, default=None, help="Override concurrency")
    run_parser.add_argument("--min-quality-score", type=int, default=None, help="Override min_quality_score")
    run_parser.add_argument("--timeout", type=int, default=None, help="Override run_timeout_seconds")
    run_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate and transform without writing to the database"
    )
    run_parser.add_argument("--report", default=None, help="Write the JSON run report here ('-' for stdout)")
    run_parser.add_argument("--metrics-port", type=int, default=None, help="Expose Prometheus metrics on this port")
    run_parser.add_argument(
        "--metrics-file",
        default=None,
        help="Write Prometheus metrics in text format here when the run ends"
    )
    _add_db_arguments(run_parser)

    init_parser = subparsers.add_parser("init-db", help="Create the warehouse tables")
    _add_db_arguments(init_parser)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return EXIT_FAILED

    if args.env_file:
        load_dotenv(args.env_file, override=True)
    else:
        load_dotenv()
    configure_logging(level=args.log_level, format_type=args.log_format)

    if args.command == "run":
        return run_command(args)
    if args.command == "init-db":
        return init_db_command(args)
    return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
