import argparse
import logging
import sys
from typing import List, Optional, TextIO

import structlog

from config import Settings, get_settings
from csv_io import read_transactions, write_account_states
from exceptions import MalformedRecordError
from repositories import get_account_repository

EXIT_OK = 0
EXIT_USAGE = 2
EXIT_DATA_ERROR = 65
EXIT_IO_ERROR = 74

logger = structlog.get_logger()

_log_handler: Optional[logging.Handler] = None


def configure_logging(settings: Settings, stream: Optional[TextIO] = None) -> None:
    """Route structlog through stdlib logging to stderr.

    Calling it again replaces the handler installed by the previous call.
    """
    global _log_handler

    root_logger = logging.getLogger()
    if _log_handler is not None:
        root_logger.removeHandler(_log_handler)

    _log_handler = logging.StreamHandler(stream or sys.stderr)
    _log_handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(_log_handler)
    root_logger.setLevel(getattr(logging, settings.log_level.upper(), logging.WARNING))

    if settings.log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=not settings.debug,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="payments-engine",
        description="Apply a CSV log of transactions and print the resulting client accounts.",
    )
    parser.add_argument("input_file", help="Path to the transactions CSV file")
    return parser


def run(input_path: str, settings: Settings, out: Optional[TextIO] = None) -> int:
    """Process a transactions file and write account states to ``out``.

    Nothing is written to ``out`` unless the whole file was read. Logging is
    configured from ``settings`` unless configure_logging() already ran.
    """
    if _log_handler is None:
        configure_logging(settings)

    repository = get_account_repository(settings)

    logger.info(
        "Processing started",
        app=settings.app_name,
        version=settings.app_version,
        input_file=input_path,
    )
    try:
        with open(input_path, newline="", encoding="utf-8-sig") as input_file:
            for transaction in read_transactions(input_file):
                repository.route(transaction)
    except OSError as e:
        logger.error("Unable to read input file", input_file=input_path, error=str(e))
        return EXIT_IO_ERROR
    except MalformedRecordError as e:
        logger.error(
            "Malformed input record",
            input_file=input_path,
            line=e.line_number,
            detail=e.detail,
        )
        return EXIT_DATA_ERROR

    write_account_states(
        repository.snapshot(),
        out or sys.stdout,
        precision=settings.output_precision,
        sort=settings.sort_output,
    )

    logger.info(
        "Processing completed",
        accounts_count=repository.get_accounts_count(),
        **repository.stats.model_dump(),
    )
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()

    # argparse exits on bad arguments; hand its status back to the caller instead.
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        return e.code if isinstance(e.code, int) else EXIT_USAGE

    settings = get_settings()
    configure_logging(settings)
    return run(args.input_file, settings)


if __name__ == "__main__":
    sys.exit(main())
