import csv
import logging
import os
import sys
from typing import Iterable, List, Optional, TextIO

from payments_ledger.models import DEFAULT_DECIMAL_PRECISION, AccountView, round_amount
from payments_ledger.payments_engine import PaymentsEngine

EXIT_INVALID_USAGE = 1
EXIT_ERROR_OPENING_FILE = 2
EXIT_ERROR_PROCESSING = 3

LOG_LEVEL_ENV = "PAYMENTS_LOG_LEVEL"
DECIMAL_PRECISION_ENV = "PAYMENTS_DECIMAL_PRECISION"
DEFAULT_LOG_LEVEL = "WARNING"

OUTPUT_HEADER = ["client", "available", "held", "total", "locked"]


def configure_logging() -> None:
    level_name = os.environ.get(LOG_LEVEL_ENV, DEFAULT_LOG_LEVEL).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.getLevelName(DEFAULT_LOG_LEVEL)

    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )


def decimal_precision() -> int:
    raw = os.environ.get(DECIMAL_PRECISION_ENV)
    if raw is None:
        return DEFAULT_DECIMAL_PRECISION
    try:
        precision = int(raw)
    except ValueError:
        precision = -1
    if precision < 0:
        logging.getLogger(__name__).warning(f"Ignoring invalid {DECIMAL_PRECISION_ENV}={raw!r}")
        return DEFAULT_DECIMAL_PRECISION
    return precision


def format_decimal(value, precision: int = DEFAULT_DECIMAL_PRECISION) -> str:
    """Format decimal with exactly `precision` fractional digits."""
    return f"{round_amount(value, precision):f}"


def write_accounts(accounts: Iterable[AccountView], stream: TextIO, precision: int = DEFAULT_DECIMAL_PRECISION) -> None:
    writer = csv.writer(stream, lineterminator="\n")
    writer.writerow(OUTPUT_HEADER)
    for account in sorted(accounts, key=lambda a: a.client_id):
        writer.writerow([
            account.client_id,
            format_decimal(account.available, precision),
            format_decimal(account.held, precision),
            format_decimal(account.total, precision),
            str(account.locked).lower(),
        ])


def main(argv: Optional[List[str]] = None) -> None:
    argv = sys.argv if argv is None else argv
    configure_logging()

    if len(argv) != 2:
        print("Usage: payments-engine <input.csv>", file=sys.stderr)
        sys.exit(EXIT_INVALID_USAGE)

    filepath = argv[1]
    precision = decimal_precision()
    engine = PaymentsEngine(decimal_precision=precision)

    try:
        f = open(filepath, "r", newline="", encoding="utf-8")
    except OSError as e:
        print(f"error opening input file: {e}", file=sys.stderr)
        sys.exit(EXIT_ERROR_OPENING_FILE)

    with f:
        try:
            accounts = engine.process_stream(f)
            write_accounts(accounts.values(), sys.stdout, precision)
        except (csv.Error, UnicodeDecodeError, ArithmeticError) as e:
            print(f"error processing transaction instructions: {e!r}", file=sys.stderr)
            sys.exit(EXIT_ERROR_PROCESSING)


if __name__ == "__main__":
    main()
