"""Reading transaction logs and writing account states as CSV."""

import csv
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Iterable, Iterator, TextIO

from pydantic import ValidationError

from exceptions import MalformedRecordError
from models import MONEY_CONTEXT, AccountState, Transaction

REQUIRED_TRANSACTION_FIELDS = ("type", "client", "tx")
ACCOUNT_STATE_FIELDS = ("client", "available", "held", "total", "locked")


def read_transactions(stream: TextIO) -> Iterator[Transaction]:
    """Yield the transactions of a CSV log in file order.

    The first row is the header. Whitespace around headers and values is
    ignored, as are blank lines.

    Raises:
        MalformedRecordError: a row cannot be read as a transaction.
    """
    reader = csv.reader(stream)
    try:
        header = next(reader, None)
        if header is None:
            return
        header = [name.strip() for name in header]
        missing = [name for name in REQUIRED_TRANSACTION_FIELDS if name not in header]
        if missing:
            raise MalformedRecordError(
                f"header is missing {', '.join(missing)}", reader.line_num
            )

        for row in reader:
            if not row:
                continue
            if len(row) != len(header):
                raise MalformedRecordError(
                    f"expected {len(header)} fields, got {len(row)}", reader.line_num
                )
            record = {name: value.strip() for name, value in zip(header, row)}
            try:
                transaction = Transaction.model_validate(record)
            except ValidationError as e:
                raise MalformedRecordError(_describe(e), reader.line_num) from e
            yield transaction
    except csv.Error as e:
        raise MalformedRecordError(str(e), reader.line_num) from e
    except UnicodeDecodeError as e:
        raise MalformedRecordError(f"undecodable input: {e.reason}", reader.line_num) from e


def _describe(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in item['loc'])}: {item['msg']}"
        for item in error.errors()
    )


def format_amount(value: Decimal, precision: int = 4) -> str:
    quantized = value.quantize(
        Decimal(1).scaleb(-precision), rounding=ROUND_HALF_EVEN, context=MONEY_CONTEXT
    )
    if quantized.is_zero():
        quantized = quantized.copy_abs()
    return f"{quantized:f}"


def write_account_states(
    states: Iterable[AccountState],
    stream: TextIO,
    precision: int = 4,
    sort: bool = True,
) -> None:
    if sort:
        states = sorted(states, key=lambda state: state.client)

    # Rows are fully rendered before anything is written.
    rows = [
        [
            state.client,
            format_amount(state.available, precision),
            format_amount(state.held, precision),
            format_amount(state.total, precision),
            "true" if state.locked else "false",
        ]
        for state in states
    ]

    writer = csv.writer(stream, lineterminator="\n")
    writer.writerow(ACCOUNT_STATE_FIELDS)
    writer.writerows(rows)
