import csv
import logging
import sys
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, Iterator, Optional

from payments_ledger.models import DEFAULT_DECIMAL_PRECISION, AccountView, Instruction, InstructionType, ProcessingStats, TransactionError
from payments_ledger.state_manager import AccountBook, Ledger
from payments_ledger.transaction_processor import TransactionProcessor

logger = logging.getLogger(__name__)

COMMENT_PREFIX = "#"
# Amounts with more integer digits than the default decimal context carries are malformed.
MAX_AMOUNT_DIGITS = 28


class PaymentsEngine:
    """
    Reads a CSV instruction stream and applies it, in order, to a fresh
    account book and ledger. Rejected and malformed records are logged and
    skipped; they never stop the run.
    """

    def __init__(self, decimal_precision: int = DEFAULT_DECIMAL_PRECISION):
        self._account_book = AccountBook()
        self._ledger = Ledger()
        self._processor = TransactionProcessor(self._account_book, self._ledger, decimal_precision)
        self._stats = ProcessingStats()

    @property
    def stats(self) -> ProcessingStats:
        return self._stats

    def process_file(self, filepath: str) -> Dict[int, AccountView]:
        """Process CSV file and return final account states."""
        with open(filepath, "r", newline="", encoding="utf-8") as f:
            return self.process_stream(f)

    def process_stream(self, lines: Iterable[str]) -> Dict[int, AccountView]:
        """Process CSV text lines (header first) and return final account states."""
        logger.info("Starting processing")

        self.process_instructions(self._read_instructions(lines))

        logger.info("Processing complete")
        print(
            f"Processed: {self._stats.processed}, "
            f"Failed: {self._stats.failed}, "
            f"Malformed: {self._stats.malformed}",
            file=sys.stderr
        )

        return self.accounts()

    def process_instructions(self, instructions: Iterable[Instruction]) -> None:
        """Apply decoded instructions in order, logging and counting rejections."""
        for instruction in instructions:
            try:
                self._processor.process_transaction(instruction)
            except TransactionError as e:
                self._stats.record_failure()
                logger.warning(f"Rejected {instruction}: {e}")
            else:
                self._stats.record_success()

    def accounts(self) -> Dict[int, AccountView]:
        return {view.client_id: view for view in self._processor.accounts()}

    def _read_instructions(self, lines: Iterable[str]) -> Iterator[Instruction]:
        """Decode CSV rows, skipping comment lines and malformed records."""
        source = _InstructionLines(lines)
        reader = csv.DictReader(source, skipinitialspace=True)
        for row in reader:
            instruction = self._parse_csv_row(row, source.line_number)
            if instruction:
                yield instruction

    def _parse_csv_row(self, row: Dict[Optional[str], object], line_number: int) -> Optional[Instruction]:
        """Parse CSV row into Instruction."""
        try:
            # Extra trailing columns land under the None key; missing ones have None values.
            normalized = {k.strip(): (v or "").strip() for k, v in row.items() if k is not None}

            instruction_type = InstructionType(normalized["type"].lower())
            client_id = _parse_id(normalized["client"])
            transaction_id = _parse_id(normalized["tx"])

            amount = None
            amount_str = normalized.get("amount", "")
            if amount_str:
                amount = Decimal(amount_str)
                if not amount.is_finite():
                    raise ValueError(f"amount {amount_str!r} is not a finite number")
                if amount.adjusted() >= MAX_AMOUNT_DIGITS:
                    raise ValueError(f"amount {amount_str!r} has more than {MAX_AMOUNT_DIGITS} integer digits")

            return Instruction(
                instruction_type=instruction_type,
                client_id=client_id,
                transaction_id=transaction_id,
                amount=amount,
            )
        except (KeyError, ValueError, InvalidOperation) as e:
            self._stats.record_malformed()
            logger.warning(f"Failed to parse line {line_number} {row}: {e!r}")
            return None


class _InstructionLines:
    """Yields the CSV lines worth parsing and remembers the physical line number of the last one."""

    def __init__(self, lines: Iterable[str]):
        self._lines = lines
        self.line_number = 0

    def __iter__(self) -> Iterator[str]:
        # Blank lines go too, otherwise one ahead of the header becomes an empty field list.
        for line_number, line in enumerate(self._lines, start=1):
            stripped = line.strip()
            if stripped and not stripped.startswith(COMMENT_PREFIX):
                self.line_number = line_number
                yield line


def _parse_id(value: str) -> int:
    parsed = int(value)
    if parsed < 0:
        raise ValueError(f"id {value!r} must not be negative")
    return parsed
