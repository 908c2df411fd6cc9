from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_EVEN, localcontext
from enum import Enum
from typing import List, Optional, Tuple

DEFAULT_DECIMAL_PRECISION = 4


def round_amount(value: Decimal, precision: int = DEFAULT_DECIMAL_PRECISION) -> Decimal:
    """Quantize to a fixed number of fractional digits, however many integer digits the value has."""
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, value.adjusted() + precision + 2)
        return value.quantize(Decimal(1).scaleb(-precision), rounding=ROUND_HALF_EVEN)


class InstructionType(Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    DISPUTE = "dispute"
    RESOLVE = "resolve"
    CHARGEBACK = "chargeback"

    @property
    def is_monetary(self) -> bool:
        return self in (InstructionType.DEPOSIT, InstructionType.WITHDRAWAL)


class TransactionKind(Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"


class Amendment(Enum):
    DISPUTE = "dispute"
    RESOLVE = "resolve"
    CHARGEBACK = "chargeback"


class TransactionError(Exception):
    """Base class for instructions the engine refuses to apply."""

    reason = "transaction rejected"

    def __init__(self, client_id: int, transaction_id: int):
        self.client_id = client_id
        self.transaction_id = transaction_id
        super().__init__(f"{self.reason} (client={client_id}, tx={transaction_id})")


class InsufficientFundsError(TransactionError):
    reason = "insufficient funds"


class AccountFrozenError(TransactionError):
    reason = "account is frozen"


class NegativeAmountError(TransactionError):
    reason = "amount is negative"


class DuplicateTransactionError(TransactionError):
    reason = "transaction id already used"


@dataclass(frozen=True)
class Instruction:
    """One decoded input record. Deposits and withdrawals always carry an amount."""

    instruction_type: InstructionType
    client_id: int
    transaction_id: int
    amount: Optional[Decimal] = None

    def __post_init__(self):
        if self.instruction_type.is_monetary and self.amount is None:
            raise ValueError(f"{self.instruction_type.value} tx {self.transaction_id} requires an amount")

    def __repr__(self) -> str:
        return f"Instruction({self.instruction_type.value}, client={self.client_id}, tx={self.transaction_id}, amount={self.amount})"


@dataclass
class Transaction:
    """
    A realized deposit or withdrawal.
    The original data never changes; disputes, resolves and chargebacks are
    appended to the amendment history instead.
    """

    client_id: int
    transaction_id: int
    kind: TransactionKind
    amount: Decimal
    _amendment_history: List[Amendment] = field(default_factory=list, repr=False)

    @classmethod
    def from_instruction(cls, instruction: Instruction) -> "Transaction":
        match instruction.instruction_type:
            case InstructionType.DEPOSIT:
                kind = TransactionKind.DEPOSIT
            case InstructionType.WITHDRAWAL:
                kind = TransactionKind.WITHDRAWAL
            case _:
                raise ValueError(f"can't create transaction from {instruction.instruction_type.value} instruction")
        return cls(
            client_id=instruction.client_id,
            transaction_id=instruction.transaction_id,
            kind=kind,
            amount=instruction.amount,
        )

    @property
    def amendment_history(self) -> Tuple[Amendment, ...]:
        return tuple(self._amendment_history)

    def amend(self, amendment: Amendment) -> None:
        self._amendment_history.append(amendment)

    def is_disputed(self) -> bool:
        """True while the most recent amendment is a dispute."""
        return bool(self._amendment_history) and self._amendment_history[-1] == Amendment.DISPUTE


@dataclass(frozen=True)
class AccountView:
    """Read-only snapshot of an account, with total already rounded."""

    client_id: int
    available: Decimal
    held: Decimal
    total: Decimal
    locked: bool


@dataclass
class ClientAccount:
    client_id: int
    available: Decimal = Decimal("0")
    held: Decimal = Decimal("0")
    locked: bool = False

    @property
    def total(self) -> Decimal:
        return self.available + self.held

    def credit(self, amount: Decimal) -> None:
        self.available += amount

    def debit(self, amount: Decimal) -> None:
        self.available -= amount

    def hold(self, amount: Decimal) -> None:
        self.available -= amount
        self.held += amount

    def release_hold(self, amount: Decimal) -> None:
        self.held -= amount
        self.available += amount

    def remove_held(self, amount: Decimal) -> None:
        self.held -= amount

    def lock(self) -> None:
        self.locked = True

    def view(self, precision: int = DEFAULT_DECIMAL_PRECISION) -> AccountView:
        return AccountView(
            client_id=self.client_id,
            available=self.available,
            held=self.held,
            total=round_amount(self.total, precision),
            locked=self.locked,
        )


class ProcessingStats:
    """Counters for tracking processing statistics."""

    def __init__(self):
        self.processed = 0
        self.failed = 0
        self.malformed = 0

    def record_success(self):
        self.processed += 1

    def record_failure(self):
        self.failed += 1

    def record_malformed(self):
        self.malformed += 1
