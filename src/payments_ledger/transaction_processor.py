import logging
from typing import List, Optional

from payments_ledger.models import (
    DEFAULT_DECIMAL_PRECISION,
    AccountFrozenError,
    AccountView,
    Amendment,
    ClientAccount,
    DuplicateTransactionError,
    InstructionType,
    Instruction,
    InsufficientFundsError,
    NegativeAmountError,
    Transaction,
)
from payments_ledger.state_manager import AccountBook, Ledger

logger = logging.getLogger(__name__)


class TransactionProcessor:
    """
    Applies instructions one at a time against an account book and a ledger.

    Account-level problems (frozen account, negative amount, insufficient funds,
    reused transaction id) raise a TransactionError subclass and leave state
    untouched. Disputes, resolves and chargebacks that reference an unknown,
    foreign or not-disputed transaction are logged and ignored.
    """

    def __init__(self, account_book: AccountBook, ledger: Ledger, decimal_precision: int = DEFAULT_DECIMAL_PRECISION):
        self._account_book = account_book
        self._ledger = ledger
        self._decimal_precision = decimal_precision

    def process_transaction(self, instruction: Instruction) -> AccountView:
        """
        Apply a single instruction.

        Returns:
            A snapshot of the affected account after the instruction.

        Raises:
            AccountFrozenError: the account was locked by an earlier chargeback
            NegativeAmountError: the instruction carries an amount below zero
            InsufficientFundsError: a withdrawal exceeds available funds
            DuplicateTransactionError: a deposit or withdrawal reuses a transaction id
        """
        account = self._account_book.get_or_create_account(instruction.client_id)

        if account.locked:
            raise AccountFrozenError(instruction.client_id, instruction.transaction_id)

        if instruction.amount is not None and instruction.amount < 0:
            raise NegativeAmountError(instruction.client_id, instruction.transaction_id)

        match instruction.instruction_type:
            case InstructionType.DEPOSIT:
                self._handle_deposit(account, instruction)
            case InstructionType.WITHDRAWAL:
                self._handle_withdrawal(account, instruction)
            case InstructionType.DISPUTE:
                self._handle_dispute(account, instruction)
            case InstructionType.RESOLVE:
                self._handle_resolve(account, instruction)
            case InstructionType.CHARGEBACK:
                self._handle_chargeback(account, instruction)

        return account.view(self._decimal_precision)

    def accounts(self) -> List[AccountView]:
        return [account.view(self._decimal_precision) for account in self._account_book.accounts()]

    def _handle_deposit(self, account: ClientAccount, instruction: Instruction) -> None:
        self._check_unused(instruction)

        account.credit(instruction.amount)
        self._ledger.insert_transaction(Transaction.from_instruction(instruction))
        logger.debug(f"Deposit tx {instruction.transaction_id}: credited {instruction.amount} to client {account.client_id}")

    def _handle_withdrawal(self, account: ClientAccount, instruction: Instruction) -> None:
        self._check_unused(instruction)

        if instruction.amount > account.available:
            raise InsufficientFundsError(instruction.client_id, instruction.transaction_id)

        account.debit(instruction.amount)
        self._ledger.insert_transaction(Transaction.from_instruction(instruction))
        logger.debug(f"Withdrawal tx {instruction.transaction_id}: debited {instruction.amount} from client {account.client_id}")

    def _handle_dispute(self, account: ClientAccount, instruction: Instruction) -> None:
        original = self._find_original(instruction)
        if original is None:
            return

        # A transaction can be disputed once; resolved or charged back ones stay settled.
        if original.amendment_history:
            logger.warning(f"Dispute for tx {instruction.transaction_id}: transaction already disputed (history {[a.value for a in original.amendment_history]}), ignoring")
            return

        account.hold(original.amount)
        self._ledger.amend_transaction(original.transaction_id, Amendment.DISPUTE)

    def _handle_resolve(self, account: ClientAccount, instruction: Instruction) -> None:
        original = self._find_disputed(instruction)
        if original is None:
            return

        account.release_hold(original.amount)
        self._ledger.amend_transaction(original.transaction_id, Amendment.RESOLVE)

    def _handle_chargeback(self, account: ClientAccount, instruction: Instruction) -> None:
        original = self._find_disputed(instruction)
        if original is None:
            return

        account.remove_held(original.amount)
        account.lock()
        self._ledger.amend_transaction(original.transaction_id, Amendment.CHARGEBACK)
        logger.info(f"Chargeback for tx {instruction.transaction_id}: client {account.client_id} locked")

    def _check_unused(self, instruction: Instruction) -> None:
        if instruction.transaction_id in self._ledger:
            raise DuplicateTransactionError(instruction.client_id, instruction.transaction_id)

    def _find_original(self, instruction: Instruction) -> Optional[Transaction]:
        """Look up the transaction an amendment refers to, or None if it must be ignored."""
        action = instruction.instruction_type.value.capitalize()
        original = self._ledger.get_transaction(instruction.transaction_id)

        if original is None:
            logger.info(f"{action} for tx {instruction.transaction_id}: transaction not found, ignoring")
            return None

        if original.client_id != instruction.client_id:
            logger.warning(f"{action} for tx {instruction.transaction_id}: client mismatch (expected {original.client_id}, got {instruction.client_id}), ignoring")
            return None

        return original

    def _find_disputed(self, instruction: Instruction) -> Optional[Transaction]:
        original = self._find_original(instruction)
        if original is None:
            return None

        if not original.is_disputed():
            action = instruction.instruction_type.value.capitalize()
            logger.info(f"{action} for tx {instruction.transaction_id}: transaction not under dispute, ignoring")
            return None

        return original
