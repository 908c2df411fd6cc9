from typing import Dict, List, Optional

from payments_ledger.models import Amendment, ClientAccount, Transaction


class AccountBook:
    """
    Client accounts keyed by client id.
    Accounts are created on first reference and never removed.
    """

    def __init__(self):
        self._accounts: Dict[int, ClientAccount] = {}

    def get_or_create_account(self, client_id: int) -> ClientAccount:
        """Get existing account or create new one."""
        if client_id not in self._accounts:
            self._accounts[client_id] = ClientAccount(client_id=client_id)
        return self._accounts[client_id]

    def get_account(self, client_id: int) -> Optional[ClientAccount]:
        return self._accounts.get(client_id)

    def accounts(self) -> List[ClientAccount]:
        """Return all accounts in creation order."""
        return list(self._accounts.values())

    def __len__(self) -> int:
        return len(self._accounts)


class Ledger:
    """Realized transactions keyed by transaction id, kept for dispute lookups."""

    def __init__(self):
        self._transactions: Dict[int, Transaction] = {}

    def insert_transaction(self, transaction: Transaction) -> bool:
        """Store a new transaction. Returns False, leaving the stored one untouched, if the id is taken."""
        if transaction.transaction_id in self._transactions:
            return False
        self._transactions[transaction.transaction_id] = transaction
        return True

    def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        """Retrieve stored transaction by ID."""
        return self._transactions.get(transaction_id)

    def amend_transaction(self, transaction_id: int, amendment: Amendment) -> Transaction:
        """Append an amendment to a stored transaction's history. Raises KeyError for unknown ids."""
        transaction = self._transactions[transaction_id]
        transaction.amend(amendment)
        return transaction

    def __contains__(self, transaction_id: int) -> bool:
        return transaction_id in self._transactions

    def __len__(self) -> int:
        return len(self._transactions)
