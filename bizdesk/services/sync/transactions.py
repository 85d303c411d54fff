from typing import List, Mapping

from bizdesk.constants import TABLE_TRANSACTIONS
from bizdesk.models.entities import Transaction
from bizdesk.services.finance import FinanceSummary, summarize
from bizdesk.services.sync.base import EntitySync


class TransactionSync(EntitySync[Transaction]):
    name = "transactions"
    tables = (TABLE_TRANSACTIONS,)

    def _fetch(self) -> List[Transaction]:
        return self.gateway.list_transactions()

    def create(self, transaction: Transaction) -> Transaction:
        """Insert; without an explicit status income is Received, anything else Paid."""
        return self._write(self.gateway.create_transaction, transaction)

    def update(self, transaction_id: str, changes: Mapping) -> Transaction:
        return self._write(self.gateway.update_transaction, transaction_id, changes)

    def delete(self, transaction_id: str) -> None:
        self._write(self.gateway.delete_transaction, transaction_id)

    def summary(self) -> FinanceSummary:
        with self._lock:
            return summarize(list(self.items))
