from __future__ import annotations

import logging

from bol.domain.errors import BackendUnavailableError, NotFoundError, ValidationError
from bol.domain.models import TRANSACTION_TYPES, AccountingSnapshot, Transaction, TransactionInput
from bol.repositories.ledger_repo import LedgerRepository
from bol.repositories.storage import StorageContext

log = logging.getLogger("bol.ledger")


def validate_transaction(data: TransactionInput) -> None:
    if data.type not in TRANSACTION_TYPES:
        raise ValidationError(f"Unknown transaction type: {data.type}")
    if not (data.description or "").strip():
        raise ValidationError("Description is required.")
    if data.amount <= 0:
        raise ValidationError("Amount must be > 0.")


class LedgerService:
    def __init__(self, storage: StorageContext):
        self.storage = storage

    def _repo(self) -> LedgerRepository:
        return LedgerRepository(self.storage.backend())

    def get_snapshot(self) -> AccountingSnapshot:
        repo = self._repo()
        return AccountingSnapshot(
            transactions=repo.list_transactions(),
            items=repo.list_items(),
            movements=repo.list_movements(),
            projects=repo.list_projects(),
            costs=repo.list_costs(),
            sales=repo.list_sales(),
        )

    def create_transaction(self, data: TransactionInput) -> Transaction:
        validate_transaction(data)
        repo = self._repo()
        tx_id = repo.insert_transaction(data)
        tx = repo.fetch_transaction(tx_id)
        if tx is None:
            raise BackendUnavailableError("Transaction not readable after insert.")
        log.info("transaction_created id=%s type=%s amount=%s", tx.id, tx.type, tx.amount)
        return tx

    def approve_transaction(self, tx_id: str) -> Transaction:
        repo = self._repo()
        repo.set_transaction_approved(tx_id)
        tx = repo.fetch_transaction(tx_id)
        if tx is None:
            raise NotFoundError("Transaction not found.")
        log.info("transaction_approved id=%s", tx_id)
        return tx

    def delete_transaction(self, tx_id: str) -> None:
        if not self._repo().delete_transaction(tx_id):
            raise NotFoundError("Transaction not found.")
        log.info("transaction_deleted id=%s", tx_id)
