from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Optional

from bol.domain.errors import NotFoundError
from bol.domain.models import Installment, InstallmentPayment, InstallmentReminder, TransactionInput
from bol.repositories.ledger_repo import LedgerRepository
from bol.repositories.storage import StorageContext
from bol.repositories.unit_of_work import UnitOfWork

log = logging.getLogger("bol.ledger")


class InstallmentService:
    def __init__(self, storage: StorageContext, uow_factory: Callable[[], UnitOfWork] | None = None):
        self.storage = storage
        self.uow_factory = uow_factory or (lambda: UnitOfWork(storage.backend()))

    def _repo(self) -> LedgerRepository:
        return LedgerRepository(self.storage.backend())

    def pay_installment(
        self,
        installment_id: str,
        on: date,
        approved: bool = False,
        created_by: Optional[str] = None,
    ) -> InstallmentPayment:
        """Record a payment against an installment.

        The first payment marks it paid. Paying it again still books a revenue
        transaction but leaves the installment as it was.
        """
        with self.uow_factory() as conn:
            repo = LedgerRepository(conn)
            inst = repo.fetch_installment(installment_id)
            if inst is None:
                raise NotFoundError("Installment not found.")

            if not repo.mark_installment_paid(installment_id, on):
                log.warning("installment_paid_again id=%s amount=%s", installment_id, inst.amount)

            tx_id = repo.insert_transaction(
                TransactionInput(
                    date=on,
                    type="revenue",
                    description=f"Installment payment for unit {inst.unit_no} from {inst.buyer}",
                    amount=inst.amount,
                    approved=approved,
                    created_by=created_by,
                )
            )
            updated = repo.fetch_installment(installment_id)
            tx = repo.fetch_transaction(tx_id)

        log.info("installment_paid id=%s amount=%s tx=%s", installment_id, inst.amount, tx_id)
        return InstallmentPayment(installment=updated, transaction=tx)

    def get_due_installments(self, as_of: Optional[date] = None) -> list[Installment]:
        return self._repo().list_due_installments(as_of or date.today())

    def list_project_installments(self, project_id: str) -> list[Installment]:
        return self._repo().list_installments_for_project(project_id)

    def create_reminder(self, installment_id: str, note: Optional[str] = None) -> InstallmentReminder:
        with self.uow_factory() as conn:
            repo = LedgerRepository(conn)
            if repo.fetch_installment(installment_id) is None:
                raise NotFoundError("Installment not found.")
            reminder = repo.fetch_reminder(repo.insert_reminder(installment_id, note))
        return reminder

    def list_reminders(self, installment_id: str) -> list[InstallmentReminder]:
        return self._repo().list_reminders(installment_id)
