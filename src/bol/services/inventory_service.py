from __future__ import annotations

import logging
from decimal import Decimal
from typing import Callable

from bol.domain.errors import BackendUnavailableError, ConflictError, NotFoundError, ValidationError
from bol.domain.models import (
    InventoryItem,
    InventoryItemInput,
    IssueInput,
    MovementResult,
    ReceiptInput,
    TransactionInput,
)
from bol.repositories.ledger_repo import LedgerRepository
from bol.repositories.storage import StorageContext
from bol.repositories.unit_of_work import UnitOfWork

log = logging.getLogger("bol.ledger")


class InventoryService:
    def __init__(self, storage: StorageContext, uow_factory: Callable[[], UnitOfWork] | None = None):
        self.storage = storage
        self.uow_factory = uow_factory or (lambda: UnitOfWork(storage.backend()))

    def create_item(self, data: InventoryItemInput) -> InventoryItem:
        if not (data.name or "").strip() or not (data.unit or "").strip():
            raise ValidationError("Name and unit are required.")
        if data.quantity < 0 or data.min_quantity < 0:
            raise ValidationError("Quantity values must be >= 0.")
        repo = LedgerRepository(self.storage.backend())
        item = repo.fetch_item(repo.insert_item(data))
        if item is None:
            raise BackendUnavailableError("Inventory item not readable after insert.")
        log.info("item_created id=%s name=%s qty=%s", item.id, item.name, item.quantity)
        return item

    def delete_item(self, item_id: str) -> None:
        with self.uow_factory() as conn:
            repo = LedgerRepository(conn)
            if repo.fetch_item(item_id) is None:
                raise NotFoundError("Inventory item not found.")
            repo.delete_item(item_id)
        log.info("item_deleted id=%s", item_id)

    @staticmethod
    def _check_movement(qty: Decimal, unit_price: Decimal, party: str, party_label: str) -> None:
        if qty <= 0:
            raise ValidationError("Quantity must be > 0.")
        if unit_price <= 0:
            raise ValidationError("Unit price must be > 0.")
        if not (party or "").strip():
            raise ValidationError(f"{party_label} is required.")

    @staticmethod
    def _set_quantity(repo: LedgerRepository, base: InventoryItem, quantity: Decimal) -> None:
        if not repo.update_item_quantity(base.id, base.quantity, quantity):
            raise ConflictError("Inventory item changed concurrently, retry the movement.")

    def record_receipt(self, data: ReceiptInput) -> MovementResult:
        self._check_movement(data.qty, data.unit_price, data.supplier, "Supplier")
        total = data.qty * data.unit_price

        with self.uow_factory() as conn:
            repo = LedgerRepository(conn)
            base = repo.fetch_item(data.item_id)
            if base is None:
                raise NotFoundError("Inventory item not found.")

            self._set_quantity(repo, base, base.quantity + data.qty)
            movement_id = repo.insert_movement(
                data.item_id, "in", data.qty, data.unit_price, total, data.supplier, data.date
            )
            tx_id = repo.insert_transaction(
                TransactionInput(
                    date=data.date,
                    type="expense",
                    description=(
                        f"Purchase of {base.name} from {data.supplier} "
                        f"({data.qty} {base.unit} x {data.unit_price})"
                    ),
                    amount=total,
                    approved=data.approved,
                    created_by=data.created_by,
                )
            )
            item = repo.fetch_item(data.item_id)
            movement = repo.fetch_movement(movement_id)
            tx = repo.fetch_transaction(tx_id)

        log.info("receipt_recorded item=%s qty=%s total=%s tx=%s", data.item_id, data.qty, total, tx_id)
        return MovementResult(item=item, movement=movement, transaction=tx)

    def record_issue(self, data: IssueInput) -> MovementResult:
        self._check_movement(data.qty, data.unit_price, data.project, "Project")
        total = data.qty * data.unit_price

        with self.uow_factory() as conn:
            repo = LedgerRepository(conn)
            base = repo.fetch_item(data.item_id)
            if base is None:
                raise NotFoundError("Inventory item not found.")
            if data.qty > base.quantity:
                log.warning(
                    "issue_clamped item=%s requested=%s available=%s",
                    data.item_id,
                    data.qty,
                    base.quantity,
                )

            self._set_quantity(repo, base, max(Decimal("0"), base.quantity - data.qty))
            movement_id = repo.insert_movement(
                data.item_id, "out", data.qty, data.unit_price, total, data.project, data.date
            )
            tx_id = repo.insert_transaction(
                TransactionInput(
                    date=data.date,
                    type="expense",
                    description=(
                        f"Issue of {base.name} to project {data.project} "
                        f"({data.qty} {base.unit} x {data.unit_price})"
                    ),
                    amount=total,
                    approved=data.approved,
                    created_by=data.created_by,
                )
            )
            item = repo.fetch_item(data.item_id)
            movement = repo.fetch_movement(movement_id)
            tx = repo.fetch_transaction(tx_id)

        log.info("issue_recorded item=%s qty=%s total=%s tx=%s", data.item_id, data.qty, total, tx_id)
        return MovementResult(item=item, movement=movement, transaction=tx)
