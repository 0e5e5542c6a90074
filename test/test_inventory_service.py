from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

from conftest import make_storage

from bol.domain.errors import BackendUnavailableError, ConflictError, NotFoundError, ValidationError
from bol.domain.models import InventoryItemInput, IssueInput, ReceiptInput
from bol.repositories.ledger_repo import LedgerRepository
from bol.repositories.sqlite_repo import SqliteBackend, SqliteConnection
from bol.services.inventory_service import InventoryService
from bol.services.ledger_service import LedgerService


class FailingConnection(SqliteConnection):
    def query(self, statement, params=()):
        if "INSERT INTO transactions" in statement:
            raise RuntimeError("boom")
        return super().query(statement, params)


class FailingBackend(SqliteBackend):
    def connection(self):
        return FailingConnection(self._conn())


def _item(inventory: InventoryService, qty: str = "10") -> str:
    item = inventory.create_item(InventoryItemInput(name="Cement", quantity=Decimal(qty), unit="bag"))
    return item.id


def test_receipt_increases_stock_and_books_expense(storage):
    inventory = InventoryService(storage)
    item_id = _item(inventory)
    root_id = storage.backend().query("SELECT id FROM accounts")[0]["id"]

    result = inventory.record_receipt(
        ReceiptInput(
            item_id=item_id,
            qty=Decimal("5"),
            unit_price=Decimal("12.5"),
            supplier="Acme",
            date=date(2024, 3, 1),
            created_by=root_id,
        )
    )

    assert result.item.quantity == Decimal("15")
    assert result.movement.kind == "in"
    assert result.movement.total == Decimal("62.5")
    assert result.movement.party == "Acme"
    assert result.transaction.type == "expense"
    assert result.transaction.amount == Decimal("62.5")
    assert result.transaction.description == "Purchase of Cement from Acme (5 bag x 12.5)"
    assert result.transaction.approved is False


def test_issue_beyond_stock_clamps_to_zero(storage):
    inventory = InventoryService(storage)
    item_id = _item(inventory, qty="3")

    result = inventory.record_issue(
        IssueInput(
            item_id=item_id,
            qty=Decimal("5"),
            unit_price=Decimal("2"),
            project="Tower A",
            date=date(2024, 3, 2),
            approved=True,
        )
    )

    assert result.item.quantity == Decimal("0")
    assert result.movement.kind == "out"
    assert result.movement.qty == Decimal("5")
    assert result.transaction.amount == Decimal("10")
    assert result.transaction.approved is True
    assert result.transaction.description == "Issue of Cement to project Tower A (5 bag x 2)"


def test_issue_within_stock_subtracts(storage):
    inventory = InventoryService(storage)
    item_id = _item(inventory, qty="8")

    result = inventory.record_issue(
        IssueInput(item_id=item_id, qty=Decimal("3"), unit_price=Decimal("1"), project="P", date=date(2024, 3, 2))
    )

    assert result.item.quantity == Decimal("5")


def test_receipt_for_missing_item_writes_nothing(storage):
    inventory = InventoryService(storage)

    with pytest.raises(NotFoundError):
        inventory.record_receipt(
            ReceiptInput(item_id="nope", qty=Decimal("1"), unit_price=Decimal("1"), supplier="S", date=date(2024, 1, 1))
        )

    snap = LedgerService(storage).get_snapshot()
    assert snap.movements == []
    assert snap.transactions == []


def test_non_positive_quantity_rejected(storage):
    inventory = InventoryService(storage)
    item_id = _item(inventory)

    with pytest.raises(ValidationError):
        inventory.record_issue(
            IssueInput(item_id=item_id, qty=Decimal("0"), unit_price=Decimal("1"), project="P", date=date(2024, 1, 1))
        )


def test_receipt_rolls_back_when_ledger_insert_fails(tmp_path: Path):
    storage = make_storage(tmp_path, backend_factory=lambda: FailingBackend(tmp_path / "fail.db"))
    inventory = InventoryService(storage)
    item_id = _item(inventory, qty="4")

    with pytest.raises(RuntimeError):
        inventory.record_receipt(
            ReceiptInput(item_id=item_id, qty=Decimal("6"), unit_price=Decimal("1"), supplier="S", date=date(2024, 1, 1))
        )

    repo = LedgerRepository(storage.backend())
    assert repo.fetch_item(item_id).quantity == Decimal("4")
    assert repo.list_movements(item_id) == []


def test_delete_item_cascades_movements(storage):
    inventory = InventoryService(storage)
    item_id = _item(inventory)
    inventory.record_receipt(
        ReceiptInput(item_id=item_id, qty=Decimal("1"), unit_price=Decimal("1"), supplier="S", date=date(2024, 1, 1))
    )

    inventory.delete_item(item_id)

    repo = LedgerRepository(storage.backend())
    assert repo.fetch_item(item_id) is None
    assert repo.list_movements() == []
    assert len(repo.list_transactions()) == 1

    with pytest.raises(NotFoundError):
        inventory.delete_item(item_id)


class StaleReadConnection(SqliteConnection):
    """Moves the stock under the service between its read and its write."""

    def query(self, statement, params=()):
        if statement.lstrip().startswith("UPDATE inventory_items") and "AND quantity" in statement:
            super().query("UPDATE inventory_items SET quantity = '99'")
        return super().query(statement, params)


class StaleReadBackend(SqliteBackend):
    def connection(self):
        return StaleReadConnection(self._conn())


@pytest.mark.parametrize("price", ["0", "-1"])
def test_non_positive_unit_price_rejected(storage, price):
    inventory = InventoryService(storage)
    item_id = _item(inventory)

    with pytest.raises(ValidationError):
        inventory.record_receipt(
            ReceiptInput(item_id=item_id, qty=Decimal("1"), unit_price=Decimal(price), supplier="S", date=date(2024, 1, 1))
        )
    with pytest.raises(ValidationError):
        inventory.record_issue(
            IssueInput(item_id=item_id, qty=Decimal("1"), unit_price=Decimal(price), project="P", date=date(2024, 1, 1))
        )

    snap = LedgerService(storage).get_snapshot()
    assert snap.movements == []
    assert snap.transactions == []
    assert snap.items[0].quantity == Decimal("10")


def test_non_positive_receipt_quantity_rejected(storage):
    inventory = InventoryService(storage)
    item_id = _item(inventory)

    with pytest.raises(ValidationError):
        inventory.record_receipt(
            ReceiptInput(item_id=item_id, qty=Decimal("-2"), unit_price=Decimal("1"), supplier="S", date=date(2024, 1, 1))
        )

    assert LedgerRepository(storage.backend()).fetch_item(item_id).quantity == Decimal("10")


def test_fractional_quantities_stay_exact(storage):
    inventory = InventoryService(storage)
    item_id = _item(inventory, qty="0.1")

    received = inventory.record_receipt(
        ReceiptInput(item_id=item_id, qty=Decimal("0.2"), unit_price=Decimal("0.1"), supplier="S", date=date(2024, 1, 1))
    )
    assert received.item.quantity == Decimal("0.3")
    assert received.movement.total == Decimal("0.02")
    assert received.transaction.amount == Decimal("0.02")

    issued = inventory.record_issue(
        IssueInput(item_id=item_id, qty=Decimal("0.1"), unit_price=Decimal("3.3"), project="P", date=date(2024, 1, 2))
    )
    assert issued.item.quantity == Decimal("0.2")
    assert issued.transaction.amount == Decimal("0.33")

    stored = LedgerRepository(storage.backend()).fetch_item(item_id)
    assert stored.quantity == Decimal("0.2")


def test_fractional_quantities_stay_exact_on_degraded_store(tmp_path: Path):
    storage = make_storage(tmp_path, backend_factory=lambda: _raise_unavailable())
    inventory = InventoryService(storage)
    item_id = _item(inventory, qty="0.1")

    result = inventory.record_receipt(
        ReceiptInput(item_id=item_id, qty=Decimal("0.2"), unit_price=Decimal("1"), supplier="S", date=date(2024, 1, 1))
    )

    assert storage.degraded is True
    assert result.item.quantity == Decimal("0.3")


def _raise_unavailable():
    raise BackendUnavailableError("no backend")


def test_quantity_changed_mid_movement_conflicts_and_rolls_back(tmp_path: Path):
    storage = make_storage(tmp_path, backend_factory=lambda: StaleReadBackend(tmp_path / "stale.db"))
    inventory = InventoryService(storage)
    item_id = _item(inventory, qty="4")

    with pytest.raises(ConflictError):
        inventory.record_receipt(
            ReceiptInput(item_id=item_id, qty=Decimal("1"), unit_price=Decimal("1"), supplier="S", date=date(2024, 1, 1))
        )

    repo = LedgerRepository(storage.backend())
    assert repo.fetch_item(item_id).quantity == Decimal("4")
    assert repo.list_movements(item_id) == []
    assert repo.list_transactions() == []
