from __future__ import annotations

import json
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from bol.domain.models import (
    Installment,
    InstallmentReminder,
    InventoryItem,
    InventoryItemInput,
    Movement,
    Project,
    ProjectCost,
    ProjectInput,
    ProjectSale,
    Transaction,
    TransactionInput,
)
from bol.repositories.contracts import Executor, Row, WriteHeader


def _as_decimal(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _as_bool(value: Any) -> bool:
    return bool(int(value or 0))


def _as_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _as_timestamp(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    return datetime.fromisoformat(str(value))


def encode_cost_note(note: str, custom_type_label: Optional[str]) -> str:
    if custom_type_label:
        return json.dumps({"note": note, "customTypeLabel": custom_type_label})
    return note


def decode_cost_note(raw: Optional[str]) -> tuple[str, Optional[str]]:
    """Split a stored cost note into ``(note, custom_type_label)``."""
    if not raw:
        return "", None
    if raw.lstrip().startswith("{"):
        try:
            doc = json.loads(raw)
        except ValueError:
            return raw, None
        if isinstance(doc, dict):
            label = doc.get("customTypeLabel")
            return str(doc.get("note") or ""), (str(label) if label else None)
    return raw, None


def _rows(result) -> list[Row]:
    return result if isinstance(result, list) else []


def _affected(result) -> int:
    return result.affected_rows if isinstance(result, WriteHeader) else 0


def _to_transaction(r: Row) -> Transaction:
    return Transaction(
        id=r["id"],
        date=_as_date(r["date"]),
        type=r["type"],
        description=r["description"],
        amount=_as_decimal(r["amount"]),
        approved=_as_bool(r["approved"]),
        created_by=r["created_by"],
        created_at=_as_timestamp(r["created_at"]),
    )


def _to_item(r: Row) -> InventoryItem:
    return InventoryItem(
        id=r["id"],
        name=r["name"],
        quantity=_as_decimal(r["quantity"]),
        unit=r["unit"],
        min_quantity=_as_decimal(r["min_quantity"]),
        updated_at=_as_timestamp(r["updated_at"]),
    )


def _to_movement(r: Row) -> Movement:
    return Movement(
        id=r["id"],
        item_id=r["item_id"],
        kind=r["kind"],
        qty=_as_decimal(r["qty"]),
        unit_price=_as_decimal(r["unit_price"]),
        total=_as_decimal(r["total"]),
        party=r["party"],
        date=_as_date(r["date"]),
    )


def _to_project(r: Row) -> Project:
    return Project(
        id=r["id"],
        name=r["name"],
        location=r["location"],
        floors=int(r["floors"]),
        units=int(r["units"]),
        created_at=_as_timestamp(r["created_at"]),
    )


def _to_cost(r: Row) -> ProjectCost:
    note, label = decode_cost_note(r["note"])
    return ProjectCost(
        id=r["id"],
        project_id=r["project_id"],
        type=r["type"],
        custom_type_label=label,
        amount=_as_decimal(r["amount"]),
        date=_as_date(r["date"]),
        note=note,
    )


def _to_sale(r: Row) -> ProjectSale:
    return ProjectSale(
        id=r["id"],
        project_id=r["project_id"],
        unit_no=r["unit_no"],
        buyer=r["buyer"],
        price=_as_decimal(r["price"]),
        date=_as_date(r["date"]),
        terms=r["terms"],
        area=r["area"],
        payment_method=r["payment_method"],
    )


def _to_installment(r: Row) -> Installment:
    return Installment(
        id=r["id"],
        project_id=r["project_id"],
        sale_id=r["sale_id"],
        unit_no=r["unit_no"] or "",
        buyer=r["buyer"] or "",
        amount=_as_decimal(r["amount"]),
        due_date=_as_date(r["due_date"]),
        paid=_as_bool(r["paid"]),
        paid_at=_as_date(r["paid_at"]) if r["paid_at"] else None,
    )


def _to_reminder(r: Row) -> InstallmentReminder:
    return InstallmentReminder(
        id=r["id"],
        installment_id=r["installment_id"],
        sent_at=_as_timestamp(r["sent_at"]),
        note=r["note"],
    )


_TRANSACTION_COLS = "id, date, type, description, amount, approved, created_by, created_at"
_ITEM_COLS = "id, name, quantity, unit, min_quantity, updated_at"
_MOVEMENT_COLS = "id, item_id, kind, qty, unit_price, total, party, date"
_PROJECT_COLS = "id, name, location, floors, units, created_at"
_COST_COLS = "id, project_id, type, amount, date, note"
_SALE_COLS = "id, project_id, unit_no, buyer, price, date, terms, area, payment_method"
_INSTALLMENT_COLS = "id, project_id, sale_id, unit_no, buyer, amount, due_date, paid, paid_at"
_REMINDER_COLS = "id, installment_id, sent_at, note"


class LedgerRepository:
    """SQL and row mapping for the ledger tables.

    Bound to any executor: a backend for one-shot autocommitted statements or
    a scoped connection inside a unit of work. Writes are an insert followed
    by a read-back by id, never a driver-specific RETURNING clause.
    """

    def __init__(self, db: Executor):
        self.db = db

    def _select(self, statement: str, params: tuple = ()) -> list[Row]:
        return _rows(self.db.query(statement, params))

    # ---------- Transactions ----------
    def insert_transaction(self, data: TransactionInput) -> str:
        tx_id = str(uuid.uuid4())
        self.db.query(
            """
            INSERT INTO transactions (id, date, type, description, amount, approved, created_by)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (tx_id, data.date, data.type, data.description, data.amount, data.approved, data.created_by),
        )
        return tx_id

    def fetch_transaction(self, tx_id: str) -> Optional[Transaction]:
        rows = self._select(f"SELECT {_TRANSACTION_COLS} FROM transactions WHERE id = ? LIMIT 1", (tx_id,))
        return _to_transaction(rows[0]) if rows else None

    def list_transactions(self) -> list[Transaction]:
        rows = self._select(f"SELECT {_TRANSACTION_COLS} FROM transactions ORDER BY date DESC, created_at DESC")
        return [_to_transaction(r) for r in rows]

    def set_transaction_approved(self, tx_id: str) -> int:
        return _affected(self.db.query("UPDATE transactions SET approved = 1 WHERE id = ?", (tx_id,)))

    def delete_transaction(self, tx_id: str) -> int:
        return _affected(self.db.query("DELETE FROM transactions WHERE id = ?", (tx_id,)))

    # ---------- Inventory ----------
    def insert_item(self, data: InventoryItemInput) -> str:
        item_id = str(uuid.uuid4())
        self.db.query(
            """
            INSERT INTO inventory_items (id, name, quantity, unit, min_quantity, updated_at)
            VALUES (?, ?, ?, ?, ?, COALESCE(?, CURRENT_TIMESTAMP))
            """,
            (item_id, data.name, data.quantity, data.unit, data.min_quantity, data.updated_at),
        )
        return item_id

    def fetch_item(self, item_id: str) -> Optional[InventoryItem]:
        rows = self._select(f"SELECT {_ITEM_COLS} FROM inventory_items WHERE id = ? LIMIT 1", (item_id,))
        return _to_item(rows[0]) if rows else None

    def list_items(self) -> list[InventoryItem]:
        rows = self._select(f"SELECT {_ITEM_COLS} FROM inventory_items ORDER BY updated_at DESC, name ASC")
        return [_to_item(r) for r in rows]

    def update_item_quantity(self, item_id: str, expected: Decimal, quantity: Decimal) -> int:
        # compare-and-set on the value read in this unit of work
        return _affected(
            self.db.query(
                """
                UPDATE inventory_items
                SET quantity = ?, updated_at = CURRENT_TIMESTAMP
                WHERE id = ? AND quantity = ?
                """,
                (quantity, item_id, expected),
            )
        )

    def delete_item(self, item_id: str) -> int:
        return _affected(self.db.query("DELETE FROM inventory_items WHERE id = ?", (item_id,)))

    def insert_movement(
        self,
        item_id: str,
        kind: str,
        qty: Decimal,
        unit_price: Decimal,
        total: Decimal,
        party: str,
        on: date,
    ) -> str:
        movement_id = str(uuid.uuid4())
        self.db.query(
            """
            INSERT INTO inventory_movements (id, item_id, kind, qty, unit_price, total, party, date)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (movement_id, item_id, kind, qty, unit_price, total, party, on),
        )
        return movement_id

    def fetch_movement(self, movement_id: str) -> Optional[Movement]:
        rows = self._select(f"SELECT {_MOVEMENT_COLS} FROM inventory_movements WHERE id = ? LIMIT 1", (movement_id,))
        return _to_movement(rows[0]) if rows else None

    def list_movements(self, item_id: Optional[str] = None) -> list[Movement]:
        if item_id is None:
            rows = self._select(f"SELECT {_MOVEMENT_COLS} FROM inventory_movements ORDER BY date DESC, created_at DESC")
        else:
            rows = self._select(
                f"SELECT {_MOVEMENT_COLS} FROM inventory_movements WHERE item_id = ? ORDER BY date DESC, created_at DESC",
                (item_id,),
            )
        return [_to_movement(r) for r in rows]

    # ---------- Projects ----------
    def insert_project(self, data: ProjectInput) -> str:
        project_id = str(uuid.uuid4())
        self.db.query(
            """
            INSERT INTO projects (id, name, location, floors, units, created_at)
            VALUES (?, ?, ?, ?, ?, COALESCE(?, CURRENT_TIMESTAMP))
            """,
            (project_id, data.name, data.location, data.floors, data.units, data.created_at),
        )
        return project_id

    def fetch_project(self, project_id: str) -> Optional[Project]:
        rows = self._select(f"SELECT {_PROJECT_COLS} FROM projects WHERE id = ? LIMIT 1", (project_id,))
        return _to_project(rows[0]) if rows else None

    def list_projects(self) -> list[Project]:
        rows = self._select(f"SELECT {_PROJECT_COLS} FROM projects ORDER BY created_at DESC, name ASC")
        return [_to_project(r) for r in rows]

    def delete_project(self, project_id: str) -> int:
        return _affected(self.db.query("DELETE FROM projects WHERE id = ?", (project_id,)))

    def insert_cost(
        self,
        project_id: str,
        cost_type: str,
        amount: Decimal,
        on: date,
        note: str,
        custom_type_label: Optional[str],
    ) -> str:
        cost_id = str(uuid.uuid4())
        self.db.query(
            "INSERT INTO project_costs (id, project_id, type, amount, date, note) VALUES (?, ?, ?, ?, ?, ?)",
            (cost_id, project_id, cost_type, amount, on, encode_cost_note(note, custom_type_label)),
        )
        return cost_id

    def fetch_cost(self, cost_id: str) -> Optional[ProjectCost]:
        rows = self._select(f"SELECT {_COST_COLS} FROM project_costs WHERE id = ? LIMIT 1", (cost_id,))
        return _to_cost(rows[0]) if rows else None

    def list_costs(self, project_id: Optional[str] = None) -> list[ProjectCost]:
        if project_id is None:
            rows = self._select(f"SELECT {_COST_COLS} FROM project_costs ORDER BY date DESC, created_at DESC")
        else:
            rows = self._select(
                f"SELECT {_COST_COLS} FROM project_costs WHERE project_id = ? ORDER BY date DESC, created_at DESC",
                (project_id,),
            )
        return [_to_cost(r) for r in rows]

    def insert_sale(
        self,
        project_id: str,
        unit_no: str,
        buyer: str,
        price: Decimal,
        on: date,
        terms: Optional[str],
        area: Optional[str],
        payment_method: Optional[str],
    ) -> str:
        sale_id = str(uuid.uuid4())
        self.db.query(
            """
            INSERT INTO project_sales (id, project_id, unit_no, buyer, price, date, terms, area, payment_method)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (sale_id, project_id, unit_no, buyer, price, on, terms, area, payment_method),
        )
        return sale_id

    def fetch_sale(self, sale_id: str) -> Optional[ProjectSale]:
        rows = self._select(f"SELECT {_SALE_COLS} FROM project_sales WHERE id = ? LIMIT 1", (sale_id,))
        return _to_sale(rows[0]) if rows else None

    def list_sales(self, project_id: Optional[str] = None) -> list[ProjectSale]:
        if project_id is None:
            rows = self._select(f"SELECT {_SALE_COLS} FROM project_sales ORDER BY date DESC, created_at DESC")
        else:
            rows = self._select(
                f"SELECT {_SALE_COLS} FROM project_sales WHERE project_id = ? ORDER BY date DESC, created_at DESC",
                (project_id,),
            )
        return [_to_sale(r) for r in rows]

    # ---------- Installments ----------
    def insert_installment(self, inst: Installment) -> str:
        self.db.query(
            """
            INSERT INTO project_installments (id, project_id, sale_id, unit_no, buyer, amount, due_date, paid, paid_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                inst.id,
                inst.project_id,
                inst.sale_id,
                inst.unit_no,
                inst.buyer,
                inst.amount,
                inst.due_date,
                inst.paid,
                inst.paid_at,
            ),
        )
        return inst.id

    def fetch_installment(self, installment_id: str) -> Optional[Installment]:
        rows = self._select(
            f"SELECT {_INSTALLMENT_COLS} FROM project_installments WHERE id = ? LIMIT 1", (installment_id,)
        )
        return _to_installment(rows[0]) if rows else None

    def list_installments_for_project(self, project_id: str) -> list[Installment]:
        rows = self._select(
            f"SELECT {_INSTALLMENT_COLS} FROM project_installments WHERE project_id = ? ORDER BY due_date ASC",
            (project_id,),
        )
        return [_to_installment(r) for r in rows]

    def list_installments_for_sale(self, sale_id: str) -> list[Installment]:
        rows = self._select(
            f"SELECT {_INSTALLMENT_COLS} FROM project_installments WHERE sale_id = ? ORDER BY due_date ASC",
            (sale_id,),
        )
        return [_to_installment(r) for r in rows]

    def list_due_installments(self, as_of: date) -> list[Installment]:
        rows = self._select(
            f"""
            SELECT {_INSTALLMENT_COLS} FROM project_installments
            WHERE paid = 0 AND due_date <= ?
            ORDER BY due_date ASC
            """,
            (as_of,),
        )
        return [_to_installment(r) for r in rows]

    def mark_installment_paid(self, installment_id: str, paid_at: date) -> int:
        return _affected(
            self.db.query(
                "UPDATE project_installments SET paid = 1, paid_at = ? WHERE id = ? AND paid = 0",
                (paid_at, installment_id),
            )
        )

    # ---------- Reminders ----------
    def insert_reminder(self, installment_id: str, note: Optional[str]) -> str:
        reminder_id = str(uuid.uuid4())
        self.db.query(
            "INSERT INTO installment_reminders (id, installment_id, note) VALUES (?, ?, ?)",
            (reminder_id, installment_id, note),
        )
        return reminder_id

    def fetch_reminder(self, reminder_id: str) -> Optional[InstallmentReminder]:
        rows = self._select(f"SELECT {_REMINDER_COLS} FROM installment_reminders WHERE id = ? LIMIT 1", (reminder_id,))
        return _to_reminder(rows[0]) if rows else None

    def list_reminders(self, installment_id: str) -> list[InstallmentReminder]:
        rows = self._select(
            f"SELECT {_REMINDER_COLS} FROM installment_reminders WHERE installment_id = ? ORDER BY sent_at ASC",
            (installment_id,),
        )
        return [_to_reminder(r) for r in rows]
