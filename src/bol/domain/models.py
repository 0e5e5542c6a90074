from __future__ import annotations
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

TRANSACTION_TYPES = ("revenue", "expense", "salaries")
MOVEMENT_KINDS = ("in", "out")
PROJECT_COST_TYPES = ("construction", "operation", "expense", "other")


@dataclass(frozen=True)
class Transaction:
    id: str
    date: date
    type: str
    description: str
    amount: Decimal
    approved: bool
    created_by: Optional[str]
    created_at: Optional[datetime]


@dataclass(frozen=True)
class InventoryItem:
    id: str
    name: str
    quantity: Decimal
    unit: str
    min_quantity: Decimal
    updated_at: Optional[datetime]


@dataclass(frozen=True)
class Movement:
    id: str
    item_id: str
    kind: str
    qty: Decimal
    unit_price: Decimal
    total: Decimal
    party: str
    date: date


@dataclass(frozen=True)
class Project:
    id: str
    name: str
    location: str
    floors: int
    units: int
    created_at: Optional[datetime]


@dataclass(frozen=True)
class ProjectCost:
    id: str
    project_id: str
    type: str
    custom_type_label: Optional[str]
    amount: Decimal
    date: date
    note: str


@dataclass(frozen=True)
class ProjectSale:
    id: str
    project_id: str
    unit_no: str
    buyer: str
    price: Decimal
    date: date
    terms: Optional[str] = None
    area: Optional[str] = None
    payment_method: Optional[str] = None


@dataclass(frozen=True)
class Installment:
    id: str
    project_id: str
    sale_id: str
    unit_no: str
    buyer: str
    amount: Decimal
    due_date: date
    paid: bool = False
    paid_at: Optional[date] = None


@dataclass(frozen=True)
class InstallmentReminder:
    id: str
    installment_id: str
    sent_at: Optional[datetime]
    note: Optional[str]


@dataclass(frozen=True)
class AccountingSnapshot:
    transactions: list[Transaction]
    items: list[InventoryItem]
    movements: list[Movement]
    projects: list[Project]
    costs: list[ProjectCost]
    sales: list[ProjectSale]


@dataclass(frozen=True)
class ProjectSnapshot:
    project: Project
    costs: list[ProjectCost]
    sales: list[ProjectSale]
    installments: list[Installment]


@dataclass(frozen=True)
class MovementResult:
    item: InventoryItem
    movement: Movement
    transaction: Transaction


@dataclass(frozen=True)
class ProjectCostResult:
    cost: ProjectCost
    transaction: Transaction


@dataclass(frozen=True)
class ProjectSaleResult:
    sale: ProjectSale
    transaction: Transaction
    installments: Optional[list[Installment]] = None


@dataclass(frozen=True)
class InstallmentPayment:
    installment: Installment
    transaction: Transaction


# ---------- Inputs ----------
@dataclass(frozen=True)
class TransactionInput:
    date: date
    type: str
    description: str
    amount: Decimal
    approved: bool = False
    created_by: Optional[str] = None


@dataclass(frozen=True)
class InventoryItemInput:
    name: str
    quantity: Decimal
    unit: str
    min_quantity: Decimal = Decimal("0")
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class ReceiptInput:
    item_id: str
    qty: Decimal
    unit_price: Decimal
    supplier: str
    date: date
    approved: bool = False
    created_by: Optional[str] = None


@dataclass(frozen=True)
class IssueInput:
    item_id: str
    qty: Decimal
    unit_price: Decimal
    project: str
    date: date
    approved: bool = False
    created_by: Optional[str] = None


@dataclass(frozen=True)
class ProjectInput:
    name: str
    location: str
    floors: int = 0
    units: int = 0
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class ProjectCostInput:
    project_id: str
    type: str
    amount: Decimal
    date: date
    note: str = ""
    custom_type_label: Optional[str] = None
    approved: bool = False
    created_by: Optional[str] = None


@dataclass(frozen=True)
class FinancingPlan:
    monthly_amount: Optional[Decimal] = None
    months: Optional[int] = None
    first_due_date: Optional[date] = None
    down_payment: Optional[Decimal] = None


@dataclass(frozen=True)
class ProjectSaleInput:
    project_id: str
    unit_no: str
    buyer: str
    price: Decimal
    date: date
    terms: Optional[str] = None
    area: Optional[str] = None
    payment_method: Optional[str] = None
    plan: Optional[FinancingPlan] = None
    approved: bool = False
    created_by: Optional[str] = None
