from __future__ import annotations

import logging
from decimal import Decimal
from typing import Callable, Optional

from bol.domain.errors import BackendUnavailableError, NotFoundError, ValidationError
from bol.domain.models import (
    PROJECT_COST_TYPES,
    FinancingPlan,
    Project,
    ProjectCostInput,
    ProjectCostResult,
    ProjectInput,
    ProjectSaleInput,
    ProjectSaleResult,
    ProjectSnapshot,
    TransactionInput,
)
from bol.repositories.ledger_repo import LedgerRepository
from bol.repositories.storage import StorageContext
from bol.repositories.unit_of_work import UnitOfWork
from bol.services.schedule import build_schedule

log = logging.getLogger("bol.ledger")

COST_TYPE_LABELS = {
    "construction": "Construction",
    "operation": "Operation",
    "expense": "Expenses",
}


def cost_type_label(cost_type: str, custom_type_label: Optional[str]) -> str:
    if cost_type in COST_TYPE_LABELS:
        return COST_TYPE_LABELS[cost_type]
    return (custom_type_label or "").strip() or "Other"


def has_financing_plan(plan: Optional[FinancingPlan]) -> bool:
    if plan is None:
        return False
    return any(v is not None for v in (plan.monthly_amount, plan.months, plan.first_due_date))


class ProjectService:
    """Projects and the money that flows through them.

    Every cost and sale writes its ledger transaction in the same unit of work
    as the project row it belongs to; a financed sale also writes its whole
    installment schedule there.
    """

    def __init__(self, storage: StorageContext, uow_factory: Callable[[], UnitOfWork] | None = None):
        self.storage = storage
        self.uow_factory = uow_factory or (lambda: UnitOfWork(storage.backend()))

    def _repo(self) -> LedgerRepository:
        return LedgerRepository(self.storage.backend())

    def create_project(self, data: ProjectInput) -> Project:
        if not (data.name or "").strip() or not (data.location or "").strip():
            raise ValidationError("Project name and location are required.")
        if data.floors < 0 or data.units < 0:
            raise ValidationError("Floors and units must be >= 0.")
        repo = self._repo()
        project = repo.fetch_project(repo.insert_project(data))
        if project is None:
            raise BackendUnavailableError("Project not readable after insert.")
        log.info("project_created id=%s name=%s", project.id, project.name)
        return project

    def get_project(self, project_id: str) -> Optional[Project]:
        return self._repo().fetch_project(project_id)

    def get_project_snapshot(self, project_id: str) -> Optional[ProjectSnapshot]:
        repo = self._repo()
        project = repo.fetch_project(project_id)
        if project is None:
            return None
        return ProjectSnapshot(
            project=project,
            costs=repo.list_costs(project_id),
            sales=repo.list_sales(project_id),
            installments=repo.list_installments_for_project(project_id),
        )

    def delete_project(self, project_id: str) -> None:
        with self.uow_factory() as conn:
            repo = LedgerRepository(conn)
            if repo.fetch_project(project_id) is None:
                raise NotFoundError("Project not found.")
            repo.delete_project(project_id)
        log.info("project_deleted id=%s", project_id)

    def create_project_cost(self, data: ProjectCostInput) -> ProjectCostResult:
        if data.type not in PROJECT_COST_TYPES:
            raise ValidationError(f"Unknown cost type: {data.type}")
        if data.amount <= 0:
            raise ValidationError("Amount must be > 0.")
        label = (data.custom_type_label or "").strip() or None
        if data.type == "other" and label is None:
            raise ValidationError("A custom label is required for 'other' costs.")
        if data.type != "other":
            label = None

        with self.uow_factory() as conn:
            repo = LedgerRepository(conn)
            project = repo.fetch_project(data.project_id)
            if project is None:
                raise NotFoundError("Project not found.")

            cost_id = repo.insert_cost(data.project_id, data.type, data.amount, data.date, data.note or "", label)
            tx_id = repo.insert_transaction(
                TransactionInput(
                    date=data.date,
                    type="expense",
                    description=f"{cost_type_label(data.type, label)} cost for project {project.name}",
                    amount=data.amount,
                    approved=data.approved,
                    created_by=data.created_by,
                )
            )
            cost = repo.fetch_cost(cost_id)
            tx = repo.fetch_transaction(tx_id)

        log.info("project_cost_recorded project=%s type=%s amount=%s tx=%s", data.project_id, data.type, data.amount, tx_id)
        return ProjectCostResult(cost=cost, transaction=tx)

    def create_project_sale(self, data: ProjectSaleInput) -> ProjectSaleResult:
        if data.price <= 0:
            raise ValidationError("Price must be > 0.")
        if not (data.unit_no or "").strip() or not (data.buyer or "").strip():
            raise ValidationError("Unit number and buyer are required.")

        financed = has_financing_plan(data.plan)
        immediate = data.price
        if financed:
            plan = data.plan
            down = Decimal("0") if plan.down_payment is None else plan.down_payment
            if down < 0:
                raise ValidationError("Down payment must be >= 0.")
            if down > data.price:
                raise ValidationError("Down payment cannot exceed the price.")
            # validates the plan before the first write
            build_schedule(data.project_id, "", data.unit_no, data.buyer, plan)
            immediate = down

        with self.uow_factory() as conn:
            repo = LedgerRepository(conn)
            project = repo.fetch_project(data.project_id)
            if project is None:
                raise NotFoundError("Project not found.")

            sale_id = repo.insert_sale(
                data.project_id,
                data.unit_no,
                data.buyer,
                data.price,
                data.date,
                data.terms or None,
                data.area or None,
                data.payment_method or None,
            )
            if financed:
                description = f"Installment sale of unit {data.unit_no} in project {project.name} (down payment)"
            else:
                description = f"Sale of unit {data.unit_no} in project {project.name} to {data.buyer}"
            tx_id = repo.insert_transaction(
                TransactionInput(
                    date=data.date,
                    type="revenue",
                    description=description,
                    amount=immediate,
                    approved=data.approved,
                    created_by=data.created_by,
                )
            )

            installments = None
            if financed:
                installments = build_schedule(data.project_id, sale_id, data.unit_no, data.buyer, data.plan)
                for inst in installments:
                    repo.insert_installment(inst)

            sale = repo.fetch_sale(sale_id)
            tx = repo.fetch_transaction(tx_id)

        log.info(
            "project_sale_recorded project=%s sale=%s price=%s financed=%s installments=%s",
            data.project_id,
            sale_id,
            data.price,
            financed,
            len(installments or ()),
        )
        return ProjectSaleResult(sale=sale, transaction=tx, installments=installments)
