from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

from conftest import make_storage

from bol.domain.errors import NotFoundError, ValidationError
from bol.domain.models import FinancingPlan, ProjectCostInput, ProjectInput, ProjectSaleInput
from bol.repositories.ledger_repo import LedgerRepository
from bol.repositories.sqlite_repo import SqliteBackend, SqliteConnection
from bol.services.ledger_service import LedgerService
from bol.services.project_service import ProjectService


class FailingScheduleConnection(SqliteConnection):
    def query(self, statement, params=()):
        if "INSERT INTO project_installments" in statement:
            raise RuntimeError("schedule write failed")
        return super().query(statement, params)


class FailingScheduleBackend(SqliteBackend):
    def connection(self):
        return FailingScheduleConnection(self._conn())


def _project(projects: ProjectService, name: str = "Nile Tower") -> str:
    return projects.create_project(ProjectInput(name=name, location="Cairo", floors=12, units=48)).id


def _financed_sale(project_id: str, **plan) -> ProjectSaleInput:
    return ProjectSaleInput(
        project_id=project_id,
        unit_no="A-12",
        buyer="Sara",
        price=Decimal("10000"),
        date=date(2024, 1, 15),
        plan=FinancingPlan(**plan),
    )


def test_financed_sale_books_down_payment_and_schedule(storage):
    projects = ProjectService(storage)
    pid = _project(projects)

    result = projects.create_project_sale(
        _financed_sale(
            pid,
            monthly_amount=Decimal("1500"),
            months=6,
            first_due_date=date(2024, 2, 1),
            down_payment=Decimal("1000"),
        )
    )

    assert result.transaction.type == "revenue"
    assert result.transaction.amount == Decimal("1000")
    assert result.transaction.description == "Installment sale of unit A-12 in project Nile Tower (down payment)"
    assert len(result.installments) == 6

    stored = projects.get_project_snapshot(pid).installments
    assert [i.id for i in stored] == [i.id for i in result.installments]
    assert all(i.sale_id == result.sale.id for i in stored)
    assert stored[-1].due_date == date(2024, 7, 1)


def test_cash_sale_books_full_price(storage):
    projects = ProjectService(storage)
    pid = _project(projects)

    result = projects.create_project_sale(
        ProjectSaleInput(project_id=pid, unit_no="B-3", buyer="Omar", price=Decimal("8000"), date=date(2024, 1, 15))
    )

    assert result.installments is None
    assert result.transaction.amount == Decimal("8000")
    assert result.transaction.description == "Sale of unit B-3 in project Nile Tower to Omar"


def test_financed_sale_without_down_payment_defaults_to_zero(storage):
    projects = ProjectService(storage)
    pid = _project(projects)

    result = projects.create_project_sale(
        _financed_sale(pid, monthly_amount=Decimal("500"), months=2, first_due_date=date(2024, 2, 1))
    )

    assert result.transaction.amount == Decimal("0")
    assert len(result.installments) == 2


@pytest.mark.parametrize(
    "plan",
    [
        {"monthly_amount": Decimal("500"), "months": 6},
        {"monthly_amount": Decimal("500"), "months": 6, "first_due_date": date(2024, 2, 1), "down_payment": Decimal("-1")},
        {"monthly_amount": Decimal("500"), "months": 6, "first_due_date": date(2024, 2, 1), "down_payment": Decimal("20000")},
    ],
)
def test_invalid_plan_rejected_before_any_write(storage, plan):
    projects = ProjectService(storage)
    pid = _project(projects)

    with pytest.raises(ValidationError):
        projects.create_project_sale(_financed_sale(pid, **plan))

    snap = LedgerService(storage).get_snapshot()
    assert snap.sales == []
    assert snap.transactions == []


def test_sale_and_schedule_are_atomic(tmp_path: Path):
    storage = make_storage(tmp_path, backend_factory=lambda: FailingScheduleBackend(tmp_path / "sale.db"))
    projects = ProjectService(storage)
    pid = _project(projects)

    with pytest.raises(RuntimeError):
        projects.create_project_sale(
            _financed_sale(pid, monthly_amount=Decimal("500"), months=3, first_due_date=date(2024, 2, 1))
        )

    snap = LedgerService(storage).get_snapshot()
    assert snap.sales == []
    assert snap.transactions == []


def test_sale_for_missing_project_not_found(storage):
    projects = ProjectService(storage)

    with pytest.raises(NotFoundError):
        projects.create_project_sale(
            ProjectSaleInput(project_id="missing", unit_no="1", buyer="X", price=Decimal("1"), date=date(2024, 1, 1))
        )


def test_custom_cost_label_required_for_other(storage):
    projects = ProjectService(storage)
    pid = _project(projects)

    with pytest.raises(ValidationError):
        projects.create_project_cost(
            ProjectCostInput(project_id=pid, type="other", amount=Decimal("10"), date=date(2024, 1, 1))
        )

    result = projects.create_project_cost(
        ProjectCostInput(
            project_id=pid,
            type="other",
            amount=Decimal("250"),
            date=date(2024, 1, 2),
            note="scaffolding",
            custom_type_label="Rentals",
        )
    )

    assert result.cost.custom_type_label == "Rentals"
    assert result.cost.note == "scaffolding"
    assert result.transaction.type == "expense"
    assert result.transaction.description == "Rentals cost for project Nile Tower"


def test_standard_cost_discards_label(storage):
    projects = ProjectService(storage)
    pid = _project(projects)

    result = projects.create_project_cost(
        ProjectCostInput(
            project_id=pid,
            type="construction",
            amount=Decimal("900"),
            date=date(2024, 1, 2),
            note="rebar",
            custom_type_label="ignored",
        )
    )

    assert result.cost.custom_type_label is None
    assert result.cost.note == "rebar"
    assert result.transaction.description == "Construction cost for project Nile Tower"


def test_delete_project_cascades_but_keeps_ledger(storage):
    projects = ProjectService(storage)
    pid = _project(projects)
    projects.create_project_cost(
        ProjectCostInput(project_id=pid, type="operation", amount=Decimal("50"), date=date(2024, 1, 2))
    )
    sale = projects.create_project_sale(
        _financed_sale(pid, monthly_amount=Decimal("500"), months=2, first_due_date=date(2024, 2, 1))
    )

    projects.delete_project(pid)

    repo = LedgerRepository(storage.backend())
    assert projects.get_project(pid) is None
    assert projects.get_project_snapshot(pid) is None
    assert repo.list_costs(pid) == []
    assert repo.list_sales(pid) == []
    assert repo.list_installments_for_sale(sale.sale.id) == []
    assert len(repo.list_transactions()) == 2


def test_delete_missing_project_leaves_data_untouched(storage):
    projects = ProjectService(storage)
    pid = _project(projects)

    with pytest.raises(NotFoundError):
        projects.delete_project("missing")

    assert projects.get_project(pid) is not None


def test_project_requires_name_and_location(storage):
    with pytest.raises(ValidationError):
        ProjectService(storage).create_project(ProjectInput(name=" ", location="Cairo"))
