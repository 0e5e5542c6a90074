from __future__ import annotations

import uuid
from datetime import date

from dateutil.relativedelta import relativedelta

from bol.domain.errors import ValidationError
from bol.domain.models import FinancingPlan, Installment


def add_months(start: date, months: int) -> date:
    """Shift ``start`` by whole months, clamping the day to the target month's length.

    >>> add_months(date(2024, 1, 31), 1)
    datetime.date(2024, 2, 29)
    """
    return start + relativedelta(months=months)


def build_schedule(
    project_id: str,
    sale_id: str,
    unit_no: str,
    buyer: str,
    plan: FinancingPlan,
) -> list[Installment]:
    if plan.monthly_amount is None or plan.months is None or plan.first_due_date is None:
        raise ValidationError("Financing plan needs monthly amount, months and first due date.")
    if plan.monthly_amount <= 0:
        raise ValidationError("Monthly installment amount must be > 0.")
    if int(plan.months) != plan.months or plan.months <= 0:
        raise ValidationError("Number of months must be a whole number > 0.")

    return [
        Installment(
            id=str(uuid.uuid4()),
            project_id=project_id,
            sale_id=sale_id,
            unit_no=unit_no,
            buyer=buyer,
            amount=plan.monthly_amount,
            due_date=add_months(plan.first_due_date, i),
            paid=False,
            paid_at=None,
        )
        for i in range(int(plan.months))
    ]
