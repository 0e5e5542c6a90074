from .models import (
    AccountingSnapshot,
    FinancingPlan,
    Installment,
    InstallmentPayment,
    InstallmentReminder,
    InventoryItem,
    Movement,
    MovementResult,
    Project,
    ProjectCost,
    ProjectSale,
    ProjectSnapshot,
    Transaction,
)
from .errors import (
    BackendUnavailableError,
    ConflictError,
    NotFoundError,
    ValidationError,
)

__all__ = [
    "AccountingSnapshot",
    "FinancingPlan",
    "Installment",
    "InstallmentPayment",
    "InstallmentReminder",
    "InventoryItem",
    "Movement",
    "MovementResult",
    "Project",
    "ProjectCost",
    "ProjectSale",
    "ProjectSnapshot",
    "Transaction",
    "BackendUnavailableError",
    "ConflictError",
    "NotFoundError",
    "ValidationError",
]
