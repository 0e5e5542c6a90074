from .ledger_service import LedgerService
from .inventory_service import InventoryService
from .project_service import ProjectService
from .installment_service import InstallmentService
from .reminder_service import DueInstallmentSweep
from .schedule import add_months, build_schedule

__all__ = [
    "LedgerService",
    "InventoryService",
    "ProjectService",
    "InstallmentService",
    "DueInstallmentSweep",
    "add_months",
    "build_schedule",
]
