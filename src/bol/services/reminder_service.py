from __future__ import annotations

import logging
import threading
from datetime import date, timedelta
from typing import Callable, Optional

from bol.services.installment_service import InstallmentService

log = logging.getLogger("bol.reminders")


class DueInstallmentSweep:
    """Periodic job appending a reminder to every unpaid, due installment.

    Reminders are append-only, so a sweep that runs twice on the same day
    writes each reminder twice. Failures are logged and never stop the
    schedule.
    """

    def __init__(
        self,
        installments: InstallmentService,
        interval: timedelta = timedelta(days=1),
        today: Callable[[], date] = date.today,
    ):
        self.installments = installments
        self.interval = interval
        self.today = today
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self, as_of: Optional[date] = None) -> int:
        as_of = as_of or self.today()
        written = 0
        try:
            for inst in self.installments.get_due_installments(as_of):
                self.installments.create_reminder(inst.id, f"auto reminder for due {inst.due_date.isoformat()}")
                written += 1
        except Exception:
            log.exception("reminder_sweep_failed as_of=%s written=%s", as_of, written)
            return written
        log.info("reminder_sweep_done as_of=%s reminders=%s", as_of, written)
        return written

    def _loop(self) -> None:
        while not self._stop.is_set():
            self.run_once()
            if self._stop.wait(self.interval.total_seconds()):
                break

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="bol-reminder-sweep", daemon=True)
        self._thread.start()
        log.info("reminder_sweep_started interval_s=%s", self.interval.total_seconds())

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        log.info("reminder_sweep_stopped")
