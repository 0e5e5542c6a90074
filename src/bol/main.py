from __future__ import annotations

import logging
import threading

from bol.application.container import build_container
from bol.config import get_app_paths
from bol.logging_config import setup_logging

log = logging.getLogger("bol")


def main() -> None:
    paths = get_app_paths()
    setup_logging(paths.logs_dir, level=logging.INFO)

    app = build_container(paths)
    if app.storage.degraded:
        log.warning("running_degraded error=%s", app.storage.init_error)

    app.sweep.start()
    app.sync.start()
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        log.info("shutdown_requested")
    finally:
        app.sync.stop(timeout=5)
        app.sweep.stop(timeout=5)


if __name__ == "__main__":
    main()
