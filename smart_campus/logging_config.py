from __future__ import annotations

import logging


def configure_app_logging(level: str = "INFO") -> None:
    """
    Minimal logging configuration for this repo.

    Notes:
    - Uvicorn already configures handlers; this function mainly sets levels for our package.
    - Set `CAMPUS_LOG_LEVEL=DEBUG` (or INFO/WARNING/ERROR) to control verbosity.
    - Audit write failures go to `smart_campus.alerts` and are never silenced below ERROR.
    """

    normalized = level.upper()
    logging.getLogger("smart_campus").setLevel(normalized)
    # Ensure child loggers under smart_campus.* inherit this level.
    logging.getLogger("smart_campus").propagate = True

    alerts = logging.getLogger("smart_campus.alerts")
    if alerts.getEffectiveLevel() > logging.ERROR:
        alerts.setLevel(logging.ERROR)
