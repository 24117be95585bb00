import logging
import time

import httpx

from .constants import APP_NAME, DASHBOARD_TASK_ID, HTTP_TIMEOUT

logger = logging.getLogger(APP_NAME)

LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "success": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}
"""dict[str, int]: Reporter severities mapped onto logging levels."""


class Reporter:
    """Base class defining the progress-reporting interface.

    The default implementation only writes to the application logger, which
    makes it suitable for tests and for runs without a dashboard. Reporting is
    best-effort: no method may raise into the sync engine.
    """

    def start(self, name: str, description: str = "") -> None:
        """Announces the beginning of a run.

        Args:
            name (str): A short task title.
            description (str): A longer description of the task.
        """
        logger.info(name)

    def log(self, message: str, level: str = "info") -> None:
        """Records a log line.

        Args:
            message (str): The text to record.
            level (str): One of 'info', 'success', 'warn', 'error'.
        """
        logger.log(LEVELS.get(level, logging.INFO), message)

    def progress(self, current: int, total: int) -> None:
        """Reports how many operations have been processed.

        Args:
            current (int): Operations processed so far.
            total (int): Operations expected in this run.
        """
        logger.debug(f"Progress {current}/{total}")

    def complete(self, summary: str) -> None:
        """Reports successful completion with a summary."""
        logger.info(summary)

    def fail(self, error: str) -> None:
        """Reports that the run was aborted."""
        logger.error(f"Sync failed: {error}")


class DashboardReporter(Reporter):
    """Mirrors every report to an external dashboard process over HTTP.

    All dashboard requests are fire-and-forget: connection failures and error
    responses are logged at DEBUG and otherwise ignored. If the dashboard is
    unreachable when the task is registered, it is not contacted again.
    """

    def __init__(
        self,
        url: str,
        task_id: str = DASHBOARD_TASK_ID,
        timeout: float = HTTP_TIMEOUT,
    ):
        self.url = url.rstrip("/")
        self.task_id = task_id
        self.timeout = timeout
        self.active = False

    def _post(self, path: str, payload: dict) -> bool:
        try:
            response = httpx.post(
                f"{self.url}/api/task/{self.task_id}{path}",
                json=payload,
                timeout=self.timeout,
            )
            response.raise_for_status()
            return True
        except httpx.HTTPError as e:
            logger.debug(f"Dashboard request {path or '/'} failed: {e}")
            return False

    def start(self, name: str, description: str = "") -> None:
        super().start(name, description)
        self.active = self._post(
            "",
            {
                "name": name,
                "description": description,
                "status": "running",
                "progress": 0,
                "total": 0,
                "startTime": int(time.time() * 1000),
            },
        )
        if not self.active:
            logger.info("Dashboard not available")

    def log(self, message: str, level: str = "info") -> None:
        super().log(message, level)
        if self.active:
            self._post("/log", {"message": message, "level": level})

    def progress(self, current: int, total: int) -> None:
        super().progress(current, total)
        if self.active:
            self._post("", {"progress": current, "total": total})

    def complete(self, summary: str) -> None:
        super().complete(summary)
        if self.active:
            self._post("/complete", {"summary": summary})

    def fail(self, error: str) -> None:
        super().fail(error)
        if self.active:
            self._post("/fail", {"error": error})
