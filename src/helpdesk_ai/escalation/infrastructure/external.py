"""
Escalation External Integrations
================================

- YAML threshold file with hot reload (watchdog)
- APScheduler job for the periodic escalation sweep
"""

import threading
from pathlib import Path
from typing import Awaitable, Callable, Optional

import yaml
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from helpdesk_ai.core.exceptions import ConfigurationException
from helpdesk_ai.escalation.application import IEscalationConfigProvider
from helpdesk_ai.escalation.domain import EscalationThresholds
from helpdesk_ai.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class ConfigFileHandler(FileSystemEventHandler):
    """Reloads the manager when its file changes."""

    def __init__(self, config_manager: "EscalationConfigManager", config_path: Path):
        self.config_manager = config_manager
        self.config_path = config_path
        super().__init__()

    def on_modified(self, event):
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.config_path.resolve():
            logger.info("Escalation config file changed", extra={"path": str(event.src_path)})
            self.config_manager.reload()


class EscalationConfigManager(IEscalationConfigProvider):
    """
    Thread-safe escalation threshold store with hot reload.

    Values missing from the file fall back to settings. A file that fails to
    parse on reload leaves the previous thresholds in place.
    """

    def __init__(self):
        self._thresholds: Optional[EscalationThresholds] = None
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> EscalationThresholds:
        """
        Initial load.

        Raises:
            ConfigurationException: If the file exists but is invalid
        """
        self._path = path
        try:
            thresholds = self._load_from_file(path)
        except (yaml.YAMLError, ValidationError, TypeError) as e:
            raise ConfigurationException(f"Invalid escalation config {path}: {e}")
        with self._lock:
            self._thresholds = thresholds
        return thresholds

    def _load_from_file(self, path: Path) -> EscalationThresholds:
        if not path.exists():
            logger.warning("Escalation config file not found, using defaults", extra={"path": str(path)})
            return EscalationThresholds()

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        # Accept either a flat mapping or one nested under "escalation"
        if isinstance(data.get("escalation"), dict):
            data = data["escalation"]
        return EscalationThresholds(**data)

    def reload(self) -> bool:
        """Re-read the file. Returns False and keeps the old values on error."""
        if self._path is None:
            return False

        try:
            new_thresholds = self._load_from_file(self._path)
        except (OSError, yaml.YAMLError, ValidationError, TypeError) as e:
            logger.error("Failed to reload escalation config", extra={"error": str(e)})
            return False

        with self._lock:
            self._thresholds = new_thresholds
        logger.info("Escalation configuration reloaded", extra=new_thresholds.model_dump())
        return True

    def start_watching(self) -> None:
        """Watch the config file. Skipped when the file does not exist."""
        if self._path is None:
            raise RuntimeError("Config not loaded. Call load() first.")

        if not self._path.exists():
            logger.info("Escalation config file absent, not watching", extra={"path": str(self._path)})
            return

        try:
            self._observer = Observer()
            handler = ConfigFileHandler(self, self._path)
            self._observer.schedule(handler, str(self._path.parent), recursive=False)
            self._observer.start()
            logger.info("Watching escalation config file", extra={"path": str(self._path)})
        except OSError as e:
            logger.warning("File watching not available, using static config", extra={"error": str(e)})
            self._observer = None

    def stop_watching(self) -> None:
        """Safe to call when not watching."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    def get_thresholds(self) -> EscalationThresholds:
        with self._lock:
            if self._thresholds is None:
                raise RuntimeError("Escalation configuration not loaded")
            return self._thresholds


class EscalationScheduler:
    """
    APScheduler wrapper running the periodic escalation sweep.

    ``max_instances=1`` keeps sweeps from overlapping.
    """

    def __init__(self, interval_seconds: int = 300):
        self.interval_seconds = interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def start(self, job_func: Callable[[], Awaitable[object]]) -> None:
        if self._running:
            logger.warning("Escalation scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            job_func,
            "interval",
            seconds=self.interval_seconds,
            id="escalation_sweep",
            name="Escalation Sweep Job",
            misfire_grace_time=60,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()
        self._running = True

        logger.info("Escalation scheduler started", extra={"interval_seconds": self.interval_seconds})

    async def stop(self) -> None:
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)

        self._running = False
        logger.info("Escalation scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._running
