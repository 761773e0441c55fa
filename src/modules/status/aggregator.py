"""
Single source of truth for the printer's status.

Five independent queries (printer status, ink, paper, scanner, job list) are polled on
their own cadence. The cadence depends on whether a job is running, whether the status
drawer is expanded and whether a scan/copy screen is open, and is re-evaluated whenever
one of those changes.
"""

__all__ = [
    "DisplayStatus",
    "compute_display_status",
    "PollingPolicy",
    "StatusSnapshot",
    "PrinterStatusAggregator",
    "build_status_aggregator",
    "status_aggregator",
]

import asyncio
import datetime
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Any

from src.api.logging_ import logger
from src.config import settings
from src.config_schema import Polling
from src.modules.errors import DeviceError
from src.modules.scanning.repository import ScanningRepository, scanning_repository
from src.modules.status.alerts import DisplayAlert, get_alert_display
from src.modules.telemetry.entity_models import (
    Alert,
    AlertSeverity,
    EwsJob,
    InkLevel,
    JobCategory,
    JobState,
    PaperTray,
    PrinterStatus,
    ScannerState,
    ScannerStatus,
)
from src.modules.telemetry.repository import TelemetryRepository, telemetry_repository
from src.pydantic_base import BaseSchema


class DisplayStatus(StrEnum):
    READY = "ready"
    PRINTING = "printing"
    SCANNING = "scanning"
    COPYING = "copying"
    WARNING = "warning"
    ERROR = "error"
    OFFLINE = "offline"


def compute_display_status(
    alerts: list[Alert],
    current_job: EwsJob | None,
    scanner_status: ScannerStatus | None,
    is_offline: bool,
) -> DisplayStatus:
    if any(alert.severity == AlertSeverity.ERROR for alert in alerts):
        return DisplayStatus.ERROR
    if is_offline:
        return DisplayStatus.OFFLINE
    if current_job is not None and current_job.state == JobState.PROCESSING:
        if current_job.category == JobCategory.COPY:
            return DisplayStatus.COPYING
        if current_job.category == JobCategory.SCAN:
            return DisplayStatus.SCANNING
        if current_job.category == JobCategory.PRINT:
            return DisplayStatus.PRINTING
    # Scans started from the panel do not always show up in the job list
    if scanner_status is not None and scanner_status.state == ScannerState.PROCESSING:
        return DisplayStatus.SCANNING
    if any(alert.severity == AlertSeverity.WARNING for alert in alerts):
        return DisplayStatus.WARNING
    return DisplayStatus.READY


class PollingPolicy:
    """Polling interval of every query as a function of the current UI context"""

    def __init__(self, polling: Polling):
        self.polling = polling

    def status(self, active_job: bool, expanded: bool) -> float:
        if active_job:
            return self.polling.status_active
        return self.polling.status_expanded if expanded else self.polling.status_collapsed

    def ink(self, expanded: bool) -> float:
        return self.polling.ink_expanded if expanded else self.polling.ink_collapsed

    def paper(self, expanded: bool) -> float:
        return self.polling.paper_expanded if expanded else self.polling.paper_collapsed

    def jobs(self, active_job: bool, expanded: bool) -> float:
        if active_job:
            return self.polling.job_active
        return self.status(active_job, expanded)

    def scanner(self, active_job: bool, expanded: bool, scanner_screen_open: bool) -> float:
        if scanner_screen_open:
            return self.polling.scanner_screen_open
        return self.status(active_job, expanded)


class StatusSnapshot(BaseSchema):
    status: DisplayStatus
    alerts: list[DisplayAlert] = []
    printer_state: str | None = None
    ink_levels: list[InkLevel] = []
    paper_tray: PaperTray | None = None
    scanner_status: ScannerStatus | None = None
    current_job: EwsJob | None = None
    is_loading: bool = True
    "No refresh has finished yet"
    is_offline: bool = False
    last_updated: datetime.datetime | None = None
    "Last successful printer status refresh"
    is_drawer_expanded: bool = False
    is_scanner_screen_open: bool = False


Listener = Callable[[StatusSnapshot], Any]

QUERIES = ("status", "ink", "paper", "scanner", "jobs")


class PrinterStatusAggregator:
    def __init__(
        self,
        fetch_printer_status: Callable[[], Awaitable[PrinterStatus]],
        fetch_ink_levels: Callable[[], Awaitable[list[InkLevel]]],
        fetch_paper_tray: Callable[[], Awaitable[PaperTray]],
        fetch_scanner_status: Callable[[], Awaitable[ScannerStatus]],
        fetch_current_job: Callable[[], Awaitable[EwsJob | None]],
        cancel_job: Callable[[str], Awaitable[None]],
        policy: PollingPolicy,
    ):
        self._fetchers: dict[str, Callable[[], Awaitable[Any]]] = {
            "status": fetch_printer_status,
            "ink": fetch_ink_levels,
            "paper": fetch_paper_tray,
            "scanner": fetch_scanner_status,
            "jobs": fetch_current_job,
        }
        self._cancel_job = cancel_job
        self.policy = policy

        self._printer_status: PrinterStatus | None = None
        self._ink_levels: list[InkLevel] = []
        self._paper_tray: PaperTray | None = None
        self._scanner_status: ScannerStatus | None = None
        self._current_job: EwsJob | None = None
        self._last_updated: datetime.datetime | None = None
        self._is_loading = True
        self._failed: dict[str, bool] = {}
        "Whether the most recent attempt of each query failed"
        self._had_error = False
        self._drawer_expanded = False
        self._scanner_screen_open = False

        self._listeners: list[Listener] = []
        self._wake_events: dict[str, asyncio.Event] = {}
        self._tasks: list[asyncio.Task] = []

    # Derived state

    @property
    def has_active_job(self) -> bool:
        return self._current_job is not None and self._current_job.state == JobState.PROCESSING

    @property
    def is_offline(self) -> bool:
        return all(self._failed.get(name, False) for name in QUERIES)

    def get_snapshot(self) -> StatusSnapshot:
        alerts = self._printer_status.alerts if self._printer_status is not None else []
        return StatusSnapshot(
            status=compute_display_status(alerts, self._current_job, self._scanner_status, self.is_offline),
            alerts=[get_alert_display(alert) for alert in alerts],
            printer_state=self._printer_status.state if self._printer_status is not None else None,
            ink_levels=self._ink_levels,
            paper_tray=self._paper_tray,
            scanner_status=self._scanner_status,
            current_job=self._current_job,
            is_loading=self._is_loading,
            is_offline=self.is_offline,
            last_updated=self._last_updated,
            is_drawer_expanded=self._drawer_expanded,
            is_scanner_screen_open=self._scanner_screen_open,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call `listener` with a fresh snapshot after every change. Returns the unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.get_snapshot()
        for listener in list(self._listeners):
            listener(snapshot)

    # Queries

    async def _run_query(self, name: str) -> bool:
        try:
            value = await self._fetchers[name]()
        except DeviceError as e:
            logger.warning(f"Status query {name} failed: {e.message}")
            self._failed[name] = True
            self._notify()
            return False
        except Exception as e:
            logger.exception(e)
            self._failed[name] = True
            self._notify()
            return False

        self._failed[name] = False
        self._apply(name, value)
        self._notify()
        return True

    def _apply(self, name: str, value: Any) -> None:
        if name == "status":
            has_error = any(alert.severity == AlertSeverity.ERROR for alert in value.alerts)
            if has_error and not self._had_error:
                logger.info("Printer reports an error, expanding the status drawer")
                self._drawer_expanded = True
                self._wake()
            self._had_error = has_error
            self._printer_status = value
            self._last_updated = datetime.datetime.now()
        elif name == "ink":
            self._ink_levels = value
        elif name == "paper":
            self._paper_tray = value
        elif name == "scanner":
            self._scanner_status = value
        elif name == "jobs":
            was_active = self.has_active_job
            self._current_job = value
            if self.has_active_job != was_active:
                self._wake()

    async def refresh_status(self) -> bool:
        return await self._run_query("status")

    async def refresh_ink(self) -> bool:
        return await self._run_query("ink")

    async def refresh_paper(self) -> bool:
        return await self._run_query("paper")

    async def refresh_scanner(self) -> bool:
        return await self._run_query("scanner")

    async def refresh_jobs(self) -> bool:
        return await self._run_query("jobs")

    async def refresh(self) -> StatusSnapshot:
        await asyncio.gather(*(self._run_query(name) for name in QUERIES))
        self._is_loading = False
        self._notify()
        return self.get_snapshot()

    # UI context

    def set_drawer_expanded(self, expanded: bool) -> None:
        if self._drawer_expanded != expanded:
            self._drawer_expanded = expanded
            self._wake()
            self._notify()

    def set_scanner_screen_open(self, is_open: bool) -> None:
        if self._scanner_screen_open != is_open:
            self._scanner_screen_open = is_open
            self._wake()
            self._notify()

    def interval(self, name: str) -> float:
        active, expanded = self.has_active_job, self._drawer_expanded
        if name == "status":
            return self.policy.status(active, expanded)
        if name == "ink":
            return self.policy.ink(expanded)
        if name == "paper":
            return self.policy.paper(expanded)
        if name == "jobs":
            return self.policy.jobs(active, expanded)
        return self.policy.scanner(active, expanded, self._scanner_screen_open)

    # Actions

    async def cancel_current_job(self) -> bool:
        job = self._current_job
        if job is None:
            return False
        try:
            await self._cancel_job(job.id)
        except DeviceError as e:
            logger.warning(f"Failed to cancel job {job.id}: {e.message}")
            return False
        await asyncio.gather(self.refresh_jobs(), self.refresh_status())
        return True

    # Polling loops

    def _wake(self) -> None:
        for event in self._wake_events.values():
            event.set()

    async def _loop(self, name: str) -> None:
        wake = self._wake_events[name]
        while True:
            wake.clear()
            try:
                async with asyncio.timeout(self.interval(name)):
                    await wake.wait()
            except TimeoutError:
                try:
                    await self._run_query(name)
                except Exception as e:
                    # A failing listener must not end the polling
                    logger.exception(e)
            # Otherwise the context changed: wait again with the new interval

    async def start(self) -> None:
        if self._tasks:
            return
        await self.refresh()
        for name in QUERIES:
            self._wake_events[name] = asyncio.Event()
        self._tasks = [asyncio.create_task(self._loop(name), name=f"status-{name}") for name in QUERIES]
        logger.info("Printer status polling started")

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self._wake_events = {}
        logger.info("Printer status polling stopped")


def build_status_aggregator(
    telemetry: TelemetryRepository, scanning: ScanningRepository, polling: Polling
) -> PrinterStatusAggregator:
    return PrinterStatusAggregator(
        fetch_printer_status=telemetry.fetch_printer_status,
        fetch_ink_levels=telemetry.fetch_ink_levels,
        fetch_paper_tray=telemetry.fetch_paper_tray,
        fetch_scanner_status=scanning.get_scanner_status,
        fetch_current_job=telemetry.fetch_current_job,
        cancel_job=telemetry.cancel_job,
        policy=PollingPolicy(polling),
    )


status_aggregator: PrinterStatusAggregator = build_status_aggregator(
    telemetry_repository, scanning_repository, settings.polling
)
