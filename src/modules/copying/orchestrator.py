__all__ = ["CopyOrchestrator", "copy_orchestrator"]

import time
from collections.abc import Awaitable

from src.api.logging_ import logger
from src.config import settings
from src.modules.copying.entity_models import (
    CopyComplete,
    CopyError,
    CopyIdle,
    CopyPhase,
    CopyPrinting,
    CopyScanning,
    CopySettings,
    CopyState,
    PhaseResult,
    map_copy_to_print_settings,
    map_copy_to_scan_settings,
)
from src.modules.errors import DeviceError, JobFailedError, OperationTimeoutError
from src.modules.printing.entity_models import JobState, PrintDocument
from src.modules.printing.repository import PrintingRepository, printing_repository
from src.modules.scanning.repository import ScanningRepository, scanning_repository
from src.tools.cancellation import CancellationToken, OperationCancelledError


class CopyOrchestrator:
    """
    Scan, then print the scanned page.

    Printing never starts before the scan has resolved. Each phase returns a PhaseResult,
    so an error is always attributed to the phase that produced it. Cancelling returns
    to idle and is never reported as an error.
    """

    def __init__(
        self,
        scanning: ScanningRepository,
        printing: PrintingRepository,
        poll_interval: float = 1.0,
        max_wait: float = 300.0,
    ):
        self.scanning = scanning
        self.printing = printing
        self.poll_interval = poll_interval
        self.max_wait = max_wait
        self.state: CopyState = CopyIdle()
        self._token: CancellationToken | None = None

    @property
    def busy(self) -> bool:
        return self._token is not None

    def _set(self, token: CancellationToken, state: CopyState) -> CopyState:
        # Updates from a cancelled copy are dropped
        if not token.cancelled:
            self.state = state
        return self.state

    async def start_copy(self, copies: int, options: CopySettings) -> CopyState:
        if self.busy:
            logger.warning("Copy already in progress, ignoring a second start")
            return self.state

        token = CancellationToken()
        self._token = token
        try:
            self._set(token, CopyScanning(progress="Starting scan..."))
            scan = await self._run_phase("scan", self._scan(options, token))
            if scan.cancelled or token.cancelled:
                return self.state
            if scan.error is not None:
                return self._set(token, CopyError(message=scan.error, phase=scan.phase))

            self._set(token, CopyPrinting(current_copy=1, total_copies=copies))
            printed = await self._run_phase("print", self._print(scan.value, copies, options, token))
            if printed.cancelled or token.cancelled:
                return self.state
            if printed.error is not None:
                return self._set(token, CopyError(message=printed.error, phase=printed.phase))

            logger.info(f"Copy finished: {copies} copies")
            return self._set(token, CopyComplete(copies=copies))
        finally:
            if self._token is token:
                self._token = None

    def cancel(self) -> CopyState:
        if self._token is not None:
            self._token.cancel()
            self._token = None
        self.state = CopyIdle()
        return self.state

    def reset(self) -> CopyState:
        return self.cancel()

    async def _run_phase(self, phase: CopyPhase, operation: Awaitable) -> PhaseResult:
        try:
            return PhaseResult(phase=phase, value=await operation)
        except OperationCancelledError:
            logger.info(f"Copy cancelled during {phase}")
            return PhaseResult(phase=phase, cancelled=True)
        except DeviceError as e:
            logger.warning(f"Copy failed during {phase}: {e.message}")
            return PhaseResult(phase=phase, error=e.message)
        except Exception as e:
            logger.exception(e)
            return PhaseResult(phase=phase, error="Copy failed")

    async def _scan(self, options: CopySettings, token: CancellationToken) -> bytes:
        return await self.scanning.perform_scan(
            map_copy_to_scan_settings(options),
            on_progress=lambda scanner_state: self._set(token, CopyScanning(progress=scanner_state)),
            token=token,
        )

    async def _print(self, scanned: bytes, copies: int, options: CopySettings, token: CancellationToken) -> int:
        document = PrintDocument(filename="copy.jpg", content=scanned, content_type="image/jpeg")
        submission = await token.run(
            self.printing.submit_print_job(document, map_copy_to_print_settings(options, copies))
        )
        try:
            await self._wait_for_print(submission.job_id, token)
        except OperationCancelledError:
            await self._cancel_print_quietly(submission.job_id)
            raise
        return submission.job_id

    async def _wait_for_print(self, job_id: int, token: CancellationToken) -> None:
        deadline = time.monotonic() + self.max_wait
        while time.monotonic() < deadline:
            progress = await token.run(self.printing.get_job_progress(job_id))
            if progress.state == JobState.COMPLETED:
                return
            if progress.state in (JobState.ABORTED, JobState.CANCELED):
                raise JobFailedError(progress.error_message or "Print job failed")
            await token.sleep(self.poll_interval)
        raise OperationTimeoutError("Print timed out")

    async def _cancel_print_quietly(self, job_id: int) -> None:
        try:
            await self.printing.cancel_print_job(job_id)
        except DeviceError as e:
            logger.warning(f"Cancel of copy print job {job_id} failed: {e}")


copy_orchestrator: CopyOrchestrator = CopyOrchestrator(
    scanning_repository,
    printing_repository,
    poll_interval=settings.polling.print_poll_interval,
    max_wait=settings.polling.copy_print_max_wait,
)
