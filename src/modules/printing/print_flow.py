"""
Print workflow: a pure reducer over six immutable states plus the controller that
drives it from the device (submit, poll progress, cancel).
"""

__all__ = [
    "PrintFlowEmpty",
    "PrintFlowReady",
    "PrintFlowSending",
    "PrintFlowPrinting",
    "PrintFlowComplete",
    "PrintFlowError",
    "PrintFlowState",
    "SelectFile",
    "RemoveFile",
    "StartSend",
    "StartPrinting",
    "PrintProgress",
    "Complete",
    "Error",
    "Cancel",
    "Reset",
    "PrintFlowAction",
    "print_reducer",
    "PrintFlow",
    "PrintFlowView",
    "print_flow",
]

import asyncio
from collections.abc import Callable
from typing import Literal

from src.api.logging_ import logger
from src.modules.errors import DeviceError
from src.modules.printing.entity_models import JobState, PrintDocument, PrintJobProgress, PrintSettings
from src.config import settings as app_settings
from src.modules.printing.repository import PrintingRepository, printing_repository
from src.pydantic_base import BaseSchema, FrozenSchema


# States
class PrintFlowEmpty(FrozenSchema):
    status: Literal["empty"] = "empty"


class PrintFlowReady(FrozenSchema):
    status: Literal["ready"] = "ready"
    file: PrintDocument


class PrintFlowSending(FrozenSchema):
    status: Literal["sending"] = "sending"
    file: PrintDocument
    job_id: int


class PrintFlowPrinting(FrozenSchema):
    status: Literal["printing"] = "printing"
    file: PrintDocument
    job_id: int
    progress: int = 0
    "Percent, 0-100"
    current_page: int = 1
    total_pages: int = 1


class PrintFlowComplete(FrozenSchema):
    status: Literal["complete"] = "complete"
    file: PrintDocument
    total_pages: int


class PrintFlowError(FrozenSchema):
    status: Literal["error"] = "error"
    file: PrintDocument
    message: str


PrintFlowState = (
    PrintFlowEmpty | PrintFlowReady | PrintFlowSending | PrintFlowPrinting | PrintFlowComplete | PrintFlowError
)


# Actions
class SelectFile(FrozenSchema):
    file: PrintDocument


class RemoveFile(FrozenSchema):
    pass


class StartSend(FrozenSchema):
    job_id: int


class StartPrinting(FrozenSchema):
    total_pages: int


class PrintProgress(FrozenSchema):
    page: int
    progress: int


class Complete(FrozenSchema):
    pass


class Error(FrozenSchema):
    message: str


class Cancel(FrozenSchema):
    pass


class Reset(FrozenSchema):
    pass


PrintFlowAction = SelectFile | RemoveFile | StartSend | StartPrinting | PrintProgress | Complete | Error | Cancel | Reset


def print_reducer(state: PrintFlowState, action: PrintFlowAction) -> PrintFlowState:
    """
    Apply an action to the print flow state.

    Any action that is not valid in the current state returns `state` itself, unchanged.
    """
    if isinstance(action, SelectFile):
        if isinstance(state, (PrintFlowEmpty, PrintFlowReady)):
            return PrintFlowReady(file=action.file)
    elif isinstance(action, RemoveFile):
        if isinstance(state, PrintFlowReady):
            return PrintFlowEmpty()
    elif isinstance(action, StartSend):
        if isinstance(state, PrintFlowReady):
            return PrintFlowSending(file=state.file, job_id=action.job_id)
    elif isinstance(action, StartPrinting):
        if isinstance(state, PrintFlowSending):
            return PrintFlowPrinting(
                file=state.file, job_id=state.job_id, progress=0, current_page=1, total_pages=action.total_pages
            )
    elif isinstance(action, PrintProgress):
        if isinstance(state, PrintFlowPrinting):
            return state.model_copy(update={"current_page": action.page, "progress": action.progress})
    elif isinstance(action, Complete):
        if isinstance(state, PrintFlowPrinting):
            return PrintFlowComplete(file=state.file, total_pages=state.total_pages)
    elif isinstance(action, Error):
        if isinstance(state, (PrintFlowSending, PrintFlowPrinting)):
            return PrintFlowError(file=state.file, message=action.message)
    elif isinstance(action, Cancel):
        if isinstance(state, (PrintFlowSending, PrintFlowPrinting, PrintFlowError)):
            return PrintFlowReady(file=state.file)
    elif isinstance(action, Reset):
        if isinstance(state, (PrintFlowComplete, PrintFlowError)):
            return PrintFlowEmpty()
    return state


class PrintFlowView(BaseSchema):
    """Flow state without the document bytes"""

    status: str
    filename: str | None = None
    job_id: int | None = None
    progress: int | None = None
    "Percent, 0-100"
    current_page: int | None = None
    total_pages: int | None = None
    message: str | None = None
    "Why the job failed"
    submit_error: str | None = None
    "Why the last submission failed"


JobCompleteCallback = Callable[[PrintDocument, int, str], None]
JobErrorCallback = Callable[[PrintDocument, str], None]


class PrintFlow:
    """
    Drives the print reducer from the device.

    While a job is sending or printing, its progress is polled every `poll_interval`
    seconds. Polling stops as soon as the state leaves sending/printing.
    """

    def __init__(
        self,
        printing: PrintingRepository,
        settings: PrintSettings | None = None,
        on_job_complete: JobCompleteCallback | None = None,
        on_job_error: JobErrorCallback | None = None,
        poll_interval: float = 1.0,
    ):
        self.printing = printing
        self.settings = settings or PrintSettings()
        self.on_job_complete = on_job_complete
        self.on_job_error = on_job_error
        self.poll_interval = poll_interval
        self.state: PrintFlowState = PrintFlowEmpty()
        self.submit_error: str | None = None
        "Why the last submission failed. The flow stays in ready so the user can retry."
        self._poll_task: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()

    @property
    def status(self) -> str:
        return self.state.status

    def view(self) -> PrintFlowView:
        file = getattr(self.state, "file", None)
        return PrintFlowView(
            **self.state.model_dump(exclude={"file"}),
            filename=file.filename if file is not None else None,
            submit_error=self.submit_error,
        )

    def dispatch(self, action: PrintFlowAction) -> PrintFlowState:
        self.state = print_reducer(self.state, action)
        return self.state

    def select_file(self, file: PrintDocument) -> PrintFlowState:
        self.submit_error = None
        return self.dispatch(SelectFile(file=file))

    def remove_file(self) -> PrintFlowState:
        self.submit_error = None
        return self.dispatch(RemoveFile())

    def reset(self) -> PrintFlowState:
        self.submit_error = None
        return self.dispatch(Reset())

    async def start_print(self) -> PrintFlowState:
        state = self.state
        if not isinstance(state, PrintFlowReady):
            return state
        self.submit_error = None
        try:
            submission = await self.printing.submit_print_job(state.file, self.settings)
        except DeviceError as e:
            logger.warning(f"Submitting {state.file.filename} failed: {e.message}")
            self.submit_error = e.message
            self._notify_error(state.file, e.message)
            return self.state

        if self.state is not state:
            # The file was removed or replaced while the job was being submitted
            logger.info(f"Print job {submission.job_id} is no longer wanted, cancelling it")
            self._spawn(self._cancel_on_device(submission.job_id))
            return self.state

        self.dispatch(StartSend(job_id=submission.job_id))
        self._poll_task = asyncio.create_task(self._poll(submission.job_id))
        return self.state

    def cancel(self) -> PrintFlowState:
        """Back to ready immediately. The device cancel runs in the background and may fail silently."""
        job_id = getattr(self.state, "job_id", None)
        self.dispatch(Cancel())
        if job_id is not None:
            self._spawn(self._cancel_on_device(job_id))
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None
        return self.state

    async def join(self) -> None:
        """Wait until polling and background device calls are done"""
        if self._poll_task is not None:
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    async def aclose(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
        await self.join()

    def _is_tracking(self, job_id: int) -> bool:
        return isinstance(self.state, (PrintFlowSending, PrintFlowPrinting)) and self.state.job_id == job_id

    async def _poll(self, job_id: int) -> None:
        while self._is_tracking(job_id):
            try:
                progress = await self.printing.get_job_progress(job_id)
            except DeviceError as e:
                if self._is_tracking(job_id):
                    self._fail(e.message)
                return
            except Exception as e:
                logger.exception(e)
                if self._is_tracking(job_id):
                    self._fail("Could not read the print job status")
                return
            if not self._is_tracking(job_id):
                return
            self._apply(progress)
            if not self._is_tracking(job_id):
                return
            await asyncio.sleep(self.poll_interval)

    def _apply(self, progress: PrintJobProgress) -> None:
        if progress.state == JobState.PROCESSING:
            if progress.current_page is None and progress.total_pages is None:
                return
            current_page = progress.current_page or 1
            total_pages = progress.total_pages or 1
            if isinstance(self.state, PrintFlowSending):
                self.dispatch(StartPrinting(total_pages=total_pages))
                if current_page <= 1:
                    return
            self.dispatch(PrintProgress(page=current_page, progress=round(current_page / total_pages * 100)))
        elif progress.state == JobState.COMPLETED:
            file = self.state.file
            if isinstance(self.state, PrintFlowSending):
                self.dispatch(StartPrinting(total_pages=progress.total_pages or 1))
            self.dispatch(Complete())
            logger.info(f"Print job {progress.job_id} for {file.filename} completed")
            if self.on_job_complete is not None:
                self.on_job_complete(file, progress.total_pages or 1, self.settings.color_mode)
        elif progress.state in (JobState.ABORTED, JobState.CANCELED):
            self._fail(progress.error_message or "Print job failed")

    def _fail(self, message: str) -> None:
        file = self.state.file
        self.dispatch(Error(message=message))
        logger.warning(f"Print job for {file.filename} failed: {message}")
        self._notify_error(file, message)

    def _notify_error(self, file: PrintDocument, message: str) -> None:
        if self.on_job_error is not None:
            self.on_job_error(file, message)

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _cancel_on_device(self, job_id: int) -> None:
        try:
            await self.printing.cancel_print_job(job_id)
        except DeviceError as e:
            # The job may have finished already
            logger.info(f"Ignoring failed cancel of print job {job_id}: {e.message}")


print_flow: PrintFlow = PrintFlow(printing_repository, poll_interval=app_settings.polling.print_poll_interval)
