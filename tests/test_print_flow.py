import asyncio

import httpx
import pytest

from src.modules.errors import DeviceReportedError, DeviceUnreachableError
from src.modules.printing.entity_models import JobState, PrintDocument, PrintJobProgress, PrintJobSubmission
from src.modules.printing.print_flow import (
    Cancel,
    Complete,
    Error,
    PrintFlow,
    PrintFlowComplete,
    PrintFlowEmpty,
    PrintFlowError,
    PrintFlowPrinting,
    PrintFlowReady,
    PrintFlowSending,
    PrintProgress,
    PrintFlowView,
    RemoveFile,
    Reset,
    SelectFile,
    StartPrinting,
    StartSend,
    print_reducer,
)

FILE = PrintDocument(filename="report.pdf", content=b"%PDF-1.7", content_type="application/pdf")
OTHER_FILE = PrintDocument(filename="photo.jpg", content=b"\xff\xd8", content_type="image/jpeg")

STATES = {
    "empty": PrintFlowEmpty(),
    "ready": PrintFlowReady(file=FILE),
    "sending": PrintFlowSending(file=FILE, job_id=42),
    "printing": PrintFlowPrinting(file=FILE, job_id=42, progress=33, current_page=1, total_pages=3),
    "complete": PrintFlowComplete(file=FILE, total_pages=3),
    "error": PrintFlowError(file=FILE, message="Paper jam"),
}

ACTIONS = {
    "select_file": SelectFile(file=OTHER_FILE),
    "remove_file": RemoveFile(),
    "start_send": StartSend(job_id=7),
    "start_printing": StartPrinting(total_pages=5),
    "print_progress": PrintProgress(page=2, progress=66),
    "complete": Complete(),
    "error": Error(message="Out of paper"),
    "cancel": Cancel(),
    "reset": Reset(),
}

VALID = {
    ("select_file", "empty"): PrintFlowReady(file=OTHER_FILE),
    ("select_file", "ready"): PrintFlowReady(file=OTHER_FILE),
    ("remove_file", "ready"): PrintFlowEmpty(),
    ("start_send", "ready"): PrintFlowSending(file=FILE, job_id=7),
    ("start_printing", "sending"): PrintFlowPrinting(file=FILE, job_id=42, progress=0, current_page=1, total_pages=5),
    ("print_progress", "printing"): PrintFlowPrinting(file=FILE, job_id=42, progress=66, current_page=2, total_pages=3),
    ("complete", "printing"): PrintFlowComplete(file=FILE, total_pages=3),
    ("error", "sending"): PrintFlowError(file=FILE, message="Out of paper"),
    ("error", "printing"): PrintFlowError(file=FILE, message="Out of paper"),
    ("cancel", "sending"): PrintFlowReady(file=FILE),
    ("cancel", "printing"): PrintFlowReady(file=FILE),
    ("cancel", "error"): PrintFlowReady(file=FILE),
    ("reset", "complete"): PrintFlowEmpty(),
    ("reset", "error"): PrintFlowEmpty(),
}


@pytest.mark.parametrize("state_name", list(STATES))
@pytest.mark.parametrize("action_name", list(ACTIONS))
def test_reducer_is_total(action_name, state_name):
    state = STATES[state_name]
    result = print_reducer(state, ACTIONS[action_name])
    expected = VALID.get((action_name, state_name))
    if expected is None:
        assert result is state
    else:
        assert result == expected


def test_reducer_happy_path():
    state = print_reducer(PrintFlowEmpty(), SelectFile(file=FILE))
    assert state == PrintFlowReady(file=FILE)
    state = print_reducer(state, StartSend(job_id=42))
    assert state == PrintFlowSending(file=FILE, job_id=42)
    state = print_reducer(state, StartPrinting(total_pages=3))
    assert (state.status, state.progress, state.current_page, state.total_pages) == ("printing", 0, 1, 3)
    state = print_reducer(state, PrintProgress(page=2, progress=66))
    assert (state.current_page, state.progress) == (2, 66)
    state = print_reducer(state, Complete())
    assert state == PrintFlowComplete(file=FILE, total_pages=3)
    assert print_reducer(state, Reset()) == PrintFlowEmpty()


def test_progress_before_printing_is_ignored():
    sending = STATES["sending"]
    assert print_reducer(sending, PrintProgress(page=3, progress=100)) is sending


class FakePrinting:
    def __init__(self, progress: list, submit_error: Exception | None = None, cancel_error: Exception | None = None):
        self.progress = list(progress)
        self.submit_error = submit_error
        self.cancel_error = cancel_error
        self.submitted = []
        self.cancelled = []
        self.submit_gate: asyncio.Event | None = None

    async def submit_print_job(self, document, options):
        self.submitted.append((document, options))
        if self.submit_gate is not None:
            await self.submit_gate.wait()
        if self.submit_error is not None:
            raise self.submit_error
        return PrintJobSubmission(job_id=42, job_uri=None, job_url="/Jobs/JobList/42")

    async def get_job_progress(self, job_id):
        item = self.progress.pop(0) if len(self.progress) > 1 else self.progress[0]
        if isinstance(item, Exception):
            raise item
        return item

    async def cancel_print_job(self, job_id):
        self.cancelled.append(job_id)
        if self.cancel_error is not None:
            raise self.cancel_error


def progress(state: JobState, current: int | None = None, total: int | None = None, error: str | None = None):
    return PrintJobProgress(job_id=42, state=state, current_page=current, total_pages=total, error_message=error)


class Recorder:
    def __init__(self):
        self.completed = []
        self.errors = []

    def on_complete(self, file, total_pages, color_mode):
        self.completed.append((file.filename, total_pages, color_mode))

    def on_error(self, file, message):
        self.errors.append((file.filename, message))


def make_flow(printing: FakePrinting, recorder: Recorder) -> PrintFlow:
    return PrintFlow(
        printing, on_job_complete=recorder.on_complete, on_job_error=recorder.on_error, poll_interval=0.001
    )


@pytest.mark.asyncio
async def test_flow_runs_job_to_completion():
    printing = FakePrinting(
        [
            progress(JobState.PENDING),
            progress(JobState.PROCESSING),
            progress(JobState.PROCESSING, 1, 3),
            progress(JobState.PROCESSING, 2, 3),
            progress(JobState.COMPLETED, 3, 3),
        ]
    )
    recorder = Recorder()
    flow = make_flow(printing, recorder)
    flow.select_file(FILE)

    state = await flow.start_print()
    assert state == PrintFlowSending(file=FILE, job_id=42)

    await flow.join()
    assert flow.state == PrintFlowComplete(file=FILE, total_pages=3)
    assert recorder.completed == [("report.pdf", 3, "color")]
    assert recorder.errors == []
    assert flow.reset() == PrintFlowEmpty()


@pytest.mark.asyncio
async def test_flow_job_completing_while_sending():
    printing = FakePrinting([progress(JobState.COMPLETED)])
    recorder = Recorder()
    flow = make_flow(printing, recorder)
    flow.select_file(FILE)

    await flow.start_print()
    await flow.join()

    assert flow.state == PrintFlowComplete(file=FILE, total_pages=1)
    assert recorder.completed == [("report.pdf", 1, "color")]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "outcome,message",
    [
        (progress(JobState.ABORTED, error="media-jam"), "media-jam"),
        (progress(JobState.CANCELED), "Print job failed"),
        (DeviceUnreachableError("Failed to reach printer"), "Failed to reach printer"),
    ],
)
async def test_flow_job_failure(outcome, message):
    printing = FakePrinting([progress(JobState.PROCESSING, 1, 2), outcome])
    recorder = Recorder()
    flow = make_flow(printing, recorder)
    flow.select_file(FILE)

    await flow.start_print()
    await flow.join()

    assert flow.state == PrintFlowError(file=FILE, message=message)
    assert recorder.errors == [("report.pdf", message)]
    assert recorder.completed == []


@pytest.mark.asyncio
async def test_flow_submit_failure_stays_ready():
    printing = FakePrinting([], submit_error=DeviceReportedError("Printer is busy, please try again"))
    recorder = Recorder()
    flow = make_flow(printing, recorder)
    flow.select_file(FILE)

    state = await flow.start_print()

    assert state == PrintFlowReady(file=FILE)
    assert flow.submit_error == "Printer is busy, please try again"
    assert recorder.errors == [("report.pdf", "Printer is busy, please try again")]

    flow.select_file(OTHER_FILE)
    assert flow.submit_error is None


@pytest.mark.asyncio
async def test_start_print_without_file_is_noop():
    printing = FakePrinting([])
    flow = make_flow(printing, Recorder())
    assert await flow.start_print() == PrintFlowEmpty()
    assert printing.submitted == []


@pytest.mark.asyncio
@pytest.mark.parametrize("cancel_error", [None, DeviceReportedError("Printer returned 500")])
async def test_cancel_returns_to_ready_and_cancels_on_device(cancel_error):
    printing = FakePrinting([progress(JobState.PROCESSING, 1, 5)], cancel_error=cancel_error)
    recorder = Recorder()
    flow = make_flow(printing, recorder)
    flow.select_file(FILE)
    await flow.start_print()
    await asyncio.sleep(0.01)
    assert isinstance(flow.state, PrintFlowPrinting)

    assert flow.cancel() == PrintFlowReady(file=FILE)
    await flow.join()

    assert flow.state == PrintFlowReady(file=FILE)
    assert printing.cancelled == [42]
    assert recorder.errors == []


@pytest.mark.asyncio
async def test_file_removed_during_submission_cancels_job():
    printing = FakePrinting([progress(JobState.PROCESSING)])
    printing.submit_gate = asyncio.Event()
    flow = make_flow(printing, Recorder())
    flow.select_file(FILE)

    submitting = asyncio.create_task(flow.start_print())
    await asyncio.sleep(0)
    flow.remove_file()
    printing.submit_gate.set()

    assert await submitting == PrintFlowEmpty()
    await flow.join()
    assert printing.cancelled == [42]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "failure",
    [httpx.DecodingError("Error -3 while decompressing data"), ValueError("job-state is not an integer")],
)
async def test_unexpected_poll_failure_ends_in_error(failure):
    printing = FakePrinting([failure])
    recorder = Recorder()
    flow = make_flow(printing, recorder)
    flow.select_file(FILE)

    assert await flow.start_print() == PrintFlowSending(file=FILE, job_id=42)
    await flow.join()

    assert flow.state == PrintFlowError(file=FILE, message="Could not read the print job status")
    assert recorder.errors == [("report.pdf", "Could not read the print job status")]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "current,expected",
    [
        (1, PrintFlowPrinting(file=FILE, job_id=42, progress=0, current_page=1, total_pages=3)),
        (2, PrintFlowPrinting(file=FILE, job_id=42, progress=67, current_page=2, total_pages=3)),
    ],
)
async def test_first_processing_poll_keeps_its_page(current, expected):
    # Pending polls afterwards leave the state alone
    printing = FakePrinting([progress(JobState.PROCESSING, current, 3), progress(JobState.PENDING)])
    flow = make_flow(printing, Recorder())
    flow.select_file(FILE)
    await flow.start_print()
    await asyncio.sleep(0.01)

    assert flow.state == expected

    flow.cancel()
    await flow.join()


@pytest.mark.asyncio
async def test_view_leaves_out_document_bytes():
    printing = FakePrinting([], submit_error=DeviceReportedError("Printer is not accepting jobs"))
    flow = make_flow(printing, Recorder())
    assert flow.view() == PrintFlowView(status="empty")

    flow.select_file(FILE)
    await flow.start_print()

    view = flow.view()
    assert view == PrintFlowView(status="ready", filename="report.pdf", submit_error="Printer is not accepting jobs")
    assert "content" not in view.model_dump()
