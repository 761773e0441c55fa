import asyncio

import httpx
import pytest

from src.modules.errors import (
    DeviceReportedError,
    MalformedResponseError,
    OperationTimeoutError,
    ScanInProgressError,
    ScannerStoppedError,
)
from src.modules.scanning.entity_models import (
    SCAN_PRESETS,
    ScanColorMode,
    ScanFormat,
    ScanIntent,
    ScanSettings,
    ScanSource,
)
from src.modules.scanning.repository import ScanningRepository, build_scan_settings_xml
from src.tools.cancellation import CancellationToken, OperationCancelledError
from tests.helpers import ESCL_URL, RequestLog, xml_response

JOB_URL = f"{ESCL_URL}/ScanJobs/42"


def scanner_status(state: str) -> str:
    return (
        '<scan:ScannerStatus xmlns:scan="http://schemas.hp.com/imaging/escl/2011/05/03"'
        ' xmlns:pwg="http://www.pwg.org/schemas/2010/12/sm">'
        f"<pwg:State>{state}</pwg:State><scan:AdfState>ScannerAdfEmpty</scan:AdfState>"
        "</scan:ScannerStatus>"
    )


class FakeScanner:
    """Scriptable eSCL endpoint. Status answers are consumed in order, the last one repeats."""

    def __init__(self, states=("Processing", "Idle"), document: bytes = b"%PDF-1.4 scanned"):
        self.log = RequestLog()
        self.states = list(states)
        self.document = document
        self.create_response = httpx.Response(201, headers={"Location": "/eSCL/ScanJobs/42"})
        self.document_status = 200
        self.delete_status = 200
        self.document_requested = asyncio.Event()
        self.release_document: asyncio.Event | None = None

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.log(request)
        path = request.url.path
        if request.method == "POST" and path == "/eSCL/ScanJobs":
            return self.create_response
        if request.method == "GET" and path == "/eSCL/ScannerStatus":
            state = self.states.pop(0) if len(self.states) > 1 else self.states[0]
            return xml_response(scanner_status(state))
        if request.method == "GET" and path == "/eSCL/ScanJobs/42/NextDocument":
            self.document_requested.set()
            if self.release_document is not None:
                await self.release_document.wait()
            return httpx.Response(self.document_status, content=self.document)
        if request.method == "DELETE" and path == "/eSCL/ScanJobs/42":
            return httpx.Response(self.delete_status)
        return httpx.Response(404)

    def repository(self, max_wait: float = 5.0) -> ScanningRepository:
        return ScanningRepository(
            ESCL_URL, poll_interval=0.01, max_wait=max_wait, transport=httpx.MockTransport(self)
        )


def test_scan_settings_xml():
    options = ScanSettings.with_size(
        "a4",
        intent=ScanIntent.PHOTO,
        source=ScanSource.ADF,
        color_mode=ScanColorMode.GRAYSCALE,
        resolution=600,
        format=ScanFormat.JPEG,
    )
    xml = build_scan_settings_xml(options)
    assert "<scan:Intent>Photo</scan:Intent>" in xml
    assert "<pwg:Width>2480</pwg:Width>" in xml
    assert "<pwg:Height>3508</pwg:Height>" in xml
    assert "<pwg:InputSource>Adf</pwg:InputSource>" in xml
    assert "<scan:ColorMode>Grayscale8</scan:ColorMode>" in xml
    assert "<scan:XResolution>600</scan:XResolution>" in xml
    assert "<scan:YResolution>600</scan:YResolution>" in xml
    assert "<pwg:DocumentFormat>image/jpeg</pwg:DocumentFormat>" in xml
    assert "escl:ThreeHundredthsOfInches" in xml


def test_scan_settings_reject_unknown_resolution():
    with pytest.raises(ValueError):
        ScanSettings(resolution=250)


def test_presets():
    assert SCAN_PRESETS["document"].preset == "document"
    assert SCAN_PRESETS["photo"].preset == "photo"
    assert SCAN_PRESETS["photo"].size_key == "photo4x6"
    assert ScanSettings(resolution=75).preset == "custom"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "location,expected",
    [
        ("/eSCL/ScanJobs/42", JOB_URL),
        ("http://printer.test/eSCL/ScanJobs/42", JOB_URL),
    ],
)
async def test_create_scan_job_resolves_location(location, expected):
    scanner = FakeScanner()
    scanner.create_response = httpx.Response(201, headers={"Location": location})
    assert await scanner.repository().create_scan_job(ScanSettings()) == expected

    (request,) = scanner.log.requests
    assert request.headers["Content-Type"] == "application/xml"
    assert b"<scan:ScanSettings" in request.content


@pytest.mark.asyncio
async def test_create_scan_job_without_location():
    scanner = FakeScanner()
    scanner.create_response = httpx.Response(201)
    with pytest.raises(MalformedResponseError, match="No Location header"):
        await scanner.repository().create_scan_job(ScanSettings())


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code,message", [(503, "Scanner is busy"), (409, "Failed to create scan job: 409")])
async def test_create_scan_job_refused(status_code, message):
    scanner = FakeScanner()
    scanner.create_response = httpx.Response(status_code)
    with pytest.raises(DeviceReportedError) as exc_info:
        await scanner.repository().create_scan_job(ScanSettings())
    assert exc_info.value.message == message


@pytest.mark.asyncio
async def test_perform_scan_happy_path():
    scanner = FakeScanner(states=["Processing", "Processing", "Idle"])
    progress = []

    document = await scanner.repository().perform_scan(ScanSettings(), on_progress=progress.append)

    assert document == b"%PDF-1.4 scanned"
    assert progress == ["Processing", "Processing", "Processing", "Idle"]
    assert scanner.log.urls("DELETE") == [JOB_URL]


@pytest.mark.asyncio
async def test_failed_fetch_deletes_job_once_and_keeps_error():
    scanner = FakeScanner()
    scanner.document_status = 500

    with pytest.raises(DeviceReportedError, match="Failed to fetch scanned document: 500"):
        await scanner.repository().perform_scan(ScanSettings())

    assert scanner.log.urls("DELETE") == [JOB_URL]


@pytest.mark.asyncio
async def test_cleanup_failure_does_not_mask_result():
    scanner = FakeScanner()
    scanner.delete_status = 500
    assert await scanner.repository().perform_scan(ScanSettings()) == b"%PDF-1.4 scanned"

    scanner = FakeScanner(states=["Stopped"])
    scanner.delete_status = 500
    with pytest.raises(ScannerStoppedError):
        await scanner.repository().perform_scan(ScanSettings())


@pytest.mark.asyncio
async def test_scanner_stopped():
    scanner = FakeScanner(states=["Processing", "Stopped"])
    with pytest.raises(ScannerStoppedError) as exc_info:
        await scanner.repository().perform_scan(ScanSettings())
    assert exc_info.value.message == "Scanner stopped unexpectedly"
    assert scanner.log.urls("GET").count(f"{ESCL_URL}/ScanJobs/42/NextDocument") == 0
    assert scanner.log.urls("DELETE") == [JOB_URL]


@pytest.mark.asyncio
async def test_scan_times_out():
    scanner = FakeScanner(states=["Processing"])
    with pytest.raises(OperationTimeoutError, match="Scan timed out"):
        await scanner.repository(max_wait=0.05).perform_scan(ScanSettings())
    assert scanner.log.urls("DELETE") == [JOB_URL]


@pytest.mark.asyncio
async def test_cancel_missing_job_is_ok():
    scanner = FakeScanner()
    scanner.delete_status = 404
    await scanner.repository().cancel_scan_job(JOB_URL)

    scanner.delete_status = 500
    with pytest.raises(DeviceReportedError):
        await scanner.repository().cancel_scan_job(JOB_URL)


@pytest.mark.asyncio
async def test_second_scan_is_rejected_while_first_runs():
    scanner = FakeScanner(states=["Idle"])
    scanner.release_document = asyncio.Event()
    repository = scanner.repository()

    first = asyncio.create_task(repository.perform_scan(ScanSettings()))
    await scanner.document_requested.wait()
    assert repository.is_scanning

    with pytest.raises(ScanInProgressError):
        await repository.perform_scan(ScanSettings())

    scanner.release_document.set()
    assert await first == b"%PDF-1.4 scanned"
    assert not repository.is_scanning
    assert len(scanner.log.urls("POST")) == 1


@pytest.mark.asyncio
async def test_cancellation_aborts_in_flight_fetch():
    scanner = FakeScanner(states=["Idle"])
    scanner.release_document = asyncio.Event()
    repository = scanner.repository()
    token = CancellationToken()

    task = asyncio.create_task(repository.perform_scan(ScanSettings(), token=token))
    await scanner.document_requested.wait()
    token.cancel()

    with pytest.raises(OperationCancelledError):
        await task
    assert scanner.log.urls("DELETE") == [JOB_URL]
    assert not repository.is_scanning
