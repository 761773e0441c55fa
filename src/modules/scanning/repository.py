__all__ = ["ScanningRepository", "scanning_repository", "build_scan_settings_xml"]

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx

from src.api.logging_ import logger
from src.config import settings
from src.modules.errors import (
    DeviceError,
    DeviceReportedError,
    MalformedResponseError,
    OperationTimeoutError,
    ScanInProgressError,
    ScannerStoppedError,
    translate_transport_errors,
)
from src.modules.scanning.entity_models import ScanSettings
from src.modules.telemetry.entity_models import ScannerState, ScannerStatus
from src.modules.telemetry.repository import parse_scanner_status
from src.modules.telemetry.xml_tools import fetch_xml
from src.tools.cancellation import CancellationToken

T = TypeVar("T")
ProgressCallback = Callable[[str], None]

SCAN_SETTINGS_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<scan:ScanSettings xmlns:scan="http://schemas.hp.com/imaging/escl/2011/05/03"
                   xmlns:pwg="http://www.pwg.org/schemas/2010/12/sm">
    <pwg:Version>2.63</pwg:Version>
    <scan:Intent>{intent}</scan:Intent>
    <pwg:ScanRegions>
        <pwg:ScanRegion>
            <pwg:XOffset>0</pwg:XOffset>
            <pwg:YOffset>0</pwg:YOffset>
            <pwg:Width>{width}</pwg:Width>
            <pwg:Height>{height}</pwg:Height>
            <pwg:ContentRegionUnits>escl:ThreeHundredthsOfInches</pwg:ContentRegionUnits>
        </pwg:ScanRegion>
    </pwg:ScanRegions>
    <pwg:InputSource>{source}</pwg:InputSource>
    <scan:ColorMode>{color_mode}</scan:ColorMode>
    <scan:XResolution>{resolution}</scan:XResolution>
    <scan:YResolution>{resolution}</scan:YResolution>
    <pwg:DocumentFormat>{format}</pwg:DocumentFormat>
</scan:ScanSettings>"""


def build_scan_settings_xml(options: ScanSettings) -> str:
    return SCAN_SETTINGS_TEMPLATE.format(
        intent=options.intent.value,
        width=options.width,
        height=options.height,
        source=options.source.value,
        color_mode=options.color_mode.value,
        resolution=options.resolution,
        format=options.format.value,
    )


async def _guarded(token: CancellationToken | None, awaitable: Awaitable[T]) -> T:
    if token is None:
        return await awaitable
    return await token.run(awaitable)


class ScanningRepository:
    """
    eSCL scan driver.

    The scanner only exposes a device-wide state, not a per-job one, so two scans
    can not be told apart while polling. `perform_scan` therefore allows a single
    scan at a time and rejects the second caller with ScanInProgressError.
    """

    def __init__(
        self,
        escl_url: str,
        timeout: float = 5.0,
        poll_interval: float = 0.5,
        max_wait: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.escl_url = escl_url
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.max_wait = max_wait
        self._transport = transport
        self._lock = asyncio.Lock()

    def _client(self, timeout: httpx.Timeout | float | None = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            verify=False,
            transport=self._transport,
            timeout=httpx.Timeout(self.timeout) if timeout is None else timeout,
        )

    @property
    def is_scanning(self) -> bool:
        return self._lock.locked()

    async def get_scanner_status(self) -> ScannerStatus:
        async with self._client() as client:
            soup = await fetch_xml(client, f"{self.escl_url}/ScannerStatus", self.timeout)
        return parse_scanner_status(soup)

    async def create_scan_job(self, options: ScanSettings) -> str:
        """Start a scan job and return its url (taken from the Location header)"""
        async with self._client() as client:
            with translate_transport_errors("create scan job"):
                response = await client.post(
                    url=f"{self.escl_url}/ScanJobs",
                    headers={"Content-Type": "application/xml"},
                    content=build_scan_settings_xml(options),
                )
        if response.status_code == httpx.codes.SERVICE_UNAVAILABLE:
            logger.info("Scanner status code 503 (scanner is busy)")
            raise DeviceReportedError("Scanner is busy", reason="busy")
        if not response.is_success:
            logger.warning(f"Scanner refused the scan job: {response.status_code}")
            raise DeviceReportedError(
                f"Failed to create scan job: {response.status_code}", reason=str(response.status_code)
            )

        location = response.headers.get("Location")
        if not location:
            raise MalformedResponseError("No Location header in scan job response")
        # Some firmware answers with a path, some with an absolute url
        job_url = str(response.url.join(location))
        logger.info(f"Scanner created job {job_url}")
        return job_url

    async def wait_for_scan_complete(
        self,
        job_url: str,
        on_progress: ProgressCallback | None = None,
        max_wait: float | None = None,
        token: CancellationToken | None = None,
    ) -> None:
        """
        Poll the scanner state until it returns to Idle.

        Every observed state is reported through `on_progress`. Raises ScannerStoppedError when the
        scanner stops, and OperationTimeoutError after `max_wait` seconds of wall-clock time.
        """
        max_wait = self.max_wait if max_wait is None else max_wait
        deadline = time.monotonic() + max_wait
        while time.monotonic() < deadline:
            status = await _guarded(token, self.get_scanner_status())
            if token is not None:
                token.raise_if_cancelled()
            if on_progress is not None:
                on_progress(status.state.value)

            if status.state == ScannerState.IDLE:
                return
            if status.state == ScannerState.STOPPED:
                logger.warning(f"Scanner stopped while processing {job_url}")
                raise ScannerStoppedError()

            await _guarded(token, asyncio.sleep(self.poll_interval))

        raise OperationTimeoutError("Scan timed out")

    async def fetch_scanned_document(self, job_url: str) -> bytes:
        # NextDocument blocks until the page is ready, so no timeout here
        async with self._client(timeout=httpx.Timeout(None)) as client:
            logger.info(f"Scanner fetching document {job_url}")
            with translate_transport_errors("fetch scanned document"):
                response = await client.get(f"{job_url}/NextDocument")
        if not response.is_success:
            raise DeviceReportedError(
                f"Failed to fetch scanned document: {response.status_code}", reason=str(response.status_code)
            )
        return response.content

    async def cancel_scan_job(self, job_url: str) -> None:
        """Delete the scan job from the printer, so nobody can download the file"""
        async with self._client() as client:
            logger.info(f"Scanner deleting job {job_url}")
            with translate_transport_errors("delete scan job"):
                response = await client.delete(job_url)
        if response.status_code == httpx.codes.NOT_FOUND:
            return  # already gone
        if not response.is_success:
            raise DeviceReportedError(
                f"Failed to cancel scan job: {response.status_code}", reason=str(response.status_code)
            )

    async def _cancel_quietly(self, job_url: str) -> None:
        try:
            await self.cancel_scan_job(job_url)
        except DeviceError as e:
            logger.warning(f"Scanner cleanup of {job_url} failed: {e}")

    async def perform_scan(
        self,
        options: ScanSettings,
        on_progress: ProgressCallback | None = None,
        token: CancellationToken | None = None,
    ) -> bytes:
        """Create, wait and fetch. The job is always deleted from the device afterwards."""
        if self._lock.locked():
            raise ScanInProgressError()

        async with self._lock:
            job_url = await _guarded(token, self.create_scan_job(options))
            try:
                if token is not None:
                    token.raise_if_cancelled()
                if on_progress is not None:
                    on_progress(ScannerState.PROCESSING.value)
                await self.wait_for_scan_complete(job_url, on_progress, token=token)
                document = await _guarded(token, self.fetch_scanned_document(job_url))
            except (Exception, asyncio.CancelledError) as e:
                logger.info(f"Scanner job {job_url} failed: {e!r}")
                await self._cancel_quietly(job_url)
                raise

            await self._cancel_quietly(job_url)
            return document


scanning_repository: ScanningRepository = ScanningRepository(
    settings.device.escl_url,
    timeout=settings.device.request_timeout,
    poll_interval=settings.polling.scan_poll_interval,
    max_wait=settings.polling.scan_max_wait,
)
