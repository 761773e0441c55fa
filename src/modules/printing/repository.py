__all__ = ["PrintingRepository", "printing_repository", "build_print_job_attributes"]

from collections.abc import Callable
from typing import Any

from pyipp import IPP
from pyipp.enums import IppOperation
from pyipp.exceptions import IPPConnectionError, IPPError, IPPParseError, IPPResponseError

from src.api.logging_ import logger
from src.config import settings
from src.modules.errors import DeviceReportedError, DeviceUnreachableError, MalformedResponseError
from src.modules.printing.entity_models import (
    QUALITY_MAP,
    JobState,
    PrintDocument,
    PrintJobProgress,
    PrintJobSubmission,
    PrintSettings,
    is_successful_status,
    map_job_state,
    media_for,
    print_error_message,
    status_keyword,
)

JOB_PROGRESS_ATTRIBUTES = [
    "job-state",
    "job-state-reasons",
    "job-state-message",
    "job-impressions-completed",
    "job-media-sheets-completed",
    "job-impressions",
    "job-media-sheets",
]

ALREADY_GONE = ("client-error-not-found", "client-error-gone")


def build_print_job_attributes(options: PrintSettings) -> dict[str, Any]:
    return {
        "copies": options.copies,
        "print-color-mode": "monochrome" if options.color_mode == "bw" else "color",
        "sides": "two-sided-long-edge" if options.duplex else "one-sided",
        "print-quality": QUALITY_MAP[options.quality],
        "media": media_for(options.paper_size),
    }


def _error_status_code(error: IPPError) -> int | None:
    # pyipp passes {"status-code": ...} along with the message
    for detail in error.args[1:]:
        if isinstance(detail, dict):
            return detail.get("status-code")
    return None


def _first_job(response: dict[str, Any]) -> dict[str, Any] | None:
    jobs = response.get("jobs") or []
    return jobs[0] if jobs else None


def _as_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _first_present(job: dict[str, Any], *names: str) -> int | None:
    for name in names:
        value = job.get(name)
        if value:
            return int(value)
    return None


class PrintingRepository:
    """IPP print driver talking straight to the printer's /ipp/print endpoint"""

    def __init__(
        self,
        host: str,
        port: int = 631,
        base_path: str = "/ipp/print",
        requesting_user_name: str = "hp-printer-app",
        timeout: float = 30.0,
        client_factory: Callable[[], IPP] | None = None,
    ):
        self.host = host
        self.port = port
        self.base_path = base_path
        self.printer_uri = f"ipp://{host}:{port}{base_path}"
        self.requesting_user_name = requesting_user_name
        self.timeout = timeout
        self._client_factory = client_factory or self._create_client

    def _create_client(self) -> IPP:
        return IPP(host=self.host, port=self.port, base_path=self.base_path, request_timeout=self.timeout)

    async def _execute(self, operation: IppOperation, message: dict[str, Any]) -> dict[str, Any] | None:
        """
        Run one IPP operation. Returns the parsed response, or None when the
        printer answers HTTP 404. A non-successful IPP status comes back as a
        response with that "status-code" and no job attributes.
        """
        message["operation-attributes-tag"] = {
            "printer-uri": self.printer_uri,
            "requesting-user-name": self.requesting_user_name,
            **message.get("operation-attributes-tag", {}),
        }
        async with self._client_factory() as client:
            try:
                return await client.execute(operation, message)
            except IPPConnectionError as e:
                raise DeviceUnreachableError(f"Failed to reach printer ({operation.name}): {e!r}") from e
            except IPPParseError as e:
                raise MalformedResponseError(f"Unreadable IPP response to {operation.name}") from e
            except IPPResponseError as e:
                http_status = _error_status_code(e)
                if http_status == 404:
                    return None
                logger.warning(f"Printer {operation.name} HTTP {http_status}")
                raise DeviceReportedError(f"Printer returned {http_status}", reason=str(http_status)) from e
            except IPPError as e:
                status_code = _error_status_code(e)
                if status_code is None:
                    raise DeviceReportedError(f"Printer error: {e}") from e
                return {"status-code": status_code, "jobs": []}

    async def submit_print_job(self, document: PrintDocument, options: PrintSettings) -> PrintJobSubmission:
        response = await self._execute(
            IppOperation.PRINT_JOB,
            {
                "operation-attributes-tag": {
                    "job-name": document.filename,
                    "document-name": document.filename,
                    "document-format": "application/octet-stream",
                },
                "job-attributes-tag": build_print_job_attributes(options),
                "data": document.content,
            },
        )
        if response is None:
            raise DeviceReportedError("Printer returned 404", reason="404")
        status = status_keyword(response["status-code"])
        if not is_successful_status(response["status-code"]):
            logger.warning(f"Print-Job for {document.filename} rejected: {status}")
            raise DeviceReportedError(print_error_message(status), reason=status)

        job = _first_job(response)
        job_id = job.get("job-id") if job is not None else None
        if job_id is None:
            raise MalformedResponseError("No job attributes in response")
        logger.info(f"Printing {document.filename} ({len(document.content)} bytes) as job {job_id}")
        return PrintJobSubmission(job_id=job_id, job_uri=job.get("job-uri"), job_url=f"/Jobs/JobList/{job_id}")

    async def get_job_progress(self, job_id: int) -> PrintJobProgress:
        response = await self._execute(
            IppOperation.GET_JOB_ATTRIBUTES,
            {
                "operation-attributes-tag": {
                    "job-id": job_id,
                    "requested-attributes": JOB_PROGRESS_ATTRIBUTES,
                }
            },
        )
        if response is not None and not is_successful_status(response["status-code"]):
            status = status_keyword(response["status-code"])
            if status not in ALREADY_GONE:
                raise DeviceReportedError(print_error_message(status), reason=status)
        job = _first_job(response) if response is not None else None
        if job is None:
            raise MalformedResponseError("Job not found")

        state = map_job_state(job.get("job-state", 3))
        error_message = None
        if state in (JobState.ABORTED, JobState.CANCELED):
            reasons = [reason for reason in _as_list(job.get("job-state-reasons")) if reason]
            error_message = job.get("job-state-message") or ", ".join(reasons) or "Print job failed"

        return PrintJobProgress(
            job_id=job_id,
            state=state,
            current_page=_first_present(job, "job-impressions-completed", "job-media-sheets-completed"),
            total_pages=_first_present(job, "job-impressions", "job-media-sheets"),
            error_message=error_message,
        )

    async def cancel_print_job(self, job_id: int) -> None:
        logger.info(f"Cancelling print job {job_id}")
        response = await self._execute(IppOperation.CANCEL_JOB, {"operation-attributes-tag": {"job-id": job_id}})
        if response is None or status_keyword(response["status-code"]) in ALREADY_GONE:
            logger.info(f"Print job {job_id} is already gone")
            return
        if not is_successful_status(response["status-code"]):
            status = status_keyword(response["status-code"])
            logger.warning(f"Cancel-Job {job_id} failed: {status}")
            raise DeviceReportedError(print_error_message(status), reason=status)


printing_repository: PrintingRepository = PrintingRepository(
    settings.device.host,
    port=settings.device.ipp_port,
    base_path=settings.device.ipp_path,
    requesting_user_name=settings.device.requesting_user_name,
)
