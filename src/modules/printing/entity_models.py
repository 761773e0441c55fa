from enum import IntEnum
from typing import Literal

from pydantic import Field

from src.api.logging_ import logger
from src.modules.telemetry.entity_models import JobState
from src.pydantic_base import BaseSchema, FrozenSchema


class PrintSettings(FrozenSchema):
    copies: int = Field(default=1, ge=1, le=99)
    "Count of copies"
    color_mode: Literal["color", "bw"] = "color"
    duplex: bool = False
    "Print on both sides, flipping on the long edge"
    quality: Literal["draft", "normal", "best"] = "normal"
    paper_size: str = "letter"
    "Size key: letter, legal, a4, 4x6 or 5x7"
    paper_type: str = "plain"


MEDIA_MAP: dict[str, str] = {
    "letter": "na_letter_8.5x11in",
    "legal": "na_legal_8.5x14in",
    "a4": "iso_a4_210x297mm",
    "4x6": "na_index-4x6_4x6in",
    "5x7": "na_5x7_5x7in",
}
DEFAULT_MEDIA = MEDIA_MAP["letter"]

QUALITY_MAP: dict[str, int] = {"draft": 3, "normal": 4, "best": 5}
"IPP print-quality enum values"

# https://www.rfc-editor.org/rfc/rfc8011#appendix-B
STATUS_CODES: dict[int, str] = {
    0x0000: "successful-ok",
    0x0001: "successful-ok-ignored-or-substituted-attributes",
    0x0002: "successful-ok-conflicting-attributes",
    0x0400: "client-error-bad-request",
    0x0401: "client-error-forbidden",
    0x0402: "client-error-not-authenticated",
    0x0403: "client-error-not-authorized",
    0x0404: "client-error-not-possible",
    0x0405: "client-error-timeout",
    0x0406: "client-error-not-found",
    0x0407: "client-error-gone",
    0x0408: "client-error-request-entity-too-large",
    0x0409: "client-error-request-value-too-long",
    0x040A: "client-error-document-format-not-supported",
    0x040B: "client-error-attributes-or-values-not-supported",
    0x040C: "client-error-uri-scheme-not-supported",
    0x040D: "client-error-charset-not-supported",
    0x040E: "client-error-conflicting-attributes",
    0x040F: "client-error-compression-not-supported",
    0x0410: "client-error-compression-error",
    0x0411: "client-error-document-format-error",
    0x0412: "client-error-document-access-error",
    0x0500: "server-error-internal-error",
    0x0501: "server-error-operation-not-supported",
    0x0502: "server-error-service-unavailable",
    0x0503: "server-error-version-not-supported",
    0x0504: "server-error-device-error",
    0x0505: "server-error-temporary-error",
    0x0506: "server-error-not-accepting-jobs",
    0x0507: "server-error-busy",
    0x0508: "server-error-job-canceled",
    0x0509: "server-error-multiple-document-jobs-not-supported",
}


def status_keyword(code: int) -> str:
    return STATUS_CODES.get(code, f"0x{code:04x}")


def is_successful_status(code: int) -> bool:
    return code < 0x0100


PRINT_ERROR_MESSAGES: dict[str, str] = {
    "server-error-busy": "Printer is busy, please try again",
    "server-error-not-accepting-jobs": "Printer is not accepting jobs",
    "client-error-document-format-not-supported": "Document format not supported",
    "client-error-attributes-or-values-not-supported": "Print settings not supported",
}


def media_for(paper_size: str) -> str:
    return MEDIA_MAP.get(paper_size, DEFAULT_MEDIA)


def print_error_message(status: str) -> str:
    return PRINT_ERROR_MESSAGES.get(status, f"Printer error: {status}")


class JobStateEnum(IntEnum):
    """
    IPP "job-state" values (RFC 8011, section 5.3.7).

                                                        +----> canceled
                                                        /
        +----> pending  -------> processing ---------+------> completed
        |         ^                   ^               \
    --->+         |                   |                +----> aborted
        |         v                   v               /
        +----> pending-held    processing-stopped ---+

    Jobs reach one of the three terminal states -- 'completed',
    'canceled', or 'aborted' -- after the Jobs have completed all
    activity, and all Job Status attributes have reached their final values.
    """

    pending = 3
    pending_held = 4
    processing = 5
    processing_stopped = 6
    canceled = 7
    aborted = 8
    completed = 9

    def to_job_state(self) -> JobState:
        return _JOB_STATE_MAP[self]


_JOB_STATE_MAP: dict[JobStateEnum, JobState] = {
    JobStateEnum.pending: JobState.PENDING,
    JobStateEnum.pending_held: JobState.PENDING,
    JobStateEnum.processing: JobState.PROCESSING,
    JobStateEnum.processing_stopped: JobState.PROCESSING,
    JobStateEnum.canceled: JobState.CANCELED,
    JobStateEnum.aborted: JobState.ABORTED,
    JobStateEnum.completed: JobState.COMPLETED,
}


def map_job_state(value: int | None) -> JobState:
    """IPP job-state code to the canonical state, unknown codes are pending"""
    try:
        return JobStateEnum(value).to_job_state()
    except ValueError:
        logger.warning(f"Unknown job-state: {value}")
        return JobState.PENDING


class PrintDocument(FrozenSchema):
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


class PrintJobSubmission(BaseSchema):
    job_id: int
    job_uri: str | None = None
    job_url: str
    "Path of the job in the device job list"


class PrintJobProgress(BaseSchema):
    job_id: int
    state: JobState = JobState.PENDING
    current_page: int | None = None
    total_pages: int | None = None
    error_message: str | None = None
    "Set only when the job was canceled or aborted"

    @property
    def is_terminal(self) -> bool:
        return self.state in (JobState.COMPLETED, JobState.CANCELED, JobState.ABORTED)
