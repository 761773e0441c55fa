__all__ = [
    "DeviceError",
    "DeviceUnreachableError",
    "MalformedResponseError",
    "DeviceReportedError",
    "ScannerStoppedError",
    "OperationTimeoutError",
    "JobFailedError",
    "ScanInProgressError",
    "translate_transport_errors",
]

from contextlib import contextmanager

import httpx


class DeviceError(Exception):
    """Base class for everything that went wrong while talking to the printer"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class DeviceUnreachableError(DeviceError):
    """Connection refused, DNS failure or request timeout"""


class MalformedResponseError(DeviceError):
    """The device answered, but the answer can not be understood (bad XML, bad IPP, missing header)"""


class DeviceReportedError(DeviceError):
    """The device understood the request and refused it"""

    def __init__(self, message: str, reason: str | None = None):
        super().__init__(message)
        self.reason = reason


class ScannerStoppedError(DeviceReportedError):
    def __init__(self, message: str = "Scanner stopped unexpectedly"):
        super().__init__(message, reason="stopped")


class OperationTimeoutError(DeviceError):
    pass


class JobFailedError(DeviceError):
    pass


class ScanInProgressError(DeviceError):
    def __init__(self, message: str = "Scan already in progress"):
        super().__init__(message)


@contextmanager
def translate_transport_errors(what: str):
    """Re-raise any httpx request failure or timeout as DeviceUnreachableError"""
    try:
        yield
    except (httpx.RequestError, TimeoutError) as e:
        raise DeviceUnreachableError(f"Failed to reach printer ({what}): {e!r}") from e
