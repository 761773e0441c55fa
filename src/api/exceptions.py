__all__ = ["device_error_handler", "status_code_for"]

from fastapi import Request
from starlette.responses import JSONResponse

from src.api.logging_ import logger
from src.modules.errors import (
    DeviceError,
    DeviceReportedError,
    DeviceUnreachableError,
    OperationTimeoutError,
    ScanInProgressError,
)


def status_code_for(exc: DeviceError) -> int:
    if isinstance(exc, ScanInProgressError):
        return 409
    if isinstance(exc, OperationTimeoutError):
        return 504
    if isinstance(exc, DeviceReportedError) and exc.reason == "busy":
        return 503
    # Unreachable, malformed and refused requests are all upstream failures
    return 502


async def device_error_handler(request: Request, exc: DeviceError) -> JSONResponse:
    status_code = status_code_for(exc)
    if isinstance(exc, DeviceUnreachableError):
        logger.warning(f"{request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {status_code}: {exc.message}")
    return JSONResponse(status_code=status_code, content={"detail": exc.message})
