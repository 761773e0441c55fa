__all__ = ["logger", "log_request_duration"]

import asyncio
import inspect
import logging.config
import os


class RelativePathFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.relativePath = os.path.relpath(record.pathname)
        return True


dictConfig = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "()": "colorlog.ColoredFormatter",
            "format": "[%(black)s%(asctime)s%(reset)s] [%(log_color)s%(levelname)s%(reset)s] [%(name)s] %(message)s",
        },
        "src": {
            "()": "colorlog.ColoredFormatter",
            "format": "[%(black)s%(asctime)s%(reset)s] "
            "[%(log_color)s%(levelname)s%(reset)s] "
            '[%(cyan)sFile "%(relativePath)s", line '
            "%(lineno)d%(reset)s] %(message)s",
        },
    },
    "handlers": {
        "default": {"class": "logging.StreamHandler", "formatter": "default", "stream": "ext://sys.stdout"},
        "src": {"class": "logging.StreamHandler", "formatter": "src", "stream": "ext://sys.stdout"},
    },
    "loggers": {
        "src": {"handlers": ["src"], "level": "INFO", "propagate": False},
        "uvicorn.access": {"handlers": ["default"], "level": "INFO", "propagate": False},
        "uvicorn.error": {"handlers": ["default"], "level": "INFO", "propagate": False},
        "httpx": {"handlers": ["default"], "level": "WARNING", "propagate": False},
    },
}

logging.config.dictConfig(dictConfig)

logger = logging.getLogger("src")
logger.addFilter(RelativePathFilter())


async def log_request_duration(request, call_next):
    """HTTP middleware: log how long each request to the API took, with the route that served it"""
    loop = asyncio.get_running_loop()
    start_time = loop.time()
    response = await call_next(request)
    duration = loop.time() - start_time
    route = request.scope.get("route")
    endpoint = getattr(route, "endpoint", None)
    if endpoint is not None:
        pathname = inspect.getsourcefile(endpoint) or "unknown"
        lineno = inspect.getsourcelines(endpoint)[1]
        func_name = endpoint.__name__
    else:
        pathname, lineno, func_name = __file__, 0, "unknown"
    record = logging.LogRecord(
        name="src.api.request",
        level=logging.INFO,
        pathname=pathname,
        lineno=lineno,
        msg=f"{request.method} {request.url.path} -> {response.status_code} (`{func_name}` took {int(duration * 1000)} ms)",
        args=(),
        exc_info=None,
        func=func_name,
    )
    record.relativePath = os.path.relpath(record.pathname)
    logger.handle(record)
    return response
