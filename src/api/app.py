from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.exceptions import device_error_handler
from src.api.logging_ import log_request_duration, logger
from src.config import settings
from src.modules.copying.routes import router as copying_router
from src.modules.errors import DeviceError
from src.modules.printing.print_flow import print_flow
from src.modules.printing.routes import router as printing_router
from src.modules.scanning.routes import router as scanning_router
from src.modules.status.aggregator import status_aggregator
from src.modules.status.routes import router as status_router
from src.modules.telemetry.routes import router as telemetry_router


@asynccontextmanager
async def lifespan(_app: FastAPI):
    logger.info(f"Printer at {settings.device.host}")
    await status_aggregator.start()
    yield
    await status_aggregator.stop()
    await print_flow.aclose()


app = FastAPI(
    title="Printer Hub API",
    root_path=settings.api.app_root_path,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=settings.api.cors_allow_origin_regex,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "Content-Type", "Content-Length"],
)
app.middleware("http")(log_request_duration)
app.add_exception_handler(DeviceError, device_error_handler)

app.include_router(telemetry_router)
app.include_router(scanning_router)
app.include_router(printing_router)
app.include_router(copying_router)
app.include_router(status_router)
