from fastapi import APIRouter, Body
from starlette.responses import Response

from src.modules.scanning.entity_models import DEFAULT_SCAN_SETTINGS, SCAN_PRESETS, ScanSettings
from src.modules.scanning.repository import scanning_repository
from src.modules.telemetry.entity_models import ScannerStatus

router = APIRouter(prefix="/scan", tags=["Scan"])


@router.get("/status")
async def get_scanner_status() -> ScannerStatus:
    return await scanning_repository.get_scanner_status()


@router.get("/presets")
def get_presets() -> dict[str, ScanSettings]:
    return SCAN_PRESETS


@router.post(
    "",
    responses={
        409: {"description": "Another scan is in progress"},
        503: {"description": "Scanner is busy"},
    },
)
async def scan(scan_settings: ScanSettings = Body(DEFAULT_SCAN_SETTINGS, embed=True)) -> Response:
    """
    Scan one page and return the document
    """
    document = await scanning_repository.perform_scan(scan_settings)
    return Response(document, media_type=scan_settings.format.value)
