from fastapi import APIRouter

from src.modules.status.aggregator import StatusSnapshot, status_aggregator

router = APIRouter(prefix="/status", tags=["Status"])


@router.get("")
def get_status() -> StatusSnapshot:
    return status_aggregator.get_snapshot()


@router.post("/refresh")
async def refresh_status() -> StatusSnapshot:
    return await status_aggregator.refresh()


@router.post("/drawer")
async def set_drawer_expanded(expanded: bool) -> StatusSnapshot:
    status_aggregator.set_drawer_expanded(expanded)
    return status_aggregator.get_snapshot()


@router.post("/scanner-screen")
async def set_scanner_screen_open(is_open: bool) -> StatusSnapshot:
    status_aggregator.set_scanner_screen_open(is_open)
    return status_aggregator.get_snapshot()


@router.post("/cancel-current-job")
async def cancel_current_job() -> bool:
    return await status_aggregator.cancel_current_job()
