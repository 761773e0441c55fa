from fastapi import APIRouter

from src.modules.telemetry.entity_models import (
    DashboardData,
    DeviceInfo,
    EwsJob,
    InkLevel,
    NetworkInfo,
    PaperTray,
    PrinterStatus,
    ScannerStatus,
    UsageStats,
)
from src.modules.telemetry.repository import telemetry_repository

router = APIRouter(prefix="/printer", tags=["Printer"])


@router.get("/status")
async def get_printer_status() -> PrinterStatus:
    return await telemetry_repository.fetch_printer_status()


@router.get("/ink")
async def get_ink_levels() -> list[InkLevel]:
    return await telemetry_repository.fetch_ink_levels()


@router.get("/paper")
async def get_paper_tray() -> PaperTray:
    return await telemetry_repository.fetch_paper_tray()


@router.get("/scanner")
async def get_scanner_status() -> ScannerStatus:
    return await telemetry_repository.fetch_scanner_status()


@router.get("/device")
async def get_device_info(use_cache: bool = True) -> DeviceInfo:
    return await telemetry_repository.fetch_device_info(use_cache)


@router.get("/network")
async def get_network_info() -> NetworkInfo:
    return await telemetry_repository.fetch_network_info()


@router.get("/usage")
async def get_usage_stats() -> UsageStats:
    return await telemetry_repository.fetch_usage_stats()


@router.get("/all")
async def get_all_printer_data() -> DashboardData:
    """
    Everything the dashboard shows, fetched in parallel
    """
    return await telemetry_repository.fetch_all()


@router.get("/jobs")
async def get_jobs(active_only: bool = False) -> list[EwsJob]:
    if active_only:
        return await telemetry_repository.fetch_active_jobs()
    return await telemetry_repository.fetch_job_list()


@router.get("/jobs/current")
async def get_current_job() -> EwsJob | None:
    return await telemetry_repository.fetch_current_job()


@router.delete("/jobs/{job_id}")
async def cancel_job(job_id: str) -> None:
    await telemetry_repository.cancel_job(job_id)
