from fastapi import APIRouter

from src.modules.copying.entity_models import CopyRequest, CopyState
from src.modules.copying.orchestrator import copy_orchestrator

router = APIRouter(prefix="/copy", tags=["Copy"])


@router.get("")
async def get_copy_state() -> CopyState:
    return copy_orchestrator.state


@router.post("")
async def start_copy(request: CopyRequest) -> CopyState:
    """
    Scan a page and print it. Returns when the copy is complete, failed or was cancelled.
    """
    return await copy_orchestrator.start_copy(request.copies, request.settings)


@router.post("/cancel")
async def cancel_copy() -> CopyState:
    return copy_orchestrator.cancel()
