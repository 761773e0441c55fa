from fastapi import APIRouter, Form, UploadFile
from fastapi.exceptions import HTTPException
from pydantic import ValidationError

from src.api.logging_ import logger
from src.modules.printing.entity_models import PrintDocument, PrintJobProgress, PrintJobSubmission, PrintSettings
from src.modules.printing.print_flow import PrintFlowView, print_flow
from src.modules.printing.repository import printing_repository

router = APIRouter(prefix="/print", tags=["Print"])


async def _read_document(file: UploadFile) -> PrintDocument:
    content = await file.read()
    if not content:
        raise HTTPException(400, "Empty file")
    return PrintDocument(
        filename=file.filename or "document",
        content=content,
        content_type=file.content_type or "application/octet-stream",
    )


@router.post("", responses={400: {"description": "Empty file or bad settings"}})
async def submit_print_job(file: UploadFile, settings: str = Form("{}")) -> PrintJobSubmission:
    """
    Send the file straight to the printer. `settings` is a JSON encoded PrintSettings object.
    """
    try:
        options = PrintSettings.model_validate_json(settings)
    except ValidationError as e:
        raise HTTPException(400, str(e))
    document = await _read_document(file)
    submission = await printing_repository.submit_print_job(document, options)
    logger.info(f"Submitted {document.filename}: {submission}")
    return submission


@router.get("/jobs/{job_id}")
async def get_job_progress(job_id: int) -> PrintJobProgress:
    return await printing_repository.get_job_progress(job_id)


@router.delete("/jobs/{job_id}")
async def cancel_print_job(job_id: int) -> None:
    await printing_repository.cancel_print_job(job_id)


@router.get("/flow")
async def get_print_flow() -> PrintFlowView:
    return print_flow.view()


@router.post("/flow/file", responses={400: {"description": "Empty file"}})
async def select_print_file(file: UploadFile) -> PrintFlowView:
    """
    Pick the document to print. Ignored while a job is sending or printing.
    """
    print_flow.select_file(await _read_document(file))
    return print_flow.view()


@router.delete("/flow/file")
async def remove_print_file() -> PrintFlowView:
    print_flow.remove_file()
    return print_flow.view()


@router.post("/flow/start")
async def start_print_flow(settings: PrintSettings | None = None) -> PrintFlowView:
    """
    Submit the selected document. Progress is then polled in the background, read it with GET /print/flow.
    A rejected submission keeps the document selected and sets `submit_error`.
    """
    if settings is not None:
        print_flow.settings = settings
    await print_flow.start_print()
    return print_flow.view()


@router.post("/flow/cancel")
async def cancel_print_flow() -> PrintFlowView:
    print_flow.cancel()
    return print_flow.view()


@router.post("/flow/reset")
async def reset_print_flow() -> PrintFlowView:
    print_flow.reset()
    return print_flow.view()
