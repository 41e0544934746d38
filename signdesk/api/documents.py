import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.background import BackgroundTask

from signdesk.api.deps import get_db, get_pipeline, get_storage
from signdesk.core.errors import InputError, SigningError
from signdesk.models import SignStoredRequest
from signdesk.services.signer import SigningResult
from signdesk.services.signing_pipeline import SigningPipeline
from signdesk.storage.local import LocalStorage
from signdesk.storage.registry import get_document, mark_signed, register_document
from signdesk.storage.workspace import TempWorkspace
from signdesk.utils.file_utils import parse_signer_names

router = APIRouter(prefix="/api/docs", tags=["Documents"])

logger = logging.getLogger(__name__)

OUTCOME_HEADER = "X-Signing-Outcome"
MISSING_DOCUMENT = 'No file provided. Use form field "document".'


# ============ Helpers ============
def _require_document(document: Optional[UploadFile]) -> UploadFile:
    if document is None or not document.filename:
        raise InputError(MISSING_DOCUMENT)
    return document


def _layout(
    position: Optional[str] = None,
    margin_x: Optional[str] = None,
    margin_y: Optional[str] = None,
    text_size: Optional[str] = None,
) -> dict:
    return {"anchor": position, "margin_x": margin_x, "margin_y": margin_y, "text_size": text_size}


def _stream_result(workspace: TempWorkspace, result: SigningResult) -> FileResponse:
    """Stream the output file; temp files are removed once the body has been sent."""
    if not result.ok:
        raise SigningError("Signing failed")

    workspace.detach()
    return FileResponse(
        result.output_path,
        media_type="application/pdf",
        filename=workspace.download_name,
        headers={OUTCOME_HEADER: result.outcome.value},
        background=BackgroundTask(workspace.cleanup),
    )


# ============ Upload ============
@router.post("/upload", summary="Store an uploaded document and register it")
def upload_document(
    document: Optional[UploadFile] = File(None),
    storage: LocalStorage = Depends(get_storage),
    db: Session = Depends(get_db),
) -> dict:
    upload = _require_document(document)
    path = storage.save_upload(upload)
    try:
        record = register_document(db, path, upload.filename, upload.content_type)
    except SQLAlchemyError:
        path.unlink(missing_ok=True)
        raise
    logger.info("Registered upload %s as document %s", upload.filename, record.id)
    return {"id": record.id}


@router.post("/upload-public", summary="Store an upload where the static server can reach it")
def upload_public(
    document: Optional[UploadFile] = File(None),
    storage: LocalStorage = Depends(get_storage),
) -> dict:
    upload = _require_document(document)
    path = storage.save_upload(upload, public=True)
    return {"url": f"/uploads/{path.name}", "filename": path.name}


# ============ Direct signing ============
@router.post("/sign-direct", summary="Stamp the signer name, sign, and return the PDF")
def sign_direct(
    document: Optional[UploadFile] = File(None),
    signer_name: Optional[str] = Form(None, alias="signerName"),
    position: Optional[str] = Form(None),
    anchor: Optional[str] = Form(None),
    margin_x: Optional[str] = Form(None, alias="marginX"),
    margin_y: Optional[str] = Form(None, alias="marginY"),
    text_size: Optional[str] = Form(None, alias="textSize"),
    storage: LocalStorage = Depends(get_storage),
    pipeline: SigningPipeline = Depends(get_pipeline),
) -> FileResponse:
    upload = _require_document(document)
    names = [signer_name or pipeline.config.default_signer_name]
    layout = _layout(position or anchor, margin_x, margin_y, text_size)

    with storage.workspace(upload.filename) as workspace:
        result = pipeline.sign_direct(workspace, upload.file.read(), names, layout)
        logger.info("sign-direct %s: %s", upload.filename, result.outcome.value)
        return _stream_result(workspace, result)


@router.post("/sign-direct-multi", summary="Stamp several signer names as one block, sign, and return the PDF")
def sign_direct_multi(
    document: Optional[UploadFile] = File(None),
    signer_names: Optional[str] = Form(None, alias="signerNames"),
    signers: Optional[str] = Form(None),
    position: Optional[str] = Form(None),
    anchor: Optional[str] = Form(None),
    margin_x: Optional[str] = Form(None, alias="marginX"),
    margin_y: Optional[str] = Form(None, alias="marginY"),
    text_size: Optional[str] = Form(None, alias="textSize"),
    storage: LocalStorage = Depends(get_storage),
    pipeline: SigningPipeline = Depends(get_pipeline),
) -> FileResponse:
    upload = _require_document(document)
    names = parse_signer_names(signer_names or signers)
    layout = _layout(position or anchor, margin_x, margin_y, text_size)

    with storage.workspace(upload.filename) as workspace:
        result = pipeline.sign_direct(workspace, upload.file.read(), names, layout)
        logger.info("sign-direct-multi %s (%s signers): %s", upload.filename, len(names), result.outcome.value)
        return _stream_result(workspace, result)


@router.post("/sign-existing", summary="Add a signature to an already signed PDF with a PFX file")
@router.post("/sign-direct-pfx", summary="Stamp and sign a PDF with an uploaded PFX file")
def sign_direct_pfx(
    document: Optional[UploadFile] = File(None),
    pfx: Optional[UploadFile] = File(None),
    pfx_password: Optional[str] = Form(None, alias="pfxPassword"),
    signer_name: Optional[str] = Form(None, alias="signerName"),
    reason: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    position: Optional[str] = Form(None),
    text_size: Optional[str] = Form(None, alias="textSize"),
    storage: LocalStorage = Depends(get_storage),
    pipeline: SigningPipeline = Depends(get_pipeline),
) -> FileResponse:
    if document is None or not document.filename or pfx is None or not pfx_password:
        raise InputError("document, pfx, and pfxPassword are required")

    with storage.workspace(document.filename, credential=True) as workspace:
        result = pipeline.sign_with_credential(
            workspace,
            document.file.read(),
            pfx.file.read(),
            pfx_password,
            credential_name=pfx.filename,
            signer_name=signer_name,
            reason=reason,
            location=location,
            layout=_layout(position=position, text_size=text_size),
        )
        logger.info("sign-direct-pfx %s: %s", document.filename, result.outcome.value)
        return _stream_result(workspace, result)


# ============ Stored records ============
@router.post("/sign", summary="Sign a previously uploaded document in place")
def sign_stored(
    payload: Optional[SignStoredRequest] = None,
    pipeline: SigningPipeline = Depends(get_pipeline),
    db: Session = Depends(get_db),
) -> dict:
    if payload is None or payload.document_id is None:
        raise InputError("documentId is required")

    record = get_document(db, payload.document_id)
    result = pipeline.sign_stored(Path(record.path))
    if not result.ok:
        raise SigningError("Error signing document")

    mark_signed(db, record, result.output_path)
    logger.info("Document %s signed (%s)", record.id, result.outcome.value)
    return {
        "message": "Document signed successfully",
        "signedPath": str(result.output_path),
        "outcome": result.outcome.value,
    }
