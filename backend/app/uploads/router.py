"""FastAPI router for upload endpoints.

Endpoints:
    POST /api/upload: Upload one image (JPG, PNG, WebP, GIF; max 5 MB)
    POST /api/upload/document: Upload one document (PDF, DOC, DOCX, XLS, XLSX; max 20 MB)
    POST /api/upload/multiple: Upload several images at once
    GET /uploads/{stored_name}: Serve a stored file

Rejected uploads return 400 with ``{"error": reason}``. Files rejected in a
bulk upload are left out of the response instead.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, File, UploadFile
from fastapi.responses import FileResponse, JSONResponse
from starlette.concurrency import run_in_threadpool

from .policy import document_format
from .schemas import (
    DocumentUploadResponse,
    MultipleUploadResponse,
    UploadPurpose,
    UploadRequest,
    UploadResponse,
)
from .service import StorageFailure, UploadRejected, UploadStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/upload", tags=["upload"])


# ---------------------------------------------------------------------------
# Store singleton
# ---------------------------------------------------------------------------

_store: Optional[UploadStore] = None


def get_upload_store() -> Optional[UploadStore]:
    """Return the global UploadStore, or None if not configured."""
    return _store


def set_upload_store(store: Optional[UploadStore]) -> None:
    """Set (or clear) the global UploadStore."""
    global _store
    _store = store


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def _store_unavailable() -> JSONResponse:
    logger.warning("[upload] Upload store not configured, returning 503")
    return _error("Penyimpanan file belum dikonfigurasi", 503)


async def _to_request(
    file: UploadFile, purpose: UploadPurpose, max_bytes: int
) -> UploadRequest:
    """Read at most one byte past *max_bytes* from *file*.

    An oversized body is cut off there; its reported size stays above the
    limit so validation rejects it without the rest ever being loaded.
    """
    content = await file.read(max_bytes + 1)
    return UploadRequest(
        original_name=file.filename or "",
        declared_mime=file.content_type or "",
        size_bytes=max(len(content), file.size or 0),
        content=content,
        purpose=purpose,
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("", response_model=UploadResponse)
async def upload_image(file: Optional[UploadFile] = File(None)):
    """Upload a single image.

    Returns:
        UploadResponse with the stored filename and its public URL
    """
    store = get_upload_store()
    if store is None:
        return _store_unavailable()
    if file is None:
        return _error("File tidak ditemukan", 400)

    request = await _to_request(
        file, UploadPurpose.IMAGE, store.policy_for(UploadPurpose.IMAGE).max_bytes
    )
    try:
        ref = await run_in_threadpool(store.store, request)
    except UploadRejected as e:
        logger.info("Image upload %r rejected: %s", request.original_name, e.code)
        return _error(e.reason, 400)
    except StorageFailure:
        logger.exception("Image upload error")
        return _error("Gagal mengunggah gambar", 500)

    return UploadResponse.from_ref(ref)


@router.post("/document", response_model=DocumentUploadResponse)
async def upload_document(file: Optional[UploadFile] = File(None)):
    """Upload a single document.

    The file goes through the full validation pipeline, including the
    double-extension and magic-byte checks.

    Returns:
        DocumentUploadResponse, which adds the normalized ``format``
    """
    store = get_upload_store()
    if store is None:
        return _store_unavailable()
    if file is None:
        return _error("File tidak ditemukan", 400)

    request = await _to_request(
        file, UploadPurpose.DOCUMENT, store.policy_for(UploadPurpose.DOCUMENT).max_bytes
    )
    try:
        ref = await run_in_threadpool(store.store, request)
    except UploadRejected as e:
        logger.info("Document upload %r rejected: %s", request.original_name, e.code)
        return _error(e.reason, 400)
    except StorageFailure:
        logger.exception("Document upload error")
        return _error("Gagal mengunggah dokumen", 500)

    return DocumentUploadResponse(
        filename=ref.stored_name,
        url=ref.public_path,
        size=ref.size_bytes,
        type=ref.declared_mime,
        format=document_format(request.original_name),
    )


@router.post("/multiple", response_model=MultipleUploadResponse)
async def upload_multiple(files: Optional[List[UploadFile]] = File(None)):
    """Upload several images in one request.

    Each file is validated on its own. Files that fail validation are
    skipped silently; ``count`` is the number actually stored.
    """
    store = get_upload_store()
    if store is None:
        return _store_unavailable()
    if not files:
        return _error("Tidak ada file yang dikirim", 400)

    max_bytes = store.policy_for(UploadPurpose.IMAGE).max_bytes
    refs = []
    # One file in memory at a time
    for file in files:
        request = await _to_request(file, UploadPurpose.IMAGE, max_bytes)
        try:
            refs.append(await run_in_threadpool(store.store, request))
        except UploadRejected as e:
            logger.info(
                "Skipped %r in bulk upload: %s (%s)",
                request.original_name,
                e.reason,
                e.code,
            )
        except StorageFailure:
            logger.exception("Multiple upload error")
            return _error("Gagal mengunggah file", 500)

    logger.info("Bulk upload stored %d of %d files", len(refs), len(files))

    return MultipleUploadResponse(
        files=[UploadResponse.from_ref(ref) for ref in refs],
        count=len(refs),
    )


# ---------------------------------------------------------------------------
# Serving stored files
# ---------------------------------------------------------------------------

files_router = APIRouter(prefix="/uploads", tags=["upload"])


@files_router.get("/{stored_name}")
async def get_uploaded_file(stored_name: str):
    """Serve a stored file by its generated name.

    Raises:
        404 if the name is unknown or does not point inside the upload root
    """
    store = get_upload_store()
    if store is None:
        return _store_unavailable()

    path = store.resolve(stored_name)
    if path is None:
        return _error("Not Found", 404)

    return FileResponse(path, headers={"X-Content-Type-Options": "nosniff"})
