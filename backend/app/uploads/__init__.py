"""File upload module for Wellness Hub.

Accepts images and documents from the admin dashboard, validates them against
a per-purpose policy and stores them in a flat upload directory served under
``/uploads/``.

Supported file types:
- Images: jpg, jpeg, png, webp, gif (max 5 MB)
- Documents: pdf, doc, docx, xls, xlsx (max 20 MB)

Executables, scripts, markup (including svg), archives and disk images are
always refused.
"""

from .policy import (
    BLOCKED_EXTENSIONS,
    DOCUMENT_POLICY,
    IMAGE_POLICY,
    MAGIC_SIGNATURES,
    UploadPolicy,
    detect_magic_type,
    validate_upload,
)
from .schemas import StoredFileRef, UploadPurpose, UploadRequest, ValidationVerdict
from .service import StorageFailure, UploadRejected, UploadStore

__all__ = [
    "BLOCKED_EXTENSIONS",
    "DOCUMENT_POLICY",
    "IMAGE_POLICY",
    "MAGIC_SIGNATURES",
    "StorageFailure",
    "StoredFileRef",
    "UploadPolicy",
    "UploadPurpose",
    "UploadRejected",
    "UploadRequest",
    "UploadStore",
    "ValidationVerdict",
    "detect_magic_type",
    "validate_upload",
]
