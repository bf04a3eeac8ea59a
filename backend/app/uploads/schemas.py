"""Pydantic schemas for the upload module.

This module defines the data models that flow through an upload:
- UploadPurpose: Which policy applies (image or document)
- UploadRequest: One untrusted file as received from the multipart parser
- ValidationVerdict: Outcome of running a request through a policy
- StoredFileRef: Where an accepted file ended up
- UploadResponse / DocumentUploadResponse / MultipleUploadResponse: API bodies

None of these are persisted. The stored file on disk is the only record of an
upload; its generated name is the only index.
"""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class UploadPurpose(str, Enum):
    """What an upload is for. Decides which policy table applies."""
    IMAGE = "image"
    DOCUMENT = "document"


class UploadRequest(BaseModel):
    """A single uploaded file, not yet trusted.

    Built per request from the multipart form and discarded after the
    response. ``size_bytes`` is what the parser reported; ``content`` is the
    body, which the router stops reading one byte past the policy limit.
    """
    model_config = ConfigDict(frozen=True)

    original_name: str = Field(..., description="Filename as sent by the client")
    declared_mime: str = Field("", description="Client-supplied MIME type (advisory)")
    size_bytes: int = Field(..., ge=0, description="File size in bytes")
    content: bytes = Field(..., repr=False, description="Raw file content")
    purpose: UploadPurpose = Field(..., description="Policy to validate against")

    @classmethod
    def from_bytes(
        cls,
        original_name: str,
        content: bytes,
        purpose: UploadPurpose,
        declared_mime: Optional[str] = None,
    ) -> "UploadRequest":
        """Build a request whose size is the length of *content*."""
        return cls(
            original_name=original_name,
            declared_mime=declared_mime or "",
            size_bytes=len(content),
            content=content,
            purpose=purpose,
        )


class ValidationVerdict(BaseModel):
    """Result of validating an UploadRequest.

    Attributes:
        accepted: Whether the file may be stored
        code: Stable machine-readable rejection code (None if accepted)
        reason: User-facing rejection message (None if accepted)
        detected_format: Signature family found in the content (None if rejected)
    """
    accepted: bool
    code: Optional[str] = None
    reason: Optional[str] = None
    detected_format: Optional[str] = None

    @classmethod
    def accept(cls, detected_format: str) -> "ValidationVerdict":
        return cls(accepted=True, detected_format=detected_format)

    @classmethod
    def reject(cls, code: str, reason: str) -> "ValidationVerdict":
        return cls(accepted=False, code=code, reason=reason)


class StoredFileRef(BaseModel):
    """Reference to a file written under the upload root."""
    stored_name: str = Field(..., description="Generated filename on disk")
    public_path: str = Field(..., description="URL path the file is served from")
    size_bytes: int = Field(..., description="File size in bytes")
    declared_mime: str = Field("", description="MIME type the client declared")
    detected_format: Optional[str] = Field(None, description="Signature family of the content")


class UploadResponse(BaseModel):
    """Response after a successful single-file upload."""
    success: bool = True
    filename: str = Field(..., description="Stored filename")
    url: str = Field(..., description="Public URL path of the file")
    size: int = Field(..., description="File size in bytes")
    type: str = Field(..., description="MIME type declared by the client")

    @classmethod
    def from_ref(cls, ref: StoredFileRef) -> "UploadResponse":
        return cls(
            filename=ref.stored_name,
            url=ref.public_path,
            size=ref.size_bytes,
            type=ref.declared_mime,
        )


class DocumentUploadResponse(UploadResponse):
    """Response after a successful document upload."""
    format: str = Field(..., description="Normalized document format (PDF, DOC, DOCX, XLSX)")


class MultipleUploadResponse(BaseModel):
    """Response after a bulk image upload.

    Only the files that were stored are listed; rejected files are omitted.
    """
    success: bool = True
    files: List[UploadResponse] = Field(default_factory=list)
    count: int = 0
