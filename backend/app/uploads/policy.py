"""Upload validation policy.

This module decides whether an uploaded file may be stored. It is a pure
function of the file and the policy: no I/O, no state shared between uploads.

Checks run in order and the first failure wins:
    1. Size: non-empty and under the policy maximum
    2. Extension: the name must have one
    3. Deny-list: executables, scripts, web-active formats, archives and disk
       images are refused for every purpose, before any allow-list is consulted
    4. Allow-list: the extension must be one the purpose accepts
    5. Double extension (documents only): ``x.php.pdf`` is refused
    6. Declared MIME: advisory; empty or ``application/octet-stream`` passes,
       anything else must be in the policy's MIME set
    7. Magic bytes: the first 8 bytes must match a known signature, and that
       signature must be one the extension may legitimately carry

All tables are plain data so new formats only need new rows.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, FrozenSet, Mapping, Optional, Tuple

from .naming import inner_extension, split_name
from .schemas import UploadPurpose, UploadRequest, ValidationVerdict

if TYPE_CHECKING:
    from app.config import UploadConfig


# =============================================================================
# Static tables
# =============================================================================

MB = 1024 * 1024

GENERIC_MIME = "application/octet-stream"

# Bytes inspected for signature detection
MAGIC_HEADER_LENGTH = 8

BLOCKED_EXTENSIONS: FrozenSet[str] = frozenset({
    # executables and libraries
    ".exe", ".com", ".msi", ".msp", ".dll", ".so", ".dylib", ".scr", ".pif",
    # shell and interpreter scripts
    ".bat", ".cmd", ".sh", ".bash", ".zsh", ".fish",
    ".ps1", ".psm1", ".psd1", ".vbs", ".vbe", ".js", ".jse", ".wsf", ".wsh",
    ".reg", ".hta", ".jar", ".class",
    ".py", ".pyc", ".pyo", ".rb", ".pl", ".perl",
    # server-side web
    ".php", ".php3", ".php4", ".php5", ".php7", ".phtml",
    ".asp", ".aspx", ".ashx", ".asmx", ".jsp", ".jspx", ".cgi",
    # browser-active markup (SVG can embed script)
    ".svg", ".html", ".htm", ".xhtml", ".xml",
    # shortcuts and disk images
    ".lnk", ".url", ".inf", ".iso", ".img", ".dmg",
    # archives
    ".zip", ".rar", ".7z", ".tar", ".gz", ".bz2", ".xz",
})

# Signature families
PDF = "pdf"
OFFICE_LEGACY = "office-legacy"  # OLE2 compound file (DOC, XLS)
OFFICE_MODERN = "office-modern"  # ZIP container (DOCX, XLSX)
JPEG = "jpeg"
PNG = "png"
GIF = "gif"
WEBP = "webp"  # RIFF container

MAGIC_SIGNATURES: Tuple[Tuple[bytes, str], ...] = (
    (bytes.fromhex("25504446"), PDF),            # %PDF
    (bytes.fromhex("D0CF11E0"), OFFICE_LEGACY),
    (bytes.fromhex("504B0304"), OFFICE_MODERN),  # PK\x03\x04
    (bytes.fromhex("FFD8FF"), JPEG),
    (bytes.fromhex("89504E47"), PNG),            # \x89PNG
    (bytes.fromhex("47494638"), GIF),            # GIF87a / GIF89a
    (bytes.fromhex("52494646"), WEBP),           # RIFF
)

IMAGE_MIMES: FrozenSet[str] = frozenset({
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/gif",
})

DOCUMENT_MIMES: FrozenSet[str] = frozenset({
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
})

IMAGE_EXTENSION_FAMILIES: Mapping[str, FrozenSet[str]] = {
    ".jpg": frozenset({JPEG}),
    ".jpeg": frozenset({JPEG}),
    ".png": frozenset({PNG}),
    ".webp": frozenset({WEBP}),
    ".gif": frozenset({GIF}),
}

# Some .doc/.xls files are saved in the newer ZIP container
DOCUMENT_EXTENSION_FAMILIES: Mapping[str, FrozenSet[str]] = {
    ".pdf": frozenset({PDF}),
    ".doc": frozenset({OFFICE_LEGACY, OFFICE_MODERN}),
    ".xls": frozenset({OFFICE_LEGACY, OFFICE_MODERN}),
    ".docx": frozenset({OFFICE_MODERN}),
    ".xlsx": frozenset({OFFICE_MODERN}),
}

# Extension (upper-case, no dot) -> format reported to the dashboard
DOCUMENT_FORMATS: Dict[str, str] = {
    "PDF": "PDF",
    "DOC": "DOC",
    "DOCX": "DOCX",
    "XLS": "XLSX",
    "XLSX": "XLSX",
}


# =============================================================================
# Policy
# =============================================================================


@dataclass(frozen=True)
class UploadPolicy:
    """Limits and allow-lists for one upload purpose.

    Attributes:
        purpose: The purpose this policy applies to
        max_bytes: Largest accepted file
        extension_families: Allowed extension -> signature families it may carry
        allowed_mimes: Declared MIME types accepted when one is supplied
        check_double_extension: Refuse names whose inner extension is blocked
        allowed_label: Human-readable list of accepted formats for messages
    """
    purpose: UploadPurpose
    max_bytes: int
    extension_families: Mapping[str, FrozenSet[str]]
    allowed_mimes: FrozenSet[str]
    check_double_extension: bool
    allowed_label: str

    @property
    def allowed_extensions(self) -> FrozenSet[str]:
        return frozenset(self.extension_families)

    @property
    def max_megabytes(self) -> int:
        return self.max_bytes // MB


def image_policy(max_bytes: int = 5 * MB) -> UploadPolicy:
    return UploadPolicy(
        purpose=UploadPurpose.IMAGE,
        max_bytes=max_bytes,
        extension_families=IMAGE_EXTENSION_FAMILIES,
        allowed_mimes=IMAGE_MIMES,
        check_double_extension=False,
        allowed_label="JPG, PNG, WebP, GIF",
    )


def document_policy(max_bytes: int = 20 * MB) -> UploadPolicy:
    return UploadPolicy(
        purpose=UploadPurpose.DOCUMENT,
        max_bytes=max_bytes,
        extension_families=DOCUMENT_EXTENSION_FAMILIES,
        allowed_mimes=DOCUMENT_MIMES,
        check_double_extension=True,
        allowed_label="PDF, DOC, DOCX, XLS, XLSX",
    )


IMAGE_POLICY = image_policy()
DOCUMENT_POLICY = document_policy()


def policies_from_config(config: UploadConfig) -> Dict[UploadPurpose, UploadPolicy]:
    """Build the policy table with size limits taken from settings."""
    return {
        UploadPurpose.IMAGE: image_policy(config.image_max_bytes),
        UploadPurpose.DOCUMENT: document_policy(config.document_max_bytes),
    }


# =============================================================================
# Checks
# =============================================================================


def detect_magic_type(content: bytes) -> Optional[str]:
    """Return the signature family of *content*, or None if unrecognized.

    Examples:
        >>> detect_magic_type(b"%PDF-1.7\\n")
        'pdf'
        >>> detect_magic_type(b"hello") is None
        True
    """
    header = bytes(content[:MAGIC_HEADER_LENGTH])
    for signature, family in MAGIC_SIGNATURES:
        if header.startswith(signature):
            return family
    return None


def normalize_mime(mime: Optional[str]) -> str:
    """Lower-cased MIME type without parameters (``; charset=...``)."""
    if not mime:
        return ""
    return mime.split(";", 1)[0].strip().lower()


def document_format(original_name: str) -> str:
    """Format label reported for a stored document (``XLS`` reports as ``XLSX``)."""
    _, ext = split_name(original_name)
    raw = ext.lstrip(".").upper()
    return DOCUMENT_FORMATS.get(raw, raw)


def validate_upload(request: UploadRequest, policy: UploadPolicy) -> ValidationVerdict:
    """Run *request* through *policy*.

    Args:
        request: The uploaded file
        policy: Policy for the file's purpose

    Returns:
        An accepted verdict carrying the detected signature family, or a
        rejected verdict carrying the first failing check's code and reason.
    """
    # Size
    if request.size_bytes > policy.max_bytes:
        return ValidationVerdict.reject(
            "too_large",
            f"Ukuran file melebihi batas maksimal {policy.max_megabytes} MB",
        )
    if request.size_bytes == 0 or not request.content:
        return ValidationVerdict.reject("empty", "File tidak boleh kosong")

    # Extension
    _, ext = split_name(request.original_name)
    if not ext:
        return ValidationVerdict.reject("missing_extension", "File harus memiliki ekstensi")

    if ext in BLOCKED_EXTENSIONS:
        return ValidationVerdict.reject(
            "blocked_extension",
            f'Ekstensi file "{ext}" tidak diizinkan karena alasan keamanan',
        )

    if ext not in policy.extension_families:
        return ValidationVerdict.reject(
            "unsupported_extension",
            f'Tipe file "{ext}" tidak didukung. File yang diizinkan: {policy.allowed_label}',
        )

    if policy.check_double_extension:
        inner = inner_extension(request.original_name)
        if inner and inner in BLOCKED_EXTENSIONS:
            return ValidationVerdict.reject(
                "double_extension",
                "Nama file mencurigakan (ekstensi ganda terdeteksi)",
            )

    # Declared MIME
    mime = normalize_mime(request.declared_mime)
    if mime and mime != GENERIC_MIME and mime not in policy.allowed_mimes:
        return ValidationVerdict.reject(
            "mime_mismatch",
            f'Tipe MIME "{request.declared_mime}" tidak sesuai untuk '
            f'{"dokumen" if policy.purpose is UploadPurpose.DOCUMENT else "gambar"}',
        )

    # Content
    detected = detect_magic_type(request.content)
    if detected is None:
        return ValidationVerdict.reject(
            "unknown_format",
            "Format file tidak dapat dikenali. Pastikan file asli dan tidak rusak",
        )
    if detected not in policy.extension_families[ext]:
        return ValidationVerdict.reject(
            "content_mismatch",
            "Isi file tidak sesuai dengan ekstensinya. File mungkin telah dimanipulasi",
        )

    return ValidationVerdict.accept(detected)
