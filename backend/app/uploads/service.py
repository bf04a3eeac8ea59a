"""Upload store for Wellness Hub.

Validates uploads against their purpose's policy and writes accepted files to
a flat directory:

    {upload_root}/{sanitized-base}-{unix-millis}-{token}{.ext}

The filename is the only record of an upload; there is no metadata sidecar.
Writes are atomic: bytes go to a hidden temporary file in the same directory
which is linked onto the final name only once fully flushed to disk. Linking
claims the name exclusively; a name that already exists is never replaced.
"""
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from .naming import generate_stored_name
from .policy import DOCUMENT_POLICY, IMAGE_POLICY, UploadPolicy, validate_upload
from .schemas import StoredFileRef, UploadPurpose, UploadRequest, ValidationVerdict

logger = logging.getLogger(__name__)

# Attempts at finding an unused name before giving up
MAX_NAME_ATTEMPTS = 5

TEMP_PREFIX = ".upload-"
TEMP_SUFFIX = ".part"
FILE_MODE = 0o644


class UploadRejected(ValueError):
    """The file failed validation. Safe to show ``reason`` to the client."""

    def __init__(self, verdict: ValidationVerdict):
        self.verdict = verdict
        self.code = verdict.code
        self.reason = verdict.reason or "File ditolak"
        super().__init__(self.reason)


class StorageFailure(RuntimeError):
    """The upload root could not be created or the file could not be written."""


class UploadStore:
    """Validate-then-write store rooted at a single directory.

    Attributes:
        root: Directory files are written to
        public_prefix: URL path prefix the root is served under
        policies: Policy per upload purpose
    """

    def __init__(
        self,
        root: Union[str, Path],
        public_prefix: str = "/uploads",
        policies: Optional[Dict[UploadPurpose, UploadPolicy]] = None,
    ):
        self.root = Path(root)
        self.public_prefix = "/" + public_prefix.strip("/")
        self.policies = policies or {
            UploadPurpose.IMAGE: IMAGE_POLICY,
            UploadPurpose.DOCUMENT: DOCUMENT_POLICY,
        }
        self.ensure_root()

    def ensure_root(self) -> None:
        """Ensure the upload directory exists. Safe to call repeatedly."""
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Cannot create upload directory %s: %s", self.root, e)
            raise StorageFailure(f"Cannot create upload directory {self.root}") from e

    def policy_for(self, purpose: UploadPurpose) -> UploadPolicy:
        return self.policies[purpose]

    def validate(self, request: UploadRequest) -> ValidationVerdict:
        """Validate *request* against the policy for its purpose. No side effects."""
        return validate_upload(request, self.policy_for(request.purpose))

    def store(self, request: UploadRequest) -> StoredFileRef:
        """Validate and persist a single upload.

        Args:
            request: The uploaded file

        Returns:
            StoredFileRef for the written file

        Raises:
            UploadRejected: If the file fails validation (nothing is written)
            StorageFailure: If the file could not be written
        """
        verdict = self.validate(request)
        if not verdict.accepted:
            raise UploadRejected(verdict)

        stored_name = self._write(request.original_name, request.content)

        logger.info(
            "Stored %s upload %r as %s (%d bytes, %s)",
            request.purpose.value,
            request.original_name,
            stored_name,
            request.size_bytes,
            verdict.detected_format,
        )

        return StoredFileRef(
            stored_name=stored_name,
            public_path=f"{self.public_prefix}/{stored_name}",
            size_bytes=request.size_bytes,
            declared_mime=request.declared_mime,
            detected_format=verdict.detected_format,
        )

    def store_many(self, requests: Iterable[UploadRequest]) -> List[StoredFileRef]:
        """Store each request independently, skipping the ones that are rejected.

        Rejections are logged but not reported; the result lists only the
        files that were written. Storage failures still propagate.
        """
        stored: List[StoredFileRef] = []
        for request in requests:
            try:
                stored.append(self.store(request))
            except UploadRejected as e:
                logger.info(
                    "Skipped %r in bulk upload: %s (%s)",
                    request.original_name,
                    e.reason,
                    e.code,
                )
        return stored

    def resolve(self, stored_name: str) -> Optional[Path]:
        """Path of a stored file, or None if missing or outside the root."""
        if not stored_name or stored_name != Path(stored_name).name:
            return None
        if stored_name.startswith("."):
            return None
        path = self.root / stored_name
        if not path.is_file():
            return None
        return path

    def _write(self, original_name: str, content: bytes) -> str:
        """Atomically write *content* under a fresh generated name.

        The fully written temp file is hard-linked onto the final name;
        ``os.link`` fails if the name is taken, so an existing file is never
        replaced, even by a concurrent upload.
        """
        tmp_path: Optional[str] = None
        try:
            fd, tmp_path = tempfile.mkstemp(
                prefix=TEMP_PREFIX, suffix=TEMP_SUFFIX, dir=self.root
            )
            with os.fdopen(fd, "wb") as fh:
                fh.write(content)
                fh.flush()
                os.fsync(fh.fileno())
            # mkstemp creates 0600
            os.chmod(tmp_path, FILE_MODE)

            for _ in range(MAX_NAME_ATTEMPTS):
                stored_name = generate_stored_name(original_name)
                try:
                    os.link(tmp_path, self.root / stored_name)
                except FileExistsError:
                    logger.debug("Stored name %s already taken, retrying", stored_name)
                    continue
                return stored_name
        except OSError as e:
            logger.exception("Failed to write upload %r", original_name)
            raise StorageFailure(f"Failed to write {original_name!r}") from e
        finally:
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except FileNotFoundError:
                    pass

        raise StorageFailure(f"Could not find an unused name for {original_name!r}")
