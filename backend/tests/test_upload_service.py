"""Tests for UploadStore: validate-then-write storage."""
import os
from unittest.mock import patch

import pytest

from app.uploads.policy import MB, document_policy, image_policy
from app.uploads.schemas import UploadPurpose, UploadRequest
from app.uploads.service import StorageFailure, UploadRejected, UploadStore


PDF_BYTES = b"%PDF-1.4\n" + b"0123456789" * 20
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x01" * 64
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x02" * 64


@pytest.fixture
def store(tmp_path):
    return UploadStore(root=tmp_path / "uploads")


def pdf(name="laporan.pdf", content=PDF_BYTES, mime="application/pdf"):
    return UploadRequest.from_bytes(name, content, UploadPurpose.DOCUMENT, mime)


def png(name="foto.png", content=PNG_BYTES, mime="image/png"):
    return UploadRequest.from_bytes(name, content, UploadPurpose.IMAGE, mime)


def stored_files(store):
    return sorted(p.name for p in store.root.iterdir())


class TestUploadStoreInit:
    def test_creates_root(self, tmp_path):
        root = tmp_path / "a" / "b" / "uploads"
        UploadStore(root=root)
        assert root.is_dir()

    def test_ensure_root_is_idempotent(self, store):
        store.ensure_root()
        store.ensure_root()
        assert store.root.is_dir()

    def test_root_creation_failure(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x")
        with pytest.raises(StorageFailure):
            UploadStore(root=blocker / "uploads")

    def test_public_prefix_normalized(self, tmp_path):
        store = UploadStore(root=tmp_path, public_prefix="files/")
        assert store.public_prefix == "/files"


class TestStore:
    def test_store_writes_exact_bytes(self, store):
        ref = store.store(pdf())
        assert (store.root / ref.stored_name).read_bytes() == PDF_BYTES

    def test_store_returns_reference(self, store):
        ref = store.store(pdf())
        assert ref.public_path == f"/uploads/{ref.stored_name}"
        assert ref.size_bytes == len(PDF_BYTES)
        assert ref.declared_mime == "application/pdf"
        assert ref.detected_format == "pdf"
        assert ref.stored_name.startswith("laporan-")
        assert ref.stored_name.endswith(".pdf")

    def test_same_input_twice_gives_two_files(self, store):
        first = store.store(pdf())
        second = store.store(pdf())
        assert first.stored_name != second.stored_name
        assert len(stored_files(store)) == 2

    def test_rejected_upload_writes_nothing(self, store):
        with pytest.raises(UploadRejected) as exc_info:
            store.store(pdf(name="laporan.pdf", content=JPEG_BYTES))
        assert exc_info.value.code == "content_mismatch"
        assert stored_files(store) == []

    def test_rejection_is_value_error(self, store):
        with pytest.raises(ValueError):
            store.store(pdf(name="evil.exe"))

    def test_rejection_carries_reason(self, store):
        with pytest.raises(UploadRejected) as exc_info:
            store.store(pdf(content=b""))
        assert str(exc_info.value) == "File tidak boleh kosong"
        assert exc_info.value.verdict.accepted is False

    def test_policy_by_purpose(self, store):
        """A PDF sent as an image is judged by the image policy."""
        request = UploadRequest.from_bytes("scan.pdf", PDF_BYTES, UploadPurpose.IMAGE)
        with pytest.raises(UploadRejected) as exc_info:
            store.store(request)
        assert exc_info.value.code == "unsupported_extension"

    def test_custom_policies(self, tmp_path):
        store = UploadStore(
            root=tmp_path,
            policies={
                UploadPurpose.IMAGE: image_policy(max_bytes=16),
                UploadPurpose.DOCUMENT: document_policy(max_bytes=MB),
            },
        )
        with pytest.raises(UploadRejected) as exc_info:
            store.store(png())
        assert exc_info.value.code == "too_large"

    def test_existing_name_never_overwritten(self, store):
        """A taken name is regenerated rather than replaced."""
        existing = store.root / "foto-1-aaaaaa.png"
        existing.write_bytes(b"original")
        names = iter(["foto-1-aaaaaa.png", "foto-1-bbbbbb.png"])
        with patch("app.uploads.service.generate_stored_name", lambda _: next(names)):
            ref = store.store(png())
        assert ref.stored_name == "foto-1-bbbbbb.png"
        assert existing.read_bytes() == b"original"

    def test_name_taken_between_generation_and_write(self, store):
        """A file that appears under the chosen name just before the write survives."""
        names = iter(["foto-1-aaaaaa.png", "foto-1-bbbbbb.png"])

        def racing_name(_):
            name = next(names)
            if name == "foto-1-aaaaaa.png":
                (store.root / name).write_bytes(b"concurrent upload")
            return name

        with patch("app.uploads.service.generate_stored_name", racing_name):
            ref = store.store(png())

        assert ref.stored_name == "foto-1-bbbbbb.png"
        assert (store.root / "foto-1-aaaaaa.png").read_bytes() == b"concurrent upload"
        assert (store.root / "foto-1-bbbbbb.png").read_bytes() == PNG_BYTES
        assert stored_files(store) == ["foto-1-aaaaaa.png", "foto-1-bbbbbb.png"]

    def test_gives_up_when_no_name_is_free(self, store):
        (store.root / "taken.png").write_bytes(b"x")
        with patch("app.uploads.service.generate_stored_name", lambda _: "taken.png"):
            with pytest.raises(StorageFailure):
                store.store(png())
        assert (store.root / "taken.png").read_bytes() == b"x"
        assert stored_files(store) == ["taken.png"]


class TestAtomicWrite:
    def test_failed_write_leaves_no_file(self, store):
        with patch("app.uploads.service.os.link", side_effect=OSError("disk full")):
            with pytest.raises(StorageFailure):
                store.store(pdf())
        assert stored_files(store) == []

    def test_failed_fsync_leaves_no_file(self, store):
        with patch("app.uploads.service.os.fsync", side_effect=OSError("I/O error")):
            with pytest.raises(StorageFailure):
                store.store(pdf())
        assert stored_files(store) == []

    def test_no_temp_files_after_success(self, store):
        ref = store.store(pdf())
        assert stored_files(store) == [ref.stored_name]

    @pytest.mark.skipif(os.name != "posix", reason="POSIX permissions")
    def test_stored_file_is_world_readable(self, store):
        ref = store.store(pdf())
        mode = (store.root / ref.stored_name).stat().st_mode & 0o777
        assert mode == 0o644


class TestStoreMany:
    def test_skips_rejected_files(self, store):
        big = png(name="besar.png", content=PNG_BYTES + b"\x00" * (5 * MB))
        refs = store.store_many([png(name="a.png"), big, png(name="b.png")])
        assert len(refs) == 2
        assert [r.stored_name.split("-")[0] for r in refs] == ["a", "b"]
        assert len(stored_files(store)) == 2

    def test_bulk_uses_full_validation(self, store):
        """Content that does not match its extension is skipped in bulk too."""
        refs = store.store_many([png(name="fake.png", content=JPEG_BYTES)])
        assert refs == []
        assert stored_files(store) == []

    def test_empty_input(self, store):
        assert store.store_many([]) == []

    def test_storage_failure_propagates(self, store):
        with patch("app.uploads.service.os.link", side_effect=OSError("disk full")):
            with pytest.raises(StorageFailure):
                store.store_many([png()])


class TestResolve:
    def test_resolves_stored_file(self, store):
        ref = store.store(png())
        assert store.resolve(ref.stored_name) == store.root / ref.stored_name

    def test_round_trip_is_byte_identical(self, store):
        ref = store.store(png())
        path = store.resolve(ref.public_path.rsplit("/", 1)[-1])
        assert path.read_bytes() == PNG_BYTES

    @pytest.mark.parametrize("name", ["", "../secret", "a/b.png", ".upload-x.part", "missing.png"])
    def test_rejects_invalid_or_missing(self, store, name):
        assert store.resolve(name) is None
