"""Tests for local file storage."""

import pytest

from hrdesk.core.workflow.errors import ValidationError
from hrdesk.services.storage import LocalFileStorage

from tests.factories import FakeUpload


class TestLocalFileStorage:

    def test_save_upload(self, storage):
        stored = storage.save(FakeUpload("Signed Certificate.PDF", b"%PDF data"), prefix="fulfillments/abc")

        assert stored.key.startswith("fulfillments/abc/")
        assert stored.key.endswith("/signed-certificate.pdf")
        assert stored.url == f"/files/{stored.key}"
        assert stored.original_filename == "Signed Certificate.PDF"
        assert stored.content_type == "application/pdf"
        assert stored.size_bytes == 9
        assert storage.path(stored.key).read_bytes() == b"%PDF data"

    def test_same_name_gets_distinct_keys(self, storage):
        first = storage.save(FakeUpload("a.pdf"), prefix="x")
        second = storage.save(FakeUpload("a.pdf"), prefix="x")
        assert first.key != second.key

    def test_rejects_extension(self, storage):
        with pytest.raises(ValidationError) as exc_info:
            storage.save(FakeUpload("run.sh", b"#!/bin/sh"))
        assert exc_info.value.errors["file"] == "The file must be a file of type: pdf, png, txt."

    def test_rejects_missing_name(self, storage):
        with pytest.raises(ValidationError):
            storage.save(FakeUpload(""))

    def test_rejects_empty_file(self, storage):
        with pytest.raises(ValidationError) as exc_info:
            storage.save(FakeUpload("a.pdf", b""))
        assert exc_info.value.errors["file"] == "The file is empty."

    def test_size_limit_override(self, storage):
        with pytest.raises(ValidationError) as exc_info:
            storage.save(FakeUpload("a.pdf", b"x" * 2048), max_bytes=1024)
        assert exc_info.value.errors["file"] == "The file may not be greater than 1 KB."

    def test_key_traversal_refused(self, storage):
        with pytest.raises(ValueError):
            storage.path("../outside.txt")
        assert not storage.exists("../outside.txt")
        assert not storage.delete("../../etc/passwd")

    def test_open_and_delete(self, storage):
        stored = storage.save_bytes(b"hello", "note.txt", prefix="documents/1")
        with storage.open(stored.key) as fh:
            assert fh.read() == b"hello"

        assert storage.delete(stored.key)
        assert not storage.exists(stored.key)
        assert not storage.delete(stored.key)
        with pytest.raises(FileNotFoundError):
            storage.open(stored.key)

    def test_save_bytes_guesses_content_type(self, storage):
        assert storage.save_bytes(b"x", "note.txt").content_type == "text/plain"

    def test_from_settings(self, tmp_path):
        from hrdesk.core.config import Settings

        settings = Settings(storage_root=str(tmp_path), allowed_upload_extensions="PDF, .docx")
        storage = LocalFileStorage.from_settings(settings)
        assert storage.root == tmp_path.resolve()
        assert storage.allowed_extensions == {"pdf", "docx"}
        assert storage.max_bytes == settings.max_upload_bytes
