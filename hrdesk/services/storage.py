"""Local file storage for uploads, fulfillment documents and generated files.

Only references (key, url) are persisted in the database; bytes live under
``storage_root``.
"""

import logging
import mimetypes
import uuid
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import BinaryIO, Iterable, Optional

from slugify import slugify

from hrdesk.core.config import get_settings
from hrdesk.core.workflow.errors import ValidationError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


@dataclass
class StoredFile:
    """Reference to a stored object."""
    key: str
    url: str
    original_filename: str
    content_type: Optional[str]
    size_bytes: int

    def to_dict(self) -> dict:
        return asdict(self)


def _format_size(size: int) -> str:
    if size >= 1024 * 1024:
        return f"{size / (1024 * 1024):.0f} MB"
    return f"{size / 1024:.0f} KB"


class LocalFileStorage:
    """
    Stores files on the local filesystem.

    Args:
        root: Directory all keys are relative to
        base_url: Public URL prefix that maps to ``root``
        max_bytes: Default upload size limit
        allowed_extensions: Lower-case extensions without the dot
    """

    def __init__(
        self,
        root: str,
        base_url: str = "/files",
        max_bytes: Optional[int] = None,
        allowed_extensions: Optional[Iterable[str]] = None,
    ):
        self.root = Path(root).resolve()
        self.base_url = base_url.rstrip("/")
        self.max_bytes = max_bytes
        self.allowed_extensions = {e.lower().lstrip(".") for e in (allowed_extensions or [])}

    @classmethod
    def from_settings(cls, settings=None) -> "LocalFileStorage":
        settings = settings or get_settings()
        return cls(
            root=settings.storage_root,
            base_url=settings.storage_base_url,
            max_bytes=settings.max_upload_bytes,
            allowed_extensions=settings.allowed_upload_extensions_list,
        )

    def path(self, key: str) -> Path:
        """Absolute path of a key; refuses keys that escape the root."""
        candidate = (self.root / key).resolve()
        if candidate != self.root and self.root not in candidate.parents:
            raise ValueError(f"Invalid storage key: {key}")
        return candidate

    def url(self, key: str) -> str:
        return f"{self.base_url}/{key}"

    def exists(self, key: str) -> bool:
        try:
            return self.path(key).is_file()
        except ValueError:
            return False

    def validate_name(self, filename: Optional[str]) -> None:
        if not filename:
            raise ValidationError(errors={"file": "The file must have a name."})
        if self.allowed_extensions:
            ext = Path(filename).suffix.lower().lstrip(".")
            if ext not in self.allowed_extensions:
                allowed = ", ".join(sorted(self.allowed_extensions))
                raise ValidationError(errors={"file": f"The file must be a file of type: {allowed}."})

    def _read_limited(self, stream: BinaryIO, limit: Optional[int]) -> bytes:
        chunks = []
        total = 0
        while True:
            chunk = stream.read(CHUNK_SIZE)
            if not chunk:
                break
            total += len(chunk)
            if limit is not None and total > limit:
                raise ValidationError(errors={"file": f"The file may not be greater than {_format_size(limit)}."})
            chunks.append(chunk)
        return b"".join(chunks)

    def _make_key(self, prefix: str, filename: str) -> str:
        path = Path(filename)
        stem = slugify(path.stem) or "file"
        ext = path.suffix.lower()
        return f"{prefix.strip('/')}/{uuid.uuid4().hex}/{stem}{ext}"

    def save(self, upload, prefix: str = "uploads", max_bytes: Optional[int] = None) -> StoredFile:
        """
        Validate and store an uploaded file.

        ``upload`` is anything shaped like FastAPI's UploadFile: ``filename``,
        ``content_type`` and a binary ``file``. Nothing is written unless the
        name and size checks pass.

        Raises:
            ValidationError: bad extension or file too large
        """
        filename = getattr(upload, "filename", None)
        self.validate_name(filename)
        limit = max_bytes if max_bytes is not None else self.max_bytes
        data = self._read_limited(upload.file, limit)
        if not data:
            raise ValidationError(errors={"file": "The file is empty."})
        return self.save_bytes(data, filename, getattr(upload, "content_type", None), prefix)

    def save_bytes(self, data: bytes, filename: str, content_type: Optional[str] = None,
                   prefix: str = "generated") -> StoredFile:
        key = self._make_key(prefix, filename)
        target = self.path(key)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

        content_type = content_type or mimetypes.guess_type(filename)[0] or "application/octet-stream"
        logger.info(f"Stored {key} ({len(data)} bytes)")
        return StoredFile(
            key=key,
            url=self.url(key),
            original_filename=filename,
            content_type=content_type,
            size_bytes=len(data),
        )

    def open(self, key: str) -> BinaryIO:
        """Open a stored object for reading."""
        path = self.path(key)
        if not path.is_file():
            raise FileNotFoundError(key)
        return path.open("rb")

    def delete(self, key: str) -> bool:
        try:
            path = self.path(key)
        except ValueError:
            return False
        if not path.is_file():
            return False
        path.unlink()
        logger.info(f"Deleted stored file {key}")
        return True
