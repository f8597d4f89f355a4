"""
Image upload validation and storage.

Submissions may arrive as multipart forms (optionally carrying one ``image``
file), urlencoded forms, or JSON. Files are checked for count, extension and
declared content type before being streamed into the upload directory under a
randomized name.
"""

import asyncio
import json
import logging
import os
import re
import secrets
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncIterator, BinaryIO, Dict, Iterable, List, Optional

from fastapi import Request
from starlette.datastructures import UploadFile

from ..config import Settings
from .errors import PayloadTooLargeError, UploadRejectedError, ValidationFailedError
from .security import client_ip

logger = logging.getLogger(__name__)

IMAGE_FIELD = "image"
MAX_FORM_FIELDS = 10
CHUNK_SIZE = 64 * 1024

MIME_TYPES_BY_EXTENSION: Dict[str, List[str]] = {
    ".jpg": ["image/jpeg"],
    ".jpeg": ["image/jpeg"],
    ".png": ["image/png"],
    ".gif": ["image/gif"],
}

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


class _FileTooLarge(Exception):
    pass


def split_extension(filename: str) -> tuple[str, str]:
    """Return (basename without extension, lowercased extension) of a client filename."""
    name = filename.replace("\\", "/").rsplit("/", 1)[-1]
    base, ext = os.path.splitext(name)
    return base, ext.lower()


def generate_stored_filename(original_filename: str) -> str:
    """
    Build ``<sanitized-base>-<32 hex chars><ext>`` for an uploaded file.

    Characters other than letters, digits, ``.`` and ``-`` become ``_``.
    """
    base, ext = split_extension(original_filename)
    safe_base = _UNSAFE_CHARS.sub("_", base)
    return f"{safe_base}-{secrets.token_hex(16)}{ext}"


@dataclass
class StoredUpload:
    filename: str
    path: Path
    size: int
    original_filename: str
    content_type: str


@dataclass
class Submission:
    """Parsed incident submission: plain fields plus an optional image."""
    fields: Dict[str, Any] = field(default_factory=dict)
    image: Optional[UploadFile] = None


class UploadPolicy:
    """Limits and storage location for uploaded images."""

    def __init__(
        self,
        upload_dir: Path,
        max_file_size: int,
        max_files: int,
        allowed_extensions: Iterable[str],
        url_prefix: str = "/uploads",
    ):
        self.upload_dir = Path(upload_dir)
        self.max_file_size = max_file_size
        self.max_files = max_files
        self.allowed_extensions = [ext.lower() for ext in allowed_extensions]
        self.url_prefix = url_prefix.rstrip("/")

    @classmethod
    def from_settings(cls, settings: Settings) -> "UploadPolicy":
        return cls(
            upload_dir=settings.upload_dir,
            max_file_size=settings.max_file_size,
            max_files=settings.max_files_per_request,
            allowed_extensions=settings.allowed_file_types,
            url_prefix=settings.upload_url_prefix,
        )

    def ensure_upload_dir(self):
        self.upload_dir.mkdir(parents=True, exist_ok=True)

    def check_file_count(self, count: int):
        if count > self.max_files:
            logger.warning(f"Upload rejected: {count} files > {self.max_files}")
            raise PayloadTooLargeError(
                f"Maximum {self.max_files} files allowed per request",
                error="Too many files",
            )

    def check_file_type(self, filename: str, content_type: Optional[str]) -> str:
        """
        Validate extension and declared MIME type.

        Returns:
            The lowercased extension
        """
        _, ext = split_extension(filename)
        mime_type = (content_type or "").split(";", 1)[0].strip().lower()

        if ext not in self.allowed_extensions:
            logger.warning(
                f"File upload rejected - invalid extension filename={filename!r} extension={ext!r} mimetype={mime_type}"
            )
            raise UploadRejectedError(
                f"File type {ext or '(none)'} is not allowed. "
                f"Allowed types: {', '.join(self.allowed_extensions)}"
            )

        expected = MIME_TYPES_BY_EXTENSION.get(ext, [])
        if mime_type not in expected:
            logger.warning(
                f"File upload rejected - MIME type mismatch filename={filename!r} extension={ext} "
                f"mimetype={mime_type} expected={expected}"
            )
            raise UploadRejectedError(
                f"Invalid file type. File extension {ext} does not match MIME type {mime_type or '(none)'}"
            )

        return ext

    def _too_large(self) -> PayloadTooLargeError:
        size_mb = round(self.max_file_size / 1024 / 1024)
        return PayloadTooLargeError(
            f"File size must be less than {size_mb}MB", error="File too large"
        )

    def _copy(self, source: BinaryIO, destination: Path) -> int:
        size = 0
        try:
            with open(destination, "wb") as out:
                while True:
                    chunk = source.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    size += len(chunk)
                    if size > self.max_file_size:
                        raise _FileTooLarge()
                    out.write(chunk)
        except BaseException:
            destination.unlink(missing_ok=True)
            raise
        return size

    async def save(self, upload: UploadFile) -> StoredUpload:
        """
        Validate and write an uploaded file into the upload directory.

        Raises:
            UploadRejectedError: extension or MIME type not allowed
            PayloadTooLargeError: file exceeds max_file_size
        """
        original = upload.filename or ""
        self.check_file_type(original, upload.content_type)

        if upload.size is not None and upload.size > self.max_file_size:
            raise self._too_large()

        self.ensure_upload_dir()
        stored_name = generate_stored_filename(original)
        destination = self.upload_dir / stored_name

        await upload.seek(0)
        try:
            size = await asyncio.to_thread(self._copy, upload.file, destination)
        except _FileTooLarge:
            logger.warning(f"File upload rejected - too large filename={original!r}")
            raise self._too_large()

        logger.info(
            f"File upload accepted filename={original!r} stored={stored_name} size={size}"
        )
        return StoredUpload(
            filename=stored_name,
            path=destination,
            size=size,
            original_filename=original,
            content_type=upload.content_type or "",
        )

    def discard(self, stored: StoredUpload):
        """Remove a stored file that ended up unused."""
        try:
            stored.path.unlink(missing_ok=True)
            logger.info(f"Discarded unused upload {stored.filename}")
        except OSError as e:
            logger.error(f"Could not remove unused upload {stored.path}: {e}")

    def public_path(self, stored: StoredUpload) -> str:
        return f"{self.url_prefix}/{stored.filename}"


def get_upload_policy(request: Request) -> UploadPolicy:
    return request.app.state.upload_policy


async def _read_json_fields(request: Request) -> Dict[str, Any]:
    body = await request.body()
    if not body.strip():
        return {}
    try:
        data = json.loads(body)
    except ValueError:
        raise ValidationFailedError(
            details=[{"field": "body", "message": "Malformed JSON"}]
        )
    if not isinstance(data, dict):
        raise ValidationFailedError(
            details=[{"field": "body", "message": "Expected a JSON object"}]
        )
    return data


@asynccontextmanager
async def read_submission(
    request: Request, policy: UploadPolicy
) -> AsyncIterator[Submission]:
    """
    Parse an incident submission from the request body.

    Multipart forms are checked for file count and unexpected file fields here;
    per-file type and size checks happen in ``UploadPolicy.save``. Any parsed
    form is closed on exit.
    """
    content_type = request.headers.get("content-type", "")

    if content_type.startswith("application/json"):
        yield Submission(fields=await _read_json_fields(request))
        return

    if not (
        content_type.startswith("multipart/form-data")
        or content_type.startswith("application/x-www-form-urlencoded")
    ):
        # Any other body is treated as carrying no fields
        await request.body()
        yield Submission()
        return

    form = await request.form(max_fields=MAX_FORM_FIELDS)
    try:
        fields: Dict[str, Any] = {}
        files = []
        for key, value in form.multi_items():
            if isinstance(value, str):
                fields[key] = value
            elif value.filename:
                # Browsers send an empty part when no file was chosen
                files.append((key, value))

        policy.check_file_count(len(files))

        unexpected = [key for key, _ in files if key != IMAGE_FIELD]
        if unexpected or len(files) > 1:
            logger.warning(
                f"Upload rejected - unexpected file field(s) {unexpected or [IMAGE_FIELD]} ip={client_ip(request)}"
            )
            raise UploadRejectedError(
                "Unexpected file in upload", error="Unexpected file field"
            )

        image = files[0][1] if files else None
        yield Submission(fields=fields, image=image)
    finally:
        await form.close()
