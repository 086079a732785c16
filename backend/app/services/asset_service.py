"""
Asset Service - Intake pipeline for uploaded files
==================================================

Uploads are admitted (type, size, count), routed into a category directory
by MIME prefix and written under a collision-free generated name:

    {UPLOAD_PATH}/images/photo-1712345678901-483920571.jpg

Admission and routing are independent: admission checks the allow-list,
routing only looks at the MIME prefix.

Usage:
    service = AssetService(storage_root=Path("./uploads"))

    asset = await service.accept_upload(upload, upload.content_type, upload.filename)
    url = service.resolve_url(asset.relative_path, "https://api.garudclasses.com")

    await service.delete_asset(asset.storage_path)
"""

import os
import re
import time
import random
import uuid
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, List, Dict, Any, Collection, Sequence, Union, Protocol

import aiofiles
import aiofiles.os

from app.core.config import DEFAULT_ALLOWED_MIME_TYPES
from app.core.exceptions import (
    InvalidFileTypeError,
    FileTooLargeError,
    TooManyFilesError,
    UnexpectedFieldError,
    NoFileUploadedError,
    InvalidAssetPathError,
    StorageFailureError,
)
from app.core.logging_config import logger


CHUNK_SIZE = 1024 * 1024  # 1MB
DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024
DEFAULT_MAX_FILE_COUNT = 10

# Multi-field uploads: field name -> max files for that field
DEFAULT_FIELD_LIMITS: Dict[str, int] = {
    "profileImage": 1,
    "courseMaterials": 10,
    "classRecording": 1,
}

_UNSAFE_STEM_CHARS = re.compile(r"[^A-Za-z0-9]")


class AssetCategory(str, Enum):
    """Routing class of an upload, decides the storage subdirectory"""
    IMAGE = "image"
    DOCUMENT = "document"
    VIDEO = "video"
    AUDIO = "audio"
    MISC = "misc"

    @property
    def directory(self) -> str:
        return _CATEGORY_DIRECTORIES[self]

    @classmethod
    def from_directory(cls, directory: str) -> Optional["AssetCategory"]:
        for category, name in _CATEGORY_DIRECTORIES.items():
            if name == directory:
                return category
        return None


_CATEGORY_DIRECTORIES: Dict[AssetCategory, str] = {
    AssetCategory.IMAGE: "images",
    AssetCategory.DOCUMENT: "documents",
    AssetCategory.VIDEO: "videos",
    AssetCategory.AUDIO: "audio",
    AssetCategory.MISC: "misc",
}


class AsyncReadable(Protocol):
    """Anything with an async read(size), e.g. FastAPI's UploadFile"""

    async def read(self, size: int = -1) -> bytes:
        ...


@dataclass
class IncomingFile:
    """A file part of a request, before admission"""
    stream: AsyncReadable
    mime_type: str
    original_name: str
    declared_size: Optional[int] = None
    field_name: Optional[str] = None

    @classmethod
    def from_upload(cls, upload: Any, field_name: Optional[str] = None) -> "IncomingFile":
        """Wrap a starlette/FastAPI UploadFile"""
        return cls(
            stream=upload,
            mime_type=upload.content_type or "",
            original_name=upload.filename or "",
            declared_size=getattr(upload, "size", None),
            field_name=field_name,
        )


@dataclass(frozen=True)
class UploadedAsset:
    """A stored upload. Never mutated after creation."""
    original_name: str
    mime_type: str
    size_bytes: int
    category: AssetCategory
    stored_name: str
    storage_path: Path
    field_name: Optional[str] = None

    @property
    def relative_path(self) -> str:
        """Path below the storage root, also the public URL suffix"""
        return f"{self.category.directory}/{self.stored_name}"

    def to_dict(self, url: Optional[str] = None) -> Dict[str, Any]:
        return {
            "filename": self.stored_name,
            "originalName": self.original_name,
            "mimetype": self.mime_type,
            "size": self.size_bytes,
            "url": url,
            "path": self.relative_path,
            "type": self.category.value,
        }


def normalize_mime(mime_type: Optional[str]) -> str:
    """Lower-case a declared content type and drop parameters (charset etc.)"""
    return (mime_type or "").split(";", 1)[0].strip().lower()


def categorize(mime_type: str) -> AssetCategory:
    """Route by MIME prefix only. Does not consult the allow-list."""
    mime = normalize_mime(mime_type)
    if mime.startswith("image/"):
        return AssetCategory.IMAGE
    if mime.startswith("video/"):
        return AssetCategory.VIDEO
    if mime.startswith("audio/"):
        return AssetCategory.AUDIO
    if mime.startswith("application/") or mime.startswith("text/"):
        return AssetCategory.DOCUMENT
    return AssetCategory.MISC


def build_stored_name(original_name: str, now_ms: Optional[int] = None,
                      rand: Optional[int] = None) -> str:
    """
    Generate '{sanitizedStem}-{epochMillis}-{randomInt}{ext}'.

    The stem is sanitized first, the uniqueness suffix appended after, so
    no lookup against existing files is needed.
    """
    name = os.path.basename((original_name or "").replace("\\", "/"))
    stem, ext = os.path.splitext(name)
    sanitized = _UNSAFE_STEM_CHARS.sub("_", stem)

    if now_ms is None:
        now_ms = int(time.time() * 1000)
    if rand is None:
        rand = random.randint(0, 10 ** 9)

    return f"{sanitized}-{now_ms}-{rand}{ext}"


class AssetService:
    """
    Validates, classifies, stores and names uploaded assets.

    - Type admission happens before any byte touches the disk
    - Bytes are streamed to a part file in a staging directory outside the
      served tree, then linked into place; an existing name is never replaced
    - Oversized, failed or cancelled writes never leave a file behind
    - Batches are all-or-nothing
    """

    def __init__(
        self,
        storage_root: Union[str, Path],
        max_file_size: int = DEFAULT_MAX_FILE_SIZE,
        max_file_count: int = DEFAULT_MAX_FILE_COUNT,
        allowed_mime_types: Optional[Collection[str]] = None,
        public_base_url: str = "",
        url_prefix: str = "/uploads",
        field_limits: Optional[Dict[str, int]] = None,
        staging_dir: Optional[Union[str, Path]] = None,
    ):
        self.storage_root = Path(storage_root).resolve()
        if staging_dir is None:
            staging_dir = self.storage_root.with_name(f".{self.storage_root.name}-staging")
        self.staging_dir = Path(staging_dir).resolve()
        self.max_file_size = max_file_size
        self.max_file_count = max_file_count
        if allowed_mime_types is None:
            allowed_mime_types = [m for group in DEFAULT_ALLOWED_MIME_TYPES.values() for m in group]
        self.allowed_mime_types = frozenset(normalize_mime(m) for m in allowed_mime_types)
        self.public_base_url = public_base_url.rstrip("/")
        self.url_prefix = "/" + url_prefix.strip("/") if url_prefix.strip("/") else ""
        self.field_limits = dict(field_limits or DEFAULT_FIELD_LIMITS)

        logger.info(
            f"[Uploads] AssetService initialized at {self.storage_root} "
            f"(max {self.max_file_size} bytes, {self.max_file_count} files/request)"
        )

    # ==================== Admission ====================

    def is_allowed(self, mime_type: str) -> bool:
        return normalize_mime(mime_type) in self.allowed_mime_types

    def _admit(self, mime_type: str, original_name: str, declared_size: Optional[int],
               allowed_categories: Optional[Collection[AssetCategory]]) -> str:
        mime = normalize_mime(mime_type)

        if not self.is_allowed(mime):
            logger.warning(f"[Uploads] Rejected '{original_name}': type '{mime}' not allowed")
            raise InvalidFileTypeError(mime, sorted(self.allowed_mime_types))

        if allowed_categories is not None and categorize(mime) not in allowed_categories:
            accepted = sorted(m for m in self.allowed_mime_types if categorize(m) in allowed_categories)
            logger.warning(
                f"[Uploads] Rejected '{original_name}': '{mime}' not accepted here "
                f"(expects {', '.join(c.value for c in allowed_categories)})"
            )
            raise InvalidFileTypeError(mime, accepted)

        if declared_size is not None and declared_size > self.max_file_size:
            logger.warning(f"[Uploads] Rejected '{original_name}': declared {declared_size} bytes")
            raise FileTooLargeError(self.max_file_size, original_name)

        return mime

    # ==================== Intake ====================

    async def accept_upload(
        self,
        stream: AsyncReadable,
        mime_type: str,
        original_name: str,
        declared_size: Optional[int] = None,
        allowed_categories: Optional[Collection[AssetCategory]] = None,
        field_name: Optional[str] = None,
    ) -> UploadedAsset:
        """
        Admit and store a single upload.

        Raises:
            InvalidFileTypeError: MIME type outside the allow-list (or the allowed categories)
            FileTooLargeError: declared or received size above max_file_size
            StorageFailureError: directory creation or write failed
        """
        mime = self._admit(mime_type, original_name, declared_size, allowed_categories)
        category = categorize(mime)

        directory = self.storage_root / category.directory
        try:
            await aiofiles.os.makedirs(directory, exist_ok=True)
            await aiofiles.os.makedirs(self.staging_dir, exist_ok=True)
        except OSError as e:
            logger.error(f"[Uploads] Could not create directory {directory}: {e}")
            raise StorageFailureError(directory, f"Could not create upload directory: {e}") from e

        stored_name = build_stored_name(original_name)
        target = directory / stored_name
        size = await self._write_stream(stream, target, original_name)

        asset = UploadedAsset(
            original_name=original_name,
            mime_type=mime,
            size_bytes=size,
            category=category,
            stored_name=stored_name,
            storage_path=target,
            field_name=field_name,
        )
        logger.log_upload(stored_name, category.directory, size, original_name=original_name)
        return asset

    async def _write_stream(self, stream: AsyncReadable, target: Path, original_name: str) -> int:
        part_path = self.staging_dir / f"{uuid.uuid4().hex}.part"
        total = 0

        try:
            async with aiofiles.open(part_path, "xb") as buffer:
                while True:
                    chunk = await stream.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    total += len(chunk)
                    if total > self.max_file_size:
                        raise FileTooLargeError(self.max_file_size, original_name)
                    await buffer.write(chunk)

            # Raises FileExistsError instead of replacing a stored asset
            await aiofiles.os.link(part_path, target)
            self._discard(part_path)

        except FileExistsError as e:
            self._discard(part_path)
            logger.error(f"[Uploads] Name collision on {target.name}, existing file kept")
            raise StorageFailureError(target, "Generated file name already in use") from e
        except FileTooLargeError:
            self._discard(part_path)
            logger.warning(f"[Uploads] Aborted '{original_name}': exceeded {self.max_file_size} bytes")
            raise
        except OSError as e:
            self._discard(part_path)
            logger.error(f"[Uploads] Failed to write {target}: {e}")
            raise StorageFailureError(target, f"Failed to store upload: {e}") from e
        except BaseException:
            # Client disconnect or task cancellation mid-transfer
            self._discard(part_path)
            logger.warning(f"[Uploads] Transfer of '{original_name}' interrupted, partial data removed")
            raise

        return total

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"[Uploads] Could not remove {path}: {e}")

    async def accept_batch(
        self,
        files: Sequence[IncomingFile],
        allowed_categories: Optional[Collection[AssetCategory]] = None,
    ) -> List[UploadedAsset]:
        """
        Store several files from one request, all-or-nothing.

        Count and type admission run for the whole batch before anything
        is written; if a later file fails, files already stored for this
        batch are removed before the error propagates.
        """
        if not files:
            raise NoFileUploadedError("Please select files to upload")

        if len(files) > self.max_file_count:
            logger.warning(f"[Uploads] Rejected batch of {len(files)} files (max {self.max_file_count})")
            raise TooManyFilesError(len(files), self.max_file_count)

        for incoming in files:
            self._admit(incoming.mime_type, incoming.original_name,
                        incoming.declared_size, allowed_categories)

        stored: List[UploadedAsset] = []
        try:
            for incoming in files:
                stored.append(await self.accept_upload(
                    incoming.stream,
                    incoming.mime_type,
                    incoming.original_name,
                    declared_size=incoming.declared_size,
                    allowed_categories=allowed_categories,
                    field_name=incoming.field_name,
                ))
        except BaseException:
            for asset in stored:
                self._discard(asset.storage_path)
            if stored:
                logger.warning(f"[Uploads] Batch failed, removed {len(stored)} already stored file(s)")
            raise

        return stored

    async def accept_fields(
        self,
        files: Sequence[IncomingFile],
        field_limits: Optional[Dict[str, int]] = None,
        allowed_categories: Optional[Collection[AssetCategory]] = None,
    ) -> Dict[str, List[UploadedAsset]]:
        """Store a multi-field upload, grouped by field name"""
        limits = field_limits if field_limits is not None else self.field_limits
        counts: Dict[str, int] = {}

        for incoming in files:
            name = incoming.field_name or ""
            if name not in limits:
                logger.warning(f"[Uploads] Unexpected file field '{name}'")
                raise UnexpectedFieldError(name)

        if len(files) > self.max_file_count:
            logger.warning(f"[Uploads] Rejected batch of {len(files)} files (max {self.max_file_count})")
            raise TooManyFilesError(len(files), self.max_file_count)

        for incoming in files:
            name = incoming.field_name
            counts[name] = counts.get(name, 0) + 1
            if counts[name] > limits[name]:
                logger.warning(f"[Uploads] Too many files for field '{name}' (max {limits[name]})")
                raise UnexpectedFieldError(name, f"Too many files for field '{name}' (max {limits[name]})")

        grouped: Dict[str, List[UploadedAsset]] = {}
        for asset in await self.accept_batch(files, allowed_categories=allowed_categories):
            grouped.setdefault(asset.field_name, []).append(asset)
        return grouped

    # ==================== Retrieval ====================

    def resolve_url(self, relative_path: str, request_origin: Optional[str] = None) -> str:
        """Public URL of a stored asset. Pure string composition."""
        base = self.public_base_url or (request_origin or "").rstrip("/")
        return f"{base}{self.url_prefix}/{relative_path.lstrip('/')}"

    def _within_root(self, path: Path, original: str) -> Path:
        candidate = path.resolve()
        if candidate == self.storage_root or self.storage_root not in candidate.parents:
            logger.warning(f"[Uploads] Refused path outside storage root: {original}")
            raise InvalidAssetPathError(original)
        return candidate

    def resolve_path(self, relative_path: str) -> Path:
        """Map '{dir}/{storedName}' to a path under the storage root"""
        return self._within_root(self.storage_root / relative_path, relative_path)

    async def file_info(self, relative_path: str, request_origin: Optional[str] = None) -> Dict[str, Any]:
        path = self.resolve_path(relative_path)
        relative = path.relative_to(self.storage_root).as_posix()
        category = AssetCategory.from_directory(relative.split("/", 1)[0])

        info: Dict[str, Any] = {
            "filename": path.name,
            "path": relative,
            "type": category.value if category else None,
            "url": self.resolve_url(relative, request_origin),
            "exists": False,
            "size": None,
        }
        try:
            stat = await aiofiles.os.stat(path)
        except FileNotFoundError:
            return info
        except OSError as e:
            raise StorageFailureError(path, f"Failed to read file info: {e}") from e

        info["exists"] = True
        info["size"] = stat.st_size
        return info

    # ==================== Deletion ====================

    async def delete_asset(self, storage_path: Union[str, Path]) -> bool:
        """
        Remove a stored asset.

        Returns True if a file was deleted, False if there was nothing to
        delete. Only unexpected I/O errors raise StorageFailureError.
        """
        path = Path(storage_path)
        if not path.is_absolute():
            path = self.storage_root / path
        path = self._within_root(path, str(storage_path))

        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            logger.debug(f"[Uploads] Delete no-op, {path} does not exist")
            return False
        except OSError as e:
            logger.error(f"[Uploads] Failed to delete {path}: {e}")
            raise StorageFailureError(path, f"Failed to delete file: {e}") from e

        logger.info(f"[Uploads] Deleted {path.relative_to(self.storage_root).as_posix()}")
        return True
