from __future__ import annotations

import logging
from typing import BinaryIO, Optional

from config import Config
from models import LogoImage

logger = logging.getLogger(__name__)

MSG_NOT_IMAGE = "Please upload a valid image file"
MSG_TOO_LARGE = "Image size should be less than 2MB"
MSG_UNREADABLE = "Could not read the uploaded file"

PENDING = "pending"
RESOLVED = "resolved"
FAILED = "failed"


class LogoRead:
    """
    One logo upload: starts pending (constraints passed) or failed
    (constraints violated), and a pending read settles exactly once via
    complete().
    """

    def __init__(self, state: str, mime_type: str = "", reason: str = ""):
        self.state = state
        self.mime_type = mime_type
        self.reason = reason
        self.logo: Optional[LogoImage] = None

    @property
    def pending(self) -> bool:
        return self.state == PENDING

    @property
    def resolved(self) -> bool:
        return self.state == RESOLVED

    @property
    def failed(self) -> bool:
        return self.state == FAILED

    def complete(self, stream: BinaryIO) -> "LogoRead":
        if not self.pending:
            raise RuntimeError(f"Logo read already {self.state}")
        try:
            data = stream.read()
        except OSError as exc:
            logger.warning("Logo read failed: %s", exc)
            data = b""
        if not data:
            self.state = FAILED
            self.reason = MSG_UNREADABLE
            return self
        self.logo = LogoImage(data=data, mime_type=self.mime_type)
        self.state = RESOLVED
        return self

    def __repr__(self):
        return f"LogoRead(state={self.state!r}, mime_type={self.mime_type!r}, reason={self.reason!r})"


def begin_logo_read(filename: str, mime_type: str, size: int, max_bytes: Optional[int] = None) -> LogoRead:
    limit = Config.LOGO_MAX_BYTES if max_bytes is None else max_bytes
    mime_type = (mime_type or "").strip().lower()

    if not mime_type.startswith("image/"):
        logger.info("Rejected logo %r: mime type %r", filename, mime_type)
        return LogoRead(FAILED, mime_type, MSG_NOT_IMAGE)
    if size > limit:
        logger.info("Rejected logo %r: %d bytes > %d", filename, size, limit)
        return LogoRead(FAILED, mime_type, MSG_TOO_LARGE)
    return LogoRead(PENDING, mime_type)


def _stream_size(stream: BinaryIO) -> int:
    pos = stream.tell()
    stream.seek(0, 2)
    size = stream.tell()
    stream.seek(pos)
    return size


def read_logo_upload(file_storage, max_bytes: Optional[int] = None) -> Optional[LogoRead]:
    """
    Runs both steps for a Werkzeug FileStorage.
    Returns None when no file was chosen.
    """
    if file_storage is None or not (file_storage.filename or ""):
        return None

    size = file_storage.content_length or _stream_size(file_storage.stream)
    read = begin_logo_read(file_storage.filename, file_storage.mimetype, size, max_bytes=max_bytes)
    if read.pending:
        read.complete(file_storage.stream)
    return read
