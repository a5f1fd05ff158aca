"""File descriptions for uploads.

A FileDescription wraps a local path, an open binary stream or a remote
URL, and tracks how many bytes of it have been sent during a chunked
upload.
"""

import os
import re
from pathlib import Path
from typing import BinaryIO

from .errors import UploadError

REMOTE_URL_RE = re.compile(
    r"^ftp:|^https?:|^s3:|^gs:|^data:([\w-]+/[\w-]+(\+[\w-]+)?)?(;[\w-]+=[\w-]+)*;base64,([a-zA-Z0-9/+\n=]+)$"
)


def _read_exactly(source: BinaryIO, size: int) -> bytes:
    """Read up to `size` bytes, retrying short reads until EOF."""
    buffer = bytearray()
    while len(buffer) < size:
        data = source.read(size - len(buffer))
        if not data:
            break
        buffer.extend(data)
    return bytes(buffer)


class FileDescription:
    """An upload source and its transfer state.

    Exactly one of `file_path`, `stream` or `remote_url` is set. Streams
    belong to the caller and are never closed here; files opened from a
    path are closed after every read.

    Attributes:
        file_path: Local file path
        stream: Seekable binary stream
        remote_url: Remote URL the service fetches itself
        file_name: Name sent with the upload
        bytes_sent: Bytes confirmed as uploaded
        buffer_length: Chunk size in bytes
        eof: True once every byte has been sent
    """

    def __init__(
        self,
        file_path: str | Path | None = None,
        stream: BinaryIO | None = None,
        file_name: str | None = None,
        remote_url: str | None = None,
    ):
        if file_path is not None and remote_url is None and REMOTE_URL_RE.match(str(file_path)):
            remote_url, file_path = str(file_path), None
        if sum(x is not None for x in (file_path, stream, remote_url)) != 1:
            raise ValueError("Provide exactly one of file_path, stream or remote_url")

        self.file_path = Path(file_path) if file_path is not None else None
        self.stream = stream
        self.remote_url = remote_url
        if file_name is None:
            if self.file_path is not None:
                file_name = self.file_path.name
            elif stream is not None:
                file_name = os.path.basename(getattr(stream, "name", "") or "") or "file"
        self.file_name = file_name
        self.bytes_sent = 0
        self.buffer_length = 0
        self.eof = False
        self._length: int | None = None

    @property
    def is_remote(self) -> bool:
        return self.remote_url is not None

    def get_file_length(self) -> int:
        """Total size of the local file or stream in bytes."""
        if self.is_remote:
            raise ValueError("Remote files have no local length")
        if self._length is None:
            if self.file_path is not None:
                self._length = self.file_path.stat().st_size
            else:
                position = self.stream.tell()
                self._length = self.stream.seek(0, os.SEEK_END)
                self.stream.seek(position)
        return self._length

    def reset(self, buffer_length: int) -> None:
        """Prepare for a new chunked transfer."""
        if buffer_length <= 0:
            raise ValueError("Chunk size must be positive")
        self.buffer_length = buffer_length
        self.bytes_sent = 0
        self.eof = self.get_file_length() == 0

    def current_range(self) -> tuple[int, int, int]:
        """(start, end, total) of the next chunk; end is inclusive."""
        total = self.get_file_length()
        start = self.bytes_sent
        size = min(self.buffer_length, total - start)
        return start, start + size - 1, total

    def read_chunk(self) -> bytes:
        """Read the next chunk without advancing the sent counter.

        Reads until the whole declared range is buffered, so the bytes
        posted always match the Content-Range of the request.

        Raises:
            UploadError: If the source ends before the declared range
        """
        start, end, total = self.current_range()
        size = end - start + 1
        if self.file_path is not None:
            with open(self.file_path, "rb") as f:
                f.seek(start)
                chunk = _read_exactly(f, size)
        else:
            self.stream.seek(start)
            chunk = _read_exactly(self.stream, size)
        if len(chunk) != size:
            raise UploadError(
                f"File ended after {start + len(chunk)} of {total} bytes while reading bytes {start}-{end}"
            )
        return chunk

    def read_all(self) -> bytes:
        if self.file_path is not None:
            return self.file_path.read_bytes()
        self.stream.seek(0)
        return self.stream.read()

    def mark_sent(self, count: int) -> None:
        """Record `count` more bytes as uploaded."""
        self.bytes_sent = min(self.bytes_sent + count, self.get_file_length())
        self.eof = self.bytes_sent >= self.get_file_length()
