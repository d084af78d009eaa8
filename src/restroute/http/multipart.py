"""
=============================================================================
STREAMING MULTIPART/FORM-DATA PARSER
=============================================================================

Parses upload bodies without holding them in memory: the body stream is
read in fixed-size chunks, simple fields are collected as text, and file
parts are written into SpooledTemporaryFile objects (memory up to
`spool_size`, then disk).

=============================================================================
WIRE FORMAT (RFC 7578)
=============================================================================

    Content-Type: multipart/form-data; boundary=XyZ

    --XyZ\\r\\n
    Content-Disposition: form-data; name="description"\\r\\n
    \\r\\n
    my holiday picture\\r\\n
    --XyZ\\r\\n
    Content-Disposition: form-data; name="avatar"; filename="me.png"\\r\\n
    Content-Type: image/png\\r\\n
    \\r\\n
    <binary bytes>\\r\\n
    --XyZ--\\r\\n

=============================================================================
STATE MACHINE
=============================================================================

    ┌──────────┐  delimiter   ┌─────────┐  \\r\\n\\r\\n  ┌──────┐
    │ PREAMBLE │────────────►│ HEADERS │──────────►│ BODY │
    └──────────┘             └─────────┘           └──┬───┘
                                  ▲                   │ delimiter
                                  │  "\\r\\n"           ▼
                                  └──────────── ┌───────────┐  "--"  ┌─────┐
                                                │ BOUNDARY  │──────►│ END │
                                                └───────────┘       └─────┘

The delimiter is "\\r\\n--" + boundary. A virtual "\\r\\n" is put in front
of the stream so the very first boundary looks like every other one.
While in BODY, the last len(delimiter) - 1 bytes of the buffer are held
back: they might be the start of a delimiter split across two reads.

=============================================================================
SIZE LIMIT
=============================================================================

Every byte pulled from the stream counts toward `max_size`. Crossing it
raises UploadTooLargeError naming the part being read, before any handler
sees the upload.

=============================================================================
"""

from dataclasses import dataclass, field
from tempfile import SpooledTemporaryFile
from typing import BinaryIO, Dict, List, Optional
import logging

from .errors import MultipartError, UploadTooLargeError


logger = logging.getLogger(__name__)


DEFAULT_CHUNK_SIZE = 64 * 1024
DEFAULT_SPOOL_SIZE = 1024 * 1024
MAX_PART_HEADER_SIZE = 16 * 1024


@dataclass
class UploadFile:
    """
    An uploaded file part.

    `file` is positioned at 0 once parsing finishes. The dispatcher closes
    it after the handler returns, on every exit path.
    """

    field_name: str
    filename: str
    content_type: str
    file: BinaryIO = field(repr=False)
    size: int = 0

    def read(self, size: int = -1) -> bytes:
        return self.file.read(size)

    def seek(self, offset: int) -> int:
        return self.file.seek(offset)

    def close(self) -> None:
        self.file.close()

    @property
    def closed(self) -> bool:
        return self.file.closed

    def __enter__(self) -> "UploadFile":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


@dataclass
class FormData:
    """Parsed form: text fields and files, each possibly repeated."""

    fields: Dict[str, List[str]] = field(default_factory=dict)
    files: Dict[str, List[UploadFile]] = field(default_factory=dict)

    def get_field(self, name: str) -> Optional[str]:
        values = self.fields.get(name)
        return values[0] if values else None

    def get_file(self, name: str) -> Optional[UploadFile]:
        files = self.files.get(name)
        return files[0] if files else None

    def close(self) -> None:
        for uploads in self.files.values():
            for upload in uploads:
                upload.close()


class MultipartParser:
    """
    Incremental multipart/form-data parser.

    Usage:
        parser = MultipartParser(boundary=b"XyZ", max_size=50_000_000)
        form = parser.parse(request.body_stream())
        try:
            ...
        finally:
            form.close()
    """

    def __init__(
        self,
        boundary: bytes,
        max_size: int,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        spool_size: int = DEFAULT_SPOOL_SIZE,
    ):
        if not boundary or len(boundary) > 70:
            raise MultipartError("Invalid multipart boundary")
        self.delimiter = b"\r\n--" + boundary
        self.max_size = max_size
        self.chunk_size = chunk_size
        self.spool_size = spool_size

        self._stream: Optional[BinaryIO] = None
        self._buffer = bytearray()
        self._bytes_read = 0
        self._eof = False
        self._current_field: Optional[str] = None

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def parse(self, stream: BinaryIO) -> FormData:
        """
        Parse the whole body.

        Raises:
            UploadTooLargeError: body passed max_size
            MultipartError: malformed body
        """
        self._stream = stream
        self._buffer = bytearray(b"\r\n")
        form = FormData()

        try:
            self._skip_preamble()
            while self._read_boundary_suffix():
                self._read_part(form)
        except BaseException:
            form.close()
            raise

        logger.debug(
            "Parsed multipart body: %d bytes, %d field(s), %d file(s)",
            self._bytes_read,
            sum(len(v) for v in form.fields.values()),
            sum(len(v) for v in form.files.values()),
        )
        return form

    # =========================================================================
    # STREAM HANDLING
    # =========================================================================

    def _fill(self) -> bool:
        """Read one chunk into the buffer. False at end of stream."""
        if self._eof:
            return False
        chunk = self._stream.read(self.chunk_size)
        if not chunk:
            self._eof = True
            return False
        self._bytes_read += len(chunk)
        if self._bytes_read > self.max_size:
            raise UploadTooLargeError(self.max_size, self._current_field)
        self._buffer += chunk
        return True

    def _need(self, count: int) -> None:
        while len(self._buffer) < count:
            if not self._fill():
                raise MultipartError("Unexpected end of multipart body")

    # =========================================================================
    # STATES
    # =========================================================================

    def _skip_preamble(self) -> None:
        keep = len(self.delimiter) - 1
        while True:
            index = self._buffer.find(self.delimiter)
            if index != -1:
                del self._buffer[:index + len(self.delimiter)]
                return
            if len(self._buffer) > keep:
                del self._buffer[:len(self._buffer) - keep]
            if not self._fill():
                raise MultipartError("Multipart boundary not found")

    def _read_boundary_suffix(self) -> bool:
        """After a delimiter: "--" ends the body, "\\r\\n" starts a part."""
        self._need(2)
        suffix = bytes(self._buffer[:2])
        del self._buffer[:2]
        if suffix == b"--":
            return False
        if suffix != b"\r\n":
            raise MultipartError("Malformed multipart boundary line")
        return True

    def _read_part(self, form: FormData) -> None:
        headers = self._read_part_headers()
        name, filename = _parse_disposition(headers.get("content-disposition", ""))
        if name is None:
            raise MultipartError("Multipart part without a field name")

        self._current_field = name
        if filename is not None:
            sink = SpooledTemporaryFile(max_size=self.spool_size)
            try:
                size = self._copy_body(sink.write)
            except BaseException:
                sink.close()
                raise
            sink.seek(0)
            upload = UploadFile(
                field_name=name,
                filename=filename,
                content_type=headers.get("content-type", "application/octet-stream"),
                file=sink,
                size=size,
            )
            form.files.setdefault(name, []).append(upload)
        else:
            value = bytearray()
            self._copy_body(value.extend)
            try:
                text = value.decode("utf-8")
            except UnicodeDecodeError:
                raise MultipartError(f"Field '{name}' is not valid UTF-8")
            form.fields.setdefault(name, []).append(text)
        self._current_field = None

    def _read_part_headers(self) -> Dict[str, str]:
        while True:
            index = self._buffer.find(b"\r\n\r\n")
            if index != -1:
                break
            if len(self._buffer) > MAX_PART_HEADER_SIZE:
                raise MultipartError("Multipart part headers too large")
            if not self._fill():
                raise MultipartError("Unexpected end of multipart headers")

        raw = bytes(self._buffer[:index]).decode("utf-8", errors="replace")
        del self._buffer[:index + 4]

        headers: Dict[str, str] = {}
        for line in raw.split("\r\n"):
            name, sep, value = line.partition(":")
            if sep:
                headers[name.strip().lower()] = value.strip()
        return headers

    def _copy_body(self, write) -> int:
        """
        Move part bytes to `write` until the next delimiter.

        Returns:
            Number of bytes written.
        """
        keep = len(self.delimiter) - 1
        written = 0
        while True:
            index = self._buffer.find(self.delimiter)
            if index != -1:
                write(bytes(self._buffer[:index]))
                written += index
                del self._buffer[:index + len(self.delimiter)]
                return written
            safe = len(self._buffer) - keep
            if safe > 0:
                write(bytes(self._buffer[:safe]))
                written += safe
                del self._buffer[:safe]
            if not self._fill():
                raise MultipartError("Unexpected end of multipart body")


def _parse_disposition(value: str) -> tuple[Optional[str], Optional[str]]:
    """
    'form-data; name="avatar"; filename="me.png"' → ("avatar", "me.png")
    """
    name = filename = None
    for part in value.split(";")[1:]:
        key, sep, val = part.strip().partition("=")
        if not sep:
            continue
        val = val.strip()
        if len(val) >= 2 and val[0] == val[-1] == '"':
            val = val[1:-1].replace('\\"', '"')
        key = key.strip().lower()
        if key == "name":
            name = val
        elif key == "filename":
            filename = val
    return name, filename
