"""Utility helpers for the fileserver implementation (framework-agnostic)."""

# SPDX-FileCopyrightText: 2025 - Canonical Ltd
# SPDX-License-Identifier: Apache-2.0
import logging
import posixpath
import stat
import zlib
from pathlib import Path
from typing import BinaryIO, Iterator, List, Optional, Type

LOG = logging.getLogger(__name__)

CHUNK_READ_SIZE = 4096
COPY_CHUNK_SIZE = 64 * 1024

OCTET_STREAM = "application/octet-stream"


class FileServerError(Exception):
    """Base class for errors translated into an HTTP error response."""

    status = 500
    detail = "Internal Error"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail or self.detail)
        if detail:
            self.detail = detail


class NotFoundError(FileServerError):
    """Raised when the requested path does not exist."""

    status = 404
    detail = "Not Found: Error while opening file"


class ForbiddenError(FileServerError):
    """Raised when the requested operation is not allowed on the path."""

    status = 403
    detail = "Not Allowed: Access to this resource is not allowed"


class InternalError(FileServerError):
    """Raised on I/O failures while handling a request."""

    status = 500


def resolve_path(root: Path, url_path: str) -> Optional[Path]:
    """Join a request path onto root, keeping the result inside root.

    The request path is cleaned lexically first so ``..`` segments cannot
    climb above ``/``. The real path of the result (symlinks followed) must
    still be within the real path of root, otherwise None is returned.
    The lexical path is returned so that symlinks themselves can be
    served or removed.
    """
    cleaned = posixpath.normpath("/" + (url_path or "/")).lstrip("/")
    candidate = root / cleaned if cleaned not in ("", ".") else root
    if not is_within(candidate, root):
        return None
    return candidate


def is_within(path: Path, root: Path) -> bool:
    """Return True when the real path of path lies under the real path of root."""
    try:
        path.resolve().relative_to(root.resolve())
    except (OSError, RuntimeError, ValueError):
        return False
    return True


def is_forbidden_mode(mode: int) -> bool:
    """Return True for special files that must never be served or removed."""
    return stat.S_ISSOCK(mode)


def is_special_mode(mode: int) -> bool:
    """Return True for anything that is neither a directory nor a regular file."""
    return not (stat.S_ISDIR(mode) or stat.S_ISREG(mode))


def parse_csv(data: str) -> List[str]:
    """Split a comma separated header value into trimmed tokens."""
    return [val.strip() for val in data.split(",")]


def parse_range(data: str) -> int:
    """Extract the start offset of a ``Range`` header value.

    Only the first run of digits after ``=`` is considered; the scan stops
    at ``,``, ``-`` or any other non-digit. Anything malformed yields 0,
    meaning "from the start".
    """
    start = 0
    seen_equals = False
    for char in data:
        if not seen_equals:
            if char == "=":
                seen_equals = True
            continue
        if "0" <= char <= "9":
            start = start * 10 + (ord(char) - ord("0"))
        else:
            break
    return start


class PlainEncoder:
    """Pass-through writer used when the response is not compressed."""

    name: Optional[str] = None

    def compress(self, data: bytes) -> bytes:
        return data

    def flush(self) -> bytes:
        return b""


class _ZlibEncoder(PlainEncoder):
    wbits = zlib.MAX_WBITS

    def __init__(self):
        self._compressor = zlib.compressobj(wbits=self.wbits)

    def compress(self, data: bytes) -> bytes:
        return self._compressor.compress(data)

    def flush(self) -> bytes:
        return self._compressor.flush()


class GzipEncoder(_ZlibEncoder):
    """gzip member writer."""

    name = "gzip"
    wbits = 16 + zlib.MAX_WBITS


class DeflateEncoder(_ZlibEncoder):
    """zlib stream writer, the format HTTP calls ``deflate``."""

    name = "deflate"
    wbits = zlib.MAX_WBITS


ENCODERS = {
    GzipEncoder.name: GzipEncoder,
    DeflateEncoder.name: DeflateEncoder,
}


def negotiate_encoding(accept_encoding: Optional[str]) -> Type[PlainEncoder]:
    """Pick the response encoder for an ``Accept-Encoding`` header.

    gzip wins over deflate whatever order the client lists them in.
    """
    if not accept_encoding:
        return PlainEncoder
    tokens = parse_csv(accept_encoding)
    for name in (GzipEncoder.name, DeflateEncoder.name):
        if name in tokens:
            return ENCODERS[name]
    return PlainEncoder


class FileIterator:
    """WSGI app_iter streaming an open file through an encoder.

    The file is closed once the stream ends or when the server calls
    ``close()``, whichever comes first. Read errors end the stream; what
    was sent so far stays sent.
    """

    def __init__(
        self, fp: BinaryIO, size: int, encoder: PlainEncoder, chunk_size: int = CHUNK_READ_SIZE
    ):
        self._fp = fp
        self._encoder = encoder
        self._bufsize = max(1, min(chunk_size, size))

    def __iter__(self) -> Iterator[bytes]:
        try:
            while True:
                try:
                    buf = self._fp.read(self._bufsize)
                except OSError as exc:
                    LOG.warning("Read error while streaming %s: %s", self._fp.name, exc)
                    break
                if not buf:
                    break
                data = self._encoder.compress(buf)
                if data:
                    yield data
            tail = self._encoder.flush()
            if tail:
                yield tail
        finally:
            self.close()

    def close(self) -> None:
        self._fp.close()


def copy_decoded(src: BinaryIO, dst: BinaryIO, encoding: Optional[str]) -> int:
    """Copy src into dst, undoing a gzip or deflate transfer encoding.

    Any other encoding value copies the bytes unchanged. Concatenated gzip
    members are all decoded. Returns the number of bytes written. Raises
    zlib.error on corrupt input.
    """
    written = 0
    encoder = ENCODERS.get((encoding or "").strip().lower())
    if encoder is None:
        for buf in iter(lambda: src.read(COPY_CHUNK_SIZE), b""):
            dst.write(buf)
            written += len(buf)
        return written

    decompressor = zlib.decompressobj(wbits=encoder.wbits)
    for buf in iter(lambda: src.read(COPY_CHUNK_SIZE), b""):
        while buf:
            data = decompressor.decompress(buf)
            dst.write(data)
            written += len(data)
            buf = b""
            if decompressor.eof and decompressor.unused_data:
                buf = decompressor.unused_data
                decompressor = zlib.decompressobj(wbits=encoder.wbits)
    tail = decompressor.flush()
    dst.write(tail)
    written += len(tail)
    if not decompressor.eof:
        raise zlib.error("truncated %s stream" % encoder.name)
    return written
