# SPDX-FileCopyrightText: 2025 - Canonical Ltd
# SPDX-License-Identifier: Apache-2.0
"""Client for files shared by an hfs server.

Addresses use the ``hfs://host/path`` scheme (plain HTTP), the
``hfss://host/path`` scheme (HTTPS) or a bare ``host/path`` which is taken
as plain HTTP. Writes are always sent gzip-compressed; reads ask for gzip.

Example::

    with client.create("hfs://localhost:3030/notes.txt") as f:
        f.write(b"hello")

    with client.open("hfs://localhost:3030/notes.txt") as f:
        data = f.read()

    client.remove("hfs://localhost:3030/notes.txt")
"""

import gzip
import io
import json
import logging
import zlib
from typing import Optional, Tuple

import requests

logger = logging.getLogger(__name__)

SCHEME = "hfs://"
SECURE_SCHEME = "hfss://"
HTTP_SCHEME = "http://"
HTTPS_SCHEME = "https://"


class ClientError(Exception):
    """Base class for hfs client errors."""


class InvalidArgument(ClientError, ValueError):
    """Raised when a handle is invalid or used after it was closed."""


class ProtocolError(ClientError):
    """Raised when a response body cannot be decoded."""


class TransportError(ClientError):
    """Raised when the HTTP exchange itself fails."""


class RemoteError(ClientError):
    """Raised when the server answers with an error status."""

    def __init__(self, status: int, detail: str):
        super().__init__(f"{status}: {detail}")
        self.status = status
        self.detail = detail


class NotFound(RemoteError):
    """The remote path does not exist."""


class Forbidden(RemoteError):
    """The server refused the operation on the remote path."""


def convert_address(address: str) -> str:
    """Translate an hfs address into its HTTP equivalent."""
    if address.startswith(SCHEME):
        return HTTP_SCHEME + address[len(SCHEME) :]  # noqa: E203
    if address.startswith(SECURE_SCHEME):
        return HTTPS_SCHEME + address[len(SECURE_SCHEME) :]  # noqa: E203
    return HTTP_SCHEME + address


def is_secure(url: str) -> bool:
    """Whether a translated address must be reached over TLS."""
    return url.startswith(HTTPS_SCHEME)


def _session(secure: bool) -> requests.Session:
    """Return an HTTP session; TLS sessions skip certificate verification."""
    session = requests.Session()
    session.verify = not secure
    return session


def _error_detail(body: bytes) -> str:
    try:
        return json.loads(body.decode("utf-8"))["detail"]
    except (ValueError, KeyError, TypeError):
        return body.decode("utf-8", errors="replace").strip()


def _request(
    method: str, url: str, timeout: Optional[float] = None, **kwargs
) -> Tuple[requests.Response, bytes]:
    """Send a request and return the response with its undecoded body.

    Raises NotFound, Forbidden or RemoteError on error statuses and
    TransportError when the exchange fails.
    """
    logger.debug("%s %s", method, url)
    with _session(is_secure(url)) as session:
        try:
            resp = session.request(method, url, timeout=timeout, stream=True, **kwargs)
            with resp:
                body = resp.raw.read(decode_content=False)
        except requests.RequestException as exc:
            raise TransportError(f"{method} {url} failed: {exc}") from exc

    if resp.status_code >= 400:
        detail = _error_detail(body)
        logger.debug("%s %s returned %s: %s", method, url, resp.status_code, detail)
        if resp.status_code == 404:
            raise NotFound(resp.status_code, detail)
        if resp.status_code == 403:
            raise Forbidden(resp.status_code, detail)
        raise RemoteError(resp.status_code, detail)
    return resp, body


def _decode(body: bytes, encoding: Optional[str]) -> bytes:
    """Undo the transfer encoding the server declared."""
    encoding = (encoding or "identity").strip().lower()
    try:
        if encoding == "gzip":
            return gzip.decompress(body)
        if encoding == "deflate":
            return zlib.decompress(body)
    except (OSError, EOFError, zlib.error) as exc:
        raise ProtocolError(f"invalid {encoding} response body: {exc}") from exc
    if encoding == "identity":
        return body
    raise ProtocolError(f"unsupported response encoding {encoding!r}")


class RemoteFile:
    """File-like handle on a remote file.

    A read handle downloads the whole file on the first ``read()``. A write
    handle buffers its content and uploads it, replacing the remote file,
    on ``flush()`` and ``close()``.
    """

    def __init__(self, address: Optional[str], mode: str = "rb", timeout: Optional[float] = None):
        if mode not in ("rb", "wb"):
            raise InvalidArgument(f"unsupported mode {mode!r}")
        self.url = convert_address(address) if address else None
        self.mode = mode
        self.timeout = timeout
        self._buffer: Optional[io.BytesIO] = None if mode == "rb" else io.BytesIO()
        self._closed = False
        self._dirty = False
        self._uploaded = False

    @property
    def secure(self) -> bool:
        return bool(self.url) and is_secure(self.url)

    @property
    def closed(self) -> bool:
        return self._closed

    def readable(self) -> bool:
        return self.mode == "rb"

    def writable(self) -> bool:
        return self.mode == "wb"

    def _check_open(self):
        if self.url is None:
            raise InvalidArgument("handle is not bound to an address")
        if self._closed:
            raise InvalidArgument("I/O operation on closed file")

    def read(self, size: int = -1) -> bytes:
        """Read up to size bytes (everything when negative)."""
        self._check_open()
        if not self.readable():
            raise InvalidArgument("file not open for reading")
        if self._buffer is None:
            self._buffer = io.BytesIO(self._fetch())
        return self._buffer.read(size)

    def _fetch(self) -> bytes:
        resp, body = _request(
            "GET", self.url, timeout=self.timeout, headers={"Accept-Encoding": "gzip"}
        )
        return _decode(body, resp.headers.get("Content-Encoding"))

    def write(self, data: bytes) -> int:
        """Append data to the content uploaded on flush or close."""
        self._check_open()
        if not self.writable():
            raise InvalidArgument("file not open for writing")
        self._dirty = True
        return self._buffer.write(data)

    def flush(self) -> None:
        """Upload the content written so far."""
        self._check_open()
        if self.writable():
            self._upload()

    def _upload(self):
        payload = gzip.compress(self._buffer.getvalue())
        _request(
            "POST",
            self.url,
            timeout=self.timeout,
            data=payload,
            headers={
                "Content-Encoding": "gzip",
                "Content-Type": "application/octet-stream",
            },
        )
        self._dirty = False
        self._uploaded = True

    def close(self) -> None:
        """Close the handle, uploading pending content first."""
        if self.url is None:
            raise InvalidArgument("handle is not bound to an address")
        if self._closed:
            return
        try:
            if self.writable() and (self._dirty or not self._uploaded):
                self._upload()
        finally:
            self._closed = True
            self._buffer = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None:
            self.close()
        else:
            # Do not upload half-written content.
            self._closed = True
            self._buffer = None

    def __repr__(self):
        return f"<RemoteFile url={self.url!r} mode={self.mode!r}>"


def open(address: str, timeout: Optional[float] = None) -> RemoteFile:
    """Open a remote file for reading."""
    if not address:
        raise InvalidArgument("address is required")
    return RemoteFile(address, "rb", timeout=timeout)


def create(address: str, timeout: Optional[float] = None) -> RemoteFile:
    """Create (or truncate) a remote file for writing."""
    if not address:
        raise InvalidArgument("address is required")
    return RemoteFile(address, "wb", timeout=timeout)


def remove(address: str, timeout: Optional[float] = None) -> None:
    """Delete a remote file.

    Raises NotFound when it does not exist and Forbidden for directories.
    """
    if not address:
        raise InvalidArgument("address is required")
    _request("DELETE", convert_address(address), timeout=timeout)
