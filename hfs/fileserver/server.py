# SPDX-FileCopyrightText: 2025 - Canonical Ltd
# SPDX-License-Identifier: Apache-2.0
"""WSGI server exposing a directory over HTTP (threaded backend).

This module exposes a minimal WebOb-based WSGI application, hosted with a
threaded ``wsgiref`` server and run under an ``oslo_service`` launcher.
GET serves files (conditional GET, start-offset ranges, gzip/deflate
responses, directory listings), POST stores the request body (optionally
gzip or deflate encoded) and DELETE removes a single file. TLS support is
configured via ``oslo_service.sslutils`` and ``oslo_config``.
"""

import mimetypes
import os
import ssl
import stat
import threading
import zlib
from datetime import datetime, timezone
from pathlib import Path
from socketserver import ThreadingMixIn
from typing import Any, Dict, Optional
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

import jinja2
from oslo_config import cfg
from oslo_log import log as logging
from oslo_service import service, sslutils
from webob import Request, Response

from hfs import __version__

from .listing import INDEX_DOCUMENT, has_index, list_directory, render_listing
from .schemas import DEFAULT_APP_NAME, ServerOptions
from .utils import (
    OCTET_STREAM,
    FileIterator,
    FileServerError,
    ForbiddenError,
    InternalError,
    NotFoundError,
    copy_decoded,
    is_forbidden_mode,
    is_special_mode,
    is_within,
    negotiate_encoding,
    parse_range,
    resolve_path,
)

LOG = logging.getLogger(__name__)


fileserver_opts = [
    cfg.StrOpt(
        "root",
        default=os.environ.get("HFS_ROOT", "."),
        help="Directory exposed by the file server",
    ),
    cfg.StrOpt(
        "host",
        default=os.environ.get("HFS_HOST", "0.0.0.0"),
        help="Listen address for the file server",
    ),
    cfg.IntOpt(
        "port",
        default=int(os.environ.get("HFS_PORT", "3030")),
        min=0,
        max=65535,
        help="TCP listen port for the file server",
    ),
    cfg.BoolOpt(
        "dir-listing",
        default=False,
        help="Render an HTML listing when a directory is requested",
    ),
    cfg.BoolOpt(
        "compression",
        default=True,
        help="Compress GET responses when the client accepts gzip or deflate",
    ),
    cfg.BoolOpt(
        "verbose",
        default=False,
        help="Log every request at INFO level and enable debug logging",
    ),
    cfg.StrOpt(
        "app-name",
        default=DEFAULT_APP_NAME,
        help="Server identity sent in the Server header and listing footer",
    ),
]

CONF = cfg.CONF
CONF.register_cli_opts(fileserver_opts, group="fileserver")
sslutils.register_opts(CONF)


def _ok(payload: Dict[str, Any]) -> Response:
    """Return a JSON 200 OK response with the provided payload."""
    return Response(json_body=payload)


def _error(status: int, detail: str) -> Response:
    """Return a JSON error response with the given HTTP status and detail."""
    return Response(json_body={"detail": detail}, status=status)


class FileServerApplication:
    """WSGI application serving, storing and removing files under a root."""

    def __init__(self, options: ServerOptions):
        self._options = options
        self._root = Path(options.root).absolute()

    @property
    def options(self) -> ServerOptions:
        return self._options

    def __call__(self, environ, start_response):
        """WSGI application callable."""
        request = Request(environ)
        try:
            response = self._route(request)
            response.headers["Server"] = self._options.app_name
        finally:
            self._log_exchange(request)
        return response(environ, start_response)

    def _log_exchange(self, request: Request) -> None:
        log = LOG.info if self._options.verbose else LOG.debug
        try:
            url = request.url
        except UnicodeDecodeError:
            url = request.host_url + request.environ.get("PATH_INFO", "")
        log(
            '"%s %s %s" "%s" "%s"',
            request.method,
            url,
            request.environ.get("SERVER_PROTOCOL", "HTTP/1.0"),
            request.referer or "",
            request.user_agent or "",
        )

    def _route(self, request: Request) -> Response:
        """Dispatch the request to the handler for its method."""
        try:
            path = resolve_path(self._root, request.path_info)
        except UnicodeDecodeError:
            # Names on disk are only addressable as UTF-8.
            return _error(NotFoundError.status, NotFoundError.detail)
        if path is None:
            return _error(403, "Not Allowed: Path is outside of the served directory")
        try:
            if request.method == "GET":
                return self.serve_file(path, request)
            if request.method == "POST":
                return self.handle_upload(path, request)
            if request.method == "DELETE":
                return self.handle_remove(path, request)
        except FileServerError as exc:
            return _error(exc.status, exc.detail)
        except Exception as exc:
            LOG.exception("%s %s failed: %s", request.method, request.path_info, exc)
            return _error(500, "Internal Error")
        return Response()

    def serve_file(self, path: Path, request: Request) -> Response:
        """Serve a file, or a directory listing when path is a directory."""
        try:
            statinfo = os.stat(path)
        except (FileNotFoundError, NotADirectoryError):
            raise NotFoundError()
        except OSError as exc:
            LOG.error("stat %s failed: %s", path, exc)
            raise InternalError()

        if stat.S_ISDIR(statinfo.st_mode):
            if not self._options.dir_listing:
                raise ForbiddenError("Not Allowed: Directory listing is forbidden")
            return self.handle_directory(path, request)

        if is_forbidden_mode(statinfo.st_mode) or is_special_mode(statinfo.st_mode):
            raise ForbiddenError()

        mtime = int(statinfo.st_mtime)
        since = request.if_modified_since
        if since is not None and mtime <= int(since.timestamp()):
            return Response(status=304)

        headers = {"Content-Type": self._content_type(path, request)}
        size = statinfo.st_size
        start = 0
        range_header = request.headers.get("Range")
        if range_header:
            start = parse_range(range_header)
            if start < size:
                headers["Content-Range"] = "bytes %d-%d/%d" % (start, size - 1, size)
            else:
                start = 0

        encoder = negotiate_encoding(
            request.headers.get("Accept-Encoding") if self._options.compression else None
        )()
        if encoder.name:
            headers["Content-Encoding"] = encoder.name

        try:
            fp = open(path, "rb")
        except FileNotFoundError:
            raise NotFoundError()
        except OSError as exc:
            LOG.error("open %s failed: %s", path, exc)
            raise InternalError()
        try:
            fp.seek(start)
        except OSError as exc:
            fp.close()
            LOG.error("seek %s failed: %s", path, exc)
            raise InternalError()

        response = Response(app_iter=FileIterator(fp, size - start, encoder))
        for name, value in headers.items():
            response.headers[name] = value
        response.last_modified = datetime.fromtimestamp(mtime, tz=timezone.utc)
        if not encoder.name:
            response.content_length = size - start
        return response

    def _content_type(self, path: Path, request: Request) -> str:
        if "dl" in request.GET:
            return OCTET_STREAM
        mimetype, _ = mimetypes.guess_type(path.name)
        return mimetype or OCTET_STREAM

    def handle_directory(self, path: Path, request: Request) -> Response:
        """Serve the directory's index document or a generated listing."""
        try:
            if has_index(path):
                index = path / INDEX_DOCUMENT
                if not is_within(index, self._root):
                    raise ForbiddenError()
                return self.serve_file(index, request)
            listing = list_directory(path)
        except OSError as exc:
            LOG.error("listing %s failed: %s", path, exc)
            raise InternalError()

        try:
            page = render_listing(request.path_info or "/", listing, self._options.app_name)
        except jinja2.TemplateError as exc:
            LOG.error("rendering listing of %s failed: %s", path, exc)
            raise InternalError("500 Internal Error : Error while generating directory listing.")
        return Response(text=page, content_type="text/html", charset="utf-8")

    def handle_upload(self, path: Path, request: Request) -> Response:
        """Store the request body at path, decoding gzip or deflate bodies."""
        try:
            path.parent.mkdir(mode=0o777, parents=True, exist_ok=True)
        except OSError as exc:
            LOG.error("creating %s failed: %s", path.parent, exc)
            raise InternalError()

        try:
            fp = open(path, "wb")
        except OSError as exc:
            LOG.error("creating %s failed: %s", path, exc)
            raise InternalError()

        with fp:
            try:
                written = copy_decoded(
                    request.body_file, fp, request.headers.get("Content-Encoding")
                )
            except (OSError, zlib.error) as exc:
                LOG.error("writing %s failed: %s", path, exc)
                raise InternalError()

        LOG.debug("stored %d bytes in %s", written, path)
        return _ok({"uploaded": True, "path": request.path_info, "size": written})

    def handle_remove(self, path: Path, request: Request) -> Response:
        """Remove the single regular file at path."""
        try:
            statinfo = os.stat(path)
        except (FileNotFoundError, NotADirectoryError):
            raise NotFoundError()
        except OSError as exc:
            LOG.error("stat %s failed: %s", path, exc)
            raise InternalError()

        if stat.S_ISDIR(statinfo.st_mode):
            raise ForbiddenError("Not Allowed: Delete directory is forbidden")
        if is_forbidden_mode(statinfo.st_mode):
            raise ForbiddenError()

        try:
            path.unlink()
        except OSError as exc:
            LOG.error("removing %s failed: %s", path, exc)
            raise InternalError()
        return _ok({"removed": True, "path": request.path_info})


def make_application(options: Optional[ServerOptions] = None) -> FileServerApplication:
    """Return a WSGI application for the given options (defaults if None)."""
    return FileServerApplication(options or ServerOptions())


class _RequestHandler(WSGIRequestHandler):
    """Request handler sending wsgiref's own access log to debug."""

    def log_message(self, format, *args):
        LOG.debug("%s - %s", self.address_string(), format % args)


class ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    """Threading-based WSGI server that can wait for in-flight requests."""

    daemon_threads = True
    block_on_close = False

    def __init__(self, *args, **kwargs):
        self._active = 0
        self._idle = threading.Condition()
        super().__init__(*args, **kwargs)

    def process_request(self, request, client_address):
        with self._idle:
            self._active += 1
        try:
            super().process_request(request, client_address)
        except BaseException:
            self._done()
            raise

    def process_request_thread(self, request, client_address):
        try:
            super().process_request_thread(request, client_address)
        finally:
            self._done()

    def _done(self):
        with self._idle:
            self._active -= 1
            self._idle.notify_all()

    @property
    def active_requests(self) -> int:
        with self._idle:
            return self._active

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no request is being handled; False on timeout."""
        with self._idle:
            return self._idle.wait_for(lambda: self._active == 0, timeout)


def build_ssl_context(options: ServerOptions) -> Optional[ssl.SSLContext]:
    """Return a server TLS context when a key pair is configured."""
    if not options.tls_enabled:
        return None
    ssl_ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    ssl_ctx.load_cert_chain(options.cert_file, options.key_file)
    return ssl_ctx


class FileServerService(service.ServiceBase):
    """Threading-based WSGI service for the file server.

    Shutdown can be triggered by the launcher (on a signal) or by calling
    ``stop()`` directly; both set the same stop event. A graceful stop
    refuses new connections and then waits up to ``grace_period`` seconds
    for requests already being handled.
    """

    def __init__(
        self,
        app,
        host: str,
        port: int,
        ssl_context: Optional[ssl.SSLContext] = None,
        grace_period: Optional[float] = 60,
    ):
        self._app = app
        self._host = host
        self._port = port
        self._ssl_context = ssl_context
        self._grace_period = grace_period
        self._httpd = None
        self._thread = None
        self._stopped = threading.Event()

    @property
    def port(self) -> int:
        """Bound port; differs from the configured one when that was 0."""
        if self._httpd is not None:
            return self._httpd.server_port
        return self._port

    @property
    def stopped(self) -> threading.Event:
        return self._stopped

    def start(self):
        """Start the WSGI service."""
        self._stopped.clear()
        self._httpd = make_server(
            self._host,
            self._port,
            self._app,
            server_class=ThreadingWSGIServer,
            handler_class=_RequestHandler,
        )
        if self._ssl_context is not None:
            self._httpd.socket = self._ssl_context.wrap_socket(
                self._httpd.socket, server_side=True
            )
        self._thread = threading.Thread(
            target=self._httpd.serve_forever, name="hfs-fileserver", daemon=True
        )
        self._thread.start()
        LOG.info("server running on %s:%d", self._host, self.port)

    def stop(self, graceful=True):
        """Stop the WSGI service."""
        if self._stopped.is_set():
            return
        self._stopped.set()
        if self._httpd is None:
            return
        LOG.info("shutting down")
        self._httpd.shutdown()
        if graceful and not self._httpd.wait_idle(self._grace_period):
            LOG.warning(
                "%d request(s) still running after %ss grace period",
                self._httpd.active_requests,
                self._grace_period,
            )
        self._httpd.server_close()

    def wait(self):
        """Wait for the WSGI service to finish."""
        if self._thread is not None:
            self._thread.join()
        self._stopped.wait()

    def reset(self, exiting=False):
        """Reset service state (no-op)."""
        return


def main(argv=None):
    """Entry point of the ``hfs-server`` command."""
    logging.register_options(CONF)
    CONF(
        argv,
        project="hfs",
        prog="hfs-server",
        version=__version__,
    )
    if CONF.fileserver.verbose:
        CONF.set_override("debug", True)
    logging.setup(CONF, "hfs")

    options = ServerOptions.from_conf(CONF)
    ssl_ctx = build_ssl_context(options)
    if ssl_ctx is not None:
        LOG.info("TLS enabled for fileserver")
    else:
        LOG.info("TLS disabled for fileserver")
    LOG.info("serving %s", Path(options.root).absolute())

    # The launcher registers graceful_shutdown_timeout.
    launcher = service.ServiceLauncher(CONF)
    service_obj = FileServerService(
        make_application(options),
        options.host,
        options.port,
        ssl_ctx,
        grace_period=CONF.graceful_shutdown_timeout or None,
    )
    launcher.launch_service(service_obj, workers=1)
    launcher.wait()


if __name__ == "__main__":
    main()
