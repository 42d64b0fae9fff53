# SPDX-FileCopyrightText: 2025 - Canonical Ltd
# SPDX-License-Identifier: Apache-2.0

import gzip
import os
import zlib
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import requests

from hfs import client


@pytest.mark.parametrize(
    "address,expected",
    [
        ("hfs://localhost:3030/dir/file.ext", "http://localhost:3030/dir/file.ext"),
        ("hfss://localhost:3030/dir/secure_file.ext", "https://localhost:3030/dir/secure_file.ext"),
        ("localhost:3030/dir/file.ext", "http://localhost:3030/dir/file.ext"),
        ("example.com/hfs://x", "http://example.com/hfs://x"),
    ],
)
def test_convert_address(address, expected):
    assert client.convert_address(address) == expected


def test_is_secure_uses_translated_address():
    assert client.is_secure(client.convert_address("hfss://host/f"))
    assert not client.is_secure(client.convert_address("hfs://host/f"))
    assert not client.is_secure(client.convert_address("host/f"))


def test_secure_session_skips_verification():
    assert client._session(True).verify is False
    assert client._session(False).verify is True


def test_handle_remembers_transport():
    assert client.open("hfss://host/f").secure
    assert not client.create("hfs://host/f").secure


class TestDecode:
    """Tests for undoing response transfer encodings."""

    def test_gzip(self):
        assert client._decode(gzip.compress(b"abc"), "gzip") == b"abc"

    def test_deflate(self):
        assert client._decode(zlib.compress(b"abc"), "deflate") == b"abc"

    def test_identity(self):
        assert client._decode(b"abc", None) == b"abc"
        assert client._decode(b"abc", "identity") == b"abc"

    def test_invalid_gzip(self):
        with pytest.raises(client.ProtocolError):
            client._decode(b"plain text", "gzip")

    def test_unsupported(self):
        with pytest.raises(client.ProtocolError):
            client._decode(b"???", "br")


class TestRemoteFile:
    """Tests for client handles with the transport mocked out."""

    @pytest.fixture
    def request_mock(self, mocker):
        response = MagicMock()
        response.headers = {"Content-Encoding": "gzip"}
        return mocker.patch(
            "hfs.client._request", return_value=(response, gzip.compress(b"remote data"))
        )

    def test_read_requests_gzip(self, request_mock):
        handle = client.open("hfs://host:3030/a.txt")
        assert handle.read(6) == b"remote"
        assert handle.read() == b" data"
        request_mock.assert_called_once_with(
            "GET", "http://host:3030/a.txt", timeout=None, headers={"Accept-Encoding": "gzip"}
        )

    def test_read_invalid_gzip_body(self, request_mock):
        request_mock.return_value = (request_mock.return_value[0], b"not gzip")
        with pytest.raises(client.ProtocolError):
            client.open("hfs://host/a.txt").read()

    def test_write_sends_gzip_on_close(self, request_mock):
        handle = client.create("hfss://host/out.bin")
        handle.write(b"part one, ")
        handle.write(b"part two")
        request_mock.assert_not_called()
        handle.close()

        request_mock.assert_called_once()
        args, kwargs = request_mock.call_args
        assert args == ("POST", "https://host/out.bin")
        assert kwargs["headers"]["Content-Encoding"] == "gzip"
        assert gzip.decompress(kwargs["data"]) == b"part one, part two"

    def test_flush_uploads_once(self, request_mock):
        handle = client.create("hfs://host/out.bin")
        handle.write(b"x")
        handle.flush()
        handle.close()
        assert request_mock.call_count == 1

    def test_close_without_write_creates_empty_file(self, request_mock):
        client.create("hfs://host/empty").close()
        kwargs = request_mock.call_args.kwargs
        assert gzip.decompress(kwargs["data"]) == b""

    def test_exception_in_context_skips_upload(self, request_mock):
        with pytest.raises(RuntimeError):
            with client.create("hfs://host/out.bin") as handle:
                handle.write(b"half")
                raise RuntimeError("interrupted")
        request_mock.assert_not_called()

    def test_close_unbound_handle(self):
        with pytest.raises(client.InvalidArgument):
            client.RemoteFile(None).close()

    def test_use_after_close(self, request_mock):
        handle = client.open("hfs://host/a.txt")
        handle.close()
        handle.close()
        with pytest.raises(client.InvalidArgument):
            handle.read()

    def test_wrong_direction(self, request_mock):
        with pytest.raises(client.InvalidArgument):
            client.open("hfs://host/a.txt").write(b"x")
        with pytest.raises(client.InvalidArgument):
            client.create("hfs://host/a.txt").read()

    @pytest.mark.parametrize("func", [client.open, client.create, client.remove])
    def test_empty_address(self, func):
        with pytest.raises(client.InvalidArgument):
            func("")

    def test_remove_translates_address(self, request_mock):
        client.remove("hfs://host/a.txt")
        request_mock.assert_called_once_with("DELETE", "http://host/a.txt", timeout=None)


class TestRequest:
    """Tests for status and transport error mapping."""

    def _response(self, mocker, status, body=b""):
        response = MagicMock()
        response.status_code = status
        response.raw.read.return_value = body
        session = MagicMock()
        session.__enter__.return_value = session
        session.request.return_value = response
        response.__enter__.return_value = response
        mocker.patch("hfs.client._session", return_value=session)
        return session

    @pytest.mark.parametrize(
        "status,error",
        [(404, client.NotFound), (403, client.Forbidden), (500, client.RemoteError)],
    )
    def test_error_status(self, mocker, status, error):
        self._response(mocker, status, b'{"detail": "nope"}')
        with pytest.raises(error) as exc_info:
            client._request("GET", "http://host/x")
        assert exc_info.value.status == status
        assert exc_info.value.detail == "nope"

    def test_plain_error_body(self, mocker):
        self._response(mocker, 502, b"Bad Gateway\n")
        with pytest.raises(client.RemoteError) as exc_info:
            client._request("GET", "http://host/x")
        assert exc_info.value.detail == "Bad Gateway"

    def test_transport_error(self, mocker):
        session = self._response(mocker, 200)
        session.request.side_effect = requests.ConnectionError("refused")
        with pytest.raises(client.TransportError):
            client._request("GET", "http://host/x")

    def test_raw_body_not_decoded(self, mocker):
        session = self._response(mocker, 200, b"\x1f\x8b...")
        _, body = client._request("GET", "http://host/x")
        assert body == b"\x1f\x8b..."
        session.request.return_value.raw.read.assert_called_once_with(decode_content=False)


class TestLiveServer:
    """Round trips against a real server on localhost."""

    @pytest.mark.parametrize(
        "content",
        [b"", b"test dummy content", bytes(range(256)) * 64, os.urandom(200_000)],
        ids=["empty", "text", "binary", "large"],
    )
    def test_round_trip(self, live_server, content):
        address = f"hfs://{live_server}/dir/test.bin"
        with client.create(address) as handle:
            handle.write(content)
        with client.open(address) as handle:
            assert handle.read() == content

    def test_bare_address(self, live_server, root: Path):
        with client.create(f"{live_server}/bare.txt") as handle:
            handle.write(b"bare")
        assert (root / "bare.txt").read_bytes() == b"bare"

    def test_stored_bytes_match(self, live_server, root: Path):
        with client.create(f"hfs://{live_server}/stored.txt") as handle:
            handle.write(b"exact bytes")
        assert (root / "stored.txt").read_bytes() == b"exact bytes"

    def test_read_existing_binary_file(self, live_server, root: Path):
        (root / "photo.jpg").write_bytes(b"\xff\xd8 not really a jpeg")
        with client.open(f"hfs://{live_server}/photo.jpg") as handle:
            assert handle.read() == b"\xff\xd8 not really a jpeg"

    def test_remove(self, live_server, root: Path):
        (root / "gone.txt").write_bytes(b"x")
        client.remove(f"hfs://{live_server}/gone.txt")
        assert not (root / "gone.txt").exists()
        with pytest.raises(client.NotFound):
            client.remove(f"hfs://{live_server}/gone.txt")

    def test_open_missing(self, live_server):
        with pytest.raises(client.NotFound):
            client.open(f"hfs://{live_server}/missing.txt").read()

    def test_remove_directory(self, live_server, root: Path):
        (root / "adir").mkdir()
        with pytest.raises(client.Forbidden):
            client.remove(f"hfs://{live_server}/adir")
