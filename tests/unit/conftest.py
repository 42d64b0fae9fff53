# SPDX-FileCopyrightText: 2025 - Canonical Ltd
# SPDX-License-Identifier: Apache-2.0

from pathlib import Path

import pytest

from hfs.fileserver import FileServerService, ServerOptions, make_application


@pytest.fixture
def root(tmp_path: Path) -> Path:
    """Directory served by the application under test."""
    served = tmp_path / "root"
    served.mkdir()
    return served


@pytest.fixture
def make_app(root: Path):
    """Factory building an application over ``root`` with option overrides."""

    def _make(**overrides):
        options = ServerOptions(root=str(root), app_name="hfs-test", **overrides)
        return make_application(options)

    return _make


@pytest.fixture
def app(make_app):
    return make_app(dir_listing=True)


@pytest.fixture
def live_server(root: Path, monkeypatch: pytest.MonkeyPatch):
    """A file server listening on an ephemeral localhost port."""
    for var in ("http_proxy", "https_proxy", "all_proxy"):
        monkeypatch.delenv(var, raising=False)
        monkeypatch.delenv(var.upper(), raising=False)
    options = ServerOptions(root=str(root), host="127.0.0.1", port=0, dir_listing=True)
    svc = FileServerService(make_application(options), options.host, options.port, grace_period=5)
    svc.start()
    yield f"127.0.0.1:{svc.port}"
    svc.stop()
    svc.wait()
