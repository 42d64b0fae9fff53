# SPDX-FileCopyrightText: 2025 - Canonical Ltd
# SPDX-License-Identifier: Apache-2.0
"""Fileserver package exposing a directory over HTTP.

GET fetches files (or directory listings), POST creates or overwrites
them and DELETE removes them. The matching client lives in
:mod:`hfs.client`.
"""

from .schemas import ServerOptions
from .server import FileServerApplication, FileServerService, make_application

__all__ = [
    "FileServerApplication",
    "FileServerService",
    "ServerOptions",
    "make_application",
]
