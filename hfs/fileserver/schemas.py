# SPDX-FileCopyrightText: 2025 - Canonical Ltd
# SPDX-License-Identifier: Apache-2.0
"""Pydantic schema for the file server settings."""
from typing import Optional

from oslo_config import cfg
from oslo_service import sslutils
from pydantic import BaseModel, ConfigDict, Field

DEFAULT_APP_NAME = "hfs"


class ServerOptions(BaseModel):
    """Settings of a running file server.

    Built once at startup and handed to the WSGI application; never
    modified afterwards.
    """

    model_config = ConfigDict(frozen=True)

    root: str = Field(default=".", description="Directory exposed over HTTP")
    host: str = Field(default="0.0.0.0", description="Listen address")
    port: int = Field(default=3030, ge=0, le=65535, description="TCP listen port")
    dir_listing: bool = Field(default=False, description="Render directory listings")
    compression: bool = Field(default=True, description="Compress GET responses on request")
    verbose: bool = Field(default=False, description="Log every exchange at INFO level")
    app_name: str = Field(default=DEFAULT_APP_NAME, description="Value of the Server header")
    cert_file: Optional[str] = Field(default=None, description="TLS certificate file")
    key_file: Optional[str] = Field(default=None, description="TLS private key file")

    @property
    def tls_enabled(self) -> bool:
        """Whether both halves of the TLS key pair are configured."""
        return bool(self.cert_file and self.key_file)

    @classmethod
    def from_conf(cls, conf: cfg.ConfigOpts) -> "ServerOptions":
        """Build the options from a parsed oslo.config object.

        Raises RuntimeError when the TLS files are configured but missing.
        """
        group = conf.fileserver
        cert_file = key_file = None
        if sslutils.is_enabled(conf):
            cert_file = conf.ssl.cert_file
            key_file = conf.ssl.key_file
        return cls(
            root=group.root,
            host=group.host,
            port=group.port,
            dir_listing=group.dir_listing,
            compression=group.compression,
            verbose=group.verbose,
            app_name=group.app_name or DEFAULT_APP_NAME,
            cert_file=cert_file,
            key_file=key_file,
        )
