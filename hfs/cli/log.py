# SPDX-FileCopyrightText: 2025 - Canonical Ltd
# SPDX-License-Identifier: Apache-2.0

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def setup_root_logging(verbose: bool = False) -> None:
    """Send log records to stderr, at debug level when verbose."""
    root = logging.getLogger()
    level = logging.DEBUG if verbose else logging.WARNING
    root.setLevel(level)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    # requests/urllib3 are chatty at debug level.
    logging.getLogger("urllib3").setLevel(logging.INFO if verbose else logging.WARNING)
