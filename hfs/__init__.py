# SPDX-FileCopyrightText: 2025 - Canonical Ltd
# SPDX-License-Identifier: Apache-2.0
"""HTTP file sharing: a directory served over HTTP and its hfs:// client."""

__version__ = "1.0.0"
