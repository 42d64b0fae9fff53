# SPDX-FileCopyrightText: 2025 - Canonical Ltd
# SPDX-License-Identifier: Apache-2.0
"""HTML directory listings for the file server."""

import os
from pathlib import Path
from typing import List, NamedTuple

import jinja2

INDEX_DOCUMENT = "index.html"

DIR_LISTING_TEMPLATE = """\
<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>Index of {{ name }}</title>
<style type="text/css">
a, a:active {text-decoration: none; color: blue;}
a:visited {color: #48468F;}
a:hover, a:focus {text-decoration: underline; color: red;}
body {background-color: #F5F5F5;}
h2 {margin-bottom: 12px;}
table {margin-left: 12px;}
th, td {font: 90% monospace; text-align: left;}
th {font-weight: bold; padding-right: 14px; padding-bottom: 3px;}
td {padding-right: 14px;}
div.list {background-color: white; border-top: 1px solid #646464; \
border-bottom: 1px solid #646464; padding-top: 10px; padding-bottom: 14px;}
div.foot {font: 90% monospace; color: #787878; padding-top: 4px;}
</style>
</head>
<body>
<h2>Index of {{ name }}</h2>
<div class="list">
<table summary="Directory Listing" cellpadding="0" cellspacing="0">
<thead><tr><th class="n">Name</th><th class="t">Type</th><th class="dl">Options</th></tr></thead>
<tbody>
<tr><td class="n"><a href="../">Parent Directory</a>/</td><td class="t">Directory</td>\
<td class="dl"></td></tr>
{% for dir in dirs %}
<tr><td class="n"><a href="{{ dir|urlencode }}/">{{ dir }}/</a></td><td class="t">Directory</td>\
<td class="dl"></td></tr>
{% endfor %}
{% for file in files %}
<tr><td class="n"><a href="{{ file|urlencode }}">{{ file }}</a></td><td class="t">&nbsp;</td>\
<td class="dl"><a href="{{ file|urlencode }}?dl">Download</a></td></tr>
{% endfor %}
</tbody>
</table>
</div>
<div class="foot">{{ server_name }}</div>
</body>
</html>
"""

_env = jinja2.Environment(autoescape=True)


class DirListing(NamedTuple):
    """Visible content of a directory, split by entry type."""

    dirs: List[str]
    files: List[str]


def has_index(path: Path) -> bool:
    """Return True when the directory holds an index document."""
    with os.scandir(path) as it:
        return any(entry.name == INDEX_DOCUMENT for entry in it)


def list_directory(path: Path) -> DirListing:
    """Partition a directory into subdirectories and files.

    Dot entries are hidden. Both lists are sorted by name.
    """
    dirs = []
    files = []
    with os.scandir(path) as it:
        for entry in it:
            if entry.name.startswith("."):
                continue
            if entry.is_dir():
                dirs.append(entry.name)
            else:
                files.append(entry.name)
    return DirListing(sorted(dirs), sorted(files))


def render_listing(name: str, listing: DirListing, server_name: str) -> str:
    """Render the HTML page for a directory listing.

    Raises jinja2.TemplateError when rendering fails.
    """
    template = _env.from_string(DIR_LISTING_TEMPLATE)
    return template.render(
        name=name,
        dirs=listing.dirs,
        files=listing.files,
        server_name=server_name,
    )
