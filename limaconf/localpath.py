"""Expansion of local paths that start with a tilde."""

from __future__ import annotations

import os
from pathlib import Path


class PathExpansionError(ValueError):
    """A local path cannot be expanded."""


def expand(orig: str) -> str:
    """Expand "~", "~/" and "~/foo" and make the path absolute.

    Paths such as "~foo/bar" are not supported.
    """
    if not orig:
        raise PathExpansionError("empty path")
    path = orig
    if path.startswith("~"):
        if path == "~" or path.startswith("~/"):
            path = str(Path.home()) + path[1:]
        else:
            raise PathExpansionError(f'unexpandable path "{orig}"')
    return os.path.abspath(path)