"""Executable discovery utilities for zest.

Plugins are plain executables. They are looked up in the service directory
first and then on the system PATH, using the search path computed once in
the Config rather than a mutated PATH environment variable.

Functions:
    find_executable: Locate an executable on an explicit search path.
"""

from __future__ import annotations

import os
import shutil


def find_executable(name: str, search_path: str | None = None) -> str | None:
    """Find an executable on ``search_path``.

    Args:
        name: Name of the executable (e.g. 'date', or a plugin in .zest/).
        search_path: os.pathsep separated directories, searched in order.
            Defaults to the PATH environment variable.

    Returns:
        Full path to the executable if found, None otherwise.

    Examples:
        >>> find_executable('sh', '/my/site/.zest:/usr/bin:/bin')
        '/bin/sh'
    """
    # Names with a directory part are never searched for.
    if os.path.dirname(name):
        return name if os.access(name, os.X_OK) and os.path.isfile(name) else None
    return shutil.which(name, path=search_path)
