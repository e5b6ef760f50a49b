"""Application-local paths, with portable mode support."""

import os
import sys
from pathlib import Path

from shared.constants import APP_DIR_NAME, HOME_FALLBACK_DIR_NAME


def is_portable_mode() -> bool:
    """
    Check whether the application runs in portable mode.

    Portable mode is enabled when the executable name contains '_portable',
    e.g. SlippyMap_portable.exe

    Returns:
        bool: True in portable mode, False otherwise

    """
    exe_name = Path(sys.argv[0]).name.lower()
    return '_portable' in exe_name


def get_app_dir() -> Path:
    """
    Return the directory of the running executable.

    Returns:
        Path: Application directory

    """
    return Path(sys.argv[0]).resolve().parent


def get_local_data_dir() -> Path:
    """
    Return the per-user data directory.

    Portable mode keeps everything next to the executable. Otherwise
    %LOCALAPPDATA%/SlippyMap is used, falling back to ~/.slippymap when
    LOCALAPPDATA is not set (non-Windows systems).
    """
    if is_portable_mode():
        return get_app_dir()

    local = os.getenv('LOCALAPPDATA')
    if local:
        return (Path(local) / APP_DIR_NAME).resolve()
    return (Path.home() / HOME_FALLBACK_DIR_NAME).resolve()
