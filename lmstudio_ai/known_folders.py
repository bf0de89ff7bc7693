"""
Lookup of well-known user folders (Pictures, Desktop, Documents, Downloads).
"""

import os
import re
import sys
from typing import Optional

from .logging_setup import get_logger

logger = get_logger(__name__)

# Registry value names under "User Shell Folders" on Windows
_WINDOWS_SHELL_FOLDERS = {
    "Pictures": "My Pictures",
    "Desktop": "Desktop",
    "Documents": "Personal",
    "Downloads": "{374DE290-123F-4565-9164-39C4925E467B}",
    "Music": "My Music",
    "Videos": "My Video",
}

# XDG_*_DIR keys in ~/.config/user-dirs.dirs
_XDG_USER_DIRS = {
    "Pictures": "XDG_PICTURES_DIR",
    "Desktop": "XDG_DESKTOP_DIR",
    "Documents": "XDG_DOCUMENTS_DIR",
    "Downloads": "XDG_DOWNLOAD_DIR",
    "Music": "XDG_MUSIC_DIR",
    "Videos": "XDG_VIDEOS_DIR",
}


class KnownFolderError(LookupError):
    """Raised when the operating system cannot report a known folder."""


def _windows_known_folder(name: str) -> str:
    import winreg

    value_name = _WINDOWS_SHELL_FOLDERS[name]
    key_path = r"Software\Microsoft\Windows\CurrentVersion\Explorer\User Shell Folders"
    with winreg.OpenKey(winreg.HKEY_CURRENT_USER, key_path) as key:
        value, _ = winreg.QueryValueEx(key, value_name)
    return os.path.expandvars(value)


def _xdg_known_folder(name: str, config_home: Optional[str] = None) -> str:
    config_home = config_home or os.environ.get("XDG_CONFIG_HOME") or os.path.expanduser("~/.config")
    user_dirs = os.path.join(config_home, "user-dirs.dirs")
    key = _XDG_USER_DIRS[name]

    with open(user_dirs, "r", encoding="utf-8") as f:
        for line in f:
            match = re.match(rf'^\s*{key}="(.*)"\s*$', line)
            if match:
                return match.group(1).replace("$HOME", os.path.expanduser("~"))

    raise KnownFolderError(f"{key} not set in {user_dirs}")


def get_known_folder_path(name: str) -> str:
    """
    Ask the operating system where a well-known folder lives.

    Args:
        name: Folder name: Pictures, Desktop, Documents, Downloads, Music or Videos

    Returns:
        Absolute folder path

    Raises:
        KnownFolderError: If the platform query fails or the name is unknown
    """
    if name not in _XDG_USER_DIRS:
        raise KnownFolderError(f"Unknown folder name: {name}")

    try:
        if sys.platform == "win32":
            path = _windows_known_folder(name)
        elif sys.platform == "darwin":
            path = os.path.join(os.path.expanduser("~"), name)
            if not os.path.isdir(path):
                raise KnownFolderError(f"{path} does not exist")
        else:
            path = _xdg_known_folder(name)
    except KnownFolderError:
        raise
    except (OSError, KeyError) as e:
        raise KnownFolderError(f"Could not query known folder {name}: {str(e)}") from e

    return os.path.abspath(path)


def known_folder_or_default(name: str) -> str:
    """
    Known folder path, or ``~/<name>`` when the platform query fails.

    The OS query is always tried first because localized folder names do not
    match the literal fallback.
    """
    try:
        return get_known_folder_path(name)
    except KnownFolderError as e:
        logger.debug(f"Known folder lookup failed, using home-relative path: {str(e)}")
        return os.path.join(os.path.expanduser("~"), name)
