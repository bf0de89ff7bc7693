"""
Get/Set accessors for the image metadata preferences.

Each accessor resolves through ``PreferenceResolver`` so they all share the
explicit value > session > stored preference > default order.
"""

import os
from typing import List, Optional, Sequence

from .known_folders import known_folder_or_default
from .languages import get_default_language, validate_language
from .logging_setup import get_logger
from .preferences import PreferenceResolver
from .session import SessionMode
from .utils import expand_path, to_string_list

logger = get_logger(__name__)

AI_META_LANGUAGE = "AIMetaLanguage"
AI_KNOWN_FACES_ROOTPATH = "AIKnownFacesRootpath"
IMAGE_DIRECTORIES = "ImageDirectories"
IMAGE_INDEX_PATH = "ImageIndexPath"

DEFAULT_IMAGE_FOLDERS = ("Pictures", "Downloads")
DEFAULT_INDEX_FILENAME = "allimages.meta.db"


def _ensure_directory(path: str) -> None:
    if os.path.isdir(path):
        return
    try:
        os.makedirs(path, exist_ok=True)
        logger.debug(f"Created directory: {path}")
    except OSError as e:
        raise OSError(f"Failed to create directory '{path}': {str(e)}") from e


def _unique_paths(paths: Sequence[str]) -> List[str]:
    """Expanded paths in order, dropping case-insensitive duplicates."""
    result: List[str] = []
    seen = set()
    for path in paths:
        expanded = expand_path(path)
        key = os.path.normcase(expanded).lower()
        if key in seen:
            logger.debug(f"Directory already present: {expanded}")
            continue
        seen.add(key)
        result.append(expanded)
    return result


def default_faces_directory() -> str:
    return os.path.join(known_folder_or_default("Pictures"), "Faces")


def default_image_directories() -> List[str]:
    return [known_folder_or_default(name) for name in DEFAULT_IMAGE_FOLDERS]


def default_image_index_path(resolver: PreferenceResolver) -> str:
    """The index database lives next to the preferences database by default."""
    store_dir = os.path.dirname(resolver.store().db_path)
    return os.path.join(store_dir, DEFAULT_INDEX_FILENAME)


def get_ai_meta_language(resolver: PreferenceResolver, language: Optional[str] = None,
                         mode: SessionMode = SessionMode.DEFAULT,
                         preferences_db_path: Optional[str] = None) -> str:
    """
    Language used for AI generated image descriptions and keywords.

    Args:
        resolver: Preference resolver
        language: Explicit language, returned as is when given
        mode: Session handling for the lookup
        preferences_db_path: Preferences database override

    Returns:
        Language name
    """
    if language and language.strip():
        return validate_language(language)

    return resolver.resolve(
        AI_META_LANGUAGE,
        mode=mode,
        default=get_default_language(),
        preferences_db_path=preferences_db_path
    )


def set_ai_meta_language(resolver: PreferenceResolver, language: Optional[str] = None,
                         mode: SessionMode = SessionMode.DEFAULT,
                         preferences_db_path: Optional[str] = None) -> None:
    """
    Store the metadata language. Without a language the locale default is stored.

    Raises:
        ValueError: If the language is not supported
    """
    if mode is SessionMode.CLEAR_SESSION:
        resolver.assign(AI_META_LANGUAGE, None, mode)
        return

    value = validate_language(language) if language and language.strip() else get_default_language()
    resolver.assign(AI_META_LANGUAGE, value, mode, preferences_db_path)


def get_ai_known_faces_rootpath(resolver: PreferenceResolver, faces_directory: Optional[str] = None,
                                mode: SessionMode = SessionMode.DEFAULT,
                                preferences_db_path: Optional[str] = None) -> str:
    """Directory holding one sub-folder of reference images per known person."""
    value = resolver.resolve(
        AI_KNOWN_FACES_ROOTPATH,
        requested=faces_directory,
        mode=mode,
        default=default_faces_directory(),
        preferences_db_path=preferences_db_path
    )
    return expand_path(value)


def set_ai_known_faces_rootpath(resolver: PreferenceResolver, faces_directory: Optional[str] = None,
                                mode: SessionMode = SessionMode.DEFAULT,
                                preferences_db_path: Optional[str] = None) -> None:
    """
    Store the faces directory, creating it when missing.

    Without a directory, ``<Pictures>/Faces`` is stored.

    Raises:
        OSError: If the directory cannot be created
    """
    if mode is SessionMode.CLEAR_SESSION:
        resolver.assign(AI_KNOWN_FACES_ROOTPATH, None, mode)
        return

    path = expand_path(faces_directory) if faces_directory and faces_directory.strip() \
        else default_faces_directory()
    _ensure_directory(path)
    resolver.assign(AI_KNOWN_FACES_ROOTPATH, path, mode, preferences_db_path)


def get_image_directories(resolver: PreferenceResolver, image_directories: Optional[Sequence[str]] = None,
                          mode: SessionMode = SessionMode.DEFAULT,
                          preferences_db_path: Optional[str] = None) -> List[str]:
    """Directories that make up the image collection."""
    value = resolver.resolve(
        IMAGE_DIRECTORIES,
        requested=to_string_list(image_directories),
        mode=mode,
        default=default_image_directories(),
        preferences_db_path=preferences_db_path
    )
    return _unique_paths(to_string_list(value))


def set_image_directories(resolver: PreferenceResolver, image_directories: Optional[Sequence[str]] = None,
                          mode: SessionMode = SessionMode.DEFAULT,
                          preferences_db_path: Optional[str] = None) -> None:
    """
    Replace the image collection.

    Raises:
        ValueError: If no directories are given and the session is not being cleared
    """
    if mode is SessionMode.CLEAR_SESSION:
        resolver.assign(IMAGE_DIRECTORIES, None, mode)
        return

    directories = to_string_list(image_directories)
    if not directories:
        raise ValueError("image_directories is required when not clearing the session")

    resolver.assign(IMAGE_DIRECTORIES, _unique_paths(directories), mode, preferences_db_path)


def add_image_directories(resolver: PreferenceResolver, image_directories: Sequence[str],
                          mode: SessionMode = SessionMode.DEFAULT,
                          preferences_db_path: Optional[str] = None) -> List[str]:
    """
    Append directories to the current image collection.

    The current collection is read with the same session mode that is used
    for the write, so a session-only add extends the session list.

    Returns:
        The complete collection after the add
    """
    directories = to_string_list(image_directories)
    if not directories:
        raise ValueError("image_directories is required")

    current = get_image_directories(resolver, mode=mode, preferences_db_path=preferences_db_path)
    logger.debug(f"Current image directories: [{', '.join(current)}]")

    combined = _unique_paths(current + directories)
    if mode is SessionMode.CLEAR_SESSION:
        # Reading already dropped the session copy; nothing is written
        return combined

    set_image_directories(resolver, combined, mode, preferences_db_path)
    logger.info(f"Added {len(directories)} directories to image directories configuration. "
                f"Total directories: {len(combined)}")
    return combined


def get_image_index_path(resolver: PreferenceResolver, database_file_path: Optional[str] = None,
                         mode: SessionMode = SessionMode.DEFAULT,
                         preferences_db_path: Optional[str] = None) -> str:
    """Location of the image index database."""
    value = resolver.resolve(
        IMAGE_INDEX_PATH,
        requested=database_file_path,
        mode=mode,
        default=default_image_index_path(resolver),
        preferences_db_path=preferences_db_path
    )
    return expand_path(value)


def set_image_index_path(resolver: PreferenceResolver, database_file_path: Optional[str] = None,
                         mode: SessionMode = SessionMode.DEFAULT,
                         preferences_db_path: Optional[str] = None) -> None:
    """
    Store the image index database location.

    Raises:
        ValueError: If no path is given and the session is not being cleared
        OSError: If the parent directory cannot be created
    """
    if mode is SessionMode.CLEAR_SESSION:
        resolver.assign(IMAGE_INDEX_PATH, None, mode)
        return

    if not database_file_path or not database_file_path.strip():
        raise ValueError("database_file_path is required when not clearing the session")

    path = expand_path(database_file_path, create_parent=True)
    resolver.assign(IMAGE_INDEX_PATH, path, mode, preferences_db_path)
