"""
Find images by the keywords and people stored in their sidecars.
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence, Union

from tqdm import tqdm

from .config import AppConfig
from .image_preferences import get_image_directories
from .logging_setup import get_logger
from .preferences import PreferenceResolver
from .session import SessionMode
from .sidecars import ImageMetadata, load_image_metadata
from .utils import expand_path, matches_any, to_string_list

logger = get_logger(__name__)

DEFAULT_EXTENSIONS = (".jpg", ".jpeg", ".png")


@dataclass
class ImageRecord:
    """An image that matched a search, with the names of its sidecar files."""
    path: str
    keywords: List[str] = field(default_factory=list)
    people: List[str] = field(default_factory=list)
    description: Optional[Dict[str, Any]] = None
    sidecars: List[str] = field(default_factory=list)

    @classmethod
    def from_metadata(cls, path: str, metadata: ImageMetadata) -> 'ImageRecord':
        return cls(
            path=path,
            keywords=metadata.keywords,
            people=list(metadata.people.faces) if metadata.people else [],
            description=metadata.description.to_dict() if metadata.description else None,
            sidecars=sorted(metadata.sidecars_present)
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "keywords": list(self.keywords),
            "people": list(self.people),
            "description": self.description,
            "sidecars": list(self.sidecars),
        }


def iter_image_files(directories: Sequence[str], recurse: bool = True,
                     extensions: Sequence[str] = DEFAULT_EXTENSIONS) -> Iterator[str]:
    """
    Image files in the given directories, sorted per directory.

    Missing directories are logged and skipped.
    """
    wanted = tuple(ext.lower() for ext in extensions)

    for directory in directories:
        directory = expand_path(directory)
        if not os.path.isdir(directory):
            logger.warning(f"Image directory not found: {directory}")
            continue

        if recurse:
            for root, dirs, files in os.walk(directory):
                dirs.sort()
                for name in sorted(files):
                    if name.lower().endswith(wanted):
                        yield os.path.join(root, name)
        else:
            for name in sorted(os.listdir(directory)):
                path = os.path.join(directory, name)
                if name.lower().endswith(wanted) and os.path.isfile(path):
                    yield path


def image_matches(metadata: ImageMetadata, keywords: Sequence[str] = (), people: Sequence[str] = ()) -> bool:
    """
    Apply the keyword and people filters to one image.

    Args:
        metadata: Sidecar data of the image
        keywords: Wildcard patterns; any pattern matching the serialized
            description or any keyword is enough
        people: Wildcard patterns; at least one recognized face must match

    Returns:
        True when the image passes both filters. Without filters, images
        with any sidecar data pass.
    """
    if not keywords and not people:
        return metadata.has_metadata

    if keywords:
        candidates = list(metadata.keywords)
        if metadata.description is not None:
            candidates.insert(0, metadata.description.to_text())
        if not matches_any(candidates, keywords):
            return False

    if people:
        if metadata.people is None or not matches_any(metadata.people.faces, people):
            return False

    return True


def scan_images(directories: Sequence[str], keywords: Optional[Sequence[str]] = None,
                people: Optional[Sequence[str]] = None, recurse: bool = True,
                extensions: Sequence[str] = DEFAULT_EXTENSIONS,
                show_progress: bool = False) -> List[ImageRecord]:
    """
    Walk the directories and return the images that match the filters.

    Args:
        directories: Directories to scan
        keywords: Keyword wildcard patterns
        people: People wildcard patterns
        recurse: Descend into sub-directories
        extensions: Image file extensions to consider
        show_progress: Show a progress bar

    Returns:
        Matching image records in scan order
    """
    keyword_patterns = to_string_list(keywords)
    people_patterns = to_string_list(people)

    files = list(iter_image_files(directories, recurse, extensions))
    logger.info(f"Scanning {len(files)} images in {len(directories)} directories")

    results = []
    for path in tqdm(files, desc="Scanning images", unit="image", disable=not show_progress):
        metadata = load_image_metadata(path)
        if image_matches(metadata, keyword_patterns, people_patterns):
            results.append(ImageRecord.from_metadata(path, metadata))

    logger.info(f"Found {len(results)} matching images")
    return results


def find_images(resolver: PreferenceResolver, keywords: Optional[Sequence[str]] = None,
                people: Optional[Sequence[str]] = None,
                image_directories: Optional[Sequence[str]] = None, recurse: bool = True,
                pass_thru: bool = False, title: Optional[str] = None,
                mode: SessionMode = SessionMode.DEFAULT,
                preferences_db_path: Optional[str] = None,
                config: Optional[AppConfig] = None) -> Union[List[ImageRecord], str]:
    """
    Search the image collection and show the result.

    Args:
        resolver: Preference resolver for the image directories
        keywords: Keyword wildcard patterns
        people: People wildcard patterns
        image_directories: Directories to scan instead of the configured collection
        recurse: Descend into sub-directories
        pass_thru: Return the records instead of rendering a gallery
        title: Gallery title
        mode: Session handling for the directory lookup
        preferences_db_path: Preferences database override
        config: Application configuration

    Returns:
        The records when ``pass_thru`` is set, otherwise the gallery file path
    """
    from .gallery import show_gallery

    config = config or resolver.config
    directories = get_image_directories(resolver, image_directories, mode, preferences_db_path)
    records = scan_images(
        directories,
        keywords=keywords,
        people=people,
        recurse=recurse,
        extensions=config.image_extensions,
        show_progress=not pass_thru
    )

    if pass_thru:
        return records

    if not title:
        filters = to_string_list(keywords) + to_string_list(people)
        title = f"Images matching {', '.join(filters)}" if filters else "All described images"
    return show_gallery(records, title=title, open_browser=config.open_browser)
