"""
JSON sidecar files stored next to images.

A sidecar is addressed as ``<image path>:<name>.json``. On NTFS this is an
alternate data stream of the image; on other file systems it is an ordinary
file whose name contains a colon.
"""

import json
import os
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Set

from .logging_setup import get_logger

logger = get_logger(__name__)

DESCRIPTION_SIDECAR = "description.json"
KEYWORDS_SIDECAR = "keywords.json"
PEOPLE_SIDECAR = "people.json"
ALL_SIDECARS = (DESCRIPTION_SIDECAR, KEYWORDS_SIDECAR, PEOPLE_SIDECAR)


def sidecar_path(image_path: str, sidecar: str) -> str:
    return f"{image_path}:{sidecar}"


@dataclass
class Description:
    """Contents of ``description.json``; unknown fields are kept in ``extra``."""
    short_description: Optional[str] = None
    long_description: Optional[str] = None
    keywords: Optional[List[str]] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Description':
        data = dict(data)
        keywords = data.pop("keywords", None)
        if keywords is not None:
            keywords = _keyword_list(keywords)
        return cls(
            short_description=data.pop("short_description", None),
            long_description=data.pop("long_description", None),
            keywords=keywords,
            extra=data
        )

    def to_dict(self) -> Dict[str, Any]:
        result = dict(self.extra)
        if self.short_description is not None:
            result["short_description"] = self.short_description
        if self.long_description is not None:
            result["long_description"] = self.long_description
        if self.keywords is not None:
            result["keywords"] = list(self.keywords)
        return result

    def to_text(self) -> str:
        """Serialized form used for wildcard matching."""
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":"))


@dataclass
class PeopleInfo:
    """Contents of ``people.json``: recognized face names."""
    count: int = 0
    faces: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PeopleInfo':
        faces = [str(f) for f in (data.get("faces") or []) if f]
        try:
            count = int(data.get("count", len(faces)))
        except (TypeError, ValueError):
            count = len(faces)
        return cls(count=count, faces=faces)

    def to_dict(self) -> Dict[str, Any]:
        return {"count": self.count, "faces": list(self.faces)}


@dataclass
class ImageMetadata:
    """
    All sidecar data found for one image.

    ``sidecars_present`` names the sidecar files that exist, readable or not.
    """
    description: Optional[Description] = None
    people: Optional[PeopleInfo] = None
    sidecars_present: Set[str] = field(default_factory=set)

    @property
    def keywords(self) -> List[str]:
        if self.description and self.description.keywords:
            return list(self.description.keywords)
        return []

    @property
    def has_metadata(self) -> bool:
        return bool(self.sidecars_present) or self.description is not None or self.people is not None


def _keyword_list(value: Any) -> List[str]:
    if isinstance(value, dict):
        value = value.get("keywords", [])
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    return [str(k).strip() for k in value if k is not None and str(k).strip()]


def merge_legacy_keywords(description: Optional[Description], legacy_keywords: List[str]) -> Description:
    """
    Fold the keywords of a legacy ``keywords.json`` into a description.

    A description that already has a ``keywords`` field is returned unchanged.
    """
    if description is None:
        return Description(keywords=list(legacy_keywords))
    if description.keywords is not None:
        return description
    return replace(description, keywords=list(legacy_keywords))


def read_sidecar(image_path: str, sidecar: str) -> Optional[Any]:
    """
    Parsed JSON of a sidecar.

    Returns:
        The JSON value, or None when the sidecar is missing or unreadable
    """
    path = sidecar_path(image_path, sidecar)
    if not os.path.exists(path):
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
        logger.warning(f"Ignoring unreadable sidecar {path}: {str(e)}")
        return None


def write_sidecar(image_path: str, sidecar: str, data: Any) -> None:
    path = sidecar_path(image_path, sidecar)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, separators=(",", ":"))
    logger.debug(f"Wrote sidecar {path}")


def remove_sidecar(image_path: str, sidecar: str) -> None:
    path = sidecar_path(image_path, sidecar)
    if os.path.exists(path):
        os.remove(path)
        logger.debug(f"Removed sidecar {path}")


def read_description(image_path: str) -> Optional[Description]:
    data = read_sidecar(image_path, DESCRIPTION_SIDECAR)
    if not isinstance(data, dict):
        return None
    return Description.from_dict(data)


def write_description(image_path: str, description: Description) -> None:
    write_sidecar(image_path, DESCRIPTION_SIDECAR, description.to_dict())


def read_legacy_keywords(image_path: str) -> Optional[List[str]]:
    """Keywords of a legacy ``keywords.json``, or None when missing or unreadable."""
    data = read_sidecar(image_path, KEYWORDS_SIDECAR)
    if data is None:
        return None
    return _keyword_list(data)


def read_people(image_path: str) -> Optional[PeopleInfo]:
    data = read_sidecar(image_path, PEOPLE_SIDECAR)
    if not isinstance(data, dict):
        return None
    return PeopleInfo.from_dict(data)


def load_image_metadata(image_path: str) -> ImageMetadata:
    """
    Read all sidecars of an image.

    A legacy ``keywords.json`` is migrated on the way: when the description
    has no keywords field, the legacy keywords are merged into it, the
    description is written back and the legacy sidecar is deleted.

    A sidecar that exists but cannot be parsed yields empty content; an
    unreadable legacy sidecar is left in place.
    """
    present = {name for name in ALL_SIDECARS if os.path.exists(sidecar_path(image_path, name))}

    description = read_description(image_path)
    if description is None and present & {DESCRIPTION_SIDECAR, KEYWORDS_SIDECAR}:
        description = Description()
    legacy = read_sidecar(image_path, KEYWORDS_SIDECAR)

    if legacy is not None and (description is None or description.keywords is None):
        description = merge_legacy_keywords(description, _keyword_list(legacy))
        try:
            write_description(image_path, description)
            remove_sidecar(image_path, KEYWORDS_SIDECAR)
            logger.info(f"Migrated legacy keywords of {image_path}")
        except OSError as e:
            logger.warning(f"Could not migrate legacy keywords of {image_path}: {str(e)}")

    people = read_people(image_path)
    if people is None and PEOPLE_SIDECAR in present:
        people = PeopleInfo()

    return ImageMetadata(description=description, people=people, sidecars_present=present)
