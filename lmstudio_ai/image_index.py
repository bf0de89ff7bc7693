"""
SQLite index of image sidecar metadata.

The index is a cache of what the sidecars contain and can always be rebuilt
from them. When the primary database file is locked by another process,
numbered backup copies (``allimages.meta.1.db``, ``allimages.meta.2.db``, ...)
are probed for one with the current schema version.
"""

import datetime
import json
import os
import sqlite3
from contextlib import contextmanager
from typing import List, Optional, Sequence

from .config import AppConfig
from .image_preferences import get_image_index_path
from .logging_setup import get_logger
from .metadata_scanner import DEFAULT_EXTENSIONS, ImageRecord, image_matches, scan_images
from .preferences import PreferenceResolver
from .session import SessionMode
from .sidecars import DESCRIPTION_SIDECAR, PEOPLE_SIDECAR, Description, ImageMetadata, PeopleInfo
from .utils import to_string_list

logger = get_logger(__name__)

SCHEMA_VERSION = "1.0.0"


def _is_unavailable_error(error: sqlite3.Error) -> bool:
    message = str(error).lower()
    return "locked" in message or "busy" in message or "unable to open" in message


class ImageIndex:
    """Class to handle the image metadata index database."""

    def __init__(self, db_path: str, config: Optional[AppConfig] = None):
        """
        Initialize the index.

        Args:
            db_path: Path of the primary index database
            config: Application configuration
        """
        self.db_path = os.path.abspath(os.path.expanduser(db_path))
        self.config = config or AppConfig()
        self.active_path = self.db_path
        self.needs_rebuild = False

    def backup_path(self, number: int) -> str:
        base, ext = os.path.splitext(self.db_path)
        return f"{base}.{number}{ext}"

    @staticmethod
    def read_schema_version(path: str) -> Optional[str]:
        """
        Schema version stored in a database file.

        Returns:
            The version, or None when the file has no version table

        Raises:
            sqlite3.Error: If the file is locked or cannot be opened
        """
        conn = sqlite3.connect(f"file:{path}?mode=ro", uri=True, timeout=0)
        try:
            row = conn.execute("SELECT version FROM ImageSchemaVersion LIMIT 1").fetchone()
        except sqlite3.OperationalError as e:
            if "no such table" in str(e).lower():
                return None
            raise
        finally:
            conn.close()
        return row[0] if row else None

    def open(self) -> str:
        """
        Pick the database file to use and decide whether it must be rebuilt.

        Returns:
            The active database path
        """
        self.active_path = self.db_path
        self.needs_rebuild = False

        if not os.path.exists(self.db_path):
            logger.info(f"Image index not found, it will be created: {self.db_path}")
            self.needs_rebuild = True
            return self.active_path

        try:
            version = self.read_schema_version(self.db_path)
        except sqlite3.Error as e:
            if not _is_unavailable_error(e):
                logger.warning(f"Image index unreadable, it will be rebuilt: {str(e)}")
                self.needs_rebuild = True
                return self.active_path
            logger.warning(f"Image index is locked, probing backups: {str(e)}")
            return self._open_backup()

        if version != SCHEMA_VERSION:
            logger.info(f"Image index schema {version} does not match {SCHEMA_VERSION}, it will be rebuilt")
            self.needs_rebuild = True
        return self.active_path

    def _open_backup(self) -> str:
        first_free = None
        for number in range(1, self.config.max_backup_probes + 1):
            candidate = self.backup_path(number)
            if not os.path.exists(candidate):
                first_free = first_free or candidate
                break
            try:
                if self.read_schema_version(candidate) == SCHEMA_VERSION:
                    logger.info(f"Using image index backup: {candidate}")
                    self.active_path = candidate
                    return self.active_path
            except sqlite3.Error as e:
                logger.debug(f"Backup {candidate} unusable: {str(e)}")

        # Nothing usable: rebuild into a free backup slot, or the last probed one
        self.active_path = first_free or self.backup_path(self.config.max_backup_probes)
        self.needs_rebuild = True
        logger.warning(f"No usable image index backup, rebuilding into {self.active_path}")
        return self.active_path

    @contextmanager
    def cursor(self):
        """Cursor on the active database; commits on success, rolls back on error."""
        conn = sqlite3.connect(self.active_path)
        conn.execute(f"PRAGMA busy_timeout={self.config.db_busy_timeout}")
        cursor = conn.cursor()
        try:
            yield cursor
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()

    def initialize(self) -> None:
        """Create an empty index with the current schema."""
        db_dir = os.path.dirname(self.active_path)
        if db_dir and not os.path.isdir(db_dir):
            os.makedirs(db_dir, exist_ok=True)

        with self.cursor() as cursor:
            cursor.execute("DROP TABLE IF EXISTS Images")
            cursor.execute("DROP TABLE IF EXISTS ImageSchemaVersion")
            cursor.execute("CREATE TABLE ImageSchemaVersion (version TEXT NOT NULL)")
            cursor.execute("INSERT INTO ImageSchemaVersion (version) VALUES (?)", (SCHEMA_VERSION,))
            cursor.execute("""
                CREATE TABLE Images (
                    path TEXT PRIMARY KEY,
                    description TEXT,
                    keywords TEXT NOT NULL,
                    people TEXT,
                    indexed_at TEXT NOT NULL
                )
            """)
        self.needs_rebuild = False
        logger.info(f"Initialized image index {self.active_path}")

    def add_records(self, records: Sequence[ImageRecord]) -> int:
        now = datetime.datetime.now().isoformat(timespec="seconds")
        rows = [
            (
                record.path,
                json.dumps(record.description, ensure_ascii=False) if record.description is not None else None,
                json.dumps(record.keywords, ensure_ascii=False),
                json.dumps(record.people, ensure_ascii=False) if PEOPLE_SIDECAR in record.sidecars else None,
                now,
            )
            for record in records
        ]
        with self.cursor() as cursor:
            cursor.executemany(
                "INSERT OR REPLACE INTO Images (path, description, keywords, people, indexed_at) "
                "VALUES (?, ?, ?, ?, ?)",
                rows
            )
        return len(rows)

    def rebuild(self, directories: Sequence[str], recurse: bool = True,
                extensions: Sequence[str] = DEFAULT_EXTENSIONS, show_progress: bool = False) -> int:
        """
        Recreate the index from the sidecars in the directories.

        Returns:
            Number of indexed images
        """
        records = scan_images(directories, recurse=recurse, extensions=extensions, show_progress=show_progress)
        self.initialize()
        count = self.add_records(records)
        logger.info(f"Indexed {count} images")
        return count

    def search(self, keywords: Optional[Sequence[str]] = None,
               people: Optional[Sequence[str]] = None) -> List[ImageRecord]:
        """Indexed images matching the filters, using the scanner's matching rules."""
        keyword_patterns = to_string_list(keywords)
        people_patterns = to_string_list(people)

        with self.cursor() as cursor:
            cursor.execute("SELECT path, description, keywords, people FROM Images ORDER BY path")
            rows = cursor.fetchall()

        results = []
        for path, description_json, keywords_json, people_json in rows:
            description = Description.from_dict(json.loads(description_json)) if description_json is not None else None
            faces = json.loads(people_json) if people_json is not None else None
            present = set()
            if description is not None:
                present.add(DESCRIPTION_SIDECAR)
            if faces is not None:
                present.add(PEOPLE_SIDECAR)
            metadata = ImageMetadata(
                description=description,
                people=PeopleInfo(count=len(faces), faces=faces) if faces is not None else None,
                sidecars_present=present
            )
            if image_matches(metadata, keyword_patterns, people_patterns):
                record = ImageRecord.from_metadata(path, metadata)
                if not record.keywords:
                    record.keywords = json.loads(keywords_json)
                results.append(record)
        return results


def open_image_index(resolver: PreferenceResolver, database_file_path: Optional[str] = None,
                     mode: SessionMode = SessionMode.DEFAULT,
                     preferences_db_path: Optional[str] = None) -> ImageIndex:
    """Image index at the configured location, opened and checked."""
    path = get_image_index_path(resolver, database_file_path, mode, preferences_db_path)
    index = ImageIndex(path, resolver.config)
    index.open()
    return index
