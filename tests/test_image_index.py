"""
Tests for the image index database.
"""
import json
import os
import shutil
import sqlite3
import tempfile
import unittest
from unittest.mock import patch

from lmstudio_ai.config import AppConfig
from lmstudio_ai.image_index import SCHEMA_VERSION, ImageIndex, open_image_index
from lmstudio_ai.metadata_scanner import scan_images
from lmstudio_ai.preferences import PreferenceResolver
from lmstudio_ai.sidecars import DESCRIPTION_SIDECAR, PEOPLE_SIDECAR, sidecar_path


class TestImageIndex(unittest.TestCase):
    """Test cases for ImageIndex."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "allimages.meta.db")
        self.config = AppConfig(max_backup_probes=3)
        self.pics = os.path.join(self.temp_dir, "pics")
        os.makedirs(self.pics)

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def _image(self, name, keywords=None, faces=None):
        path = os.path.join(self.pics, name)
        with open(path, "wb") as f:
            f.write(b"\xff\xd8\xff\xd9")
        if keywords is not None:
            with open(sidecar_path(path, DESCRIPTION_SIDECAR), "w") as f:
                json.dump({"keywords": keywords}, f)
        if faces is not None:
            with open(sidecar_path(path, PEOPLE_SIDECAR), "w") as f:
                json.dump({"count": len(faces), "faces": faces}, f)
        return path

    def _create_index(self, path, version=SCHEMA_VERSION):
        index = ImageIndex(path, self.config)
        index.initialize()
        if version != SCHEMA_VERSION:
            with index.cursor() as cursor:
                cursor.execute("UPDATE ImageSchemaVersion SET version = ?", (version,))
        return index

    def test_backup_path(self):
        index = ImageIndex(self.db_path, self.config)
        self.assertEqual(index.backup_path(2), os.path.join(self.temp_dir, "allimages.meta.2.db"))

    def test_missing_database_needs_rebuild(self):
        index = ImageIndex(self.db_path, self.config)
        self.assertEqual(index.open(), self.db_path)
        self.assertTrue(index.needs_rebuild)

    def test_matching_schema_is_used(self):
        self._create_index(self.db_path)
        index = ImageIndex(self.db_path, self.config)
        self.assertEqual(index.open(), self.db_path)
        self.assertFalse(index.needs_rebuild)

    def test_schema_mismatch_needs_rebuild(self):
        self._create_index(self.db_path, version="0.1")
        index = ImageIndex(self.db_path, self.config)
        index.open()
        self.assertTrue(index.needs_rebuild)
        self.assertEqual(index.active_path, self.db_path)

    def test_locked_primary_uses_first_matching_backup(self):
        self._create_index(self.db_path)
        index = ImageIndex(self.db_path, self.config)
        self._create_index(index.backup_path(1), version="0.1")
        self._create_index(index.backup_path(2))

        real_read = ImageIndex.read_schema_version

        def locked_primary(path):
            if path == self.db_path:
                raise sqlite3.OperationalError("database is locked")
            return real_read(path)

        with patch.object(ImageIndex, "read_schema_version", side_effect=locked_primary) as mock_read:
            active = index.open()

        self.assertEqual(active, index.backup_path(2))
        self.assertFalse(index.needs_rebuild)
        probed = [call[0][0] for call in mock_read.call_args_list]
        self.assertEqual(probed, [self.db_path, index.backup_path(1), index.backup_path(2)])

    def test_locked_primary_without_backup_needs_rebuild(self):
        self._create_index(self.db_path)
        index = ImageIndex(self.db_path, self.config)
        self._create_index(index.backup_path(1), version="0.1")

        def locked_primary(path):
            if path == self.db_path:
                raise sqlite3.OperationalError("database is locked")
            return "0.1"

        with patch.object(ImageIndex, "read_schema_version", side_effect=locked_primary):
            active = index.open()

        self.assertTrue(index.needs_rebuild)
        self.assertEqual(active, index.backup_path(2))

    def test_rebuild_and_search(self):
        self._image("a.jpg", keywords=["sunset", "beach"])
        self._image("b.jpg", keywords=["cat"], faces=["Alice"])
        self._image("c.jpg")

        index = ImageIndex(self.db_path, self.config)
        index.open()
        self.assertEqual(index.rebuild([self.pics]), 2)
        self.assertEqual(ImageIndex.read_schema_version(self.db_path), SCHEMA_VERSION)

        beach = index.search(keywords=["*beach*"])
        self.assertEqual([os.path.basename(r.path) for r in beach], ["a.jpg"])
        self.assertEqual(beach[0].keywords, ["sunset", "beach"])

        self.assertEqual(len(index.search()), 2)
        self.assertEqual(index.search(keywords=["fish"]), [])

        alice = index.search(people=["ali*"])
        self.assertEqual([os.path.basename(r.path) for r in alice], ["b.jpg"])
        self.assertEqual(index.search(keywords=["sunset"], people=["Alice"]), [])

    def test_search_agrees_with_scan_for_empty_sidecars(self):
        self._image("nobody.jpg", faces=[])
        broken = self._image("broken.jpg")
        with open(sidecar_path(broken, DESCRIPTION_SIDECAR), "w") as f:
            f.write("{broken")
        self._image("bare.jpg")

        index = ImageIndex(self.db_path, self.config)
        index.open()
        index.rebuild([self.pics])

        scanned = [os.path.basename(r.path) for r in scan_images([self.pics])]
        indexed = [os.path.basename(r.path) for r in index.search()]
        self.assertEqual(scanned, ["broken.jpg", "nobody.jpg"])
        self.assertEqual(indexed, scanned)

        record = index.search()[1]
        self.assertEqual(record.people, [])
        self.assertIn(PEOPLE_SIDECAR, record.sidecars)
        self.assertEqual(index.search(people=["*"]), [])

    def test_open_image_index_uses_preference(self):
        config = AppConfig(preferences_db_path=os.path.join(self.temp_dir, "prefs.db"))
        resolver = PreferenceResolver(config=config)
        custom = os.path.join(self.temp_dir, "custom.db")
        resolver.assign("ImageIndexPath", custom)

        index = open_image_index(resolver)

        self.assertEqual(index.db_path, custom)
        self.assertTrue(index.needs_rebuild)


if __name__ == "__main__":
    unittest.main()
