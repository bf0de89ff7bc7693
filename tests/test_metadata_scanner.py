"""
Tests for sidecar handling, the metadata scanner and the HTML gallery.
"""
import json
import os
import shutil
import tempfile
import unittest
from unittest.mock import patch

from lmstudio_ai.config import AppConfig
from lmstudio_ai.gallery import render_gallery_html, show_gallery, write_gallery
from lmstudio_ai.metadata_scanner import ImageRecord, find_images, iter_image_files, scan_images
from lmstudio_ai.preferences import PreferenceResolver
from lmstudio_ai.sidecars import (
    DESCRIPTION_SIDECAR,
    KEYWORDS_SIDECAR,
    PEOPLE_SIDECAR,
    Description,
    PeopleInfo,
    load_image_metadata,
    merge_legacy_keywords,
    read_sidecar,
    sidecar_path,
)


def _write_json(path, data):
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f)


class MetadataTestCase(unittest.TestCase):
    """Temporary image folder with helpers to create images and sidecars."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.pics = os.path.join(self.temp_dir, "pics")
        os.makedirs(self.pics)

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def make_image(self, name, description=None, keywords=None, people=None, folder=None):
        folder = folder or self.pics
        os.makedirs(folder, exist_ok=True)
        path = os.path.join(folder, name)
        with open(path, "wb") as f:
            f.write(b"\xff\xd8\xff\xd9")
        if description is not None:
            _write_json(sidecar_path(path, DESCRIPTION_SIDECAR), description)
        if keywords is not None:
            _write_json(sidecar_path(path, KEYWORDS_SIDECAR), keywords)
        if people is not None:
            _write_json(sidecar_path(path, PEOPLE_SIDECAR), people)
        return path


class TestSidecars(MetadataTestCase):
    """Test cases for sidecar reading and legacy keyword migration."""

    def test_description_keeps_unknown_fields(self):
        description = Description.from_dict({"short_description": "A cat", "picture_type": "photo"})
        self.assertEqual(description.short_description, "A cat")
        self.assertIsNone(description.keywords)
        self.assertEqual(description.to_dict(), {"picture_type": "photo", "short_description": "A cat"})

    def test_merge_legacy_keywords(self):
        merged = merge_legacy_keywords(None, ["cat"])
        self.assertEqual(merged.keywords, ["cat"])

        existing = Description(short_description="x")
        merged = merge_legacy_keywords(existing, ["dog"])
        self.assertEqual(merged.keywords, ["dog"])
        self.assertIsNone(existing.keywords)

        with_keywords = Description(keywords=["bird"])
        self.assertIs(merge_legacy_keywords(with_keywords, ["dog"]), with_keywords)

    def test_unparseable_sidecar_reads_as_empty(self):
        path = self.make_image("broken.jpg")
        with open(sidecar_path(path, DESCRIPTION_SIDECAR), "w") as f:
            f.write("{not json")

        self.assertIsNone(read_sidecar(path, DESCRIPTION_SIDECAR))
        metadata = load_image_metadata(path)
        self.assertEqual(metadata.description, Description())
        self.assertEqual(metadata.keywords, [])
        self.assertEqual(metadata.sidecars_present, {DESCRIPTION_SIDECAR})
        self.assertTrue(metadata.has_metadata)

    def test_unparseable_people_and_legacy_sidecars(self):
        path = self.make_image("broken.jpg")
        for sidecar in (PEOPLE_SIDECAR, KEYWORDS_SIDECAR):
            with open(sidecar_path(path, sidecar), "w") as f:
                f.write("[oops")

        metadata = load_image_metadata(path)

        self.assertEqual(metadata.people, PeopleInfo())
        self.assertEqual(metadata.keywords, [])
        self.assertTrue(metadata.has_metadata)
        self.assertTrue(os.path.exists(sidecar_path(path, KEYWORDS_SIDECAR)))
        self.assertFalse(os.path.exists(sidecar_path(path, DESCRIPTION_SIDECAR)))

    def test_legacy_keywords_migrated(self):
        path = self.make_image("old.jpg", keywords=["cat", "dog"])

        metadata = load_image_metadata(path)

        self.assertEqual(metadata.keywords, ["cat", "dog"])
        self.assertFalse(os.path.exists(sidecar_path(path, KEYWORDS_SIDECAR)))
        with open(sidecar_path(path, DESCRIPTION_SIDECAR), encoding="utf-8") as f:
            self.assertEqual(json.load(f), {"keywords": ["cat", "dog"]})

    def test_legacy_keywords_ignored_when_description_has_keywords(self):
        path = self.make_image("both.jpg", description={"keywords": ["sun"]}, keywords=["moon"])

        metadata = load_image_metadata(path)

        self.assertEqual(metadata.keywords, ["sun"])
        self.assertTrue(os.path.exists(sidecar_path(path, KEYWORDS_SIDECAR)))

    def test_people_sidecar(self):
        path = self.make_image("group.jpg", people={"count": 2, "faces": ["Alice", "Bob"]})
        metadata = load_image_metadata(path)
        self.assertEqual(metadata.people.count, 2)
        self.assertEqual(metadata.people.faces, ["Alice", "Bob"])


class TestMetadataScanner(MetadataTestCase):
    """Test cases for scanning and filtering."""

    def test_iter_image_files(self):
        self.make_image("a.jpg")
        self.make_image("b.PNG")
        self.make_image("c.gif")
        self.make_image("d.jpeg", folder=os.path.join(self.pics, "sub"))

        recursive = [os.path.basename(p) for p in iter_image_files([self.pics])]
        flat = [os.path.basename(p) for p in iter_image_files([self.pics], recurse=False)]

        self.assertEqual(recursive, ["a.jpg", "b.PNG", "d.jpeg"])
        self.assertEqual(flat, ["a.jpg", "b.PNG"])

    def test_missing_directory_is_skipped(self):
        self.make_image("a.jpg", description={"keywords": ["x"]})
        records = scan_images([os.path.join(self.temp_dir, "nope"), self.pics])
        self.assertEqual(len(records), 1)

    def test_keyword_wildcard(self):
        self.make_image("pets.jpg", description={"keywords": ["cat", "dog"]})

        self.assertEqual(len(scan_images([self.pics], keywords=["c*t"])), 1)
        self.assertEqual(len(scan_images([self.pics], keywords=["C*T"])), 1)
        self.assertEqual(len(scan_images([self.pics], keywords=["fish"])), 0)

    def test_keyword_matches_description_text(self):
        self.make_image("beach.jpg", description={"long_description": "Waves on a sandy beach"})
        self.assertEqual(len(scan_images([self.pics], keywords=["*sandy*"])), 1)

    def test_no_filters_requires_a_sidecar(self):
        self.make_image("bare.jpg")
        self.make_image("people.jpg", people={"count": 1, "faces": ["Alice"]})
        records = scan_images([self.pics])
        self.assertEqual([os.path.basename(r.path) for r in records], ["people.jpg"])

    def test_corrupt_sidecar_image_found_without_filters(self):
        path = self.make_image("broken.jpg")
        with open(sidecar_path(path, DESCRIPTION_SIDECAR), "w") as f:
            f.write("{broken")

        records = scan_images([self.pics])

        self.assertEqual([r.path for r in records], [path])
        self.assertEqual(records[0].description, {})
        self.assertEqual(scan_images([self.pics], keywords=["*"]), records)

    def test_legacy_only_image_found_and_migrated(self):
        path = self.make_image("legacy.jpg", keywords=["boat"])

        records = scan_images([self.pics])

        self.assertEqual(len(records), 1)
        self.assertEqual(records[0].keywords, ["boat"])
        self.assertFalse(os.path.exists(sidecar_path(path, KEYWORDS_SIDECAR)))
        self.assertTrue(os.path.exists(sidecar_path(path, DESCRIPTION_SIDECAR)))

    def test_people_filter(self):
        self.make_image("nobody.jpg", description={"keywords": ["party"]})
        self.make_image("alice.jpg", description={"keywords": ["party"]},
                        people={"count": 1, "faces": ["Alice Smith"]})

        records = scan_images([self.pics], people=["alice*"])
        self.assertEqual([os.path.basename(r.path) for r in records], ["alice.jpg"])

        records = scan_images([self.pics], keywords=["party"], people=["Bob"])
        self.assertEqual(records, [])

    def test_beach_scenario(self):
        path = self.make_image("a.jpg", description={"keywords": ["sunset", "beach"]})

        records = scan_images([self.pics], keywords=["*beach*"])

        self.assertEqual(len(records), 1)
        self.assertEqual(records[0].path, path)
        self.assertEqual(records[0].keywords, ["sunset", "beach"])
        self.assertEqual(records[0].people, [])

    def test_find_images_pass_thru_uses_preferences(self):
        self.make_image("a.jpg", description={"keywords": ["sunset", "beach"]})
        config = AppConfig(preferences_db_path=os.path.join(self.temp_dir, "prefs.db"))
        resolver = PreferenceResolver(config=config)
        resolver.assign("ImageDirectories", [self.pics])

        records = find_images(resolver, keywords=["*beach*"], pass_thru=True)

        self.assertEqual(len(records), 1)
        self.assertIsInstance(records[0], ImageRecord)

    @patch('lmstudio_ai.gallery.show_gallery', return_value="/tmp/gallery.html")
    def test_find_images_shows_gallery(self, mock_show):
        self.make_image("a.jpg", description={"keywords": ["beach"]})
        resolver = PreferenceResolver(config=AppConfig(
            preferences_db_path=os.path.join(self.temp_dir, "prefs.db")
        ))

        result = find_images(resolver, keywords=["beach"], image_directories=[self.pics])

        self.assertEqual(result, "/tmp/gallery.html")
        records = mock_show.call_args[0][0]
        self.assertEqual(len(records), 1)
        self.assertEqual(mock_show.call_args[1]["title"], "Images matching beach")


class TestGallery(MetadataTestCase):
    """Test cases for gallery rendering."""

    def setUp(self):
        super().setUp()
        self.records = [
            ImageRecord(
                path=os.path.join(self.pics, "a.jpg"),
                keywords=["sunset", "<beach>"],
                people=["Alice"],
                description={"short_description": "Sunset & sea"}
            )
        ]

    def test_render_escapes_text(self):
        page = render_gallery_html(self.records, title="Beach <photos>")
        self.assertIn("Beach &lt;photos&gt;", page)
        self.assertIn("Sunset &amp; sea", page)
        self.assertIn("sunset, &lt;beach&gt;", page)
        self.assertIn("file://", page)
        self.assertIn("1 images", page)

    def test_write_gallery_to_path(self):
        output = os.path.join(self.temp_dir, "gallery.html")
        self.assertEqual(write_gallery(self.records, output_path=output), output)
        with open(output, encoding="utf-8") as f:
            self.assertIn("Alice", f.read())

    @patch('lmstudio_ai.gallery.webbrowser.open', return_value=True)
    def test_show_gallery_opens_browser(self, mock_open):
        output = os.path.join(self.temp_dir, "gallery.html")
        show_gallery(self.records, output_path=output)
        mock_open.assert_called_once()
        self.assertTrue(mock_open.call_args[0][0].startswith("file://"))

    @patch('lmstudio_ai.gallery.webbrowser.open')
    def test_show_gallery_without_browser(self, mock_open):
        path = show_gallery(self.records, open_browser=False)
        try:
            self.assertTrue(os.path.exists(path))
            mock_open.assert_not_called()
        finally:
            os.remove(path)


if __name__ == "__main__":
    unittest.main()
