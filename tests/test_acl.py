import json
import unittest
from datetime import datetime, timezone

from catalog_sync.domain.exceptions import ManifestParseError
from catalog_sync.domain.models import ModEntity, ToolEntity
from catalog_sync.infrastructure.acl import ManifestTranslator


class TestManifestTranslator(unittest.TestCase):
    def test_to_domain_builds_the_variant_for_the_kind(self) -> None:
        raw = {"name": "Example", "author": "octocat", "description": "d", "files": {"zip": "https://e.org/a.zip"}}

        self.assertIsInstance(ManifestTranslator.to_domain(raw, "mods"), ModEntity)
        self.assertIsInstance(ManifestTranslator.to_domain(raw, "tool"), ToolEntity)

    def test_to_domain_accepts_a_json_string(self) -> None:
        entity = ManifestTranslator.to_domain(json.dumps({"name": "Example", "author": "octocat"}), "mod")

        self.assertEqual(entity.identity(), ("Example", "octocat"))

    def test_non_object_entry_raises(self) -> None:
        with self.assertRaises(ManifestParseError):
            ManifestTranslator.to_domain(["not", "an", "object"], "mod")

    def test_invalid_json_string_raises(self) -> None:
        with self.assertRaises(ManifestParseError):
            ManifestTranslator.to_domain("{not json", "mod")

    def test_impossible_field_type_raises(self) -> None:
        with self.assertRaises(ManifestParseError):
            ManifestTranslator.to_domain({"name": "Example", "files": ["a", "b"]}, "mod")

    def test_unknown_kind_raises_value_error(self) -> None:
        with self.assertRaises(ValueError):
            ManifestTranslator.to_domain({}, "programs")

    def test_from_document_keeps_store_metadata(self) -> None:
        created = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

        entity = ManifestTranslator.from_document(
            {"name": "Stored", "author": "octocat", "imageURL": "https://github.com/o/r/blob/main/i.png"},
            "mods",
            "doc-1",
            created=created,
        )

        self.assertEqual(entity.id, "doc-1")
        self.assertEqual(entity.created_at, created)
        self.assertEqual(entity.image_url, "https://github.com/o/r/blob/main/i.png")

    def test_entries_reads_the_kind_list(self) -> None:
        document = {"mods": [{"name": "A"}], "tools": [{"name": "B"}]}

        self.assertEqual(ManifestTranslator.entries(document, "mods"), [{"name": "A"}])
        self.assertEqual(ManifestTranslator.entries(document, "toolinfo"), [{"name": "B"}])

    def test_entries_without_list_raises(self) -> None:
        with self.assertRaises(ManifestParseError):
            ManifestTranslator.entries({"tools": []}, "mods")
        with self.assertRaises(ManifestParseError):
            ManifestTranslator.entries(["mods"], "mods")
