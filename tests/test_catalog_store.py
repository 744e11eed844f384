import unittest

from catalog_sync.config import CollectionsConfig
from catalog_sync.domain.models import ModEntity, ToolEntity
from catalog_sync.infrastructure.catalog_store import CatalogStore, manifest_list_name
from tests.fakes import InMemoryDocumentStore


def _catalog(documents: InMemoryDocumentStore) -> CatalogStore:
    return CatalogStore(documents, CollectionsConfig())


class TestManifestListName(unittest.TestCase):
    def test_every_alias_maps_to_its_list(self) -> None:
        for kind in ("mod", "mods", "modinfo"):
            self.assertEqual(manifest_list_name(kind), "modinfo")
        for kind in ("tool", "tools", "toolinfo"):
            self.assertEqual(manifest_list_name(kind), "toolinfo")


class TestLists(unittest.IsolatedAsyncioTestCase):
    async def test_missing_list_document_reads_as_empty(self) -> None:
        self.assertEqual(await _catalog(InMemoryDocumentStore()).repositories(), [])

    async def test_list_reads_are_cached(self) -> None:
        documents = InMemoryDocumentStore()
        documents.put("meta/repos", {"list": ["owner/repo"]})
        catalog = _catalog(documents)

        await catalog.repositories()
        await catalog.repositories()

        self.assertEqual(documents.calls.count(("get", "meta/repos")), 1)

    async def test_unknown_list_name_raises(self) -> None:
        with self.assertRaises(ValueError):
            await _catalog(InMemoryDocumentStore()).list_items("programs")

    async def test_remove_list_item_rewrites_the_list(self) -> None:
        documents = InMemoryDocumentStore()
        documents.put("meta/modinfo", {"list": ["https://e.org/a.json", "https://e.org/b.json"]})
        catalog = _catalog(documents)

        self.assertTrue(await catalog.remove_list_item("modinfo", "https://e.org/a.json"))

        self.assertEqual(documents.peek("meta/modinfo"), {"list": ["https://e.org/b.json"]})
        self.assertEqual(await catalog.manifest_urls("mods"), ["https://e.org/b.json"])

    async def test_remove_absent_item_writes_nothing(self) -> None:
        documents = InMemoryDocumentStore()
        documents.put("meta/modinfo", {"list": ["https://e.org/a.json"]})
        catalog = _catalog(documents)

        self.assertFalse(await catalog.remove_list_item("modinfo", "https://e.org/zzz.json"))
        self.assertNotIn(("set", "meta/modinfo"), documents.calls)

    async def test_failed_save_drops_the_cache(self) -> None:
        documents = InMemoryDocumentStore()
        documents.put("meta/repos", {"list": ["owner/repo"]})
        documents.failing_paths.add("meta/repos")
        catalog = _catalog(documents)

        self.assertFalse(await catalog.save_list("repositories", []))
        self.assertEqual(await catalog.repositories(), ["owner/repo"])


class TestEntities(unittest.IsolatedAsyncioTestCase):
    async def test_entities_carry_their_document_ids(self) -> None:
        documents = InMemoryDocumentStore()
        documents.put("mods/doc-a", {"name": "A", "author": "X", "description": "d"})
        documents.put("tools/doc-b", {"name": "B", "author": "Y", "description": "d"})
        catalog = _catalog(documents)

        mods = await catalog.entities("mods")
        tools = await catalog.entities("tool")

        self.assertEqual([(type(e), e.id) for e in mods], [(ModEntity, "doc-a")])
        self.assertEqual([(type(e), e.id) for e in tools], [(ToolEntity, "doc-b")])

    async def test_unreadable_documents_are_skipped(self) -> None:
        documents = InMemoryDocumentStore()
        documents.put("mods/doc-a", {"name": "A", "author": "X"})
        documents.put("mods/doc-bad", {"name": "B", "files": ["not", "a", "map"]})
        catalog = _catalog(documents)

        self.assertEqual([e.id for e in await catalog.entities("mods")], ["doc-a"])

    async def test_find_entity_helpers(self) -> None:
        documents = InMemoryDocumentStore()
        documents.put("mods/doc-1", {"name": "Dup Mod", "author": "Author"})
        documents.put("mods/doc-2", {"name": "Dup Mod", "author": "Author"})
        catalog = _catalog(documents)

        self.assertEqual((await catalog.find_entity("mods", "Dup Mod", "Author")).id, "doc-1")
        self.assertEqual([e.id for e in await catalog.find_entities("mods", "Dup Mod", "Author")], ["doc-1", "doc-2"])
        self.assertEqual((await catalog.find_entity_by_id("mods", "doc-2")).id, "doc-2")
        self.assertIsNone(await catalog.find_entity_by_id("mods", "doc-3"))

    async def test_save_entity_adds_when_new(self) -> None:
        documents = InMemoryDocumentStore()
        catalog = _catalog(documents)
        entity = ModEntity.model_validate({
            "name": "New", "author": "X", "description": "d", "files": {"zip": "https://e.org/a.zip"},
        })

        self.assertTrue(await catalog.save_entity("mods", entity))

        stored = documents.documents["mods"]["doc-1"]
        self.assertEqual(stored["name"], "New")
        self.assertEqual(stored["fileType"], "zip")

    async def test_save_entity_sets_existing_document_and_refreshes(self) -> None:
        documents = InMemoryDocumentStore()
        documents.put("mods/doc-9", {"name": "A", "author": "X", "version": "1.0"})
        catalog = _catalog(documents)
        await catalog.entities("mods")

        entity = ModEntity.model_validate({"name": "A", "author": "X", "version": "2.0"})
        entity.attach_id("doc-9")
        await catalog.save_entity("mods", entity)

        self.assertEqual(documents.peek("mods/doc-9")["version"], "2.0")
        self.assertEqual((await catalog.entities("mods"))[0].version, "2.0")

    async def test_delete_entity_without_id_is_a_no_op(self) -> None:
        documents = InMemoryDocumentStore()
        catalog = _catalog(documents)

        self.assertFalse(await catalog.delete_entity("mods", None))
        self.assertEqual(documents.calls, [])
