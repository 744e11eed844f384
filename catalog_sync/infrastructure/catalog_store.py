import logging
from typing import Dict, List, Optional

from pydantic import ValidationError

from catalog_sync.config import CollectionsConfig
from catalog_sync.domain import matcher
from catalog_sync.domain.models import ManifestEntity
from catalog_sync.infrastructure.acl import ManifestTranslator, entity_type
from catalog_sync.infrastructure.database import DocumentStore

logger = logging.getLogger(__name__)

LIST_NAMES = ("modinfo", "toolinfo", "repositories")


def manifest_list_name(kind: str) -> str:
    """`mods`/`mod`/`modinfo` -> `modinfo`; `tools`/`tool`/`toolinfo` -> `toolinfo`."""
    return f"{entity_type(kind).kind}info"


class CatalogStore:
    """
    Typed access to the catalog's documents: three list documents
    (repositories, modinfo URLs, toolinfo URLs) and one collection per entity kind.
    Reads are cached per instance and refreshed after writes.
    """

    def __init__(self, documents: DocumentStore, collections: CollectionsConfig):
        self.documents = documents
        self.collections = collections
        self._lists: Dict[str, List[str]] = {}
        self._entities: Dict[str, List[ManifestEntity]] = {}

    def list_path(self, list_name: str) -> str:
        if list_name not in LIST_NAMES:
            raise ValueError(f"Invalid type: {list_name}")
        return getattr(self.collections.meta, list_name)

    def collection_path(self, kind: str) -> str:
        return getattr(self.collections, entity_type(kind).collection)

    # Lists

    async def list_items(self, list_name: str) -> List[str]:
        if list_name not in self._lists:
            document = await self.documents.get(self.list_path(list_name)) or {}
            self._lists[list_name] = list(document.get("list") or [])
        return list(self._lists[list_name])

    async def repositories(self) -> List[str]:
        return await self.list_items("repositories")

    async def manifest_urls(self, kind: str) -> List[str]:
        return await self.list_items(manifest_list_name(kind))

    async def save_list(self, list_name: str, items: List[str], merge: bool = False) -> bool:
        """Replaces the whole list document."""
        ok = await self.documents.set(self.list_path(list_name), {"list": list(items)}, merge=merge)
        if ok:
            self._lists[list_name] = list(items)
        else:
            self._lists.pop(list_name, None)
        return ok

    async def remove_list_item(self, list_name: str, item: str) -> bool:
        items = await self.list_items(list_name)
        if item not in items:
            return False
        return await self.save_list(list_name, [existing for existing in items if existing != item])

    # Entities

    async def entities(self, kind: str) -> List[ManifestEntity]:
        collection = self.collection_path(kind)
        if collection not in self._entities:
            entities = []
            for document in await self.documents.list_collection(collection):
                try:
                    entities.append(ManifestTranslator.from_document(
                        document.data, kind, document.document_id,
                        created=document.created_at, updated=document.updated_at,
                    ))
                except ValidationError as e:
                    logger.warning(f"Ignoring unreadable document {collection}/{document.document_id}: {e}")
            self._entities[collection] = entities
        return list(self._entities[collection])

    async def find_entity(self, kind: str, name: str, author: str) -> Optional[ManifestEntity]:
        return matcher.find(await self.entities(kind), name, author)

    async def find_entities(self, kind: str, name: str, author: str) -> List[ManifestEntity]:
        return matcher.find_all(await self.entities(kind), name, author)

    async def find_entity_by_id(self, kind: str, entity_id: str) -> Optional[ManifestEntity]:
        for entity in await self.entities(kind):
            if entity.id == entity_id:
                return entity
        return None

    async def save_entity(self, kind: str, entity: ManifestEntity, merge: bool = False) -> bool:
        """Writes to the entity's document when it has an id, otherwise adds a new document."""
        collection = self.collection_path(kind)
        record = entity.to_storage_record()

        if entity.id:
            ok = await self.documents.set(f"{collection}/{entity.id}", record, merge=merge)
        else:
            ok = bool(await self.documents.add(collection, record))

        self._entities.pop(collection, None)
        return ok

    async def delete_entity(self, kind: str, entity_id: Optional[str]) -> bool:
        if not entity_id:
            return False
        collection = self.collection_path(kind)
        ok = await self.documents.delete(f"{collection}/{entity_id}")
        self._entities.pop(collection, None)
        return ok
