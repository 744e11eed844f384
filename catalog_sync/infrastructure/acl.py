import json
from datetime import datetime
from typing import Any, Dict, List, Optional, Type, Union

from pydantic import ValidationError

from catalog_sync.domain.exceptions import ManifestParseError
from catalog_sync.domain.models import AnyEntity, ManifestEntity, ModEntity, ToolEntity

ENTITY_TYPES: Dict[str, Type[ManifestEntity]] = {
    "mod": ModEntity,
    "mods": ModEntity,
    "modinfo": ModEntity,
    "tool": ToolEntity,
    "tools": ToolEntity,
    "toolinfo": ToolEntity,
}


def entity_type(kind: str) -> Type[ManifestEntity]:
    try:
        return ENTITY_TYPES[kind]
    except KeyError:
        raise ValueError(f"Invalid type: {kind}") from None


class ManifestTranslator:
    """
    Anti-corruption layer that translates manifest JSON and store documents into entity instances.
    """

    @staticmethod
    def to_domain(raw: Union[str, Dict[str, Any]], kind: str) -> AnyEntity:
        """
        Builds an entity from one untrusted manifest entry.

        Args:
            raw: A manifest entry, either decoded or as a JSON string.
            kind: The entity kind (``mod``/``tool`` or their list/collection names).

        Returns:
            The entity, with GitHub URLs already normalized.

        Raises:
            ManifestParseError: If the entry is not an object or has impossible field types.
        """
        model = entity_type(kind)

        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except ValueError as e:
                raise ManifestParseError(f"Invalid {model.kind} JSON: {e}") from e

        if not isinstance(raw, dict):
            raise ManifestParseError(f"A {model.kind} entry must be an object, got {type(raw).__name__}")

        try:
            return model.model_validate(raw)
        except ValidationError as e:
            raise ManifestParseError(f"Invalid {model.kind} entry '{raw.get('name', '')}': {e}") from e

    @staticmethod
    def from_document(
        data: Dict[str, Any],
        kind: str,
        document_id: str,
        created: Optional[datetime] = None,
        updated: Optional[datetime] = None,
    ) -> AnyEntity:
        """
        Builds an entity from a trusted store document. URLs are taken as stored.
        """
        model = entity_type(kind)
        entity = model.model_validate(data, context={"persisted": True})
        entity.attach_id(document_id, created=created, updated=updated)
        return entity

    @staticmethod
    def entries(document: Any, kind: str) -> List[Dict[str, Any]]:
        """
        Returns the raw entity entries of a fetched manifest document.

        A modinfo manifest lists its entries under ``mods``, a toolinfo manifest under ``tools``.
        """
        key = entity_type(kind).collection
        if not isinstance(document, dict) or not isinstance(document.get(key), list):
            raise ManifestParseError(f"Manifest does not contain a '{key}' list")
        return document[key]
