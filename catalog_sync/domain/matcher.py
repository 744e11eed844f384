from typing import Iterable, List, Optional, Sequence, TypeVar

from catalog_sync.domain.models import ManifestEntity

E = TypeVar("E", bound=ManifestEntity)


def find(collection: Iterable[E], name: str, author: str) -> Optional[E]:
    """First entity whose trimmed (name, author) equals the given pair, case-sensitive."""
    for entity in find_all(collection, name, author):
        return entity
    return None


def find_all(collection: Iterable[E], name: str, author: str) -> List[E]:
    """Every entity matching the identity; stored duplicates are all returned."""
    identity = (name.strip(), author.strip())
    return [entity for entity in collection if entity.identity() == identity]


def deduplicate(entities: Sequence[E]) -> List[E]:
    """Keeps the first entity per identity, preserving order."""
    seen = set()
    unique: List[E] = []
    for entity in entities:
        identity = entity.identity()
        if identity in seen:
            continue
        seen.add(identity)
        unique.append(entity)
    return unique
