import logging
import re
from typing import Awaitable, Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlsplit

from catalog_sync.domain.exceptions import FetchError, ManifestParseError, StoreWriteError
from catalog_sync.domain.models import ManifestEntity
from catalog_sync.domain.results import (
    CascadePreview,
    CascadeResult,
    EntitySummary,
    FetchFailure,
    OperationFailure,
)
from catalog_sync.infrastructure.acl import ManifestTranslator
from catalog_sync.infrastructure.catalog_store import CatalogStore
from catalog_sync.infrastructure.fetcher import ManifestFetcher

logger = logging.getLogger(__name__)

# Manifest list -> entity collection it describes
CASCADE_KINDS = (("modinfo", "mods"), ("toolinfo", "tools"))

# Hosts whose URL paths start with /<owner>/<repo>
ANCHORED_HOSTS = re.compile(r"^(?:raw\.githubusercontent\.com|(?:www\.)?github\.com)$", re.IGNORECASE)


def repository_url_pattern(repository: str) -> "re.Pattern[str]":
    """`/owner/repo` followed by `/` or the end of the path, so `owner/repo-fork` never matches."""
    return re.compile(re.escape(f"/{repository.strip('/')}") + r"(?=/|$)")


def matching_urls(repository: str, urls: Sequence[str]) -> List[str]:
    """
    On GitHub hosts the repository must be the first two path segments, so
    removing `alice/mods` leaves `bob/alice/mods/...` (repo `bob/alice`, branch
    `mods`) alone. Other hosts match the repository anywhere in the path.
    """
    pattern = repository_url_pattern(repository)
    matched = []
    for url in urls:
        parts = urlsplit(url)
        if ANCHORED_HOSTS.match(parts.hostname or ""):
            found = pattern.match(parts.path)
        else:
            found = pattern.search(parts.path)
        if found:
            matched.append(url)
    return matched


def _entry_identity(entry: object) -> Optional[Tuple[str, str]]:
    if not isinstance(entry, dict):
        return None
    name = str(entry.get("name") or "").strip()
    author = str(entry.get("author") or "").strip()
    if not name and not author:
        return None
    return name, author


class CascadeDeleter:
    """
    Removes a repository reference together with the manifest URLs that
    live in it and every stored entity those manifests describe.

    The repository's current file listing is never consulted: manifest URLs
    are selected from the stored lists by path, and their entities are
    resolved from the manifests themselves.
    """

    def __init__(self, store: CatalogStore, fetcher: ManifestFetcher):
        self.store = store
        self.fetcher = fetcher

    async def discover(
        self, repository: str,
    ) -> Tuple[CascadePreview, Dict[str, List[ManifestEntity]], List[FetchFailure]]:
        """Finds every manifest URL and stored entity that would be removed. Never mutates."""
        preview = CascadePreview(repository=repository)
        targets: Dict[str, List[ManifestEntity]] = {}
        fetch_failures: List[FetchFailure] = []

        for list_name, kind in CASCADE_KINDS:
            urls = matching_urls(repository, await self.store.list_items(list_name))
            preview.manifest_urls[list_name] = urls
            targets[kind] = []
            seen_ids = set()

            for url in urls:
                try:
                    entries = ManifestTranslator.entries(await self.fetcher.fetch(url), kind)
                except (FetchError, ManifestParseError) as e:
                    logger.warning(f"Could not read {url}; its {kind} are left untouched: {e}")
                    fetch_failures.append(FetchFailure(url=url, reason=str(e)))
                    continue

                for entry in entries:
                    identity = _entry_identity(entry)
                    if identity is None:
                        continue

                    matches = await self.store.find_entities(kind, *identity)
                    if len(matches) > 1:
                        logger.info(f"Found {len(matches)} {kind} matching '{identity[1]}/{identity[0]}'")

                    for entity in matches:
                        if entity.id in seen_ids:
                            continue
                        seen_ids.add(entity.id)
                        targets[kind].append(entity)

            preview.entities[kind] = [
                EntitySummary(name=entity.name, author=entity.author, id=entity.id) for entity in targets[kind]
            ]

        return preview, targets, fetch_failures

    async def remove(
        self,
        repository: str,
        list_entry: Optional[str] = None,
        cascade: bool = True,
        dry_run: bool = False,
    ) -> CascadeResult:
        """
        Args:
            repository: Normalized `owner/name` reference.
            list_entry: The exact value stored in the repository list, when it differs.
            cascade: Also remove manifest URLs and entities.
            dry_run: Only discover and report.
        """
        list_entry = list_entry or repository
        result = CascadeResult(repository=repository, dry_run=dry_run)
        targets: Dict[str, List[ManifestEntity]] = {}

        if cascade:
            result.preview, targets, result.fetch_failures = await self.discover(repository)
        else:
            result.preview = CascadePreview(repository=repository)

        if dry_run:
            result.diagnostics.extend(self._describe_preview(result.preview))
            result.diagnostics.append("Dry run; no changes will be made")
            self._report(result)
            return result

        for kind, entities in targets.items():
            for entity in entities:
                await self._attempt(result, kind, entity.id, self.store.delete_entity(kind, entity.id))

        for list_name, urls in result.preview.manifest_urls.items():
            for url in urls:
                await self._attempt(result, list_name, url, self.store.remove_list_item(list_name, url))

        result.removed = await self._attempt(
            result, "repositories", list_entry, self.store.remove_list_item("repositories", list_entry),
        )

        self._report(result)
        if result.removed:
            result.diagnostics.append(f"Successfully removed repository: {repository}")
        else:
            result.diagnostics.append(f"Failed to remove repository: {repository}")
        return result

    async def _attempt(self, result: CascadeResult, kind: str, identifier: str, operation: Awaitable[bool]) -> bool:
        reason = "store reported failure"
        try:
            ok = await operation
        except StoreWriteError as e:
            ok, reason = False, str(e)

        if ok:
            logger.debug(f"Deleted {kind} {identifier}")
            result.deleted.setdefault(kind, []).append(identifier)
        else:
            logger.error(f"Failed to delete {kind} {identifier}: {reason}")
            result.delete_failures.append(OperationFailure(kind=kind, identifier=identifier, reason=reason))
        return ok

    @staticmethod
    def _describe_preview(preview: CascadePreview) -> List[str]:
        lines = [f"Repository: {preview.repository}"]
        for list_name, urls in preview.manifest_urls.items():
            lines.append(f"{list_name} URLs ({len(urls)}):")
            lines.extend(f"  {url}" for url in urls)
        for kind, entities in preview.entities.items():
            lines.append(f"{kind} ({len(entities)}):")
            lines.extend(f"  '{entity.author}/{entity.name}' ({entity.id})" for entity in entities)
        return lines

    @staticmethod
    def _report(result: CascadeResult) -> None:
        if result.fetch_failures:
            message = f"Could not fetch {len(result.fetch_failures)} manifest(s): " + ", ".join(
                failure.url for failure in result.fetch_failures
            )
            logger.warning(message)
            result.diagnostics.append(message)

        if result.delete_failures:
            message = f"Failed to delete {len(result.delete_failures)} record(s): " + ", ".join(
                f"{failure.kind} {failure.identifier}" for failure in result.delete_failures
            )
            logger.warning(message)
            result.diagnostics.append(message)
