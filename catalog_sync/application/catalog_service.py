import logging
from typing import List, Optional, Tuple, Union

from catalog_sync.application.cascade import CascadeDeleter
from catalog_sync.application.reconciler import Reconciler
from catalog_sync.domain import matcher
from catalog_sync.domain.exceptions import (
    ConfigError,
    FetchError,
    GitHubAPIError,
    ManifestParseError,
    NotFoundError,
    StoreWriteError,
)
from catalog_sync.domain.models import ManifestEntity, is_github_reference, normalize_repository
from catalog_sync.domain.results import (
    AddResult,
    CascadeResult,
    FetchFailure,
    ManifestSyncResult,
    RemovalResult,
    SyncResult,
    ValidationReport,
)
from catalog_sync.infrastructure.acl import ManifestTranslator, entity_type
from catalog_sync.infrastructure.catalog_store import LIST_NAMES, CatalogStore, manifest_list_name
from catalog_sync.infrastructure.fetcher import ManifestFetcher
from catalog_sync.infrastructure.github_client import GitHubContentsClient

logger = logging.getLogger(__name__)


class CatalogSyncService:
    """
    Service orchestrating the catalog: discovering manifest files in the
    listed repositories, reconciling mods and tools against their manifests,
    and removing repositories, manifest entries and entities.

    Every remote fetch and store call is awaited one at a time.
    """

    def __init__(
        self,
        store: CatalogStore,
        fetcher: ManifestFetcher,
        github_client: Optional[GitHubContentsClient] = None,
    ):
        self.store = store
        self.fetcher = fetcher
        self.github_client = github_client
        self.reconciler = Reconciler(store)
        self.cascade = CascadeDeleter(store, fetcher)

    # Manifest discovery

    async def sync_manifests(self, kind: str, dry_run: bool = False) -> ManifestSyncResult:
        """
        Looks for `modinfo.json`/`toolinfo.json` files in every listed GitHub
        repository and appends new download URLs to the stored list.

        Raises:
            NotFoundError: No repositories are listed, or no manifest files were found.
        """
        list_name = manifest_list_name(kind)
        filename = f"{list_name}.json"
        result = ManifestSyncResult(kind=list_name, dry_run=dry_run)

        logger.info("Retrieving repository data...")
        result.repositories = await self.store.repositories()
        if not result.repositories:
            raise NotFoundError("Unable to find any repositories!")

        if self.github_client is None:
            raise ConfigError("A GitHub token is required to discover manifest files.")

        self.github_client.warnings.clear()
        for repository in result.repositories:
            if not is_github_reference(repository):
                message = f"Skipped; {repository} is not a GitHub repository"
                logger.warning(message)
                result.diagnostics.append(message)
                continue

            try:
                urls = await self.github_client.find_files(repository, filename)
            except GitHubAPIError as e:
                logger.warning(f"Skipped; {e}")
                result.diagnostics.append(f"Skipped; {e}")
                continue

            logger.debug(f"Found {len(urls)} {filename} file(s) in {repository}")
            for url in urls:
                if url not in result.discovered:
                    result.discovered.append(url)

        result.diagnostics.extend(self.github_client.warnings)

        if not result.discovered:
            raise NotFoundError(f"no .json files found for {list_name}")

        existing = await self.store.list_items(list_name)
        result.added = [url for url in result.discovered if url not in existing]
        result.diagnostics.append(
            f"Found {len(result.discovered)} {list_name} file(s), {len(result.added)} new"
        )

        if dry_run:
            result.diagnostics.append("Dry run; no changes will be made")
            return result

        if result.added:
            logger.info(f"Saving {len(result.added)} new {list_name} URL(s)...")
            result.written = await self.store.save_list(list_name, existing + result.added)
            result.diagnostics.append("Success" if result.written else "Failure")
        else:
            result.diagnostics.append("No changes")

        return result

    # Entity reconciliation

    async def collect_candidates(self, kind: str) -> Tuple[List[ManifestEntity], List[FetchFailure], List[str]]:
        """
        Fetches every stored manifest URL of `kind` and parses its entries.

        A URL that cannot be fetched or parsed is skipped and reported. When
        several manifests describe the same (name, author), the first wins.
        """
        candidates: List[ManifestEntity] = []
        failures: List[FetchFailure] = []
        diagnostics: List[str] = []

        for url in await self.store.manifest_urls(kind):
            try:
                entries = ManifestTranslator.entries(await self.fetcher.fetch(url), kind)
            except FetchError as e:
                message = f"Skipped; Failed to retrieve {url}: {e}"
                logger.warning(message)
                diagnostics.append(message)
                failures.append(FetchFailure(url=url, reason=str(e)))
                continue
            except ManifestParseError as e:
                message = f"Skipped; Invalid manifest in {url}: {e}"
                logger.warning(message)
                diagnostics.append(message)
                failures.append(FetchFailure(url=url, reason=str(e)))
                continue

            for entry in entries:
                try:
                    candidates.append(ManifestTranslator.to_domain(entry, kind))
                except ManifestParseError as e:
                    message = f"Skipped entry in {url}: {e}"
                    logger.warning(message)
                    diagnostics.append(message)
                    failures.append(FetchFailure(url=url, reason=str(e)))

        unique = matcher.deduplicate(candidates)
        if len(unique) < len(candidates):
            logger.debug(f"Dropped {len(candidates) - len(unique)} duplicate {kind} entries")

        return unique, failures, diagnostics

    async def sync_entities(self, kind: str, check_only: bool = False) -> SyncResult:
        """Reconciles the stored `mods`/`tools` collection against its manifests."""
        collection = entity_type(kind).collection

        logger.info(f"Retrieving {collection} info data...")
        candidates, fetch_failures, diagnostics = await self.collect_candidates(collection)

        logger.info(f"Retrieving stored {collection}...")
        stored = await self.store.entities(collection)

        result = await self.reconciler.reconcile(collection, candidates, stored, check_only=check_only)
        result.fetch_failures = fetch_failures
        result.diagnostics = diagnostics + result.diagnostics
        return result

    async def sync_all(self, dry_run: bool = False) -> List[Union[ManifestSyncResult, SyncResult]]:
        """Runs toolinfo, tools, modinfo and mods syncs in that order."""
        results: List[Union[ManifestSyncResult, SyncResult]] = []

        for list_name, collection in (("toolinfo", "tools"), ("modinfo", "mods")):
            logger.info(f"Running {list_name} sync...")
            try:
                results.append(await self.sync_manifests(list_name, dry_run=dry_run))
            except NotFoundError as e:
                logger.warning(str(e))
                results.append(ManifestSyncResult(kind=list_name, dry_run=dry_run, diagnostics=[str(e)]))

            logger.info(f"Running {collection} sync...")
            results.append(await self.sync_entities(collection, check_only=dry_run))

        return results

    async def validate(self, kind: str) -> ValidationReport:
        """Validates every manifest entry of `kind` without touching the store's entities."""
        collection = entity_type(kind).collection
        candidates, fetch_failures, diagnostics = await self.collect_candidates(collection)
        report = ValidationReport(kind=collection, fetch_failures=fetch_failures, diagnostics=diagnostics)

        for entity in candidates:
            status = entity.status()
            for warning in status.warnings:
                report.diagnostics.append(f"{entity.uniq_name}: WARNING {warning}")

            if status.errors:
                report.invalid_entities.append((entity, status.errors))
                report.diagnostics.extend(f"{entity.uniq_name}: ERROR {error}" for error in status.errors)
            else:
                report.valid_entities.append(entity)
                report.diagnostics.append(f"{entity.uniq_name}: SUCCESS")

        return report

    # Removal

    async def remove_repository(self, reference: str, cascade: bool = True, dry_run: bool = False) -> CascadeResult:
        """
        Removes a repository reference and, with `cascade`, every manifest URL
        inside it and every entity those manifests describe.

        Raises:
            NotFoundError: The repository is not listed.
        """
        repository = normalize_repository(reference)
        stored = await self.store.repositories()
        list_entry = next((entry for entry in stored if normalize_repository(entry) == repository), None)
        if list_entry is None:
            raise NotFoundError(f"Repository not found: {repository}")

        logger.info(f"Removing repository: {repository}")
        return await self.cascade.remove(repository, list_entry=list_entry, cascade=cascade, dry_run=dry_run)

    async def remove_manifest_entry(self, kind: str, url: str, dry_run: bool = False) -> RemovalResult:
        """
        Raises:
            NotFoundError: The URL is not in the modinfo/toolinfo list.
        """
        list_name = manifest_list_name(kind)
        label = f"{list_name.capitalize()} entry"
        if url not in await self.store.list_items(list_name):
            raise NotFoundError(f"{label} not found: {url}")

        return await self._remove(
            url, label, dry_run, lambda: self.store.remove_list_item(list_name, url),
        )

    async def remove_entity(self, kind: str, entity_id: str, dry_run: bool = False) -> RemovalResult:
        """
        Raises:
            NotFoundError: No stored entity has that id.
        """
        model = entity_type(kind)
        if await self.store.find_entity_by_id(model.collection, entity_id) is None:
            raise NotFoundError(f"{model.kind.capitalize()} not found: {entity_id}")

        return await self._remove(
            entity_id, model.kind.capitalize(), dry_run,
            lambda: self.store.delete_entity(model.collection, entity_id),
        )

    async def _remove(self, target: str, label: str, dry_run: bool, operation) -> RemovalResult:
        result = RemovalResult(target=target, dry_run=dry_run)
        result.diagnostics.append(f"Removing {label.lower()}: {target}")

        if dry_run:
            result.diagnostics.append("Dry run; no changes will be made")
            return result

        try:
            result.removed = await operation()
        except StoreWriteError as e:
            logger.error(str(e))
            result.removed = False

        if result.removed:
            result.diagnostics.append(f"Successfully removed {label.lower()}: {target}")
        else:
            result.diagnostics.append(f"Failed to remove {label.lower()}: {target}")
        return result

    # Additions

    async def add_list_entry(self, list_name: str, value: str) -> AddResult:
        """Appends a repository reference or manifest URL to its list unless already present."""
        if list_name not in LIST_NAMES:
            list_name = manifest_list_name(list_name)
        if list_name == "repositories":
            value = normalize_repository(value)

        result = AddResult(target=value)
        items = await self.store.list_items(list_name)
        if value in items:
            result.diagnostics.append(f"{value} is already listed in {list_name}")
            return result

        try:
            result.added = await self.store.save_list(list_name, items + [value], merge=True)
        except StoreWriteError as e:
            logger.error(str(e))

        result.diagnostics.append("Success" if result.added else "Failure")
        return result
