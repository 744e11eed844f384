import argparse
import asyncio
import logging
import sys
from typing import List, Optional

import aiohttp

from catalog_sync.application.catalog_service import CatalogSyncService
from catalog_sync.config import load_config
from catalog_sync.domain.exceptions import CatalogSyncError, ConfigError, NotFoundError
from catalog_sync.infrastructure.catalog_store import CatalogStore
from catalog_sync.infrastructure.database import PostgresDocumentStore
from catalog_sync.infrastructure.fetcher import ManifestFetcher
from catalog_sync.infrastructure.github_client import GitHubContentsClient

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="catalog-sync", description="Syncs the mod and tool catalog")
    parser.add_argument("-C", "--config", help="Path to the JSON config file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    sync = commands.add_parser("sync", help="Syncs the databases")
    sync.add_argument("target", choices=["all", "modinfo", "toolinfo", "mods", "tools"])
    sync.add_argument("--dry-run", action="store_true", help="Dry run (no changes will be made)")
    sync.add_argument("--check", action="store_true", help="Validate without applying changes")

    add = commands.add_parser("add", help="Adds entries to the lists")
    add.add_argument("target", choices=["repos", "modinfo", "toolinfo"])
    add.add_argument("value")

    remove = commands.add_parser("remove", help="Removes entries from the databases")
    remove.add_argument("target", choices=["repos", "modinfo", "toolinfo", "mod", "tool"])
    remove.add_argument("value", help="Repository, manifest URL or entity id")
    remove.add_argument("--dry-run", action="store_true", help="Dry run (no changes will be made)")
    remove.add_argument("--no-cascade", action="store_true", help="Only remove the repository reference")

    validate = commands.add_parser("validate", help="Validates manifest entries")
    validate.add_argument("target", choices=["modinfo", "toolinfo"])

    commands.add_parser("init-db", help="Creates the document table")
    return parser


def render(lines: List[str]) -> None:
    for line in lines:
        print(line)


async def dispatch(service: CatalogSyncService, args: argparse.Namespace) -> int:
    if args.command == "sync":
        if args.target == "all":
            results = await service.sync_all(dry_run=args.dry_run)
            for result in results:
                render(result.diagnostics)
            return 0 if all(getattr(result, "success", True) for result in results) else 1
        if args.target in ("modinfo", "toolinfo"):
            result = await service.sync_manifests(args.target, dry_run=args.dry_run)
            render(result.diagnostics)
            return 0
        result = await service.sync_entities(args.target, check_only=args.check or args.dry_run)
        render(result.diagnostics)
        return 0 if result.success else 1

    if args.command == "add":
        result = await service.add_list_entry("repositories" if args.target == "repos" else args.target, args.value)
        render(result.diagnostics)
        return 0 if result.added else 1

    if args.command == "remove":
        if args.target == "repos":
            result = await service.remove_repository(
                args.value, cascade=not args.no_cascade, dry_run=args.dry_run,
            )
            render(result.diagnostics)
            return 0 if result.removed or result.dry_run else 1
        if args.target in ("modinfo", "toolinfo"):
            result = await service.remove_manifest_entry(args.target, args.value, dry_run=args.dry_run)
        else:
            result = await service.remove_entity(args.target, args.value, dry_run=args.dry_run)
        render(result.diagnostics)
        return 0 if result.removed or result.dry_run else 1

    if args.command == "validate":
        report = await service.validate(args.target)
        render(report.diagnostics)
        return 0 if report.is_valid else 1

    raise ValueError(f"Unknown command: {args.command}")


async def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    # Configure logging
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )

    try:
        config = load_config(args.config)
    except ConfigError as e:
        logger.error(str(e))
        return 1

    documents = PostgresDocumentStore(db_url=config.store.database_url)
    try:
        if args.command == "init-db":
            await documents.create_schema()
            logger.info("Document table created.")
            return 0

        store = CatalogStore(documents, config.store.collections)
        async with aiohttp.ClientSession() as session:
            github_client = GitHubContentsClient(token=config.github.token, session=session) \
                if config.github.token else None
            service = CatalogSyncService(store, ManifestFetcher(session), github_client)
            return await dispatch(service, args)

    except NotFoundError as e:
        logger.error(str(e))
        return 1
    except CatalogSyncError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1
    finally:
        await documents.dispose()


def run() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("Interrupted by user. Exiting.")
        sys.exit(130)


if __name__ == "__main__":
    run()
