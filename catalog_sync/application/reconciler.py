import logging
from typing import Sequence

from catalog_sync.domain import matcher
from catalog_sync.domain.exceptions import StoreWriteError
from catalog_sync.domain.models import ManifestEntity
from catalog_sync.domain.results import OperationFailure, ReconciliationPlan, SyncResult
from catalog_sync.infrastructure.catalog_store import CatalogStore

logger = logging.getLogger(__name__)


class Reconciler:
    """
    Computes and applies the create/update/delete diff between freshly
    fetched candidates and the stored entities of one kind.
    """

    def __init__(self, store: CatalogStore):
        self.store = store

    @staticmethod
    def plan(candidates: Sequence[ManifestEntity], stored: Sequence[ManifestEntity]) -> ReconciliationPlan:
        """
        Pure diff. Candidates matching a stored identity get the first stored
        id attached and become updates; the rest become creates. Invalid
        candidates are skipped. Stored entities with no candidate of the same
        identity, valid or not, are deleted, as are the extra stored copies of
        an identity that is updated.
        """
        plan = ReconciliationPlan()
        candidates = matcher.deduplicate(candidates)
        candidate_identities = {candidate.identity() for candidate in candidates}
        surplus_ids = set()

        for candidate in candidates:
            matches = matcher.find_all(stored, *candidate.identity())
            attached = bool(matches) and candidate.id is None
            if attached:
                first = matches[0]
                candidate.attach_id(first.id, created=first.created_at, updated=first.updated_at)

            errors = candidate.errors
            if errors:
                plan.skipped.append((candidate, errors))
                continue

            if candidate.id is not None:
                plan.updates.append(candidate)
                if attached:
                    surplus_ids.update(match.id for match in matches[1:])
            else:
                plan.creates.append(candidate)

        plan.deletes = [
            entity for entity in stored
            if entity.identity() not in candidate_identities or entity.id in surplus_ids
        ]
        return plan

    async def reconcile(
        self,
        kind: str,
        candidates: Sequence[ManifestEntity],
        stored: Sequence[ManifestEntity],
        check_only: bool = False,
    ) -> SyncResult:
        plan = self.plan(candidates, stored)
        result = SyncResult(kind=kind, plan=plan, check_only=check_only)

        for entity, errors in plan.skipped:
            result.diagnostics.append(f"Skipping {entity.display_name} due to validation errors")
            result.diagnostics.extend(f"  {error}" for error in errors)
            logger.warning(f"Skipping {entity.uniq_name} due to validation errors: {'; '.join(errors)}")

        summary = (
            f"{kind}: {len(plan.creates)} to create, {len(plan.updates)} to update, "
            f"{len(plan.deletes)} to delete, {len(plan.skipped)} skipped"
        )
        logger.info(summary)
        result.diagnostics.append(summary)

        if check_only:
            result.diagnostics.append("Check only; no changes will be made")
            return result

        return await self.apply(plan, result)

    async def apply(self, plan: ReconciliationPlan, result: SyncResult) -> SyncResult:
        """
        Writes first, then deletes. Every operation is attempted; failures
        are recorded on the result and nothing is rolled back.
        """
        for entity in plan.creates:
            if await self._write(entity, "create", result):
                result.created += 1
        for entity in plan.updates:
            if await self._write(entity, "update", result):
                result.updated += 1

        result.diagnostics.append(f"Created/Updated {result.created + result.updated} items")

        for entity in plan.deletes:
            if await self._delete(entity, result):
                result.deleted += 1

        if plan.deletes:
            result.diagnostics.append(f"Deleted {result.deleted} outdated items")

        if result.failures:
            message = f"{len(result.failures)} {result.kind} operations failed"
            logger.warning(message)
            result.diagnostics.append(message)

        return result

    async def _write(self, entity: ManifestEntity, action: str, result: SyncResult) -> bool:
        reason = "store reported failure"
        try:
            ok = await self.store.save_entity(result.kind, entity, merge=False)
        except StoreWriteError as e:
            ok, reason = False, str(e)

        verb = "Creating" if action == "create" else "Updating"
        if ok:
            logger.info(f"{verb} {entity.display_name}: Success")
            result.diagnostics.append(f"{verb} {entity.display_name}: Success")
        else:
            logger.error(f"{verb} {entity.display_name}: Failure ({reason})")
            result.diagnostics.append(f"{verb} {entity.display_name}: Failure")
            result.failures.append(OperationFailure(
                kind=entity.kind, identifier=entity.id or entity.uniq_name, action=action, reason=reason,
            ))
        return ok

    async def _delete(self, entity: ManifestEntity, result: SyncResult) -> bool:
        reason = "store reported failure"
        try:
            ok = await self.store.delete_entity(result.kind, entity.id)
        except StoreWriteError as e:
            ok, reason = False, str(e)

        if ok:
            logger.info(f"Deleting {entity.display_name}: Success")
            result.diagnostics.append(f"Deleting {entity.display_name}: Success")
        else:
            logger.error(f"Deleting {entity.display_name}: Failure ({reason})")
            result.diagnostics.append(f"Deleting {entity.display_name}: Failure")
            result.failures.append(OperationFailure(
                kind=entity.kind, identifier=entity.id or entity.uniq_name, action="delete", reason=reason,
            ))
        return ok
