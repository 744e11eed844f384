from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from catalog_sync.domain.models import ManifestEntity


class FetchFailure(BaseModel):
    """A manifest URL that could not be retrieved or parsed."""
    model_config = ConfigDict(frozen=True)

    url: str
    reason: str


class OperationFailure(BaseModel):
    """A store write or delete that did not succeed."""
    model_config = ConfigDict(frozen=True)

    kind: str = Field(..., description="Record type, e.g. mod, tool, modinfo, repositories")
    identifier: str = Field(..., description="Store id, URL or repository reference")
    action: str = Field("delete", description="create, update or delete")
    reason: str = "store reported failure"


class ValidationReport(BaseModel):
    kind: str
    valid_entities: List[ManifestEntity] = Field(default_factory=list)
    invalid_entities: List[Tuple[ManifestEntity, List[str]]] = Field(default_factory=list)
    fetch_failures: List[FetchFailure] = Field(default_factory=list)
    diagnostics: List[str] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.invalid_entities


class ManifestSyncResult(BaseModel):
    kind: str
    repositories: List[str] = Field(default_factory=list)
    discovered: List[str] = Field(default_factory=list)
    added: List[str] = Field(default_factory=list)
    written: bool = False
    dry_run: bool = False
    diagnostics: List[str] = Field(default_factory=list)


class ReconciliationPlan(BaseModel):
    creates: List[ManifestEntity] = Field(default_factory=list)
    updates: List[ManifestEntity] = Field(default_factory=list)
    deletes: List[ManifestEntity] = Field(default_factory=list)
    skipped: List[Tuple[ManifestEntity, List[str]]] = Field(default_factory=list)


class SyncResult(BaseModel):
    kind: str
    plan: ReconciliationPlan = Field(default_factory=ReconciliationPlan)
    created: int = 0
    updated: int = 0
    deleted: int = 0
    failures: List[OperationFailure] = Field(default_factory=list)
    fetch_failures: List[FetchFailure] = Field(default_factory=list)
    check_only: bool = False
    diagnostics: List[str] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failures


class EntitySummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    author: str
    id: Optional[str] = None


class CascadePreview(BaseModel):
    repository: str
    manifest_urls: Dict[str, List[str]] = Field(default_factory=dict)
    entities: Dict[str, List[EntitySummary]] = Field(default_factory=dict)

    @property
    def counts(self) -> Dict[str, int]:
        counts = {kind: len(urls) for kind, urls in self.manifest_urls.items()}
        counts.update({kind: len(items) for kind, items in self.entities.items()})
        return counts


class CascadeResult(BaseModel):
    repository: str
    removed: bool = False
    dry_run: bool = False
    preview: Optional[CascadePreview] = None
    deleted: Dict[str, List[str]] = Field(default_factory=dict)
    fetch_failures: List[FetchFailure] = Field(default_factory=list)
    delete_failures: List[OperationFailure] = Field(default_factory=list)
    diagnostics: List[str] = Field(default_factory=list)


class RemovalResult(BaseModel):
    target: str
    removed: bool = False
    dry_run: bool = False
    diagnostics: List[str] = Field(default_factory=list)


class AddResult(BaseModel):
    target: str
    added: bool = False
    diagnostics: List[str] = Field(default_factory=list)
