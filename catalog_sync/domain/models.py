import re
from datetime import datetime
from typing import Any, ClassVar, Dict, FrozenSet, List, Optional, Tuple, Union

from pydantic import (
    AnyUrl,
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    TypeAdapter,
    ValidationError,
    field_validator,
)

DEFAULT_VERSION = "1.0"

# github.com/<owner>/<repo>/(blob|raw)/<rest> -> raw.githubusercontent.com/<owner>/<repo>/<rest>
GITHUB_BLOB_RAW_URL_PATTERN = re.compile(
    r"^(https?)://(?:www\.)?github\.com/"  # scheme (group 1)
    r"([^/]+)/"                             # owner (group 2)
    r"([^/]+)/"                             # repo (group 3)
    r"(?:blob|raw)/"
    r"(.+)$"                                # branch and file path (group 4)
)
GITHUB_HOST_PREFIX_PATTERN = re.compile(r"^(?:https?://)?(?:[^/]*\.)?github\.com/", re.IGNORECASE)
SCHEME_PATTERN = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)
VERSION_PATTERN = re.compile(r"^\d+[.\d]*")

_URL_ADAPTER = TypeAdapter(AnyUrl)


def is_well_formed_url(url: Optional[str]) -> bool:
    """Empty values are allowed; anything else must parse as an absolute URL."""
    if not url:
        return True
    try:
        _URL_ADAPTER.validate_python(url)
    except ValidationError:
        return False
    return True


def normalize_github_url(url: Optional[str]) -> Optional[str]:
    """Rewrites GitHub blob/raw browser URLs to raw.githubusercontent.com URLs."""
    if not url:
        return url
    match = GITHUB_BLOB_RAW_URL_PATTERN.match(url)
    if not match:
        return url
    scheme, owner, repo, rest = match.groups()
    return f"{scheme}://raw.githubusercontent.com/{owner}/{repo}/{rest}"


def normalize_repository(reference: str) -> str:
    """Strips a GitHub host prefix so `https://github.com/owner/repo` becomes `owner/repo`."""
    stripped = GITHUB_HOST_PREFIX_PATTERN.sub("", reference.strip())
    stripped = stripped.rstrip("/")
    if stripped.endswith(".git"):
        stripped = stripped[: -len(".git")]
    return stripped


def is_github_reference(reference: str) -> bool:
    reference = reference.strip()
    if not SCHEME_PATTERN.match(reference):
        return True
    return bool(GITHUB_HOST_PREFIX_PATTERN.match(reference))


def _coerce_scalar(value: Any) -> Any:
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float)):
        return str(value)
    return value


class ValidationStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class ManifestEntity(BaseModel):
    """
    Shared behaviour of the two manifest entity variants (mods and tools).

    Entities are built from untrusted manifest JSON or from trusted store
    documents. GitHub browser URLs are rewritten once at construction time
    unless the entity is built with the ``persisted`` validation context.
    Validation is lazy: the first call to ``status()`` (or any of the
    accessors built on it) runs every check and caches the outcome.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    kind: ClassVar[str] = "entity"
    collection: ClassVar[str] = "entities"
    allowed_file_types: ClassVar[FrozenSet[str]] = frozenset()
    default_file_type: ClassVar[str] = "zip"
    storage_fields: ClassVar[Tuple[str, ...]] = (
        "name", "author", "version", "compatibility", "description",
        "files", "file_type", "file_url", "image_url", "readme_url",
    )

    name: str = Field("", description="Display name of the entity")
    author: str = Field("", description="Author as written in the manifest")
    version: Optional[str] = Field(None, description="Version string, defaulted to 1.0 when stored")
    compatibility: Optional[str] = None
    description: str = ""
    files: Dict[str, str] = Field(default_factory=dict, description="File kind to download URL")
    file_type: Optional[str] = Field(None, alias="fileType")
    file_url: Optional[str] = Field(None, alias="fileURL")
    image_url: Optional[str] = Field(None, alias="imageURL")
    readme_url: Optional[str] = Field(None, alias="readmeURL")

    _id: Optional[str] = PrivateAttr(default=None)
    _created_at: Optional[datetime] = PrivateAttr(default=None)
    _updated_at: Optional[datetime] = PrivateAttr(default=None)
    _errors: List[str] = PrivateAttr(default_factory=list)
    _warnings: List[str] = PrivateAttr(default_factory=list)
    _validated: bool = PrivateAttr(default=False)

    @field_validator("name", "author", "description", mode="before")
    @classmethod
    def _blank_if_missing(cls, value: Any) -> Any:
        if value is None:
            return ""
        return _coerce_scalar(value)

    @field_validator(
        "version", "compatibility", "file_type", "file_url", "image_url", "readme_url",
        mode="before",
    )
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        return _coerce_scalar(value)

    @field_validator("files", mode="before")
    @classmethod
    def _files_mapping(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, dict):
            return {str(k): ("" if v is None else v) for k, v in value.items()}
        return value

    def model_post_init(self, __context: Any) -> None:
        if isinstance(__context, dict) and __context.get("persisted"):
            return
        # Assign only on change so model_fields_set keeps reflecting the input.
        for field_name in ("image_url", "readme_url", "file_url"):
            url = getattr(self, field_name)
            normalized = self._normalized(url)
            if normalized != url:
                setattr(self, field_name, normalized)
        for file_type, url in list(self.files.items()):
            self.files[file_type] = self._normalized(url)

    def _normalized(self, url: Optional[str]) -> Optional[str]:
        normalized = normalize_github_url(url)
        if normalized != url:
            self._warnings.append(
                "GitHub URL converted to raw.githubusercontent.com format for direct download. "
                f"Auto-fixed: {url}"
            )
        return normalized

    # Store-assigned metadata

    @property
    def id(self) -> Optional[str]:
        return self._id

    @property
    def created_at(self) -> Optional[datetime]:
        return self._created_at

    @property
    def updated_at(self) -> Optional[datetime]:
        return self._updated_at

    def attach_id(
        self,
        document_id: str,
        created: Optional[datetime] = None,
        updated: Optional[datetime] = None,
    ) -> None:
        # Validation never reads store metadata.
        self._id = document_id
        self._created_at = created
        self._updated_at = updated

    # Identity

    def identity(self) -> Tuple[str, str]:
        return self.name.strip(), self.author.strip()

    @property
    def uniq_name(self) -> str:
        return f"{self.author.strip()}/{self.name.strip()}"

    @property
    def display_name(self) -> str:
        return f"'{self.author or 'NoOne'}/{self.name or 'Unnamed'}'"

    @property
    def author_id(self) -> str:
        return re.sub(r"\s+", "_", self.author.lower())

    # Files

    def effective_files(self) -> Dict[str, str]:
        """The file map, falling back to the legacy fileType/fileURL pair."""
        if self.files:
            return dict(self.files)
        if self.file_url:
            return {self.file_type or self.default_file_type: self.file_url}
        return {}

    @property
    def file_types(self) -> List[str]:
        return list(self.effective_files().keys())

    @property
    def file_urls(self) -> List[str]:
        return list(self.effective_files().values())

    @property
    def uses_legacy_fields(self) -> bool:
        return bool({"file_type", "file_url"} & self.model_fields_set)

    # Validation

    def status(self) -> ValidationStatus:
        self._validate()
        return ValidationStatus(errors=self.errors, warnings=self.warnings)

    @property
    def errors(self) -> List[str]:
        self._validate()
        return list(dict.fromkeys(e for e in self._errors if e))

    @property
    def warnings(self) -> List[str]:
        self._validate()
        return list(dict.fromkeys(w for w in self._warnings if w))

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def _validate(self) -> None:
        if self._validated:
            return

        self._validate_version()

        for field_name in ("name", "author", "description"):
            if not getattr(self, field_name).strip():
                self._errors.append(f"{field_name.capitalize()} cannot be blank")

        for label, value in (("ImageURL", self.image_url), ("ReadmeURL", self.readme_url)):
            if not is_well_formed_url(value):
                self._errors.append(f"Invalid URL {label}: {value}")

        self._validate_files()

        self._validated = True

    def _validate_version(self) -> None:
        if self.version is None:
            self._warnings.append(f"Version was missing, it has been defaulted to {DEFAULT_VERSION}")
        elif not VERSION_PATTERN.match(self.version):
            self._warnings.append("Version should be a version string")

    def _validate_files(self) -> None:
        if self.uses_legacy_fields:
            self._warnings.append(f"This {self.kind} uses deprecated fields (fileType and fileURL)")

        files = self.effective_files()
        if not files:
            self._warnings.append("files should not be empty")

        file_types = list(files)
        if self.file_type and self.file_type not in file_types:
            file_types.append(self.file_type)

        for file_type in file_types:
            if file_type.lower() not in self.allowed_file_types:
                self._errors.append(f"Invalid fileType: {file_type.upper()}")

        for url in files.values():
            if not is_well_formed_url(url):
                self._errors.append(f"Invalid URL: {url}")

    # Serialization

    def to_storage_record(self) -> Dict[str, Any]:
        """Allow-listed fields only, in the shape the catalog store keeps."""
        record = self.model_dump(by_alias=True, include=set(self.storage_fields))
        files = self.effective_files()
        record["version"] = self.version if self.version is not None else DEFAULT_VERSION
        record["files"] = files
        record["fileType"] = next(iter(files), None)
        record["fileURL"] = next(iter(files.values()), None)
        return record


class ModEntity(ManifestEntity):
    kind: ClassVar[str] = "mod"
    collection: ClassVar[str] = "mods"
    allowed_file_types: ClassVar[FrozenSet[str]] = frozenset({"zip", "pak", "exmod", "exmodz"})
    default_file_type: ClassVar[str] = "pak"
    storage_fields: ClassVar[Tuple[str, ...]] = ManifestEntity.storage_fields + ("long_description",)

    long_description: Optional[str] = None

    @field_validator("long_description", mode="before")
    @classmethod
    def _stringify_long_description(cls, value: Any) -> Any:
        return _coerce_scalar(value)


class ToolEntity(ManifestEntity):
    kind: ClassVar[str] = "tool"
    collection: ClassVar[str] = "tools"
    allowed_file_types: ClassVar[FrozenSet[str]] = frozenset({"zip", "exe"})
    default_file_type: ClassVar[str] = "zip"


AnyEntity = Union[ModEntity, ToolEntity]


class RemoteFile(BaseModel):
    """A file entry returned by the GitHub contents API."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="File name")
    path: str = Field(..., description="Path inside the repository")
    type: str = Field("file", description="Entry type reported by GitHub")
    download_url: Optional[str] = Field(None, description="Direct raw download URL")
