import copy
from typing import Any, Dict, List, Optional

from catalog_sync.domain.exceptions import HTTPFailureError
from catalog_sync.infrastructure.database import StoredDocument, split_path


class InMemoryDocumentStore:
    """Dict-backed stand-in for the PostgreSQL document store."""

    def __init__(self) -> None:
        self.documents: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.calls: List[tuple] = []
        self.failing_paths = set()
        self._next_id = 0

    def put(self, path: str, data: Dict[str, Any]) -> None:
        collection, document_id = split_path(path)
        self.documents.setdefault(collection, {})[document_id] = copy.deepcopy(data)

    def peek(self, path: str) -> Optional[Dict[str, Any]]:
        collection, document_id = split_path(path)
        return self.documents.get(collection, {}).get(document_id)

    async def get(self, path: str) -> Optional[Dict[str, Any]]:
        self.calls.append(("get", path))
        return copy.deepcopy(self.peek(path))

    async def list_collection(self, collection: str) -> List[StoredDocument]:
        self.calls.append(("list", collection))
        return [
            StoredDocument(document_id, copy.deepcopy(data))
            for document_id, data in self.documents.get(collection, {}).items()
        ]

    async def set(self, path: str, value: Dict[str, Any], merge: bool = False) -> bool:
        self.calls.append(("set", path))
        if path in self.failing_paths:
            return False
        collection, document_id = split_path(path)
        existing = self.documents.setdefault(collection, {}).get(document_id, {}) if merge else {}
        self.documents[collection][document_id] = {**existing, **copy.deepcopy(value)}
        return True

    async def add(self, collection: str, value: Dict[str, Any]) -> str:
        self.calls.append(("add", collection))
        existing = self.documents.setdefault(collection, {})
        document_id = None
        while document_id is None or document_id in existing:
            self._next_id += 1
            document_id = f"doc-{self._next_id}"
        existing[document_id] = copy.deepcopy(value)
        return document_id

    async def delete(self, path: str) -> bool:
        self.calls.append(("delete", path))
        if path in self.failing_paths:
            return False
        collection, document_id = split_path(path)
        return self.documents.get(collection, {}).pop(document_id, None) is not None


class FakeFetcher:
    """Returns canned manifest documents; an Exception value is raised instead."""

    def __init__(self, responses: Dict[str, Any]) -> None:
        self.responses = responses
        self.calls: List[str] = []

    async def fetch(self, url: str) -> Any:
        self.calls.append(url)
        response = self.responses.get(url)
        if isinstance(response, Exception):
            raise response
        if response is None:
            raise HTTPFailureError(url, 404, "Not Found")
        return copy.deepcopy(response)


class FakeGitHubClient:
    def __init__(self, files: Dict[str, List[str]]) -> None:
        self.files = files
        self.warnings: List[str] = []
        self.calls: List[tuple] = []

    async def find_files(self, repository: str, filename: str) -> List[str]:
        self.calls.append((repository, filename))
        return [url for url in self.files.get(repository, []) if url.endswith(filename)]
