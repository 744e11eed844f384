from typing import Optional


class CatalogSyncError(Exception):
    """Base exception for all catalog sync errors."""
    pass

class ManifestParseError(CatalogSyncError):
    """Raised when a manifest entry cannot be turned into an entity at all."""
    pass

class FetchError(CatalogSyncError):
    """Raised when a remote manifest cannot be retrieved."""
    def __init__(self, url: Optional[str], message: str):
        self.url = url
        super().__init__(message)

class InvalidURIError(FetchError):
    """Raised when the manifest URL is not an absolute URL."""
    def __init__(self, url: Optional[str]):
        super().__init__(url, f"Invalid URI: '{url or ''}'")

class HTTPFailureError(FetchError):
    """Raised when the remote answers with anything other than 200."""
    def __init__(self, url: str, code: int, message: str):
        self.code = code
        self.reason = message
        super().__init__(url, f"HTTP Request failed for {url} ({code}): {message}")

class ParseFailureError(FetchError):
    """Raised when the response body is not valid JSON."""
    def __init__(self, url: str, detail: str):
        super().__init__(url, f"Invalid JSON in {url}: {detail}")

class GitHubAPIError(CatalogSyncError):
    """Raised when the GitHub contents API returns an unexpected status."""
    def __init__(self, repository: str, status: int, message: str = "GitHub API request failed."):
        self.repository = repository
        self.status = status
        super().__init__(f"{message} Repository: {repository} (status {status})")

class NotFoundError(CatalogSyncError):
    """Raised when a targeted removal or lookup finds nothing."""
    pass

class StoreWriteError(CatalogSyncError):
    """Raised when a document store operation fails."""
    pass

class ConfigError(CatalogSyncError):
    """Raised when the configuration file is missing or unreadable."""
    pass
