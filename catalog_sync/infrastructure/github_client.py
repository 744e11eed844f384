import asyncio
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import aiohttp

from catalog_sync.domain.exceptions import GitHubAPIError
from catalog_sync.domain.models import RemoteFile, normalize_repository

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
MAX_RETRIES = 3


class GitHubContentsClient:
    """
    Client for the GitHub REST contents API.
    Lists repository files so manifest files can be discovered.
    """

    def __init__(self, token: str, session: aiohttp.ClientSession):
        self.headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "mod-catalog-sync",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            self.headers["Authorization"] = f"Bearer {token}"
        self.api_url = GITHUB_API_URL
        self.session = session
        self.warnings: List[str] = []

    def _contents_url(self, repository: str, path: Optional[str]) -> str:
        url = f"{self.api_url}/repos/{repository}/contents"
        if path:
            url = f"{url}/{quote(path.strip('/'))}"
        return url

    async def _get_contents(self, repository: str, path: Optional[str]) -> List[Dict[str, Any]]:
        try:
            return await self._request_contents(repository, path)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise GitHubAPIError(repository, 0, f"GitHub request failed: {e}.") from e

    async def _request_contents(self, repository: str, path: Optional[str]) -> List[Dict[str, Any]]:
        url = self._contents_url(repository, path)

        for attempt in range(MAX_RETRIES):
            async with self.session.get(url, headers=self.headers) as response:
                if response.status == 404:
                    message = f"Could not access {repository}: 404 - not found"
                    logger.warning(message)
                    self.warnings.append(message)
                    return []

                # Secondary rate limit (abuse detection)
                if response.status == 403 and response.headers.get("Retry-After"):
                    sleep_time = int(response.headers["Retry-After"])
                    logger.warning(
                        f"Secondary rate limit (403). Sleeping {sleep_time}s "
                        f"(attempt {attempt + 1}/{MAX_RETRIES})..."
                    )
                    await asyncio.sleep(sleep_time)
                    continue

                if response.status != 200:
                    raise GitHubAPIError(repository, response.status)

                data = await response.json()
                # A file path returns a single object rather than a listing
                return data if isinstance(data, list) else [data]

        raise GitHubAPIError(repository, 403, "GitHub API rate limit exceeded.")

    async def list_files(
        self,
        repository: str,
        path: Optional[str] = None,
        recursive: bool = False,
    ) -> List[RemoteFile]:
        """
        Returns the files under `path` as a flat list; directories are walked
        when `recursive` is set and never returned themselves.
        """
        repository = normalize_repository(repository)
        files: List[RemoteFile] = []

        for entry in await self._get_contents(repository, path):
            if entry.get("type") == "dir":
                if recursive:
                    files.extend(await self.list_files(repository, entry.get("path"), recursive=True))
                continue

            files.append(RemoteFile(
                name=entry.get("name", ""),
                path=entry.get("path", ""),
                type=entry.get("type", "file"),
                download_url=entry.get("download_url"),
            ))

        return files

    async def find_files(self, repository: str, filename: str) -> List[str]:
        """Download URLs of every file named `filename` (case-insensitive) in the repository."""
        files = await self.list_files(repository, recursive=True)
        return [
            remote.download_url
            for remote in files
            if remote.name.lower() == filename.lower() and remote.download_url
        ]
