import asyncio
import logging
import ssl
from typing import Any, Optional

import aiohttp

from catalog_sync.domain.exceptions import FetchError, HTTPFailureError, InvalidURIError, ParseFailureError
from catalog_sync.domain.models import is_well_formed_url

logger = logging.getLogger(__name__)

USER_AGENT = "mod-catalog-sync"


def build_ssl_context() -> ssl.SSLContext:
    """
    Peer verification stays on; only certificate revocation list checks are
    disabled, so an unreachable CRL never fails the handshake.
    """
    context = ssl.create_default_context()
    context.verify_flags &= ~(ssl.VERIFY_CRL_CHECK_LEAF | ssl.VERIFY_CRL_CHECK_CHAIN)
    return context


class ManifestFetcher:
    """
    Retrieves manifest JSON documents over HTTP(S).
    A single attempt is made per URL; callers decide whether to skip or abort.
    """

    def __init__(self, session: aiohttp.ClientSession, ssl_context: Optional[ssl.SSLContext] = None):
        self.session = session
        self.ssl_context = ssl_context or build_ssl_context()
        self.headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}

    async def fetch(self, url: Optional[str]) -> Any:
        """
        Fetches and decodes the JSON document at `url`.

        Raises:
            InvalidURIError: The URL is missing or not absolute.
            HTTPFailureError: The response status is not 200.
            ParseFailureError: The body is not valid JSON.
            FetchError: The request itself failed.
        """
        if not url or not is_well_formed_url(url):
            raise InvalidURIError(url)

        logger.debug(f"Fetching {url}")
        try:
            async with self.session.get(url, headers=self.headers, ssl=self.ssl_context) as response:
                if response.status != 200:
                    raise HTTPFailureError(url, response.status, response.reason or "")

                try:
                    # raw.githubusercontent.com serves JSON as text/plain
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise ParseFailureError(url, str(e)) from e

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise FetchError(url, f"Request failed for {url}: {e}") from e
