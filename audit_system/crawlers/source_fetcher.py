"""Evidence source fetcher: httpx download plus trafilatura text extraction.

Only markup content is accepted. Pages are reduced to readable text with a
fallback chain (trafilatura precision mode, trafilatura recall mode,
BeautifulSoup raw text), then rejected if too short and truncated if too long.

A fetch never raises for a bad source: it returns None and the caller counts
how many pages it actually got.
"""

import asyncio
from typing import Optional

import httpx
import trafilatura
from bs4 import BeautifulSoup
from loguru import logger
from pydantic import BaseModel

from audit_system.config.settings import Settings

ACCEPTED_CONTENT_TYPES = ("text/html", "application/xhtml")


class FetchedPage(BaseModel):
    """Readable text of one fetched source."""

    url: str
    text: str
    content_type: str = "text/html"


class SourceFetcher:
    """
    Fetch evidence pages with a per-request timeout and size limits.

    Attributes:
        timeout: Per-request timeout in seconds
        max_chars: Extracted text is truncated to this length
        min_chars: Pages with less extracted text are rejected
    """

    def __init__(
        self,
        settings: Settings,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the fetcher.

        Args:
            settings: Application settings (timeout, size limits, user agent)
            client: Pre-built client; created lazily when omitted
        """
        self.timeout = settings.fetch_timeout_seconds
        self.max_chars = settings.fetch_max_chars
        self.min_chars = settings.fetch_min_chars
        self.user_agent = settings.fetch_user_agent
        self._client = client
        self.fetch_count = 0
        self.logger = logger.bind(component="SourceFetcher")

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                headers={
                    "User-Agent": self.user_agent,
                    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                },
            )
        return self._client

    async def fetch(self, url: str) -> Optional[FetchedPage]:
        """
        Fetch one URL and return its readable text.

        Args:
            url: Source URL

        Returns:
            FetchedPage, or None if the page failed, was not markup, or had
            too little text.
        """
        self.fetch_count += 1
        try:
            client = await self._get_client()
            response = await client.get(url)
            response.raise_for_status()
        except httpx.TimeoutException:
            self.logger.warning(f"Fetch timed out after {self.timeout}s", url=url)
            return None
        except httpx.HTTPStatusError as e:
            self.logger.warning(f"HTTP error {e.response.status_code}", url=url)
            return None
        except httpx.HTTPError as e:
            self.logger.bind(url=url).warning(f"Fetch failed: {e}")
            return None

        content_type = response.headers.get("content-type", "").lower()
        if not any(accepted in content_type for accepted in ACCEPTED_CONTENT_TYPES):
            self.logger.debug("Skipping non-markup content", url=url, content_type=content_type)
            return None

        loop = asyncio.get_running_loop()
        text = await loop.run_in_executor(None, self.extract_text, response.text, url)
        if text is None:
            return None

        return FetchedPage(
            url=str(response.url),
            text=text[: self.max_chars],
            content_type=content_type.split(";")[0].strip(),
        )

    def extract_text(self, html: str, url: str = "") -> Optional[str]:
        """
        Extract readable text with the fallback chain.

        Args:
            html: Raw HTML content
            url: Source URL for log context

        Returns:
            Extracted text, or None if every extractor came up short
        """
        content = trafilatura.extract(
            html,
            include_comments=False,
            include_tables=True,
            favor_precision=True,
        )
        if content and len(content.strip()) >= self.min_chars:
            return content.strip()

        content = trafilatura.extract(
            html,
            include_comments=False,
            include_tables=True,
            favor_recall=True,
        )
        if content and len(content.strip()) >= self.min_chars:
            self.logger.debug("Content extracted in recall mode", url=url, length=len(content))
            return content.strip()

        soup = BeautifulSoup(html, "html.parser")
        for tag in soup(["script", "style", "nav", "header", "footer"]):
            tag.decompose()
        text = soup.get_text(separator=" ", strip=True)
        if len(text) >= self.min_chars:
            self.logger.debug("Content extracted with BeautifulSoup fallback", url=url, length=len(text))
            return text

        self.logger.debug("Insufficient content after extraction", url=url)
        return None

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
