import asyncio
import logging
from typing import Dict, Optional

import requests

from podcastgen.core.config import Settings, settings as app_settings
from podcastgen.core.errors import ScraperError
from podcastgen.schemas.podcast import SourceRef

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}


class Scraper:
    """
    Fetches the raw content behind a `SourceRef`.

    'url' sources are downloaded with requests in a worker thread; 'text'
    sources already carry their content and are returned as-is.
    """

    def __init__(self, timeout: int = 15, user_agent: Optional[str] = None, headers: Optional[Dict[str, str]] = None):
        self.timeout = timeout
        self.headers = dict(DEFAULT_HEADERS)
        if user_agent:
            self.headers["User-Agent"] = user_agent
        if headers:
            self.headers.update(headers)

    @classmethod
    def from_settings(cls, settings: Settings = app_settings) -> "Scraper":
        return cls(timeout=settings.SCRAPER_TIMEOUT, user_agent=settings.SCRAPER_USER_AGENT)

    async def fetch(self, source: SourceRef) -> str:
        """
        Return the content for `source`.

        Raises:
            ScraperError: if the source kind is unsupported or the download fails.
        """
        if source.kind == "text":
            return source.detail
        if source.kind != "url":
            raise ScraperError(f"Unsupported source kind: {source.kind}", source.detail)
        return await asyncio.to_thread(self._scrape, source.detail)

    def _scrape(self, url: str) -> str:
        logger.debug(f"Scraper: Fetching URL {url}")
        try:
            response = requests.get(url, headers=self.headers, timeout=self.timeout, allow_redirects=True)
        except requests.exceptions.Timeout as e:
            message = f"Scraping timed out for URL: {url} after {self.timeout}s."
            logger.error(f"Scraper: {message}")
            raise ScraperError(message, url) from e
        except requests.exceptions.RequestException as e:
            message = f"Failed to scrape URL: {url}. Reason: {e}"
            logger.error(f"Scraper: {message}")
            raise ScraperError(message, url) from e

        if not 200 <= response.status_code < 300:
            message = f"Failed to scrape URL: {url}. Status: {response.status_code}."
            logger.error(f"Scraper: {message}")
            raise ScraperError(message, url, status_code=response.status_code)

        logger.debug(f"Scraper: Fetched {url} (status {response.status_code}, {len(response.text)} chars)")
        return response.text
