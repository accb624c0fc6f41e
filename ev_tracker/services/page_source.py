"""
Page source providers.
Fetch raw result-page markup from the classifieds site by page index.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional
from urllib.parse import urlencode

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ev_tracker.config.config import SCRAPING_CONFIG

logger = logging.getLogger(__name__)


class PageSource(ABC):
    """Returns the raw markup of one result page, or raises."""

    @abstractmethod
    def fetch(self, page_index: int) -> str:
        """Fetch page `page_index` (1-based)."""

    def close(self):
        """Release any held resources."""


class HttpPageSource(PageSource):
    """
    Fetches search result pages over HTTP.

    Each request is bounded by a timeout and retried with exponential backoff
    on transient status codes. Any failure surfaces as a requests exception,
    which the extractor turns into a skipped page.
    """

    def __init__(self, base_url: Optional[str] = None, search_params: Optional[Dict[str, str]] = None,
                 timeout: Optional[float] = None, max_retries: Optional[int] = None,
                 backoff_factor: Optional[float] = None, user_agent: Optional[str] = None):
        """
        Initialize the HTTP page source.

        Args:
            base_url: Search URL without query string
            search_params: Query parameters shared by every page
            timeout: Per-request timeout in seconds
            max_retries: Retries for transient failures
            backoff_factor: Exponential backoff factor between retries
            user_agent: User-Agent header value
        """
        self.base_url = base_url or SCRAPING_CONFIG['base_url']
        self.search_params = dict(search_params if search_params is not None else SCRAPING_CONFIG['search_params'])
        self.timeout = timeout if timeout is not None else SCRAPING_CONFIG['request_timeout']

        retry_strategy = Retry(
            total=max_retries if max_retries is not None else SCRAPING_CONFIG['max_retries'],
            status_forcelist=[429, 500, 502, 503, 504],
            backoff_factor=backoff_factor if backoff_factor is not None else SCRAPING_CONFIG['backoff_factor'],
            allowed_methods=["GET"]
        )
        adapter = HTTPAdapter(max_retries=retry_strategy, pool_connections=4, pool_maxsize=8)

        self.session = requests.Session()
        self.session.mount('http://', adapter)
        self.session.mount('https://', adapter)
        self.session.headers.update({
            'User-Agent': user_agent or SCRAPING_CONFIG['user_agent'],
            'Accept': 'text/html,application/xhtml+xml',
            'Accept-Language': 'nl-NL,nl;q=0.9,en;q=0.5',
        })

    def build_url(self, page_index: int) -> str:
        """Build the search URL for one page."""
        params = dict(self.search_params)
        params['page'] = str(page_index)
        return f"{self.base_url}?{urlencode(params)}"

    def fetch(self, page_index: int) -> str:
        url = self.build_url(page_index)
        logger.debug(f"Fetching page {page_index}: {url}")
        response = self.session.get(url, timeout=self.timeout)
        response.raise_for_status()
        return response.text

    def close(self):
        self.session.close()
