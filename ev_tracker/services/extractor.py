#!/usr/bin/env python3
"""
Listing Extractor
Turns fetched result pages into RawListing records.

A page either yields one record per listing or nothing at all: when an
attribute is missing, or the attributes disagree on how many listings the page
holds, the whole page is skipped. One bad page never stops the others.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date
from functools import reduce
from typing import Dict, List, Optional, Tuple

from bs4 import BeautifulSoup

from ev_tracker.config.config import LISTING_SELECTORS, SCRAPING_CONFIG
from ev_tracker.errors import ExtractionFailure
from ev_tracker.models import RawListing, RAW_FIELDS
from ev_tracker.services.page_source import PageSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PageResult:
    """Outcome of extracting one page: listings on success, a reason on failure."""
    page_index: Optional[int]
    listings: Tuple[RawListing, ...] = ()
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, listings, page_index: Optional[int] = None) -> "PageResult":
        return cls(page_index=page_index, listings=tuple(listings))

    @classmethod
    def failure(cls, reason: str, page_index: Optional[int] = None) -> "PageResult":
        return cls(page_index=page_index, error=reason)


@dataclass(frozen=True)
class ScrapeResult:
    """All listings collected in a run, in page order, plus page counters."""
    listings: Tuple[RawListing, ...] = ()
    pages_ok: int = 0
    pages_skipped: int = 0
    failures: Tuple[ExtractionFailure, ...] = field(default_factory=tuple)


def _clean_text(text: str) -> str:
    return ' '.join(text.split())


def _read_attribute(soup: BeautifulSoup, selector: str, html_attribute: Optional[str]) -> List[str]:
    elements = soup.select(selector)
    if html_attribute:
        values = [el.get(html_attribute, '') for el in elements]
        # Multi-valued attributes such as class come back as lists
        return [_clean_text(' '.join(v) if isinstance(v, list) else str(v)) for v in values]
    return [_clean_text(el.get_text(' ', strip=True)) for el in elements]


def parse_page(page_source: str, selectors: Optional[Dict[str, Tuple[str, Optional[str]]]] = None) -> List[Dict[str, str]]:
    """
    Read every configured attribute from a page.

    Args:
        page_source: Raw page markup
        selectors: Attribute name -> (css selector, html attribute or None)

    Returns:
        List of per-listing attribute dicts

    Raises:
        ExtractionFailure: If an attribute is absent or the counts disagree
    """
    selectors = selectors or LISTING_SELECTORS
    soup = BeautifulSoup(page_source, 'lxml')

    columns = {}
    for name in RAW_FIELDS:
        selector, html_attribute = selectors[name]
        values = _read_attribute(soup, selector, html_attribute)
        if not values:
            raise ExtractionFailure(None, f"no values for '{name}' ({selector})")
        columns[name] = values

    counts = {name: len(values) for name, values in columns.items()}
    if len(set(counts.values())) != 1:
        raise ExtractionFailure(None, f"inconsistent field counts {counts}")

    row_count = next(iter(counts.values()))
    return [{name: columns[name][i] for name in RAW_FIELDS} for i in range(row_count)]


def extract_listings(page_source: str, access_date: Optional[date] = None, page_index: Optional[int] = None,
                     selectors: Optional[Dict[str, Tuple[str, Optional[str]]]] = None) -> PageResult:
    """
    Extract the listings on one page as an explicit result.

    Args:
        page_source: Raw page markup
        access_date: Date the page was fetched, stamped on each record
        page_index: Page number, for reporting
        selectors: Optional selector overrides

    Returns:
        PageResult: success with the page's listings, or failure with a reason
    """
    try:
        rows = parse_page(page_source, selectors)
    except ExtractionFailure as e:
        return PageResult.failure(e.reason, page_index)

    return PageResult.success(
        [RawListing(access_date=access_date, **row) for row in rows],
        page_index
    )


def fetch_and_extract(provider: PageSource, page_index: int, access_date: Optional[date] = None,
                      selectors: Optional[Dict[str, Tuple[str, Optional[str]]]] = None) -> PageResult:
    """Fetch one page and extract it, turning any fetch error into a failed page."""
    try:
        page_source = provider.fetch(page_index)
    except Exception as e:
        return PageResult.failure(f"fetch failed: {e}", page_index)

    return extract_listings(page_source, access_date, page_index, selectors)


def _fold_page(collected: ScrapeResult, page: PageResult) -> ScrapeResult:
    if page.ok:
        return ScrapeResult(
            listings=collected.listings + page.listings,
            pages_ok=collected.pages_ok + 1,
            pages_skipped=collected.pages_skipped,
            failures=collected.failures
        )

    logger.debug(f"Page {page.page_index} skipped: {page.error}")
    return ScrapeResult(
        listings=collected.listings,
        pages_ok=collected.pages_ok,
        pages_skipped=collected.pages_skipped + 1,
        failures=collected.failures + (ExtractionFailure(page.page_index, page.error),)
    )


def fold_pages(pages) -> ScrapeResult:
    """Fold page results, in page order, into one ScrapeResult."""
    ordered = sorted(pages, key=lambda p: p.page_index if p.page_index is not None else 0)
    return reduce(_fold_page, ordered, ScrapeResult())


def collect_pages(provider: PageSource, access_date: date, page_count: Optional[int] = None,
                  max_workers: Optional[int] = None,
                  selectors: Optional[Dict[str, Tuple[str, Optional[str]]]] = None) -> ScrapeResult:
    """
    Fetch and extract pages 1..page_count.

    Args:
        provider: Page source to read from
        access_date: Date stamped on every listing
        page_count: Number of pages to fetch (defaults to configuration)
        max_workers: Parallel fetches; 1 fetches sequentially
        selectors: Optional selector overrides

    Returns:
        ScrapeResult: listings in page order plus ok/skipped counters
    """
    page_count = page_count if page_count is not None else SCRAPING_CONFIG['page_count']
    max_workers = max_workers if max_workers is not None else SCRAPING_CONFIG['max_workers']
    page_indices = list(range(1, page_count + 1))

    if max_workers <= 1 or page_count <= 1:
        pages = [fetch_and_extract(provider, i, access_date, selectors) for i in page_indices]
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            pages = list(executor.map(
                lambda i: fetch_and_extract(provider, i, access_date, selectors),
                page_indices
            ))

    result = fold_pages(pages)
    logger.info(f"Extracted {len(result.listings)} listings from {result.pages_ok}/{page_count} pages "
                f"({result.pages_skipped} skipped)")
    return result
