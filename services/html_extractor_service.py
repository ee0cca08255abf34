"""
HtmlExtractorService - fetch a page and pull its source, text and attributes

Backs the dashboard's HTML panel: the page source with line breaks
collapsed, the body text, a clean copy without script/style tags, and the
id/class/href/src/alt/title attributes of every element that has them.
Domains in the extracted content can be swapped out and reverted.
"""

import logging
import re
import threading
import time
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Dict, List, Optional

import requests
from bs4 import BeautifulSoup

from services.common.result import Result
from logging_config import performance_logger

logger = logging.getLogger(__name__)

IMPORTANT_ATTRIBUTES = ('id', 'class', 'href', 'src', 'alt', 'title')
EXTRACTION_MODES = ('source', 'text', 'clean')

LINE_BREAKS = re.compile(r'[\n\r]+')
DOMAIN_PATTERN = re.compile(r'(https?://)[\w-]+(?:\.[\w-]+)+', re.IGNORECASE)

DEFAULT_HEADERS = {
    'User-Agent': 'Mozilla/5.0 (compatible; conversion-reports/0.1)',
    'Accept': 'text/html,application/xhtml+xml',
}


@dataclass(frozen=True)
class HtmlExtraction:
    """One extracted page. The original_* fields are set while domains are replaced."""
    url: str
    source: str
    text: str
    clean: str
    attributes: List[Dict[str, Any]] = field(default_factory=list)
    original_source: Optional[str] = None
    original_text: Optional[str] = None
    original_clean: Optional[str] = None

    @property
    def domains_replaced(self) -> bool:
        return self.original_clean is not None

    def content(self, mode: str) -> str:
        if mode not in EXTRACTION_MODES:
            raise ValueError(f"Unknown extraction mode: {mode}")
        return {'source': self.source, 'text': self.text, 'clean': self.clean}[mode]

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in ('original_source', 'original_text', 'original_clean'):
            data.pop(key)
        data['domains_replaced'] = self.domains_replaced
        return data


def normalize_url(url: Optional[str]) -> str:
    """
    Trimmed URL with https:// added when no scheme is given.

    Raises:
        ValueError: Blank URL
    """
    url = (url or '').strip()
    if not url:
        raise ValueError("Please enter a valid URL")
    if not url.startswith(('http://', 'https://')):
        url = 'https://' + url
    return url


def collapse_line_breaks(value: str) -> str:
    return LINE_BREAKS.sub(' ', value)


def extract_attributes(soup: BeautifulSoup) -> List[Dict[str, Any]]:
    """Tag name plus the important attributes, for every element carrying one"""
    attributes_list = []
    for element in soup.find_all(True):
        found = {}
        for name in IMPORTANT_ATTRIBUTES:
            value = element.get(name)
            if value is None:
                continue
            # bs4 returns multi-valued attributes such as class as lists
            found[name] = ' '.join(value) if isinstance(value, list) else value
        if found:
            attributes_list.append({'tag': element.name.lower(), 'attributes': found})
    return attributes_list


def parse_html(url: str, html: str) -> HtmlExtraction:
    """Build the extraction for an already fetched page. Pure, no I/O."""
    soup = BeautifulSoup(html, 'html.parser')
    for tag in soup.find_all(['script', 'style']):
        tag.decompose()

    body = soup.body or soup
    return HtmlExtraction(
        url=url,
        source=collapse_line_breaks(html),
        text=collapse_line_breaks(body.get_text()),
        clean=str(soup),
        attributes=extract_attributes(soup),
    )


def replace_domains_in(value: str, replacement: str) -> str:
    """Swap the host of every http(s) URL in `value`, keeping its scheme."""
    return DOMAIN_PATTERN.sub(lambda match: match.group(1) + replacement, value)


class HtmlExtractorService:
    """
    Fetches pages and holds the latest extraction so domain replacement can
    be applied and reverted on it.
    """

    def __init__(self, timeout: float = 30, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(DEFAULT_HEADERS)
        self.current: Optional[HtmlExtraction] = None
        self._lock = threading.Lock()

    def fetch_html(self, url: str) -> str:
        """
        GET the page and return its text.

        Raises:
            requests.RequestException: Transport error or non-2xx status
        """
        started = time.monotonic()
        response = self.session.get(url, timeout=self.timeout, allow_redirects=True)
        performance_logger.log_api_call(
            'html', url, (time.monotonic() - started) * 1000, response.status_code
        )
        response.raise_for_status()
        return response.text

    def extract_url(self, url: str) -> Result[HtmlExtraction]:
        """Fetch `url` (https:// assumed) and replace the held extraction with it."""
        try:
            url = normalize_url(url)
        except ValueError as e:
            return Result.failure(str(e), code="INVALID_URL")

        logger.info(f"Extracting HTML from {url}")
        try:
            html = self.fetch_html(url)
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            logger.warning(f"HTML fetch of {url} returned HTTP {status}")
            return Result.failure(f"HTTP error! Status: {status}", code="FETCH_ERROR",
                                  metadata={'status_code': status})
        except requests.exceptions.RequestException as e:
            logger.warning(f"HTML fetch of {url} failed: {e}")
            return Result.failure(f"Could not fetch {url}: {e}", code="FETCH_ERROR")

        if not html.strip():
            return Result.failure("The page returned no content", code="EMPTY_CONTENT")

        extraction = parse_html(url, html)
        with self._lock:
            self.current = extraction

        logger.info(f"Extracted {len(extraction.attributes)} elements with attributes from {url}")
        return Result.success(extraction)

    def get_content(self, mode: str) -> Result[str]:
        if self.current is None:
            return Result.failure("Nothing has been extracted yet", code="NOTHING_EXTRACTED")
        try:
            return Result.success(self.current.content(mode), metadata={'mode': mode})
        except ValueError as e:
            return Result.failure(str(e), code="INVALID_MODE")

    def replace_domains(self, replacement: str) -> Result[HtmlExtraction]:
        """
        Point every http(s) URL in the held extraction at `replacement`.

        The first replacement keeps the untouched content so revert can
        restore it. Later replacements apply on top.
        """
        replacement = (replacement or '').strip()
        if not replacement:
            return Result.failure("Enter a domain to replace with", code="INVALID_DOMAIN")

        with self._lock:
            if self.current is None:
                return Result.failure("Nothing has been extracted yet", code="NOTHING_EXTRACTED")

            current = self.current
            if not current.domains_replaced:
                current = replace(current,
                                  original_source=current.source,
                                  original_text=current.text,
                                  original_clean=current.clean)

            self.current = replace(current,
                                   source=replace_domains_in(current.source, replacement),
                                   text=replace_domains_in(current.text, replacement),
                                   clean=replace_domains_in(current.clean, replacement))
            return Result.success(self.current)

    def revert_domain_changes(self) -> Result[HtmlExtraction]:
        with self._lock:
            if self.current is None:
                return Result.failure("Nothing has been extracted yet", code="NOTHING_EXTRACTED")

            current = self.current
            if current.domains_replaced:
                current = replace(current,
                                  source=current.original_source,
                                  text=current.original_text,
                                  clean=current.original_clean,
                                  original_source=None,
                                  original_text=None,
                                  original_clean=None)
                self.current = current
            return Result.success(current)
