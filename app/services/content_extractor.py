"""
Fetch an article URL and pull out its readable text.
Flags paywalled sources instead of returning teaser text.
"""
import logging
import os
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

import requests
from bs4 import BeautifulSoup

from app.core.errors import ExtractionFailed, NetworkError

logger = logging.getLogger(__name__)

EXTRACTION_TIMEOUT_SECONDS = float(os.getenv("EXTRACTION_TIMEOUT_SECONDS", "30"))
USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"

# Sites that never serve full text to anonymous fetches
PAYWALLED_DOMAINS = ("wsj.com", "nytimes.com", "ft.com", "economist.com", "bloomberg.com")

PAYWALL_INDICATORS = (
    "paywall",
    "subscription",
    "premium",
    "members-only",
    "locked-content",
    "subscribe-to-read",
)

CONTENT_SELECTORS = (
    "article",
    '[role="article"]',
    ".article-content",
    ".post-content",
    ".entry-content",
    ".content",
    "main",
)

MIN_SUBSTANTIAL_LENGTH = 200


@dataclass
class ExtractionResult:
    content: str
    title: Optional[str] = None
    requires_subscription: bool = False


def is_paywalled_domain(url: str) -> bool:
    host = (urlparse(url).hostname or "").lower()
    return any(host == domain or host.endswith("." + domain) for domain in PAYWALLED_DOMAINS)


def _clean_text(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def _has_paywall_marker(soup: BeautifulSoup) -> bool:
    for indicator in PAYWALL_INDICATORS:
        if soup.select(f'[class*="{indicator}"], [id*="{indicator}"]'):
            return True
    return False


def _extract_title(soup: BeautifulSoup) -> Optional[str]:
    og_title = soup.find("meta", attrs={"property": "og:title"})
    if og_title and og_title.get("content"):
        return og_title["content"].strip()
    if soup.title and soup.title.string:
        return soup.title.string.strip()
    return None


def parse_article_html(html: str) -> ExtractionResult:
    """Pick the main content block, falling back to the stripped page body."""
    soup = BeautifulSoup(html, "html.parser")
    requires_subscription = _has_paywall_marker(soup)
    title = _extract_title(soup)

    content = ""
    for selector in CONTENT_SELECTORS:
        element = soup.select_one(selector)
        if element is not None:
            content = _clean_text(element.get_text(" "))
            if len(content) > MIN_SUBSTANTIAL_LENGTH:
                break

    if len(content) < MIN_SUBSTANTIAL_LENGTH:
        for tag in soup(["script", "style", "nav", "footer", "header", "aside"]):
            tag.decompose()
        body = soup.body or soup
        content = _clean_text(body.get_text(" "))

    return ExtractionResult(content=content, title=title, requires_subscription=requires_subscription)


class ContentExtractor:
    def __init__(self, session: Optional[requests.Session] = None, timeout: float = EXTRACTION_TIMEOUT_SECONDS):
        self.session = session or requests.Session()
        self.timeout = timeout

    def extract(self, url: str) -> ExtractionResult:
        if is_paywalled_domain(url):
            logger.info("Known subscription site, skipping fetch: %s", urlparse(url).hostname)
            return ExtractionResult(content="", requires_subscription=True)

        try:
            response = self.session.get(url, headers={"User-Agent": USER_AGENT}, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.Timeout as e:
            raise NetworkError(f"Timed out fetching {url}", original_exception=e) from e
        except requests.exceptions.RequestException as e:
            logger.warning("Failed to fetch %s: %s", url, e)
            raise ExtractionFailed(f"Failed to extract content: {e}", original_exception=e) from e

        try:
            return parse_article_html(response.text)
        except Exception as e:
            raise ExtractionFailed(f"Failed to extract content: {e}", original_exception=e) from e
