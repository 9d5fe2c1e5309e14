"""
Fetch module for the Pricing Radar pipeline.

This module fetches a competitor pricing page and extracts plain text from
its pricing-relevant region, with retries, a request timeout and a
character cap that bounds downstream classifier cost.
"""

import re
from typing import List, Optional
from urllib.parse import urlparse

import requests
from bs4 import BeautifulSoup
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from pricing_radar.utils import get_logger


# Module logger
logger = get_logger("fetch")

# Default configuration
DEFAULT_TIMEOUT = 15  # seconds
DEFAULT_MAX_RETRIES = 2
DEFAULT_BACKOFF_FACTOR = 1.0
DEFAULT_MAX_CHARS = 8000
TRUNCATION_MARKER = "... [truncated]"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# Elements that never carry pricing content
NOISE_SELECTORS = [
    "script",
    "style",
    "noscript",
    "nav",
    "footer",
    "header",
    "iframe",
    "[aria-hidden='true']",
    ".cookie-banner",
    "#cookie-banner",
    ".nav",
    ".navbar",
    ".footer",
    ".header",
]

# First match wins; falls back to the whole body
PRICING_SELECTORS = [
    "[class*='pricing']",
    "[id*='pricing']",
    "[class*='plan']",
    "[id*='plan']",
    "[class*='price']",
    "[id*='price']",
    "main",
    "article",
    "body",
]


def create_session(
    max_retries: int = DEFAULT_MAX_RETRIES,
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR
) -> requests.Session:
    """
    Create a requests session with retry configuration.

    Args:
        max_retries: Maximum number of retry attempts.
        backoff_factor: Multiplier for exponential backoff between retries.

    Returns:
        Configured requests.Session instance.
    """
    session = requests.Session()

    retry_strategy = Retry(
        total=max_retries,
        backoff_factor=backoff_factor,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["GET", "HEAD"],
        raise_on_status=False
    )

    adapter = HTTPAdapter(max_retries=retry_strategy)
    session.mount("http://", adapter)
    session.mount("https://", adapter)

    session.headers.update({
        "User-Agent": DEFAULT_USER_AGENT,
        "Accept": "text/html,application/xhtml+xml",
        "Accept-Language": "en-US,en;q=0.9",
    })

    return session


def validate_url(url: str) -> bool:
    """
    Validate that a URL is well-formed and uses HTTP/HTTPS.

    Args:
        url: URL string to validate.

    Returns:
        True if URL is valid, False otherwise.
    """
    try:
        parsed = urlparse(url)
        return parsed.scheme in ("http", "https") and bool(parsed.netloc)
    except ValueError:
        return False


def _text_lines(element) -> List[str]:
    lines = []
    for raw_line in element.get_text(separator="\n").split("\n"):
        line = re.sub(r"\s+", " ", raw_line).strip()
        if line:
            lines.append(line)
    return lines


def extract_pricing_text(html: str, max_chars: int = DEFAULT_MAX_CHARS) -> str:
    """
    Extract readable pricing text from an HTML page.

    Removes navigation, scripts and banners, then takes the text of the first
    pricing-looking container. One output line per text node keeps the line
    structure the differ relies on.

    Args:
        html: Raw HTML content.
        max_chars: Character cap; longer text is cut and marked.

    Returns:
        Extracted text, possibly empty.
    """
    soup = BeautifulSoup(html, "html.parser")

    for selector in NOISE_SELECTORS:
        for element in soup.select(selector):
            element.decompose()

    text = ""
    for selector in PRICING_SELECTORS:
        element = soup.select_one(selector)
        if element is None:
            continue
        text = "\n".join(_text_lines(element))
        if text:
            break

    if not text:
        # Fragments without <body> still parse to top-level text
        text = "\n".join(_text_lines(soup))

    if len(text) > max_chars:
        text = text[:max_chars] + TRUNCATION_MARKER

    return text


class PageFetcher:
    """
    Fetches pricing pages and returns their extracted text.

    Holds one requests session for the lifetime of the process; call close()
    on shutdown.
    """

    def __init__(
        self,
        timeout: int = DEFAULT_TIMEOUT,
        max_chars: int = DEFAULT_MAX_CHARS,
        session: Optional[requests.Session] = None
    ):
        self.timeout = timeout
        self.max_chars = max_chars
        self.session = session or create_session()

    def fetch(self, url: str) -> Optional[str]:
        """
        Fetch a URL and extract its pricing text.

        Args:
            url: Pricing page URL.

        Returns:
            Extracted text, or None if the page could not be fetched or had
            no text.
        """
        logger.debug(f"Fetching URL: {url}")

        if not validate_url(url):
            logger.warning(f"Invalid URL format: {url}")
            return None

        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.exceptions.Timeout:
            logger.warning(f"Timeout fetching {url}")
            return None
        except requests.exceptions.ConnectionError as e:
            logger.warning(f"Connection error for {url}: {e}")
            return None
        except requests.exceptions.RequestException as e:
            logger.error(f"Request exception for {url}: {e}")
            return None

        if response.status_code != 200:
            logger.warning(f"HTTP {response.status_code} for {url}")
            return None

        text = extract_pricing_text(response.text, self.max_chars)

        if not text:
            logger.warning(f"No text extracted from {url}")
            return None

        logger.info(f"Fetched {url} ({len(response.text)} bytes HTML, {len(text)} chars text)")
        return text

    def close(self) -> None:
        self.session.close()
