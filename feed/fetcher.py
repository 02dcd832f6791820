"""HTTP fetcher for provider calendar feeds."""
import logging
import time
from typing import Optional
from urllib.parse import urlparse

import requests

from processor.errors import FetchError, ParameterError

logger = logging.getLogger(__name__)


class FeedFetcher:
    """Downloads raw ICS text from a provider feed URL."""

    SCHEME_ALIASES = {
        'webcal': 'https',
        'webcals': 'https',
    }
    SUPPORTED_SCHEMES = ('http', 'https')
    USER_AGENT = 'TeamScheduleSync/1.0'

    def __init__(self, timeout: int = 30, session: Optional[requests.Session] = None):
        """
        Initialize the feed fetcher.

        Args:
            timeout: HTTP request timeout in seconds (default: 30)
            session: Optional requests session to reuse connections
        """
        self.timeout = timeout
        self.session = session or requests.Session()

    def normalize_url(self, feed_url: str) -> str:
        """
        Rewrite scheme aliases and reject URLs that cannot be fetched.

        Args:
            feed_url: URL as registered by the user

        Returns:
            URL with an http(s) scheme

        Raises:
            ParameterError: If the URL is empty or uses an unsupported scheme
        """
        if not feed_url or not feed_url.strip():
            raise ParameterError('Feed URL is required')

        url = feed_url.strip()
        parsed = urlparse(url)
        scheme = parsed.scheme.lower()

        if scheme in self.SCHEME_ALIASES:
            target = self.SCHEME_ALIASES[scheme]
            url = f"{target}{url[len(parsed.scheme):]}"
            logger.info(f"Converted {scheme} URL to {target} for fetching: {url}")
            scheme = target

        if scheme not in self.SUPPORTED_SCHEMES:
            raise ParameterError(
                f"Unsupported feed URL scheme: {parsed.scheme or '(none)'}"
            )
        if not parsed.netloc:
            raise ParameterError(f"Invalid feed URL: {feed_url}")

        return url

    def fetch(self, feed_url: str, deadline: Optional[float] = None) -> str:
        """
        Fetch the feed body.

        Args:
            feed_url: Feed URL (webcal:// is accepted)
            deadline: Absolute time.monotonic() value after which the fetch
                must not start or keep waiting

        Returns:
            Raw feed text

        Raises:
            ParameterError: If the URL is not fetchable
            FetchError: On timeout, connection failure or non-2xx status
        """
        url = self.normalize_url(feed_url)
        timeout = self._effective_timeout(deadline)

        logger.info(f"Fetching calendar feed from {url}")
        try:
            response = self.session.get(
                url,
                headers={
                    'Accept': 'text/calendar',
                    'Cache-Control': 'no-cache',
                    'User-Agent': self.USER_AGENT
                },
                timeout=timeout
            )
        except requests.Timeout as e:
            raise FetchError(
                f"Timed out fetching calendar after {timeout:.1f}s",
                details=str(e)
            ) from e
        except requests.RequestException as e:
            raise FetchError(f"Failed to fetch calendar: {e}", details=str(e)) from e

        if not 200 <= response.status_code < 300:
            logger.error(
                f"Failed to fetch feed: {response.status_code} {response.reason}",
                extra={'url': url, 'status_code': response.status_code}
            )
            raise FetchError(
                f"Failed to fetch calendar: {response.status_code} {response.reason}",
                status_code_http=response.status_code,
                details=f"HTTP status {response.status_code}"
            )

        body = response.text
        logger.info(f"Fetched feed data, length: {len(body)}")
        return body

    def _effective_timeout(self, deadline: Optional[float]) -> float:
        if deadline is None:
            return float(self.timeout)

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise FetchError('Sync deadline exceeded before fetching calendar')
        return min(float(self.timeout), remaining)
