"""HTTP fetcher for third-party ICS feeds."""
import logging

import requests

from core.exceptions import FetchError

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = 'StudentPlanner-ICS/1.0'


class FeedFetcher:
    """Downloads ICS feed bodies. Retries are left to the caller."""

    def __init__(self, timeout: int = 30, user_agent: str = DEFAULT_USER_AGENT):
        """
        Initialize the feed fetcher.

        Args:
            timeout: HTTP request timeout in seconds (default: 30)
            user_agent: User-Agent header sent to feed providers
        """
        self.timeout = timeout
        self.user_agent = user_agent

    @staticmethod
    def normalize_url(url: str) -> str:
        """Rewrite ``webcal://`` subscription links to ``https://``."""
        url = url.strip()
        if url.lower().startswith('webcal://'):
            return 'https://' + url[len('webcal://'):]
        return url

    def fetch(self, url: str) -> str:
        """
        Fetch a feed body.

        Args:
            url: Feed URL (http, https or webcal)

        Returns:
            Body decoded as UTF-8

        Raises:
            FetchError: On timeout, network failure or non-2xx status
        """
        url = self.normalize_url(url)
        logger.info(f"Fetching ICS feed from {url}")

        try:
            response = requests.get(
                url,
                headers={
                    'User-Agent': self.user_agent,
                    'Accept': 'text/calendar, text/plain;q=0.9, */*;q=0.5',
                },
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            logger.warning(f"Timed out fetching {url}: {e}")
            raise FetchError(f"Request timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            logger.warning(f"Network error fetching {url}: {e}")
            raise FetchError(f"Network error: {e}") from e

        if not 200 <= response.status_code < 300:
            logger.warning(f"Feed {url} returned HTTP {response.status_code}")
            raise FetchError(f"HTTP {response.status_code}", status_code=response.status_code)

        # text/calendar responses often omit charset; requests would assume latin-1
        body = response.content.decode('utf-8', errors='replace')
        logger.info(f"Fetched {len(body)} characters from {url}")
        return body
