"""
HTTP Fetcher

One-shot GET and HEAD requests for collectors. Each call has its own
timeout; there is no retry here, a failed source is retried on its next
scheduled run.
"""
from typing import Optional, Protocol

import requests

from config.settings import settings
from src.harvester.errors import SourceConnectionError
from src.harvester.models.collection import ValidationResult
from src.harvester.utils.logger import get_logger

logger = get_logger(__name__)


class Fetcher(Protocol):
    """Network collaborator used by collectors."""

    def fetch(self, url: str) -> str:
        ...

    def check_url(self, url: str) -> ValidationResult:
        ...


class HttpFetcher:
    """
    requests-backed Fetcher.

    Args:
        timeout: Per-request timeout in seconds (defaults to settings)
        session: requests session override (for testing)
    """

    def __init__(self, timeout: Optional[int] = None, session: Optional[requests.Session] = None):
        self.timeout = timeout or settings.http_timeout_seconds
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": settings.http_user_agent})

    def fetch(self, url: str) -> str:
        """
        Fetch a page body.

        Raises:
            SourceConnectionError: On network failure or non-success status
        """
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            status = getattr(getattr(e, "response", None), "status_code", None)
            logger.error(
                "http_request_failed",
                url=url,
                status_code=status,
                error=str(e),
                error_type=type(e).__name__
            )
            raise SourceConnectionError(
                f"Failed to fetch {url}: {e}",
                details={"url": url, "status_code": status},
            ) from e

        logger.debug("http_request_successful", url=url, status_code=response.status_code, bytes=len(response.content))
        return response.text

    def check_url(self, url: str) -> ValidationResult:
        """Cheap liveness check with a HEAD request."""
        try:
            response = self.session.head(url, timeout=self.timeout, allow_redirects=True)
        except requests.RequestException as e:
            logger.warning("http_head_check_failed", url=url, error=str(e))
            return ValidationResult(valid=False, message=f"URL is not accessible: {e}")

        if response.status_code != 200:
            return ValidationResult(valid=False, message=f"URL returned status {response.status_code}")
        return ValidationResult(valid=True)
