"""Source fetching for Trellis.

Implements the Fetcher protocol: local locators are read from disk, remote
locators over HTTP with a shared requests session.

Key classes:
- DefaultFetcher: Reads local files and http(s) URLs.
"""

from __future__ import annotations

import logging

import requests

from .errors import FetchError
from .locator import Locator

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30
USER_AGENT = "trellis-site-compiler"


class DefaultFetcher:
    """Fetches local files and remote URLs.

    Remote responses are cached for the lifetime of the fetcher, so a
    resource referenced from many pages is downloaded once.

    Attributes:
        timeout: Timeout in seconds for remote requests.
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, session: requests.Session | None = None):
        self.timeout = timeout
        self._session = session
        self._cache: dict[Locator, bytes] = {}

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update({"User-Agent": USER_AGENT})
        return self._session

    def fetch(self, locator: Locator) -> bytes:
        """Read the content behind a locator.

        Raises:
            FetchError: If the file is missing or the request fails.
        """
        if locator.is_local:
            try:
                with open(locator.path, "rb") as f:
                    return f.read()
            except OSError as exc:
                raise FetchError(f"cannot read {locator}: {exc.strerror or exc}", locator) from exc
        if locator.is_remote:
            if locator in self._cache:
                return self._cache[locator]
            logger.debug("Fetching %s", locator)
            try:
                response = self.session.get(locator.value, timeout=self.timeout)
                response.raise_for_status()
            except requests.RequestException as exc:
                raise FetchError(f"cannot fetch {locator}: {exc}", locator) from exc
            self._cache[locator] = response.content
            return response.content
        raise FetchError(f"{locator} has no source to fetch", locator)

    def exists(self, locator: Locator) -> bool:
        if locator.is_local:
            return locator.path.is_file()
        if locator.is_remote:
            try:
                self.fetch(locator)
            except FetchError:
                return False
            return True
        return False

    def close(self) -> None:
        """Close the underlying HTTP session."""
        if self._session is not None:
            self._session.close()
            self._session = None

    def __enter__(self) -> DefaultFetcher:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
