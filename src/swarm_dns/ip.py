"""Public IP discovery used as default record content."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Sequence

import requests

from .errors import AddressResolutionError

logger = logging.getLogger(__name__)

DEFAULT_SOURCES = ("https://api.ipify.org?format=json", "https://ifconfig.me/ip")


class PublicIPResolver:
    """Resolve the host's public address from several echo services.

    All sources must agree. A resolved address is reused for
    ``cache_seconds``; if a later lookup fails the previous address is
    returned instead.
    """

    def __init__(
        self,
        sources: Sequence[str] = DEFAULT_SOURCES,
        *,
        cache_seconds: float = 300.0,
        timeout: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
        session: Optional[requests.Session] = None,
    ):
        if not sources:
            raise ValueError("at least one IP source is required")
        self._sources = tuple(sources)
        self._cache_seconds = cache_seconds
        self._timeout = timeout
        self._clock = clock
        self._session = session or requests.Session()
        self._address: Optional[str] = None
        self._checked_at = 0.0

    @property
    def cached_address(self) -> Optional[str]:
        return self._address

    def _fetch(self, url: str) -> str:
        try:
            response = self._session.get(url, timeout=self._timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise AddressResolutionError(f"Failed to fetch IP from {url}: {e}") from e

        content_type = response.headers.get("Content-Type", "")
        if "json" in content_type:
            try:
                address = str(response.json()["ip"])
            except (ValueError, KeyError, TypeError) as e:
                raise AddressResolutionError(f"Malformed response from {url}: {e}") from e
        else:
            address = response.text
        address = address.strip()
        if not address:
            raise AddressResolutionError(f"Empty response from {url}")
        return address

    def current_address(self) -> str:
        if self._address and self._clock() - self._checked_at < self._cache_seconds:
            return self._address

        try:
            addresses = {url: self._fetch(url) for url in self._sources}
            distinct = sorted(set(addresses.values()))
            if len(distinct) > 1:
                raise AddressResolutionError(
                    f"IP addresses from different sources don't match: {addresses}"
                )
        except AddressResolutionError as e:
            logger.error(f"Failed to fetch public IP: {e}")
            if self._address:
                logger.warning(f"Using cached IP address {self._address}")
                return self._address
            raise

        address = distinct[0]
        if address != self._address:
            logger.info(f"Public IP address is {address}")
        self._address = address
        self._checked_at = self._clock()
        return address
