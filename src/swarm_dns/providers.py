"""DNS provider interface and the Cloudflare implementation."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Set

import requests

from .errors import ProviderError
from .models import DEFAULT_TTL, PROXIABLE_TYPES, DNSRecord

logger = logging.getLogger(__name__)


# =============================================================================
# DNS Provider Interface
# =============================================================================


class DNSProvider(ABC):
    """Abstract base class for DNS providers.

    Write methods raise ProviderError on failure.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the provider name for logging."""
        pass

    @abstractmethod
    def test_connection(self) -> bool:
        """Test connection to the DNS provider."""
        pass

    @abstractmethod
    def find_record(self, name: str, record_type: str) -> Optional[DNSRecord]:
        """Look up the current record for a name and type.

        Args:
            name: Fully qualified record name
            record_type: DNS record type (A, AAAA, CNAME, TXT, MX)

        Returns:
            The provider's record, or None if there is none
        """
        pass

    @abstractmethod
    def create_record(self, record: DNSRecord) -> None:
        """Create a DNS record.

        Args:
            record: Record to create; ``record.id`` is ignored

        Raises:
            ProviderError: The provider rejected the write or was unreachable
        """
        pass

    @abstractmethod
    def update_record(self, record_id: str, record: DNSRecord) -> None:
        """Overwrite an existing DNS record.

        Args:
            record_id: Provider id of the record to overwrite
            record: New record values

        Raises:
            ProviderError: The provider rejected the write or was unreachable
        """
        pass

    @abstractmethod
    def delete_record(self, record_id: str, name: str) -> None:
        """Delete a DNS record.

        Args:
            record_id: Provider id of the record
            name: Record name, used to find its zone

        Raises:
            ProviderError: The provider rejected the delete or was unreachable
        """
        pass


# =============================================================================
# Cloudflare
# =============================================================================


def _error_message(payload: Dict[str, Any], status_code: int) -> str:
    errors = payload.get("errors") or []
    if errors and isinstance(errors[0], dict):
        first = errors[0]
        return f"[{first.get('code', status_code)}] {first.get('message', 'unknown error')}"
    return f"HTTP {status_code}"


class CloudflareDNSProvider(DNSProvider):
    """Cloudflare v4 API provider."""

    DEFAULT_BASE_URL = "https://api.cloudflare.com/client/v4"

    def __init__(
        self,
        token: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update(
            {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
        )
        self._zone_ids: Dict[str, str] = {}
        self._not_zones: Set[str] = set()

    @property
    def name(self) -> str:
        return "Cloudflare"

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self._base_url}{path}"
        try:
            response = self._session.request(method, url, timeout=self._timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise ProviderError(f"{method} {path} failed: {e}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = None
        if not isinstance(payload, dict):
            raise ProviderError(
                f"{method} {path} returned HTTP {response.status_code} without a JSON body"
            )
        if response.status_code >= 400 or not payload.get("success", False):
            raise ProviderError(_error_message(payload, response.status_code))
        return payload.get("result")

    def test_connection(self) -> bool:
        try:
            self._request("GET", "/user/tokens/verify")
            logger.info(f"{self.name} connection successful")
            return True
        except ProviderError as e:
            logger.error(f"Failed to connect to {self.name}: {e}")
            return False

    # -------------------------------------------------------------------------
    # Zones
    # -------------------------------------------------------------------------

    @staticmethod
    def candidate_zones(name: str) -> List[str]:
        """Suffixes of ``name`` with at least two labels, longest first."""
        labels = [label for label in name.strip().rstrip(".").lower().split(".") if label]
        return [".".join(labels[i:]) for i in range(len(labels) - 1)]

    def zone_id_for(self, name: str) -> str:
        for candidate in self.candidate_zones(name):
            if candidate in self._zone_ids:
                return self._zone_ids[candidate]
            if candidate in self._not_zones:
                continue
            result = self._request("GET", "/zones", params={"name": candidate})
            if result:
                zone_id = str(result[0]["id"])
                self._zone_ids[candidate] = zone_id
                logger.debug(f"Resolved zone {candidate} ({zone_id}) for {name}")
                return zone_id
            self._not_zones.add(candidate)
        raise ProviderError(f"No zone found for domain {name}")

    # -------------------------------------------------------------------------
    # Records
    # -------------------------------------------------------------------------

    @staticmethod
    def _payload(record: DNSRecord) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "type": record.type,
            "name": record.name,
            "content": record.content,
            "ttl": record.ttl or DEFAULT_TTL,
        }
        if record.type in PROXIABLE_TYPES:
            payload["proxied"] = record.proxied
        if record.type == "MX":
            priority, _, host = record.content.partition(" ")
            if priority.isdigit() and host.strip():
                payload["priority"] = int(priority)
                payload["content"] = host.strip()
        return payload

    @staticmethod
    def _to_record(item: Dict[str, Any]) -> DNSRecord:
        content = str(item.get("content", ""))
        if item.get("type") == "MX" and item.get("priority") is not None:
            content = f"{item['priority']} {content}"
        return DNSRecord(
            id=item.get("id"),
            type=str(item.get("type", "")),
            name=str(item.get("name", "")),
            content=content,
            ttl=int(item.get("ttl") or DEFAULT_TTL),
            proxied=bool(item.get("proxied", False)),
        )

    def find_record(self, name: str, record_type: str) -> Optional[DNSRecord]:
        zone_id = self.zone_id_for(name)
        result = self._request(
            "GET",
            f"/zones/{zone_id}/dns_records",
            params={"name": name, "type": record_type},
        )
        if not result:
            return None
        if len(result) > 1:
            logger.warning(f"Found {len(result)} {record_type} records for {name}, using the first")
        return self._to_record(result[0])

    def create_record(self, record: DNSRecord) -> None:
        zone_id = self.zone_id_for(record.name)
        try:
            self._request("POST", f"/zones/{zone_id}/dns_records", json=self._payload(record))
        except ProviderError as e:
            logger.error(f"Failed to create {record.type} record for {record.name}: {e}")
            raise
        logger.info(f"Created DNS record: {record.name} {record.type} -> {record.content}")

    def update_record(self, record_id: str, record: DNSRecord) -> None:
        zone_id = self.zone_id_for(record.name)
        try:
            self._request(
                "PUT", f"/zones/{zone_id}/dns_records/{record_id}", json=self._payload(record)
            )
        except ProviderError as e:
            logger.error(f"Failed to update {record.type} record for {record.name}: {e}")
            raise
        logger.info(f"Updated DNS record: {record.name} {record.type} -> {record.content}")

    def delete_record(self, record_id: str, name: str) -> None:
        zone_id = self.zone_id_for(name)
        try:
            self._request("DELETE", f"/zones/{zone_id}/dns_records/{record_id}")
        except ProviderError as e:
            logger.error(f"Failed to delete record {record_id} for {name}: {e}")
            raise
        logger.info(f"Deleted DNS record: {name} (id={record_id})")
