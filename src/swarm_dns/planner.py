"""Decide which provider write, if any, brings a record to its desired state."""

from __future__ import annotations

import ipaddress
import logging
from dataclasses import replace
from typing import Callable, Optional

from .errors import AddressResolutionError
from .models import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_PROXIED,
    DEFAULT_TTL,
    PROXIABLE_TYPES,
    DesiredRecord,
    DNSRecord,
    DNSTask,
    TaskData,
    TaskKind,
)

logger = logging.getLogger(__name__)

RecordLookup = Callable[[str, str], Optional[DNSRecord]]
ContentResolver = Callable[[], str]

ADDRESS_VERSIONS = {"A": 4, "AAAA": 6}


def record_differs(existing: DNSRecord, desired: DesiredRecord, content: str) -> bool:
    """Compare the fields the provider lets us control.

    ``proxied`` only exists for A, AAAA and CNAME records; Cloudflare reports
    it as false for everything else. TTL is ignored for proxied records
    because Cloudflare pins it to auto.
    """
    if existing.content != content:
        return True
    proxied = False
    if desired.record_type in PROXIABLE_TYPES:
        if desired.proxied is not None and existing.proxied != desired.proxied:
            return True
        proxied = existing.proxied if desired.proxied is None else desired.proxied
    if not proxied and desired.ttl is not None and existing.ttl != desired.ttl:
        return True
    return False


def check_address_family(record_type: str, address: str) -> None:
    """Raise AddressResolutionError if ``address`` cannot be used for ``record_type``.

    Args:
        record_type: DNS record type the address will be written to
        address: Resolved public address

    Raises:
        AddressResolutionError: A record given a non-IPv4 address, or AAAA
            given a non-IPv6 address
    """
    version = ADDRESS_VERSIONS.get(record_type)
    if version is None:
        return
    try:
        parsed = ipaddress.ip_address(address)
    except ValueError:
        raise AddressResolutionError(
            f"Resolved address '{address}' is not an IP address"
        ) from None
    if parsed.version != version:
        raise AddressResolutionError(
            f"Resolved address {address} is IPv{parsed.version}, "
            f"{record_type} records need IPv{version}"
        )


class ReconciliationPlanner:
    """Builds CREATE/UPDATE/DELETE tasks from desired records."""

    def __init__(self, *, max_attempts: int = DEFAULT_MAX_ATTEMPTS):
        self.max_attempts = max_attempts

    def plan(
        self,
        service_name: str,
        desired: DesiredRecord,
        lookup: RecordLookup,
        resolve_default_content: ContentResolver,
    ) -> Optional[DNSTask]:
        """Return the task needed for ``desired``, or None if nothing changes.

        Args:
            service_name: Service the record belongs to
            desired: Record parsed from the service labels
            lookup: Returns the provider's current record for (name, type)
            resolve_default_content: Returns the public address, used when
                ``desired`` has no content

        Returns:
            A CREATE or UPDATE task, or None when the record is up to date

        Raises:
            AddressResolutionError: The address could not be resolved, or its
                family does not match the record type
        """
        content = desired.content
        if not content:
            content = resolve_default_content()
            check_address_family(desired.record_type, content)

        existing = lookup(desired.hostname, desired.record_type)
        data = TaskData(
            service_name=service_name,
            record_type=desired.record_type,
            name=desired.hostname,
            content=content,
            ttl=desired.ttl or DEFAULT_TTL,
            proxied=DEFAULT_PROXIED if desired.proxied is None else desired.proxied,
        )

        if existing is None:
            logger.debug(f"No {desired.record_type} record for {desired.hostname}, will create")
            return self._task(TaskKind.CREATE, data)

        if not record_differs(existing, desired, content):
            logger.debug(
                f"{desired.record_type} record for {desired.hostname} already up to date"
            )
            return None

        logger.debug(
            f"{desired.record_type} record for {desired.hostname} changed: "
            f"{existing.content} -> {content}"
        )
        return self._task(TaskKind.UPDATE, replace(data, record_id=existing.id))

    def plan_removal(
        self,
        service_name: str,
        hostname: str,
        record_type: str,
        lookup: RecordLookup,
    ) -> Optional[DNSTask]:
        """Return a DELETE task for an existing record, None when there is none."""
        existing = lookup(hostname, record_type)
        if existing is None:
            logger.debug(f"No {record_type} record for {hostname}, nothing to delete")
            return None
        return self._task(
            TaskKind.DELETE,
            TaskData(
                service_name=service_name,
                record_type=record_type,
                name=hostname,
                content=existing.content,
                record_id=existing.id,
            ),
        )

    def _task(self, kind: TaskKind, data: TaskData) -> DNSTask:
        return DNSTask(kind=kind, data=data, max_attempts=self.max_attempts)
