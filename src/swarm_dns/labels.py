"""Turn container/service labels into desired DNS records.

Recognized labels (prefix defaults to ``dns.cloudflare.``)::

    dns.cloudflare.hostname      app.example.com
    dns.cloudflare.type          A | AAAA | CNAME | TXT | MX
    dns.cloudflare.content       record content (public IP when omitted)
    dns.cloudflare.ttl           positive integer
    dns.cloudflare.proxied       true | false

A service may declare several records by adding a group name to the key.
The group name can come before or after the field, so ``hostname.v6`` and
``v6.hostname`` both belong to group ``v6``. Keys without a group belong to
the ``default`` group.

When Traefik label support is enabled and no group names a hostname, the
hostnames of ``traefik.http.routers.<router>.rule`` labels are used instead::

    traefik.http.routers.app.rule  Host(`a.example.com`) || Host(`b.example.com`)
"""

from __future__ import annotations

import ipaddress
import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

from .models import RECORD_TYPES, DesiredRecord, RecordDefaults

logger = logging.getLogger(__name__)

DEFAULT_LABEL_PREFIX = "dns.cloudflare."
DEFAULT_GROUP = "default"
FIELDS = ("hostname", "type", "content", "ttl", "proxied")

TRAEFIK_RULE_KEY_RE = re.compile(r"^traefik\.http\.routers\.[^.]+\.rule$", re.IGNORECASE)
HOST_RULE_RE = re.compile(r"\bHost\(([^)]*)\)")
HOST_ARG_RE = re.compile(r"[`\"']([^`\"']+)[`\"']")


@dataclass
class _LabelGroup:
    """Fields collected for one label group. None means not set by a label."""

    hostname: str = ""
    record_type: Optional[str] = None
    content: Optional[str] = None
    ttl: Optional[int] = None
    proxied: Optional[bool] = None


# =============================================================================
# Helpers
# =============================================================================


def is_valid_ipv6(value: str) -> bool:
    """Strict IPv6 literal check (no brackets, no zone index)."""
    if not value or "%" in value:
        return False
    try:
        ipaddress.IPv6Address(value)
    except ValueError:
        return False
    return True


def split_label_key(remainder: str) -> Optional[Tuple[str, str]]:
    """Split a prefix-stripped label key into ``(field, group)``.

    The first segment naming a known field is the field; the remaining
    segments form the group key.
    """
    segments = [s for s in remainder.split(".") if s]
    for index, segment in enumerate(segments):
        if segment.lower() in FIELDS:
            rest = segments[:index] + segments[index + 1 :]
            group = ".".join(s.lower() for s in rest) or DEFAULT_GROUP
            return segment.lower(), group
    return None


def extract_rule_hostnames(labels: Mapping[str, str]) -> List[str]:
    """Hostnames named by Traefik router rules, in order of appearance."""
    hostnames: List[str] = []
    for key, value in labels.items():
        if not TRAEFIK_RULE_KEY_RE.match(key):
            continue
        for host_match in HOST_RULE_RE.finditer(value or ""):
            for arg in HOST_ARG_RE.finditer(host_match.group(1)):
                hostname = arg.group(1).strip()
                if hostname and hostname not in hostnames:
                    hostnames.append(hostname)
    return hostnames


def _apply_field(
    service_id: str, group_key: str, group: _LabelGroup, field_name: str, value: str
) -> None:
    if field_name == "hostname":
        group.hostname = value.strip()
    elif field_name == "type":
        record_type = value.strip().upper()
        if record_type in RECORD_TYPES:
            group.record_type = record_type
        else:
            logger.warning(
                f"Invalid DNS record type '{value}' for service {service_id} "
                f"(group: {group_key}), using default type"
            )
            group.record_type = None
    elif field_name == "content":
        group.content = value
    elif field_name == "ttl":
        try:
            ttl = int(value.strip())
        except ValueError:
            ttl = 0
        if ttl < 1:
            logger.warning(
                f"Invalid TTL value '{value}' for service {service_id} "
                f"(group: {group_key}), using default"
            )
        else:
            group.ttl = ttl
    elif field_name == "proxied":
        group.proxied = value.strip().lower() == "true"
    logger.debug(f"Set {field_name} for group {group_key}: {value}")


def _groups_from_rules(
    service_id: str,
    labels: Mapping[str, str],
    explicit: Optional[_LabelGroup],
    proxy_defaults: RecordDefaults,
) -> Dict[str, _LabelGroup]:
    groups: Dict[str, _LabelGroup] = {}
    for hostname in extract_rule_hostnames(labels):
        group = _LabelGroup(
            hostname=hostname,
            record_type=proxy_defaults.record_type,
            content=proxy_defaults.content,
            ttl=proxy_defaults.ttl,
            proxied=proxy_defaults.proxied,
        )
        if explicit is not None:
            if explicit.record_type is not None:
                group.record_type = explicit.record_type
            if explicit.content is not None:
                group.content = explicit.content
            if explicit.ttl is not None:
                group.ttl = explicit.ttl
            if explicit.proxied is not None:
                group.proxied = explicit.proxied
        groups[f"traefik:{hostname}"] = group
        logger.debug(f"Derived hostname {hostname} from Traefik rule for service {service_id}")
    return groups


def _finalize(
    service_id: str, group_key: str, group: _LabelGroup, defaults: RecordDefaults
) -> Optional[DesiredRecord]:
    if not group.hostname:
        logger.error(
            f"Missing required hostname for DNS configuration in service {service_id} "
            f"(group: {group_key})"
        )
        return None

    record_type = group.record_type or defaults.record_type
    content = group.content or defaults.content
    if record_type == "CNAME" and not content:
        logger.error(
            f"Missing required content for CNAME record in service {service_id} "
            f"(group: {group_key})"
        )
        return None
    if record_type == "AAAA" and content and not is_valid_ipv6(content):
        logger.error(
            f"Invalid IPv6 address '{content}' in service {service_id} "
            f"(group: {group_key})"
        )
        return None

    return DesiredRecord(
        hostname=group.hostname,
        record_type=record_type,
        content=content or None,
        ttl=group.ttl if group.ttl is not None else defaults.ttl,
        proxied=group.proxied if group.proxied is not None else defaults.proxied,
    )


# =============================================================================
# Parser
# =============================================================================


def parse_labels(
    service_id: str,
    labels: Mapping[str, str],
    defaults: Optional[RecordDefaults] = None,
    *,
    prefix: str = DEFAULT_LABEL_PREFIX,
    use_proxy_labels: bool = False,
    proxy_defaults: Optional[RecordDefaults] = None,
) -> List[DesiredRecord]:
    """Parse labels into desired records, skipping anything malformed."""
    defaults = defaults or RecordDefaults()
    proxy_defaults = proxy_defaults or defaults
    prefix_lower = prefix.lower()

    groups: Dict[str, _LabelGroup] = {}
    for key, value in labels.items():
        if not key.lower().startswith(prefix_lower):
            continue
        parsed = split_label_key(key[len(prefix) :])
        if parsed is None:
            logger.warning(f"Unknown DNS label key '{key}' on service {service_id}")
            continue
        field_name, group_key = parsed
        if group_key not in groups:
            groups[group_key] = _LabelGroup()
            logger.debug(f"Created new label group: {group_key}")
        _apply_field(service_id, group_key, groups[group_key], field_name, str(value))

    if use_proxy_labels and not any(g.hostname for g in groups.values()):
        derived = _groups_from_rules(
            service_id, labels, groups.get(DEFAULT_GROUP), proxy_defaults
        )
        if derived:
            groups.pop(DEFAULT_GROUP, None)
            groups.update(derived)

    records: List[DesiredRecord] = []
    seen = set()
    for group_key, group in groups.items():
        record = _finalize(service_id, group_key, group, defaults)
        if record is None:
            continue
        identity = (record.hostname.lower(), record.record_type)
        if identity in seen:
            logger.warning(
                f"Duplicate {record.record_type} record for {record.hostname} in service "
                f"{service_id} (group: {group_key}), keeping the first"
            )
            continue
        seen.add(identity)
        records.append(record)

    logger.info(f"Validated {len(records)} DNS record(s) for service {service_id}")
    return records
