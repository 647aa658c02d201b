"""Data types shared by the label parser, planner and task queue."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

RECORD_TYPES = ("A", "AAAA", "CNAME", "TXT", "MX")
PROXIABLE_TYPES = ("A", "AAAA", "CNAME")

DEFAULT_TTL = 1
DEFAULT_PROXIED = True
DEFAULT_MAX_ATTEMPTS = 3


# =============================================================================
# Enums
# =============================================================================


class TaskKind(Enum):
    """Provider write a task performs."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class TaskStatus(Enum):
    """Task lifecycle.

    PENDING -> PROCESSING -> COMPLETED | FAILED
    FAILED -> PENDING while attempts remain, otherwise the task is dropped.
    """

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class RecordDefaults:
    """Values used when labels leave a field unset."""

    record_type: str = "A"
    content: Optional[str] = None
    ttl: int = DEFAULT_TTL
    proxied: bool = DEFAULT_PROXIED


@dataclass(frozen=True)
class DesiredRecord:
    """A DNS record derived from service labels."""

    hostname: str
    record_type: str = "A"
    content: Optional[str] = None
    ttl: Optional[int] = None
    proxied: Optional[bool] = None


@dataclass(frozen=True)
class DNSRecord:
    """A record as stored by the DNS provider, or a payload to write."""

    type: str
    name: str
    content: str
    ttl: int = DEFAULT_TTL
    proxied: bool = DEFAULT_PROXIED
    id: Optional[str] = None


@dataclass(frozen=True)
class TaskData:
    """Everything a task needs to perform its provider write."""

    service_name: str
    record_type: str
    name: str
    content: str = ""
    ttl: Optional[int] = None
    proxied: Optional[bool] = None
    record_id: Optional[str] = None

    def to_record(self) -> DNSRecord:
        return DNSRecord(
            type=self.record_type,
            name=self.name,
            content=self.content,
            ttl=self.ttl or DEFAULT_TTL,
            proxied=DEFAULT_PROXIED if self.proxied is None else self.proxied,
        )


def _new_task_id() -> str:
    return uuid.uuid4().hex


@dataclass
class DNSTask:
    """A unit of work owned by the task queue."""

    kind: TaskKind
    data: TaskData
    id: str = field(default_factory=_new_task_id)
    status: TaskStatus = TaskStatus.PENDING
    attempts: int = 0
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    last_error: Optional[str] = None
    retry_at: Optional[float] = None

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

    def describe(self) -> str:
        return f"{self.kind.value} {self.data.record_type} {self.data.name}"
