"""Entry points called by the event source: service updates and removals."""

from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional, Tuple

from .errors import LabelError, ProviderError
from .ip import PublicIPResolver
from .labels import DEFAULT_LABEL_PREFIX, parse_labels
from .models import DEFAULT_MAX_ATTEMPTS, DesiredRecord, DNSTask, RecordDefaults, TaskStatus
from .planner import ReconciliationPlanner
from .providers import DNSProvider
from .queue import TaskQueue

logger = logging.getLogger(__name__)


class DNSService:
    def __init__(
        self,
        *,
        provider: DNSProvider,
        resolver: PublicIPResolver,
        queue: TaskQueue,
        defaults: Optional[RecordDefaults] = None,
        proxy_defaults: Optional[RecordDefaults] = None,
        use_proxy_labels: bool = False,
        label_prefix: str = DEFAULT_LABEL_PREFIX,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        self.provider = provider
        self.resolver = resolver
        self.queue = queue
        self.defaults = defaults or RecordDefaults()
        self.proxy_defaults = proxy_defaults or self.defaults
        self.use_proxy_labels = use_proxy_labels
        self.label_prefix = label_prefix
        self.planner = ReconciliationPlanner(max_attempts=max_attempts)
        self._records_by_service: Dict[str, List[Tuple[str, str]]] = {}

    def known_services(self) -> List[str]:
        return sorted(self._records_by_service)

    def parse(self, service_id: str, labels: Mapping[str, str]) -> List[DesiredRecord]:
        return parse_labels(
            service_id,
            labels,
            self.defaults,
            prefix=self.label_prefix,
            use_proxy_labels=self.use_proxy_labels,
            proxy_defaults=self.proxy_defaults,
        )

    def handle_service_update(self, service_id: str, labels: Mapping[str, str]) -> List[DNSTask]:
        """Reconcile the records a service declares.

        Args:
            service_id: Service or container name
            labels: Its labels

        Returns:
            Tasks newly enqueued. A write already queued for the same record
            is not queued twice.

        Raises:
            LabelError: The labels yield no record
            AddressResolutionError: Content is needed but no usable public
                address is known. Nothing is enqueued.
        """
        desired = self.parse(service_id, labels)
        if not desired:
            raise LabelError(f"Service {service_id} does not declare any valid DNS record")

        tasks: List[DNSTask] = []
        for record in desired:
            try:
                task = self.planner.plan(
                    service_id, record, self.provider.find_record, self.resolver.current_address
                )
            except ProviderError as e:
                logger.error(
                    f"Failed to look up {record.record_type} record {record.hostname} "
                    f"for service {service_id}: {e}"
                )
                continue
            if task is not None:
                tasks.append(task)

        enqueued = [task for task in tasks if self._enqueue(task)]
        self._records_by_service[service_id] = [(r.hostname, r.record_type) for r in desired]

        if not tasks:
            logger.info(f"DNS records for service {service_id} are up to date")
        return enqueued

    def handle_service_removal(
        self, service_id: str, hostname: str, record_type: str = "A"
    ) -> Optional[DNSTask]:
        """Queue a DELETE for a record the service no longer declares.

        A queued write for the same record that has not started yet is
        dropped, so a record created late does not outlive its service.

        Args:
            service_id: Service the record belonged to
            hostname: Record name
            record_type: DNS record type

        Returns:
            The enqueued DELETE task, or None when there is nothing to delete
        """
        task = self.planner.plan_removal(
            service_id, hostname, record_type, self.provider.find_record
        )
        if task is None:
            queued = self.queue.find(hostname, record_type)
            if queued is not None and queued.status is not TaskStatus.PROCESSING:
                self.queue.discard(queued.id)
            logger.info(f"No {record_type} record for {hostname} to remove")
            return None
        if not self._enqueue(task):
            return None
        return task

    def _enqueue(self, task: DNSTask) -> bool:
        """Queue ``task`` unless it conflicts with a task already queued for the record.

        An identical queued task is kept along with its retry state. A
        different one is replaced, unless it is being applied right now; then
        the new task is dropped and the next update plans against the result.
        """
        data = task.data
        queued = self.queue.find(data.name, data.record_type)
        if queued is not None:
            if queued.kind is task.kind and queued.data == data:
                logger.debug(f"Task {task.describe()} is already queued (id={queued.id})")
                return False
            if queued.status is TaskStatus.PROCESSING:
                logger.info(
                    f"Skipping {task.describe()}: {queued.describe()} is in progress"
                )
                return False
            self.queue.discard(queued.id)
        self.queue.add_task(task)
        return True

    def handle_service_removed(
        self, service_id: str, labels: Optional[Mapping[str, str]] = None
    ) -> List[DNSTask]:
        """Delete the records of a service that no longer exists."""
        remembered = self._records_by_service.pop(service_id, [])
        if labels:
            targets = [(r.hostname, r.record_type) for r in self.parse(service_id, labels)]
        else:
            targets = remembered
        if not targets:
            logger.debug(f"No DNS records known for removed service {service_id}")
            return []

        tasks: List[DNSTask] = []
        for hostname, record_type in targets:
            try:
                task = self.handle_service_removal(service_id, hostname, record_type)
            except ProviderError as e:
                logger.error(f"Failed to plan removal of {record_type} record {hostname}: {e}")
                continue
            if task is not None:
                tasks.append(task)
        return tasks
