"""Docker containers and Swarm services as a source of DNS label updates."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Mapping, Optional

import docker
import docker.errors

from .labels import DEFAULT_LABEL_PREFIX

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[str, Dict[str, str]], object]
RemoveCallback = Callable[[str, Optional[Dict[str, str]]], object]

TRAEFIK_LABEL_PREFIX = "traefik."

UPDATE_ACTIONS = {"container": {"start"}, "service": {"create", "update"}}
REMOVE_ACTIONS = {"container": {"destroy"}, "service": {"remove"}}


class DockerEventSource:
    """Feeds service labels from the Docker daemon to update/remove callbacks."""

    def __init__(
        self,
        client: "docker.DockerClient",
        on_update: UpdateCallback,
        on_remove: RemoveCallback,
        *,
        label_prefix: str = DEFAULT_LABEL_PREFIX,
        use_proxy_labels: bool = False,
    ):
        self._client = client
        self._on_update = on_update
        self._on_remove = on_remove
        self._label_prefix = label_prefix.lower()
        self._use_proxy_labels = use_proxy_labels
        self._stream: Any = None
        self._stopped = False

    def relevant_labels(self, labels: Optional[Mapping[str, str]]) -> Optional[Dict[str, str]]:
        """Labels worth parsing, or None when the service has no DNS labels."""
        if not labels:
            return None
        relevant: Dict[str, str] = {}
        has_dns = False
        for key, value in labels.items():
            lowered = key.lower()
            if lowered.startswith(self._label_prefix):
                relevant[key] = value
                has_dns = True
            elif self._use_proxy_labels and lowered.startswith(TRAEFIK_LABEL_PREFIX):
                relevant[key] = value
                if lowered.endswith(".rule"):
                    has_dns = True
        return relevant if has_dns else None

    def _dispatch_update(self, name: str, labels: Optional[Mapping[str, str]]) -> None:
        relevant = self.relevant_labels(labels)
        if relevant is None:
            logger.debug(f"No DNS labels on {name}, ignoring")
            return
        try:
            self._on_update(name, relevant)
        except Exception as e:
            logger.error(f"Failed to handle DNS update for {name}: {e}")

    def _dispatch_remove(self, name: str, labels: Optional[Mapping[str, str]]) -> None:
        try:
            self._on_remove(name, self.relevant_labels(labels))
        except Exception as e:
            logger.error(f"Failed to handle DNS removal for {name}: {e}")

    # -------------------------------------------------------------------------
    # Startup scan
    # -------------------------------------------------------------------------

    def scan(self) -> int:
        """Report every running service and container. Returns how many had DNS labels."""
        found = 0
        try:
            services = self._client.services.list()
        except docker.errors.APIError as e:
            logger.debug(f"Not in Swarm mode or services unavailable: {e}")
            services = []

        for service in services:
            spec = service.attrs.get("Spec") or {}
            name = spec.get("Name") or service.name
            labels = spec.get("Labels") or {}
            if self.relevant_labels(labels) is not None:
                found += 1
            self._dispatch_update(name, labels)
        logger.debug(f"Completed scanning {len(services)} Swarm services")

        containers = self._client.containers.list()
        for container in containers:
            labels = container.labels or {}
            if self.relevant_labels(labels) is not None:
                found += 1
            self._dispatch_update(container.name, labels)
        logger.debug(f"Completed scanning {len(containers)} containers")

        logger.info(f"Found {found} service(s) with DNS labels")
        return found

    # -------------------------------------------------------------------------
    # Event stream
    # -------------------------------------------------------------------------

    def handle_event(self, event: Mapping[str, Any]) -> None:
        event_type = event.get("Type")
        action = event.get("Action", "")
        actor = event.get("Actor") or {}
        actor_id = actor.get("ID", "")
        attributes = actor.get("Attributes") or {}

        if action in UPDATE_ACTIONS.get(event_type, ()):
            logger.debug(f"Received Docker event {event_type} {action} {actor_id}")
            try:
                name, labels = self._inspect(event_type, actor_id)
            except docker.errors.DockerException as e:
                logger.error(f"Failed to inspect {event_type} {actor_id}: {e}")
                return
            self._dispatch_update(name, labels)
        elif action in REMOVE_ACTIONS.get(event_type, ()):
            logger.debug(f"Received Docker event {event_type} {action} {actor_id}")
            name = attributes.get("name") or actor_id
            labels = {k: v for k, v in attributes.items() if k != "name"}
            self._dispatch_remove(name, labels)

    def _inspect(self, event_type: str, actor_id: str):
        if event_type == "service":
            service = self._client.services.get(actor_id)
            spec = service.attrs.get("Spec") or {}
            return spec.get("Name") or service.name, spec.get("Labels") or {}
        container = self._client.containers.get(actor_id)
        return container.name, container.labels or {}

    def watch(self) -> None:
        """Block, dispatching Docker events until ``stop()`` is called."""
        self._stopped = False
        self._stream = self._client.events(
            decode=True,
            filters={"type": ["container", "service"]},
        )
        logger.info("Docker event monitoring started")
        try:
            for event in self._stream:
                if self._stopped:
                    break
                self.handle_event(event)
        finally:
            self._stream = None

    def stop(self) -> None:
        self._stopped = True
        stream = self._stream
        if stream is not None and hasattr(stream, "close"):
            stream.close()
