#!/usr/bin/env python3
"""swarm-dns - Cloudflare DNS for Docker containers and Swarm services

Watches Docker for containers and Swarm services carrying DNS labels and keeps
matching Cloudflare records in place. Labels look like:

    dns.cloudflare.hostname=app.example.com
    dns.cloudflare.type=A
    dns.cloudflare.proxied=true

See swarm_dns.config for the environment variables and swarm_dns.labels for
the label format.
"""

from __future__ import annotations

import logging
import sys
from typing import Dict, Optional

import docker
import docker.errors

from .config import Settings, load_settings
from .docker_events import DockerEventSource
from .errors import ConfigError, SwarmDNSError
from .ip import PublicIPResolver
from .providers import CloudflareDNSProvider
from .queue import TaskQueue
from .scheduler import Ticker
from .service import DNSService

logger = logging.getLogger("swarm_dns")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def build_service(
    settings: Settings,
    provider: Optional[CloudflareDNSProvider] = None,
    resolver: Optional[PublicIPResolver] = None,
) -> DNSService:
    """Wire the provider, resolver, queue and service from settings."""
    provider = provider or CloudflareDNSProvider(
        settings.cloudflare_token, base_url=settings.cloudflare_api_url
    )
    resolver = resolver or PublicIPResolver()
    queue = TaskQueue(provider, base_delay=settings.retry_base_delay_seconds)
    return DNSService(
        provider=provider,
        resolver=resolver,
        queue=queue,
        defaults=settings.defaults,
        proxy_defaults=settings.proxy_defaults,
        use_proxy_labels=settings.use_reverse_proxy_labels,
        label_prefix=settings.label_prefix,
        max_attempts=settings.retry_attempts,
    )


def handle_update(service: DNSService, service_id: str, labels: Dict[str, str]) -> None:
    try:
        service.handle_service_update(service_id, labels)
    except SwarmDNSError as e:
        logger.error(f"Failed to handle DNS update for {service_id}: {e}")


def handle_remove(
    service: DNSService, service_id: str, labels: Optional[Dict[str, str]]
) -> None:
    try:
        service.handle_service_removed(service_id, labels)
    except SwarmDNSError as e:
        logger.error(f"Failed to handle DNS removal for {service_id}: {e}")


def main():
    """Main entry point."""
    try:
        settings = load_settings()
    except ConfigError as e:
        configure_logging("INFO")
        for problem in e.problems:
            logger.error(problem)
        logger.error("Configuration validation failed")
        sys.exit(1)

    configure_logging(settings.log_level)
    logger.info("Starting swarm-dns: docker -> cloudflare")

    service = build_service(settings)
    if not service.provider.test_connection():
        logger.error(f"Cannot connect to {service.provider.name}. Exiting.")
        sys.exit(1)

    try:
        client = docker.from_env()
    except docker.errors.DockerException as e:
        logger.error(f"Cannot connect to Docker: {e}")
        sys.exit(1)

    events = DockerEventSource(
        client,
        lambda name, labels: handle_update(service, name, labels),
        lambda name, labels: handle_remove(service, name, labels),
        label_prefix=settings.label_prefix,
        use_proxy_labels=settings.use_reverse_proxy_labels,
    )

    logger.info(f"Traefik labels: {'enabled' if settings.use_reverse_proxy_labels else 'disabled'}")
    logger.info(
        f"Retries: {settings.retry_attempts} attempt(s), "
        f"base delay {settings.retry_base_delay_seconds:g}s"
    )
    logger.info(f"Sync mode: {settings.sync_mode}")

    if settings.sync_mode == "once":
        events.scan()
        service.queue.process()
        return

    rescan = Ticker(settings.rescan_interval_seconds, events.scan, name="rescan")
    try:
        service.queue.start(settings.process_interval_seconds)
        events.scan()
        rescan.start()
        events.watch()
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully...")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)
    finally:
        rescan.stop()
        events.stop()
        service.queue.stop()


if __name__ == "__main__":
    main()
