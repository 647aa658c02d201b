"""swarm-dns: keep Cloudflare DNS records in sync with Docker service labels."""

__version__ = "1.0.0"
