#!/usr/bin/env python3
"""Run swarm-dns from a source checkout without installing it.

    CLOUDFLARE_TOKEN=... ./swarm-dns.py

Installed copies use the ``swarm-dns`` console script instead.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent / "src"))

from swarm_dns.cli import main  # noqa: E402

if __name__ == "__main__":
    main()
