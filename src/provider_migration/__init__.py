"""Provider Migrator - move legacy LLM provider connections onto canonical providers."""

import logging

__version__ = "0.1.0"
__license__ = "Apache-2.0"

# Per-request and per-statement chatter would drown the migration progress output
for _noisy in ("httpx", "httpcore", "sqlalchemy.engine", "sqlalchemy.pool"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)
del _noisy
