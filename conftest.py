"""Global pytest configuration."""

import os

# Tests use the in-memory key-value fallback and no database unless they opt in
os.environ.pop("REDIS_URL", None)
os.environ.pop("DATABASE_URL", None)
os.environ.setdefault("KV_MEMORY_FALLBACK", "true")
