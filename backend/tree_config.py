"""Tunable settings for the family graph loader.

Every value can be overridden through the environment (or a `.env` file loaded
by main.py).
"""

import os


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


# WikiTree API
WIKITREE_API_URL = os.getenv("WIKITREE_API_URL", "https://api.wikitree.com/api.php")
WIKITREE_URL = os.getenv("WIKITREE_URL", "https://www.wikitree.com")
WIKITREE_TIMEOUT = _env_float("WIKITREE_TIMEOUT", 30.0)

# Graph building
DESCENDANT_GENERATION_LIMIT = _env_int("DESCENDANT_GENERATION_LIMIT", 5)
PRIVATE_ID_OFFSET = _env_int("PRIVATE_ID_OFFSET", 1000)
NAME_SIMILARITY_THRESHOLD = _env_float("NAME_SIMILARITY_THRESHOLD", 0.75)

# Response cache
CACHE_MAX_SIZE = _env_int("CACHE_MAX_SIZE", 1000)
CACHE_TTL_SECONDS = _env_int("CACHE_TTL_SECONDS", 3600)

# HTTP API
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "CORS_ORIGINS",
        "http://localhost:5173,http://localhost:3000,http://127.0.0.1:5173",
    ).split(",")
    if origin.strip()
]
