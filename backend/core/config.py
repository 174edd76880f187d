"""
config.py — Runtime settings read from the environment (.env via python-dotenv).
"""

import logging
import math
import os
from dataclasses import dataclass
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_CORS_ORIGINS = "http://localhost:5173,http://localhost:3000"


def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = cast(raw)
    except ValueError:
        logger.warning("Invalid %s=%r; using default %s", name, raw, default)
        return default
    if not math.isfinite(value) or value < 0 or (value == 0 and cast is int):
        logger.warning("Out-of-range %s=%r; using default %s", name, raw, default)
        return default
    return value


@dataclass(frozen=True)
class FitnessConfig:
    cache_ttl: float = 300.0
    cache_max_entries: int = 1000
    page_size: int = 50
    max_parallel: int = 5
    batch_delay: float = 0.1
    prewarm_delay: float = 0.2
    data_path: Optional[str] = None
    school_name: str = "My School"
    cors_origins: Tuple[str, ...] = tuple(DEFAULT_CORS_ORIGINS.split(","))
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "FitnessConfig":
        raw_origins = os.getenv("CORS_ORIGINS", DEFAULT_CORS_ORIGINS)
        return cls(
            cache_ttl=_env_number("FITNESS_CACHE_TTL", cls.cache_ttl, float),
            cache_max_entries=_env_number("FITNESS_CACHE_MAX_ENTRIES", cls.cache_max_entries, int),
            page_size=_env_number("FITNESS_PAGE_SIZE", cls.page_size, int),
            max_parallel=_env_number("FITNESS_MAX_PARALLEL", cls.max_parallel, int),
            batch_delay=_env_number("FITNESS_BATCH_DELAY", cls.batch_delay, float),
            prewarm_delay=_env_number("FITNESS_PREWARM_DELAY", cls.prewarm_delay, float),
            data_path=os.getenv("FITNESS_DATA_PATH") or None,
            school_name=os.getenv("SCHOOL_NAME", cls.school_name),
            cors_origins=tuple(o.strip() for o in raw_origins.split(",") if o.strip()),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
        )
