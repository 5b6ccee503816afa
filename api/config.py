# api/config.py
"""
Server configuration and defaults.

Values can be overridden from the environment:

    BRIDGECRAFT_MAX_WORKERS     worker threads for queued analyses
    BRIDGECRAFT_ALLOWED_TIERS   comma-separated tiers, e.g. "bounded"
    BRIDGECRAFT_JOB_RETENTION   finished jobs kept for polling
    BRIDGECRAFT_CORS_ORIGINS    comma-separated origins
"""

import os
from dataclasses import dataclass
from typing import Mapping, Tuple


@dataclass(frozen=True)
class ApiConfig:
    """Global API configuration."""

    # App metadata
    app_name: str = "BridgeCraft API"
    description: str = "Bridge analysis and load rating engine"
    version: str = "0.1.0"

    # Job execution
    max_workers: int = 2
    allowed_tiers: Tuple[str, ...] = ('bounded', 'unbounded')
    job_retention: int = 100

    # CORS for frontend
    cors_origins: Tuple[str, ...] = ("http://localhost:3000", "http://127.0.0.1:3000")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = None) -> 'ApiConfig':
        env = os.environ if environ is None else environ
        defaults = cls()

        def split(name, default):
            raw = env.get(name)
            if not raw:
                return default
            return tuple(part.strip() for part in raw.split(',') if part.strip())

        return cls(
            max_workers=int(env.get('BRIDGECRAFT_MAX_WORKERS', defaults.max_workers)),
            allowed_tiers=split('BRIDGECRAFT_ALLOWED_TIERS', defaults.allowed_tiers),
            job_retention=int(env.get('BRIDGECRAFT_JOB_RETENTION', defaults.job_retention)),
            cors_origins=split('BRIDGECRAFT_CORS_ORIGINS', defaults.cors_origins),
        )


# Global config instance
CONFIG = ApiConfig.from_env()
