"""Configuration for HIS export sync and dashboard queries."""

import os
from dataclasses import dataclass

DEFAULT_SOURCE_URL = (
    "https://docs.google.com/spreadsheets/d/{resource_id}/export?format=csv"
)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class SyncConfig:
    """Runtime settings for the ingestion pipeline and the query side."""

    # Storage
    store_backend: str = "sqlite"
    db_path: str = "data/his_dashboard.db"

    # Remote source
    source: str = "http"
    source_url: str = DEFAULT_SOURCE_URL
    http_timeout: float = 30.0
    chunk_size: int = 64 * 1024

    # Pipeline tuning
    batch_size: int = 5000
    progress_every: int = 50_000

    # Placeholder KPI actuals while the store is empty
    demo_kpis: bool = True

    @classmethod
    def from_env(cls) -> "SyncConfig":
        """Build a config from HIS_* environment variables."""
        return cls(
            store_backend=os.getenv("HIS_STORE_BACKEND", "sqlite"),
            db_path=os.getenv("HIS_DB_PATH", "data/his_dashboard.db"),
            source=os.getenv("HIS_SOURCE", "http"),
            source_url=os.getenv("HIS_SOURCE_URL", DEFAULT_SOURCE_URL),
            http_timeout=float(os.getenv("HIS_HTTP_TIMEOUT", 30)),
            chunk_size=int(os.getenv("HIS_CHUNK_SIZE", 64 * 1024)),
            batch_size=int(os.getenv("HIS_BATCH_SIZE", 5000)),
            progress_every=int(os.getenv("HIS_PROGRESS_EVERY", 50_000)),
            demo_kpis=_env_bool("HIS_DEMO_KPIS", True),
        )
