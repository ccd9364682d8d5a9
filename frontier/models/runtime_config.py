from pathlib import Path
from typing import Optional

from pydantic import RedisDsn
from pydantic_settings import BaseSettings, SettingsConfigDict


_DEFAULT_SECTOR = Path(__file__).resolve().parents[1] / "config" / "default_sector.json"


class RuntimeSettings(BaseSettings):
    """Process-level settings, read from FRONTIER_* environment variables."""

    model_config = SettingsConfigDict(env_prefix="FRONTIER_")

    strict_invariants: bool = False
    sector_path: Path = _DEFAULT_SECTOR
    save_path: Optional[Path] = None
    save_every_ticks: int = 600


class RedisSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="")

    redis_url: RedisDsn = "redis://localhost:6379/0"
    event_stream: str = "frontier:events"
    command_stream: str = "frontier:commands"
    snapshot_key: str = "frontier:snapshot"


RUNTIME_SETTINGS = RuntimeSettings()
REDIS_SETTINGS = RedisSettings()
