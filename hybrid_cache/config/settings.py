"""Cache settings and configuration schema."""

import tempfile
from pathlib import Path

from pydantic import BaseModel, Field


def default_cache_dir() -> Path:
    """Fixed ``hdc`` directory under the platform temp directory."""
    return Path(tempfile.gettempdir()) / "hdc"


class CacheSettings(BaseModel):
    """Construction options for a DiskCache."""
    path: Path = Field(default_factory=default_cache_dir)
    ttl: float = Field(default=3600, gt=0)    # seconds until stale
    tbd: float = Field(default=3600, ge=0)    # seconds after expiry before deletion

    model_config = {"frozen": True}
