"""Configuration loader for the dohFilter relay."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError


class BlocklistConfig(BaseModel):
    url: str = Field(default="https://example.com/blocklist.txt")
    mode: Literal["kv", "rebuilt"] = Field(default="kv")
    ttl_seconds: int = Field(default=86400, ge=60)
    key_prefix: str = Field(default="blocklist:", max_length=64)
    write_concurrency: int = Field(default=100, ge=1)
    fetch_timeout_seconds: float = Field(default=15.0, gt=0)


class UpstreamConfig(BaseModel):
    url: str = Field(default="https://1.1.1.1/dns-query")
    timeout_seconds: float = Field(default=5.0, gt=0)


class StoreConfig(BaseModel):
    backend: Literal["redis", "memory"] = Field(default="redis")
    redis_url: str = Field(default="redis://localhost:6379/0")


class Settings(BaseModel):
    blocklist: BlocklistConfig = Field(default_factory=BlocklistConfig)
    upstream: UpstreamConfig = Field(default_factory=UpstreamConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)

    @classmethod
    def load(cls, path: str) -> "Settings":
        cfg_path = Path(path)
        if not cfg_path.exists():
            raise FileNotFoundError(f"dohFilter config not found: {cfg_path}")
        try:
            raw = yaml.safe_load(cfg_path.read_text()) or {}
            return cls(**raw)
        except ValidationError as exc:
            raise ValueError(f"Invalid dohFilter config: {exc}") from exc

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from ``DOHFILTER_CONFIG`` or individual variables.

        A YAML file named by ``DOHFILTER_CONFIG`` is the base; individual
        variables override its values when set.
        """
        config_path = _clean(os.getenv("DOHFILTER_CONFIG"))
        settings = cls.load(config_path) if config_path else cls()

        data = settings.model_dump()
        overrides = {
            ("blocklist", "url"): _clean(os.getenv("BLOCKLIST_URL")),
            ("blocklist", "mode"): _clean(os.getenv("DOHFILTER_BLOCKLIST_MODE")),
            ("blocklist", "ttl_seconds"): _clean(os.getenv("DOHFILTER_TTL_SECONDS")),
            ("upstream", "url"): _clean(os.getenv("DOHFILTER_UPSTREAM_URL")),
            ("store", "backend"): _clean(os.getenv("DOHFILTER_STORE_BACKEND")),
            ("store", "redis_url"): _clean(os.getenv("DOHFILTER_REDIS_URL")),
        }
        for (section, key), value in overrides.items():
            if value is not None:
                data[section][key] = value
        try:
            return cls(**data)
        except ValidationError as exc:
            raise ValueError(f"Invalid dohFilter environment: {exc}") from exc


def _clean(val: Optional[str]) -> Optional[str]:
    """Strip quotes and whitespace that shells and .env files leave on values."""
    if not val:
        return None
    cleaned = val.strip().strip("\"").strip("'")
    return cleaned or None
