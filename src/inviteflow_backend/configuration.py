from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from omegaconf import DictConfig, OmegaConf
from pydantic import BaseModel

load_dotenv()

CONFIG_PATH = Path(__file__).resolve().with_name("defaults.yaml")


class ServerSettings(BaseModel):
    port: int
    public_base_url: Optional[str] = None
    cors_origins: str = "*"
    upload_dir: str = "uploads"
    static_dir: str = "public"
    max_upload_bytes: int

    @property
    def base_url(self) -> str:
        return (self.public_base_url or f"http://localhost:{self.port}").rstrip("/")

    @property
    def allowed_origins(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


class FoxitSettings(BaseModel):
    base_url: str
    client_id: str = ""
    client_secret: str = ""
    request_timeout_s: float = 120.0


class PollingSettings(BaseModel):
    max_attempts: int = 30
    interval_s: float = 2.0


class GenerationSettings(BaseModel):
    output_format: str = "pdf"
    currency_culture: str = "en-US"
    toc_title: str = "Generated Documents"


class AccessCodeSettings(BaseModel):
    size_px: int = 200
    border: int = 2


class RegistrySettings(BaseModel):
    ttl_seconds: Optional[float] = None


class LoggingSettings(BaseModel):
    level: str = "INFO"


class Settings(BaseModel):
    server: ServerSettings
    foxit: FoxitSettings
    polling: PollingSettings
    generation: GenerationSettings
    access_code: AccessCodeSettings
    registry: RegistrySettings
    logging: LoggingSettings


@lru_cache(maxsize=1)
def _load_default_config() -> DictConfig:
    if not CONFIG_PATH.exists():
        raise FileNotFoundError(f"Default config not found at {CONFIG_PATH}")
    return OmegaConf.load(CONFIG_PATH)


def make_runtime_config(overrides: Dict[str, Any]) -> DictConfig:
    """Merge ``overrides`` onto the packaged defaults; unknown keys are rejected."""
    base_container = OmegaConf.to_container(_load_default_config(), resolve=False)
    base = OmegaConf.create(base_container)
    OmegaConf.set_struct(base, True)

    merged = DictConfig(OmegaConf.merge(base, OmegaConf.create(overrides)))
    return merged


def load_settings(overrides: Optional[Dict[str, Any]] = None) -> Settings:
    runtime_config = make_runtime_config(overrides or {})
    resolved = OmegaConf.to_container(runtime_config, resolve=True, enum_to_str=True)
    return Settings.model_validate(resolved)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
