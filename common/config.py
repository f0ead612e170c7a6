from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

ROOT_DIR = Path(__file__).resolve().parents[1]


class AppConfig(BaseModel):
    data_url: str = "data/rag"  # http(s) base URL or local directory
    state_dir: Path = Path("data/state")
    timeout: int = 10
    user_agent: str = "Foerder-RAG/1.0"


class RetrievalConfig(BaseModel):
    k: int = Field(default=6, ge=1)
    program_k: int = Field(default=8, ge=1)
    max_context_chars: int = Field(default=2000, ge=1)


class QualityConfig(BaseModel):
    min_chunk_chars: int = 50
    max_chunk_chars: int = 2000
    max_muted_ratio: float = Field(default=0.3, ge=0.0, le=1.0)
    max_page: int = 100


class OverridesConfig(BaseModel):
    history_limit: int = 20
    export_dir: Path = Path("data/exports")


class GlobalYAMLConfig(BaseModel):
    app: AppConfig = AppConfig()
    retrieval: RetrievalConfig = RetrievalConfig()
    quality: QualityConfig = QualityConfig()
    overrides: OverridesConfig = OverridesConfig()


class Settings(BaseSettings):
    config_path: Path = Field(default=ROOT_DIR / "config" / "config.yaml")
    # Take precedence over the YAML values when set
    data_url: str | None = None
    state_dir: Path | None = None

    class Config:
        env_prefix = "RAG_"
        env_file = ".env"


def load_yaml_config(path: Path = ROOT_DIR / "config" / "config.yaml") -> GlobalYAMLConfig:
    if not Path(path).exists():
        return GlobalYAMLConfig()
    with open(path, "r") as f:
        raw = yaml.safe_load(f) or {}
    return GlobalYAMLConfig(**raw)


settings = Settings()
yaml_config = load_yaml_config(settings.config_path)
if settings.data_url:
    yaml_config.app.data_url = settings.data_url
if settings.state_dir:
    yaml_config.app.state_dir = settings.state_dir
