from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator


class DataSettings(BaseModel):
    root: Path = Path("./data")
    default_state: str = "CO"

    @field_validator("root", mode="before")
    @classmethod
    def _expand_root(cls, value: str | Path) -> Path:
        return Path(value).expanduser().resolve()

    @field_validator("default_state")
    @classmethod
    def _upper_state(cls, value: str) -> str:
        return value.strip().upper()


class ProviderSettings(BaseModel):
    google_maps_api_key: Optional[str] = Field(
        default_factory=lambda: os.environ.get("GOOGLE_MAPS_API_KEY") or None
    )
    keywords: List[str] = Field(
        default_factory=lambda: ["nail salon", "hair salon", "salon suites", "beauty salon"]
    )
    radius_meters: int = 350
    timeout_seconds: float = 10.0
    request_delay_seconds: float = 0.1
    network_retries: int = 1
    network_retry_backoff_seconds: float = 1.0
    useragent: str = "address-truth/0.1"

    @field_validator("google_maps_api_key", mode="before")
    @classmethod
    def _strip_key(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = str(value).strip()
        return value or None


class TruthSettings(BaseModel):
    candidate_min_tech: int = 2


class TabThresholds(BaseModel):
    tech_cluster_min_tech: int = 10
    mid_market_min_tech: int = 50
    mid_market_max_tech: int = 600
    mega_city_min_reg: int = 1000


class ClassificationSettings(BaseModel):
    jurisdiction: str = "CO"
    storefront_min_score: int = 34
    suite_center_min_licenses: int = 15
    suite_center_min_unique_techs: int = 6
    residential_max_unique_techs: int = 1
    residential_max_licenses: int = 2
    maildrop_min_licenses: int = 6
    maildrop_max_active: int = 1
    po_box_confidence: float = 0.9
    out_of_scope_confidence: float = 0.75
    residential_no_hits_confidence: float = 0.8
    storefront_confidence: float = 0.8
    suite_center_confidence: float = 0.7
    residential_poi_confidence: float = 0.68
    residential_poi_dense_confidence: float = 0.52
    maildrop_confidence: float = 0.6
    unknown_confidence: float = 0.35

    @field_validator("jurisdiction")
    @classmethod
    def _upper_jurisdiction(cls, value: str) -> str:
        return value.strip().upper()


class BrandSettings(BaseModel):
    registry_path: Optional[Path] = None

    @field_validator("registry_path", mode="before")
    @classmethod
    def _expand_registry(cls, value: Optional[str | Path]) -> Optional[Path]:
        if value is None:
            return None
        return Path(value).expanduser().resolve()


class Settings(BaseModel):
    data: DataSettings = Field(default_factory=DataSettings)
    providers: ProviderSettings = Field(default_factory=ProviderSettings)
    truth: TruthSettings = TruthSettings()
    tabs: TabThresholds = TabThresholds()
    classification: ClassificationSettings = ClassificationSettings()
    brands: BrandSettings = BrandSettings()

    @classmethod
    def load(cls, path: Path) -> "Settings":
        with path.open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh) or {}
        return cls.model_validate(raw)


def find_config(explicit_path: Optional[Path]) -> Optional[Path]:
    if explicit_path:
        return explicit_path
    cwd = Path.cwd()
    for candidate in (cwd / "config.yaml", cwd / "config.yml"):
        if candidate.exists():
            return candidate
    return None


def load_settings(explicit_path: Optional[Path] = None) -> Settings:
    path = find_config(explicit_path)
    if path is None:
        return Settings()
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    return Settings.load(path)
