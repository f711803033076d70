from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _running_in_docker() -> bool:
    """Best-effort check for container execution.

    Used only to pick sensible defaults. Environment variables always win.
    """
    return Path("/.dockerenv").exists() or os.environ.get("RUNNING_IN_DOCKER") == "1"


def _default_osrm_base_url() -> str:
    # In docker-compose, OSRM is reachable by service name "osrm".
    # When running the backend directly on the host, OSRM is typically exposed on localhost:5000.
    return "http://osrm:5000" if _running_in_docker() else "http://localhost:5000"


class Settings(BaseSettings):
    """Validated settings (env-driven), keeping tuning constants out of code."""

    model_config = SettingsConfigDict(
        # Support both "repo root/.env" (docker compose) and "backend/.env" (local dev)
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    osrm_base_url: str = Field(default_factory=_default_osrm_base_url, alias="OSRM_BASE_URL")
    osrm_profile: str = Field(default="foot", alias="OSRM_PROFILE")
    max_candidate_routes: int = Field(default=5, ge=1, le=5, alias="MAX_CANDIDATE_ROUTES")

    out_dir: str = Field(default="/app/out", alias="OUT_DIR")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    overpass_url: str = Field(
        default="https://overpass-api.de/api/interpreter",
        alias="OVERPASS_URL",
    )
    overpass_timeout_s: float = Field(default=25.0, ge=1.0, le=120.0, alias="OVERPASS_TIMEOUT_S")

    nominatim_url: str = Field(default="https://nominatim.openstreetmap.org", alias="NOMINATIM_URL")
    geocoder_timeout_s: float = Field(default=10.0, ge=1.0, le=60.0, alias="GEOCODER_TIMEOUT_S")
    geocoder_user_agent: str = Field(default="route-safety/0.1", alias="GEOCODER_USER_AGENT")

    # POI acquisition
    poi_base_radius_m: float = Field(default=150.0, gt=0.0, le=1000.0, alias="POI_BASE_RADIUS_M")
    poi_radius_step_m: float = Field(default=50.0, ge=0.0, le=500.0, alias="POI_RADIUS_STEP_M")
    poi_max_attempts: int = Field(default=2, ge=1, le=5, alias="POI_MAX_ATTEMPTS")
    poi_transient_retries: int = Field(default=1, ge=0, le=5, alias="POI_TRANSIENT_RETRIES")
    poi_transient_backoff_s: float = Field(default=2.0, ge=0.0, le=30.0, alias="POI_TRANSIENT_BACKOFF_S")
    poi_fingerprint_max_samples: int = Field(default=15, ge=2, le=200, alias="POI_FINGERPRINT_MAX_SAMPLES")
    poi_cache_ttl_s: int = Field(default=600, ge=1, alias="POI_CACHE_TTL_S")
    poi_cache_max_entries: int = Field(default=512, ge=1, alias="POI_CACHE_MAX_ENTRIES")
    poi_fetch_concurrency: int = Field(default=3, ge=1, le=16, alias="POI_FETCH_CONCURRENCY")
    selection_debounce_s: float = Field(default=0.4, ge=0.0, le=5.0, alias="SELECTION_DEBOUNCE_S")

    # Distance thresholds per category, metres
    streetlamp_threshold_m: float = Field(default=10.0, gt=0.0, alias="STREETLAMP_THRESHOLD_M")
    traffic_signal_threshold_m: float = Field(default=30.0, gt=0.0, alias="TRAFFIC_SIGNAL_THRESHOLD_M")
    shop_threshold_m: float = Field(default=75.0, gt=0.0, alias="SHOP_THRESHOLD_M")

    # Expected densities per km
    expected_lights_per_km: float = Field(default=15.0, gt=0.0, alias="EXPECTED_LIGHTS_PER_KM")
    expected_signals_per_km: float = Field(default=3.0, gt=0.0, alias="EXPECTED_SIGNALS_PER_KM")
    expected_shops_per_km: float = Field(default=10.0, gt=0.0, alias="EXPECTED_SHOPS_PER_KM")

    # Ranking
    max_detour_ratio: float = Field(default=1.3, ge=1.0, le=5.0, alias="MAX_DETOUR_RATIO")
    rank_safety_weight: float = Field(default=0.7, ge=0.0, le=1.0, alias="RANK_SAFETY_WEIGHT")
    rank_efficiency_weight: float = Field(default=0.3, ge=0.0, le=1.0, alias="RANK_EFFICIENCY_WEIGHT")
    fastest_requery_enabled: bool = Field(default=True, alias="FASTEST_REQUERY_ENABLED")
    fastest_requery_radius_m: float = Field(default=80.0, gt=0.0, le=1000.0, alias="FASTEST_REQUERY_RADIUS_M")
    fastest_requery_samples: int = Field(default=40, ge=2, le=200, alias="FASTEST_REQUERY_SAMPLES")

    # Incident proximity (supplied by callers)
    incident_radius_m: float = Field(default=500.0, gt=0.0, alias="INCIDENT_RADIUS_M")
    incident_points_each: float = Field(default=15.0, ge=0.0, le=100.0, alias="INCIDENT_POINTS_EACH")

    @model_validator(mode="after")
    def _normalise_rank_weights(self) -> "Settings":
        total = self.rank_safety_weight + self.rank_efficiency_weight
        if total <= 0:
            self.rank_safety_weight = 0.7
            self.rank_efficiency_weight = 0.3
        return self


settings = Settings()
