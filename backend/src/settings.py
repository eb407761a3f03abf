"""
settings.py — Runtime settings (network endpoints, timeouts, server bind).

Resolution order:
  1) built-in defaults below
  2) YAML file pointed to by BUKKEN_SETTINGS (optional)
  3) BUKKEN_<FIELD> environment variables (e.g. BUKKEN_FETCH_TIMEOUT_S=20)

Lookup tables that never change at runtime (prefecture slugs, slope thresholds,
cost rates) live next to the code that uses them, not here.
"""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

import yaml


_ENV_PREFIX: Final[str] = "BUKKEN_"

_BROWSER_USER_AGENT: Final[str] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/121.0.0.0 Safari/537.36"
)


@dataclass(frozen=True)
class Settings:
    fetch_timeout_s: float = 12.0
    listing_user_agent: str = _BROWSER_USER_AGENT
    service_user_agent: str = "BukkenAnalyzer/1.0"
    parking_base_url: str = "https://at-parking.jp"
    gsi_address_search_url: str = "https://msearch.gsi.go.jp/address-search/AddressSearch"
    gsi_elevation_url: str = "https://cyberjapandata2.gsi.go.jp/general/dem/scripts/getelevation.php"
    nominatim_search_url: str = "https://nominatim.openstreetmap.org/search"
    parking_radius_km: float = 1.0
    enrich_max_workers: int = 8
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000


def _coerce(raw: Any, target: Any) -> Any:
    # Field types come from the defaults; YAML may already give us the right type.
    if isinstance(target, int):
        return int(float(raw))
    if isinstance(target, float):
        return float(raw)
    return str(raw)


def _load_yaml_overrides() -> dict[str, Any]:
    path_str = os.getenv(_ENV_PREFIX + "SETTINGS")
    if not path_str:
        return {}
    p = Path(path_str).resolve()
    if not p.exists():
        raise FileNotFoundError(f"BUKKEN_SETTINGS not found: {p}")
    data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{p}: settings file must be a mapping")
    return data


def load_settings() -> Settings:
    defaults = Settings()
    known = {f.name: getattr(defaults, f.name) for f in dataclasses.fields(Settings)}

    values: dict[str, Any] = {}
    for key, raw in _load_yaml_overrides().items():
        if key not in known:
            raise ValueError(f"Unknown settings key: {key!r}")
        values[key] = _coerce(raw, known[key])

    for key, default in known.items():
        env_raw = os.getenv(_ENV_PREFIX + key.upper())
        if env_raw is not None and env_raw != "":
            values[key] = _coerce(env_raw, default)

    return dataclasses.replace(defaults, **values)


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    global _SETTINGS  # noqa: PLW0603 (simple process-wide cache)
    if _SETTINGS is None:
        _SETTINGS = load_settings()
    return _SETTINGS


def reload_settings() -> Settings:
    global _SETTINGS  # noqa: PLW0603
    _SETTINGS = load_settings()
    return _SETTINGS
