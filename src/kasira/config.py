from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import os
import sys


@dataclass(frozen=True)
class AppPaths:
    base_dir: Path
    db_path: Path
    logs_dir: Path


@dataclass(frozen=True)
class Settings:
    tax_rate: float = 0.11
    low_stock_threshold: int = 10
    trend_threshold: float = 0.02
    payment_expiry_minutes: int = 60
    default_bank: str = "BCA"
    insight_api_key: str = ""
    insight_model: str = "gemini-1.5-flash"
    insight_url: str = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"


def _windows_appdata() -> Path:
    return Path(os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming")))


def _mac_app_support() -> Path:
    return Path.home() / "Library" / "Application Support"


def get_app_paths(app_name: str = "Kasira") -> AppPaths:
    override = os.environ.get("KASIRA_HOME", "").strip()
    if override:
        base = Path(override)
    elif sys.platform.startswith("win"):
        base = _windows_appdata() / app_name
    elif sys.platform == "darwin":
        base = _mac_app_support() / app_name
    else:
        base = Path.home() / f".{app_name.lower()}"

    logs = base / "logs"
    db = base / "kasira.db"

    base.mkdir(parents=True, exist_ok=True)
    logs.mkdir(parents=True, exist_ok=True)

    return AppPaths(base_dir=base, db_path=db, logs_dir=logs)


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    return float(raw) if raw else default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    return int(raw) if raw else default


def load_settings() -> Settings:
    defaults = Settings()
    return Settings(
        tax_rate=_env_float("KASIRA_TAX_RATE", defaults.tax_rate),
        low_stock_threshold=_env_int("KASIRA_LOW_STOCK_THRESHOLD", defaults.low_stock_threshold),
        trend_threshold=_env_float("KASIRA_TREND_THRESHOLD", defaults.trend_threshold),
        payment_expiry_minutes=_env_int("KASIRA_PAYMENT_EXPIRY_MINUTES", defaults.payment_expiry_minutes),
        default_bank=os.environ.get("KASIRA_DEFAULT_BANK", "").strip().upper() or defaults.default_bank,
        insight_api_key=os.environ.get("KASIRA_INSIGHT_API_KEY", "").strip(),
        insight_model=os.environ.get("KASIRA_INSIGHT_MODEL", "").strip() or defaults.insight_model,
        insight_url=os.environ.get("KASIRA_INSIGHT_URL", "").strip() or defaults.insight_url,
    )
