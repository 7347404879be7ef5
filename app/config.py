from __future__ import annotations

import re
from dataclasses import dataclass
import os

from dotenv import load_dotenv


load_dotenv()


DEFAULT_SERVICEABLE_PINCODES = (
    "781001",
    "781002",
    "781003",
    "781004",
    "781005",
    "781006",
    "781007",
    "781008",
    "781009",
    "781010",
)


def _get_config_value(*keys: str, default: str = "") -> str:
    for key in keys:
        value = os.getenv(key, "").strip()
        if value:
            return value
    return default


def _get_bool(*keys: str, default: bool) -> bool:
    raw = _get_config_value(*keys).lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


def _get_int(*keys: str, default: int) -> int:
    raw = _get_config_value(*keys)
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def _pick_supabase_key() -> str:
    return (
        _get_config_value("SUPABASE_SERVICE_KEY", "SUPABASE_SERVICE_ROLE_KEY")
        or _get_config_value("SUPABASE_KEY")
        or _get_config_value("SUPABASE_ANON_KEY")
    )


def _pick_pincodes() -> tuple[str, ...]:
    raw = _get_config_value("SIGM_SERVICEABLE_PINCODES")
    if not raw:
        return DEFAULT_SERVICEABLE_PINCODES
    return tuple(p.strip() for p in raw.split(",") if p.strip())


@dataclass(frozen=True)
class Settings:
    app_env: str = "dev"
    log_level: str = "INFO"
    store_backend: str = "memory"
    supabase_url: str = ""
    supabase_key: str = ""
    technician_queue_threshold: int = 50
    support_queue_threshold: int = 100
    serviceable_pincodes: tuple[str, ...] = DEFAULT_SERVICEABLE_PINCODES
    default_region: str = "Assam"
    auto_acknowledge_guaranteed: bool = True
    evaluator_workers: int = 4

    def supabase_url_valid(self) -> bool:
        # Must be project URL, not postgres DSN.
        return bool(re.match(r"^https://[a-z0-9-]+\.supabase\.co$", self.supabase_url))

    def supabase_key_present(self) -> bool:
        return bool(self.supabase_key)


def load_settings() -> Settings:
    return Settings(
        app_env=_get_config_value("APP_ENV", default="dev"),
        log_level=_get_config_value("LOG_LEVEL", default="INFO").upper(),
        store_backend=_get_config_value("STORE_BACKEND", "PERSISTENCE_BACKEND", default="memory").lower(),
        supabase_url=_get_config_value("SUPABASE_URL").rstrip("/"),
        supabase_key=_pick_supabase_key(),
        technician_queue_threshold=_get_int("SIGM_TECHNICIAN_QUEUE_THRESHOLD", default=50),
        support_queue_threshold=_get_int("SIGM_SUPPORT_QUEUE_THRESHOLD", default=100),
        serviceable_pincodes=_pick_pincodes(),
        default_region=_get_config_value("SIGM_DEFAULT_REGION", default="Assam"),
        auto_acknowledge_guaranteed=_get_bool("SIGM_AUTO_ACKNOWLEDGE_GUARANTEED", default=True),
        evaluator_workers=max(1, _get_int("SIGM_EVALUATOR_WORKERS", default=4)),
    )


settings = load_settings()
