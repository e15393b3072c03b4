import logging
import os
from dataclasses import dataclass, field
from typing import List, Tuple

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger("uvicorn.error")

DEFAULT_CRM_BASE_URL = "https://rest.gohighlevel.com/v1"
DEFAULT_CONVERTKIT_BASE_URL = "https://api.convertkit.com/v3"


def _env(name: str, default: str = "") -> str:
    return (os.getenv(name) or default).strip()


def _env_int(name: str, default: int) -> int:
    raw = _env(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("[config] %s=%r is not an integer, using %s", name, raw, default)
        return default


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("[config] %s=%r is not a number, using %s", name, raw, default)
        return default


def _env_list(name: str, default: str = "") -> Tuple[str, ...]:
    return tuple(s.strip() for s in _env(name, default).split(",") if s.strip())


@dataclass(frozen=True)
class Settings:
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_webhook_tolerance_sec: int = 300

    crm_api_key: str = ""
    crm_location_id: str = ""
    crm_base_url: str = DEFAULT_CRM_BASE_URL
    crm_pipeline_id: str = ""
    crm_trial_stage_name: str = "Trial"
    crm_trial_stage_id: str = ""
    crm_opportunity_name: str = "FlavorCoach – $10/mo"
    crm_opportunity_value: float = 10.0
    crm_debug_pipelines: bool = False

    convertkit_api_key: str = ""
    convertkit_form_id: str = ""
    convertkit_tag_ids: Tuple[str, ...] = field(default_factory=tuple)
    convertkit_base_url: str = DEFAULT_CONVERTKIT_BASE_URL

    stage_cache_ttl_sec: int = 86400
    stage_cache_max_items: int = 64
    http_timeout_sec: float = 15.0

    cors_allow_origins: Tuple[str, ...] = ("*",)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            stripe_secret_key=_env("STRIPE_SECRET_KEY"),
            stripe_webhook_secret=_env("STRIPE_WEBHOOK_SECRET"),
            stripe_webhook_tolerance_sec=_env_int("STRIPE_WEBHOOK_TOLERANCE_SEC", 300),
            crm_api_key=_env("GHL_V1_API_KEY"),
            crm_location_id=_env("GHL_LOCATION_ID"),
            crm_base_url=_env("GHL_API_BASE", DEFAULT_CRM_BASE_URL).rstrip("/"),
            crm_pipeline_id=_env("GHL_PIPELINE_ID"),
            crm_trial_stage_name=_env("GHL_TRIAL_STAGE_NAME", "Trial"),
            crm_trial_stage_id=_env("GHL_TRIAL_STAGE_ID_V1"),
            crm_opportunity_name=_env("GHL_OPPORTUNITY_NAME", "FlavorCoach – $10/mo"),
            crm_opportunity_value=_env_float("GHL_OPPORTUNITY_VALUE", 10.0),
            crm_debug_pipelines=_env("GHL_DEBUG_PIPELINES", "0") == "1",
            convertkit_api_key=_env("CONVERTKIT_API_KEY"),
            convertkit_form_id=_env("CONVERTKIT_FORM_ID"),
            convertkit_tag_ids=_env_list("CONVERTKIT_TAG_IDS"),
            convertkit_base_url=_env("CONVERTKIT_API_BASE", DEFAULT_CONVERTKIT_BASE_URL).rstrip("/"),
            stage_cache_ttl_sec=_env_int("STAGE_CACHE_TTL_SEC", 86400),
            stage_cache_max_items=_env_int("STAGE_CACHE_MAX_ITEMS", 64),
            http_timeout_sec=_env_float("HTTP_TIMEOUT_SEC", 15.0),
            cors_allow_origins=_env_list("CORS_ALLOW_ORIGINS", "*"),
            log_level=_env("LOG_LEVEL", "INFO").upper(),
        )

    @property
    def crm_enabled(self) -> bool:
        return bool(self.crm_api_key and self.crm_location_id)

    @property
    def convertkit_enabled(self) -> bool:
        return bool(self.convertkit_api_key)

    def missing_required(self) -> List[str]:
        missing = []
        if not self.stripe_secret_key:
            missing.append("STRIPE_SECRET_KEY")
        if not self.stripe_webhook_secret:
            missing.append("STRIPE_WEBHOOK_SECRET")
        return missing

    def ensure_required(self) -> None:
        missing = self.missing_required()
        if missing:
            raise RuntimeError(f"Missing required env: {', '.join(missing)}")

    def warn_missing_optional(self) -> None:
        if not self.crm_api_key:
            logger.warning("[config] Missing GHL_V1_API_KEY: CRM contact sync disabled")
        if not self.crm_location_id:
            logger.warning("[config] Missing GHL_LOCATION_ID: CRM contact sync disabled")
        if self.crm_enabled and not self.crm_pipeline_id:
            logger.warning("[config] Missing GHL_PIPELINE_ID: trial opportunities will be skipped")
        if not self.convertkit_enabled:
            logger.info("[config] CONVERTKIT_API_KEY not set: email list subscribe disabled")
