import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import List, Optional


class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    CONFIG_STRICT: bool = False

    # Basic auth for the main entry point (both must be set)
    BASIC_AUTH_USER: str = ""
    BASIC_AUTH_PASS: str = ""

    # Trial access
    MASTER_TOKEN: str = ""
    TRIAL_TOKENS: str = ""  # comma-separated
    MAINTENANCE_ENABLED: str = "true"  # anything but "false" keeps the gate on

    # Durable usage store (Vercel KV / Upstash expose KV_URL)
    REDIS_URL: Optional[str] = None
    KV_URL: Optional[str] = None
    USAGE_STORE_TIMEOUT_SECONDS: float = 2.0

    # Admin access for ledger maintenance
    ADMIN_KEY: Optional[str] = None

    # Content provider (OpenAI-compatible chat completions)
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_IMAGE_MODEL: str = "dall-e-3"
    PROVIDER_TIMEOUT_SECONDS: float = 60.0

    # CORS (comma-separated origins)
    CORS_ALLOW_ORIGINS: str = "http://localhost:3000"

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def basic_auth_configured(self) -> bool:
        return len(self.BASIC_AUTH_USER) > 0 and len(self.BASIC_AUTH_PASS) > 0

    @property
    def maintenance_enabled(self) -> bool:
        return self.MAINTENANCE_ENABLED != "false"

    @property
    def trial_tokens(self) -> List[str]:
        return parse_token_list(self.TRIAL_TOKENS)

    @property
    def usage_store_url(self) -> Optional[str]:
        return self.REDIS_URL or self.KV_URL or None


def parse_token_list(raw: Optional[str]) -> List[str]:
    """Split a comma-separated token list, trimming and dropping empties."""
    if not raw:
        return []
    return [t.strip() for t in raw.split(",") if t.strip()]


settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate gateway configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("outreach")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    problems = []
    if bool(cfg.BASIC_AUTH_USER) != bool(cfg.BASIC_AUTH_PASS):
        problems.append("BASIC_AUTH_USER and BASIC_AUTH_PASS must be set together")
    if cfg.MASTER_TOKEN and cfg.MASTER_TOKEN in cfg.trial_tokens:
        problems.append("MASTER_TOKEN must not also be listed in TRIAL_TOKENS")

    missing = [key for key in ("OPENAI_API_KEY",) if not getattr(cfg, key, None)]
    if missing:
        problems.append(f"Missing required configuration: {', '.join(missing)}")

    if not cfg.usage_store_url:
        log.warning("No REDIS_URL/KV_URL configured; trial usage is kept in process memory only")

    if problems:
        message = "; ".join(problems)
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
