"""
Application configuration using Pydantic Settings.
All environment-specific values are centralized here.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    # ── App ──────────────────────────────────────────────
    app_name: str = "Print RFQ Engine"
    debug: bool = False
    mock_mode: bool = True  # When True, in-memory store + dry-run dispatch

    # ── MongoDB ──────────────────────────────────────────
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_database: str = "rfq_engine"

    # ── LLM (RFQ e-mail drafting) ────────────────────────
    groq_api_key: str = ""
    llm_model: str = "llama-3.3-70b-versatile"
    llm_temperature: float = 0.3
    llm_max_tokens: int = 2048

    # ── SMTP (RFQ delivery) ──────────────────────────────
    smtp_host: str = ""  # empty = dry-run, quotes are stamped but nothing is sent
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    rfq_sender_email: str = "quotes@example.com"
    rfq_sender_name: str = "Print Procurement"

    # ── Engine ───────────────────────────────────────────
    default_vendor_limit: int = 5
    request_number_prefix: str = "QR-"
    request_number_width: int = 4
    dispatch_max_workers: int = 4
    dispatch_claim_ttl_seconds: int = 600  # an older claim is treated as abandoned

    # ── Logging ──────────────────────────────────────────
    log_level: str = "INFO"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }


@lru_cache()
def get_settings() -> Settings:
    """Return cached engine settings (singleton)."""
    return Settings()
