# app/settings.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from pathlib import Path


# =============================================================================
# EmailJS Config (nested)
# =============================================================================
class EmailConfig(BaseSettings):
    """Configuration for EmailJS notifications"""

    emailjs_api_url: str = "https://api.emailjs.com/api/v1.0/email/send"
    emailjs_service_id: str = ""
    emailjs_template_id: str = ""
    emailjs_public_key: str = ""
    email_timeout: int = 15
    max_attachment_mb: int = 10

    @property
    def is_configured(self) -> bool:
        return bool(self.emailjs_service_id and self.emailjs_template_id and self.emailjs_public_key)

    # -------------------------------------------------------------------------
    # Pydantic Settings Config
    # -------------------------------------------------------------------------
    model_config = SettingsConfigDict(
        env_prefix="EMAIL__",   # map .env variables like EMAIL__EMAILJS_SERVICE_ID
        extra="ignore"
    )


# =============================================================================
# Main Application Settings
# =============================================================================
class Settings(BaseSettings):
    """Application settings with validation"""

    # -------------------------------------------------------------------------
    # Application Settings
    # -------------------------------------------------------------------------
    app_name: str = "SafetyDetection.Client"
    app_version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"

    # -------------------------------------------------------------------------
    # External Services
    # -------------------------------------------------------------------------
    webapi_base_url: str = "http://localhost:4000"
    webapi_timeout: int = 30

    inference_base_url: str = "http://127.0.0.1:5000"
    inference_timeout: int = 60
    detector_name: str = "yolo"

    # Read-only calls (list/get/dashboard/settings)
    read_retry_attempts: int = 2
    read_retry_delay: float = 0.5

    # -------------------------------------------------------------------------
    # Local Storage
    # -------------------------------------------------------------------------
    settings_cache_path: Path = Path("./data/settings_cache.json")

    # -------------------------------------------------------------------------
    # Analytics
    # -------------------------------------------------------------------------
    analytics_months: int = 6

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------
    log_format: str = "console"  # json, console
    log_file_path: Path = Path("./data/logs/safety-detection.log")
    log_max_size: str = "10MB"
    log_backup_count: int = 5

    # -------------------------------------------------------------------------
    # Nested EmailJS Config
    # -------------------------------------------------------------------------
    email: EmailConfig = EmailConfig()

    # -------------------------------------------------------------------------
    # Computed Properties
    # -------------------------------------------------------------------------
    @property
    def predict_url(self) -> str:
        return f"{self.inference_base_url.rstrip('/')}/predict"

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator('webapi_base_url', 'inference_base_url')
    @classmethod
    def strip_trailing_slash(cls, v):
        return v.rstrip('/')

    @field_validator('log_format')
    @classmethod
    def validate_log_format(cls, v):
        valid_formats = ['json', 'console']
        if v not in valid_formats:
            raise ValueError(f"Log format must be one of: {valid_formats}")
        return v

    @field_validator('analytics_months')
    @classmethod
    def validate_months(cls, v):
        if v < 1:
            raise ValueError("analytics_months must be >= 1")
        return v

    # -------------------------------------------------------------------------
    # Pydantic Settings Config
    # -------------------------------------------------------------------------
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


# Global settings instance
settings = Settings()
