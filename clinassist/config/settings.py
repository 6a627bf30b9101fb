"""
Application-wide settings using pydantic-settings.
All runtime env access in clinassist/ should go through this module.
"""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[2]
ENV_PATH = PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    LOG_DIR: str = "./logs"
    LOG_FILE_NAME: str = "clinassist.debug.log"
    LOG_FILE_WHEN: str = "midnight"
    LOG_FILE_INTERVAL: int = 1
    LOG_FILE_BACKUP_COUNT: int = 7
    LOG_FILE_ENCODING: str = "utf-8"
    LOG_FILE_LEVEL: str = "DEBUG"
    LOG_TRUNCATE: int = 600

    # Inference capability credentials
    OPENAI_API_KEY: str = ""
    OPENAI_BASE_URL: str = ""
    OLLAMA_BASE_URL: str = "http://localhost:11434"

    # Inference budget
    DEFAULT_MODEL: str = "gpt-4o"
    INFERENCE_TEMPERATURE: float = 0.2
    INFERENCE_TIMEOUT_SECONDS: float = 60.0
    INFERENCE_MAX_OUTPUT_TOKENS: int = 2000
    INFERENCE_MAX_RETRIES: int = 1

    # Prescription images
    IMAGE_MAX_BYTES: int = 10 * 1024 * 1024
    IMAGE_MAX_SIDE: int = 2048

    # Vitals
    VITALS_PROMPT_MAX_READINGS: int = 20

    # Database
    DB_PATH: str = "./data/clinassist.db"

    # Use-case specific overrides
    PRESCRIPTION_PROVIDER: str = ""
    PRESCRIPTION_MODEL: str = ""

    SYMPTOMS_PROVIDER: str = ""
    SYMPTOMS_MODEL: str = ""

    VITALS_PROVIDER: str = ""
    VITALS_MODEL: str = ""

    model_config = SettingsConfigDict(
        env_file=ENV_PATH,
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    def _use_case_value(self, use_case_key: str, suffix: str) -> str:
        key = (use_case_key or "").strip().upper()
        if not key:
            return ""
        return str(getattr(self, f"{key}_{suffix}", "") or "").strip()

    def get_model(self, use_case_key: str, default_model: str = "") -> str:
        return (
            self._use_case_value(use_case_key, "MODEL")
            or default_model
            or self.DEFAULT_MODEL
        )

    def get_provider(self, use_case_key: str) -> str:
        return self._use_case_value(use_case_key, "PROVIDER")

    def get_base_url(self, provider_hint: str = "") -> str:
        if (provider_hint or "").strip().lower() == "ollama":
            return self.OLLAMA_BASE_URL
        return self.OPENAI_BASE_URL

    def has_openai_creds(self) -> bool:
        return bool(self.OPENAI_API_KEY)

    @property
    def retry_budget(self) -> int:
        """Extra attempts allowed after a transient failure, never more than one."""
        return max(0, min(1, self.INFERENCE_MAX_RETRIES))


settings = Settings()
