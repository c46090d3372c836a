# MPL/config/settings.py

import json
import os
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
ENV_FILE_PATH = os.path.join(PROJECT_ROOT, '.env')

class Settings(BaseSettings):
    # Extraction provider selection: "openai", "parser" or anything else (disabled)
    extraction_provider: str = Field(default="openai", env="EXTRACTION_PROVIDER")

    openai_api_key: Optional[str] = Field(default=None, env="OPENAI_API_KEY")
    openai_model: str = Field(default="gpt-5", env="OPENAI_MODEL")
    openai_base_url: str = Field(
        default="https://api.openai.com/v1", env="OPENAI_BASE_URL"
    )

    parser_url: Optional[str] = Field(default=None, env="PARSER_URL")
    parser_token: Optional[str] = Field(default=None, env="PARSER_TOKEN")

    extraction_timeout_seconds: float = Field(
        default=90.0,
        env="EXTRACTION_TIMEOUT_SECONDS",
        description="Wall-clock ceiling for a single provider extraction call.",
    )
    max_upload_bytes: int = Field(
        default=25 * 1024 * 1024,
        env="MAX_UPLOAD_BYTES",
        description="Uploads larger than this are rejected before any provider call.",
    )
    default_limit_pages: int = Field(default=0, env="DEFAULT_LIMIT_PAGES")

    # Auditing settings
    audit_enabled: bool = Field(default=True, env="AUDIT_ENABLED")
    audit_db_path: str = Field(
        default=os.path.join(PROJECT_ROOT, ".data", "mpl.db"), env="AUDIT_DB_PATH"
    )

    row_store_ttl_seconds: int = Field(default=86400, env="ROW_STORE_TTL_SECONDS")

    # Label sheet layout (symbol height in px; module width derives from it)
    label_baseline_size: float = Field(default=60.0, env="LABEL_BASELINE_SIZE")
    label_min_size: float = Field(default=28.0, env="LABEL_MIN_SIZE")
    label_max_size: float = Field(default=90.0, env="LABEL_MAX_SIZE")
    label_cell_padding: float = Field(default=16.0, env="LABEL_CELL_PADDING")
    label_page_width: float = Field(default=1000.0, env="LABEL_PAGE_WIDTH")
    label_default_columns: int = Field(default=3, env="LABEL_DEFAULT_COLUMNS")

    log_dir: str = Field(default=os.path.join(PROJECT_ROOT, "logs"), env="LOG_DIR")
    cors_allow_origins: str = Field(default="*", env="CORS_ALLOW_ORIGINS")

    class Config:
        env_file = ENV_FILE_PATH
        env_file_encoding = 'utf-8'
        extra = "ignore"

    def allowed_origins(self) -> List[str]:
        """Return CORS origins from a JSON list or a comma separated string."""

        text = (self.cors_allow_origins or "").strip()
        if not text:
            return ["*"]
        if text.startswith("["):
            try:
                parsed = json.loads(text)
            except json.JSONDecodeError as exc:  # pragma: no cover - defensive
                raise ValueError("CORS_ALLOW_ORIGINS must be valid JSON") from exc
            return [str(item).strip() for item in parsed if str(item).strip()]
        return [part.strip() for part in text.split(",") if part.strip()]

    @field_validator("label_default_columns", mode="after")
    @classmethod
    def _clamp_columns(cls, value: int) -> int:
        return max(1, min(6, int(value)))

try:
    settings = Settings()
except Exception as e:
    print(f"!!! FATAL ERROR: Could not load application settings from .env file: {e}")
    raise
