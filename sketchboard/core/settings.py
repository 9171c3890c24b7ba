from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_json: bool = Field(default=True, validation_alias="LOG_JSON")

    default_grammar: str = Field(default="brief-sketch", validation_alias="DEFAULT_GRAMMAR")
    history_budget_chars: int = Field(default=2000, ge=16, validation_alias="HISTORY_BUDGET_CHARS")
    history_render_depth: int = Field(default=1, ge=1, validation_alias="HISTORY_RENDER_DEPTH")
    history_truncation_marker: str = Field(default="...", validation_alias="HISTORY_TRUNCATION_MARKER")

    description_cache_size: int = Field(default=50, ge=1, validation_alias="DESCRIPTION_CACHE_SIZE")
    default_image_strength: float = Field(
        default=0.35,
        ge=0.2,
        le=0.6,
        validation_alias="DEFAULT_IMAGE_STRENGTH",
    )

    google_cloud_project: str | None = Field(default=None, validation_alias="GOOGLE_CLOUD_PROJECT")
    google_cloud_location: str = Field(default="us-central1", validation_alias="GOOGLE_CLOUD_LOCATION")
    gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
    gemini_vision_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_VISION_MODEL")
    gemini_text_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_TEXT_MODEL")
    gemini_timeout_seconds: float = Field(default=60.0, validation_alias="GEMINI_TIMEOUT_SECONDS")


settings = Settings()
