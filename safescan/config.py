from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "SafeScan"
    debug: bool = False
    log_level: str = "INFO"

    database_url: str = "sqlite:///./safescan.db"

    reference_data_path: Optional[str] = None

    ai_service_url: Optional[str] = None
    ai_service_api_key: Optional[str] = None
    ai_timeout_seconds: float = 10.0

    ai_provider: str = "openai"
    ai_api_key: Optional[str] = None
    ai_api_base: str = "https://api.openai.com/v1"
    ai_model: str = "gpt-4o-mini"
    ai_explain_timeout_seconds: float = 20.0

    section_window: int = 1200
    max_text_length: int = 10000
    max_explain_ingredients: int = 30

    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_reload: bool = False
    cors_origins: List[str] = ["*"]


settings = Settings()
