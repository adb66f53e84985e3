from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    api_base_url: str = "http://localhost:8000"
    api_token: str = ""
    request_timeout_seconds: float = 15.0
    transfer_timeout_seconds: float = 120.0

    presigned_upload_path: str = "/api/files/presigned-upload"
    file_upload_path: str = "/api/files/file-upload"
    file_history_path: str = "/api/file-history"

    history_refresh_limit: int = 10
    default_mime_type: str = "application/octet-stream"
