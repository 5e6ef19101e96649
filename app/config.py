from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./data/db.sqlite3"
    api_key: str = ""  # empty = no auth check (local dev)
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    data_dir: str = "./data"
    environment: str = "development"
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:8000"]

    max_files_per_upload: int = 20
    default_max_file_size: int = 50 * 1024 * 1024  # 50MB
    default_allowed_extensions: list[str] = [
        "jpg", "jpeg", "png", "webp", "heic", "raw", "cr2", "nef", "arw",
    ]
    webp_enabled: bool = False
    upload_workers: int = 2
    uploads_url_prefix: str = "/uploads"
    default_watermark_text: str = "Live Photo"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


settings = Settings()
