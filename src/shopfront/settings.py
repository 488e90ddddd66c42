"""Runtime configuration for shopfront."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Local data directory within the shopfront project
DEFAULT_DATA_DIR = Path(__file__).parent.parent.parent / "data"


class Settings(BaseSettings):
    """Configuration sourced from SHOPFRONT_* environment variables (or .env)."""

    model_config = SettingsConfigDict(
        env_prefix="SHOPFRONT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage: MongoDB when database_url is set, JSON files under data_dir otherwise
    data_dir: Path = DEFAULT_DATA_DIR
    database_url: str | None = None
    database_name: str = "shopfront"

    # HTTP
    client_url: str = "http://localhost:5173"
    session_cookie: str = "token"
    session_ttl_hours: int = 24 * 7
    cookie_secure: bool = False

    # Image hosting; the local uploader is used unless all three are set
    imagekit_public_key: str | None = None
    imagekit_private_key: str | None = None
    imagekit_url_endpoint: str | None = None
    upload_timeout: float = 10.0

    log_level: str = "INFO"

    @property
    def images_dir(self) -> Path:
        return self.data_dir / "images"

    @property
    def imagekit_configured(self) -> bool:
        return bool(
            self.imagekit_public_key
            and self.imagekit_private_key
            and self.imagekit_url_endpoint
        )


def load_settings() -> Settings:
    """Read settings from the current environment."""
    return Settings()
