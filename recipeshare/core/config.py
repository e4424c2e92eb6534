import logging

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings using Pydantic Settings"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )

    # Database settings
    db_backend: str = Field(default="sqlite", description="Storage backend: sqlite or postgres")
    db_path: str = Field(default="recipeshare.db", description="SQLite database file")
    sqlite_timeout: float = Field(default=5.0, description="SQLite busy timeout in seconds")
    db_host: str = Field(default="localhost", description="PostgreSQL host")
    db_port: str = Field(default="5432", description="PostgreSQL port")
    db_name: str = Field(default="recipeshare", description="PostgreSQL database name")
    db_user: str = Field(default="recipeshare", description="PostgreSQL user")
    db_password: str = Field(default="", description="PostgreSQL password")
    db_pool_min: int = Field(default=1, description="Minimum pooled PostgreSQL connections")
    db_pool_max: int = Field(default=10, description="Maximum pooled PostgreSQL connections")
    auto_create_schema: bool = Field(
        default=True, description="Create missing tables when the service starts"
    )

    # Identity provider settings
    jwks_url: str = Field(default="", description="JWKS endpoint used to verify bearer tokens")
    jwt_issuer: str = Field(default="", description="Expected token issuer")
    jwt_audience: str = Field(default="", description="Expected token audience (blank to skip)")
    admin_group: str = Field(default="admin", description="Group granting admin access")

    # API settings
    api_title: str = Field(default="Recipe Share API", description="API title")
    api_version: str = Field(default="1.0.0", description="API version")
    api_description: str = Field(
        default="API for sharing recipes and browsing shared collections"
    )

    # Shared recipe queries
    default_page_size: int = Field(default=12, description="Default page size for listings")
    max_page_size: int = Field(default=100, description="Largest page a caller may request")
    live_access_check: bool = Field(
        default=True,
        description="Re-check cached rows against live grants before returning them",
    )

    # Environment
    environment: str = Field(default="dev", description="Environment (dev/prod)")
    debug: bool = Field(default=False, description="Debug mode")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")

    def __init__(self, **kwargs):
        super().__init__(**kwargs)

        logger.info(
            f"Config initialized - backend: {self.db_backend}, "
            f"jwks_url: {self.jwks_url or 'MISSING'}"
        )

        if not self.jwks_url:
            logger.warning(
                "Identity provider configuration is missing; set JWKS_URL and JWT_ISSUER."
            )


# Global settings instance
settings = Settings()
