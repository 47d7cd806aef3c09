from __future__ import annotations

from pydantic import BaseModel, Field


class Settings(BaseModel):
    app_name: str = "duk.tw smart router"
    environment: str = "development"
    log_level: str = "INFO"

    # Database Configuration
    # Use a simple SQLite file by default; override via `database_url` in config or env
    database_url: str = "sqlite:///./duk.db"
    db_connect_timeout: int = 5

    # Verification session cookies
    jwt_secret: str = "dev-secret"
    session_ttl_seconds: int = 3600

    # S3 / R2 Configuration
    s3_enabled: bool = True
    s3_endpoint_url: str = "http://localhost:9000"
    s3_region: str = "auto"
    s3_access_key: str = "minioadmin"
    s3_secret_key: str = "minioadmin"
    s3_bucket: str | None = None
    s3_use_path_style: bool = True

    # Dynamic multi-backend configuration
    s3_backends: dict[str, dict[str, str]] = Field(default_factory=dict)

    # Routing
    admin_prefix: str = "/admin"
    preview_path_template: str = "/{hash}/p"
    public_base_url: str = "http://localhost:8000"

    # Outbound image fetch
    upstream_timeout_seconds: float = 3.0
    upstream_retries: int = 1
    upstream_user_agent: str = "Mozilla/5.0 (compatible; duk-image-proxy/1.0)"
    placeholder_path: str | None = None

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"
