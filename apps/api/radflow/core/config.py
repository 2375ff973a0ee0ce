"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.1.0"

    # Database
    DATABASE_URL: str

    # Session Token (supports key rotation)
    JWT_SECRET: str = "change-this-in-production"
    JWT_SECRET_PREVIOUS: str = ""  # Set during rotation, clear after
    JWT_EXPIRES_HOURS: int = 8

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Document storage (local | s3). S3-compatible endpoints (Wasabi, MinIO) via S3_ENDPOINT_URL.
    STORAGE_BACKEND: str = "local"
    LOCAL_STORAGE_PATH: str = "/tmp/radflow-documents"
    S3_BUCKET: str = "radflow-documents"
    S3_REGION: str = "us-east-1"
    S3_ENDPOINT_URL: str = ""
    S3_URL_STYLE: str = ""  # path | virtual
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    SIGNED_URL_EXPIRY_SECONDS: int = 3600

    # Document renderer (placeholders + images -> DOCX/PDF)
    DOCUMENT_RENDERER_URL: str = "http://localhost:8777/api/Document/generate"
    RENDERER_TIMEOUT_SECONDS: float = 30.0

    # Workflow commit budgets
    STUDY_COMMIT_TIMEOUT_SECONDS: float = 5.0
    PATIENT_SYNC_TIMEOUT_SECONDS: float = 3.0

    # Report ownership: when an admin writes a report for a study with no assignment,
    # attribute it to the admin (flagged as degraded) instead of rejecting the request.
    ALLOW_ADMIN_OWNER_FALLBACK: bool = True

    # Report history caps (oldest entries trimmed)
    REPORT_STATUS_HISTORY_CAP: int = 50
    REPORT_USAGE_HISTORY_CAP: int = 100
    REPORT_VERIFICATION_HISTORY_CAP: int = 50
    REPORT_CAPTURED_IMAGES_CAP: int = 50

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    # Rate Limiting (requests per minute)
    RATE_LIMIT_API: int = 120

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def jwt_secrets(self) -> list[str]:
        """Returns list of valid secrets (current first, then previous if set)."""
        secrets = [self.JWT_SECRET]
        if self.JWT_SECRET_PREVIOUS:
            secrets.append(self.JWT_SECRET_PREVIOUS)
        return secrets

    @property
    def is_production(self) -> bool:
        return self.ENV in {"prod", "production"}

    @property
    def cookie_secure(self) -> bool:
        """Secure cookies only outside dev."""
        return self.ENV != "dev"


settings = Settings()
