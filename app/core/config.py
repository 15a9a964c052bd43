from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # PostgreSQL
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "tracker_user"
    postgres_password: str = "changeme"
    postgres_db: str = "mention_tracker"

    # Full override (tests use sqlite+aiosqlite)
    database_url: str = ""

    @property
    def postgres_url(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def postgres_url_sync(self) -> str:
        """For Alembic migrations (sync driver)."""
        return (
            f"postgresql+psycopg2://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # Redis (Celery broker + result backend)
    redis_url: str = "redis://localhost:6379/0"
    celery_visibility_timeout_seconds: int = 21600  # must outlast the longest job, or Redis redelivers it

    # Auth
    jwt_secret_key: str = "change-this-to-a-random-string"
    jwt_access_token_expire_minutes: int = 60
    jwt_algorithm: str = "HS256"

    # Azure OpenAI (chat-completion provider)
    azure_openai_endpoint: str = ""
    azure_openai_api_key: str = ""
    azure_openai_deployment: str = "gpt-4o-mini"
    azure_openai_fallback_deployments: str = "gpt-4o,gpt-35-turbo"  # comma-separated
    azure_openai_api_version: str = "2024-02-01"
    azure_openai_fallback_api_versions: str = "2024-06-01,2023-05-15"  # comma-separated

    # Google Gemini with Search grounding (AI-overview provider)
    gemini_api_key: str = ""
    gemini_model: str = "gemini-1.5-flash"
    gemini_fallback_models: str = "gemini-1.5-pro,gemini-pro"  # comma-separated

    # Perplexity (answer engine with citations)
    perplexity_api_key: str = ""
    perplexity_model: str = "sonar"

    # Billing / processing
    credits_per_query: int = 10
    max_stored_results: int = 50  # queryProcessingResults cap per brand
    inter_query_delay_seconds: float = 0.5
    job_runner: str = "inline"  # inline | celery
    stale_job_timeout_minutes: int = 60  # active jobs with no progress this long are failed

    # App
    app_env: str = "development"
    app_debug: bool = True
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    # CORS
    allowed_origins: str = "*"  # comma-separated, e.g. "https://app.example.com,https://admin.example.com"

    # Logging
    log_level: str = "INFO"
    log_json: bool = False  # set True in production for structured JSON logs

    # Sentry
    sentry_dsn: str = ""  # leave empty to disable

    def provider_secrets(self) -> list[str]:
        """All configured provider API keys (used for log redaction)."""
        keys = (self.azure_openai_api_key, self.gemini_api_key, self.perplexity_api_key)
        return [k for k in keys if k]


settings = Settings()


def _split_csv(value: str) -> list[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


def azure_deployment_candidates() -> list[str]:
    """Primary deployment first, then fallbacks, without duplicates."""
    seen: list[str] = []
    for name in [settings.azure_openai_deployment, *_split_csv(settings.azure_openai_fallback_deployments)]:
        if name and name not in seen:
            seen.append(name)
    return seen


def azure_api_version_candidates() -> list[str]:
    seen: list[str] = []
    for version in [settings.azure_openai_api_version, *_split_csv(settings.azure_openai_fallback_api_versions)]:
        if version and version not in seen:
            seen.append(version)
    return seen


def gemini_model_candidates() -> list[str]:
    seen: list[str] = []
    for name in [settings.gemini_model, *_split_csv(settings.gemini_fallback_models)]:
        if name and name not in seen:
            seen.append(name)
    return seen


def validate_settings_for_production() -> None:
    """Validate critical settings. Called on startup in non-test environments."""
    errors: list[str] = []

    if settings.jwt_secret_key in ("change-this-to-a-random-string", ""):
        errors.append("JWT_SECRET_KEY must be set to a secure random value")
    elif len(settings.jwt_secret_key) < 32:
        errors.append("JWT_SECRET_KEY must be at least 32 characters")

    if settings.job_runner not in ("inline", "celery"):
        errors.append("JOB_RUNNER must be 'inline' or 'celery'")

    if settings.credits_per_query <= 0:
        errors.append("CREDITS_PER_QUERY must be positive")

    if settings.app_env == "production":
        if settings.allowed_origins == "*":
            errors.append("ALLOWED_ORIGINS must not be '*' in production")
        if settings.app_debug:
            errors.append("APP_DEBUG must be false in production")

    if errors:
        raise SystemExit("Configuration errors:\n  - " + "\n  - ".join(errors))
