# @TASK S0-T0.2 - pydantic-settings based application settings

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Inventory search service settings.

    All values are loaded from environment variables.
    A .env file in the backend directory is also supported.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # --- Database ---
    DATABASE_URL: str = "postgresql+asyncpg://inventory:inventory@db:5432/inventory"

    # --- JWT ---
    JWT_SECRET: str = "change-this-secret-key"
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # --- CORS ---
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # --- Search strategies ---
    SEARCH_QUERY_TIMEOUT_MS: int = 5000  # per fallback stage
    SEARCH_TRIGRAM_THRESHOLD: float = 0.3
    SEARCH_TEXT_CONFIG: str = "english"  # regconfig for to_tsvector / websearch_to_tsquery
    SEARCH_AUTO_INSTALL_EXTENSIONS: bool = False

    # --- Rate limits (fixed window, per user and bucket) ---
    SEARCH_RATE_LIMIT_MAX: int = 30
    SEARCH_RATE_LIMIT_WINDOW_MS: int = 60_000
    SEARCH_ADVANCED_RATE_LIMIT_MAX: int = 20
    SEARCH_ADVANCED_RATE_LIMIT_WINDOW_MS: int = 60_000
    SUGGESTIONS_RATE_LIMIT_MAX: int = 60  # higher for search-as-you-type
    SUGGESTIONS_RATE_LIMIT_WINDOW_MS: int = 60_000
    RATE_LIMIT_CLEANUP_PROBABILITY: float = 0.01

    # --- Suggestion budget (share of the requested limit per source) ---
    SUGGESTION_SHARE_ITEM: float = 0.4
    SUGGESTION_SHARE_LOCATION: float = 0.3
    SUGGESTION_SHARE_TAG: float = 0.2
    SUGGESTION_SHARE_DESCRIPTION: float = 0.1

    @property
    def async_database_url(self) -> str:
        """Ensure the database URL uses the asyncpg driver."""
        url = self.DATABASE_URL
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return url

    @property
    def search_query_timeout(self) -> float:
        """Per-stage query timeout in seconds."""
        return self.SEARCH_QUERY_TIMEOUT_MS / 1000


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings singleton."""
    return Settings()
